"""Database helpers: start-up resilience, SQLite pragmas and commits."""

from __future__ import annotations

import time
from typing import Callable, TypeVar

from flask import Flask
from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app_logging import get_logger
from errors import ConflictError
from models import db

T = TypeVar("T")

_logger = get_logger("app.db")


def retry_with_backoff(
    func: Callable[[], T],
    attempts: int = 3,
    base_delay: float = 0.1,
    max_total_delay: float = 2.0,
    retry_on: tuple = (SQLAlchemyError,),
) -> T:
    """Retry ``func`` with exponential backoff.

    Only exceptions listed in ``retry_on`` are retried; the last one is
    re-raised once the attempts or the ``max_total_delay`` budget run out.
    """

    last_exc: Exception | None = None
    total_delay = 0.0
    for attempt in range(1, attempts + 1):
        try:
            return func()
        except retry_on as exc:
            last_exc = exc
            _logger.warning(
                "transient operation failed", extra={"attempt": attempt, "error": str(exc)}
            )
            if attempt >= attempts or total_delay >= max_total_delay:
                break
            delay = min(base_delay * (2 ** (attempt - 1)), max_total_delay - total_delay)
            if delay <= 0:
                continue
            time.sleep(delay)
            total_delay += delay
    if last_exc:
        raise last_exc
    raise RuntimeError("retry_with_backoff failed without exception")


def _enable_sqlite_foreign_keys(dbapi_connection, _record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def configure_engine(engine: Engine) -> None:
    """SQLite ignores ``ON DELETE CASCADE`` unless foreign keys are switched on."""
    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)


def create_schema(app: Flask) -> None:
    """Create missing tables, tolerating a database that is briefly down.

    A database still unavailable after the retries is logged rather than
    raised so the process can start; requests then fail with 503.
    """
    with app.app_context():
        configure_engine(db.engine)
        try:
            retry_with_backoff(db.create_all)
        except SQLAlchemyError as exc:
            _logger.error("Database unavailable during table creation", extra={"error": str(exc)})


def commit_or_conflict(message: str) -> None:
    """Commit the session, reporting a unique-key violation as ``Conflict``."""
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(message)


__all__ = ["commit_or_conflict", "configure_engine", "create_schema", "retry_with_backoff"]
