"""Error kinds raised by the API and the JSON handlers that render them.

Every error is an :class:`~werkzeug.exceptions.HTTPException` carrying a
``kind`` name next to its HTTP status, so handlers and the workflow
components can raise them directly and clients can tell
``DeadlineNotYetAvailable`` apart from ``DuplicateSubmission`` even though
both answer with ``400``.
"""

from __future__ import annotations

from flask import Flask, jsonify
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from werkzeug.exceptions import HTTPException

from app_logging import get_logger, get_request_id
from models import db

_logger = get_logger("app.errors")


class ApiError(HTTPException):
    code = 500
    kind = "InternalFault"
    description = "Internal server error"


class NotFoundError(ApiError):
    code = 404
    kind = "NotFound"
    description = "Resource not found"


class BadRequestError(ApiError):
    code = 400
    kind = "BadRequest"
    description = "Malformed request"


class ConflictError(ApiError):
    """A unique key is already taken."""

    code = 400
    kind = "Conflict"
    description = "Resource already exists"


class DuplicateSubmission(ConflictError):
    description = "Laporan already exists for this user and pertemuan"


class PreconditionFailed(ApiError):
    code = 400
    kind = "PreconditionFailed"
    description = "Precondition failed"


class PracticumNotScheduled(PreconditionFailed):
    description = "Praktikum session not found for this pertemuan"


class DeadlineNotYetAvailable(PreconditionFailed):
    description = (
        "Cannot submit laporan yet. Next pertemuan must be scheduled first "
        "to set the deadline."
    )


class InvalidFormUrl(PreconditionFailed):
    description = "Invalid form URL format"


class Unauthenticated(ApiError):
    code = 401
    kind = "Unauthenticated"
    description = "Authentication required"


class Forbidden(ApiError):
    code = 403
    kind = "Forbidden"
    description = "Insufficient role for this action"


def _error_response(message: str, kind: str, status: int):
    response = jsonify({
        'error': message,
        'kind': kind,
        'status': status,
        'requestId': get_request_id(),
    })
    response.status_code = status
    return response


def register_error_handlers(app: Flask) -> None:
    """Render every failure as a JSON body with a message and a kind."""

    @app.errorhandler(HTTPException)
    def handle_http_error(error: HTTPException):
        kind = getattr(error, 'kind', None) or error.name.replace(' ', '')
        status = error.code or 500
        if status >= 500:
            _logger.error("request failed", extra={"error_type": kind, "error": error.description})
        else:
            _logger.warning("request rejected", extra={"error_type": kind, "error": error.description})
        return _error_response(error.description, kind, status)

    @app.errorhandler(IntegrityError)
    def handle_integrity_error(error: IntegrityError):
        # Unique constraints catch what a concurrent check-then-insert missed.
        db.session.rollback()
        _logger.warning("integrity violation", extra={"error": str(error.orig)})
        return _error_response(ConflictError.description, ConflictError.kind, ConflictError.code)

    @app.errorhandler(OperationalError)
    def handle_db_unavailable(error: OperationalError):
        db.session.rollback()
        _logger.error("Database operation failed", exc_info=error)
        return _error_response('Database temporarily unavailable', 'InternalFault', 503)

    @app.errorhandler(SQLAlchemyError)
    def handle_db_error(error: SQLAlchemyError):
        db.session.rollback()
        _logger.error("Database operation failed", exc_info=error)
        return _error_response('Internal server error', 'InternalFault', 500)


__all__ = [
    "ApiError",
    "BadRequestError",
    "ConflictError",
    "DeadlineNotYetAvailable",
    "DuplicateSubmission",
    "Forbidden",
    "InvalidFormUrl",
    "NotFoundError",
    "PracticumNotScheduled",
    "PreconditionFailed",
    "Unauthenticated",
    "register_error_handlers",
]
