"""Correlation ID and request/response logging hooks for the Flask app."""

from __future__ import annotations

import json
import os
import random
import time
import uuid
from typing import Any, Dict, Optional

from flask import Flask, Response, g, request

from app_logging import (
    clear_request_context,
    clear_request_id,
    get_logger,
    merge_request_context,
    redact_sensitive_data,
    set_request_id,
)

HEADER_NAME = "X-Request-ID"

_DEFAULT_SAMPLE_RATE = 1.0
_DEFAULT_MAX_BYTES = 2048
_UNLOGGED_PATHS = {"/health"}

_request_logger = get_logger("app.request")


def _incoming_request_id() -> Optional[str]:
    header_val = request.headers.get(HEADER_NAME, "").strip()
    return header_val or None


def _sample_rate() -> float:
    try:
        rate = float(os.environ.get("REQUEST_LOG_SAMPLE_RATE", _DEFAULT_SAMPLE_RATE))
    except ValueError:
        return _DEFAULT_SAMPLE_RATE
    return max(0.0, min(1.0, rate))


def _max_response_bytes() -> int:
    try:
        return max(0, int(os.environ.get("RESPONSE_BODY_MAX_BYTES", _DEFAULT_MAX_BYTES)))
    except ValueError:
        return _DEFAULT_MAX_BYTES


def _client_ip() -> str:
    forwarded = request.headers.get("X-Forwarded-For", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.remote_addr or "unknown"


def _route() -> Optional[str]:
    return request.url_rule.rule if request.url_rule else None


def _should_log_request(path: str) -> bool:
    if path in _UNLOGGED_PATHS:
        return False
    sample_rate = _sample_rate()
    if sample_rate >= 1.0:
        return True
    return random.random() <= sample_rate


def _request_payload() -> Dict[str, Any]:
    payload: Dict[str, Any] = {}
    if request.args:
        payload["query"] = redact_sensitive_data(request.args.to_dict(flat=False))
    if request.method in {"POST", "PUT", "PATCH"}:
        json_body = request.get_json(silent=True)
        if json_body is not None:
            payload["json"] = redact_sensitive_data(json_body)
    return payload


def _response_body(resp: Response) -> Optional[str]:
    limit = _max_response_bytes()
    if limit == 0 or resp.direct_passthrough:
        return None
    body = resp.get_data(as_text=True)
    if not body:
        return None
    if resp.is_json:
        # Tokens issued by /auth must never reach the log stream.
        body = json.dumps(redact_sensitive_data(resp.get_json(silent=True)))
    if len(body) > limit:
        return body[:limit] + f"... truncated {len(body) - limit} bytes"
    return body


def init_correlation_id(app: Flask) -> None:
    """Attach a correlation ID to every request and echo it on the response."""

    @app.before_request
    def _assign_request_id() -> None:
        request_id = _incoming_request_id() or str(uuid.uuid4())
        set_request_id(request_id)
        g.request_id = request_id

    @app.after_request
    def _append_request_id(response: Response) -> Response:
        request_id = getattr(g, "request_id", None) or _incoming_request_id()
        if request_id:
            response.headers[HEADER_NAME] = request_id
        return response

    @app.teardown_request
    def _teardown_request(_exc) -> None:
        clear_request_id()
        clear_request_context()


def init_request_logging(app: Flask) -> None:
    """Emit structured ``request_start``/``request_end`` log lines."""

    @app.before_request
    def _log_request_start() -> None:
        g._log_request = _should_log_request(request.path)
        g._request_start = time.perf_counter()
        merge_request_context(
            method=request.method,
            path=request.path,
            client_ip=_client_ip(),
            route=_route(),
        )
        if not g._log_request:
            return
        _request_logger.info(
            "request_start",
            extra={
                "event": "request_start",
                "user_agent": request.headers.get("User-Agent"),
                "request_payload": _request_payload(),
            },
        )

    @app.after_request
    def _log_request_end(response: Response) -> Response:
        duration_ms = None
        if hasattr(g, "_request_start"):
            duration_ms = round((time.perf_counter() - g._request_start) * 1000, 2)
        merge_request_context(status=response.status_code, duration_ms=duration_ms)
        if getattr(g, "_log_request", False):
            _request_logger.info(
                "request_end",
                extra={
                    "event": "request_end",
                    "status": response.status_code,
                    "duration_ms": duration_ms,
                    "response_body": _response_body(response),
                },
            )
        return response


__all__ = ["HEADER_NAME", "init_correlation_id", "init_request_logging"]
