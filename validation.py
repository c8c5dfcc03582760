"""Request payload helpers shared by the API blueprints."""

from __future__ import annotations

import math
import re
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional
from urllib.parse import urlparse

from flask import request

from errors import BadRequestError, InvalidFormUrl

_SCHEME_RE = re.compile(r'^[A-Za-z][A-Za-z0-9+.-]*$')


def json_body(required: bool = True) -> Dict[str, Any]:
    """Return the JSON object sent with the request or raise ``BadRequest``.

    With ``required=False`` a request without a body reads as ``{}``.
    """
    data = request.get_json(silent=True)
    if data is None and not required and not request.get_data():
        return {}
    if not isinstance(data, dict):
        raise BadRequestError('Missing JSON payload')
    return data


def require_fields(data: Mapping[str, Any], *names: str) -> None:
    missing = [name for name in names if data.get(name) in (None, '')]
    if missing:
        raise BadRequestError(f"{', '.join(missing)} required")


def parse_datetime(value: Any, field_name: str) -> datetime:
    """Parse an ISO 8601 date or datetime into a naive UTC datetime.

    Offsets are converted to UTC before the tzinfo is dropped; values without
    an offset are taken to be UTC already.
    """
    if not isinstance(value, str) or not value.strip():
        raise BadRequestError(f'{field_name} must be an ISO 8601 date')
    text = value.strip()
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        raise BadRequestError(f'Invalid {field_name} format, must be ISO 8601')
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def optional_score(data: Mapping[str, Any], field_name: str) -> Optional[float]:
    """Read a numeric score. Absent or ``null`` both mean "not supplied"."""
    value = data.get(field_name)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise BadRequestError(f'{field_name} must be a number')
    try:
        value = float(value)
    except OverflowError:
        raise BadRequestError(f'{field_name} must be a finite number')
    if not math.isfinite(value):
        raise BadRequestError(f'{field_name} must be a finite number')
    return value


def require_absolute_url(value: Any) -> str:
    """Accept only absolute URLs such as ``https://forms.gle/abc``."""
    if not isinstance(value, str) or not value.strip():
        raise InvalidFormUrl()
    url = value.strip()
    parsed = urlparse(url)
    if not parsed.scheme or not _SCHEME_RE.match(parsed.scheme):
        raise InvalidFormUrl()
    if parsed.scheme in ('http', 'https') and not parsed.netloc:
        raise InvalidFormUrl()
    if not (parsed.netloc or parsed.path):
        raise InvalidFormUrl()
    return url


__all__ = [
    "json_body",
    "optional_score",
    "parse_datetime",
    "require_absolute_url",
    "require_fields",
]
