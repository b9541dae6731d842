from __future__ import annotations

from typing import Any

from .errors import InvalidRequest
from taproom.time_utils import parse_iso_datetime


def coerce_int(key: str, value: Any) -> int:
    """Strict integer coercion for request payloads. Rejects floats, bools and scientific notation."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise InvalidRequest(f"{key} must be an integer")
        if "e" in stripped.lower():
            raise InvalidRequest(f"{key} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise InvalidRequest(f"{key} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise InvalidRequest(f"{key} must be an integer") from None
    if isinstance(value, float):
        raise InvalidRequest(f"{key} must be an integer, not a decimal")
    raise InvalidRequest(f"{key} must be an integer")


def require_int(data: dict, key: str) -> int:
    if data.get(key) is None:
        raise InvalidRequest(f"{key} is required")
    return coerce_int(key, data[key])


def optional_int(data: dict, key: str) -> int | None:
    if data.get(key) is None:
        return None
    return coerce_int(key, data[key])


def require_str(data: dict, key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise InvalidRequest(f"{key} is required")
    return value.strip()


def parse_datetime_arg(key: str, value: str | None):
    try:
        return parse_iso_datetime(value)
    except ValueError:
        raise InvalidRequest(f"{key} must be an ISO-8601 datetime", details={key: value}) from None
