"""
Time conventions

All timestamps are stored UTC-naive. Inbound ISO strings are converted to
UTC and stripped of tzinfo; outbound values are rendered with a trailing Z.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _as_utc_naive(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    "" / None -> None. Naive input is taken as UTC. "Z" and numeric offsets
    are honoured. A bare date ("2026-10-18") means midnight UTC.
    """
    if value is None or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return _as_utc_naive(datetime.fromisoformat(text))


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    if dt is None:
        return None
    aware = dt.replace(tzinfo=timezone.utc) if dt.tzinfo is None else dt.astimezone(timezone.utc)
    return aware.replace(microsecond=0).isoformat().replace("+00:00", "Z")


def hours_between(start: datetime, end: datetime) -> float:
    """Shift length in hours, to two decimals."""
    return round((_as_utc_naive(end) - _as_utc_naive(start)).total_seconds() / 3600, 2)
