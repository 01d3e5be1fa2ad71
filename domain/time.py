"""
Domain time utilities (pure).

Centralized timestamp validation and the default clock used by services.

Behavior and error messages must remain consistent across the domain model.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable

Clock = Callable[[], datetime]


def require_utc_timestamp(name: str, value: datetime) -> None:
    """
    Enforces the requirement that auction timestamps are UTC.

    Invariants:
    - Timestamps must be timezone-aware.
    - Timestamps must have UTC offset 0.
    """

    if value.tzinfo is None or value.utcoffset() is None:
        raise ValueError(f"{name} must be timezone-aware (UTC)")
    if value.utcoffset() != timedelta(0):
        raise ValueError(f"{name} must be a UTC timestamp (offset 0)")


def require_optional_utc_timestamp(name: str, value: datetime | None) -> None:
    if value is not None:
        require_utc_timestamp(name, value)


def utc_now() -> datetime:
    """Default clock. Services accept a `Clock` so tests can pin time."""

    return datetime.now(timezone.utc)
