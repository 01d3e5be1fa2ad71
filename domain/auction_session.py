"""
Domain: auction session state machine.

An AuctionSession is a scheduled competitive window binding zero or more slots.

State machine:
- SCHEDULED -> ACTIVE      start()
- ACTIVE    -> PAUSED      pause()
- PAUSED    -> ACTIVE      resume()
- ACTIVE    -> COMPLETED   end()
- PAUSED    -> COMPLETED   end()
- ACTIVE    -> ACTIVE      extend()  (bounded by max_extensions)
- SCHEDULED | ACTIVE | PAUSED -> CANCELLED   cancel()
- SCHEDULED -> SCHEDULED   edited()  (settings and times, before start only)

Invariants:
- extensions_used <= max_extensions
- end_time only increases (through extension)
- end_time > start_time

Transitions are pure: each returns a new instance or raises
InvalidSessionTransition without changing anything. Slot resolution on end()
and cancel() is orchestrated by the session controller service.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Mapping, Optional, Tuple
from uuid import UUID

from .errors import ExtensionLimitReached, InvalidSessionTransition
from .time import require_optional_utc_timestamp, require_utc_timestamp

DEFAULT_EXTEND_DURATION_SECONDS = 300
DEFAULT_MAX_EXTENSIONS = 3
DEFAULT_BID_INCREMENT = Decimal("1000")
MIN_EXTEND_DURATION_SECONDS = 60


class SessionStatus(str, Enum):
    SCHEDULED = "SCHEDULED"
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


LIVE_SESSION_STATUSES = frozenset({SessionStatus.SCHEDULED, SessionStatus.ACTIVE, SessionStatus.PAUSED})

_ALLOWED_TRANSITIONS: Mapping[SessionStatus, frozenset[SessionStatus]] = {
    SessionStatus.SCHEDULED: frozenset({SessionStatus.ACTIVE, SessionStatus.CANCELLED}),
    SessionStatus.ACTIVE: frozenset(
        {SessionStatus.ACTIVE, SessionStatus.PAUSED, SessionStatus.COMPLETED, SessionStatus.CANCELLED}
    ),
    SessionStatus.PAUSED: frozenset({SessionStatus.ACTIVE, SessionStatus.COMPLETED, SessionStatus.CANCELLED}),
    SessionStatus.COMPLETED: frozenset(),
    SessionStatus.CANCELLED: frozenset(),
}


@dataclass(frozen=True, slots=True)
class AuctionSession:
    session_id: UUID
    name: str
    start_time: datetime
    end_time: datetime
    status: SessionStatus = SessionStatus.SCHEDULED
    description: Optional[str] = None
    bid_increment: Decimal = DEFAULT_BID_INCREMENT
    reserve_price: Optional[Decimal] = None  # overrides slot reserve prices when set
    auto_extend: bool = False
    extend_duration_seconds: int = DEFAULT_EXTEND_DURATION_SECONDS
    max_extensions: int = DEFAULT_MAX_EXTENSIONS
    extensions_used: int = 0
    actual_start_time: Optional[datetime] = None
    actual_end_time: Optional[datetime] = None
    slot_ids: Tuple[UUID, ...] = ()
    created_at: Optional[datetime] = None
    version: int = 0

    def __post_init__(self) -> None:
        require_utc_timestamp("start_time", self.start_time)
        require_utc_timestamp("end_time", self.end_time)
        require_optional_utc_timestamp("actual_start_time", self.actual_start_time)
        require_optional_utc_timestamp("actual_end_time", self.actual_end_time)
        require_optional_utc_timestamp("created_at", self.created_at)

        if not self.name.strip():
            raise ValueError("name must not be empty")
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        if self.bid_increment <= Decimal("0"):
            raise ValueError("bid_increment must be > 0")
        if self.reserve_price is not None and self.reserve_price < Decimal("0"):
            raise ValueError("reserve_price must be >= 0")
        if self.extend_duration_seconds < MIN_EXTEND_DURATION_SECONDS:
            raise ValueError(f"extend_duration_seconds must be >= {MIN_EXTEND_DURATION_SECONDS}")
        if self.max_extensions < 0:
            raise ValueError("max_extensions must be >= 0")
        if not 0 <= self.extensions_used <= self.max_extensions:
            raise ValueError("extensions_used must be between 0 and max_extensions")
        if len(set(self.slot_ids)) != len(self.slot_ids):
            raise ValueError("slot_ids must not contain duplicates")

    @property
    def is_live(self) -> bool:
        return self.status in LIVE_SESSION_STATUSES

    @property
    def accepts_bids(self) -> bool:
        return self.status == SessionStatus.ACTIVE

    @property
    def extensions_remaining(self) -> int:
        return self.max_extensions - self.extensions_used

    def time_remaining(self, now: datetime) -> timedelta:
        """Time until the scheduled end (negative once end_time has passed)."""

        return self.end_time - now

    def _require(self, target: SessionStatus) -> None:
        if target not in _ALLOWED_TRANSITIONS[self.status]:
            raise InvalidSessionTransition(self.status.value, target.value)

    def started(self, at: datetime) -> "AuctionSession":
        if self.status != SessionStatus.SCHEDULED:
            raise InvalidSessionTransition(self.status.value, SessionStatus.ACTIVE.value)
        require_utc_timestamp("at", at)
        return replace(self, status=SessionStatus.ACTIVE, actual_start_time=at)

    def paused(self) -> "AuctionSession":
        if self.status != SessionStatus.ACTIVE:
            raise InvalidSessionTransition(self.status.value, SessionStatus.PAUSED.value)
        return replace(self, status=SessionStatus.PAUSED)

    def resumed(self) -> "AuctionSession":
        if self.status != SessionStatus.PAUSED:
            raise InvalidSessionTransition(self.status.value, SessionStatus.ACTIVE.value)
        return replace(self, status=SessionStatus.ACTIVE)

    def completed(self, at: datetime) -> "AuctionSession":
        self._require(SessionStatus.COMPLETED)
        require_utc_timestamp("at", at)
        return replace(self, status=SessionStatus.COMPLETED, actual_end_time=at)

    def cancelled(self, at: datetime) -> "AuctionSession":
        self._require(SessionStatus.CANCELLED)
        require_utc_timestamp("at", at)
        return replace(self, status=SessionStatus.CANCELLED, actual_end_time=at)

    def extended(self, duration_seconds: Optional[int] = None) -> "AuctionSession":
        """
        Push end_time back by `duration_seconds` (defaults to extend_duration_seconds).

        Requires ACTIVE and a remaining extension; otherwise raises and leaves
        the session untouched.
        """

        if self.status != SessionStatus.ACTIVE:
            raise InvalidSessionTransition(self.status.value, SessionStatus.ACTIVE.value, "only ACTIVE sessions can be extended")
        if self.extensions_used >= self.max_extensions:
            raise ExtensionLimitReached(self.extensions_used, self.max_extensions)

        seconds = self.extend_duration_seconds if duration_seconds is None else duration_seconds
        if seconds <= 0:
            raise ValueError("extension duration must be > 0 seconds")

        return replace(
            self,
            end_time=self.end_time + timedelta(seconds=seconds),
            extensions_used=self.extensions_used + 1,
        )

    def with_slots(self, slot_ids: Tuple[UUID, ...]) -> "AuctionSession":
        if self.status != SessionStatus.SCHEDULED:
            raise InvalidSessionTransition(
                self.status.value, self.status.value, "slots can only be bound while SCHEDULED"
            )
        return replace(self, slot_ids=slot_ids)

    def require_editable(self) -> None:
        """Settings can only change before the session starts; after that end_time moves only through extended()."""

        if self.status != SessionStatus.SCHEDULED:
            raise InvalidSessionTransition(
                self.status.value, self.status.value, "only SCHEDULED sessions can be edited"
            )

    def edited(
        self,
        *,
        name: str,
        description: Optional[str],
        start_time: datetime,
        end_time: datetime,
        bid_increment: Decimal,
        reserve_price: Optional[Decimal],
        auto_extend: bool,
        extend_duration_seconds: int,
        max_extensions: int,
    ) -> "AuctionSession":
        self.require_editable()
        return replace(
            self,
            name=name,
            description=description,
            start_time=start_time,
            end_time=end_time,
            bid_increment=bid_increment,
            reserve_price=reserve_price,
            auto_extend=auto_extend,
            extend_duration_seconds=extend_duration_seconds,
            max_extensions=max_extensions,
        )


__all__ = [
    "AuctionSession",
    "SessionStatus",
    "LIVE_SESSION_STATUSES",
    "DEFAULT_BID_INCREMENT",
    "DEFAULT_EXTEND_DURATION_SECONDS",
    "DEFAULT_MAX_EXTENSIONS",
    "MIN_EXTEND_DURATION_SECONDS",
]
