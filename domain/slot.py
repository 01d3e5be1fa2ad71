"""
Domain: advertising slot.

A Slot is one advertising position among a fixed pool (numbered 1..N).

Invariants enforced here:
- current_bid == 0 iff current_bidder_id is None (and current_bid_id is None).
- current_bid is never negative.

Field ownership (enforced by the services, documented here):
- Bid Ledger writes current_bid, current_bidder_id, current_bid_id, total_bids,
  last_bid_time.
- Auction Session Controller writes status and auction_session_id.

This module is pure: transitions return new instances and never touch storage.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID

from .time import require_optional_utc_timestamp

ZERO = Decimal("0")


class SlotStatus(str, Enum):
    AVAILABLE = "AVAILABLE"
    AUCTION_ACTIVE = "AUCTION_ACTIVE"
    OCCUPIED = "OCCUPIED"
    RESERVED = "RESERVED"


BIDDABLE_SLOT_STATUSES = frozenset({SlotStatus.AVAILABLE, SlotStatus.AUCTION_ACTIVE})


@dataclass(frozen=True, slots=True)
class Slot:
    slot_id: UUID
    slot_number: int
    reserve_price: Decimal = ZERO
    status: SlotStatus = SlotStatus.AVAILABLE
    current_bid: Decimal = ZERO
    current_bidder_id: Optional[UUID] = None  # company holding the current bid (the sponsor once OCCUPIED)
    current_bid_id: Optional[UUID] = None
    total_bids: int = 0
    last_bid_time: Optional[datetime] = None
    auction_session_id: Optional[UUID] = None
    version: int = 0

    def __post_init__(self) -> None:
        require_optional_utc_timestamp("last_bid_time", self.last_bid_time)
        if self.slot_number < 1:
            raise ValueError("slot_number must be >= 1")
        if self.reserve_price < ZERO:
            raise ValueError("reserve_price must be >= 0")
        if self.current_bid < ZERO:
            raise ValueError("current_bid must be >= 0")
        if (self.current_bid == ZERO) != (self.current_bidder_id is None):
            raise ValueError("current_bid must be 0 exactly when current_bidder_id is None")
        if (self.current_bidder_id is None) != (self.current_bid_id is None):
            raise ValueError("current_bid_id must be set exactly when current_bidder_id is set")
        if self.total_bids < 0:
            raise ValueError("total_bids must be >= 0")

    @property
    def has_current_bid(self) -> bool:
        return self.current_bid_id is not None

    @property
    def is_biddable(self) -> bool:
        return self.status in BIDDABLE_SLOT_STATUSES

    # Bid Ledger transitions

    def with_accepted_bid(self, *, bid_id: UUID, bidder_id: UUID, amount: Decimal, at: datetime) -> "Slot":
        """Record a newly accepted bid as current. AVAILABLE slots are promoted to AUCTION_ACTIVE."""

        status = SlotStatus.AUCTION_ACTIVE if self.status == SlotStatus.AVAILABLE else self.status
        return replace(
            self,
            current_bid=amount,
            current_bidder_id=bidder_id,
            current_bid_id=bid_id,
            total_bids=self.total_bids + 1,
            last_bid_time=at,
            status=status,
        )

    def with_reinstated_bid(self, *, bid_id: UUID, bidder_id: UUID, amount: Decimal, placed_at: datetime) -> "Slot":
        """Point the slot back at an earlier bid (after the current one was withdrawn)."""

        return replace(
            self,
            current_bid=amount,
            current_bidder_id=bidder_id,
            current_bid_id=bid_id,
            last_bid_time=placed_at,
        )

    def without_current_bid(self) -> "Slot":
        return replace(
            self,
            current_bid=ZERO,
            current_bidder_id=None,
            current_bid_id=None,
            last_bid_time=None,
        )

    # Auction Session Controller transitions

    def with_status(self, status: SlotStatus) -> "Slot":
        return replace(self, status=status)

    def bound_to(self, session_id: UUID) -> "Slot":
        return replace(self, auction_session_id=session_id)

    def released(self) -> "Slot":
        """Back to the open pool: AVAILABLE, unbound, zero bid."""

        return replace(
            self.without_current_bid(),
            status=SlotStatus.AVAILABLE,
            auction_session_id=None,
        )

    def occupied_by(self, *, bid_id: UUID, bidder_id: UUID, amount: Decimal) -> "Slot":
        return replace(
            self,
            status=SlotStatus.OCCUPIED,
            current_bid=amount,
            current_bidder_id=bidder_id,
            current_bid_id=bid_id,
            auction_session_id=None,
        )


__all__ = ["Slot", "SlotStatus", "BIDDABLE_SLOT_STATUSES", "ZERO"]
