"""
Domain: bids and bid decisions.

A Bid is an immutable record of one bidder's offer on one slot at one moment.

Status rules:
- A bid is created ACTIVE.
- ACTIVE -> OUTBID when a higher bid is accepted on the same slot.
- ACTIVE -> WON when a session ends (or an operator accepts it).
- ACTIVE -> WITHDRAWN on withdrawal or operator rejection.
- OUTBID -> ACTIVE only when the bid above it is withdrawn and it is the
  highest remaining bid on the slot.
- WON and WITHDRAWN are terminal. A withdrawn bid never returns to ACTIVE.

Bids are never deleted; status changes return new instances.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping, Optional
from uuid import UUID

from .time import require_utc_timestamp


class BidStatus(str, Enum):
    ACTIVE = "ACTIVE"
    OUTBID = "OUTBID"
    WON = "WON"
    WITHDRAWN = "WITHDRAWN"


CURRENT_BID_STATUSES = frozenset({BidStatus.ACTIVE, BidStatus.WON})

_ALLOWED_BID_TRANSITIONS: Mapping[BidStatus, frozenset[BidStatus]] = {
    BidStatus.ACTIVE: frozenset({BidStatus.OUTBID, BidStatus.WON, BidStatus.WITHDRAWN}),
    BidStatus.OUTBID: frozenset({BidStatus.ACTIVE}),
    BidStatus.WON: frozenset(),
    BidStatus.WITHDRAWN: frozenset(),
}


@dataclass(frozen=True, slots=True)
class Bid:
    bid_id: UUID
    slot_id: UUID
    company_id: UUID
    user_id: UUID
    amount: Decimal
    placed_at: datetime
    status: BidStatus = BidStatus.ACTIVE
    auction_session_id: Optional[UUID] = None
    bidder_info: Mapping[str, Any] = field(default_factory=dict)
    version: int = 0

    def __post_init__(self) -> None:
        require_utc_timestamp("placed_at", self.placed_at)
        if self.amount <= Decimal("0"):
            raise ValueError("amount must be > 0")

    @property
    def is_current(self) -> bool:
        return self.status in CURRENT_BID_STATUSES

    def transition(self, status: BidStatus) -> "Bid":
        """Return a copy in `status`; raises ValueError for a transition the rules above forbid."""

        if status not in _ALLOWED_BID_TRANSITIONS[self.status]:
            raise ValueError(f"Bid cannot move from {self.status.value} to {status.value}")
        return replace(self, status=status)


class RejectionReason(str, Enum):
    SLOT_NOT_BIDDABLE = "SlotNotBiddable"
    NO_ACTIVE_SESSION = "NoActiveSession"
    BIDDER_INELIGIBLE = "BidderIneligible"
    EXCEEDS_MAX_BID = "ExceedsMaxBid"
    BELOW_RESERVE = "BelowReserve"
    BID_TOO_LOW = "BidTooLow"


@dataclass(frozen=True, slots=True)
class BidDecision:
    """
    Outcome of validating a proposed bid.

    accepted: True if every rule passed
    reason: first failed rule (None when accepted)
    message: human-readable explanation
    minimum_amount: smallest acceptable amount (set for BidTooLow and BelowReserve)
    """

    accepted: bool
    reason: Optional[RejectionReason] = None
    message: str = ""
    minimum_amount: Optional[Decimal] = None

    @staticmethod
    def accept() -> "BidDecision":
        return BidDecision(accepted=True, message="Bid accepted")

    @staticmethod
    def reject(
        reason: RejectionReason,
        message: str,
        minimum_amount: Optional[Decimal] = None,
    ) -> "BidDecision":
        return BidDecision(accepted=False, reason=reason, message=message, minimum_amount=minimum_amount)


__all__ = [
    "Bid",
    "BidStatus",
    "BidDecision",
    "RejectionReason",
    "CURRENT_BID_STATUSES",
]
