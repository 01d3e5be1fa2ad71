"""
Bid validation (pure).

Decides whether a proposed bid is acceptable against a slot snapshot, the
session the slot is bound to, and the bidder's company. Rules are applied in
order and the first failure wins:

1. Slot exists and is AVAILABLE or AUCTION_ACTIVE            -> SlotNotBiddable
2. A bound slot's session is ACTIVE                          -> NoActiveSession
3. Company is eligible / amount within its maximum bid        -> BidderIneligible / ExceedsMaxBid
4. amount >= reserve (session override wins over the slot's)  -> BelowReserve
5. amount > current bid, and >= current + increment when a
   session increment applies                                  -> BidTooLow

No side effects: the same inputs always produce the same decision.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Optional

from domain.auction_session import AuctionSession
from domain.bid import BidDecision, RejectionReason
from domain.company import Company
from domain.slot import Slot

# Smallest step above the current bid for bids on slots without a session.
MIN_SESSIONLESS_STEP = Decimal("0.01")


def effective_reserve(slot: Slot, session: Optional[AuctionSession]) -> Decimal:
    """Reserve price in force for `slot` (the session override wins when set)."""

    if session is not None and session.reserve_price is not None:
        return session.reserve_price
    return slot.reserve_price


def minimum_next_bid(slot: Slot, session: Optional[AuctionSession]) -> Decimal:
    """
    Smallest amount that would currently pass the reserve and increment rules.

    The session increment only applies once the slot has a current bid; the
    opening bid just has to meet the reserve.
    """

    reserve = effective_reserve(slot, session)
    if not slot.has_current_bid:
        return max(reserve, MIN_SESSIONLESS_STEP)

    step = session.bid_increment if session is not None else MIN_SESSIONLESS_STEP
    return max(reserve, slot.current_bid + step)


def validate_bid(
    slot: Optional[Slot],
    session: Optional[AuctionSession],
    company: Optional[Company],
    amount: Decimal,
) -> BidDecision:
    """
    Validate a proposed bid.

    Args:
        slot: Current slot snapshot (None if the slot does not exist)
        session: Session the slot is bound to (None for unbound slots)
        company: Bidder's company (None if the company is unknown)
        amount: Proposed bid amount

    Returns:
        BidDecision; rejected decisions carry the reason code and, for
        BelowReserve / BidTooLow, the minimum acceptable amount
    """

    if slot is None:
        return BidDecision.reject(RejectionReason.SLOT_NOT_BIDDABLE, "Slot does not exist")
    if not slot.is_biddable:
        return BidDecision.reject(
            RejectionReason.SLOT_NOT_BIDDABLE,
            f"Slot {slot.slot_number} is {slot.status.value} and not open for bidding",
        )

    if slot.auction_session_id is not None:
        if session is None or session.session_id != slot.auction_session_id or not session.accepts_bids:
            status = session.status.value if session is not None else "missing"
            return BidDecision.reject(
                RejectionReason.NO_ACTIVE_SESSION,
                f"Slot {slot.slot_number} belongs to an auction session that is not active ({status})",
            )

    if company is None or not company.can_bid():
        return BidDecision.reject(RejectionReason.BIDDER_INELIGIBLE, "Company is not eligible for auctions")
    if not company.allows_amount(amount):
        return BidDecision.reject(
            RejectionReason.EXCEEDS_MAX_BID,
            f"Bid amount {amount} exceeds the company's maximum bid of {company.max_bid_amount}",
        )

    reserve = effective_reserve(slot, session)
    if amount < reserve:
        return BidDecision.reject(
            RejectionReason.BELOW_RESERVE,
            f"Bid amount must be at least the reserve price of {reserve}",
            minimum_amount=reserve,
        )

    minimum = minimum_next_bid(slot, session)
    if amount <= slot.current_bid or amount < minimum:
        if slot.has_current_bid:
            message = f"Bid must be at least {minimum} (current bid {slot.current_bid})"
        else:
            message = f"Bid must be at least {minimum}"
        return BidDecision.reject(RejectionReason.BID_TOO_LOW, message, minimum_amount=minimum)

    return BidDecision.accept()


__all__ = ["effective_reserve", "minimum_next_bid", "validate_bid", "MIN_SESSIONLESS_STEP"]
