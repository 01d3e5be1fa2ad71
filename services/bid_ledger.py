"""
Bid ledger service.

Owns the authoritative sequence of bids per slot. It is the only writer of
Bid.status and of the slot's current-bid fields (current_bid,
current_bidder_id, current_bid_id, total_bids, last_bid_time).

place_bid() as one atomic change set:
1. Load the slot and its bound session
2. Validate (a rejection writes nothing)
3. Insert the new ACTIVE bid
4. Mark the previous ACTIVE bid OUTBID
5. Point the slot at the new bid (AVAILABLE slots become AUCTION_ACTIVE)
6. Stage BID_PLACED and BID_OUTBID notifications
7. Ask the session controller for an auto-extension when the bid lands
   inside the closing window

A ConcurrencyConflict on commit re-runs the whole sequence against fresh
state, so a losing racer is re-validated against the winner's amount.

The module-level `stage_*` helpers are the ledger's bookkeeping rules; the
session controller uses them when ending or cancelling a session.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import TYPE_CHECKING, Any, List, Mapping, Optional
from uuid import UUID, uuid4

from domain.auction_session import AuctionSession
from domain.bid import CURRENT_BID_STATUSES, Bid, BidDecision, BidStatus, RejectionReason
from domain.errors import AlreadyTerminal, BidNotFound, LedgerStoreError, SessionNotFound, SlotNotFound
from domain.slot import Slot, SlotStatus
from domain.time import Clock, utc_now
from repositories.company_repository import CompanyDirectory
from repositories.ledger_store import ChangeSet, LedgerStore
from services.bid_validator import validate_bid
from services.commit_retry import run_with_commit_retry
from services.notification_dispatcher import NotificationDispatcher

if TYPE_CHECKING:
    from services.session_controller import SessionController

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PlaceBidRequest:
    """
    Request to place a bid on a slot.
    """
    slot_id: UUID
    company_id: UUID
    user_id: UUID  # submitting user within the company
    amount: Decimal
    bidder_info: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class PlaceBidResult:
    """
    Result of a bid attempt.

    success: True if the bid was accepted and committed
    bid: the committed bid (None when rejected)
    previous_bid: the bid it superseded, as it was before being marked OUTBID
    reason / message / minimum_amount: rejection details (see BidDecision)
    session: the bound session after this bid (reflects any auto-extension)
    extended: True if the bid triggered an auto-extension
    """
    success: bool
    bid: Optional[Bid] = None
    previous_bid: Optional[Bid] = None
    reason: Optional[RejectionReason] = None
    message: str = ""
    minimum_amount: Optional[Decimal] = None
    session: Optional[AuctionSession] = None
    extended: bool = False

    @staticmethod
    def rejected(decision: BidDecision) -> "PlaceBidResult":
        return PlaceBidResult(
            success=False,
            reason=decision.reason,
            message=decision.message,
            minimum_amount=decision.minimum_amount,
        )


# Bookkeeping rules shared with the session controller


def stage_current_bid_recompute(changes: ChangeSet, store: LedgerStore, slot: Slot, removed: Bid) -> Optional[Bid]:
    """
    Re-point `slot` after its current bid `removed` left the current set.

    The highest remaining ACTIVE/OUTBID bid from the same auction context
    (same bound session, or sessionless) becomes current again; an OUTBID bid
    is reinstated to ACTIVE. With nothing left the slot drops to a zero bid
    and returns to AVAILABLE. It stays bound to its session, so the session's
    end() or cancel() still resolves it and new bids still need that session
    to be ACTIVE.

    Returns the new current bid, or None.
    """

    candidates = [
        changes.pending_bid(b)
        for b in store.list_bids(slot_id=slot.slot_id, statuses=[BidStatus.ACTIVE, BidStatus.OUTBID])
        if b.bid_id != removed.bid_id and b.auction_session_id == slot.auction_session_id
    ]
    candidates = [b for b in candidates if b.status in (BidStatus.ACTIVE, BidStatus.OUTBID)]

    pending_slot = changes.pending_slot(slot)
    if not candidates:
        changes.update_slot(pending_slot.without_current_bid().with_status(SlotStatus.AVAILABLE))
        return None

    # Oldest first, so the later of two equal amounts wins.
    _, best = max(enumerate(candidates), key=lambda item: (item[1].amount, item[0]))
    if best.status == BidStatus.OUTBID:
        best = best.transition(BidStatus.ACTIVE)
        changes.update_bid(best)

    changes.update_slot(
        pending_slot.with_reinstated_bid(
            bid_id=best.bid_id,
            bidder_id=best.company_id,
            amount=best.amount,
            placed_at=best.placed_at,
        )
    )
    return best


def stage_settlement(changes: ChangeSet, store: LedgerStore, slot: Slot) -> Optional[Bid]:
    """
    Mark the winning bid for a slot closing with its session.

    The winner is the highest ACTIVE/WON bid placed in the slot's session; it
    becomes WON and any other ACTIVE bid becomes OUTBID. Returns the winning
    bid, or None when the slot attracted no qualifying bid.
    """

    current = [
        changes.pending_bid(b)
        for b in store.list_bids(slot_id=slot.slot_id, statuses=CURRENT_BID_STATUSES)
        if b.auction_session_id == slot.auction_session_id
    ]
    if not current:
        return None

    winner = max(current, key=lambda b: b.amount)
    for bid in current:
        if bid.bid_id != winner.bid_id and bid.status == BidStatus.ACTIVE:
            changes.update_bid(bid.transition(BidStatus.OUTBID))

    if winner.status == BidStatus.ACTIVE:
        winner = winner.transition(BidStatus.WON)
        changes.update_bid(winner)
    return winner


def stage_void_current_bid(changes: ChangeSet, store: LedgerStore, slot: Slot) -> Optional[Bid]:
    """Withdraw the slot's ACTIVE current bid (used when its session is cancelled)."""

    if slot.current_bid_id is None:
        return None

    bid = store.get_bid(slot.current_bid_id)
    if bid is None:
        raise LedgerStoreError(f"Slot {slot.slot_id} points at a missing bid {slot.current_bid_id}")
    bid = changes.pending_bid(bid)
    if bid.status != BidStatus.ACTIVE:
        return None

    withdrawn = bid.transition(BidStatus.WITHDRAWN)
    changes.update_bid(withdrawn)
    return withdrawn


class BidLedger:
    def __init__(
        self,
        store: LedgerStore,
        companies: CompanyDirectory,
        dispatcher: NotificationDispatcher,
        controller: Optional["SessionController"] = None,
        *,
        clock: Clock = utc_now,
        max_commit_attempts: int = 5,
    ):
        self._store = store
        self._companies = companies
        self._dispatcher = dispatcher
        self._controller = controller
        self._clock = clock
        self._max_commit_attempts = max_commit_attempts

    def _retrying(self, operation: str, fn, *args):
        return run_with_commit_retry(operation, fn, *args, max_attempts=self._max_commit_attempts, log=logger)

    # Bid placement

    def place_bid(self, request: PlaceBidRequest) -> PlaceBidResult:
        """
        Place a bid.

        Returns:
            PlaceBidResult (rejections are results, not exceptions)

        Raises:
            SlotNotFound / SessionNotFound for unknown records
            ConcurrencyConflict if the commit kept conflicting past the retry budget
        """
        return self._retrying("place_bid", self._place_bid_once, request)

    def _place_bid_once(self, request: PlaceBidRequest) -> PlaceBidResult:
        slot = self._store.get_slot(request.slot_id)
        if slot is None:
            raise SlotNotFound(request.slot_id)

        session: Optional[AuctionSession] = None
        if slot.auction_session_id is not None:
            session = self._store.get_session(slot.auction_session_id)
            if session is None:
                raise SessionNotFound(slot.auction_session_id)

        company = self._companies.get_company(request.company_id)
        decision = validate_bid(slot, session, company, request.amount)
        if not decision.accepted:
            logger.info(
                "Bid rejected",
                extra={
                    "slot_id": str(slot.slot_id),
                    "company_id": str(request.company_id),
                    "amount": str(request.amount),
                    "reason": decision.reason.value if decision.reason else None,
                },
            )
            return PlaceBidResult.rejected(decision)

        now = self._clock()
        bid = Bid(
            bid_id=uuid4(),
            slot_id=slot.slot_id,
            company_id=request.company_id,
            user_id=request.user_id,
            amount=request.amount,
            placed_at=now,
            status=BidStatus.ACTIVE,
            auction_session_id=slot.auction_session_id,
            bidder_info=dict(request.bidder_info),
        )

        changes = ChangeSet()
        changes.insert_bid(bid)

        previous: Optional[Bid] = None
        if slot.current_bid_id is not None:
            previous = self._store.get_bid(slot.current_bid_id)
            if previous is None:
                raise LedgerStoreError(f"Slot {slot.slot_id} points at a missing bid {slot.current_bid_id}")
            if previous.status == BidStatus.ACTIVE:
                changes.update_bid(previous.transition(BidStatus.OUTBID))

        changes.update_slot(
            slot.with_accepted_bid(bid_id=bid.bid_id, bidder_id=request.company_id, amount=request.amount, at=now)
        )

        self._dispatcher.stage_bid_placed(changes, slot, bid)
        if previous is not None and previous.user_id != request.user_id:
            self._dispatcher.stage_outbid(changes, slot, previous, request.amount)

        extended: Optional[AuctionSession] = None
        if session is not None:
            # A concurrent pause/end/extend invalidates this bid's validation.
            changes.guard_session(session)
            if self._controller is not None:
                extended = self._controller.stage_auto_extension(changes, session, now)

        self._store.commit(changes)

        logger.info(
            "Bid accepted",
            extra={
                "bid_id": str(bid.bid_id),
                "slot_id": str(slot.slot_id),
                "company_id": str(request.company_id),
                "amount": str(request.amount),
                "previous_bid_id": str(previous.bid_id) if previous else None,
                "auto_extended": extended is not None,
            },
        )
        return PlaceBidResult(
            success=True,
            bid=bid,
            previous_bid=previous,
            message=decision.message,
            session=extended or session,
            extended=extended is not None,
        )

    # Withdrawal and operator overrides

    def withdraw(self, bid_id: UUID) -> Bid:
        """
        Withdraw an ACTIVE bid.

        If it was the slot's current bid, the slot is re-pointed at the
        highest remaining bid in the same commit.

        Raises:
            BidNotFound, AlreadyTerminal
        """
        return self._retrying("withdraw", self._retire_once, bid_id, "withdrawn")

    def reject(self, bid_id: UUID) -> Bid:
        """Operator override: withdraw an ACTIVE bid on the bidder's behalf."""
        return self._retrying("reject", self._retire_once, bid_id, "rejected")

    def _retire_once(self, bid_id: UUID, action: str) -> Bid:
        bid = self._require_active(bid_id)
        slot = self._store.get_slot(bid.slot_id)
        if slot is None:
            raise SlotNotFound(bid.slot_id)

        changes = ChangeSet()
        withdrawn = bid.transition(BidStatus.WITHDRAWN)
        changes.update_bid(withdrawn)

        replacement: Optional[Bid] = None
        if slot.current_bid_id == bid.bid_id:
            replacement = stage_current_bid_recompute(changes, self._store, slot, bid)
        else:
            changes.guard_slot(slot)

        self._store.commit(changes)

        logger.info(
            "Bid %s",
            action,
            extra={
                "bid_id": str(bid.bid_id),
                "slot_id": str(slot.slot_id),
                "new_current_bid_id": str(replacement.bid_id) if replacement else None,
            },
        )
        return self._store.get_bid(bid.bid_id) or withdrawn

    def accept(self, bid_id: UUID) -> Bid:
        """
        Operator override: award the slot to an ACTIVE bid.

        The bid becomes WON, any other ACTIVE bid on the slot becomes OUTBID,
        and the slot becomes OCCUPIED by the bidder (leaving its session).
        """
        return self._retrying("accept", self._accept_once, bid_id)

    def _accept_once(self, bid_id: UUID) -> Bid:
        bid = self._require_active(bid_id)
        slot = self._store.get_slot(bid.slot_id)
        if slot is None:
            raise SlotNotFound(bid.slot_id)

        changes = ChangeSet()
        for other in self._store.list_bids(slot_id=slot.slot_id, statuses=[BidStatus.ACTIVE]):
            if other.bid_id != bid.bid_id:
                changes.update_bid(other.transition(BidStatus.OUTBID))

        won = bid.transition(BidStatus.WON)
        changes.update_bid(won)
        changes.update_slot(slot.occupied_by(bid_id=won.bid_id, bidder_id=won.company_id, amount=won.amount))

        self._store.commit(changes)

        logger.info(
            "Bid accepted by operator",
            extra={"bid_id": str(bid.bid_id), "slot_id": str(slot.slot_id), "amount": str(bid.amount)},
        )
        return self._store.get_bid(bid.bid_id) or won

    def _require_active(self, bid_id: UUID) -> Bid:
        bid = self._store.get_bid(bid_id)
        if bid is None:
            raise BidNotFound(bid_id)
        if bid.status != BidStatus.ACTIVE:
            raise AlreadyTerminal(bid_id, bid.status.value)
        return bid

    # Queries

    def bid_history(self, slot_id: UUID) -> List[Bid]:
        """All bids on a slot, newest first."""

        if self._store.get_slot(slot_id) is None:
            raise SlotNotFound(slot_id)
        return list(reversed(self._store.list_bids(slot_id=slot_id)))


__all__ = [
    "BidLedger",
    "PlaceBidRequest",
    "PlaceBidResult",
    "stage_current_bid_recompute",
    "stage_settlement",
    "stage_void_current_bid",
]
