"""
Auction session controller.

Drives the session state machine and is the only writer of session fields
and of Slot.status / Slot.auction_session_id. Every transition is a single
change set: the session row and all of its bound slots commit together, or
nothing commits.

- create_session / bind_slots / update_session: SCHEDULED sessions, slot binding
- start:  SCHEDULED -> ACTIVE, bound slots become AUCTION_ACTIVE
- pause / resume: ACTIVE <-> PAUSED
- end:    ACTIVE|PAUSED -> COMPLETED, winners resolved per bound slot
- extend: ACTIVE -> ACTIVE, bounded by max_extensions
- cancel: live -> CANCELLED, bound slots released without winners

Time-based effects are never driven by a wall-clock poller; an external
scheduler calls these operations (and notify_ending) explicitly.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence, Tuple
from uuid import UUID, uuid4

from domain.auction_session import (
    DEFAULT_BID_INCREMENT,
    DEFAULT_EXTEND_DURATION_SECONDS,
    DEFAULT_MAX_EXTENSIONS,
    MIN_EXTEND_DURATION_SECONDS,
    AuctionSession,
    SessionStatus,
)
from domain.bid import Bid
from domain.errors import (
    InvalidSessionWindow,
    SessionNotFound,
    SlotNotFound,
    SlotUnavailable,
    StateConflictError,
)
from domain.slot import ZERO, Slot, SlotStatus
from domain.time import Clock, require_utc_timestamp, utc_now
from repositories.ledger_store import ChangeSet, LedgerStore
from services.bid_ledger import stage_settlement, stage_void_current_bid
from services.commit_retry import run_with_commit_retry
from services.notification_dispatcher import NotificationDispatcher

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CreateSessionRequest:
    """
    Request to schedule a new auction session.
    """
    name: str
    start_time: datetime
    end_time: datetime
    description: Optional[str] = None
    bid_increment: Decimal = DEFAULT_BID_INCREMENT
    reserve_price: Optional[Decimal] = None
    auto_extend: bool = False
    extend_duration_seconds: int = DEFAULT_EXTEND_DURATION_SECONDS
    max_extensions: int = DEFAULT_MAX_EXTENSIONS
    slot_ids: Tuple[UUID, ...] = ()


@dataclass(frozen=True, slots=True)
class UpdateSessionRequest:
    """
    Changes to a SCHEDULED session. A field left as None keeps its current
    value; an empty description clears it, as does clear_reserve_price.
    """
    name: Optional[str] = None
    description: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    bid_increment: Optional[Decimal] = None
    reserve_price: Optional[Decimal] = None
    clear_reserve_price: bool = False
    auto_extend: Optional[bool] = None
    extend_duration_seconds: Optional[int] = None
    max_extensions: Optional[int] = None


def _pick(value, current):
    return current if value is None else value


@dataclass(frozen=True, slots=True)
class SessionWinner:
    """Winning bid for one slot of a completed session."""
    slot_id: UUID
    slot_number: int
    bid_id: UUID
    company_id: UUID
    user_id: UUID
    amount: Decimal


@dataclass(frozen=True, slots=True)
class SessionOutcome:
    """
    Result of ending a session.

    winners: one entry per slot that closed with a winning bid
    unsold_slot_ids: slots that closed without a qualifying bid (now AVAILABLE)
    """
    session: AuctionSession
    winners: List[SessionWinner]
    unsold_slot_ids: List[UUID]


def _winner(slot: Slot, bid: Bid) -> SessionWinner:
    return SessionWinner(
        slot_id=slot.slot_id,
        slot_number=slot.slot_number,
        bid_id=bid.bid_id,
        company_id=bid.company_id,
        user_id=bid.user_id,
        amount=bid.amount,
    )


class SessionController:
    def __init__(
        self,
        store: LedgerStore,
        dispatcher: NotificationDispatcher,
        *,
        clock: Clock = utc_now,
        max_commit_attempts: int = 5,
        auto_extend_window: timedelta = timedelta(seconds=300),
    ):
        self._store = store
        self._dispatcher = dispatcher
        self._clock = clock
        self._max_commit_attempts = max_commit_attempts
        self._auto_extend_window = auto_extend_window

    def _retrying(self, operation: str, fn, *args):
        return run_with_commit_retry(operation, fn, *args, max_attempts=self._max_commit_attempts, log=logger)

    def _require_session(self, session_id: UUID) -> AuctionSession:
        session = self._store.get_session(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session

    def _bound_slots(self, session: AuctionSession) -> List[Slot]:
        """Slots listed on the session that are still bound to it (an operator accept unbinds a slot)."""

        return [
            slot
            for slot in self._store.list_slots(slot_ids=session.slot_ids)
            if slot.auction_session_id == session.session_id
        ]

    def _log_transition(self, message: str, before: AuctionSession, after: AuctionSession, **extra) -> None:
        logger.info(
            message,
            extra={
                "session_id": str(after.session_id),
                "from_status": before.status.value,
                "to_status": after.status.value,
                **extra,
            },
        )

    # Creation and slot binding

    def create_session(self, request: CreateSessionRequest) -> AuctionSession:
        """
        Schedule a new session, optionally binding slots to it.

        Raises:
            InvalidSessionWindow for bad times or settings
            SlotNotFound / SlotUnavailable for slots that cannot be bound
        """
        self._validate_request(request)
        return self._retrying("create_session", self._create_once, request)

    def _validate_request(self, request: CreateSessionRequest, *, check_start: bool = True) -> None:
        try:
            require_utc_timestamp("start_time", request.start_time)
            require_utc_timestamp("end_time", request.end_time)
        except ValueError as e:
            raise InvalidSessionWindow(str(e)) from e

        if not request.name or not request.name.strip():
            raise InvalidSessionWindow("Session name must not be empty")
        if request.end_time <= request.start_time:
            raise InvalidSessionWindow("End time must be after start time")
        if check_start and request.start_time < self._clock():
            raise InvalidSessionWindow("Start time cannot be in the past")
        if request.bid_increment <= ZERO:
            raise InvalidSessionWindow("Bid increment must be greater than 0")
        if request.reserve_price is not None and request.reserve_price < ZERO:
            raise InvalidSessionWindow("Reserve price must not be negative")
        if request.extend_duration_seconds < MIN_EXTEND_DURATION_SECONDS:
            raise InvalidSessionWindow(f"Extend duration must be at least {MIN_EXTEND_DURATION_SECONDS} seconds")
        if request.max_extensions < 0:
            raise InvalidSessionWindow("Max extensions must not be negative")
        if len(set(request.slot_ids)) != len(request.slot_ids):
            raise InvalidSessionWindow("Slot ids must not contain duplicates")

    def _create_once(self, request: CreateSessionRequest) -> AuctionSession:
        session = AuctionSession(
            session_id=uuid4(),
            name=request.name.strip(),
            description=request.description,
            start_time=request.start_time,
            end_time=request.end_time,
            status=SessionStatus.SCHEDULED,
            bid_increment=request.bid_increment,
            reserve_price=request.reserve_price,
            auto_extend=request.auto_extend,
            extend_duration_seconds=request.extend_duration_seconds,
            max_extensions=request.max_extensions,
            slot_ids=tuple(request.slot_ids),
            created_at=self._clock(),
        )

        changes = ChangeSet()
        changes.insert_session(session)
        self._stage_binding(changes, session.session_id, request.slot_ids)
        self._store.commit(changes)

        logger.info(
            "Auction session created",
            extra={"session_id": str(session.session_id), "name": session.name, "slot_count": len(session.slot_ids)},
        )
        return self._store.get_session(session.session_id) or session

    def bind_slots(self, session_id: UUID, slot_ids: Sequence[UUID]) -> AuctionSession:
        """Bind more slots to a SCHEDULED session."""
        return self._retrying("bind_slots", self._bind_once, session_id, tuple(slot_ids))

    def _bind_once(self, session_id: UUID, slot_ids: Tuple[UUID, ...]) -> AuctionSession:
        session = self._require_session(session_id)
        new_ids = tuple(slot_id for slot_id in dict.fromkeys(slot_ids) if slot_id not in session.slot_ids)
        updated = session.with_slots(session.slot_ids + new_ids)

        changes = ChangeSet()
        changes.update_session(updated)
        self._stage_binding(changes, session_id, new_ids)
        self._store.commit(changes)

        logger.info("Slots bound to auction session", extra={"session_id": str(session_id), "slot_count": len(new_ids)})
        return self._require_session(session_id)

    def update_session(self, session_id: UUID, request: UpdateSessionRequest) -> AuctionSession:
        """
        Edit the settings of a SCHEDULED session.

        The merged settings go through the same checks as create_session; a
        new start_time must not be in the past.

        Raises:
            InvalidSessionTransition once the session has left SCHEDULED
            InvalidSessionWindow for bad times or settings
        """
        return self._retrying("update_session", self._update_once, session_id, request)

    def _update_once(self, session_id: UUID, request: UpdateSessionRequest) -> AuctionSession:
        session = self._require_session(session_id)
        session.require_editable()

        if request.description is None:
            description = session.description
        else:
            description = request.description.strip() or None
        reserve_price = None if request.clear_reserve_price else _pick(request.reserve_price, session.reserve_price)

        merged = CreateSessionRequest(
            name=_pick(request.name, session.name),
            description=description,
            start_time=_pick(request.start_time, session.start_time),
            end_time=_pick(request.end_time, session.end_time),
            bid_increment=_pick(request.bid_increment, session.bid_increment),
            reserve_price=reserve_price,
            auto_extend=_pick(request.auto_extend, session.auto_extend),
            extend_duration_seconds=_pick(request.extend_duration_seconds, session.extend_duration_seconds),
            max_extensions=_pick(request.max_extensions, session.max_extensions),
        )
        self._validate_request(merged, check_start=request.start_time is not None)

        updated = session.edited(
            name=merged.name.strip(),
            description=merged.description,
            start_time=merged.start_time,
            end_time=merged.end_time,
            bid_increment=merged.bid_increment,
            reserve_price=merged.reserve_price,
            auto_extend=merged.auto_extend,
            extend_duration_seconds=merged.extend_duration_seconds,
            max_extensions=merged.max_extensions,
        )

        changes = ChangeSet()
        changes.update_session(updated)
        self._store.commit(changes)

        logger.info(
            "Auction session updated",
            extra={
                "session_id": str(session_id),
                "start_time": updated.start_time.isoformat(),
                "end_time": updated.end_time.isoformat(),
            },
        )
        return self._require_session(session_id)

    def _stage_binding(self, changes: ChangeSet, session_id: UUID, slot_ids: Iterable[UUID]) -> None:
        for slot_id in slot_ids:
            slot = self._store.get_slot(slot_id)
            if slot is None:
                raise SlotNotFound(slot_id)
            if slot.auction_session_id is not None:
                raise SlotUnavailable(f"Slot {slot.slot_number} is already bound to auction session {slot.auction_session_id}")
            if slot.status != SlotStatus.AVAILABLE or slot.has_current_bid:
                raise SlotUnavailable(f"Slot {slot.slot_number} is {slot.status.value} and cannot join an auction session")
            changes.update_slot(slot.bound_to(session_id))

    # Transitions

    def start(self, session_id: UUID) -> AuctionSession:
        return self._retrying("start", self._start_once, session_id)

    def _start_once(self, session_id: UUID) -> AuctionSession:
        session = self._require_session(session_id)
        started = session.started(self._clock())

        changes = ChangeSet()
        changes.update_session(started)
        for slot in self._bound_slots(session):
            changes.update_slot(slot.with_status(SlotStatus.AUCTION_ACTIVE))
        self._dispatcher.stage_session_started(changes, started)
        self._store.commit(changes)

        self._log_transition("Auction session started", session, started)
        return self._require_session(session_id)

    def pause(self, session_id: UUID) -> AuctionSession:
        return self._retrying("pause", self._simple_transition_once, session_id, "pause")

    def resume(self, session_id: UUID) -> AuctionSession:
        return self._retrying("resume", self._simple_transition_once, session_id, "resume")

    def _simple_transition_once(self, session_id: UUID, action: str) -> AuctionSession:
        session = self._require_session(session_id)
        updated = session.paused() if action == "pause" else session.resumed()

        changes = ChangeSet()
        changes.update_session(updated)
        self._store.commit(changes)

        self._log_transition(f"Auction session {action}d", session, updated)
        return self._require_session(session_id)

    def end(self, session_id: UUID) -> SessionOutcome:
        """
        Complete the session and resolve every bound slot.

        A slot with a winning bid becomes OCCUPIED by the winner; a slot with
        none goes back to AVAILABLE with a zero bid. Both leave the session.
        """
        return self._retrying("end", self._end_once, session_id)

    def _end_once(self, session_id: UUID) -> SessionOutcome:
        session = self._require_session(session_id)
        completed = session.completed(self._clock())

        changes = ChangeSet()
        changes.update_session(completed)

        winners: List[SessionWinner] = []
        unsold: List[UUID] = []
        won_slots: List[Tuple[Slot, Bid]] = []
        for slot in self._bound_slots(session):
            winning_bid = stage_settlement(changes, self._store, slot)
            if winning_bid is None:
                changes.update_slot(slot.released())
                unsold.append(slot.slot_id)
                continue
            changes.update_slot(
                slot.occupied_by(bid_id=winning_bid.bid_id, bidder_id=winning_bid.company_id, amount=winning_bid.amount)
            )
            winners.append(_winner(slot, winning_bid))
            won_slots.append((slot, winning_bid))

        self._dispatcher.stage_session_completed(changes, completed, len(winners))
        for slot, winning_bid in won_slots:
            self._dispatcher.stage_slot_won(changes, completed, slot, winning_bid)
        self._store.commit(changes)

        self._log_transition(
            "Auction session ended", session, completed, winner_count=len(winners), unsold_count=len(unsold)
        )
        return SessionOutcome(session=self._require_session(session_id), winners=winners, unsold_slot_ids=unsold)

    def extend(self, session_id: UUID, duration_seconds: Optional[int] = None) -> AuctionSession:
        """
        Push the session's end time back.

        Raises:
            InvalidSessionTransition unless ACTIVE
            ExtensionLimitReached once max_extensions is used up (end_time unchanged)
        """
        if duration_seconds is not None and duration_seconds <= 0:
            raise InvalidSessionWindow("Extension duration must be greater than 0 seconds")
        return self._retrying("extend", self._extend_once, session_id, duration_seconds)

    def _extend_once(self, session_id: UUID, duration_seconds: Optional[int]) -> AuctionSession:
        session = self._require_session(session_id)
        extended = session.extended(duration_seconds)

        changes = ChangeSet()
        changes.update_session(extended)
        seconds = duration_seconds if duration_seconds is not None else session.extend_duration_seconds
        self._dispatcher.stage_session_extended(changes, extended, seconds)
        self._store.commit(changes)

        self._log_transition(
            "Auction session extended",
            session,
            extended,
            extensions_used=extended.extensions_used,
            end_time=extended.end_time.isoformat(),
        )
        return self._require_session(session_id)

    def stage_auto_extension(
        self, changes: ChangeSet, session: AuctionSession, at: datetime
    ) -> Optional[AuctionSession]:
        """
        Extend `session` inside `changes` when a bid at `at` lands in the closing window.

        Uses the same rule as extend(). Once the ceiling is reached the bid
        still goes through and the session keeps its end time.
        """

        if not session.auto_extend or not session.accepts_bids:
            return None
        if session.time_remaining(at) > self._auto_extend_window:
            return None
        if session.extensions_remaining <= 0:
            logger.info(
                "Auto-extension skipped, extension limit reached",
                extra={"session_id": str(session.session_id), "extensions_used": session.extensions_used},
            )
            return None

        extended = session.extended()
        changes.update_session(extended)
        self._dispatcher.stage_session_extended(changes, extended, session.extend_duration_seconds)
        logger.info(
            "Auction session auto-extended",
            extra={
                "session_id": str(session.session_id),
                "extensions_used": extended.extensions_used,
                "end_time": extended.end_time.isoformat(),
            },
        )
        return extended

    def cancel(self, session_id: UUID) -> AuctionSession:
        """
        Cancel a live session.

        Bound slots go back to AVAILABLE without resolving winners; their
        current ACTIVE bids are withdrawn.
        """
        return self._retrying("cancel", self._cancel_once, session_id)

    def _cancel_once(self, session_id: UUID) -> AuctionSession:
        session = self._require_session(session_id)
        cancelled = session.cancelled(self._clock())

        changes = ChangeSet()
        changes.update_session(cancelled)
        for slot in self._bound_slots(session):
            stage_void_current_bid(changes, self._store, slot)
            changes.update_slot(slot.released())
        self._store.commit(changes)

        self._log_transition("Auction session cancelled", session, cancelled)
        return self._require_session(session_id)

    def notify_ending(self, session_id: UUID) -> AuctionSession:
        """Broadcast an URGENT AUCTION_ENDING notice for an ACTIVE session."""
        return self._retrying("notify_ending", self._notify_ending_once, session_id)

    def _notify_ending_once(self, session_id: UUID) -> AuctionSession:
        session = self._require_session(session_id)
        if session.status != SessionStatus.ACTIVE:
            raise StateConflictError(
                f"Auction session is {session.status.value}; only ACTIVE sessions can announce their ending"
            )

        changes = ChangeSet()
        changes.guard_session(session)
        self._dispatcher.stage_session_ending(changes, session)
        self._store.commit(changes)

        logger.info("Auction ending announced", extra={"session_id": str(session_id)})
        return session

    # Queries

    def get_session(self, session_id: UUID) -> AuctionSession:
        return self._require_session(session_id)

    def list_sessions(self, status: Optional[SessionStatus] = None) -> List[AuctionSession]:
        return self._store.list_sessions(statuses=[status] if status is not None else None)


__all__ = [
    "CreateSessionRequest",
    "SessionController",
    "SessionOutcome",
    "SessionWinner",
    "UpdateSessionRequest",
]
