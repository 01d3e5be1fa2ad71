"""
In-process Ledger Store.

Implements the same transaction contract as the Supabase-backed store so the
engine can run without a database (local development, tests, simulations):

- commit() takes a per-row lock for every row the change set touches, in a
  global sort order, verifies versions, then publishes all writes at once.
  Nothing is written if any version check fails.
- Two change sets that touch disjoint rows (e.g. bids on different slots)
  validate in parallel; only the final publication step is serialized.
- Committed state is an immutable snapshot. A commit builds the next
  snapshot from copies and swaps a single reference, so a reader that takes
  the snapshot once per call sees either all of a change set or none of it.
"""

from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple
from uuid import UUID, uuid4

from domain.auction_session import AuctionSession, SessionStatus
from domain.bid import Bid, BidStatus
from domain.errors import ConcurrencyConflict, LedgerStoreError
from domain.notification import Notification, NotificationType, RecipientScope
from domain.slot import Slot, SlotStatus
from repositories.ledger_store import BIDS, SESSIONS, SLOTS, ChangeSet, RowKey

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class _Snapshot:
    """One committed state of the store. Never mutated after it is published."""

    slots: Dict[UUID, Slot] = field(default_factory=dict)
    bids: Dict[UUID, Bid] = field(default_factory=dict)
    sessions: Dict[UUID, AuctionSession] = field(default_factory=dict)
    bids_by_slot: Dict[UUID, Tuple[UUID, ...]] = field(default_factory=dict)
    bid_order: Dict[UUID, int] = field(default_factory=dict)
    outbox: Tuple[Notification, ...] = ()


class InMemoryLedgerStore:
    def __init__(self) -> None:
        self._state = _Snapshot()

        self._registry_lock = threading.Lock()
        self._row_locks: Dict[RowKey, threading.Lock] = {}
        self._publish_lock = threading.Lock()
        self._sequence = itertools.count(1)

    # Provisioning (slots are created outside the auction engine)

    def add_slot(self, slot: Slot) -> Slot:
        with self._publish_lock:
            self._publish(self._with_slots(self._state, [slot]))
        return slot

    def provision_slots(self, count: int, reserve_price: Decimal = Decimal("0")) -> List[Slot]:
        """Create slots numbered after the current highest slot number."""

        with self._publish_lock:
            state = self._state
            start = max((s.slot_number for s in state.slots.values()), default=0) + 1
            created = [
                Slot(slot_id=uuid4(), slot_number=number, reserve_price=reserve_price)
                for number in range(start, start + count)
            ]
            self._publish(self._with_slots(state, created))
        return created

    @staticmethod
    def _with_slots(state: _Snapshot, new_slots: List[Slot]) -> _Snapshot:
        slots = dict(state.slots)
        bids_by_slot = dict(state.bids_by_slot)
        for slot in new_slots:
            if slot.slot_id in slots:
                raise LedgerStoreError(f"Slot already exists: {slot.slot_id}")
            slots[slot.slot_id] = slot
            bids_by_slot[slot.slot_id] = ()
        return replace(state, slots=slots, bids_by_slot=bids_by_slot)

    # Reads (each call works on one snapshot)

    def get_slot(self, slot_id: UUID) -> Optional[Slot]:
        return self._state.slots.get(slot_id)

    def list_slots(
        self,
        slot_ids: Optional[Iterable[UUID]] = None,
        statuses: Optional[Iterable[SlotStatus]] = None,
    ) -> List[Slot]:
        snapshot = self._state.slots
        if slot_ids is not None:
            slots = [snapshot[slot_id] for slot_id in slot_ids if slot_id in snapshot]
        else:
            slots = list(snapshot.values())
        if statuses is not None:
            wanted = set(statuses)
            slots = [s for s in slots if s.status in wanted]
        return sorted(slots, key=lambda s: s.slot_number)

    def get_bid(self, bid_id: UUID) -> Optional[Bid]:
        return self._state.bids.get(bid_id)

    def list_bids(
        self,
        slot_id: Optional[UUID] = None,
        statuses: Optional[Iterable[BidStatus]] = None,
        company_id: Optional[UUID] = None,
        session_id: Optional[UUID] = None,
    ) -> List[Bid]:
        state = self._state
        if slot_id is not None:
            bids = [state.bids[bid_id] for bid_id in state.bids_by_slot.get(slot_id, ())]
        else:
            bids = list(state.bids.values())

        if statuses is not None:
            wanted = set(statuses)
            bids = [b for b in bids if b.status in wanted]
        if company_id is not None:
            bids = [b for b in bids if b.company_id == company_id]
        if session_id is not None:
            bids = [b for b in bids if b.auction_session_id == session_id]

        return sorted(bids, key=lambda b: (b.placed_at, state.bid_order.get(b.bid_id, 0)))

    def get_session(self, session_id: UUID) -> Optional[AuctionSession]:
        return self._state.sessions.get(session_id)

    def list_sessions(self, statuses: Optional[Iterable[SessionStatus]] = None) -> List[AuctionSession]:
        sessions = list(self._state.sessions.values())
        if statuses is not None:
            wanted = set(statuses)
            sessions = [s for s in sessions if s.status in wanted]
        return sorted(sessions, key=lambda s: s.start_time, reverse=True)

    def list_notifications(
        self,
        session_id: Optional[UUID] = None,
        type: Optional[NotificationType] = None,
        recipient_scope: Optional[RecipientScope] = None,
        recipient_id: Optional[UUID] = None,
        limit: Optional[int] = None,
    ) -> List[Notification]:
        rows = list(self._state.outbox)
        if session_id is not None:
            rows = [n for n in rows if n.auction_session_id == session_id]
        if type is not None:
            rows = [n for n in rows if n.type == type]
        if recipient_scope is not None:
            rows = [n for n in rows if n.recipient_scope == recipient_scope]
        if recipient_id is not None:
            rows = [n for n in rows if n.recipient_id == recipient_id]
        if limit is not None:
            rows = rows[:limit]
        return rows

    # Writes

    def commit(self, changes: ChangeSet) -> None:
        if changes.is_empty:
            return

        locks = [self._lock_for(key) for key in changes.locked_keys()]
        for lock in locks:
            lock.acquire()
        try:
            self._check(self._state, changes)
            # Other commits may publish between the check and here, but never for rows we hold.
            with self._publish_lock:
                self._publish(self._next_snapshot(self._state, changes))
        finally:
            for lock in reversed(locks):
                lock.release()

    def _publish(self, snapshot: _Snapshot) -> None:
        self._state = snapshot

    def _lock_for(self, key: RowKey) -> threading.Lock:
        with self._registry_lock:
            lock = self._row_locks.get(key)
            if lock is None:
                lock = self._row_locks[key] = threading.Lock()
            return lock

    @staticmethod
    def _committed_version(state: _Snapshot, key: RowKey) -> Optional[int]:
        table, row_id = key
        row = {SLOTS: state.slots, BIDS: state.bids, SESSIONS: state.sessions}[table].get(row_id)
        return None if row is None else row.version

    def _check(self, state: _Snapshot, changes: ChangeSet) -> None:
        for key, expected in changes.expected_versions().items():
            committed = self._committed_version(state, key)
            if committed is None:
                raise LedgerStoreError(f"Row does not exist: {key[0]}/{key[1]}")
            if committed != expected:
                logger.debug(
                    "Version conflict",
                    extra={"table": key[0], "row_id": str(key[1]), "expected": expected, "committed": committed},
                )
                raise ConcurrencyConflict(
                    f"{key[0]} row {key[1]} changed (expected version {expected}, found {committed})"
                )

        for bid in changes.new_bids:
            if bid.bid_id in state.bids:
                raise LedgerStoreError(f"Bid already exists: {bid.bid_id}")
            if bid.slot_id not in state.slots:
                raise LedgerStoreError(f"Bid references unknown slot: {bid.slot_id}")
        for session in changes.new_sessions:
            if session.session_id in state.sessions:
                raise LedgerStoreError(f"Auction session already exists: {session.session_id}")

    def _next_snapshot(self, state: _Snapshot, changes: ChangeSet) -> _Snapshot:
        """Apply a checked change set to copies of `state`. Sequence numbers follow publication order."""

        slots = dict(state.slots)
        bids = dict(state.bids)
        sessions = dict(state.sessions)
        bids_by_slot = dict(state.bids_by_slot)
        bid_order = dict(state.bid_order)

        for session in changes.new_sessions:
            sessions[session.session_id] = replace(session, version=0)
        for bid in changes.new_bids:
            bid_order[bid.bid_id] = next(self._sequence)
            bids[bid.bid_id] = replace(bid, version=0)
            bids_by_slot[bid.slot_id] = bids_by_slot.get(bid.slot_id, ()) + (bid.bid_id,)

        for bid in changes.bid_updates.values():
            bids[bid.bid_id] = replace(bid, version=bid.version + 1)
        for slot in changes.slot_updates.values():
            slots[slot.slot_id] = replace(slot, version=slot.version + 1)
        for session in changes.session_updates.values():
            sessions[session.session_id] = replace(session, version=session.version + 1)

        outbox = state.outbox + tuple(
            replace(notification, sequence=next(self._sequence)) for notification in changes.notifications
        )

        return _Snapshot(
            slots=slots,
            bids=bids,
            sessions=sessions,
            bids_by_slot=bids_by_slot,
            bid_order=bid_order,
            outbox=outbox,
        )


__all__ = ["InMemoryLedgerStore"]
