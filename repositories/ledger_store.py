"""
Ledger Store interface (persistence).

The auction services never mutate stored rows directly. They read committed
snapshots, describe every write in a `ChangeSet`, and hand the change set to
`LedgerStore.commit`, which must apply it atomically:

- Every updated row (and every row registered as a read-guard) must still be
  at the version the service read. Otherwise the store raises
  ConcurrencyConflict and writes nothing.
- On success, updated rows are stored with version + 1, inserted rows with
  version 0, and notifications are appended to the outbox with increasing
  sequence numbers in the order they were added to the change set.

Readers never block: `get_*` / `list_*` return the latest committed state.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Protocol, Set, Tuple
from uuid import UUID

from domain.auction_session import AuctionSession, SessionStatus
from domain.bid import Bid, BidStatus
from domain.notification import Notification, NotificationType, RecipientScope
from domain.slot import Slot, SlotStatus

# (table, primary key). Sorting keys gives every committer the same lock order.
RowKey = Tuple[str, UUID]

SLOTS = "slots"
BIDS = "bids"
SESSIONS = "auction_sessions"


def slot_key(slot_id: UUID) -> RowKey:
    return (SLOTS, slot_id)


def bid_key(bid_id: UUID) -> RowKey:
    return (BIDS, bid_id)


def session_key(session_id: UUID) -> RowKey:
    return (SESSIONS, session_id)


@dataclass
class ChangeSet:
    """
    Unit of work for one atomic ledger operation.

    Updated entities carry the version they were read at; the store compares
    that against the committed version.
    """

    new_bids: List[Bid] = field(default_factory=list)
    new_sessions: List[AuctionSession] = field(default_factory=list)
    bid_updates: Dict[UUID, Bid] = field(default_factory=dict)
    slot_updates: Dict[UUID, Slot] = field(default_factory=dict)
    session_updates: Dict[UUID, AuctionSession] = field(default_factory=dict)
    guards: Dict[RowKey, int] = field(default_factory=dict)
    notifications: List[Notification] = field(default_factory=list)

    def insert_bid(self, bid: Bid) -> None:
        self.new_bids.append(bid)

    def insert_session(self, session: AuctionSession) -> None:
        self.new_sessions.append(session)

    def update_bid(self, bid: Bid) -> None:
        self.bid_updates[bid.bid_id] = bid

    def update_slot(self, slot: Slot) -> None:
        self.slot_updates[slot.slot_id] = slot

    def update_session(self, session: AuctionSession) -> None:
        self.session_updates[session.session_id] = session

    def guard_slot(self, slot: Slot) -> None:
        """Fail the commit if `slot` changed since it was read, without writing it."""
        self.guards[slot_key(slot.slot_id)] = slot.version

    def guard_session(self, session: AuctionSession) -> None:
        self.guards[session_key(session.session_id)] = session.version

    def add_notification(self, notification: Notification) -> None:
        self.notifications.append(notification)

    def pending_slot(self, slot: Slot) -> Slot:
        """The slot as this change set will leave it (for multi-step operations)."""
        return self.slot_updates.get(slot.slot_id, slot)

    def pending_bid(self, bid: Bid) -> Bid:
        return self.bid_updates.get(bid.bid_id, bid)

    def expected_versions(self) -> Dict[RowKey, int]:
        """Row key -> version that must still be committed for this change set to apply."""

        expected: Dict[RowKey, int] = dict(self.guards)
        for bid in self.bid_updates.values():
            expected[bid_key(bid.bid_id)] = bid.version
        for slot in self.slot_updates.values():
            expected[slot_key(slot.slot_id)] = slot.version
        for session in self.session_updates.values():
            expected[session_key(session.session_id)] = session.version
        return expected

    def locked_keys(self) -> List[RowKey]:
        """Rows a store must hold exclusively while applying this change set, in lock order."""

        keys: Set[RowKey] = set(self.expected_versions())
        for bid in self.new_bids:
            keys.add(bid_key(bid.bid_id))
            keys.add(slot_key(bid.slot_id))
        for session in self.new_sessions:
            keys.add(session_key(session.session_id))
        return sorted(keys, key=lambda key: (key[0], str(key[1])))

    @property
    def is_empty(self) -> bool:
        return not (
            self.new_bids
            or self.new_sessions
            or self.bid_updates
            or self.slot_updates
            or self.session_updates
            or self.notifications
        )


class LedgerStore(Protocol):
    """Transactional record storage for slots, bids, sessions, and the notification outbox."""

    def get_slot(self, slot_id: UUID) -> Optional[Slot]: ...

    def list_slots(
        self,
        slot_ids: Optional[Iterable[UUID]] = None,
        statuses: Optional[Iterable[SlotStatus]] = None,
    ) -> List[Slot]: ...

    def get_bid(self, bid_id: UUID) -> Optional[Bid]: ...

    def list_bids(
        self,
        slot_id: Optional[UUID] = None,
        statuses: Optional[Iterable[BidStatus]] = None,
        company_id: Optional[UUID] = None,
        session_id: Optional[UUID] = None,
    ) -> List[Bid]:
        """Bids matching every given filter, oldest first."""
        ...

    def get_session(self, session_id: UUID) -> Optional[AuctionSession]: ...

    def list_sessions(self, statuses: Optional[Iterable[SessionStatus]] = None) -> List[AuctionSession]: ...

    def list_notifications(
        self,
        session_id: Optional[UUID] = None,
        type: Optional[NotificationType] = None,
        recipient_scope: Optional[RecipientScope] = None,
        recipient_id: Optional[UUID] = None,
        limit: Optional[int] = None,
    ) -> List[Notification]:
        """Outbox rows in sequence order."""
        ...

    def commit(self, changes: ChangeSet) -> None: ...


__all__ = [
    "ChangeSet",
    "LedgerStore",
    "RowKey",
    "bid_key",
    "session_key",
    "slot_key",
]
