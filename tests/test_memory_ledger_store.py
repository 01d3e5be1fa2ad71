"""
Tests for `repositories/memory_ledger_store.py`.

Covers contract rules:
- A commit applies every write or none of them.
- Updated rows get version + 1; a stale version raises ConcurrencyConflict.
- Read-guards fail a commit without writing the guarded row.
- Slots are numbered consecutively when provisioned.
- Readers never see a half-applied change set, even while a commit is in flight.
"""

from __future__ import annotations

import threading
from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from conftest import ACME_ID, ALICE, BOB, GLOBEX_ID
from domain.bid import Bid, BidStatus
from domain.errors import ConcurrencyConflict, LedgerStoreError
from domain.notification import Notification, NotificationType, RecipientScope
from domain.slot import Slot, SlotStatus
from repositories.ledger_store import ChangeSet
from repositories.memory_ledger_store import InMemoryLedgerStore
from services.auction_facade import AuctionFacade
from services.bid_ledger import PlaceBidRequest

NOW = datetime(2026, 3, 2, 12, 0, 0, tzinfo=timezone.utc)


def _new_bid(slot: Slot, amount: str = "1000") -> Bid:
    return Bid(
        bid_id=uuid4(),
        slot_id=slot.slot_id,
        company_id=ACME_ID,
        user_id=ALICE,
        amount=Decimal(amount),
        placed_at=NOW,
    )


def _notice(message: str = "Started") -> Notification:
    return Notification(
        notification_id=uuid4(),
        type=NotificationType.AUCTION_STARTING,
        recipient_scope=RecipientScope.ALL,
        message=message,
        created_at=NOW,
    )


def test_provision_slots_numbers_consecutively(store) -> None:
    first = store.provision_slots(2)
    second = store.provision_slots(2, reserve_price=Decimal("500"))

    assert [s.slot_number for s in first + second] == [1, 2, 3, 4]
    assert second[0].reserve_price == Decimal("500")
    assert [s.slot_number for s in store.list_slots()] == [1, 2, 3, 4]


def test_duplicate_slot_is_rejected(store) -> None:
    slot = store.provision_slots(1)[0]

    with pytest.raises(LedgerStoreError):
        store.add_slot(slot)


def test_commit_bumps_versions(store) -> None:
    slot = store.provision_slots(1)[0]
    bid = _new_bid(slot)

    changes = ChangeSet()
    changes.insert_bid(bid)
    changes.update_slot(slot.with_accepted_bid(bid_id=bid.bid_id, bidder_id=ACME_ID, amount=bid.amount, at=NOW))
    store.commit(changes)

    assert store.get_slot(slot.slot_id).version == 1
    assert store.get_bid(bid.bid_id).version == 0
    assert store.list_bids(slot_id=slot.slot_id) == [store.get_bid(bid.bid_id)]


def test_stale_update_raises_and_writes_nothing(store) -> None:
    slot = store.provision_slots(1)[0]
    winner = ChangeSet()
    winner.update_slot(slot.with_status(SlotStatus.RESERVED))
    store.commit(winner)

    bid = _new_bid(slot)
    loser = ChangeSet()
    loser.insert_bid(bid)
    loser.update_slot(slot.with_accepted_bid(bid_id=bid.bid_id, bidder_id=ACME_ID, amount=bid.amount, at=NOW))
    loser.add_notification(_notice())

    with pytest.raises(ConcurrencyConflict):
        store.commit(loser)

    assert store.get_bid(bid.bid_id) is None
    assert store.get_slot(slot.slot_id).status == SlotStatus.RESERVED
    assert store.list_notifications() == []


def test_guard_fails_commit_without_writing_guarded_row(store) -> None:
    slot = store.provision_slots(1)[0]
    store.commit(ChangeSet(slot_updates={slot.slot_id: slot.with_status(SlotStatus.RESERVED)}))

    changes = ChangeSet()
    changes.guard_slot(slot)
    changes.add_notification(_notice())

    with pytest.raises(ConcurrencyConflict):
        store.commit(changes)
    assert store.list_notifications() == []

    fresh = ChangeSet()
    fresh.guard_slot(store.get_slot(slot.slot_id))
    fresh.add_notification(_notice())
    store.commit(fresh)

    assert store.get_slot(slot.slot_id).version == 1
    assert len(store.list_notifications()) == 1


def test_update_of_missing_row_is_a_store_error(store) -> None:
    ghost = Slot(slot_id=uuid4(), slot_number=9)

    with pytest.raises(LedgerStoreError):
        store.commit(ChangeSet(slot_updates={ghost.slot_id: ghost}))


def test_bid_for_unknown_slot_is_a_store_error(store) -> None:
    ghost = Slot(slot_id=uuid4(), slot_number=9)

    changes = ChangeSet()
    changes.insert_bid(_new_bid(ghost))
    with pytest.raises(LedgerStoreError):
        store.commit(changes)


def test_empty_change_set_is_a_no_op(store) -> None:
    store.commit(ChangeSet())

    assert store.list_notifications() == []


def test_list_bids_filters(store) -> None:
    slot = store.provision_slots(1)[0]
    first, second = _new_bid(slot, "1000"), _new_bid(slot, "1100")
    changes = ChangeSet()
    changes.insert_bid(first)
    changes.insert_bid(replace(second, status=BidStatus.OUTBID))
    store.commit(changes)

    assert [b.bid_id for b in store.list_bids(slot_id=slot.slot_id)] == [first.bid_id, second.bid_id]
    assert [b.bid_id for b in store.list_bids(statuses=[BidStatus.OUTBID])] == [second.bid_id]
    assert store.list_bids(company_id=uuid4()) == []


# Snapshot reads


class _ObservedStore(InMemoryLedgerStore):
    """Calls `on_publish` while a commit holds its row locks, right before its snapshot goes live."""

    def __init__(self) -> None:
        super().__init__()
        self.on_publish = None

    def _publish(self, snapshot) -> None:
        if self.on_publish is not None:
            self.on_publish()
        super()._publish(snapshot)


def _place(facade, slot, amount, company_id=ACME_ID, user_id=ALICE):
    return facade.place_bid(
        PlaceBidRequest(slot_id=slot.slot_id, company_id=company_id, user_id=user_id, amount=Decimal(amount))
    )


def test_reader_during_commit_sees_previous_state(companies, clock, settings) -> None:
    store = _ObservedStore()
    facade = AuctionFacade(store, companies, settings=settings, clock=clock)
    slot = store.provision_slots(1, reserve_price=Decimal("1000"))[0]
    first = _place(facade, slot, "1000").bid

    seen = []

    def read():
        active = facade.list_bids(status=BidStatus.ACTIVE)
        seen.append(
            (
                [b.bid_id for b in active],
                facade.get_slot(slot.slot_id).current_bid,
                facade.get_bid(first.bid_id).status,
                len(facade.list_notifications()),
            )
        )

    store.on_publish = read
    second = _place(facade, slot, "1100", GLOBEX_ID, BOB).bid
    store.on_publish = None

    assert seen == [([first.bid_id], Decimal("1000"), BidStatus.ACTIVE, 1)]
    assert [b.bid_id for b in facade.list_bids(status=BidStatus.ACTIVE)] == [second.bid_id]
    assert facade.get_bid(first.bid_id).status == BidStatus.OUTBID
    assert facade.get_slot(slot.slot_id).current_bid == Decimal("1100")
    assert len(facade.list_notifications()) == 3


def test_concurrent_reader_never_sees_two_active_bids(companies, clock, settings) -> None:
    store = InMemoryLedgerStore()
    facade = AuctionFacade(store, companies, settings=settings, clock=clock)
    slot = store.provision_slots(1, reserve_price=Decimal("1000"))[0]
    _place(facade, slot, "1000")

    done = threading.Event()
    observed = []

    def reader():
        while True:
            finished = done.is_set()
            observed.append(len(store.list_bids(slot_id=slot.slot_id, statuses=[BidStatus.ACTIVE])))
            if finished:
                return

    thread = threading.Thread(target=reader)
    thread.start()
    try:
        bidders = [(GLOBEX_ID, BOB), (ACME_ID, ALICE)]
        for i in range(1, 51):
            company_id, user_id = bidders[i % 2]
            assert _place(facade, slot, str(1000 + i * 10), company_id, user_id).success
    finally:
        done.set()
        thread.join(timeout=10)

    assert observed
    assert max(observed) == 1
