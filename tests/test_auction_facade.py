"""
Tests for `services/auction_facade.py`.

Covers contract rules:
- Query projections (slots, bids, winners) read committed state.
- Statistics: session counts per status, won revenue, average bid.
- build_default_facade wires the in-memory backend from settings, seeding it
  from AUCTION_SEED_FILE when set.
"""

from __future__ import annotations

import json
from decimal import Decimal
from uuid import uuid4

import pytest

from conftest import ACME_ID, ALICE, BOB, GLOBEX_ID
from domain.bid import BidStatus, RejectionReason
from domain.errors import BidNotFound, SessionNotFound, SlotNotFound
from domain.notification import NotificationType, RecipientScope
from domain.slot import SlotStatus
from repositories.memory_ledger_store import InMemoryLedgerStore
from services.auction_facade import build_default_facade
from services.bid_ledger import PlaceBidRequest
from settings import AuctionSettings


def _bid(facade, slot_id, amount, company_id=ACME_ID, user_id=ALICE):
    return facade.place_bid(
        PlaceBidRequest(slot_id=slot_id, company_id=company_id, user_id=user_id, amount=Decimal(amount))
    )


def test_empty_statistics(facade) -> None:
    stats = facade.statistics()

    assert stats.total_sessions == 0
    assert set(stats.sessions_by_status) == {"SCHEDULED", "ACTIVE", "PAUSED", "COMPLETED", "CANCELLED"}
    assert stats.total_bids == 0
    assert stats.total_revenue == Decimal("0")
    assert stats.average_bid == Decimal("0")


def test_statistics_after_a_session(facade, slots, make_session) -> None:
    session = make_session(slot_ids=[slots[0].slot_id, slots[1].slot_id])
    make_session(start=False, name="Later")
    _bid(facade, slots[0].slot_id, "1000")
    _bid(facade, slots[0].slot_id, "1100", GLOBEX_ID, BOB)
    _bid(facade, slots[1].slot_id, "2000")
    facade.end_session(session.session_id)

    stats = facade.statistics()

    assert stats.total_sessions == 2
    assert stats.sessions_by_status["COMPLETED"] == 1
    assert stats.sessions_by_status["SCHEDULED"] == 1
    assert stats.total_bids == 3
    assert stats.won_bids == 2
    assert stats.total_revenue == Decimal("3100")
    assert stats.average_bid == Decimal("1366.67")


def test_winners_sorted_by_slot_number(facade, slots, make_session) -> None:
    session = make_session(slot_ids=[s.slot_id for s in slots])
    _bid(facade, slots[2].slot_id, "3000")
    _bid(facade, slots[0].slot_id, "1000", GLOBEX_ID, BOB)
    facade.end_session(session.session_id)

    winners = facade.winners(session.session_id)

    assert [w.slot_number for w in winners] == [1, 3]
    assert [w.company_id for w in winners] == [GLOBEX_ID, ACME_ID]

    with pytest.raises(SessionNotFound):
        facade.winners(uuid4())


def test_list_bids_newest_first(facade, slots) -> None:
    first = _bid(facade, slots[0].slot_id, "1000").bid
    second = _bid(facade, slots[1].slot_id, "1000", GLOBEX_ID, BOB).bid

    assert [b.bid_id for b in facade.list_bids()] == [second.bid_id, first.bid_id]
    assert [b.bid_id for b in facade.list_bids(status=BidStatus.ACTIVE, company_id=ACME_ID)] == [first.bid_id]


def test_slot_queries(facade, slots) -> None:
    _bid(facade, slots[0].slot_id, "1000")

    assert [s.slot_id for s in facade.list_slots(SlotStatus.AUCTION_ACTIVE)] == [slots[0].slot_id]
    assert len(facade.list_slots(SlotStatus.AVAILABLE)) == 2

    with pytest.raises(SlotNotFound):
        facade.get_slot(uuid4())
    with pytest.raises(SlotNotFound):
        facade.bid_history(uuid4())
    with pytest.raises(BidNotFound):
        facade.get_bid(uuid4())


def test_publish_notification_requires_known_session(facade) -> None:
    with pytest.raises(SessionNotFound):
        facade.publish_notification(uuid4(), NotificationType.AUCTION_ENDING, RecipientScope.ALL, "Soon")


def test_build_default_facade_memory_backend() -> None:
    facade = build_default_facade(AuctionSettings(ledger_backend="memory"))

    assert isinstance(facade.store, InMemoryLedgerStore)
    assert facade.list_slots() == []


def test_build_default_facade_loads_seed_file(tmp_path) -> None:
    seed = tmp_path / "seed.json"
    seed.write_text(
        json.dumps(
            {
                "slots": [{"slot_number": 1, "reserve_price": "1000"}, {"slot_number": 2}],
                "companies": [
                    {"company_id": str(ACME_ID), "name": "Acme Outdoor", "max_bid_amount": "5000"},
                    {"company_id": str(GLOBEX_ID), "name": "Globex Media", "auction_eligible": False},
                ],
            }
        )
    )

    facade = build_default_facade(AuctionSettings(ledger_backend="memory", seed_file=str(seed)))

    slots = facade.list_slots()
    assert [(s.slot_number, s.reserve_price) for s in slots] == [(1, Decimal("1000")), (2, Decimal("0"))]
    assert _bid(facade, slots[0].slot_id, "1000").success
    assert _bid(facade, slots[1].slot_id, "100", GLOBEX_ID, BOB).reason == RejectionReason.BIDDER_INELIGIBLE


def test_missing_seed_file_fails_at_startup(tmp_path) -> None:
    with pytest.raises(RuntimeError) as excinfo:
        build_default_facade(AuctionSettings(ledger_backend="memory", seed_file=str(tmp_path / "nope.json")))

    assert "AUCTION_SEED_FILE" in str(excinfo.value)
