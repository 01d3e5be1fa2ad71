"""
Tests for `repositories/supabase_ledger_store.py` against a fake Supabase client.

Covers contract rules:
- Change sets are shipped as one apply_auction_changeset() payload.
- VERSION_CONFLICT from the function surfaces as ConcurrencyConflict.
- Any other failure surfaces as LedgerStoreError.
- A successful result wrapped in APIError is treated as success.
- Rows map back to UTC-aware domain objects.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
from postgrest.exceptions import APIError

from conftest import ACME_ID, ALICE
from domain.bid import Bid, BidStatus
from domain.errors import ConcurrencyConflict, LedgerStoreError
from domain.slot import Slot, SlotStatus
from repositories.ledger_store import ChangeSet
from repositories.supabase_ledger_store import SupabaseLedgerStore, changeset_to_payload

NOW = datetime(2026, 3, 2, 12, 0, 0, tzinfo=timezone.utc)


class _Response:
    def __init__(self, data=None, error=None):
        self.data = data
        self.error = error


class _Query:
    """Records the builder calls made on one table and returns canned rows."""

    def __init__(self, rows):
        self.rows = rows
        self.calls = []

    def __getattr__(self, name):
        def _record(*args, **kwargs):
            self.calls.append((name, args, kwargs))
            return self

        return _record

    def execute(self):
        return _Response(data=self.rows)


class _RPC:
    def __init__(self, outcome):
        self.outcome = outcome

    def execute(self):
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return _Response(data=self.outcome)


class FakeClient:
    def __init__(self, rows=None, rpc_outcome=None):
        self.rows = rows or {}
        self.rpc_outcome = rpc_outcome if rpc_outcome is not None else {"success": True}
        self.queries = {}
        self.rpc_calls = []

    def table(self, name):
        query = _Query(self.rows.get(name, []))
        self.queries[name] = query
        return query

    def rpc(self, name, params):
        self.rpc_calls.append((name, params))
        return _RPC(self.rpc_outcome)


def _slot() -> Slot:
    return Slot(slot_id=uuid4(), slot_number=3, reserve_price=Decimal("1000"), version=4)


def _changes() -> ChangeSet:
    slot = _slot()
    bid = Bid(
        bid_id=uuid4(),
        slot_id=slot.slot_id,
        company_id=ACME_ID,
        user_id=ALICE,
        amount=Decimal("1200.50"),
        placed_at=NOW,
    )
    changes = ChangeSet()
    changes.insert_bid(bid)
    changes.update_slot(slot.with_accepted_bid(bid_id=bid.bid_id, bidder_id=ACME_ID, amount=bid.amount, at=NOW))
    return changes


def test_payload_carries_versions_and_rows() -> None:
    changes = _changes()
    slot = next(iter(changes.slot_updates.values()))

    payload = changeset_to_payload(changes)

    assert payload["expected"] == [{"table": "slots", "id": str(slot.slot_id), "version": 4}]
    [bid_row] = payload["insert_bids"]
    assert bid_row["amount"] == "1200.50"
    assert bid_row["status"] == "ACTIVE"
    assert bid_row["placed_at_utc"] == "2026-03-02T12:00:00+00:00"
    [slot_row] = payload["update_slots"]
    assert slot_row["status"] == "AUCTION_ACTIVE"
    assert slot_row["current_bid"] == "1200.50"
    assert payload["notifications"] == []


def test_commit_sends_single_rpc() -> None:
    client = FakeClient()
    store = SupabaseLedgerStore(client)

    store.commit(_changes())

    [(name, params)] = client.rpc_calls
    assert name == "apply_auction_changeset"
    assert set(params) == {"p_changes"}


def test_empty_change_set_skips_rpc() -> None:
    client = FakeClient()

    SupabaseLedgerStore(client).commit(ChangeSet())

    assert client.rpc_calls == []


def test_version_conflict_raises_concurrency_conflict() -> None:
    client = FakeClient(rpc_outcome={"success": False, "error": "VERSION_CONFLICT", "message": "slots row changed"})

    with pytest.raises(ConcurrencyConflict):
        SupabaseLedgerStore(client).commit(_changes())


def test_other_rejection_raises_store_error() -> None:
    client = FakeClient(rpc_outcome={"success": False, "error": "ROW_NOT_FOUND", "message": "missing row"})

    with pytest.raises(LedgerStoreError) as excinfo:
        SupabaseLedgerStore(client).commit(_changes())

    assert excinfo.value.code == "ROW_NOT_FOUND"


def test_success_wrapped_in_api_error_is_accepted() -> None:
    client = FakeClient(rpc_outcome=APIError({"success": True}))

    SupabaseLedgerStore(client).commit(_changes())


def test_conflict_wrapped_in_api_error() -> None:
    client = FakeClient(rpc_outcome=APIError({"success": False, "error": "VERSION_CONFLICT", "message": "stale"}))

    with pytest.raises(ConcurrencyConflict):
        SupabaseLedgerStore(client).commit(_changes())


def test_unparseable_api_error_is_store_error() -> None:
    client = FakeClient(rpc_outcome=APIError({"message": "connection reset", "code": "500"}))

    with pytest.raises(LedgerStoreError):
        SupabaseLedgerStore(client).commit(_changes())


def test_get_slot_maps_row() -> None:
    slot_id = uuid4()
    client = FakeClient(
        rows={
            "slots": [
                {
                    "slot_id": str(slot_id),
                    "slot_number": 2,
                    "reserve_price": "1000.00",
                    "status": "AUCTION_ACTIVE",
                    "current_bid": "1500.00",
                    "current_bidder_id": str(ACME_ID),
                    "current_bid_id": str(uuid4()),
                    "total_bids": 3,
                    "last_bid_time_utc": "2026-03-02T11:59:00Z",
                    "auction_session_id": None,
                    "version": 7,
                }
            ]
        }
    )

    slot = SupabaseLedgerStore(client).get_slot(slot_id)

    assert slot.status == SlotStatus.AUCTION_ACTIVE
    assert slot.current_bid == Decimal("1500.00")
    assert slot.last_bid_time == datetime(2026, 3, 2, 11, 59, 0, tzinfo=timezone.utc)
    assert slot.version == 7
    assert ("eq", ("slot_id", str(slot_id)), {}) in client.queries["slots"].calls


def test_list_bids_filters_and_orders() -> None:
    slot_id = uuid4()
    client = FakeClient(rows={"bids": []})

    SupabaseLedgerStore(client).list_bids(slot_id=slot_id, statuses=[BidStatus.ACTIVE, BidStatus.OUTBID])

    calls = client.queries["bids"].calls
    assert ("eq", ("slot_id", str(slot_id)), {}) in calls
    assert ("in_", ("status", ["ACTIVE", "OUTBID"]), {}) in calls
    assert ("order", ("placed_at_utc",), {}) in calls
    assert ("order", ("bid_seq",), {}) in calls


def test_failed_read_raises_store_error() -> None:
    class ErrorQuery(_Query):
        def execute(self):
            return _Response(error="permission denied")

    class ErrorClient(FakeClient):
        def table(self, name):
            return ErrorQuery([])

    with pytest.raises(LedgerStoreError):
        SupabaseLedgerStore(ErrorClient()).get_bid(uuid4())
