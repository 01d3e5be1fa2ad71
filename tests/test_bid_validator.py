"""
Tests for `services/bid_validator.py`.

Covers contract rules:
- Rules run in order; the first failure wins.
- Reserve is checked before the increment rule.
- A session's reserve price overrides the slot's.
- BidTooLow and BelowReserve report the minimum acceptable amount.
- Validation is pure: the same inputs give the same decision.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import UUID

import pytest

from domain.auction_session import AuctionSession, SessionStatus
from domain.bid import RejectionReason
from domain.company import Company
from domain.slot import Slot, SlotStatus
from services.bid_validator import effective_reserve, minimum_next_bid, validate_bid

NOW = datetime(2026, 3, 2, 12, 0, 0, tzinfo=timezone.utc)
SLOT_ID = UUID("00000000-0000-0000-0000-000000000101")
SESSION_ID = UUID("00000000-0000-0000-0000-000000000501")
HOLDER_ID = UUID("00000000-0000-0000-0000-000000000302")
HOLDER_BID_ID = UUID("00000000-0000-0000-0000-000000000202")

COMPANY = Company(company_id=UUID("00000000-0000-0000-0000-000000000301"), name="Acme")


def _slot(**overrides) -> Slot:
    fields = dict(slot_id=SLOT_ID, slot_number=1, reserve_price=Decimal("1000"))
    fields.update(overrides)
    return Slot(**fields)


def _held_slot(amount: str, **overrides) -> Slot:
    return _slot(
        status=SlotStatus.AUCTION_ACTIVE,
        current_bid=Decimal(amount),
        current_bidder_id=HOLDER_ID,
        current_bid_id=HOLDER_BID_ID,
        **overrides,
    )


def _session(**overrides) -> AuctionSession:
    fields = dict(
        session_id=SESSION_ID,
        name="Prime time",
        start_time=NOW,
        end_time=NOW + timedelta(hours=2),
        status=SessionStatus.ACTIVE,
        bid_increment=Decimal("100"),
    )
    fields.update(overrides)
    return AuctionSession(**fields)


def test_scenario_a_reserve_on_empty_slot() -> None:
    """Reserve 1000, no bids: 999 is BelowReserve, 1000 is accepted."""
    slot = _slot()

    low = validate_bid(slot, None, COMPANY, Decimal("999"))
    assert low.accepted is False
    assert low.reason == RejectionReason.BELOW_RESERVE
    assert low.minimum_amount == Decimal("1000")

    assert validate_bid(slot, None, COMPANY, Decimal("1000")).accepted is True


def test_scenario_b_increment_against_current_bid() -> None:
    """Current bid 1000 with increment 100: 1050 is BidTooLow (minimum 1100), 1100 passes."""
    session = _session()
    slot = _held_slot("1000", auction_session_id=SESSION_ID)

    low = validate_bid(slot, session, COMPANY, Decimal("1050"))
    assert low.reason == RejectionReason.BID_TOO_LOW
    assert low.minimum_amount == Decimal("1100")

    assert validate_bid(slot, session, COMPANY, Decimal("1100")).accepted is True


def test_reserve_is_checked_before_increment() -> None:
    session = _session(reserve_price=Decimal("5000"))
    slot = _held_slot("1000", auction_session_id=SESSION_ID)

    decision = validate_bid(slot, session, COMPANY, Decimal("1100"))

    assert decision.reason == RejectionReason.BELOW_RESERVE
    assert decision.minimum_amount == Decimal("5000")


def test_session_reserve_overrides_slot_reserve() -> None:
    session = _session(reserve_price=Decimal("500"))
    slot = _slot(auction_session_id=SESSION_ID, status=SlotStatus.AUCTION_ACTIVE)

    assert effective_reserve(slot, session) == Decimal("500")
    assert effective_reserve(slot, None) == Decimal("1000")
    assert validate_bid(slot, session, COMPANY, Decimal("600")).accepted is True


@pytest.mark.parametrize("status", [SlotStatus.OCCUPIED, SlotStatus.RESERVED])
def test_slot_not_biddable(status: SlotStatus) -> None:
    decision = validate_bid(_slot(status=status), None, COMPANY, Decimal("5000"))

    assert decision.reason == RejectionReason.SLOT_NOT_BIDDABLE


def test_missing_slot_is_not_biddable() -> None:
    assert validate_bid(None, None, COMPANY, Decimal("5000")).reason == RejectionReason.SLOT_NOT_BIDDABLE


@pytest.mark.parametrize("status", [SessionStatus.SCHEDULED, SessionStatus.PAUSED, SessionStatus.COMPLETED])
def test_bound_slot_requires_active_session(status: SessionStatus) -> None:
    slot = _slot(auction_session_id=SESSION_ID)

    decision = validate_bid(slot, _session(status=status), COMPANY, Decimal("5000"))

    assert decision.reason == RejectionReason.NO_ACTIVE_SESSION


def test_bound_slot_with_missing_session_has_no_active_session() -> None:
    slot = _slot(auction_session_id=SESSION_ID)

    assert validate_bid(slot, None, COMPANY, Decimal("5000")).reason == RejectionReason.NO_ACTIVE_SESSION


def test_slot_checks_win_over_company_checks() -> None:
    ineligible = Company(company_id=COMPANY.company_id, name="Acme", auction_eligible=False)

    decision = validate_bid(_slot(status=SlotStatus.OCCUPIED), None, ineligible, Decimal("5000"))

    assert decision.reason == RejectionReason.SLOT_NOT_BIDDABLE


def test_ineligible_or_unknown_company() -> None:
    ineligible = Company(company_id=COMPANY.company_id, name="Acme", auction_eligible=False)
    inactive = Company(company_id=COMPANY.company_id, name="Acme", is_active=False)

    for company in (ineligible, inactive, None):
        assert validate_bid(_slot(), None, company, Decimal("5000")).reason == RejectionReason.BIDDER_INELIGIBLE


def test_company_ceiling_checked_before_reserve() -> None:
    capped = Company(company_id=COMPANY.company_id, name="Acme", max_bid_amount=Decimal("800"))

    decision = validate_bid(_slot(), None, capped, Decimal("900"))

    assert decision.reason == RejectionReason.EXCEEDS_MAX_BID


def test_sessionless_bid_only_needs_to_exceed_current() -> None:
    slot = _held_slot("1000")

    assert minimum_next_bid(slot, None) == Decimal("1000.01")
    assert validate_bid(slot, None, COMPANY, Decimal("1000")).reason == RejectionReason.BID_TOO_LOW
    assert validate_bid(slot, None, COMPANY, Decimal("1000.01")).accepted is True


def test_minimum_next_bid_on_empty_slot_is_reserve() -> None:
    assert minimum_next_bid(_slot(), _session()) == Decimal("1000")
    assert minimum_next_bid(_slot(reserve_price=Decimal("0")), None) == Decimal("0.01")


def test_rejection_is_idempotent() -> None:
    session = _session()
    slot = _held_slot("1000", auction_session_id=SESSION_ID)

    first = validate_bid(slot, session, COMPANY, Decimal("1050"))
    second = validate_bid(slot, session, COMPANY, Decimal("1050"))

    assert first == second
