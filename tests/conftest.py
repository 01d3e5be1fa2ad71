"""
Pytest configuration for the auction engine tests.

This file adds the parent directory to the Python path so that tests
can import from the domain, repositories, services, and api modules, and
provides shared fixtures: a controllable clock, an in-memory ledger store,
an in-memory company directory and a fully wired facade.
"""

import sys
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path
from uuid import UUID

import pytest

# Add the project root to the Python path
# so tests can import domain, repositories, etc.
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from domain.company import Company  # noqa: E402
from repositories.company_repository import InMemoryCompanyDirectory  # noqa: E402
from repositories.memory_ledger_store import InMemoryLedgerStore  # noqa: E402
from services.auction_facade import AuctionFacade  # noqa: E402
from services.session_controller import CreateSessionRequest  # noqa: E402
from settings import AuctionSettings  # noqa: E402

FIXED_NOW = datetime(2026, 3, 2, 12, 0, 0, tzinfo=timezone.utc)

ACME_ID = UUID("00000000-0000-0000-0000-00000000a001")
GLOBEX_ID = UUID("00000000-0000-0000-0000-00000000a002")
INITECH_ID = UUID("00000000-0000-0000-0000-00000000a003")

ALICE = UUID("00000000-0000-0000-0000-0000000000a1")
BOB = UUID("00000000-0000-0000-0000-0000000000b1")
CAROL = UUID("00000000-0000-0000-0000-0000000000c1")


class MutableClock:
    """Clock pinned to a fixed instant that tests can move forward."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> MutableClock:
    return MutableClock(FIXED_NOW)


@pytest.fixture
def store() -> InMemoryLedgerStore:
    return InMemoryLedgerStore()


@pytest.fixture
def companies() -> InMemoryCompanyDirectory:
    directory = InMemoryCompanyDirectory()
    directory.add(Company(company_id=ACME_ID, name="Acme Outdoor"))
    directory.add(Company(company_id=GLOBEX_ID, name="Globex Media"))
    directory.add(Company(company_id=INITECH_ID, name="Initech", max_bid_amount=Decimal("5000")))
    return directory


@pytest.fixture
def settings() -> AuctionSettings:
    return AuctionSettings(max_commit_attempts=10, auto_extend_window_seconds=300)


@pytest.fixture
def facade(store, companies, clock, settings) -> AuctionFacade:
    return AuctionFacade(store, companies, settings=settings, clock=clock)


@pytest.fixture
def slots(store):
    """Three provisioned slots with a reserve price of 1000."""
    return store.provision_slots(3, reserve_price=Decimal("1000"))


@pytest.fixture
def make_session(facade, clock):
    """Factory creating a SCHEDULED session starting in one hour (overrides via kwargs)."""

    def _make(slot_ids=(), start=True, **overrides):
        fields = dict(
            name="Prime time",
            start_time=clock.now + timedelta(hours=1),
            end_time=clock.now + timedelta(hours=3),
            bid_increment=Decimal("100"),
            slot_ids=tuple(slot_ids),
        )
        fields.update(overrides)
        session = facade.create_session(CreateSessionRequest(**fields))
        if start:
            session = facade.start_session(session.session_id)
        return session

    return _make
