"""
Simulate a contested auction against the in-memory ledger.

Provisions slots and companies, runs a session with several bidder threads
hammering the same slots, ends the session and checks the ledger invariants:
- at most one ACTIVE/WON bid per slot
- slot.current_bid matches that bid (0 when there is none)
- accepted amounts per slot are strictly increasing

Usage:
    python scripts/simulate_bidding.py --slots 3 --bidders 8 --rounds 20
"""

import argparse
import random
import sys
import threading
from collections import Counter
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path
from uuid import uuid4

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from domain.bid import BidStatus
from domain.company import Company
from repositories.company_repository import InMemoryCompanyDirectory
from repositories.memory_ledger_store import InMemoryLedgerStore
from services.auction_facade import AuctionFacade
from services.bid_ledger import PlaceBidRequest
from services.session_controller import CreateSessionRequest
from settings import AuctionSettings


def _bidder(facade, slots, company, user_id, rounds, outcomes, outcomes_lock, seed):
    rng = random.Random(seed)
    for _ in range(rounds):
        slot = facade.get_slot(rng.choice(slots).slot_id)
        amount = slot.current_bid + Decimal(rng.choice([100, 100, 200, 500]))
        result = facade.place_bid(
            PlaceBidRequest(slot_id=slot.slot_id, company_id=company.company_id, user_id=user_id, amount=amount)
        )
        with outcomes_lock:
            outcomes[result.reason.value if result.reason else "Accepted"] += 1


def check_invariants(facade):
    """Return a list of invariant violations (empty when the ledger is consistent)."""

    problems = []
    for slot in facade.list_slots():
        bids = facade.store.list_bids(slot_id=slot.slot_id)
        current = [b for b in bids if b.status in (BidStatus.ACTIVE, BidStatus.WON)]
        if len(current) > 1:
            problems.append(f"slot {slot.slot_number}: {len(current)} current bids")
        expected = current[0].amount if current else Decimal("0")
        if slot.current_bid != expected:
            problems.append(f"slot {slot.slot_number}: current_bid {slot.current_bid} != {expected}")
        amounts = [b.amount for b in bids]
        if amounts != sorted(set(amounts)):
            problems.append(f"slot {slot.slot_number}: accepted amounts not strictly increasing")
    return problems


def simulate(slot_count, bidder_count, rounds):
    store = InMemoryLedgerStore()
    companies = InMemoryCompanyDirectory()
    facade = AuctionFacade(store, companies, settings=AuctionSettings(max_commit_attempts=10))

    slots = store.provision_slots(slot_count, reserve_price=Decimal("1000"))
    bidders = [
        (companies.add(Company(company_id=uuid4(), name=f"Advertiser {i + 1}")), uuid4())
        for i in range(bidder_count)
    ]

    now = datetime.now(timezone.utc)
    session = facade.create_session(
        CreateSessionRequest(
            name="Simulated prime time",
            start_time=now + timedelta(seconds=1),
            end_time=now + timedelta(hours=1),
            bid_increment=Decimal("100"),
            slot_ids=tuple(s.slot_id for s in slots),
        )
    )
    facade.start_session(session.session_id)

    outcomes = Counter()
    outcomes_lock = threading.Lock()
    threads = [
        threading.Thread(target=_bidder, args=(facade, slots, company, user_id, rounds, outcomes, outcomes_lock, i))
        for i, (company, user_id) in enumerate(bidders)
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    outcome = facade.end_session(session.session_id)

    print("=" * 50)
    print("SIMULATION RESULTS")
    print("=" * 50)
    for key in sorted(outcomes):
        print(f"{key + ':':<27}{outcomes[key]}")
    print("-" * 50)
    for winner in outcome.winners:
        print(f"Slot {winner.slot_number}: won at ${winner.amount:,.2f} by {winner.company_id}")
    print(f"Notifications written:     {len(facade.list_notifications(limit=None))}")

    problems = check_invariants(facade)
    print("-" * 50)
    if problems:
        for problem in problems:
            print(f"[ERROR] {problem}")
        return 1
    print("[SUCCESS] Ledger invariants hold")
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Simulate concurrent bidding on the in-memory ledger")
    parser.add_argument("--slots", type=int, default=3)
    parser.add_argument("--bidders", type=int, default=8)
    parser.add_argument("--rounds", type=int, default=20)
    args = parser.parse_args()
    sys.exit(simulate(args.slots, args.bidders, args.rounds))
