"""
Auction API facade.

The only entry point the outside world (HTTP layer, scripts) uses. It wires
the ledger, the session controller and the dispatcher over one Ledger Store
and serves read-only projections. Queries read the latest committed snapshot
and never take a lock.
"""

from __future__ import annotations

import json
import logging
from collections import Counter
from dataclasses import dataclass
from datetime import timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, Optional, Sequence
from uuid import UUID, uuid4

from domain.auction_session import AuctionSession, SessionStatus
from domain.bid import Bid, BidStatus
from domain.errors import BidNotFound, SlotNotFound
from domain.notification import Notification, NotificationPriority, NotificationType, RecipientScope
from domain.slot import ZERO, Slot, SlotStatus
from domain.time import Clock, utc_now
from repositories.company_repository import CompanyDirectory
from repositories.ledger_store import LedgerStore
from services.bid_ledger import BidLedger, PlaceBidRequest, PlaceBidResult
from services.notification_dispatcher import NotificationDispatcher
from services.session_controller import (
    CreateSessionRequest,
    SessionController,
    SessionOutcome,
    SessionWinner,
    UpdateSessionRequest,
)
from settings import AuctionSettings, load_settings

logger = logging.getLogger(__name__)

_CENT = Decimal("0.01")


@dataclass(frozen=True, slots=True)
class AuctionStatistics:
    """
    Platform-wide auction summary.

    sessions_by_status: session count per status (every status present, zero included)
    total_revenue: sum of WON bid amounts
    average_bid: mean amount over all bids, rounded to cents (0 with no bids)
    """
    total_sessions: int
    sessions_by_status: Dict[str, int]
    total_bids: int
    won_bids: int
    total_revenue: Decimal
    average_bid: Decimal


class AuctionFacade:
    def __init__(
        self,
        store: LedgerStore,
        companies: CompanyDirectory,
        *,
        settings: Optional[AuctionSettings] = None,
        clock: Clock = utc_now,
    ):
        settings = settings or AuctionSettings()
        self.store = store
        self.companies = companies
        self.dispatcher = NotificationDispatcher(store, clock)
        self.sessions = SessionController(
            store,
            self.dispatcher,
            clock=clock,
            max_commit_attempts=settings.max_commit_attempts,
            auto_extend_window=timedelta(seconds=settings.auto_extend_window_seconds),
        )
        self.ledger = BidLedger(
            store,
            companies,
            self.dispatcher,
            self.sessions,
            clock=clock,
            max_commit_attempts=settings.max_commit_attempts,
        )

    # Bids

    def place_bid(self, request: PlaceBidRequest) -> PlaceBidResult:
        return self.ledger.place_bid(request)

    def withdraw_bid(self, bid_id: UUID) -> Bid:
        return self.ledger.withdraw(bid_id)

    def accept_bid(self, bid_id: UUID) -> Bid:
        return self.ledger.accept(bid_id)

    def reject_bid(self, bid_id: UUID) -> Bid:
        return self.ledger.reject(bid_id)

    def get_bid(self, bid_id: UUID) -> Bid:
        bid = self.store.get_bid(bid_id)
        if bid is None:
            raise BidNotFound(bid_id)
        return bid

    def list_bids(
        self,
        slot_id: Optional[UUID] = None,
        status: Optional[BidStatus] = None,
        company_id: Optional[UUID] = None,
        session_id: Optional[UUID] = None,
    ) -> List[Bid]:
        """Bids matching the filters, newest first."""

        bids = self.store.list_bids(
            slot_id=slot_id,
            statuses=[status] if status is not None else None,
            company_id=company_id,
            session_id=session_id,
        )
        return list(reversed(bids))

    def bid_history(self, slot_id: UUID) -> List[Bid]:
        return self.ledger.bid_history(slot_id)

    # Sessions

    def create_session(self, request: CreateSessionRequest) -> AuctionSession:
        return self.sessions.create_session(request)

    def bind_slots(self, session_id: UUID, slot_ids: Sequence[UUID]) -> AuctionSession:
        return self.sessions.bind_slots(session_id, slot_ids)

    def update_session(self, session_id: UUID, request: UpdateSessionRequest) -> AuctionSession:
        return self.sessions.update_session(session_id, request)

    def start_session(self, session_id: UUID) -> AuctionSession:
        return self.sessions.start(session_id)

    def pause_session(self, session_id: UUID) -> AuctionSession:
        return self.sessions.pause(session_id)

    def resume_session(self, session_id: UUID) -> AuctionSession:
        return self.sessions.resume(session_id)

    def end_session(self, session_id: UUID) -> SessionOutcome:
        return self.sessions.end(session_id)

    def extend_session(self, session_id: UUID, duration_seconds: Optional[int] = None) -> AuctionSession:
        return self.sessions.extend(session_id, duration_seconds)

    def cancel_session(self, session_id: UUID) -> AuctionSession:
        return self.sessions.cancel(session_id)

    def notify_ending(self, session_id: UUID) -> AuctionSession:
        return self.sessions.notify_ending(session_id)

    def get_session(self, session_id: UUID) -> AuctionSession:
        return self.sessions.get_session(session_id)

    def list_sessions(self, status: Optional[SessionStatus] = None) -> List[AuctionSession]:
        return self.sessions.list_sessions(status)

    def active_sessions(self) -> List[AuctionSession]:
        return self.sessions.list_sessions(SessionStatus.ACTIVE)

    def winners(self, session_id: UUID) -> List[SessionWinner]:
        """WON bids of a session, by slot number."""

        self.sessions.get_session(session_id)
        won = self.store.list_bids(statuses=[BidStatus.WON], session_id=session_id)
        slots = {slot.slot_id: slot for slot in self.store.list_slots(slot_ids=[bid.slot_id for bid in won])}

        winners = [
            SessionWinner(
                slot_id=bid.slot_id,
                slot_number=slots[bid.slot_id].slot_number if bid.slot_id in slots else 0,
                bid_id=bid.bid_id,
                company_id=bid.company_id,
                user_id=bid.user_id,
                amount=bid.amount,
            )
            for bid in won
        ]
        return sorted(winners, key=lambda w: w.slot_number)

    # Slots

    def get_slot(self, slot_id: UUID) -> Slot:
        slot = self.store.get_slot(slot_id)
        if slot is None:
            raise SlotNotFound(slot_id)
        return slot

    def list_slots(self, status: Optional[SlotStatus] = None) -> List[Slot]:
        return self.store.list_slots(statuses=[status] if status is not None else None)

    # Notifications

    def publish_notification(
        self,
        session_id: Optional[UUID],
        type: NotificationType,
        recipient_scope: RecipientScope,
        message: str,
        *,
        recipient_id: Optional[UUID] = None,
        priority: Optional[NotificationPriority] = None,
        slot_id: Optional[UUID] = None,
    ) -> Notification:
        if session_id is not None:
            self.sessions.get_session(session_id)
        return self.dispatcher.notify(
            session_id,
            type,
            recipient_scope,
            message,
            recipient_id=recipient_id,
            priority=priority,
            slot_id=slot_id,
        )

    def list_notifications(
        self,
        session_id: Optional[UUID] = None,
        type: Optional[NotificationType] = None,
        recipient_scope: Optional[RecipientScope] = None,
        recipient_id: Optional[UUID] = None,
        limit: Optional[int] = None,
    ) -> List[Notification]:
        return self.dispatcher.list_notifications(
            session_id=session_id,
            type=type,
            recipient_scope=recipient_scope,
            recipient_id=recipient_id,
            limit=limit,
        )

    # Statistics

    def statistics(self) -> AuctionStatistics:
        sessions = self.store.list_sessions()
        bids = self.store.list_bids()

        counts = Counter(session.status.value for session in sessions)
        won = [bid for bid in bids if bid.status == BidStatus.WON]
        total_amount = sum((bid.amount for bid in bids), ZERO)
        average = (total_amount / len(bids)).quantize(_CENT, rounding=ROUND_HALF_UP) if bids else ZERO

        return AuctionStatistics(
            total_sessions=len(sessions),
            sessions_by_status={status.value: counts.get(status.value, 0) for status in SessionStatus},
            total_bids=len(bids),
            won_bids=len(won),
            total_revenue=sum((bid.amount for bid in won), ZERO),
            average_bid=average,
        )


def _seed_memory_backend(path: str, store, companies) -> None:
    """
    Load slots and companies into the in-memory backend.

    The file is JSON:
        {"slots": [{"slot_number": 1, "reserve_price": "1000"}, ...],
         "companies": [<rows shaped like the companies table>, ...]}
    """
    try:
        with open(path, encoding="utf-8") as f:
            seed = json.load(f)
    except (OSError, ValueError) as e:
        raise RuntimeError(f"Cannot load AUCTION_SEED_FILE {path!r}: {e}") from e

    for row in seed.get("slots", []):
        store.add_slot(
            Slot(
                slot_id=UUID(str(row["slot_id"])) if row.get("slot_id") else uuid4(),
                slot_number=int(row["slot_number"]),
                reserve_price=Decimal(str(row.get("reserve_price", "0"))),
            )
        )
    for row in seed.get("companies", []):
        companies.add_row(row)

    logger.info(
        "Memory backend seeded",
        extra={
            "seed_file": path,
            "slot_count": len(seed.get("slots", [])),
            "company_count": len(seed.get("companies", [])),
        },
    )


def build_default_facade(settings: Optional[AuctionSettings] = None) -> AuctionFacade:
    """
    Build a facade over the configured ledger backend.

    - memory: in-process store and company directory, empty unless
      `seed_file` names a JSON seed of slots and companies
    - supabase: tables and RPC described in migrations/001_auction_ledger.sql
    """

    settings = settings or load_settings()

    if settings.ledger_backend == "supabase":
        from repositories.client import create_supabase_client
        from repositories.company_repository import SupabaseCompanyRepository
        from repositories.supabase_ledger_store import SupabaseLedgerStore

        client = create_supabase_client(settings)
        store: LedgerStore = SupabaseLedgerStore(client)
        companies: CompanyDirectory = SupabaseCompanyRepository(client)
    else:
        from repositories.company_repository import InMemoryCompanyDirectory
        from repositories.memory_ledger_store import InMemoryLedgerStore

        store = InMemoryLedgerStore()
        companies = InMemoryCompanyDirectory()
        if settings.seed_file:
            _seed_memory_backend(settings.seed_file, store, companies)

    logger.info("Auction facade ready", extra={"ledger_backend": settings.ledger_backend})
    return AuctionFacade(store, companies, settings=settings)


__all__ = ["AuctionFacade", "AuctionStatistics", "build_default_facade"]
