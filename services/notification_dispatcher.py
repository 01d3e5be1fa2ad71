"""
Notification dispatcher.

Turns ledger and session events into outbox records. Event-driven
notifications are *staged* into the same change set as the event itself, so
they commit (or fail) together with it and keep the order in which events
were applied. Delivery is left to the messaging collaborator reading the
outbox.

Default scope and priority per type:
- BID_PLACED        BIDDERS  MEDIUM
- BID_OUTBID        USER     HIGH
- AUCTION_STARTING  ALL      MEDIUM
- AUCTION_EXTENDED  ALL      HIGH
- AUCTION_ENDING    ALL      URGENT
- AUCTION_COMPLETED ALL      HIGH   (plus a USER copy for each winner)
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import List, Mapping, Optional
from uuid import UUID, uuid4

from domain.auction_session import AuctionSession
from domain.bid import Bid
from domain.notification import Notification, NotificationPriority, NotificationType, RecipientScope
from domain.slot import Slot
from domain.time import Clock, utc_now
from repositories.ledger_store import ChangeSet, LedgerStore

logger = logging.getLogger(__name__)

DEFAULT_SCOPES: Mapping[NotificationType, RecipientScope] = {
    NotificationType.BID_PLACED: RecipientScope.BIDDERS,
    NotificationType.BID_OUTBID: RecipientScope.USER,
    NotificationType.AUCTION_STARTING: RecipientScope.ALL,
    NotificationType.AUCTION_EXTENDED: RecipientScope.ALL,
    NotificationType.AUCTION_ENDING: RecipientScope.ALL,
    NotificationType.AUCTION_COMPLETED: RecipientScope.ALL,
}

DEFAULT_PRIORITIES: Mapping[NotificationType, NotificationPriority] = {
    NotificationType.BID_PLACED: NotificationPriority.MEDIUM,
    NotificationType.BID_OUTBID: NotificationPriority.HIGH,
    NotificationType.AUCTION_STARTING: NotificationPriority.MEDIUM,
    NotificationType.AUCTION_EXTENDED: NotificationPriority.HIGH,
    NotificationType.AUCTION_ENDING: NotificationPriority.URGENT,
    NotificationType.AUCTION_COMPLETED: NotificationPriority.HIGH,
}


def _money(amount: Decimal) -> str:
    return f"${amount:,.2f}"


class NotificationDispatcher:
    def __init__(self, store: LedgerStore, clock: Clock = utc_now):
        self._store = store
        self._clock = clock

    def build(
        self,
        type: NotificationType,
        message: str,
        *,
        session_id: Optional[UUID] = None,
        slot_id: Optional[UUID] = None,
        recipient_scope: Optional[RecipientScope] = None,
        recipient_id: Optional[UUID] = None,
        priority: Optional[NotificationPriority] = None,
    ) -> Notification:
        return Notification(
            notification_id=uuid4(),
            type=type,
            recipient_scope=recipient_scope or DEFAULT_SCOPES[type],
            recipient_id=recipient_id,
            message=message,
            priority=priority or DEFAULT_PRIORITIES[type],
            auction_session_id=session_id,
            slot_id=slot_id,
            created_at=self._clock(),
        )

    def stage(self, changes: ChangeSet, type: NotificationType, message: str, **kwargs) -> Notification:
        """Add a notification to `changes`; it is written when the change set commits."""

        notification = self.build(type, message, **kwargs)
        changes.add_notification(notification)
        return notification

    def notify(
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
        """Append a single notification to the outbox right away (manual publish)."""

        changes = ChangeSet()
        notification = self.stage(
            changes,
            type,
            message,
            session_id=session_id,
            slot_id=slot_id,
            recipient_scope=recipient_scope,
            recipient_id=recipient_id,
            priority=priority,
        )
        self._store.commit(changes)
        logger.info(
            "Notification published",
            extra={
                "notification_id": str(notification.notification_id),
                "type": notification.type.value,
                "recipient_scope": notification.recipient_scope.value,
            },
        )
        return notification

    def list_notifications(
        self,
        session_id: Optional[UUID] = None,
        type: Optional[NotificationType] = None,
        recipient_scope: Optional[RecipientScope] = None,
        recipient_id: Optional[UUID] = None,
        limit: Optional[int] = None,
    ) -> List[Notification]:
        return self._store.list_notifications(
            session_id=session_id,
            type=type,
            recipient_scope=recipient_scope,
            recipient_id=recipient_id,
            limit=limit,
        )

    # Event notifications

    def stage_bid_placed(self, changes: ChangeSet, slot: Slot, bid: Bid) -> Notification:
        return self.stage(
            changes,
            NotificationType.BID_PLACED,
            f"New bid of {_money(bid.amount)} placed on slot {slot.slot_number}",
            session_id=bid.auction_session_id,
            slot_id=slot.slot_id,
        )

    def stage_outbid(self, changes: ChangeSet, slot: Slot, previous: Bid, new_amount: Decimal) -> Notification:
        return self.stage(
            changes,
            NotificationType.BID_OUTBID,
            f"You have been outbid on slot {slot.slot_number}. New bid: {_money(new_amount)}",
            session_id=previous.auction_session_id,
            slot_id=slot.slot_id,
            recipient_id=previous.user_id,
        )

    def stage_session_started(self, changes: ChangeSet, session: AuctionSession) -> Notification:
        return self.stage(
            changes,
            NotificationType.AUCTION_STARTING,
            f'Auction "{session.name}" has started',
            session_id=session.session_id,
        )

    def stage_session_extended(self, changes: ChangeSet, session: AuctionSession, seconds: int) -> Notification:
        return self.stage(
            changes,
            NotificationType.AUCTION_EXTENDED,
            f'Auction "{session.name}" extended by {seconds // 60} minutes '
            f"(ends {session.end_time.isoformat()})",
            session_id=session.session_id,
        )

    def stage_session_ending(self, changes: ChangeSet, session: AuctionSession) -> Notification:
        return self.stage(
            changes,
            NotificationType.AUCTION_ENDING,
            f'Auction "{session.name}" is ending soon (ends {session.end_time.isoformat()})',
            session_id=session.session_id,
        )

    def stage_session_completed(self, changes: ChangeSet, session: AuctionSession, winner_count: int) -> Notification:
        return self.stage(
            changes,
            NotificationType.AUCTION_COMPLETED,
            f'Auction "{session.name}" has ended. {winner_count} slot(s) won',
            session_id=session.session_id,
        )

    def stage_slot_won(self, changes: ChangeSet, session: AuctionSession, slot: Slot, bid: Bid) -> Notification:
        return self.stage(
            changes,
            NotificationType.AUCTION_COMPLETED,
            f"Congratulations! You won slot {slot.slot_number} with a bid of {_money(bid.amount)}",
            session_id=session.session_id,
            slot_id=slot.slot_id,
            recipient_scope=RecipientScope.USER,
            recipient_id=bid.user_id,
        )


__all__ = ["NotificationDispatcher", "DEFAULT_PRIORITIES", "DEFAULT_SCOPES"]
