"""
Domain: auction notifications (outbox records).

Notifications are append-only. They are produced as a side effect of ledger and
session events and consumed by an external messaging collaborator. Delivery
and read state are not tracked here.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from .time import require_utc_timestamp


class NotificationType(str, Enum):
    BID_PLACED = "BID_PLACED"
    BID_OUTBID = "BID_OUTBID"
    AUCTION_STARTING = "AUCTION_STARTING"
    AUCTION_ENDING = "AUCTION_ENDING"
    AUCTION_EXTENDED = "AUCTION_EXTENDED"
    AUCTION_COMPLETED = "AUCTION_COMPLETED"


class RecipientScope(str, Enum):
    ALL = "ALL"
    BIDDERS = "BIDDERS"
    COMPANY = "COMPANY"
    USER = "USER"


class NotificationPriority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


@dataclass(frozen=True, slots=True)
class Notification:
    notification_id: UUID
    type: NotificationType
    recipient_scope: RecipientScope
    message: str
    created_at: datetime
    priority: NotificationPriority = NotificationPriority.MEDIUM
    auction_session_id: Optional[UUID] = None
    slot_id: Optional[UUID] = None
    recipient_id: Optional[UUID] = None
    sequence: Optional[int] = None  # assigned by the store when the outbox row is committed

    def __post_init__(self) -> None:
        require_utc_timestamp("created_at", self.created_at)
        if not self.message:
            raise ValueError("message must not be empty")
        targeted = self.recipient_scope in (RecipientScope.COMPANY, RecipientScope.USER)
        if targeted and self.recipient_id is None:
            raise ValueError(f"recipient_id is required for {self.recipient_scope.value} notifications")


__all__ = [
    "Notification",
    "NotificationType",
    "NotificationPriority",
    "RecipientScope",
]
