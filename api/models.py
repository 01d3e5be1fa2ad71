"""
API Request and Response Models.

Pydantic models for validating API requests and serializing responses.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from domain.auction_session import (
    DEFAULT_BID_INCREMENT,
    DEFAULT_EXTEND_DURATION_SECONDS,
    DEFAULT_MAX_EXTENSIONS,
    AuctionSession,
)
from domain.bid import Bid
from domain.notification import Notification, NotificationPriority, NotificationType, RecipientScope
from domain.slot import Slot
from services.auction_facade import AuctionStatistics
from services.session_controller import SessionOutcome, SessionWinner


def _as_utc(value: datetime) -> datetime:
    """Normalize aware datetimes to UTC; naive ones are left for the service to reject."""
    if value.tzinfo is None or value.utcoffset() is None:
        return value
    return value.astimezone(timezone.utc)


# ============================================================================
# Slot Models
# ============================================================================

class SlotResponse(BaseModel):
    """Single advertising slot in API response."""
    slot_id: UUID
    slot_number: int
    reserve_price: Decimal
    status: str  # "AVAILABLE", "AUCTION_ACTIVE", "OCCUPIED", "RESERVED"
    current_bid: Decimal
    current_bidder_id: Optional[UUID] = None
    current_bid_id: Optional[UUID] = None
    total_bids: int
    last_bid_time: Optional[datetime] = None
    auction_session_id: Optional[UUID] = None

    @classmethod
    def from_domain(cls, slot: Slot) -> "SlotResponse":
        return cls(
            slot_id=slot.slot_id,
            slot_number=slot.slot_number,
            reserve_price=slot.reserve_price,
            status=slot.status.value,
            current_bid=slot.current_bid,
            current_bidder_id=slot.current_bidder_id,
            current_bid_id=slot.current_bid_id,
            total_bids=slot.total_bids,
            last_bid_time=slot.last_bid_time,
            auction_session_id=slot.auction_session_id,
        )


# ============================================================================
# Bid Models
# ============================================================================

class BidResponse(BaseModel):
    """Single bid in API response."""
    bid_id: UUID
    slot_id: UUID
    company_id: UUID
    user_id: UUID
    amount: Decimal
    placed_at: datetime
    status: str  # "ACTIVE", "OUTBID", "WON", "WITHDRAWN"
    auction_session_id: Optional[UUID] = None
    bidder_info: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_domain(cls, bid: Bid) -> "BidResponse":
        return cls(
            bid_id=bid.bid_id,
            slot_id=bid.slot_id,
            company_id=bid.company_id,
            user_id=bid.user_id,
            amount=bid.amount,
            placed_at=bid.placed_at,
            status=bid.status.value,
            auction_session_id=bid.auction_session_id,
            bidder_info=dict(bid.bidder_info),
        )


class PlaceBidRequest(BaseModel):
    """Request to place a bid on a slot."""
    slot_id: UUID = Field(..., description="Slot to bid on")
    company_id: UUID = Field(..., description="Bidding company")
    user_id: UUID = Field(..., description="User submitting the bid on behalf of the company")
    amount: Decimal = Field(..., gt=0, description="Bid amount")
    bidder_info: Dict[str, Any] = Field(default_factory=dict, description="Free-form bidder details")

    class Config:
        json_schema_extra = {
            "example": {
                "slot_id": "123e4567-e89b-12d3-a456-426614174000",
                "company_id": "123e4567-e89b-12d3-a456-426614174001",
                "user_id": "123e4567-e89b-12d3-a456-426614174002",
                "amount": "1500.00",
                "bidder_info": {"contact": "media@acme.example"}
            }
        }


class PlaceBidResponse(BaseModel):
    """Response after an accepted bid."""
    bid: BidResponse
    previous_bid_id: Optional[UUID] = None
    session_extended: bool = False
    session_end_time: Optional[datetime] = None
    message: str


class BidRejectionResponse(BaseModel):
    """Body of a 400 response for a rejected bid."""
    reason: str
    message: str
    minimum_amount: Optional[Decimal] = None

    class Config:
        json_schema_extra = {
            "example": {
                "reason": "BidTooLow",
                "message": "Bid must be at least 1100 (current bid 1000)",
                "minimum_amount": "1100"
            }
        }


# ============================================================================
# Session Models
# ============================================================================

class SessionCreateRequest(BaseModel):
    """Request to schedule an auction session."""
    name: str
    description: Optional[str] = None
    start_time: datetime
    end_time: datetime
    bid_increment: Decimal = DEFAULT_BID_INCREMENT
    reserve_price: Optional[Decimal] = None
    auto_extend: bool = False
    extend_duration_seconds: int = DEFAULT_EXTEND_DURATION_SECONDS
    max_extensions: int = DEFAULT_MAX_EXTENSIONS
    slot_ids: List[UUID] = Field(default_factory=list)

    class Config:
        json_schema_extra = {
            "example": {
                "name": "Prime time slots - week 42",
                "start_time": "2026-10-20T18:00:00Z",
                "end_time": "2026-10-20T20:00:00Z",
                "bid_increment": "100.00",
                "auto_extend": True,
                "extend_duration_seconds": 300,
                "max_extensions": 3,
                "slot_ids": ["123e4567-e89b-12d3-a456-426614174000"]
            }
        }

    def utc_start_time(self) -> datetime:
        return _as_utc(self.start_time)

    def utc_end_time(self) -> datetime:
        return _as_utc(self.end_time)


class SessionUpdateRequest(BaseModel):
    """Partial update of a SCHEDULED session. Omitted fields keep their value."""
    name: Optional[str] = None
    description: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    bid_increment: Optional[Decimal] = None
    reserve_price: Optional[Decimal] = Field(None, description="Send null to remove the session reserve override")
    auto_extend: Optional[bool] = None
    extend_duration_seconds: Optional[int] = None
    max_extensions: Optional[int] = None

    class Config:
        json_schema_extra = {
            "example": {
                "end_time": "2026-10-20T21:00:00Z",
                "bid_increment": "250.00",
                "reserve_price": None
            }
        }

    def clears_reserve_price(self) -> bool:
        return "reserve_price" in self.model_fields_set and self.reserve_price is None

    def utc_start_time(self) -> Optional[datetime]:
        return _as_utc(self.start_time) if self.start_time is not None else None

    def utc_end_time(self) -> Optional[datetime]:
        return _as_utc(self.end_time) if self.end_time is not None else None


class SessionResponse(BaseModel):
    """Auction session in API response."""
    session_id: UUID
    name: str
    description: Optional[str] = None
    status: str
    start_time: datetime
    end_time: datetime
    actual_start_time: Optional[datetime] = None
    actual_end_time: Optional[datetime] = None
    bid_increment: Decimal
    reserve_price: Optional[Decimal] = None
    auto_extend: bool
    extend_duration_seconds: int
    max_extensions: int
    extensions_used: int
    slot_ids: List[UUID]
    created_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, session: AuctionSession) -> "SessionResponse":
        return cls(
            session_id=session.session_id,
            name=session.name,
            description=session.description,
            status=session.status.value,
            start_time=session.start_time,
            end_time=session.end_time,
            actual_start_time=session.actual_start_time,
            actual_end_time=session.actual_end_time,
            bid_increment=session.bid_increment,
            reserve_price=session.reserve_price,
            auto_extend=session.auto_extend,
            extend_duration_seconds=session.extend_duration_seconds,
            max_extensions=session.max_extensions,
            extensions_used=session.extensions_used,
            slot_ids=list(session.slot_ids),
            created_at=session.created_at,
        )


class ExtendSessionRequest(BaseModel):
    """Optional body for a manual extension (defaults to the session's extend duration)."""
    duration_seconds: Optional[int] = Field(None, description="Seconds to add to the end time")


class BindSlotsRequest(BaseModel):
    """Slots to bind to a SCHEDULED session."""
    slot_ids: List[UUID] = Field(..., min_length=1)


class WinnerResponse(BaseModel):
    """Winning bid for one slot."""
    slot_id: UUID
    slot_number: int
    bid_id: UUID
    company_id: UUID
    user_id: UUID
    amount: Decimal

    @classmethod
    def from_domain(cls, winner: SessionWinner) -> "WinnerResponse":
        return cls(
            slot_id=winner.slot_id,
            slot_number=winner.slot_number,
            bid_id=winner.bid_id,
            company_id=winner.company_id,
            user_id=winner.user_id,
            amount=winner.amount,
        )


class SessionOutcomeResponse(BaseModel):
    """Response after ending a session."""
    session: SessionResponse
    winners: List[WinnerResponse]
    unsold_slot_ids: List[UUID]

    @classmethod
    def from_domain(cls, outcome: SessionOutcome) -> "SessionOutcomeResponse":
        return cls(
            session=SessionResponse.from_domain(outcome.session),
            winners=[WinnerResponse.from_domain(w) for w in outcome.winners],
            unsold_slot_ids=list(outcome.unsold_slot_ids),
        )


# ============================================================================
# Notification Models
# ============================================================================

class NotificationCreateRequest(BaseModel):
    """Request to publish a notification manually."""
    type: NotificationType
    recipient_scope: RecipientScope
    message: str = Field(..., min_length=1)
    session_id: Optional[UUID] = None
    slot_id: Optional[UUID] = None
    recipient_id: Optional[UUID] = None
    priority: Optional[NotificationPriority] = None


class NotificationResponse(BaseModel):
    """Outbox notification in API response."""
    notification_id: UUID
    sequence: Optional[int] = None
    type: str
    recipient_scope: str
    recipient_id: Optional[UUID] = None
    message: str
    priority: str
    session_id: Optional[UUID] = None
    slot_id: Optional[UUID] = None
    created_at: datetime

    @classmethod
    def from_domain(cls, notification: Notification) -> "NotificationResponse":
        return cls(
            notification_id=notification.notification_id,
            sequence=notification.sequence,
            type=notification.type.value,
            recipient_scope=notification.recipient_scope.value,
            recipient_id=notification.recipient_id,
            message=notification.message,
            priority=notification.priority.value,
            session_id=notification.auction_session_id,
            slot_id=notification.slot_id,
            created_at=notification.created_at,
        )


# ============================================================================
# Statistics Models
# ============================================================================

class StatisticsResponse(BaseModel):
    """Platform-wide auction statistics."""
    total_sessions: int
    sessions_by_status: Dict[str, int]
    total_bids: int
    won_bids: int
    total_revenue: Decimal
    average_bid: Decimal

    @classmethod
    def from_domain(cls, stats: AuctionStatistics) -> "StatisticsResponse":
        return cls(
            total_sessions=stats.total_sessions,
            sessions_by_status=dict(stats.sessions_by_status),
            total_bids=stats.total_bids,
            won_bids=stats.won_bids,
            total_revenue=stats.total_revenue,
            average_bid=stats.average_bid,
        )


# ============================================================================
# Error Models
# ============================================================================

class ErrorResponse(BaseModel):
    """Standard error response body (under `detail`)."""
    code: str
    message: str

    class Config:
        json_schema_extra = {
            "example": {
                "code": "InvalidSessionTransition",
                "message": "Cannot transition auction session from COMPLETED to ACTIVE"
            }
        }
