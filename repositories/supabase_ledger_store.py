"""
Supabase-backed Ledger Store (persistence).

Reads go straight to the tables through PostgREST. Writes are shipped as a
single JSON change set to the `apply_auction_changeset()` PostgreSQL function
(see migrations/001_auction_ledger.sql), which:
- Locks every touched row (FOR UPDATE, sorted by key)
- Checks each row's version against the version the service read
- Applies inserts/updates and appends outbox rows
All in a single atomic transaction.

A version mismatch comes back as error code VERSION_CONFLICT and is raised as
ConcurrencyConflict so the services can re-read and retry.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional
from uuid import UUID

from postgrest.exceptions import APIError

from domain.auction_session import AuctionSession, SessionStatus
from domain.bid import Bid, BidStatus
from domain.errors import ConcurrencyConflict, LedgerStoreError
from domain.notification import Notification, NotificationPriority, NotificationType, RecipientScope
from domain.slot import Slot, SlotStatus
from domain.time import require_utc_timestamp
from repositories.ledger_store import ChangeSet

logger = logging.getLogger(__name__)

# Supabase table names. Keep these aligned with migrations/001_auction_ledger.sql.
_SLOTS_TABLE: str = "slots"
_BIDS_TABLE: str = "bids"
_SESSIONS_TABLE: str = "auction_sessions"
_NOTIFICATIONS_TABLE: str = "auction_notifications"

_APPLY_CHANGESET_RPC: str = "apply_auction_changeset"
_VERSION_CONFLICT: str = "VERSION_CONFLICT"


def _to_iso_utc(dt: Optional[datetime], *, name: str) -> Optional[str]:
    """Serialize a UTC datetime to ISO-8601 (timezone-aware, offset 0)."""

    if dt is None:
        return None
    require_utc_timestamp(name, dt)
    return dt.astimezone(timezone.utc).isoformat()


def _parse_utc_datetime(value: Any) -> datetime:
    """
    Parse a Supabase timestamp into a timezone-aware UTC datetime.

    Supabase commonly returns ISO-8601 strings, sometimes with a trailing 'Z'.
    """

    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    else:
        raise TypeError(f"Unsupported timestamp type: {type(value)!r}")

    if dt.tzinfo is None or dt.utcoffset() is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _opt_datetime(value: Any) -> Optional[datetime]:
    return _parse_utc_datetime(value) if value else None


def _opt_uuid(value: Any) -> Optional[UUID]:
    return UUID(str(value)) if value else None


def _opt_str(value: Optional[UUID]) -> Optional[str]:
    return str(value) if value is not None else None


def _opt_decimal(value: Any) -> Optional[Decimal]:
    return Decimal(str(value)) if value is not None else None


# Row <-> domain mapping


def _row_to_slot(row: Mapping[str, Any]) -> Slot:
    return Slot(
        slot_id=UUID(str(row["slot_id"])),
        slot_number=int(row["slot_number"]),
        reserve_price=Decimal(str(row.get("reserve_price", 0))),
        status=SlotStatus(str(row["status"])),
        current_bid=Decimal(str(row.get("current_bid", 0))),
        current_bidder_id=_opt_uuid(row.get("current_bidder_id")),
        current_bid_id=_opt_uuid(row.get("current_bid_id")),
        total_bids=int(row.get("total_bids", 0)),
        last_bid_time=_opt_datetime(row.get("last_bid_time_utc")),
        auction_session_id=_opt_uuid(row.get("auction_session_id")),
        version=int(row.get("version", 0)),
    )


def _slot_to_row(slot: Slot) -> Dict[str, Any]:
    return {
        "slot_id": str(slot.slot_id),
        "slot_number": slot.slot_number,
        "reserve_price": str(slot.reserve_price),
        "status": slot.status.value,
        "current_bid": str(slot.current_bid),
        "current_bidder_id": _opt_str(slot.current_bidder_id),
        "current_bid_id": _opt_str(slot.current_bid_id),
        "total_bids": slot.total_bids,
        "last_bid_time_utc": _to_iso_utc(slot.last_bid_time, name="last_bid_time"),
        "auction_session_id": _opt_str(slot.auction_session_id),
    }


def _row_to_bid(row: Mapping[str, Any]) -> Bid:
    return Bid(
        bid_id=UUID(str(row["bid_id"])),
        slot_id=UUID(str(row["slot_id"])),
        company_id=UUID(str(row["company_id"])),
        user_id=UUID(str(row["user_id"])),
        amount=Decimal(str(row["amount"])),
        placed_at=_parse_utc_datetime(row["placed_at_utc"]),
        status=BidStatus(str(row["status"])),
        auction_session_id=_opt_uuid(row.get("auction_session_id")),
        bidder_info=dict(row.get("bidder_info") or {}),
        version=int(row.get("version", 0)),
    )


def _bid_to_row(bid: Bid) -> Dict[str, Any]:
    return {
        "bid_id": str(bid.bid_id),
        "slot_id": str(bid.slot_id),
        "company_id": str(bid.company_id),
        "user_id": str(bid.user_id),
        "amount": str(bid.amount),
        "placed_at_utc": _to_iso_utc(bid.placed_at, name="placed_at"),
        "status": bid.status.value,
        "auction_session_id": _opt_str(bid.auction_session_id),
        "bidder_info": dict(bid.bidder_info),
    }


def _row_to_session(row: Mapping[str, Any]) -> AuctionSession:
    return AuctionSession(
        session_id=UUID(str(row["session_id"])),
        name=str(row["name"]),
        description=row.get("description"),
        start_time=_parse_utc_datetime(row["start_time_utc"]),
        end_time=_parse_utc_datetime(row["end_time_utc"]),
        actual_start_time=_opt_datetime(row.get("actual_start_time_utc")),
        actual_end_time=_opt_datetime(row.get("actual_end_time_utc")),
        status=SessionStatus(str(row["status"])),
        bid_increment=Decimal(str(row["bid_increment"])),
        reserve_price=_opt_decimal(row.get("reserve_price")),
        auto_extend=bool(row.get("auto_extend", False)),
        extend_duration_seconds=int(row["extend_duration_seconds"]),
        max_extensions=int(row["max_extensions"]),
        extensions_used=int(row.get("extensions_used", 0)),
        slot_ids=tuple(UUID(str(value)) for value in (row.get("slot_ids") or [])),
        created_at=_opt_datetime(row.get("created_at_utc")),
        version=int(row.get("version", 0)),
    )


def _session_to_row(session: AuctionSession) -> Dict[str, Any]:
    return {
        "session_id": str(session.session_id),
        "name": session.name,
        "description": session.description,
        "start_time_utc": _to_iso_utc(session.start_time, name="start_time"),
        "end_time_utc": _to_iso_utc(session.end_time, name="end_time"),
        "actual_start_time_utc": _to_iso_utc(session.actual_start_time, name="actual_start_time"),
        "actual_end_time_utc": _to_iso_utc(session.actual_end_time, name="actual_end_time"),
        "status": session.status.value,
        "bid_increment": str(session.bid_increment),
        "reserve_price": str(session.reserve_price) if session.reserve_price is not None else None,
        "auto_extend": session.auto_extend,
        "extend_duration_seconds": session.extend_duration_seconds,
        "max_extensions": session.max_extensions,
        "extensions_used": session.extensions_used,
        "slot_ids": [str(slot_id) for slot_id in session.slot_ids],
        "created_at_utc": _to_iso_utc(session.created_at, name="created_at"),
    }


def _row_to_notification(row: Mapping[str, Any]) -> Notification:
    return Notification(
        notification_id=UUID(str(row["notification_id"])),
        type=NotificationType(str(row["type"])),
        recipient_scope=RecipientScope(str(row["recipient_scope"])),
        recipient_id=_opt_uuid(row.get("recipient_id")),
        message=str(row["message"]),
        priority=NotificationPriority(str(row.get("priority", "MEDIUM"))),
        auction_session_id=_opt_uuid(row.get("auction_session_id")),
        slot_id=_opt_uuid(row.get("slot_id")),
        created_at=_parse_utc_datetime(row["created_at_utc"]),
        sequence=int(row["sequence"]) if row.get("sequence") is not None else None,
    )


def _notification_to_row(notification: Notification) -> Dict[str, Any]:
    return {
        "notification_id": str(notification.notification_id),
        "type": notification.type.value,
        "recipient_scope": notification.recipient_scope.value,
        "recipient_id": _opt_str(notification.recipient_id),
        "message": notification.message,
        "priority": notification.priority.value,
        "auction_session_id": _opt_str(notification.auction_session_id),
        "slot_id": _opt_str(notification.slot_id),
        "created_at_utc": _to_iso_utc(notification.created_at, name="created_at"),
    }


def changeset_to_payload(changes: ChangeSet) -> Dict[str, Any]:
    """JSON document consumed by apply_auction_changeset()."""

    return {
        "expected": [
            {"table": table, "id": str(row_id), "version": version}
            for (table, row_id), version in sorted(
                changes.expected_versions().items(), key=lambda item: (item[0][0], str(item[0][1]))
            )
        ],
        "insert_sessions": [_session_to_row(s) for s in changes.new_sessions],
        "insert_bids": [_bid_to_row(b) for b in changes.new_bids],
        "update_bids": [_bid_to_row(b) for b in changes.bid_updates.values()],
        "update_slots": [_slot_to_row(s) for s in changes.slot_updates.values()],
        "update_sessions": [_session_to_row(s) for s in changes.session_updates.values()],
        "notifications": [_notification_to_row(n) for n in changes.notifications],
    }


class SupabaseLedgerStore:
    def __init__(self, client: Any):
        self._client = client

    def _select(self, table: str, what: str = "*"):
        return self._client.table(table).select(what)

    @staticmethod
    def _rows(response: Any, action: str) -> List[Mapping[str, Any]]:
        error = getattr(response, "error", None)
        if error:
            raise LedgerStoreError(f"Failed to {action}: {error}")
        return getattr(response, "data", None) or []

    # Reads

    def get_slot(self, slot_id: UUID) -> Optional[Slot]:
        response = self._select(_SLOTS_TABLE).eq("slot_id", str(slot_id)).limit(1).execute()
        rows = self._rows(response, "get slot")
        return _row_to_slot(rows[0]) if rows else None

    def list_slots(
        self,
        slot_ids: Optional[Iterable[UUID]] = None,
        statuses: Optional[Iterable[SlotStatus]] = None,
    ) -> List[Slot]:
        query = self._select(_SLOTS_TABLE)
        if slot_ids is not None:
            query = query.in_("slot_id", [str(slot_id) for slot_id in slot_ids])
        if statuses is not None:
            query = query.in_("status", [s.value for s in statuses])
        response = query.order("slot_number").execute()
        return [_row_to_slot(row) for row in self._rows(response, "list slots")]

    def get_bid(self, bid_id: UUID) -> Optional[Bid]:
        response = self._select(_BIDS_TABLE).eq("bid_id", str(bid_id)).limit(1).execute()
        rows = self._rows(response, "get bid")
        return _row_to_bid(rows[0]) if rows else None

    def list_bids(
        self,
        slot_id: Optional[UUID] = None,
        statuses: Optional[Iterable[BidStatus]] = None,
        company_id: Optional[UUID] = None,
        session_id: Optional[UUID] = None,
    ) -> List[Bid]:
        query = self._select(_BIDS_TABLE)
        if slot_id is not None:
            query = query.eq("slot_id", str(slot_id))
        if statuses is not None:
            query = query.in_("status", [s.value for s in statuses])
        if company_id is not None:
            query = query.eq("company_id", str(company_id))
        if session_id is not None:
            query = query.eq("auction_session_id", str(session_id))
        response = query.order("placed_at_utc").order("bid_seq").execute()
        return [_row_to_bid(row) for row in self._rows(response, "list bids")]

    def get_session(self, session_id: UUID) -> Optional[AuctionSession]:
        response = self._select(_SESSIONS_TABLE).eq("session_id", str(session_id)).limit(1).execute()
        rows = self._rows(response, "get auction session")
        return _row_to_session(rows[0]) if rows else None

    def list_sessions(self, statuses: Optional[Iterable[SessionStatus]] = None) -> List[AuctionSession]:
        query = self._select(_SESSIONS_TABLE)
        if statuses is not None:
            query = query.in_("status", [s.value for s in statuses])
        response = query.order("start_time_utc", desc=True).execute()
        return [_row_to_session(row) for row in self._rows(response, "list auction sessions")]

    def list_notifications(
        self,
        session_id: Optional[UUID] = None,
        type: Optional[NotificationType] = None,
        recipient_scope: Optional[RecipientScope] = None,
        recipient_id: Optional[UUID] = None,
        limit: Optional[int] = None,
    ) -> List[Notification]:
        query = self._select(_NOTIFICATIONS_TABLE)
        if session_id is not None:
            query = query.eq("auction_session_id", str(session_id))
        if type is not None:
            query = query.eq("type", type.value)
        if recipient_scope is not None:
            query = query.eq("recipient_scope", recipient_scope.value)
        if recipient_id is not None:
            query = query.eq("recipient_id", str(recipient_id))
        query = query.order("sequence")
        if limit is not None:
            query = query.limit(limit)
        response = query.execute()
        return [_row_to_notification(row) for row in self._rows(response, "list notifications")]

    # Writes

    def commit(self, changes: ChangeSet) -> None:
        if changes.is_empty:
            return

        try:
            response = self._client.rpc(_APPLY_CHANGESET_RPC, {"p_changes": changeset_to_payload(changes)}).execute()
        except APIError as e:
            # supabase-py raises APIError for some JSON results returned by a
            # PostgreSQL function, successful ones included.
            try:
                result = e.json() if callable(getattr(e, "json", None)) else {}
            except ValueError:
                result = {}
            if not isinstance(result, Mapping) or "success" not in result:
                raise LedgerStoreError(f"Ledger commit failed: {e}") from e
        else:
            error = getattr(response, "error", None)
            if error:
                raise LedgerStoreError(f"Ledger commit failed: {error}")
            result = response.data or {}

        self._raise_for_result(result)

    @staticmethod
    def _raise_for_result(result: Mapping[str, Any]) -> None:
        if result.get("success"):
            return

        code = result.get("error") or "RPC_ERROR"
        message = result.get("message") or "apply_auction_changeset() rejected the change set"
        if code == _VERSION_CONFLICT:
            raise ConcurrencyConflict(message)
        logger.error("Ledger commit rejected", extra={"error_code": code, "error_message": message})
        raise LedgerStoreError(message, code=code)


__all__ = ["SupabaseLedgerStore", "changeset_to_payload"]
