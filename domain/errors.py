"""
Domain: error taxonomy for the auction engine.

Three families are surfaced to callers:
- Not found (unknown slot, bid, or session).
- State conflicts (invalid session transition, extension ceiling, terminal bid,
  slot that cannot be bound). The caller must re-fetch state before retrying.
- Concurrency conflicts raised by a Ledger Store when a committed row changed
  under a change set. Services retry these internally with a bounded budget.

Bid validation rejections are *not* exceptions; see `domain.bid.BidDecision`.
"""

from __future__ import annotations

from typing import Optional
from uuid import UUID


class AuctionError(Exception):
    """Base class for all auction engine errors (machine-readable `code` + message)."""

    code: str = "AuctionError"

    def __init__(self, message: str, *, code: Optional[str] = None):
        if code is not None:
            self.code = code
        self.message = message
        super().__init__(message)


class NotFoundError(AuctionError):
    code = "NotFound"


class SlotNotFound(NotFoundError):
    code = "SlotNotFound"

    def __init__(self, slot_id: UUID):
        self.slot_id = slot_id
        super().__init__(f"Slot not found: {slot_id}")


class BidNotFound(NotFoundError):
    code = "BidNotFound"

    def __init__(self, bid_id: UUID):
        self.bid_id = bid_id
        super().__init__(f"Bid not found: {bid_id}")


class SessionNotFound(NotFoundError):
    code = "SessionNotFound"

    def __init__(self, session_id: UUID):
        self.session_id = session_id
        super().__init__(f"Auction session not found: {session_id}")


class StateConflictError(AuctionError):
    code = "StateConflict"


class InvalidSessionTransition(StateConflictError):
    """Raised when a session transition is attempted from a state that does not allow it."""

    code = "InvalidSessionTransition"

    def __init__(self, from_status: str, to_status: str, detail: Optional[str] = None):
        self.from_status = from_status
        self.to_status = to_status
        message = f"Cannot transition auction session from {from_status} to {to_status}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class ExtensionLimitReached(InvalidSessionTransition):
    code = "ExtensionLimitReached"

    def __init__(self, extensions_used: int, max_extensions: int):
        self.extensions_used = extensions_used
        self.max_extensions = max_extensions
        super().__init__(
            "ACTIVE",
            "ACTIVE",
            f"maximum number of extensions reached ({extensions_used}/{max_extensions})",
        )


class AlreadyTerminal(StateConflictError):
    """Raised on withdraw/accept/reject of a bid that is no longer ACTIVE."""

    code = "AlreadyTerminal"

    def __init__(self, bid_id: UUID, status: str):
        self.bid_id = bid_id
        self.status = status
        super().__init__(f"Bid {bid_id} is {status}; only ACTIVE bids can be changed")


class SlotUnavailable(StateConflictError):
    code = "SlotUnavailable"


class InvalidSessionWindow(AuctionError):
    code = "InvalidSessionWindow"


class ConcurrencyConflict(AuctionError):
    """A row read by a change set was modified before the change set committed."""

    code = "ConcurrencyConflict"


class LedgerStoreError(AuctionError):
    """Infrastructure failure talking to the Ledger Store."""

    code = "LedgerStoreError"


__all__ = [
    "AuctionError",
    "NotFoundError",
    "SlotNotFound",
    "BidNotFound",
    "SessionNotFound",
    "StateConflictError",
    "InvalidSessionTransition",
    "ExtensionLimitReached",
    "AlreadyTerminal",
    "SlotUnavailable",
    "InvalidSessionWindow",
    "ConcurrencyConflict",
    "LedgerStoreError",
]
