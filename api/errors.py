"""
Mapping from auction engine errors to HTTP responses.

- Not found                          -> 404
- State conflicts / invalid windows  -> 400
- Commit retries exhausted           -> 409
- Ledger store unavailable           -> 503
- Anything else                      -> 500

Error bodies are `{"detail": {"code": ..., "message": ...}}`. Bid rejections
use `{"detail": {"reason": ..., "message": ..., "minimum_amount": ...}}`.
"""

from __future__ import annotations

import logging

from fastapi import HTTPException

from domain.errors import (
    AuctionError,
    ConcurrencyConflict,
    InvalidSessionWindow,
    LedgerStoreError,
    NotFoundError,
    StateConflictError,
)
from services.bid_ledger import PlaceBidResult

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR = (
    (NotFoundError, 404),
    (StateConflictError, 400),
    (InvalidSessionWindow, 400),
    (ConcurrencyConflict, 409),
    (LedgerStoreError, 503),
)


def status_for(error: AuctionError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return status_code
    return 400


def to_http_exception(error: Exception, action: str) -> HTTPException:
    """Translate an exception raised while performing `action` into an HTTPException."""

    if isinstance(error, AuctionError):
        return HTTPException(
            status_code=status_for(error),
            detail={"code": error.code, "message": error.message},
        )

    logger.exception("Unexpected error", extra={"action": action})
    return HTTPException(
        status_code=500,
        detail={"code": "InternalError", "message": f"Failed to {action}: {str(error)}"},
    )


def rejection_exception(result: PlaceBidResult) -> HTTPException:
    return HTTPException(
        status_code=400,
        detail={
            "reason": result.reason.value if result.reason else None,
            "message": result.message,
            "minimum_amount": str(result.minimum_amount) if result.minimum_amount is not None else None,
        },
    )


__all__ = ["rejection_exception", "status_for", "to_http_exception"]
