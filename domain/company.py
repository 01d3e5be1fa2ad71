"""
Domain: Company (bidder) accounts.

Represents advertisers that bid on slots. The engine only reads companies;
they are provisioned and maintained by the surrounding platform.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from .time import require_optional_utc_timestamp


@dataclass(frozen=True, slots=True)
class Company:
    """
    Company eligibility snapshot used by the bid validator.

    Supports:
    - Auction eligibility flag (auction_eligible)
    - Per-company bid ceiling (max_bid_amount, None means no ceiling)
    - Account deactivation (is_active)
    """

    company_id: UUID
    name: str
    auction_eligible: bool = True
    max_bid_amount: Optional[Decimal] = None
    is_active: bool = True

    # Timestamps
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        """Validate timestamps are UTC-aware."""
        require_optional_utc_timestamp("created_at", self.created_at)
        require_optional_utc_timestamp("updated_at", self.updated_at)
        if self.max_bid_amount is not None and self.max_bid_amount < Decimal("0"):
            raise ValueError("max_bid_amount must be >= 0")

    def can_bid(self) -> bool:
        """Check if the company may take part in auctions at all."""
        return self.is_active and self.auction_eligible

    def allows_amount(self, amount: Decimal) -> bool:
        """Check the amount against the company's configured ceiling."""
        return self.max_bid_amount is None or amount <= self.max_bid_amount
