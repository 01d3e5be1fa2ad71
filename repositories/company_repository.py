"""
Company repository (eligibility provider).

Read-only lookup of a bidder's company: auction eligibility flag and maximum
bid ceiling. The auction engine never writes companies.
"""

from __future__ import annotations

import threading
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional, Protocol
from uuid import UUID

from domain.company import Company
from domain.errors import LedgerStoreError

_COMPANIES_TABLE: str = "companies"


class CompanyDirectory(Protocol):
    def get_company(self, company_id: UUID) -> Optional[Company]: ...


def _parse_utc_datetime(value: Any) -> datetime:
    """Parse a Supabase timestamp into a timezone-aware UTC datetime."""
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        text = value.replace("Z", "+00:00")
        dt = datetime.fromisoformat(text)
    else:
        raise TypeError(f"Unsupported timestamp type: {type(value)!r}")

    if dt.tzinfo is None or dt.utcoffset() is None:
        return dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(timezone.utc)


def _row_to_company(row: Mapping[str, Any]) -> Company:
    max_bid = row.get("max_bid_amount")
    return Company(
        company_id=UUID(str(row["company_id"])),
        name=str(row["name"]),
        auction_eligible=bool(row.get("auction_eligible", True)),
        max_bid_amount=Decimal(str(max_bid)) if max_bid is not None else None,
        is_active=bool(row.get("is_active", True)),
        created_at=_parse_utc_datetime(row["created_at_utc"]) if row.get("created_at_utc") else None,
        updated_at=_parse_utc_datetime(row["updated_at_utc"]) if row.get("updated_at_utc") else None,
    )


class SupabaseCompanyRepository:
    def __init__(self, client: Any):
        self._client = client

    def get_company(self, company_id: UUID) -> Optional[Company]:
        """
        Get a company by its ID.

        Returns:
            Company domain model or None if not found
        """
        response = (
            self._client.table(_COMPANIES_TABLE)
            .select("*")
            .eq("company_id", str(company_id))
            .limit(1)
            .execute()
        )

        error = getattr(response, "error", None)
        if error:
            raise LedgerStoreError(f"Failed to fetch company: {error}")

        rows = getattr(response, "data", None) or []
        if not rows:
            return None
        return _row_to_company(rows[0])


class InMemoryCompanyDirectory:
    """Company lookup backed by a dict; used with the in-memory ledger store."""

    def __init__(self) -> None:
        self._companies: Dict[UUID, Company] = {}
        self._lock = threading.Lock()

    def add(self, company: Company) -> Company:
        with self._lock:
            self._companies[company.company_id] = company
        return company

    def add_row(self, row: Mapping[str, Any]) -> Company:
        """Add a company given as a `companies` table row."""
        return self.add(_row_to_company(row))

    def get_company(self, company_id: UUID) -> Optional[Company]:
        return self._companies.get(company_id)


__all__ = [
    "CompanyDirectory",
    "InMemoryCompanyDirectory",
    "SupabaseCompanyRepository",
]
