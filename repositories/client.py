"""
Supabase client initialization.

This module contains *only* the database connection setup. The client is
created on first use so that the in-memory ledger backend (and the test suite)
never needs Supabase credentials.

Environment variables required for the `supabase` ledger backend:
- SUPABASE_URL: Your Supabase project URL
- SUPABASE_KEY: Your Supabase API key (use a server-side key only on the backend)
"""

from __future__ import annotations

from functools import lru_cache

# The dependency is `supabase` (supabase-py). If your editor can't resolve it,
# install it in your environment: `pip install supabase`.
from supabase import Client, create_client  # type: ignore[import-not-found]

from settings import AuctionSettings, load_settings


def create_supabase_client(settings: AuctionSettings) -> Client:
    if not settings.supabase_url:
        raise RuntimeError(
            "Missing environment variable: SUPABASE_URL. "
            "Set SUPABASE_URL to your Supabase project URL."
        )

    if not settings.supabase_key:
        raise RuntimeError(
            "Missing environment variable: SUPABASE_KEY. "
            "Set SUPABASE_KEY to your Supabase API key."
        )

    return create_client(settings.supabase_url, settings.supabase_key)


@lru_cache(maxsize=1)
def get_supabase() -> Client:
    """Process-wide Supabase client built from the loaded settings."""

    return create_supabase_client(load_settings())


__all__ = ["create_supabase_client", "get_supabase"]
