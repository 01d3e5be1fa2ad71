"""
Auction engine configuration.

Values come from the process environment, optionally seeded from a `.env`
file at the project root.

- AUCTION_LEDGER_BACKEND: `memory` (default) or `supabase`
- SUPABASE_URL / SUPABASE_KEY: required for the `supabase` backend
- AUCTION_MAX_COMMIT_ATTEMPTS: optimistic commit retries per operation (default 5)
- AUCTION_AUTO_EXTEND_WINDOW_SECONDS: closing window that triggers auto-extension (default 300)
- AUCTION_LOG_LEVEL: root log level for the API process (default INFO)
- AUCTION_SEED_FILE: optional JSON file of slots and companies loaded into the
  `memory` backend at startup (ignored by `supabase`)
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

LEDGER_BACKENDS = ("memory", "supabase")


@dataclass(frozen=True, slots=True)
class AuctionSettings:
    ledger_backend: str = "memory"
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    max_commit_attempts: int = 5
    auto_extend_window_seconds: int = 300
    log_level: str = "INFO"
    seed_file: Optional[str] = None

    def __post_init__(self) -> None:
        if self.ledger_backend not in LEDGER_BACKENDS:
            raise RuntimeError(
                f"Invalid AUCTION_LEDGER_BACKEND: {self.ledger_backend!r}. "
                f"Expected one of {', '.join(LEDGER_BACKENDS)}."
            )
        if self.max_commit_attempts < 1:
            raise RuntimeError("AUCTION_MAX_COMMIT_ATTEMPTS must be >= 1")
        if self.auto_extend_window_seconds < 0:
            raise RuntimeError("AUCTION_AUTO_EXTEND_WINDOW_SECONDS must be >= 0")


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"Environment variable {name} must be an integer, got {raw!r}") from None


def settings_from_env() -> AuctionSettings:
    """Build settings from the current environment (loads `.env` if present)."""

    env_path = Path(__file__).parent / ".env"
    load_dotenv(dotenv_path=env_path)

    return AuctionSettings(
        ledger_backend=os.getenv("AUCTION_LEDGER_BACKEND", "memory").strip().lower(),
        supabase_url=os.getenv("SUPABASE_URL"),
        supabase_key=os.getenv("SUPABASE_KEY"),
        max_commit_attempts=_int_env("AUCTION_MAX_COMMIT_ATTEMPTS", 5),
        auto_extend_window_seconds=_int_env("AUCTION_AUTO_EXTEND_WINDOW_SECONDS", 300),
        log_level=os.getenv("AUCTION_LOG_LEVEL", "INFO").upper(),
        seed_file=os.getenv("AUCTION_SEED_FILE") or None,
    )


@lru_cache(maxsize=1)
def load_settings() -> AuctionSettings:
    return settings_from_env()


__all__ = ["AuctionSettings", "load_settings", "settings_from_env"]
