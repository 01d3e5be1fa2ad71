"""
Check auction status - slot pool breakdown, live sessions and outbox size.

Reads the Supabase tables directly (AUCTION_LEDGER_BACKEND=supabase setup).
"""

import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from repositories.client import get_supabase


def check_auction_status():
    """Print slot counts by status, live sessions and notification outbox size."""

    supabase = get_supabase()

    slots = getattr(supabase.table("slots").select("status, current_bid").execute(), "data", []) or []

    counts = {}
    committed_bids = 0.0
    for row in slots:
        status = row.get("status", "Unknown")
        counts[status] = counts.get(status, 0) + 1
        committed_bids += float(row.get("current_bid") or 0)

    print("=" * 50)
    print("SLOT STATUS")
    print("=" * 50)
    print(f"Total slots:               {len(slots)}")
    for status in sorted(counts.keys()):
        print(f"{status + ':':<27}{counts[status]}")
    print(f"Sum of current bids:       ${committed_bids:,.2f}")
    print("=" * 50)

    sessions = (
        supabase.table("auction_sessions")
        .select("session_id, name, status, end_time_utc, extensions_used, max_extensions")
        .in_("status", ["SCHEDULED", "ACTIVE", "PAUSED"])
        .order("start_time_utc")
        .execute()
    )
    rows = getattr(sessions, "data", []) or []

    print("\nLive auction sessions:")
    print("-" * 50)
    if not rows:
        print("(none)")
    for row in rows:
        print(
            f"{row['name']} [{row['status']}] ends {row['end_time_utc']} "
            f"(extensions {row.get('extensions_used', 0)}/{row.get('max_extensions', 0)})"
        )
    print("-" * 50)

    outbox = supabase.table("auction_notifications").select("notification_id", count="exact").execute()
    print(f"\nNotifications in outbox:   {getattr(outbox, 'count', 0) or 0}")


if __name__ == "__main__":
    check_auction_status()
