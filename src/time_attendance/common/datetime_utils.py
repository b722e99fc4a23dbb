from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional


def now_utc() -> datetime:
    """Current time as an aware UTC datetime.

    Note: Wrapped so tests can patch/mocked easier.
    """
    return datetime.now(timezone.utc)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp from the backend ('Z' suffix allowed)."""
    if not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def to_iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat()


def split_seconds(total_seconds: int) -> dict:
    """Break a duration into hours/minutes/seconds for display."""
    total = max(0, int(total_seconds))
    return {
        "hours": total // 3600,
        "minutes": (total % 3600) // 60,
        "seconds": total % 60,
        "totalSeconds": total,
    }
