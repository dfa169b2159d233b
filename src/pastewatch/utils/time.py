from __future__ import annotations

from datetime import datetime, timezone

def utc_now() -> datetime:
    """Timezone-aware current UTC time (the poller's default clock)."""
    return datetime.now(timezone.utc)
