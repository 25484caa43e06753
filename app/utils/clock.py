# =======================================================================================
# app/utils/clock.py - Time Helpers
# =======================================================================================
import time
from datetime import datetime, timezone


def utcnow() -> datetime:
    """Naive UTC timestamp, microsecond resolution (DB columns are naive)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def epoch_ms() -> int:
    return int(time.time() * 1000)
