from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Naive UTC now, matching the naive DateTime columns"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def from_epoch(ts: Optional[int]) -> Optional[datetime]:
    """Convert Stripe epoch seconds to a naive UTC datetime (None passes through)"""
    if ts is None:
        return None
    return datetime.fromtimestamp(int(ts), tz=timezone.utc).replace(tzinfo=None)
