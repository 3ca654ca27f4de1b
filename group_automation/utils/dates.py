from datetime import datetime, timezone
from typing import Optional


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Rule windows are stored and compared as naive UTC; aware values are converted."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)
