"""
Timezone-safe datetime utilities.

All timestamps are stored in UTC. Providers such as ClickUp exchange
timestamps as epoch milliseconds, so conversion helpers live here too.
"""
from datetime import datetime, timezone
from typing import Optional, Union


def utc_now() -> datetime:
    """Return current UTC datetime with timezone info attached."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """
    Convert any datetime to UTC.

    Naive datetimes are assumed to already be UTC (SQLite drops tzinfo on
    round trips).
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_epoch_ms(dt: datetime) -> int:
    """Convert a datetime to integer epoch milliseconds."""
    return int(ensure_utc(dt).timestamp() * 1000)


def from_epoch_ms(value: Union[int, str, None]) -> Optional[datetime]:
    """Parse epoch milliseconds (int or numeric string) into a UTC datetime."""
    if value is None or value == "":
        return None
    return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)

