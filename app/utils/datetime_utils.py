from datetime import datetime, timezone
from zoneinfo import ZoneInfo


def utc_now() -> datetime:
    """
    Get current UTC datetime as a timezone-aware datetime.

    Returns:
        datetime: Current UTC datetime with timezone info
    """
    return datetime.now(timezone.utc)


def naive_utc_now() -> datetime:
    """
    Get current UTC datetime as a naive datetime (no timezone info).
    This is useful for storing in DATETIME fields which don't store timezone info.

    Returns:
        datetime: Current UTC datetime without timezone info
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_zone(dt: datetime, zone_name: str) -> datetime:
    """
    Convert a datetime into the given IANA zone.

    Args:
        dt: Datetime to convert, naive values are assumed to be UTC
        zone_name: IANA timezone name, e.g. "Asia/Kolkata"

    Returns:
        datetime: Timezone-aware datetime in the requested zone
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(ZoneInfo(zone_name))
