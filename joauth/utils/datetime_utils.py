from datetime import datetime, timezone


def get_now_utc() -> datetime:
    """Get current datetime in UTC"""
    return datetime.now(timezone.utc)


def format_iso_utc(dt: datetime) -> str:
    """Format datetime as ISO string, treating naive values as UTC"""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat()
