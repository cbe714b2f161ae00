import uuid
from datetime import datetime, timezone
from typing import Optional
import pytz

def generate_uuid():
    return str(uuid.uuid4())

def utc_now() -> datetime:
    return datetime.now(timezone.utc)

def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes read back from the database as UTC.

    SQLite drops tzinfo, so values must pass through here before comparison.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)

def start_of_local_day(now: datetime, tz_name: str) -> datetime:
    """Midnight of the current tz_name day, expressed in UTC."""
    tz = pytz.timezone(tz_name)
    local_now = ensure_utc(now).astimezone(tz)
    midnight = tz.localize(datetime(local_now.year, local_now.month, local_now.day))
    return midnight.astimezone(timezone.utc)
