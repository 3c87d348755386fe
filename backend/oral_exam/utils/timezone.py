"""
Time helpers.

Everything persisted is naive UTC; the exam runs in Israel, so e-mails are
rendered in Asia/Jerusalem.
"""
from datetime import datetime
from typing import Optional

import pytz

from ..core.config import settings

LOCAL_TZ = pytz.timezone(settings.default_timezone)

HEBREW_MONTHS = [
    "ינואר", "פברואר", "מרץ", "אפריל", "מאי", "יוני",
    "יולי", "אוגוסט", "ספטמבר", "אוקטובר", "נובמבר", "דצמבר",
]


def utc_now() -> datetime:
    """Current time as naive UTC."""
    return datetime.now(pytz.UTC).replace(tzinfo=None)


def to_naive_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Normalize an aware or naive datetime to naive UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(pytz.UTC).replace(tzinfo=None)


def parse_iso(value: str) -> datetime:
    """Parse an ISO-8601 string (``Z`` suffix allowed) to naive UTC."""
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return to_naive_utc(datetime.fromisoformat(value))


def to_iso(dt: Optional[datetime]) -> Optional[str]:
    if dt is None:
        return None
    return dt.replace(tzinfo=pytz.UTC).isoformat().replace("+00:00", "Z")


def utc_to_local(utc_dt: datetime) -> datetime:
    if utc_dt.tzinfo is None:
        utc_dt = utc_dt.replace(tzinfo=pytz.UTC)
    return utc_dt.astimezone(LOCAL_TZ)


def format_hebrew_date(utc_dt: Optional[datetime]) -> str:
    if utc_dt is None:
        return "לא ידוע"
    local = utc_to_local(utc_dt)
    return f"{local.day} ב{HEBREW_MONTHS[local.month - 1]} {local.year}"


def format_local_time(utc_dt: Optional[datetime]) -> str:
    if utc_dt is None:
        return "לא ידוע"
    return utc_to_local(utc_dt).strftime("%H:%M")
