"""UTC date/time helpers shared by the store, workflow and media engine."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from email.utils import parsedate_to_datetime
import re
from typing import Any, Optional

_DATE_ONLY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_date_only(value: Any) -> Optional[str]:
    """Return the YYYY-MM-DD prefix of a provider date string, or None."""
    text = str(value or "").strip()[:10]
    if not _DATE_ONLY_RE.match(text):
        return None
    try:
        date.fromisoformat(text)
    except ValueError:
        return None
    return text


def add_utc_days(date_iso: str, days: int) -> str:
    return (date.fromisoformat(date_iso) + timedelta(days=int(days))).isoformat()


def today_iso(now: Optional[datetime] = None) -> str:
    return ensure_utc(now or utcnow()).date().isoformat()


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse ISO-8601, RFC 2822 or epoch (s/ms) values into aware UTC datetimes."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, (int, float)):
        seconds = float(value) / 1000.0 if float(value) > 1e11 else float(value)
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    text = str(value).strip()
    if not text:
        return None
    if text.isdigit():
        return parse_timestamp(int(text))
    normalized = text.replace("Z", "+00:00").replace("z", "+00:00")
    if _DATE_ONLY_RE.match(normalized):
        normalized = f"{normalized}T00:00:00+00:00"
    try:
        return ensure_utc(datetime.fromisoformat(normalized))
    except ValueError:
        pass
    try:
        return ensure_utc(parsedate_to_datetime(text))
    except (TypeError, ValueError, IndexError):
        return None


def to_epoch_ms(value: datetime) -> int:
    return int(round(ensure_utc(value).timestamp() * 1000))


def iso_from_ms(value_ms: int) -> str:
    dt = datetime.fromtimestamp(int(value_ms) / 1000.0, tz=timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")
