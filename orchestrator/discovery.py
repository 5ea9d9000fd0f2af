"""Calendar row identity and filtering for release discovery."""

from __future__ import annotations

import hashlib
from datetime import datetime
from typing import Iterable, List

from core import CalendarRow, ReleaseEvent
from core.dates import to_date_only
from pipeline.analysis import INDICATOR_SYNONYMS, is_likely_indicator_event

__all__ = [
    "INDICATOR_SYNONYMS",
    "create_event_id",
    "filter_indicator_rows",
    "is_likely_indicator_event",
    "normalize_event_row",
    "resolve_event_key",
]


def _clean(value: object) -> str:
    return str(value).strip() if value is not None else ""


def resolve_event_key(row: CalendarRow) -> str:
    date = to_date_only(row.date) or "unknown-date"
    country = _clean(row.country).lower() or "unknown-country"
    event = _clean(row.event).lower() or "unknown-event"
    calendar_id = _clean(row.calendar_id)
    return f"{date}|{country}|{event}|{calendar_id}"


def create_event_id(event_key: str) -> str:
    return hashlib.sha256(event_key.encode("utf-8")).hexdigest()[:16]


def normalize_event_row(row: CalendarRow, now: datetime) -> ReleaseEvent:
    event_key = resolve_event_key(row)
    return ReleaseEvent(
        id=create_event_id(event_key),
        event_key=event_key,
        discovered_at=now,
        updated_at=now,
        source=row.provider,
        calendar_id=row.calendar_id,
        date=row.date,
        country=row.country,
        event=row.event,
        category=row.category,
        actual=row.actual,
        consensus=row.consensus,
        previous=row.previous,
        actual_number=row.actual_number,
        consensus_number=row.consensus_number,
        previous_number=row.previous_number,
        importance=row.importance,
        currency=row.currency,
        unit=row.unit,
        reference=row.reference,
        url=row.url,
        raw=dict(row.raw),
    )


def filter_indicator_rows(rows: Iterable[CalendarRow], country: str) -> List[CalendarRow]:
    """Rows for the target country whose event or category names the indicator."""
    target = country.strip().lower()
    return [
        row for row in rows
        if target in _clean(row.country).lower() and is_likely_indicator_event(row.event, row.category)
    ]
