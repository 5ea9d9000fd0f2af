from __future__ import annotations

from datetime import datetime, timedelta, timezone

from core import CalendarRow
from orchestrator.backoff import RETRY_MAX, compute_backoff_delay, plan_retry
from orchestrator.discovery import (
    create_event_id,
    filter_indicator_rows,
    is_likely_indicator_event,
    normalize_event_row,
    resolve_event_key,
)

NOW = datetime(2026, 3, 11, 12, 30, tzinfo=timezone.utc)


def _row(**kwargs) -> CalendarRow:
    base = {
        "provider": "tradingeconomics",
        "date": "2026-03-11T12:30:00",
        "country": "United States",
        "event": "Inflation Rate YoY",
        "category": "Inflation Rate",
        "calendar_id": "123456",
    }
    base.update(kwargs)
    return CalendarRow(**base)


def test_backoff_delay_doubles_then_caps() -> None:
    assert compute_backoff_delay(1) == timedelta(seconds=30)
    assert compute_backoff_delay(2) == timedelta(seconds=60)
    assert compute_backoff_delay(3) == timedelta(seconds=120)
    assert compute_backoff_delay(7) == timedelta(seconds=1920)
    assert compute_backoff_delay(8) == RETRY_MAX
    assert compute_backoff_delay(500) == RETRY_MAX


def test_plan_retry_schedules_until_budget_exhausted() -> None:
    decision = plan_retry(0, 8, NOW)
    assert decision.retry_count == 1
    assert decision.terminal is False
    assert decision.next_attempt_at == NOW + timedelta(seconds=30)

    decision = plan_retry(7, 8, NOW)
    assert decision.retry_count == 8
    assert decision.terminal is False

    decision = plan_retry(8, 8, NOW)
    assert decision.retry_count == 9
    assert decision.terminal is True
    assert decision.next_attempt_at is None


def test_event_key_is_stable_and_lowercased() -> None:
    key = resolve_event_key(_row())
    assert key == "2026-03-11|united states|inflation rate yoy|123456"
    assert create_event_id(key) == create_event_id(resolve_event_key(_row(date="2026-03-11T12:30:00Z")))
    assert len(create_event_id(key)) == 16


def test_event_key_placeholders_for_missing_fields() -> None:
    key = resolve_event_key(_row(date=None, country=None, event=None, calendar_id=None))
    assert key == "unknown-date|unknown-country|unknown-event|"


def test_same_release_discovered_twice_yields_same_id() -> None:
    first = normalize_event_row(_row(), NOW)
    second = normalize_event_row(_row(actual="3.1%"), NOW + timedelta(hours=1))
    assert first.id == second.id
    assert first.source == "tradingeconomics"


def test_indicator_filter_matches_synonyms_and_country() -> None:
    rows = [
        _row(event="Core Inflation Rate MoM"),
        _row(event="CPI s.a", category=None),
        _row(event="Non Farm Payrolls", category="Non Farm Payrolls"),
        _row(country="Euro Area", event="Inflation Rate YoY"),
    ]
    kept = filter_indicator_rows(rows, "united states")
    assert [r.event for r in kept] == ["Core Inflation Rate MoM", "CPI s.a"]
    assert is_likely_indicator_event(None, "Consumer Price Index")
    assert not is_likely_indicator_event(None, None)
