"""Historical snapshot and the six-section post-release report."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Mapping, Optional

from core import CalendarRow, ReleaseEvent
from core.dates import add_utc_days, to_date_only
from intelligence.completion import CompletionService
from sources.base import CalendarProvider
from utils.exceptions import ConfigurationError, LLMError, ProviderError

logger = logging.getLogger(__name__)

ANALYSIS_TIMEOUT_SEC = 120.0
HISTORY_LIMIT = 6
HISTORY_MAX_EVENTS = 300

REPORT_SECTIONS = (
    "## 1) Headline Surprise",
    "## 2) Details and Decomposition",
    "## 3) Revision and Trend/Regime",
    "## 4) Rates/Policy Implication",
    "## 5) FX and Risk Assets",
    "## 6) Risks and Next Watch Items",
)

INDICATOR_SYNONYMS = (
    "consumer price index",
    "cpi",
    "inflation rate yoy",
    "inflation rate mom",
    "core inflation rate",
)


def is_likely_indicator_event(event: Optional[str], category: Optional[str] = None) -> bool:
    text = " ".join(v for v in (event, category) if v).lower()
    return bool(text) and any(term in text for term in INDICATOR_SYNONYMS)


def format_scalar(value: Any) -> str:
    if value is None:
        return "n/a"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (str, int, float, bool)):
        return str(value)
    return json.dumps(value, ensure_ascii=False)


async def fetch_history(
    calendar: Optional[CalendarProvider],
    *,
    country: str,
    event_date: str,
    history_days: int,
) -> List[Dict[str, Any]]:
    """Latest prior indicator releases in [event_date - history_days, event_date); empty on provider errors."""
    if calendar is None:
        return []
    try:
        rows: List[CalendarRow] = await calendar.list_events(
            country=country,
            start_date=add_utc_days(event_date, -int(history_days)),
            end_date=event_date,
            importance=3,
            max_events=HISTORY_MAX_EVENTS,
        )
    except (ProviderError, ConfigurationError) as exc:
        logger.warning("history fetch failed event_date=%s error=%s", event_date, exc)
        return []
    prior = [
        row for row in rows
        if (to_date_only(row.date) or "9999") < event_date and row.event and is_likely_indicator_event(row.event, row.category)
    ]
    prior.sort(key=lambda row: row.date or "", reverse=True)
    return [row.model_dump(mode="json", exclude={"raw"}, exclude_none=True) for row in prior[:HISTORY_LIMIT]]


def build_analysis_prompt(
    event: ReleaseEvent,
    official_cards: Mapping[str, Any],
    media_cards: Mapping[str, Any],
    history: List[Dict[str, Any]],
) -> str:
    def dump(value: Any) -> str:
        return json.dumps(value, indent=2, ensure_ascii=False, default=str)

    return "\n".join([
        "You are a sell-side macro analyst.",
        "Generate a structured 6-section post-release report for US CPI.",
        "Use only the provided evidence cards, release event card, and 6-period history snapshot.",
        "Media claims carry a confidence label; treat low-confidence claims as unverified.",
        "Do not use external assumptions.",
        "Required sections:",
        *REPORT_SECTIONS,
        "",
        f"Event card:\n{dump(event.model_dump(mode='json', by_alias=True, exclude_none=True))}",
        "",
        f"Official evidence cards:\n{dump(dict(official_cards))}",
        "",
        f"Media claim cards:\n{dump(dict(media_cards))}",
        "",
        f"Historical snapshot (latest 6 prior releases):\n{dump(history)}",
    ])


def build_fallback_report(
    event: ReleaseEvent,
    official_cards: Mapping[str, Any],
    history: List[Dict[str, Any]],
) -> str:
    headline = official_cards.get("headline_numbers")
    headline = headline if isinstance(headline, dict) else {}

    def pick(key: str) -> Any:
        for value in (headline.get(key), getattr(event, key), getattr(event, f"{key}_number")):
            if value is not None:
                return value
        return None

    history_summary = "; ".join(
        f"{entry.get('date') or 'unknown'}: {entry.get('event') or ''}" for entry in history[:HISTORY_LIMIT]
    )
    return "\n".join([
        REPORT_SECTIONS[0],
        f"US CPI release: actual {format_scalar(pick('actual'))}, "
        f"consensus {format_scalar(pick('consensus'))}, previous {format_scalar(pick('previous'))}.",
        "",
        REPORT_SECTIONS[1],
        "Official evidence cards indicate the headline print and decomposition signals should drive "
        "near-term inflation interpretation.",
        "",
        REPORT_SECTIONS[2],
        f"Recent release memory (up to 6 prints): {history_summary or 'not available'}.",
        "",
        REPORT_SECTIONS[3],
        "If inflation surprise is positive versus consensus, rate-cut pricing may reprice later; "
        "downside surprises support earlier easing expectations.",
        "",
        REPORT_SECTIONS[4],
        "A hotter print is generally USD-supportive and can pressure duration-sensitive risk assets; "
        "a cooler print can invert that mix.",
        "",
        REPORT_SECTIONS[5],
        "Watch shelter and services stickiness, base effects, and revisions that alter the inferred "
        "disinflation path.",
        "",
    ])


async def generate_report(
    *,
    event: ReleaseEvent,
    official_cards: Mapping[str, Any],
    media_cards: Mapping[str, Any],
    history: List[Dict[str, Any]],
    completion: Optional[CompletionService],
    model: Optional[str] = None,
) -> str:
    report = ""
    if completion is not None:
        prompt = build_analysis_prompt(event, official_cards, media_cards, history)
        try:
            report = await completion.complete_text(prompt, timeout=ANALYSIS_TIMEOUT_SEC, model=model)
        except LLMError as exc:
            logger.warning("analysis fell back to template: %s", exc)
            report = ""
    if not report.strip():
        report = build_fallback_report(event, official_cards, history)
    return report.strip()
