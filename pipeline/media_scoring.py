"""Explainable rule scoring and selection for media article candidates."""

from __future__ import annotations

import re
from typing import List, Optional, Sequence, Tuple
from urllib.parse import urlparse

from core import MediaCandidate

SELECTION_THRESHOLD = 6
MAX_ALTERNATES = 3

_HOUR_MS = 3_600_000

# Case-sensitive abbreviations avoid matching the pronoun "us".
_COUNTRY_ABBREV_RE = re.compile(r"(?<![A-Za-z])(U\.S\.?|US)(?![A-Za-z])")
_COUNTRY_WORD_RE = re.compile(r"\b(united states|american|america)\b", re.IGNORECASE)
_INDICATOR_RE = re.compile(r"\b(cpi|consumer prices?|consumer price index|inflation)\b", re.IGNORECASE)
_NUMERIC_RE = re.compile(r"(-?\d+(?:\.\d+)?\s*(?:%|percent\b|pct\b))|(\b\d+\.\d+\b)", re.IGNORECASE)
_FORECAST_RE = re.compile(
    r"\b(forecast\w*|expect\w*|estimate[sd]?|consensus|economists polled|projected|anticipated)\b",
    re.IGNORECASE,
)

PREFERRED_SECTIONS = ("/world/us/", "/markets/us/", "/business/finance/", "/markets/econ-world/")
OFF_TOPIC_SECTIONS = (
    "/world/",
    "/markets/emerging/",
    "/markets/commodities/",
    "/business/autos-transportation/",
    "/business/energy/",
    "/sports/",
    "/lifestyle/",
)


def has_country_keyword(text: str) -> bool:
    value = str(text or "")
    return bool(_COUNTRY_ABBREV_RE.search(value) or _COUNTRY_WORD_RE.search(value))


def has_indicator_keyword(text: str) -> bool:
    return bool(_INDICATOR_RE.search(str(text or "")))


def preview_features(preview: str) -> List[str]:
    """Named features present in a body preview, in fixed order."""
    text = str(preview or "")
    features = []
    if _NUMERIC_RE.search(text):
        features.append("numeric")
    if _FORECAST_RE.search(text):
        features.append("forecast")
    if has_indicator_keyword(text):
        features.append("indicator")
    return features


def _url_path(url: str) -> str:
    path = urlparse(url).path or "/"
    return path if path.endswith("/") else f"{path}/"


def section_bonus(url: str) -> Tuple[int, str]:
    path = _url_path(url)
    for section in PREFERRED_SECTIONS:
        if path.startswith(section):
            return 1, f"section_preferred:{section}"
    for section in OFF_TOPIC_SECTIONS:
        if path.startswith(section):
            return -1, f"section_off_topic:{section}"
    return 0, "section_neutral"


def _dropped(candidate: MediaCandidate, score: int, reasons: List[str], drop_reason: str) -> MediaCandidate:
    return candidate.model_copy(
        update={"score": score, "reasons": list(reasons), "dropped": True, "drop_reason": drop_reason}
    )


def score_candidate(candidate: MediaCandidate, target_ms: int) -> MediaCandidate:
    """
    Apply time, title, preview and section rules in order.

    The first drop rule ends scoring; the returned copy carries the partial
    score, the ordered reasons and the drop reason.
    """
    score = 0
    reasons: List[str] = []

    if candidate.published_at_ms is None:
        reasons.append("time:drop missing")
        return _dropped(candidate, score, reasons, "missing_timestamp")
    delta_hours = abs(int(candidate.published_at_ms) - int(target_ms)) / _HOUR_MS
    if delta_hours <= 2:
        score += 3
        reasons.append(f"time:+3 ({delta_hours:.1f}h)")
    elif delta_hours <= 6:
        score += 1
        reasons.append(f"time:+1 ({delta_hours:.1f}h)")
    else:
        reasons.append(f"time:drop ({delta_hours:.1f}h)")
        return _dropped(candidate, score, reasons, "time_window>6h")

    title = candidate.title or ""
    country = has_country_keyword(title)
    indicator = has_indicator_keyword(title)
    if country and indicator:
        score += 3
        reasons.append("title:+3 country+indicator")
    elif indicator:
        score += 1
        reasons.append("title:+1 indicator_only")
    elif country:
        reasons.append("title:drop country_only")
        return _dropped(candidate, score, reasons, "title_missing_indicator")
    else:
        reasons.append("title:drop no_keywords")
        return _dropped(candidate, score, reasons, "title_irrelevant")

    features = preview_features(candidate.preview)
    if len(features) >= 3:
        score += 2
        reasons.append(f"preview:+2 ({','.join(features)})")
    elif len(features) == 2:
        score += 1
        reasons.append(f"preview:+1 ({','.join(features)})")
    else:
        reasons.append(f"preview:+0 ({','.join(features) or 'none'})")

    bonus, label = section_bonus(candidate.url)
    score += bonus
    reasons.append(f"{label}:{bonus:+d}")

    return candidate.model_copy(update={"score": score, "reasons": reasons, "dropped": False, "drop_reason": None})


def _sort_key(candidate: MediaCandidate) -> Tuple[int, int, str]:
    published = candidate.published_at_ms if candidate.published_at_ms is not None else 2 ** 62
    return (-int(candidate.score), int(published), candidate.url)


def rank_candidates(candidates: Sequence[MediaCandidate]) -> List[MediaCandidate]:
    """Non-dropped candidates by score desc, then earlier publication, then URL."""
    return sorted((c for c in candidates if not c.dropped), key=_sort_key)


def select_candidate(
    candidates: Sequence[MediaCandidate],
    *,
    threshold: int = SELECTION_THRESHOLD,
) -> Tuple[Optional[MediaCandidate], List[MediaCandidate], Optional[str]]:
    """Return (selected, alternates, degrade_reason); selected is None when degraded."""
    ranked = rank_candidates(candidates)
    if not ranked:
        return None, [], "no_scored_candidates"
    top = ranked[0]
    if top.score < threshold:
        return None, ranked[:MAX_ALTERNATES], "best_score_below_threshold"
    return top, ranked[1:1 + MAX_ALTERNATES], None
