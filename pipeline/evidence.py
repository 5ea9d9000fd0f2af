"""Evidence cards from official and media text, with deterministic fallbacks for unusable model output."""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from core import ReleaseEvent
from intelligence.completion import CompletionService
from utils.exceptions import LLMError

logger = logging.getLogger(__name__)

PREPROCESS_TIMEOUT_SEC = 90.0
OFFICIAL_PROMPT_CHARS = 12_000
MEDIA_PROMPT_CHARS = 10_000

_SENTENCE_SPLIT_RE = re.compile(r"(?<=[.!?])\s+")


def truncate_for_prompt(value: str, max_chars: int) -> str:
    text = str(value or "")
    if len(text) <= max_chars:
        return text
    return f"{text[:max_chars]}\n...(truncated)"


def _event_card(event: ReleaseEvent) -> str:
    return json.dumps(event.model_dump(mode="json", by_alias=True, exclude_none=True), indent=2, ensure_ascii=False)


def _sentences(text: str, limit: int) -> List[str]:
    return [part.strip() for part in _SENTENCE_SPLIT_RE.split(str(text or "")) if part.strip()][:limit]


def build_official_prompt(event: ReleaseEvent, official_text: str) -> str:
    return "\n".join([
        "You extract macro release evidence cards.",
        "Return JSON only with schema:",
        '{"headline_numbers":{...},"breakdown":{...},"notable_phrases":[...],"risks_or_caveats":[...]}',
        "Focus on US CPI release facts from the official source text.",
        "",
        f"Event card:\n{_event_card(event)}",
        "",
        f"Official source text:\n{truncate_for_prompt(official_text, OFFICIAL_PROMPT_CHARS)}",
    ])


def build_media_prompt(media_text: str) -> str:
    return "\n".join([
        "You extract market narrative claim cards.",
        'Return JSON only with schema: {"claims":[{"claim":"...","reason":"...","quote":"..."}]}',
        "Use only the provided article text and avoid adding external assumptions.",
        "",
        f"Article text:\n{truncate_for_prompt(media_text, MEDIA_PROMPT_CHARS)}",
    ])


def build_official_fallback_cards(event: ReleaseEvent, official_text: Optional[str]) -> Dict[str, Any]:
    surprise = None
    if event.actual_number is not None and event.consensus_number is not None:
        surprise = round(event.actual_number - event.consensus_number, 6)
    text = str(official_text or "").strip()
    return {
        "headline_numbers": {
            "actual": event.actual if event.actual is not None else event.actual_number,
            "consensus": event.consensus if event.consensus is not None else event.consensus_number,
            "previous": event.previous if event.previous is not None else event.previous_number,
            "surprise": surprise,
        },
        "breakdown": {},
        "notable_phrases": _sentences(truncate_for_prompt(text, 400), 3) if text else [],
        "risks_or_caveats": [] if text else ["official_text_unavailable"],
        "fallback": True,
    }


def build_media_fallback_cards(media_text: Optional[str]) -> Dict[str, Any]:
    return {"claims": [{"claim": sentence} for sentence in _sentences(media_text or "", 3)], "fallback": True}


async def _complete_cards(
    completion: Optional[CompletionService],
    prompt: str,
    *,
    model: Optional[str],
    label: str,
) -> Optional[Dict[str, Any]]:
    if completion is None:
        return None
    try:
        parsed = await completion.complete_json(prompt, timeout=PREPROCESS_TIMEOUT_SEC, model=model)
    except LLMError as exc:
        logger.warning("%s cards fell back: %s", label, exc)
        return None
    if not isinstance(parsed, dict) or not parsed:
        logger.warning("%s cards fell back: non-object reply", label)
        return None
    return parsed


async def build_evidence_cards(
    *,
    event: ReleaseEvent,
    official_text: str,
    media_text: str,
    media_confidence: str,
    completion: Optional[CompletionService],
    model: Optional[str] = None,
) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """Return (official evidence cards, media claim cards)."""
    official_cards = await _complete_cards(
        completion, build_official_prompt(event, official_text), model=model, label="official"
    )
    if official_cards is None:
        official_cards = build_official_fallback_cards(event, official_text)

    if not media_text.strip():
        media_cards: Dict[str, Any] = {"claims": []}
    else:
        media_cards = await _complete_cards(
            completion, build_media_prompt(media_text), model=model, label="media"
        ) or build_media_fallback_cards(media_text)
    media_cards = {**media_cards, "confidence": media_confidence}
    return official_cards, media_cards
