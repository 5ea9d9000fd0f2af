"""Release pipeline stages: media discovery and scoring, evidence, analysis, delivery."""

from .analysis import (
    build_fallback_report,
    fetch_history,
    generate_report,
    is_likely_indicator_event,
)
from .evidence import (
    build_evidence_cards,
    build_media_fallback_cards,
    build_official_fallback_cards,
)
from .media_discovery import (
    MediaDiscoveryEngine,
    build_search_url,
    extract_article_metadata,
    extract_candidate_urls,
    normalize_article_url,
)
from .media_scoring import rank_candidates, score_candidate, select_candidate
from .notification import DeliveryChannel, TelegramChannel, split_message

__all__ = [
    "build_fallback_report",
    "fetch_history",
    "generate_report",
    "is_likely_indicator_event",
    "build_evidence_cards",
    "build_media_fallback_cards",
    "build_official_fallback_cards",
    "MediaDiscoveryEngine",
    "build_search_url",
    "extract_article_metadata",
    "extract_candidate_urls",
    "normalize_article_url",
    "rank_candidates",
    "score_candidate",
    "select_candidate",
    "DeliveryChannel",
    "TelegramChannel",
    "split_message",
]
