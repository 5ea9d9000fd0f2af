"""Core contracts and shared types for the release engine."""

from .contracts import (
    STORE_VERSION,
    AnalysisRun,
    AnalysisRunStatus,
    CalendarRow,
    MediaCandidate,
    MediaSelection,
    OfficialReport,
    ReleaseEvent,
    ReleaseState,
    ReleaseStatus,
    StoreDocument,
    WebPage,
)

__all__ = [
    "STORE_VERSION",
    "AnalysisRun",
    "AnalysisRunStatus",
    "CalendarRow",
    "MediaCandidate",
    "MediaSelection",
    "OfficialReport",
    "ReleaseEvent",
    "ReleaseState",
    "ReleaseStatus",
    "StoreDocument",
    "WebPage",
]
