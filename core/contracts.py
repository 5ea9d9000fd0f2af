"""Canonical data contracts for the release engine store, providers and media engine."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .dates import ensure_utc, utcnow

STORE_VERSION = 1

UtcDatetime = Annotated[datetime, AfterValidator(ensure_utc)]
RawValue = Union[str, float, None]


class ReleaseState(str, Enum):
    """Per-event state machine cursor."""

    NEW = "new"
    FETCHED_OFFICIAL = "fetched_official"
    FETCHED_MEDIA = "fetched_media"
    PREPROCESSED = "preprocessed"
    ANALYZED = "analyzed"
    PUBLISHED = "published"
    FAILED_TERMINAL = "failed_terminal"

    @property
    def is_terminal(self) -> bool:
        return self in {ReleaseState.PUBLISHED, ReleaseState.FAILED_TERMINAL}


class AnalysisRunStatus(str, Enum):
    RUNNING = "running"
    PUBLISHED = "published"
    FAILED = "failed"


class _StoreRow(BaseModel):
    """Persisted rows use camelCase keys on disk and ignore unknown fields."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class ReleaseEvent(_StoreRow):
    """One row per unique real-world release."""

    id: str
    event_key: str
    discovered_at: UtcDatetime
    updated_at: UtcDatetime
    source: str = "tradingeconomics"
    calendar_id: Optional[str] = None
    date: Optional[str] = None
    country: Optional[str] = None
    event: Optional[str] = None
    category: Optional[str] = None
    actual: RawValue = None
    consensus: RawValue = None
    previous: RawValue = None
    actual_number: Optional[float] = None
    consensus_number: Optional[float] = None
    previous_number: Optional[float] = None
    importance: Optional[int] = None
    currency: Optional[str] = None
    unit: Optional[str] = None
    reference: Optional[str] = None
    url: Optional[str] = None
    raw: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("calendar_id", mode="before")
    @classmethod
    def _calendar_id_text(cls, value: Any) -> Optional[str]:
        if value is None or isinstance(value, bool):
            return None
        text = str(value).strip()
        return text or None


class ReleaseStatus(_StoreRow):
    """Exactly one row per ReleaseEvent.id."""

    event_id: str
    state: ReleaseState = ReleaseState.NEW
    retry_count: int = 0
    next_attempt_at: Optional[UtcDatetime] = None
    current_run_id: Optional[str] = None
    last_error: Optional[str] = None
    updated_at: UtcDatetime
    published_at: Optional[UtcDatetime] = None

    def is_due(self, now: datetime) -> bool:
        if self.next_attempt_at is None:
            return True
        return self.next_attempt_at <= ensure_utc(now)


class AnalysisRun(_StoreRow):
    """One attempt-lineage through the pipeline for an event."""

    run_id: str
    event_id: str
    status: AnalysisRunStatus = AnalysisRunStatus.RUNNING
    started_at: UtcDatetime
    updated_at: UtcDatetime
    ended_at: Optional[UtcDatetime] = None
    report_path: Optional[str] = None
    report_hash: Optional[str] = None
    published_channel: Optional[str] = None
    error: Optional[str] = None


class StoreDocument(_StoreRow):
    """The whole persisted document; collection keys keep their snake_case names."""

    version: int = STORE_VERSION
    updated_at: UtcDatetime = Field(default_factory=utcnow)
    release_events: List[ReleaseEvent] = Field(default_factory=list, alias="release_events")
    release_status: List[ReleaseStatus] = Field(default_factory=list, alias="release_status")
    analysis_runs: List[AnalysisRun] = Field(default_factory=list, alias="analysis_runs")

    def find_event(self, event_id: str) -> Optional[ReleaseEvent]:
        return next((row for row in self.release_events if row.id == event_id), None)

    def find_status(self, event_id: str) -> Optional[ReleaseStatus]:
        return next((row for row in self.release_status if row.event_id == event_id), None)

    def find_run(self, run_id: str) -> Optional[AnalysisRun]:
        return next((row for row in self.analysis_runs if row.run_id == run_id), None)

    def to_json_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class CalendarRow(BaseModel):
    """Provider-normalized calendar record, tagged by provider."""

    provider: Literal["tradingeconomics", "fred"]
    date: Optional[str] = None
    country: Optional[str] = None
    category: Optional[str] = None
    event: Optional[str] = None
    actual: RawValue = None
    consensus: RawValue = None
    previous: RawValue = None
    actual_number: Optional[float] = None
    consensus_number: Optional[float] = None
    previous_number: Optional[float] = None
    importance: Optional[int] = None
    calendar_id: Optional[str] = None
    currency: Optional[str] = None
    unit: Optional[str] = None
    source: Optional[str] = None
    reference: Optional[str] = None
    url: Optional[str] = None
    raw: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("calendar_id", mode="before")
    @classmethod
    def _calendar_id_text(cls, value: Any) -> Optional[str]:
        if value is None or isinstance(value, bool):
            return None
        text = str(value).strip()
        return text or None


class OfficialReport(BaseModel):
    """Official release reference with an optional body excerpt."""

    release_date: Optional[str] = None
    country: Optional[str] = None
    category: Optional[str] = None
    event: Optional[str] = None
    actual: RawValue = None
    consensus: RawValue = None
    previous: RawValue = None
    actual_number: Optional[float] = None
    consensus_number: Optional[float] = None
    previous_number: Optional[float] = None
    importance: Optional[int] = None
    publisher: str = "Unknown"
    official: bool = False
    report_url: Optional[str] = None
    excerpt: Optional[str] = None
    source_ref: Dict[str, Any] = Field(default_factory=dict)


class WebPage(BaseModel):
    """Web-fetch collaborator output."""

    url: str
    final_url: Optional[str] = None
    status_code: int = 200
    title: Optional[str] = None
    text: str = ""
    truncated: bool = False


class MediaCandidate(BaseModel):
    """A discovered article with its metadata and scoring trail."""

    url: str
    title: Optional[str] = None
    published_at_ms: Optional[int] = None
    published_at_iso: Optional[str] = None
    preview: str = ""
    score: int = 0
    reasons: List[str] = Field(default_factory=list)
    dropped: bool = False
    drop_reason: Optional[str] = None


class MediaSelection(BaseModel):
    """Uniform result of the candidate scoring engine in ok and degraded modes."""

    mode: Literal["ok", "degraded"]
    reason: Optional[str] = None
    confidence: Literal["high", "low"] = "low"
    query: str
    search_url: str
    selected: Optional[MediaCandidate] = None
    alternates: List[MediaCandidate] = Field(default_factory=list)
    candidates: List[MediaCandidate] = Field(default_factory=list)
    article_url: Optional[str] = None
    title: Optional[str] = None
    text: Optional[str] = None
    content_hash: Optional[str] = None
    release_time_ms: int
    release_time_iso: str
    article_time_ms: Optional[int] = None
    article_time_iso: Optional[str] = None
    fetched_at_ms: int
    fetched_at_iso: str
