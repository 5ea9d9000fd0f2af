"""Per-event release state machine: discovery, one step per due event per tick, retry/backoff."""

from __future__ import annotations

from datetime import datetime
import hashlib
import json
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from config import ReleaseEngineSettings
from core import AnalysisRunStatus, OfficialReport, ReleaseEvent, ReleaseState, ReleaseStatus
from core.dates import add_utc_days, parse_timestamp, to_date_only, to_epoch_ms, today_iso, utcnow
from intelligence.completion import CompletionService
from pipeline.analysis import fetch_history, generate_report
from pipeline.evidence import build_evidence_cards
from pipeline.media_discovery import MediaDiscoveryEngine
from pipeline.notification import DeliveryChannel
from sources.base import CalendarProvider, OfficialReportProvider, WebFetcher
from storage import ReleaseStore, RunSnapshot
from utils.exceptions import ConfigurationError, DeliveryError, StepError

from .backoff import plan_retry
from .discovery import filter_indicator_rows, is_likely_indicator_event, normalize_event_row
from .store import ReleaseStateStore

logger = logging.getLogger(__name__)

DISCOVERY_IMPORTANCE = 3
DISCOVERY_MAX_EVENTS = 200
OFFICIAL_MAX_REPORTS = 20
OFFICIAL_MAX_CHARS = 16_000
MEDIA_MAX_CHARS = 14_000

OFFICIAL_ARTIFACT = "official_artifact.json"
MEDIA_RAW = "media_raw.json"
OFFICIAL_CARDS = "official_evidence_cards.json"
MEDIA_CARDS = "media_claim_cards.json"
REPORT_FILE = "analysis_report.md"

StepFn = Callable[[ReleaseEvent, RunSnapshot, str], Awaitable[None]]


def hash_text(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def hash_object(value: Any) -> str:
    return hash_text(json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str))


class ReleaseWorkflow:
    """
    Drives every tracked release through
    new -> fetched_official -> fetched_media -> preprocessed -> analyzed -> published.

    Each ``tick`` discovers events, then advances each due event by exactly one
    step. Step failures go through the retry policy; nothing raises out of ``tick``.
    """

    def __init__(
        self,
        settings: ReleaseEngineSettings,
        *,
        store: Optional[ReleaseStore] = None,
        calendar: Optional[CalendarProvider] = None,
        reports: Optional[OfficialReportProvider] = None,
        web_fetcher: Optional[WebFetcher] = None,
        media_engine: Optional[MediaDiscoveryEngine] = None,
        completion: Optional[CompletionService] = None,
        delivery: Optional[DeliveryChannel] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.settings = settings
        self.store = store or ReleaseStore(settings.store_path)
        self.state_store = ReleaseStateStore(self.store)
        self.calendar = calendar
        self.reports = reports
        self.web_fetcher = web_fetcher
        self.media_engine = media_engine or MediaDiscoveryEngine(
            web_fetcher,
            max_candidates=settings.max_media_candidates,
            max_chars=MEDIA_MAX_CHARS,
            now_ms=lambda: to_epoch_ms(self.clock()),
        )
        self.completion = completion
        self.delivery = delivery
        self.clock = clock
        self.base_dir = self.store.path.parent
        self.steps: Dict[ReleaseState, Tuple[str, StepFn, ReleaseState]] = {
            ReleaseState.NEW: ("fetch_official", self.fetch_official, ReleaseState.FETCHED_OFFICIAL),
            ReleaseState.FETCHED_OFFICIAL: ("fetch_media", self.fetch_media, ReleaseState.FETCHED_MEDIA),
            ReleaseState.FETCHED_MEDIA: ("preprocess", self.preprocess, ReleaseState.PREPROCESSED),
            ReleaseState.PREPROCESSED: ("analyze", self.analyze, ReleaseState.ANALYZED),
            ReleaseState.ANALYZED: ("publish", self.publish, ReleaseState.PUBLISHED),
        }

    def _event_date(self, event: ReleaseEvent) -> str:
        return to_date_only(event.date) or today_iso(self.clock())

    def _release_time_ms(self, event: ReleaseEvent) -> int:
        parsed = parse_timestamp(event.date)
        return to_epoch_ms(parsed or self.clock())

    # ------------------------------------------------------------------ tick

    async def tick(self) -> Dict[str, int]:
        """One discovery pass and one advancement pass; never raises."""
        summary = {"discovered": 0, "processed": 0}
        try:
            summary["discovered"] = await self.discover_events()
            if summary["discovered"]:
                logger.info("discovered %d new %s release event(s)", summary["discovered"], self.settings.indicator)
        except Exception as exc:
            logger.error("discovery failed: %s", exc)
        try:
            summary["processed"] = await self.process_due_events()
        except Exception:
            logger.exception("tick failed while advancing events")
        return summary

    async def discover_events(self) -> int:
        if self.calendar is None:
            raise ConfigurationError("no calendar provider configured")
        now = self.clock()
        today = today_iso(now)
        rows = await self.calendar.list_events(
            country=self.settings.country,
            start_date=add_utc_days(today, -1),
            end_date=add_utc_days(today, 1),
            importance=DISCOVERY_IMPORTANCE,
            max_events=DISCOVERY_MAX_EVENTS,
        )
        matches = filter_indicator_rows(rows, self.settings.country)
        if not matches:
            return 0
        events = [normalize_event_row(row, now) for row in matches]
        return await self.state_store.upsert_events(events, now)

    async def process_due_events(self) -> int:
        now = self.clock()
        processed = 0
        for status in await self.state_store.list_due(now):
            try:
                ran = await self.state_store.with_fresh_status(
                    status.event_id, self.clock(), self.process_single_event
                )
            except Exception:
                logger.exception("event %s could not be advanced this tick", status.event_id)
                continue
            if ran:
                processed += 1
        return processed

    async def process_single_event(self, status: ReleaseStatus, event: ReleaseEvent) -> bool:
        """Run the step for the current state; success advances one state, failure schedules a retry."""
        step = self.steps.get(status.state)
        if step is None:
            return False
        step_name, step_fn, next_state = step
        now = self.clock()
        run_id = await self.ensure_run_record(status, now)
        snapshot = RunSnapshot(self.base_dir, event.id, run_id)
        try:
            await step_fn(event, snapshot, run_id)
            await self.mark_state_advanced(event.id, next_state)
        except Exception as exc:
            await self.schedule_retry(status, exc, status.state.value)
            return True
        if next_state is ReleaseState.PUBLISHED:
            logger.info("event %s published run=%s", event.id, run_id)
        return True

    # ----------------------------------------------------------- bookkeeping

    async def ensure_run_record(self, status: ReleaseStatus, now: Optional[datetime] = None) -> str:
        return await self.state_store.ensure_run_record(status, now or self.clock())

    async def update_run_state(self, run_id: str, **changes: Any) -> None:
        await self.state_store.update_run_state(run_id, self.clock(), **changes)

    async def mark_state_advanced(self, event_id: str, state: ReleaseState) -> None:
        await self.state_store.mark_state_advanced(event_id, state, self.clock())

    async def schedule_retry(self, status: ReleaseStatus, error: BaseException, step: str) -> None:
        now = self.clock()
        message = getattr(error, "message", None) or str(error) or type(error).__name__
        last_error = f"{step}: {message}"
        decision = plan_retry(status.retry_count, self.settings.max_retries, now)
        _, run_id = await self.state_store.record_failure(
            status.event_id,
            now,
            retry_count=decision.retry_count,
            next_attempt_at=decision.next_attempt_at,
            last_error=last_error,
            terminal=decision.terminal,
        )
        if decision.terminal:
            if run_id:
                await self.update_run_state(run_id, status=AnalysisRunStatus.FAILED, error=last_error, ended=True)
            logger.error("event %s failed terminally at %s: %s", status.event_id, step, message)
            return
        logger.warning(
            "event %s step=%s retry=%d/%d next=%s error=%s",
            status.event_id,
            step,
            decision.retry_count,
            self.settings.max_retries,
            decision.next_attempt_at.isoformat() if decision.next_attempt_at else None,
            message,
        )

    # ----------------------------------------------------------------- steps

    @staticmethod
    def _select_report(reports: list, event_date: str) -> OfficialReport:
        for report in reports:
            if (
                report.event
                and to_date_only(report.release_date) == event_date
                and is_likely_indicator_event(report.event, report.category)
            ):
                return report
        return reports[0]

    async def fetch_official(self, event: ReleaseEvent, snapshot: RunSnapshot, run_id: str) -> None:
        if self.reports is None:
            raise ConfigurationError("no official report provider configured")
        event_date = self._event_date(event)
        query = {
            "country": self.settings.country,
            "indicator": self.settings.indicator,
            "startDate": add_utc_days(event_date, -2),
            "endDate": add_utc_days(event_date, 1),
            "importance": DISCOVERY_IMPORTANCE,
        }
        reports = await self.reports.find_reports(
            country=self.settings.country,
            indicator=self.settings.indicator,
            start_date=query["startDate"],
            end_date=query["endDate"],
            importance=DISCOVERY_IMPORTANCE,
            max_reports=OFFICIAL_MAX_REPORTS,
            include_body=True,
            max_chars=OFFICIAL_MAX_CHARS,
        )
        if not reports:
            raise StepError("official report provider returned no reports", step="fetch_official")
        selected = self._select_report(reports, event_date)

        official_text = (selected.excerpt or "").strip()
        if not official_text and selected.report_url and self.web_fetcher is not None:
            page = await self.web_fetcher.fetch(selected.report_url, extract_mode="text", max_chars=OFFICIAL_MAX_CHARS)
            official_text = (page.text or "").strip()

        selected_payload = selected.model_dump(mode="json")
        artifact = {
            "provider": getattr(self.reports, "name", "unknown"),
            "fetchedAt": self.clock().isoformat(),
            "query": query,
            "selectedReport": selected_payload,
            "reportText": official_text or None,
            "reportTextHash": hash_text(official_text) if official_text else None,
            "reportHash": hash_object(selected_payload),
        }
        await snapshot.write_json("event_card.json", event.model_dump(mode="json", by_alias=True, exclude_none=True))
        await snapshot.write_json(OFFICIAL_ARTIFACT, artifact)
        await snapshot.update_manifest({"step": "fetched_official", "officialArtifactHash": artifact["reportHash"]})

    async def fetch_media(self, event: ReleaseEvent, snapshot: RunSnapshot, run_id: str) -> None:
        query = f"U.S. {self.settings.indicator} {self._event_date(event)}"
        selection = await self.media_engine.discover(query, self._release_time_ms(event))
        raw = selection.model_dump(mode="json", exclude={"candidates"})
        await snapshot.write_json(MEDIA_RAW, raw)
        await snapshot.write_json(
            "media_candidates.json",
            {
                "query": selection.query,
                "searchUrl": selection.search_url,
                "candidates": [c.model_dump(mode="json") for c in selection.candidates],
            },
        )
        await snapshot.write_json(
            "media_selection.json",
            selection.model_dump(mode="json", exclude={"candidates", "text"}),
        )
        await snapshot.update_manifest({
            "step": "fetched_media",
            "mediaMode": selection.mode,
            "mediaReason": selection.reason,
            "mediaConfidence": selection.confidence,
            "mediaArticleUrl": selection.article_url,
        })

    async def preprocess(self, event: ReleaseEvent, snapshot: RunSnapshot, run_id: str) -> None:
        official = await snapshot.read_json(OFFICIAL_ARTIFACT)
        if official is None:
            raise StepError("official_artifact missing", step="preprocess")
        media = await snapshot.read_json(MEDIA_RAW) or {}
        official_cards, media_cards = await build_evidence_cards(
            event=event,
            official_text=str(official.get("reportText") or ""),
            media_text=str(media.get("text") or ""),
            media_confidence=str(media.get("confidence") or "low"),
            completion=self.completion,
            model=self.settings.preprocess_model,
        )
        await snapshot.write_json(OFFICIAL_CARDS, official_cards)
        await snapshot.write_json(MEDIA_CARDS, media_cards)
        await snapshot.update_manifest({"step": "preprocessed"})

    async def analyze(self, event: ReleaseEvent, snapshot: RunSnapshot, run_id: str) -> None:
        official_cards = await snapshot.read_json(OFFICIAL_CARDS) or {}
        media_cards = await snapshot.read_json(MEDIA_CARDS) or {}
        event_date = self._event_date(event)
        history = await fetch_history(
            self.calendar,
            country=self.settings.country,
            event_date=event_date,
            history_days=self.settings.history_days,
        )
        await snapshot.write_json(
            "historical_snapshot.json",
            {"fetchedAt": self.clock().isoformat(), "eventDate": event_date, "items": history},
        )
        report = await generate_report(
            event=event,
            official_cards=official_cards,
            media_cards=media_cards,
            history=history,
            completion=self.completion,
            model=self.settings.analysis_model,
        )
        report_path = await snapshot.write_text(REPORT_FILE, report)
        report_hash = hash_text(report)
        await self.update_run_state(run_id, report_path=report_path, report_hash=report_hash)
        await snapshot.update_manifest({"step": "analyzed", "reportPath": report_path, "reportHash": report_hash})

    async def publish(self, event: ReleaseEvent, snapshot: RunSnapshot, run_id: str) -> None:
        report_text = await snapshot.read_text(REPORT_FILE)
        if report_text is None:
            raise StepError("analysis_report missing", step="publish")
        headline = f"US CPI Auto Report ({self._event_date(event)})"
        composed = f"{headline}\n\n{report_text.strip()}"

        target = self.settings.delivery_target
        if not target:
            result: Dict[str, Any] = {"skipped": True, "reason": "no_target"}
        else:
            if self.delivery is None:
                raise ConfigurationError("delivery target set but no delivery channel configured")
            results = await self.delivery.send(
                target, [{"text": composed}], account_id=self.settings.delivery_account_id
            )
            if not results:
                raise DeliveryError("delivery returned no results", channel=self.delivery.channel)
            result = {
                "skipped": False,
                "channel": self.delivery.channel,
                "to": target,
                "accountId": self.settings.delivery_account_id,
                "results": results,
            }

        await snapshot.write_json("publish_result.json", result)
        await snapshot.update_manifest({"step": "published", "publishResult": result})
        await self.update_run_state(
            run_id,
            status=AnalysisRunStatus.PUBLISHED,
            published_channel=result.get("channel") or "none",
            ended=True,
        )
