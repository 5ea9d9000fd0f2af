"""
Trading Economics Provider
Calendar rows and official-report references from the Trading Economics API.
"""
import asyncio
import logging
import re
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from config import get_settings
from core import CalendarRow, OfficialReport
from core.dates import to_date_only
from utils.exceptions import ConfigurationError, ProviderError

from .base import CalendarProvider, OfficialReportProvider, WebFetcher
from .official import infer_official_source, resolve_report_url

logger = logging.getLogger(__name__)

_NUMERIC_RE = re.compile(r"-?\d+(?:\.\d+)?")


def parse_numeric_value(raw: Any) -> Optional[float]:
    """First signed decimal in the value, e.g. "3.2%" -> 3.2."""
    if isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        value = float(raw)
        return value if value == value and value not in (float("inf"), float("-inf")) else None
    if not isinstance(raw, str):
        return None
    match = _NUMERIC_RE.search(raw.strip())
    return float(match.group(0)) if match else None


def normalize_importance(raw: Any) -> Optional[int]:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        return int(raw)
    if isinstance(raw, str):
        match = re.match(r"^\s*(-?\d+)", raw)
        if match:
            return int(match.group(1))
    return None


def _raw_value(value: Any) -> Any:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip()
    return text or None


def normalize_calendar_item(item: Dict[str, Any]) -> CalendarRow:
    """Map a Trading Economics calendar object to a CalendarRow (Forecast is the consensus)."""
    return CalendarRow(
        provider="tradingeconomics",
        calendar_id=item.get("CalendarId"),
        date=item.get("Date"),
        country=item.get("Country"),
        category=item.get("Category"),
        event=item.get("Event"),
        actual=_raw_value(item.get("Actual")),
        consensus=_raw_value(item.get("Forecast")),
        previous=_raw_value(item.get("Previous")),
        actual_number=parse_numeric_value(item.get("Actual")),
        consensus_number=parse_numeric_value(item.get("Forecast")),
        previous_number=parse_numeric_value(item.get("Previous")),
        importance=normalize_importance(item.get("Importance")),
        currency=item.get("Currency"),
        unit=item.get("Unit"),
        source=item.get("Source"),
        reference=item.get("Reference"),
        url=item.get("URL"),
        raw=dict(item),
    )


class TradingEconomicsProvider(CalendarProvider, OfficialReportProvider):
    """Trading Economics calendar; also serves official-report references."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        web_fetcher: Optional[WebFetcher] = None,
        timeout_sec: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        settings = get_settings()
        self.api_key = api_key if api_key is not None else settings.tradingeconomics.api_key
        self.base_url = (base_url or settings.tradingeconomics.base_url).strip().rstrip("/")
        self.web_fetcher = web_fetcher
        self.timeout_sec = float(timeout_sec or settings.general.request_timeout)
        self._client = client

    @property
    def name(self) -> str:
        return "tradingeconomics"

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _calendar_url(self, countries: List[str], start_date: str, end_date: str) -> str:
        path = ",".join(quote(c.strip(), safe="") for c in countries if c.strip()) or "all"
        return f"{self.base_url}/calendar/country/{path}/{start_date}/{end_date}"

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    async def _get_json(self, url: str, params: Dict[str, str]) -> Any:
        headers = {"Accept": "application/json"}
        if self._client is not None:
            response = await self._client.get(url, params=params, headers=headers)
        else:
            timeout = httpx.Timeout(self.timeout_sec)
            async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as client:
                response = await client.get(url, params=params, headers=headers)
        if response.status_code >= 400:
            raise ProviderError(
                f"Trading Economics API error ({response.status_code})",
                source=self.name,
                detail=str(response.text or "")[:500],
            )
        return response.json()

    async def _fetch_items(
        self,
        countries: List[str],
        start_date: str,
        end_date: str,
        importance: Optional[int],
    ) -> List[Dict[str, Any]]:
        if not self.api_key:
            raise ConfigurationError(
                "Trading Economics needs an API key; set TRADING_ECONOMICS_API_KEY",
                {"provider": self.name},
            )
        params = {"c": self.api_key, "f": "json"}
        if importance is not None:
            params["importance"] = str(int(importance))
        url = self._calendar_url(countries, start_date, end_date)
        try:
            data = await self._get_json(url, params)
        except httpx.HTTPError as exc:
            raise ProviderError(f"Trading Economics request failed: {exc}", source=self.name) from exc
        except ValueError as exc:
            raise ProviderError("Trading Economics returned non-JSON body", source=self.name) from exc
        if not isinstance(data, list):
            return []
        return [item for item in data if isinstance(item, dict)]

    async def list_events(
        self,
        *,
        country: str,
        start_date: str,
        end_date: str,
        importance: Optional[int] = None,
        max_events: int = 50,
        event_filter: Optional[str] = None,
    ) -> List[CalendarRow]:
        countries = [c for c in (country or "all").split(",") if c.strip()] or ["all"]
        items = await self._fetch_items(countries, start_date, end_date, importance)
        needle = (event_filter or "").strip().lower()
        rows = [normalize_calendar_item(item) for item in items]
        if needle:
            rows = [row for row in rows if needle in (row.event or "").lower()]
        rows.sort(key=lambda row: row.date or "")
        return rows[: max(1, int(max_events))]

    async def _report_excerpt(self, url: str, max_chars: int) -> Dict[str, Any]:
        if self.web_fetcher is None:
            return {"fetch_error": "web_fetch_unavailable"}
        try:
            page = await self.web_fetcher.fetch(url, extract_mode="text", max_chars=max_chars)
        except ProviderError as exc:
            return {"fetch_error": f"report_fetch_failed:{exc.message}"}
        return {"excerpt": page.text or None}

    async def _to_report(
        self,
        item: Dict[str, Any],
        indicator: Optional[str],
        include_body: bool,
        max_chars: int,
    ) -> OfficialReport:
        row = normalize_calendar_item(item)
        agency = infer_official_source(
            source=row.source,
            indicator=indicator,
            event=row.event,
            category=row.category,
            country=row.country,
        )
        report_url = resolve_report_url(row.reference) or agency.official_home
        body: Dict[str, Any] = {}
        if include_body and report_url:
            body = await self._report_excerpt(report_url, max_chars)
        source_ref = {
            "provider": self.name,
            "sourceField": row.source,
            "tradingEconomicsUrl": row.url,
            "referenceUrl": row.reference,
        }
        if body.get("fetch_error"):
            source_ref["fetchError"] = body["fetch_error"]
        return OfficialReport(
            release_date=row.date,
            country=row.country,
            category=row.category,
            event=row.event,
            actual=row.actual,
            consensus=row.consensus,
            previous=row.previous,
            actual_number=row.actual_number,
            consensus_number=row.consensus_number,
            previous_number=row.previous_number,
            importance=row.importance,
            publisher=agency.publisher,
            official=agency.official,
            report_url=report_url,
            excerpt=body.get("excerpt"),
            source_ref=source_ref,
        )

    async def find_reports(
        self,
        *,
        country: str,
        indicator: Optional[str],
        start_date: str,
        end_date: str,
        importance: Optional[int] = None,
        max_reports: int = 20,
        include_body: bool = False,
        max_chars: int = 16_000,
    ) -> List[OfficialReport]:
        items = await self._fetch_items([country], start_date, end_date, importance)
        needle = (indicator or "").strip().lower()
        if needle:
            items = [
                item for item in items
                if needle in f"{item.get('Event') or ''} {item.get('Category') or ''}".lower()
            ]
        items.sort(key=lambda item: str(item.get("Date") or ""))
        items = items[: max(1, int(max_reports))]
        reports = await asyncio.gather(
            *(self._to_report(item, indicator, include_body, max_chars) for item in items)
        )
        logger.debug(
            "te official reports country=%s window=%s..%s count=%d",
            country, to_date_only(start_date), to_date_only(end_date), len(reports),
        )
        return list(reports)
