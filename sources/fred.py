"""
FRED Provider
Release schedule from the St. Louis Fed releases/dates endpoint (no consensus values).
"""
import logging
from typing import Any, Dict, List, Optional

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from config import get_settings
from core import CalendarRow
from utils.exceptions import ConfigurationError, ProviderError

from .base import CalendarProvider

logger = logging.getLogger(__name__)


def normalize_release_date(entry: Dict[str, Any]) -> CalendarRow:
    return CalendarRow(
        provider="fred",
        calendar_id=entry.get("release_id"),
        date=entry.get("date"),
        country="United States",
        event=entry.get("release_name"),
        source="FRED",
        raw=dict(entry),
    )


class FredProvider(CalendarProvider):
    """Schedule-only calendar; every row is a US release."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout_sec: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        settings = get_settings()
        self.api_key = api_key if api_key is not None else settings.fred.api_key
        self.base_url = (base_url or settings.fred.base_url).strip().rstrip("/")
        self.timeout_sec = float(timeout_sec or settings.general.request_timeout)
        self._client = client

    @property
    def name(self) -> str:
        return "fred"

    def is_configured(self) -> bool:
        return bool(self.api_key)

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
            async with httpx.AsyncClient(timeout=httpx.Timeout(self.timeout_sec)) as client:
                response = await client.get(url, params=params, headers=headers)
        if response.status_code >= 400:
            raise ProviderError(
                f"FRED API error ({response.status_code})",
                source=self.name,
                detail=str(response.text or "")[:500],
            )
        return response.json()

    async def list_events(
        self,
        *,
        country: str = "united states",
        start_date: str,
        end_date: str,
        importance: Optional[int] = None,
        max_events: int = 50,
        event_filter: Optional[str] = None,
    ) -> List[CalendarRow]:
        if not self.api_key:
            raise ConfigurationError("FRED needs an API key; set FRED_API_KEY", {"provider": self.name})
        params = {
            "api_key": self.api_key,
            "file_type": "json",
            "limit": "1000",
            "sort_order": "asc",
            "include_release_dates_with_no_data": "true",
            "realtime_start": start_date,
            "realtime_end": end_date,
        }
        try:
            data = await self._get_json(f"{self.base_url}/releases/dates", params)
        except httpx.HTTPError as exc:
            raise ProviderError(f"FRED request failed: {exc}", source=self.name) from exc
        except ValueError as exc:
            raise ProviderError("FRED returned non-JSON body", source=self.name) from exc

        entries = data.get("release_dates") if isinstance(data, dict) else None
        needle = (event_filter or "").strip().lower()
        rows: List[CalendarRow] = []
        for entry in entries if isinstance(entries, list) else []:
            if not isinstance(entry, dict):
                continue
            date = str(entry.get("date") or "").strip()
            if not date or date < start_date or date > end_date:
                continue
            if needle and needle not in str(entry.get("release_name") or "").lower():
                continue
            rows.append(normalize_release_date(entry))
            if len(rows) >= max(1, int(max_events)):
                break
        return rows
