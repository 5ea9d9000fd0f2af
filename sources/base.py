"""
Provider Contracts
Abstract collaborators used by the release engine: calendar, official reports, web fetch.
"""
from abc import ABC, abstractmethod
from typing import List, Optional

from core import CalendarRow, OfficialReport, WebPage


class CalendarProvider(ABC):
    """Economic calendar source."""

    @property
    @abstractmethod
    def name(self) -> str:
        pass

    @abstractmethod
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
        """
        List calendar rows in the inclusive date window.

        Args:
            country: Target country name (provider spelling)
            start_date: YYYY-MM-DD
            end_date: YYYY-MM-DD
            importance: 1-3 filter where supported
            max_events: Row cap after sorting by date
            event_filter: Optional case-insensitive substring filter on the event name

        Returns:
            Normalized calendar rows sorted by date
        """
        pass

    def is_configured(self) -> bool:
        return True


class OfficialReportProvider(ABC):
    """Official release reference source."""

    @property
    @abstractmethod
    def name(self) -> str:
        pass

    @abstractmethod
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
        pass

    def is_configured(self) -> bool:
        return True


class WebFetcher(ABC):
    """Fetches a page and returns readable text."""

    @abstractmethod
    async def fetch(self, url: str, *, extract_mode: str = "text", max_chars: int = 16_000) -> WebPage:
        pass
