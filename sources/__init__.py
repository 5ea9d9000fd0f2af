"""Provider adapters for calendar rows, official reports and web pages."""

from .base import CalendarProvider, OfficialReportProvider, WebFetcher
from .fred import FredProvider
from .official import OfficialSource, infer_official_source, resolve_report_url
from .tradingeconomics import (
    TradingEconomicsProvider,
    normalize_calendar_item,
    normalize_importance,
    parse_numeric_value,
)
from .web_fetch import HttpWebFetcher, html_to_text

__all__ = [
    "CalendarProvider",
    "OfficialReportProvider",
    "WebFetcher",
    "FredProvider",
    "OfficialSource",
    "infer_official_source",
    "resolve_report_url",
    "TradingEconomicsProvider",
    "normalize_calendar_item",
    "normalize_importance",
    "parse_numeric_value",
    "HttpWebFetcher",
    "html_to_text",
]
