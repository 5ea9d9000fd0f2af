from __future__ import annotations

import json
from typing import List

import httpx
import pytest

from core import WebPage
from pipeline.notification import TelegramChannel, split_message
from sources import (
    FredProvider,
    HttpWebFetcher,
    TradingEconomicsProvider,
    html_to_text,
    infer_official_source,
    normalize_calendar_item,
    parse_numeric_value,
    resolve_report_url,
)
from sources.base import WebFetcher
from utils.exceptions import ConfigurationError, DeliveryError, ProviderError

TE_ITEMS = [
    {
        "CalendarId": 987654,
        "Date": "2026-03-11T12:30:00",
        "Country": "United States",
        "Category": "Inflation Rate",
        "Event": "Inflation Rate YoY",
        "Actual": "3.1%",
        "Forecast": "2.9%",
        "Previous": "3.0%",
        "Importance": 3,
        "Source": "U.S. Bureau of Labor Statistics",
        "Reference": "https://www.bls.gov/news.release/cpi.nr0.htm",
        "URL": "/united-states/inflation-cpi",
    },
    {
        "CalendarId": "111",
        "Date": "2026-03-10T14:00:00",
        "Country": "United States",
        "Category": "Business Confidence",
        "Event": "NFIB Business Optimism Index",
        "Actual": "",
        "Forecast": None,
        "Previous": "100.7",
        "Importance": "2",
    },
]


class StaticFetcher(WebFetcher):
    def __init__(self, error: Exception = None):
        self.calls: List[str] = []
        self.error = error

    async def fetch(self, url: str, *, extract_mode: str = "text", max_chars: int = 16000) -> WebPage:
        self.calls.append(url)
        if self.error is not None:
            raise self.error
        return WebPage(url=url, text="The Consumer Price Index rose 0.3 percent in February.")


def _te_client(items, seen: List[httpx.Request]) -> httpx.AsyncClient:
    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=items)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def test_parse_numeric_value_handles_units_and_junk() -> None:
    assert parse_numeric_value("3.2%") == 3.2
    assert parse_numeric_value("-0.1") == -0.1
    assert parse_numeric_value(2) == 2.0
    assert parse_numeric_value("n/a") is None
    assert parse_numeric_value(True) is None


def test_normalize_calendar_item_maps_forecast_to_consensus() -> None:
    row = normalize_calendar_item(TE_ITEMS[0])
    assert row.provider == "tradingeconomics"
    assert row.calendar_id == "987654"
    assert row.consensus == "2.9%"
    assert row.consensus_number == 2.9
    assert row.actual_number == 3.1
    assert row.importance == 3
    assert row.raw["CalendarId"] == 987654

    sparse = normalize_calendar_item(TE_ITEMS[1])
    assert sparse.actual is None
    assert sparse.consensus is None
    assert sparse.importance == 2


def test_infer_official_source_prefers_source_field_then_topic() -> None:
    assert infer_official_source(source="U.S. Bureau of Labor Statistics").publisher.endswith("Labor Statistics")
    bls = infer_official_source(event="Core Inflation Rate MoM", country="United States")
    assert bls.official is True
    assert bls.official_home == "https://www.bls.gov/news.release/"
    other = infer_official_source(source="Eurostat", event="Inflation Rate", country="Euro Area")
    assert other.publisher == "Eurostat"
    assert other.official is False
    assert infer_official_source(event="Inflation Rate", country="Australia").official is False
    assert infer_official_source(event="CPI", country="US").publisher == bls.publisher
    assert resolve_report_url("ftp://x") is None
    assert resolve_report_url(" https://www.bls.gov/cpi ") == "https://www.bls.gov/cpi"


@pytest.mark.asyncio
async def test_trading_economics_list_events_sorts_filters_and_caps() -> None:
    seen: List[httpx.Request] = []
    provider = TradingEconomicsProvider(api_key="guest:guest", client=_te_client(TE_ITEMS, seen))

    rows = await provider.list_events(
        country="united states", start_date="2026-03-10", end_date="2026-03-12", importance=3
    )
    assert [r.event for r in rows] == ["NFIB Business Optimism Index", "Inflation Rate YoY"]
    assert "/calendar/country/united%20states/2026-03-10/2026-03-12" in str(seen[0].url)
    assert seen[0].url.params["c"] == "guest:guest"
    assert seen[0].url.params["importance"] == "3"

    filtered = await provider.list_events(
        country="united states", start_date="2026-03-10", end_date="2026-03-12", event_filter="inflation"
    )
    assert [r.event for r in filtered] == ["Inflation Rate YoY"]


@pytest.mark.asyncio
async def test_trading_economics_requires_api_key() -> None:
    provider = TradingEconomicsProvider(api_key="")
    with pytest.raises(ConfigurationError):
        await provider.list_events(country="united states", start_date="2026-03-10", end_date="2026-03-12")


@pytest.mark.asyncio
async def test_trading_economics_http_error_is_provider_error() -> None:
    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(403, text="denied")))
    provider = TradingEconomicsProvider(api_key="k", client=client)
    with pytest.raises(ProviderError):
        await provider.list_events(country="united states", start_date="2026-03-10", end_date="2026-03-12")


@pytest.mark.asyncio
async def test_find_reports_attaches_official_excerpt() -> None:
    seen: List[httpx.Request] = []
    fetcher = StaticFetcher()
    provider = TradingEconomicsProvider(api_key="k", client=_te_client(TE_ITEMS, seen), web_fetcher=fetcher)

    reports = await provider.find_reports(
        country="united states",
        indicator="inflation",
        start_date="2026-03-09",
        end_date="2026-03-12",
        include_body=True,
    )
    assert len(reports) == 1
    report = reports[0]
    assert report.publisher == "U.S. Bureau of Labor Statistics"
    assert report.official is True
    assert report.report_url == "https://www.bls.gov/news.release/cpi.nr0.htm"
    assert "Consumer Price Index" in report.excerpt
    assert fetcher.calls == ["https://www.bls.gov/news.release/cpi.nr0.htm"]


@pytest.mark.asyncio
async def test_find_reports_records_fetch_error() -> None:
    seen: List[httpx.Request] = []
    fetcher = StaticFetcher(error=ProviderError("fetch http 403", source="web_fetch"))
    provider = TradingEconomicsProvider(api_key="k", client=_te_client(TE_ITEMS, seen), web_fetcher=fetcher)

    reports = await provider.find_reports(
        country="united states", indicator="inflation", start_date="2026-03-09", end_date="2026-03-12",
        include_body=True,
    )
    assert reports[0].excerpt is None
    assert reports[0].source_ref["fetchError"] == "report_fetch_failed:fetch http 403"


@pytest.mark.asyncio
async def test_fred_release_dates_are_windowed() -> None:
    payload = {
        "release_dates": [
            {"release_id": 10, "release_name": "Consumer Price Index", "date": "2026-03-11"},
            {"release_id": 50, "release_name": "Employment Situation", "date": "2026-03-06"},
            {"release_id": 10, "release_name": "Consumer Price Index", "date": "2026-04-10"},
        ]
    }
    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(200, json=payload)))
    provider = FredProvider(api_key="k", client=client)

    rows = await provider.list_events(start_date="2026-03-01", end_date="2026-03-31", event_filter="consumer")
    assert [(r.event, r.date) for r in rows] == [("Consumer Price Index", "2026-03-11")]
    assert rows[0].country == "United States"
    assert rows[0].calendar_id == "10"


def test_html_to_text_prefers_article_body() -> None:
    title, text = html_to_text(
        "<html><head><title>CPI News Release</title><script>var x=1;</script></head>"
        "<body><nav>Menu</nav><article><h1>CPI</h1><p>Prices rose 0.3 percent.</p></article></body></html>"
    )
    assert title == "CPI News Release"
    assert text == "CPI\n\nPrices rose 0.3 percent."


@pytest.mark.asyncio
async def test_web_fetcher_truncates_and_rejects_errors() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/missing":
            return httpx.Response(404, text="nope")
        if request.url.path == "/report.pdf":
            return httpx.Response(200, content=b"%PDF", headers={"content-type": "application/pdf"})
        return httpx.Response(200, text="<html><body><p>" + "x" * 50 + "</p></body></html>",
                              headers={"content-type": "text/html"})

    fetcher = HttpWebFetcher(client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
    page = await fetcher.fetch("https://www.bls.gov/ok", max_chars=10)
    assert page.text == "x" * 10
    assert page.truncated is True

    with pytest.raises(ProviderError):
        await fetcher.fetch("https://www.bls.gov/missing")
    with pytest.raises(ProviderError):
        await fetcher.fetch("https://www.bls.gov/report.pdf")


def test_split_message_respects_limit_and_paragraphs() -> None:
    text = "\n\n".join(["a" * 30, "b" * 30, "c" * 90])
    chunks = split_message(text, limit=64)
    assert chunks == ["a" * 30 + "\n\n" + "b" * 30, "c" * 64, "c" * 26]
    assert split_message("") == []


@pytest.mark.asyncio
async def test_telegram_channel_sends_each_chunk() -> None:
    sent = []

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        sent.append((request.url.path, body))
        return httpx.Response(200, json={"ok": True, "result": {"message_id": len(sent)}})

    channel = TelegramChannel(bot_token="T0K", client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
    results = await channel.send("-100123", [{"text": "hello"}])

    assert sent[0][0] == "/botT0K/sendMessage"
    assert sent[0][1]["chat_id"] == "-100123"
    assert sent[0][1]["text"] == "hello"
    assert results == [{"channel": "telegram", "chat_id": "-100123", "message_id": 1}]


@pytest.mark.asyncio
async def test_telegram_channel_raises_on_api_failure() -> None:
    client = httpx.AsyncClient(
        transport=httpx.MockTransport(lambda request: httpx.Response(400, json={"ok": False, "description": "bad"}))
    )
    with pytest.raises(DeliveryError):
        await TelegramChannel(bot_token="T", client=client).send("1", [{"text": "x"}])
    with pytest.raises(ConfigurationError):
        await TelegramChannel(bot_token="").send("1", [{"text": "x"}])
