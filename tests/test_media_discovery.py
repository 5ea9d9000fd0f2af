from __future__ import annotations

import asyncio
from typing import Dict, List

import httpx
import pytest

from core import WebPage
from pipeline import media_discovery
from pipeline.media_discovery import (
    METADATA_BATCH_SIZE,
    MediaDiscoveryEngine,
    build_search_url,
    extract_article_metadata,
    extract_candidate_urls,
    normalize_article_url,
)
from sources.base import WebFetcher
from utils.exceptions import ProviderError

RELEASE_MS = 1_773_232_200_000  # 2026-03-11T12:30:00Z
QUERY = "U.S. CPI 2026-03-11"

LONG_BODY = (
    "U.S. consumer prices increased 0.3% in February as gasoline and shelter costs rose, "
    "the Labor Department said on Wednesday. Economists polled had forecast inflation "
    "would rise 0.2%. "
) * 8


class CountingFetcher(WebFetcher):
    def __init__(self, text: str = LONG_BODY, error: Exception = None):
        self.calls: List[str] = []
        self.text = text
        self.error = error

    async def fetch(self, url: str, *, extract_mode: str = "text", max_chars: int = 16000) -> WebPage:
        self.calls.append(url)
        if self.error is not None:
            raise self.error
        return WebPage(url=url, title="Full article title", text=self.text[:max_chars])


def _search_html(slugs: List[str]) -> str:
    links = "".join(f'<a href="/markets/us/{slug}/">{slug}</a>' for slug in slugs)
    extras = (
        '<a href="/video/watch/clip-1/">video</a>'
        '<a href="https://example.com/markets/us/offsite/">offsite</a>'
        '<a href="/world/china/story-1/">china</a>'
        '<a href="#top">top</a>'
    )
    return f"<html><body>{links}{extras}</body></html>"


def _article_html(title: str, published: str, body: str = "Consumer prices rose 0.3%, above forecasts.") -> str:
    return (
        "<html><head>"
        f'<meta property="og:title" content="{title}"/>'
        f'<meta property="article:published_time" content="{published}"/>'
        f"</head><body><p>{body}</p></body></html>"
    )


def _install_fake_http(monkeypatch, pages: Dict[str, tuple], calls: List[str]) -> None:
    async def _fake_get_text(url: str, *, headers=None, timeout_sec=None):
        calls.append(url)
        if url not in pages:
            raise AssertionError(f"unexpected url: {url}")
        value = pages[url]
        if isinstance(value, Exception):
            raise value
        return value

    monkeypatch.setattr(media_discovery, "_http_get_text", _fake_get_text)


def _article_pages(slugs: List[str], *, good: str) -> Dict[str, tuple]:
    pages = {}
    for slug in slugs:
        url = f"https://www.reuters.com/markets/us/{slug}/"
        if slug == good:
            pages[url] = (200, _article_html("US consumer prices rise in February", "2026-03-11T12:45:00Z"))
        else:
            pages[url] = (200, _article_html("Wall Street opens mixed", "2026-03-11T13:00:00Z"))
    return pages


def test_normalize_article_url_rejects_non_article_links() -> None:
    assert normalize_article_url("/markets/us/story-1/?utm=x#frag") == "https://www.reuters.com/markets/us/story-1/"
    assert normalize_article_url("/video/watch/clip/") is None
    assert normalize_article_url("/world/europe/story/") is None
    assert normalize_article_url("/markets/") is None
    assert normalize_article_url("https://example.com/markets/us/x/") is None
    assert normalize_article_url("#anchor") is None


def test_extract_candidate_urls_dedupes_and_caps() -> None:
    html = _search_html(["a", "b", "a", "c"])
    assert extract_candidate_urls(html) == [
        "https://www.reuters.com/markets/us/a/",
        "https://www.reuters.com/markets/us/b/",
        "https://www.reuters.com/markets/us/c/",
    ]
    assert len(extract_candidate_urls(html, limit=2)) == 2


def test_extract_article_metadata_falls_back_to_json_ld() -> None:
    html = (
        "<html><head><title>Inflation report</title>"
        '<script type="application/ld+json">{"@graph":[{"datePublished":"2026-03-11T12:31:00Z"}]}</script>'
        "</head><body><p>First.</p><p>Second.</p></body></html>"
    )
    title, published_ms, preview = extract_article_metadata(html)
    assert title == "Inflation report"
    assert published_ms == RELEASE_MS + 60_000
    assert preview == "First. Second."


@pytest.mark.asyncio
async def test_insufficient_candidates_degrades_without_full_fetch(monkeypatch) -> None:
    calls: List[str] = []
    search_url = build_search_url(QUERY)
    _install_fake_http(monkeypatch, {search_url: (200, _search_html(["a", "b", "c"]))}, calls)
    fetcher = CountingFetcher()

    result = await MediaDiscoveryEngine(fetcher, now_ms=lambda: RELEASE_MS).discover(QUERY, RELEASE_MS)

    assert result.mode == "degraded"
    assert result.reason == "insufficient_candidates"
    assert result.confidence == "low"
    assert len(result.candidates) == 3
    assert calls == [search_url]
    assert fetcher.calls == []


@pytest.mark.asyncio
async def test_search_http_error_degrades(monkeypatch) -> None:
    calls: List[str] = []
    _install_fake_http(monkeypatch, {build_search_url(QUERY): (503, "")}, calls)
    result = await MediaDiscoveryEngine(CountingFetcher()).discover(QUERY, RELEASE_MS)
    assert result.mode == "degraded"
    assert result.reason == "search_http_503"


@pytest.mark.asyncio
async def test_search_transport_error_degrades(monkeypatch) -> None:
    calls: List[str] = []
    _install_fake_http(monkeypatch, {build_search_url(QUERY): httpx.ConnectError("boom")}, calls)
    result = await MediaDiscoveryEngine(CountingFetcher()).discover(QUERY, RELEASE_MS)
    assert result.reason == "search_request_failed"
    assert result.release_time_iso == "2026-03-11T12:30:00.000Z"


@pytest.mark.asyncio
async def test_discover_selects_validated_article(monkeypatch) -> None:
    slugs = ["s1", "s2", "s3", "s4", "s5"]
    calls: List[str] = []
    pages = {build_search_url(QUERY): (200, _search_html(slugs))}
    pages.update(_article_pages(slugs, good="s3"))
    _install_fake_http(monkeypatch, pages, calls)
    fetcher = CountingFetcher()

    result = await MediaDiscoveryEngine(fetcher, now_ms=lambda: RELEASE_MS + 1).discover(QUERY, RELEASE_MS)

    assert result.mode == "ok"
    assert result.reason is None
    assert result.confidence == "high"
    assert result.article_url == "https://www.reuters.com/markets/us/s3/"
    assert result.title == "Full article title"
    assert result.content_hash and len(result.content_hash) == 64
    assert result.article_time_iso == "2026-03-11T12:45:00.000Z"
    assert fetcher.calls == ["https://www.reuters.com/markets/us/s3/"]
    dropped = [c for c in result.candidates if c.dropped]
    assert len(dropped) == 4
    assert {c.drop_reason for c in dropped} == {"title_irrelevant"}


@pytest.mark.asyncio
async def test_short_full_text_degrades_with_alternates(monkeypatch) -> None:
    slugs = ["s1", "s2", "s3", "s4", "s5"]
    calls: List[str] = []
    pages = {build_search_url(QUERY): (200, _search_html(slugs))}
    pages.update(_article_pages(slugs, good="s1"))
    _install_fake_http(monkeypatch, pages, calls)
    fetcher = CountingFetcher(text="Inflation rose. " * 10)

    result = await MediaDiscoveryEngine(fetcher).discover(QUERY, RELEASE_MS)

    assert result.mode == "degraded"
    assert result.reason == "full_text_validation_failed"
    assert result.text is None
    assert result.article_url is None
    assert [c.url for c in result.alternates] == ["https://www.reuters.com/markets/us/s1/"]


@pytest.mark.asyncio
async def test_full_text_fetch_error_degrades(monkeypatch) -> None:
    slugs = ["s1", "s2", "s3", "s4", "s5"]
    calls: List[str] = []
    pages = {build_search_url(QUERY): (200, _search_html(slugs))}
    pages.update(_article_pages(slugs, good="s2"))
    _install_fake_http(monkeypatch, pages, calls)
    fetcher = CountingFetcher(error=ProviderError("fetch http 403", source="web_fetch"))

    result = await MediaDiscoveryEngine(fetcher).discover(QUERY, RELEASE_MS)

    assert result.reason == "full_text_validation_failed"
    assert fetcher.calls == ["https://www.reuters.com/markets/us/s2/"]


@pytest.mark.asyncio
async def test_metadata_fetches_run_in_batches_of_four(monkeypatch) -> None:
    slugs = [f"s{i}" for i in range(1, 11)]
    pages = _article_pages(slugs, good="s1")
    in_flight = 0
    peaks: List[int] = []

    async def _fake_get_text(url: str, *, headers=None, timeout_sec=None):
        nonlocal in_flight
        in_flight += 1
        peaks.append(in_flight)
        await asyncio.sleep(0.01)
        in_flight -= 1
        return pages[url]

    monkeypatch.setattr(media_discovery, "_http_get_text", _fake_get_text)
    urls = [f"https://www.reuters.com/markets/us/{slug}/" for slug in slugs]

    candidates = await MediaDiscoveryEngine(None).fetch_metadata(urls)

    assert [c.url for c in candidates] == urls
    assert max(peaks) == METADATA_BATCH_SIZE == 4
    assert peaks[METADATA_BATCH_SIZE:2 * METADATA_BATCH_SIZE] == [1, 2, 3, 4]
    assert peaks[-2:] == [1, 2]


@pytest.mark.asyncio
async def test_metadata_failures_are_recorded_per_candidate(monkeypatch) -> None:
    slugs = ["s1", "s2", "s3", "s4", "s5"]
    calls: List[str] = []
    pages = {build_search_url(QUERY): (200, _search_html(slugs))}
    pages.update(_article_pages(slugs, good="s1"))
    pages["https://www.reuters.com/markets/us/s4/"] = (404, "")
    pages["https://www.reuters.com/markets/us/s5/"] = httpx.ReadTimeout("slow")
    _install_fake_http(monkeypatch, pages, calls)

    result = await MediaDiscoveryEngine(None).discover(QUERY, RELEASE_MS)

    reasons = {c.url.rsplit("/", 2)[1]: c.drop_reason for c in result.candidates}
    assert reasons["s4"] == "metadata_http_404"
    assert reasons["s5"] == "metadata_fetch_failed"
    assert result.reason == "web_fetch_disabled"
    assert [c.url for c in result.alternates] == ["https://www.reuters.com/markets/us/s1/"]
