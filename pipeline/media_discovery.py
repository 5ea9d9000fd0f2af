"""Media candidate discovery: site search, batched metadata fetch, scoring and full-text validation."""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple
from urllib.parse import urlencode, urljoin, urlparse, urlunparse

import httpx
from bs4 import BeautifulSoup

from config import get_settings
from core import MediaCandidate, MediaSelection
from core.dates import iso_from_ms, parse_timestamp, to_epoch_ms, utcnow
from sources.base import WebFetcher
from utils.exceptions import ProviderError

from .media_scoring import MAX_ALTERNATES, has_indicator_keyword, score_candidate, select_candidate

logger = logging.getLogger(__name__)

SEARCH_ORIGIN = "https://www.reuters.com"
SEARCH_PATH = "/site-search/"

MIN_CANDIDATES = 5
METADATA_BATCH_SIZE = 4
PREVIEW_CHARS = 500
MIN_FULL_TEXT_CHARS = 800
DEFAULT_MAX_CANDIDATES = 20
DEFAULT_MAX_CHARS = 14_000
MAX_SEARCH_HTML = 1_000_000

ARTICLE_PREFIXES = ("/world/", "/business/", "/markets/")
REJECTED_PATH_PARTS = ("/video/", "/live/", "/pictures/")
REGION_MISMATCH_SECTIONS = (
    "/world/china/",
    "/world/europe/",
    "/world/asia-pacific/",
    "/world/india/",
    "/world/uk/",
    "/world/japan/",
    "/markets/asia/",
    "/markets/europe/",
)

TITLE_META_KEYS = ("og:title", "twitter:title", "title")
TIMESTAMP_META_KEYS = (
    "article:published_time",
    "og:article:published_time",
    "datePublished",
    "pubdate",
    "publish-date",
    "sailthru.date",
    "dc.date",
)


async def _http_get_text(url: str, *, headers: Dict[str, str], timeout_sec: float) -> Tuple[int, str]:
    timeout = httpx.Timeout(timeout_sec)
    async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as client:
        response = await client.get(url, headers=headers)
        return response.status_code, str(response.text or "")


def build_search_url(query: str) -> str:
    return f"{SEARCH_ORIGIN}{SEARCH_PATH}?{urlencode({'query': query})}"


def normalize_article_url(href: str) -> Optional[str]:
    """Absolute same-origin article URL without query or fragment, or None when rejected."""
    raw = str(href or "").strip()
    if not raw or raw.startswith("#"):
        return None
    if not (raw.startswith(ARTICLE_PREFIXES) or raw.startswith(f"{SEARCH_ORIGIN}/")):
        return None
    parsed = urlparse(urljoin(f"{SEARCH_ORIGIN}/", raw))
    if f"{parsed.scheme}://{parsed.netloc}" != SEARCH_ORIGIN:
        return None
    path = parsed.path or "/"
    slashed = path if path.endswith("/") else f"{path}/"
    if any(part in slashed for part in REJECTED_PATH_PARTS):
        return None
    if any(slashed.startswith(section) for section in REGION_MISMATCH_SECTIONS):
        return None
    if len([seg for seg in path.split("/") if seg]) < 2:
        return None
    return urlunparse((parsed.scheme, parsed.netloc, path, "", "", ""))


def extract_candidate_urls(html: str, *, limit: int = DEFAULT_MAX_CANDIDATES) -> List[str]:
    """Unique article links in document order, capped at ``limit``."""
    soup = BeautifulSoup(html or "", "lxml")
    seen: Dict[str, None] = {}
    for anchor in soup.find_all("a", href=True):
        url = normalize_article_url(anchor.get("href"))
        if url and url not in seen:
            seen[url] = None
            if len(seen) >= limit:
                break
    return list(seen)


def _meta_content(soup: BeautifulSoup, key: str) -> Optional[str]:
    for attr in ("property", "name", "itemprop"):
        tag = soup.find("meta", attrs={attr: key})
        if tag is not None:
            value = str(tag.get("content") or "").strip()
            if value:
                return value
    return None


def _json_ld_nodes(value: Any) -> Iterable[Dict[str, Any]]:
    if isinstance(value, list):
        for entry in value:
            yield from _json_ld_nodes(entry)
    elif isinstance(value, dict):
        yield value
        if "@graph" in value:
            yield from _json_ld_nodes(value["@graph"])


def _json_ld_published(soup: BeautifulSoup) -> Optional[str]:
    for script in soup.find_all("script", attrs={"type": "application/ld+json"}):
        try:
            payload = json.loads(script.string or script.get_text() or "")
        except (json.JSONDecodeError, TypeError):
            continue
        for node in _json_ld_nodes(payload):
            value = node.get("datePublished")
            if isinstance(value, str) and value.strip():
                return value.strip()
    return None


def extract_article_metadata(html: str) -> Tuple[Optional[str], Optional[int], str]:
    """Return (title, published epoch ms, paragraph preview) from an article page."""
    soup = BeautifulSoup(html or "", "lxml")

    title = None
    for key in TITLE_META_KEYS:
        title = _meta_content(soup, key)
        if title:
            break
    if not title and soup.title is not None:
        title = soup.title.get_text(strip=True) or None

    published_ms = None
    raw_values = [_meta_content(soup, key) for key in TIMESTAMP_META_KEYS]
    raw_values.append(_json_ld_published(soup))
    for raw in raw_values:
        parsed = parse_timestamp(raw) if raw else None
        if parsed is not None:
            published_ms = to_epoch_ms(parsed)
            break

    paragraphs = [p.get_text(" ", strip=True) for p in soup.find_all("p")]
    preview = " ".join(text for text in paragraphs if text)[:PREVIEW_CHARS]
    return title, published_ms, preview


def content_hash(text: str) -> str:
    return hashlib.sha256(str(text or "").encode("utf-8")).hexdigest()


class MediaDiscoveryEngine:
    """
    Turns one site search into a scored article selection or a degraded result.

    Degraded results are normal return values; this class only raises on
    programming errors.
    """

    def __init__(
        self,
        web_fetcher: Optional[WebFetcher] = None,
        *,
        max_candidates: int = DEFAULT_MAX_CANDIDATES,
        max_chars: int = DEFAULT_MAX_CHARS,
        timeout_sec: Optional[float] = None,
        user_agent: Optional[str] = None,
        now_ms: Optional[Callable[[], int]] = None,
    ):
        general = get_settings().general
        self.web_fetcher = web_fetcher
        self.max_candidates = max(MIN_CANDIDATES, int(max_candidates))
        self.max_chars = max(1, int(max_chars))
        self.timeout_sec = float(timeout_sec or general.request_timeout)
        self.user_agent = user_agent or general.user_agent
        self._now_ms = now_ms or (lambda: to_epoch_ms(utcnow()))

    def _headers(self) -> Dict[str, str]:
        return {
            "Accept": "text/html, text/plain;q=0.8, */*;q=0.1",
            "User-Agent": self.user_agent,
        }

    def _result(
        self,
        *,
        query: str,
        search_url: str,
        release_time_ms: int,
        reason: Optional[str] = None,
        candidates: Optional[List[MediaCandidate]] = None,
        alternates: Optional[List[MediaCandidate]] = None,
        selected: Optional[MediaCandidate] = None,
        title: Optional[str] = None,
        text: Optional[str] = None,
    ) -> MediaSelection:
        fetched_at_ms = int(self._now_ms())
        ok = selected is not None and reason is None
        article_ms = selected.published_at_ms if ok else None
        if not ok:
            logger.info("media degraded reason=%s query=%r", reason, query)
        return MediaSelection(
            mode="ok" if ok else "degraded",
            reason=None if ok else reason,
            confidence="high" if ok else "low",
            query=query,
            search_url=search_url,
            selected=selected if ok else None,
            alternates=list(alternates or []),
            candidates=list(candidates or []),
            article_url=selected.url if ok else None,
            title=title if ok else None,
            text=text if ok else None,
            content_hash=content_hash(text) if ok and text else None,
            release_time_ms=int(release_time_ms),
            release_time_iso=iso_from_ms(release_time_ms),
            article_time_ms=article_ms,
            article_time_iso=iso_from_ms(article_ms) if article_ms is not None else None,
            fetched_at_ms=fetched_at_ms,
            fetched_at_iso=iso_from_ms(fetched_at_ms),
        )

    async def _fetch_metadata(self, url: str) -> MediaCandidate:
        try:
            status, html = await _http_get_text(url, headers=self._headers(), timeout_sec=self.timeout_sec)
        except httpx.HTTPError as exc:
            logger.debug("metadata fetch failed url=%s error=%s", url, exc)
            return MediaCandidate(url=url, dropped=True, drop_reason="metadata_fetch_failed", reasons=[str(exc)[:200]])
        if status >= 400:
            return MediaCandidate(url=url, dropped=True, drop_reason=f"metadata_http_{status}")
        title, published_ms, preview = extract_article_metadata(html)
        candidate = MediaCandidate(
            url=url,
            title=title,
            published_at_ms=published_ms,
            published_at_iso=iso_from_ms(published_ms) if published_ms is not None else None,
            preview=preview,
        )
        if not title:
            return candidate.model_copy(update={"dropped": True, "drop_reason": "missing_title"})
        if published_ms is None:
            return candidate.model_copy(update={"dropped": True, "drop_reason": "missing_timestamp"})
        return candidate

    async def fetch_metadata(self, urls: List[str]) -> List[MediaCandidate]:
        """Fetch candidate metadata in fixed-size concurrent batches."""
        results: List[MediaCandidate] = []
        for i in range(0, len(urls), METADATA_BATCH_SIZE):
            batch = urls[i:i + METADATA_BATCH_SIZE]
            results.extend(await asyncio.gather(*(self._fetch_metadata(url) for url in batch)))
        return results

    async def discover(self, query: str, release_time_ms: int) -> MediaSelection:
        search_url = build_search_url(query)
        base = {"query": query, "search_url": search_url, "release_time_ms": release_time_ms}

        try:
            status, html = await _http_get_text(search_url, headers=self._headers(), timeout_sec=self.timeout_sec)
        except httpx.HTTPError as exc:
            logger.warning("media search failed url=%s error=%s", search_url, exc)
            return self._result(reason="search_request_failed", **base)
        if status >= 400:
            return self._result(reason=f"search_http_{status}", **base)

        urls = extract_candidate_urls(html[:MAX_SEARCH_HTML], limit=self.max_candidates)
        if len(urls) < MIN_CANDIDATES:
            stubs = [MediaCandidate(url=url) for url in urls]
            return self._result(reason="insufficient_candidates", candidates=stubs, **base)

        fetched = await self.fetch_metadata(urls)
        scored = [c if c.dropped else score_candidate(c, release_time_ms) for c in fetched]
        selected, alternates, degrade_reason = select_candidate(scored)
        if selected is None:
            return self._result(reason=degrade_reason, candidates=scored, alternates=alternates, **base)
        fallback = ([selected] + alternates)[:MAX_ALTERNATES]

        if self.web_fetcher is None:
            return self._result(
                reason="web_fetch_disabled", candidates=scored, alternates=fallback, **base
            )

        try:
            page = await self.web_fetcher.fetch(selected.url, extract_mode="text", max_chars=self.max_chars)
        except ProviderError as exc:
            logger.warning("full text fetch failed url=%s error=%s", selected.url, exc)
            return self._result(
                reason="full_text_validation_failed", candidates=scored, alternates=fallback, **base
            )

        text = (page.text or "").strip()
        if len(text) <= MIN_FULL_TEXT_CHARS or not has_indicator_keyword(text):
            return self._result(
                reason="full_text_validation_failed", candidates=scored, alternates=fallback, **base
            )

        return self._result(
            candidates=scored,
            alternates=alternates,
            selected=selected,
            title=page.title or selected.title,
            text=text,
            **base,
        )
