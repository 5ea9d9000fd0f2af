"""
Web Fetch
httpx page fetcher with BeautifulSoup readable-text extraction.
"""
import logging
import re
from typing import Dict, Optional, Tuple

import httpx
from bs4 import BeautifulSoup

from config import get_settings
from core import WebPage
from utils.exceptions import ProviderError

from .base import WebFetcher

logger = logging.getLogger(__name__)

_DROP_TAGS = ("script", "style", "noscript", "template", "svg", "iframe", "nav", "footer", "header", "form")


def _normalize_whitespace(value: str) -> str:
    value = re.sub(r"[ \t\f\v\r]+", " ", value)
    value = re.sub(r"\n\s*\n+", "\n\n", value)
    return value.strip()


def html_to_text(html: str) -> Tuple[Optional[str], str]:
    """Return (title, readable text) for an HTML document."""
    soup = BeautifulSoup(html or "", "lxml")
    title_tag = soup.find("title")
    title = title_tag.get_text(strip=True) if title_tag else None
    for tag in soup(_DROP_TAGS):
        tag.decompose()
    root = soup.find("article") or soup.find("main") or soup.body or soup
    blocks = []
    for node in root.find_all(["h1", "h2", "h3", "p", "li", "td"]):
        text = node.get_text(" ", strip=True)
        if text:
            blocks.append(text)
    body = "\n\n".join(blocks) if blocks else root.get_text("\n", strip=True)
    return title or None, _normalize_whitespace(body)


class HttpWebFetcher(WebFetcher):
    """Follows redirects and returns readable text truncated to ``max_chars``."""

    def __init__(
        self,
        timeout_sec: Optional[float] = None,
        user_agent: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        general = get_settings().general
        self.timeout_sec = float(timeout_sec or general.request_timeout)
        self.user_agent = user_agent or general.user_agent
        self._client = client

    def _headers(self) -> Dict[str, str]:
        return {
            "User-Agent": self.user_agent,
            "Accept": "text/html,application/xhtml+xml,text/plain;q=0.9,*/*;q=0.5",
            "Accept-Language": "en-US,en;q=0.9",
        }

    async def _get(self, url: str) -> httpx.Response:
        if self._client is not None:
            return await self._client.get(url, headers=self._headers(), follow_redirects=True)
        timeout = httpx.Timeout(self.timeout_sec)
        async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as client:
            return await client.get(url, headers=self._headers())

    async def fetch(self, url: str, *, extract_mode: str = "text", max_chars: int = 16_000) -> WebPage:
        try:
            response = await self._get(url)
        except httpx.HTTPError as exc:
            raise ProviderError(f"fetch failed: {exc}", source="web_fetch", url=url) from exc
        if response.status_code >= 400:
            raise ProviderError(
                f"fetch http {response.status_code}",
                source="web_fetch",
                url=url,
                status_code=response.status_code,
            )

        content_type = str(response.headers.get("content-type") or "").lower()
        if "application/pdf" in content_type:
            raise ProviderError("pdf body not parsed", source="web_fetch", url=url)

        raw = str(response.text or "")
        if extract_mode == "raw":
            title, text = None, raw
        elif "html" in content_type or "<html" in raw[:2000].lower():
            title, text = html_to_text(raw)
        else:
            title, text = None, _normalize_whitespace(raw)

        limit = max(1, int(max_chars))
        truncated = len(text) > limit
        return WebPage(
            url=url,
            final_url=str(response.url) if response.url else url,
            status_code=response.status_code,
            title=title,
            text=text[:limit],
            truncated=truncated,
        )
