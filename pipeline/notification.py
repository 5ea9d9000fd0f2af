"""Report delivery: channel contract and the Telegram Bot API channel."""

from __future__ import annotations

from abc import ABC, abstractmethod
import logging
from typing import Any, Dict, List, Optional

import httpx

from config import get_settings
from utils.exceptions import ConfigurationError, DeliveryError

logger = logging.getLogger(__name__)

TELEGRAM_MESSAGE_LIMIT = 4000


def split_message(text: str, limit: int = TELEGRAM_MESSAGE_LIMIT) -> List[str]:
    """Split on paragraph boundaries, hard-wrapping paragraphs longer than ``limit``."""
    chunks: List[str] = []
    current = ""
    for paragraph in str(text or "").split("\n\n"):
        pieces = [paragraph[i:i + limit] for i in range(0, len(paragraph), limit)] or [""]
        for piece in pieces:
            candidate = f"{current}\n\n{piece}" if current else piece
            if len(candidate) <= limit:
                current = candidate
                continue
            if current:
                chunks.append(current)
            current = piece
    if current.strip():
        chunks.append(current)
    return chunks


class DeliveryChannel(ABC):

    @property
    @abstractmethod
    def channel(self) -> str:
        pass

    @abstractmethod
    async def send(
        self,
        target: str,
        payloads: List[Dict[str, Any]],
        *,
        account_id: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Deliver text payloads; returns one result dict per delivered message."""
        pass


class TelegramChannel(DeliveryChannel):
    """Posts payload text to a chat via sendMessage."""

    def __init__(
        self,
        bot_token: Optional[str] = None,
        api_base: Optional[str] = None,
        timeout_sec: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        settings = get_settings()
        self.bot_token = bot_token if bot_token is not None else settings.telegram.bot_token
        self.api_base = (api_base or settings.telegram.api_base).rstrip("/")
        self.timeout_sec = float(timeout_sec or settings.general.request_timeout)
        self._client = client

    @property
    def channel(self) -> str:
        return "telegram"

    async def _post(self, client: httpx.AsyncClient, url: str, body: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = await client.post(url, json=body)
        except httpx.HTTPError as exc:
            raise DeliveryError(f"telegram request failed: {exc}", channel=self.channel) from exc
        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if response.status_code >= 400 or not payload.get("ok"):
            raise DeliveryError(
                f"telegram sendMessage failed ({response.status_code})",
                channel=self.channel,
                description=str(payload.get("description") or response.text or "")[:300],
            )
        result = payload.get("result") or {}
        return {"channel": self.channel, "chat_id": body["chat_id"], "message_id": result.get("message_id")}

    async def send(
        self,
        target: str,
        payloads: List[Dict[str, Any]],
        *,
        account_id: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        if not self.bot_token:
            raise ConfigurationError("Telegram delivery needs TELEGRAM_BOT_TOKEN", {"channel": self.channel})
        url = f"{self.api_base}/bot{self.bot_token}/sendMessage"
        messages = [chunk for payload in payloads for chunk in split_message(str(payload.get("text") or ""))]
        results: List[Dict[str, Any]] = []
        if self._client is not None:
            for text in messages:
                results.append(await self._post(self._client, url, {"chat_id": target, "text": text}))
        else:
            async with httpx.AsyncClient(timeout=httpx.Timeout(self.timeout_sec)) as client:
                for text in messages:
                    results.append(await self._post(client, url, {"chat_id": target, "text": text}))
        logger.info("telegram delivered messages=%d target=%s", len(results), target)
        return results
