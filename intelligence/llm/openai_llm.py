"""
OpenAI LLM
支持 GPT-4o, GPT-4o-mini 等模型, 以及通过 base_url 接入的 OpenAI 兼容网关
"""
import inspect
import logging
from typing import List, Optional

from .base import BaseLLM, LLMResponse, Message


logger = logging.getLogger(__name__)


class OpenAILLM(BaseLLM):
    """OpenAI LLM 实现 (AsyncOpenAI)"""

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        temperature: float = 0.2,
        max_tokens: int = 4096,
        timeout: float = 60.0,
        **kwargs,
    ):
        super().__init__(model, temperature, max_tokens, timeout, **kwargs)
        self.api_key = api_key
        self.base_url = base_url
        self._async_client = None

    @property
    def provider(self) -> str:
        return "openai"

    def _get_async_client(self):
        """延迟初始化异步客户端"""
        if self._async_client is None:
            from openai import AsyncOpenAI
            self._async_client = AsyncOpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                timeout=self.timeout,
            )
        return self._async_client

    async def acomplete(self, messages: List[Message], **kwargs) -> LLMResponse:
        client = self._get_async_client()
        request_params = {
            "model": kwargs.get("model") or self.model,
            "messages": [m.to_dict() for m in messages],
            "temperature": kwargs.get("temperature", self.temperature),
            "max_tokens": kwargs.get("max_tokens", self.max_tokens),
        }
        if kwargs.get("timeout"):
            request_params["timeout"] = float(kwargs["timeout"])
        if kwargs.get("json_mode"):
            request_params["response_format"] = {"type": "json_object"}

        response = await client.chat.completions.create(**request_params)

        choice = response.choices[0]
        usage = {}
        if response.usage is not None:
            usage = {
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens,
            }
        return LLMResponse(
            content=choice.message.content or "",
            model=response.model,
            usage=usage,
            finish_reason=choice.finish_reason,
        )

    async def aclose(self) -> None:
        client = self._async_client
        if client is None:
            return
        self._async_client = None
        close_fn = getattr(client, "close", None)
        if callable(close_fn):
            maybe_awaitable = close_fn()
            if inspect.isawaitable(maybe_awaitable):
                await maybe_awaitable
