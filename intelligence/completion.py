"""
Completion Service
One-shot text and JSON prompts with per-call model override and timeout.
"""
import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional

from utils.exceptions import LLMError

from .llm import BaseLLM, get_llm, parse_model_ref

logger = logging.getLogger(__name__)


def extract_json_slice(raw: str) -> Optional[str]:
    """Return the first balanced {...} or [...] slice of ``raw``, ignoring brackets inside strings."""
    text = str(raw or "")
    starts = [i for i in (text.find("{"), text.find("[")) if i >= 0]
    if not starts:
        return None
    start = min(starts)
    opener = text[start]
    closer = "}" if opener == "{" else "]"
    depth = 0
    in_string = False
    escaping = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaping:
                escaping = False
            elif char == "\\":
                escaping = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == opener:
            depth += 1
        elif char == closer:
            depth -= 1
            if depth == 0:
                return text[start:index + 1]
    return None


def parse_json_reply(raw: str) -> Any:
    sliced = extract_json_slice(raw)
    if sliced is None:
        raise LLMError("model did not return JSON", preview=str(raw or "")[:200])
    try:
        return json.loads(sliced)
    except json.JSONDecodeError as exc:
        raise LLMError(f"model returned malformed JSON: {exc.msg}", preview=sliced[:200]) from exc


class CompletionService(ABC):
    """Collaborator contract used by the preprocess and analysis steps."""

    @abstractmethod
    async def complete_text(self, prompt: str, *, timeout: float, model: Optional[str] = None) -> str:
        pass

    async def complete_json(self, prompt: str, *, timeout: float, model: Optional[str] = None) -> Any:
        text = await self.complete_text(prompt, timeout=timeout, model=model)
        return parse_json_reply(text)

    async def aclose(self) -> None:
        return None


class LLMCompletionService(CompletionService):
    """Routes prompts to chat models built by ``get_llm`` and caches one model per reference."""

    def __init__(self, llm_factory: Callable[..., BaseLLM] = get_llm):
        self._llm_factory = llm_factory
        self._models: Dict[str, BaseLLM] = {}

    def _model_for(self, model_ref: Optional[str]) -> BaseLLM:
        key = (model_ref or "").strip()
        if key not in self._models:
            provider, _ = parse_model_ref(key)
            self._models[key] = self._llm_factory(provider=provider, model=key or None)
        return self._models[key]

    async def complete_text(self, prompt: str, *, timeout: float, model: Optional[str] = None) -> str:
        llm = self._model_for(model)
        try:
            reply = await asyncio.wait_for(llm.achat(prompt, timeout=timeout), timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise LLMError("completion timed out", provider=llm.provider, timeout=timeout) from exc
        except LLMError:
            raise
        except Exception as exc:
            raise LLMError(f"completion failed: {exc}", provider=llm.provider) from exc
        return str(reply or "").strip()

    async def aclose(self) -> None:
        models = list(self._models.values())
        self._models.clear()
        for llm in models:
            await llm.aclose()
