"""
LLM Factory
工厂函数 - 根据配置或 "provider/model" 引用创建 LLM 实例
"""
from typing import Optional, Tuple
import logging

from utils.exceptions import ConfigurationError

from .base import BaseLLM
from .openai_llm import OpenAILLM


logger = logging.getLogger(__name__)


DEFAULT_MODELS = {
    "openai": "gpt-4o-mini",
}

# 通过 OpenAI 兼容接口访问的供应商
OPENAI_COMPATIBLE = {"openai", "openrouter", "deepseek", "together", "local"}


def parse_model_ref(ref: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    """拆分 "provider/model" 为 (provider, model); 不带斜杠时视为模型名"""
    text = (ref or "").strip()
    if not text:
        return None, None
    if "/" not in text:
        return None, text
    provider, model = text.split("/", 1)
    provider = provider.strip().lower() or None
    model = model.strip() or None
    return provider, model


def get_llm(
    provider: Optional[str] = None,
    model: Optional[str] = None,
    **kwargs,
) -> BaseLLM:
    """
    获取 LLM 实例

    Args:
        provider: 供应商名称, 默认读取 LLM_PROVIDER
        model: 模型名或 "provider/model", 默认读取 LLM_MODEL_NAME
        **kwargs: temperature, max_tokens, timeout, api_key, base_url

    Example:
        llm = get_llm(model="openai/gpt-4o")
    """
    from config import get_llm_settings

    settings = get_llm_settings()

    ref_provider, ref_model = parse_model_ref(model)
    provider = (provider or ref_provider or settings.provider or "openai").lower()
    model = ref_model or settings.model_name or DEFAULT_MODELS.get(provider) or DEFAULT_MODELS["openai"]

    if provider not in OPENAI_COMPATIBLE:
        raise ConfigurationError(f"Unsupported LLM provider: {provider}", {"model": model})

    api_key = kwargs.pop("api_key", None) or settings.api_key
    base_url = kwargs.pop("base_url", None) or settings.base_url
    kwargs.setdefault("temperature", settings.temperature)
    kwargs.setdefault("max_tokens", settings.max_tokens)

    logger.debug("llm provider=%s model=%s", provider, model)
    return OpenAILLM(model=model, api_key=api_key, base_url=base_url, **kwargs)
