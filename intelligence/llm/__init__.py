"""
LLM Module
LLM 抽象层 - OpenAI 兼容接口
"""
from .base import BaseLLM, LLMResponse, Message, MessageRole
from .openai_llm import OpenAILLM
from .factory import get_llm, parse_model_ref

__all__ = [
    "BaseLLM",
    "LLMResponse",
    "Message",
    "MessageRole",
    "OpenAILLM",
    "get_llm",
    "parse_model_ref",
]
