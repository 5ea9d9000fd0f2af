"""
Intelligence Module
智能层 - LLM 抽象 + 补全服务
"""
from .llm import BaseLLM, OpenAILLM, get_llm, parse_model_ref
from .completion import (
    CompletionService,
    LLMCompletionService,
    extract_json_slice,
    parse_json_reply,
)

__all__ = [
    "BaseLLM",
    "OpenAILLM",
    "get_llm",
    "parse_model_ref",
    "CompletionService",
    "LLMCompletionService",
    "extract_json_slice",
    "parse_json_reply",
]
