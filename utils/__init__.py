"""
Utils Module
通用工具函数 - 日志与异常
"""
from .logger import setup_logger, get_logger
from .exceptions import (
    ReleaseEngineError,
    ConfigurationError,
    ProviderError,
    StoreError,
    StepError,
    LLMError,
    DeliveryError,
)

__all__ = [
    "setup_logger",
    "get_logger",
    "ReleaseEngineError",
    "ConfigurationError",
    "ProviderError",
    "StoreError",
    "StepError",
    "LLMError",
    "DeliveryError",
]
