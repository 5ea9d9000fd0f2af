"""
Configuration Management Module
统一配置管理，实现API配置解耦
"""
from .settings import (
    FredSettings,
    GeneralSettings,
    LLMSettings,
    ReleaseEngineSettings,
    Settings,
    TelegramSettings,
    TradingEconomicsSettings,
    get_llm_settings,
    get_release_engine_settings,
    get_settings,
)

__all__ = [
    "FredSettings",
    "GeneralSettings",
    "LLMSettings",
    "ReleaseEngineSettings",
    "Settings",
    "TelegramSettings",
    "TradingEconomicsSettings",
    "get_llm_settings",
    "get_release_engine_settings",
    "get_settings",
]
