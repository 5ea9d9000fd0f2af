"""
Settings Configuration
使用 Pydantic 进行配置验证和管理
"""
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


CALENDAR_PROVIDERS = ("tradingeconomics", "fred")


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, int(value)))


class ReleaseEngineSettings(BaseSettings):
    """发布引擎运行配置"""
    enabled: bool = Field(default=False, description="是否启动定时调度")
    poll_seconds: int = Field(default=60, description="调度间隔秒数 (10-300)")
    max_retries: int = Field(default=8, description="每个步骤进入 failed_terminal 前的重试次数 (1-32)")
    country: str = Field(default="united states", description="目标日历国家")
    indicator: str = Field(default="CPI", description="传给数据源的指标名称")
    history_days: int = Field(default=220, description="历史快照回溯天数 (30-730)")
    state_dir: str = Field(default="./data/release-engine/us-cpi", description="状态文件与快照根目录")
    delivery_target: Optional[str] = Field(default=None, description="推送目标 chat id, 为空则跳过发布")
    delivery_account_id: Optional[str] = Field(default=None, description="推送账号 ID (可选)")
    preprocess_model: Optional[str] = Field(default=None, description="证据抽取使用的 provider/model")
    analysis_model: Optional[str] = Field(default=None, description="分析报告使用的 provider/model")
    max_media_candidates: int = Field(default=20, description="参与评分的媒体候选数 (最少 5)")
    calendar_provider: str = Field(default="tradingeconomics", description="事件发现日历: tradingeconomics 或 fred")

    class Config:
        env_prefix = "RELEASE_ENGINE_"

    @field_validator("poll_seconds", mode="after")
    @classmethod
    def _bound_poll(cls, value: int) -> int:
        return _clamp(value, 10, 300)

    @field_validator("max_retries", mode="after")
    @classmethod
    def _bound_retries(cls, value: int) -> int:
        return _clamp(value, 1, 32)

    @field_validator("history_days", mode="after")
    @classmethod
    def _bound_history(cls, value: int) -> int:
        return _clamp(value, 30, 730)

    @field_validator("max_media_candidates", mode="after")
    @classmethod
    def _floor_candidates(cls, value: int) -> int:
        return max(5, int(value))

    @field_validator("calendar_provider", mode="before")
    @classmethod
    def _known_calendar(cls, value) -> str:
        text = str(value or "").strip().lower()
        return text if text in CALENDAR_PROVIDERS else "tradingeconomics"

    @field_validator("country", "indicator", mode="before")
    @classmethod
    def _strip_required(cls, value, info):
        text = str(value or "").strip()
        if text:
            return text
        return "united states" if info.field_name == "country" else "CPI"

    @field_validator(
        "delivery_target",
        "delivery_account_id",
        "preprocess_model",
        "analysis_model",
        mode="before",
    )
    @classmethod
    def _optional_text(cls, value) -> Optional[str]:
        text = str(value or "").strip()
        return text or None

    @property
    def store_path(self) -> Path:
        return Path(self.state_dir) / "state.json"


class TradingEconomicsSettings(BaseSettings):
    """Trading Economics API 配置"""
    api_key: Optional[str] = Field(default=None, description="Trading Economics API Key")
    base_url: str = Field(default="https://api.tradingeconomics.com", description="API 基础地址")

    class Config:
        env_prefix = "TRADING_ECONOMICS_"


class FredSettings(BaseSettings):
    """FRED API 配置"""
    api_key: Optional[str] = Field(default=None, description="FRED API Key")
    base_url: str = Field(default="https://api.stlouisfed.org/fred", description="API 基础地址")

    class Config:
        env_prefix = "FRED_"


class LLMSettings(BaseSettings):
    """LLM 配置"""
    provider: str = Field(default="openai", description="LLM 供应商 (OpenAI 兼容)")
    model_name: Optional[str] = Field(default=None, description="默认模型名称")
    api_key: Optional[str] = Field(default=None, description="API Key")
    base_url: Optional[str] = Field(default=None, description="OpenAI 兼容接口地址")
    temperature: float = Field(default=0.2, description="生成温度")
    max_tokens: int = Field(default=4096, description="最大生成 token 数")

    class Config:
        env_prefix = "LLM_"


class TelegramSettings(BaseSettings):
    """Telegram 推送配置"""
    bot_token: Optional[str] = Field(default=None, description="Telegram Bot Token")
    api_base: str = Field(default="https://api.telegram.org", description="Bot API 基础地址")

    class Config:
        env_prefix = "TELEGRAM_"


class GeneralSettings(BaseSettings):
    """通用 HTTP 配置"""
    request_timeout: float = Field(default=20.0, description="请求超时时间 (秒)")
    user_agent: str = Field(
        default=(
            "Mozilla/5.0 (Macintosh; Intel Mac OS X 14_7_2) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36"
        ),
        description="网页抓取使用的 User-Agent",
    )


class Settings(BaseSettings):
    """全局配置聚合"""

    release_engine: ReleaseEngineSettings = Field(default_factory=ReleaseEngineSettings)
    tradingeconomics: TradingEconomicsSettings = Field(default_factory=TradingEconomicsSettings)
    fred: FredSettings = Field(default_factory=FredSettings)
    llm: LLMSettings = Field(default_factory=LLMSettings)
    telegram: TelegramSettings = Field(default_factory=TelegramSettings)
    general: GeneralSettings = Field(default_factory=GeneralSettings)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    @classmethod
    def load_from_env_file(cls, env_path: Optional[Path] = None) -> "Settings":
        """从 .env 文件加载配置 (默认 config/.env)"""
        if env_path is None:
            env_path = Path(__file__).parent / ".env"

        if env_path.exists():
            from dotenv import load_dotenv
            load_dotenv(env_path)

        return cls(
            release_engine=ReleaseEngineSettings(),
            tradingeconomics=TradingEconomicsSettings(),
            fred=FredSettings(),
            llm=LLMSettings(),
            telegram=TelegramSettings(),
            general=GeneralSettings(),
        )


@lru_cache()
def get_settings() -> Settings:
    """获取全局配置单例"""
    return Settings.load_from_env_file()


def get_release_engine_settings() -> ReleaseEngineSettings:
    return get_settings().release_engine


def get_llm_settings() -> LLMSettings:
    return get_settings().llm
