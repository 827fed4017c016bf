"""
Configuration settings for the perpetual-futures trading loop
"""
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

MIN_EXECUTION_INTERVAL_MS = 2 * 60 * 1000


class ConfigurationError(Exception):
    """Required settings are missing or invalid"""


class BybitSettings(BaseSettings):
    """Bybit exchange configuration"""
    model_config = SettingsConfigDict(env_file=".env", env_prefix="BYBIT_", extra="ignore")

    api_key: str = Field(..., description="Bybit API key")
    api_secret: str = Field(..., description="Bybit API secret")
    base_url: str = Field(..., description="REST endpoint, e.g. https://api.bybit.com")
    testnet: bool = False
    symbol: str = "BTCUSDT"
    category: str = "linear"
    account_type: str = "UNIFIED"
    recv_window: int = 5000


class LLMSettings(BaseSettings):
    """Decision model configuration"""
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    openai_api_key: str = Field(...)
    openai_base_url: str = Field(...)
    openai_model: str = "qwen3-max"
    temperature: float = 0.2
    timeout: int = 60


class TradingSettings(BaseSettings):
    """Trading loop configuration"""
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    execution_interval_ms: int = Field(..., description="Delay between trading cycles")
    max_leverage: int = Field(100, ge=1, le=200)
    default_leverage: Optional[int] = Field(None, ge=1)
    default_qty_step: float = Field(0.001, gt=0)
    default_tick_size: float = Field(0.5, gt=0)
    candle_limit: int = Field(60, ge=1, le=1000)
    order_link_prefix: str = "perpguard"
    skip_when_protected: bool = True

    @field_validator("execution_interval_ms", mode="before")
    @classmethod
    def floor_interval(cls, v):
        try:
            value = int(float(v))
        except (TypeError, ValueError):
            value = 0
        return max(value, MIN_EXECUTION_INTERVAL_MS)

    @property
    def execution_interval_seconds(self) -> float:
        return self.execution_interval_ms / 1000


class NotificationSettings(BaseSettings):
    """Notification configuration"""
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    telegram_bot_token: str = Field(...)
    telegram_chat_id: str = Field(...)


class NewsSettings(BaseSettings):
    """Headline feed configuration"""
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    crypto_horde_endpoint: str = Field(...)
    crypto_horde_key: str = Field(...)
    news_timeout: float = 10.0


class LoggingSettings(BaseSettings):
    """Logging configuration"""
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    log_to_file: bool = False
    log_file_path: Path = Path("logs/trading.log")
    log_max_size_mb: int = 100
    log_backup_count: int = 10
    log_format: str = "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"


class Settings(BaseSettings):
    """Main settings aggregator"""
    model_config = SettingsConfigDict(extra="ignore")

    bybit: BybitSettings
    llm: LLMSettings
    trading: TradingSettings
    notifications: NotificationSettings
    news: NewsSettings
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @classmethod
    def load(cls) -> "Settings":
        """Load settings from environment; missing required values raise ConfigurationError"""
        sections = {
            "bybit": BybitSettings,
            "llm": LLMSettings,
            "trading": TradingSettings,
            "notifications": NotificationSettings,
            "news": NewsSettings,
            "logging": LoggingSettings,
        }
        loaded = {}
        problems = []
        for name, section in sections.items():
            try:
                loaded[name] = section()
            except ValidationError as e:
                prefix = section.model_config.get("env_prefix", "")
                for error in e.errors():
                    field = ".".join(str(part) for part in error["loc"])
                    problems.append(f"{(prefix + field).upper()} ({error['msg']})")

        if problems:
            raise ConfigurationError(f"Invalid configuration: {', '.join(problems)}")
        return cls(**loaded)
