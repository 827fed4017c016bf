import pytest

from config.settings import (
    MIN_EXECUTION_INTERVAL_MS,
    ConfigurationError,
    Settings,
    TradingSettings,
)

REQUIRED_ENV = {
    "BYBIT_API_KEY": "key",
    "BYBIT_API_SECRET": "secret",
    "BYBIT_BASE_URL": "https://api-testnet.bybit.com",
    "OPENAI_API_KEY": "sk-test",
    "OPENAI_BASE_URL": "https://llm.example.com/v1",
    "EXECUTION_INTERVAL_MS": "300000",
    "TELEGRAM_BOT_TOKEN": "bot",
    "TELEGRAM_CHAT_ID": "42",
    "CRYPTO_HORDE_ENDPOINT": "https://news.example.com/api",
    "CRYPTO_HORDE_KEY": "news-key",
}


@pytest.fixture
def env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    for name, value in REQUIRED_ENV.items():
        monkeypatch.setenv(name, value)
    return monkeypatch


def test_load_complete_environment(env):
    settings = Settings.load()

    assert settings.bybit.api_key == "key"
    assert settings.bybit.symbol == "BTCUSDT"
    assert settings.llm.openai_model == "qwen3-max"
    assert settings.trading.execution_interval_seconds == 300
    assert settings.trading.max_leverage == 100
    assert settings.notifications.telegram_chat_id == "42"
    assert settings.logging.log_level == "INFO"


def test_missing_values_raise_configuration_error(env):
    env.delenv("BYBIT_API_KEY")
    env.delenv("TELEGRAM_CHAT_ID")

    with pytest.raises(ConfigurationError) as excinfo:
        Settings.load()

    message = str(excinfo.value)
    assert "BYBIT_API_KEY" in message
    assert "TELEGRAM_CHAT_ID" in message


@pytest.mark.parametrize("raw,expected", [
    ("1000", MIN_EXECUTION_INTERVAL_MS),
    ("garbage", MIN_EXECUTION_INTERVAL_MS),
    ("600000", 600000),
])
def test_execution_interval_is_floored(env, raw, expected):
    env.setenv("EXECUTION_INTERVAL_MS", raw)
    assert TradingSettings().execution_interval_ms == expected


def test_symbol_and_leverage_overrides(env):
    env.setenv("BYBIT_SYMBOL", "ETHUSDT")
    env.setenv("MAX_LEVERAGE", "25")
    env.setenv("DEFAULT_LEVERAGE", "4")

    settings = Settings.load()

    assert settings.bybit.symbol == "ETHUSDT"
    assert settings.trading.max_leverage == 25
    assert settings.trading.default_leverage == 4
