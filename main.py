"""
Perpguard - Scheduled decision-to-order loop for one Bybit perpetual
"""
import asyncio
import signal
import sys
from datetime import datetime, timezone
from pathlib import Path

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent))

from loguru import logger

from config.settings import ConfigurationError, LoggingSettings, Settings
from src.engine.scheduler import CycleScheduler
from src.engine.trading_cycle import TradingCycle
from src.exchange.bybit_client import BybitClient
from src.exchange.leverage_cache import LeverageCache
from src.exchange.market_data import MarketDataSource
from src.exchange.order_executor import OrderExecutor
from src.llm.decision_client import DecisionClient
from src.news.crypto_news import CryptoNewsClient
from src.notifications.telegram_notifier import TelegramNotifier
from src.risk.order_builder import GuardrailOrderBuilder


def setup_logging(settings: LoggingSettings):
    """Configure logging"""
    logger.remove()  # Remove default handler

    logger.add(sys.stderr, level=settings.log_level, format=settings.log_format)

    if settings.log_to_file:
        logger.add(
            settings.log_file_path,
            level=settings.log_level,
            format=settings.log_format,
            rotation=f"{settings.log_max_size_mb} MB",
            retention=settings.log_backup_count,
        )


class TradingApp:
    """Wires the collaborators of the trading loop together"""

    def __init__(self, settings: Settings):
        self.settings = settings
        bybit_cfg = settings.bybit
        trading_cfg = settings.trading

        self.bybit = BybitClient(
            api_key=bybit_cfg.api_key,
            api_secret=bybit_cfg.api_secret,
            base_url=bybit_cfg.base_url,
            testnet=bybit_cfg.testnet,
            category=bybit_cfg.category,
            account_type=bybit_cfg.account_type,
            recv_window=bybit_cfg.recv_window,
            default_leverage=trading_cfg.max_leverage,
        )
        self.leverage_cache = LeverageCache(
            set_leverage=self._set_leverage,
            max_leverage=trading_cfg.max_leverage,
            default_category=bybit_cfg.category,
        )
        self.notifier = TelegramNotifier(
            bot_token=settings.notifications.telegram_bot_token,
            chat_id=settings.notifications.telegram_chat_id,
        )
        self.cycle = TradingCycle(
            market_data=MarketDataSource(self.bybit, bybit_cfg.symbol, trading_cfg.candle_limit),
            news=CryptoNewsClient(
                endpoint=settings.news.crypto_horde_endpoint,
                api_key=settings.news.crypto_horde_key,
                timeout=settings.news.news_timeout,
            ),
            decision_client=DecisionClient(
                api_key=settings.llm.openai_api_key,
                base_url=settings.llm.openai_base_url,
                model=settings.llm.openai_model,
                temperature=settings.llm.temperature,
                timeout=settings.llm.timeout,
            ),
            order_builder=GuardrailOrderBuilder(
                max_leverage=trading_cfg.max_leverage,
                default_leverage=trading_cfg.default_leverage,
                order_link_prefix=trading_cfg.order_link_prefix,
                default_qty_step=trading_cfg.default_qty_step,
                default_tick_size=trading_cfg.default_tick_size,
            ),
            executor=OrderExecutor(self.bybit, self.leverage_cache),
            notifier=self.notifier,
            category=bybit_cfg.category,
            skip_when_protected=trading_cfg.skip_when_protected,
            session_start=datetime.now(timezone.utc),
        )
        self.scheduler = CycleScheduler(
            cycle=self.cycle.run,
            interval_seconds=trading_cfg.execution_interval_seconds,
            on_error=self.notifier.send_cycle_error,
        )

    async def _set_leverage(self, symbol: str, leverage: int, category: str):
        return await asyncio.to_thread(self.bybit.set_leverage, symbol, leverage, category)

    async def run(self):
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.scheduler.request_shutdown, sig.name)
            except NotImplementedError:
                # Windows event loops have no signal handler support
                signal.signal(sig, lambda s, _f: loop.call_soon_threadsafe(
                    self.scheduler.request_shutdown, signal.Signals(s).name
                ))

        self.scheduler.start()
        try:
            await self.scheduler.wait_closed()
        finally:
            await self.notifier.close()
            logger.info("Shutdown complete")


async def main() -> int:
    """Main entry point"""
    try:
        settings = Settings.load()
    except ConfigurationError as e:
        logger.error(f"Fatal configuration error: {e}")
        return 1

    setup_logging(settings.logging)
    app = TradingApp(settings)
    await app.run()
    return 0


def cli():
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
