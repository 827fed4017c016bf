"""
Market Data Source - Async facade over the synchronous Bybit client
"""
import asyncio
from typing import Dict, List, Sequence, Tuple

from loguru import logger

from src.exchange.bybit_client import BybitClient
from src.exchange.models import AccountSnapshot, Candle, InstrumentMeta, PositionState, Ticker

# (label, Bybit kline interval)
INTRADAY_TIMEFRAMES: Tuple[Tuple[str, str], ...] = (
    ("1m", "1"),
    ("5m", "5"),
    ("1h", "60"),
)


class MarketDataSource:
    """Runs client calls off the event loop so fetches can be awaited jointly"""

    def __init__(self, client: BybitClient, symbol: str, candle_limit: int = 60):
        self.client = client
        self.symbol = symbol
        self.candle_limit = candle_limit

    async def get_account_snapshot(self) -> AccountSnapshot:
        return await asyncio.to_thread(self.client.get_account_snapshot)

    async def get_ticker(self) -> Ticker:
        return await asyncio.to_thread(self.client.get_ticker, self.symbol)

    async def get_instrument_meta(self) -> InstrumentMeta:
        return await asyncio.to_thread(self.client.get_instrument_meta, self.symbol)

    async def get_position_state(self) -> PositionState:
        return await asyncio.to_thread(self.client.get_position_state, self.symbol)

    async def get_candles(self, interval: str) -> List[Candle]:
        return await asyncio.to_thread(self.client.get_candles, self.symbol, interval, self.candle_limit)

    async def fetch_intraday_series(
        self,
        timeframes: Sequence[Tuple[str, str]] = INTRADAY_TIMEFRAMES,
    ) -> Dict[str, List[Candle]]:
        """Candles per timeframe label; a failed timeframe yields an empty list"""

        async def load(label: str, interval: str) -> Tuple[str, List[Candle]]:
            try:
                return label, await self.get_candles(interval)
            except Exception as e:
                logger.error(f"Failed to load {label} candles: {e}")
                return label, []

        results = await asyncio.gather(*(load(label, interval) for label, interval in timeframes))
        return dict(results)
