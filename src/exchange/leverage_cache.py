"""
Leverage Cache - Remembers the last leverage confirmed per (category, symbol)
"""
import math
from typing import Awaitable, Callable, Dict, Optional, Tuple

from loguru import logger

from src.exchange.errors import is_leverage_unchanged

LeverageSetter = Callable[[str, int, str], Awaitable[object]]


class LeverageCache:
    """Skips set-leverage calls when the venue already runs the requested leverage"""

    def __init__(self, set_leverage: LeverageSetter, max_leverage: int = 100, default_category: str = "linear"):
        self._set_leverage = set_leverage
        self.max_leverage = max(1, int(max_leverage))
        self.default_category = default_category
        self._confirmed: Dict[Tuple[str, str], int] = {}

    def normalize(self, leverage: Optional[float]) -> int:
        if leverage is None or not math.isfinite(leverage):
            return self.max_leverage
        return min(self.max_leverage, max(1, int(round(leverage))))

    def get(self, symbol: str, category: Optional[str] = None) -> Optional[int]:
        return self._confirmed.get((category or self.default_category, symbol))

    def clear(self) -> None:
        self._confirmed.clear()

    async def ensure_leverage(self, symbol: str, leverage: Optional[float], category: Optional[str] = None) -> int:
        """
        Make sure the venue leverage for symbol equals `leverage`.

        Returns the normalized leverage. A "leverage not modified" error counts
        as success; every other error propagates to the caller.
        """
        category = category or self.default_category
        value = self.normalize(leverage)
        key = (category, symbol)
        if self._confirmed.get(key) == value:
            return value

        try:
            await self._set_leverage(symbol, value, category)
        except Exception as e:
            if not is_leverage_unchanged(e):
                raise
            logger.debug(f"Leverage for {symbol} already {value}x")

        self._confirmed[key] = value
        logger.info(f"Leverage confirmed at {value}x for {category}:{symbol}")
        return value
