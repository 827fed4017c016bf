"""
Bybit Exchange Client - Market, account and order endpoints for a single linear perpetual
"""
from typing import Any, Callable, Dict, List, Optional

from loguru import logger
from pybit.exceptions import FailedRequestError, InvalidRequestError
from pybit.unified_trading import HTTP

from src.exchange.errors import ExchangeError
from src.exchange.models import (
    AccountSnapshot,
    Candle,
    InstrumentMeta,
    OrderSide,
    Position,
    PositionMode,
    PositionState,
    Ticker,
    to_float,
)

DEFAULT_QTY_STEP = 0.001
DEFAULT_TICK_SIZE = 0.5


def determine_position_mode(entries: List[Dict[str, Any]]) -> PositionMode:
    """Hedge mode when any position slot carries index 1 or 2"""
    for entry in entries:
        try:
            idx = int(float(entry.get("positionIdx", 0) or 0))
        except (TypeError, ValueError):
            continue
        if idx in (1, 2):
            return PositionMode.HEDGE
    return PositionMode.ONE_WAY


class BybitClient:
    """Bybit V5 client bound to one category and account type"""

    def __init__(
        self,
        api_key: str,
        api_secret: str,
        base_url: Optional[str] = None,
        testnet: bool = False,
        category: str = "linear",
        account_type: str = "UNIFIED",
        recv_window: int = 5000,
        default_leverage: int = 100,
        http: Optional[HTTP] = None,
    ):
        """Initialize Bybit client"""
        self.category = category
        self.account_type = account_type
        self.default_leverage = default_leverage

        self.http = http or HTTP(
            testnet=testnet,
            api_key=api_key,
            api_secret=api_secret,
            recv_window=recv_window,
        )
        if base_url:
            self.http.endpoint = base_url.rstrip("/")

        logger.info(f"Bybit client initialized (endpoint {getattr(self.http, 'endpoint', 'default')})")

    def _execute(self, func: Callable[..., Dict[str, Any]], **params) -> Dict[str, Any]:
        """Run a pybit call and return its result block"""
        try:
            response = func(**params)
        except InvalidRequestError as e:
            raise ExchangeError(f"Bybit API error {e.message} (code {e.status_code})", code=e.status_code) from e
        except FailedRequestError as e:
            raise ExchangeError(f"Bybit HTTP failure: {e.message}", code=e.status_code) from e

        if response.get("retCode") != 0:
            code = response.get("retCode")
            raise ExchangeError(
                f"Bybit API error {response.get('retMsg', 'Unknown error')} (code {code})",
                code=code,
                response=response,
            )
        return response.get("result") or {}

    def get_account_snapshot(self) -> AccountSnapshot:
        """Get unified account balance"""
        result = self._execute(self.http.get_wallet_balance, accountType=self.account_type, coin="USDT")

        entries = result.get("list") or []
        if not entries:
            raise ExchangeError("Bybit wallet balance response missing account entry")
        account = entries[0]
        coins = account.get("coin") or []
        primary = (
            next((c for c in coins if c.get("coin") == "USDT"), None)
            or next((c for c in coins if c.get("coin") == "USDC"), None)
            or (coins[0] if coins else {})
        )

        def pick(*values: Any) -> float:
            for value in values:
                if value not in (None, ""):
                    return to_float(value)
            return 0.0

        snapshot = AccountSnapshot(
            total_equity=pick(account.get("totalEquity"), primary.get("equity")),
            available_balance=pick(
                account.get("totalWalletBalance"),
                primary.get("availableToWithdraw"),
                primary.get("walletBalance"),
            ),
            used_margin=pick(
                account.get("totalPositionIM"),
                primary.get("totalPositionIM"),
                primary.get("positionIM"),
            ),
            maintenance_margin=pick(
                account.get("totalPositionMM"),
                primary.get("totalPositionMM"),
                primary.get("positionMM"),
            ),
            account_type=account.get("accountType") or self.account_type,
            currency=primary.get("coin") or "USDT",
        )
        if snapshot.total_equity <= 0:
            logger.warning("Received zero total equity from Bybit; check account balances")
        return snapshot

    def get_ticker(self, symbol: str) -> Ticker:
        """Get ticker data for a symbol"""
        result = self._execute(self.http.get_tickers, category=self.category, symbol=symbol)
        tickers = result.get("list") or []
        if not tickers:
            raise ExchangeError(f"Bybit ticker response missing {symbol} data")
        ticker = tickers[0]
        return Ticker(
            symbol=symbol,
            price=to_float(ticker.get("lastPrice")),
            change_24h_pct=to_float(ticker.get("price24hPcnt")) * 100,
            funding_rate=to_float(ticker.get("fundingRate")),
            volume_24h=to_float(ticker.get("turnover24h")),
        )

    def get_instrument_meta(self, symbol: str) -> InstrumentMeta:
        """Get lot size and price filters"""
        result = self._execute(self.http.get_instruments_info, category=self.category, symbol=symbol)
        instruments = result.get("list") or []
        if not instruments:
            raise ExchangeError(f"Bybit instrument info missing {symbol} data")

        lot_size = instruments[0].get("lotSizeFilter") or {}
        price_filter = instruments[0].get("priceFilter") or {}
        qty_step = to_float(lot_size.get("qtyStep"), DEFAULT_QTY_STEP)
        return InstrumentMeta(
            min_order_qty=to_float(lot_size.get("minOrderQty"), DEFAULT_QTY_STEP),
            max_order_qty=to_float(lot_size.get("maxOrderQty"), float("inf")),
            qty_step=qty_step,
            tick_size=to_float(price_filter.get("tickSize"), DEFAULT_TICK_SIZE),
            min_price=to_float(price_filter.get("minPrice"), 0.0),
            max_price=to_float(price_filter.get("maxPrice"), float("inf")),
        )

    def get_position_state(self, symbol: str) -> PositionState:
        """Get the open position (if any) and the account position mode"""
        result = self._execute(self.http.get_positions, category=self.category, symbol=symbol)
        entries = result.get("list") or []
        mode = determine_position_mode(entries)

        raw = next((e for e in entries if to_float(e.get("size")) != 0), None)
        if raw is None:
            return PositionState(position=None, mode=mode)

        side = OrderSide.SELL if str(raw.get("side", "")).upper() == "SELL" else OrderSide.BUY
        position = Position(
            side=side,
            size=abs(to_float(raw.get("size"))),
            entry_price=to_float(raw.get("avgPrice") or raw.get("entryPrice")),
            leverage=to_float(raw.get("leverage"), float(self.default_leverage)),
            unrealized_pnl=to_float(raw.get("unrealisedPnl")),
            liq_price=to_float(raw.get("liqPrice")),
            take_profit=to_float(raw.get("takeProfit")),
            stop_loss=to_float(raw.get("stopLoss")),
            position_index=int(to_float(raw.get("positionIdx"))),
            mark_price=to_float(raw.get("markPrice")),
            position_value=to_float(raw.get("positionValue")),
        )
        return PositionState(position=position, mode=mode)

    def get_candles(self, symbol: str, interval: str, limit: int = 60) -> List[Candle]:
        """Get klines as candles (venue returns newest first; order is not relied on)"""
        result = self._execute(
            self.http.get_kline,
            category=self.category,
            symbol=symbol,
            interval=interval,
            limit=limit,
        )

        candles = []
        for row in result.get("list") or []:
            try:
                candles.append(Candle(
                    start_time=int(row[0]),
                    open=to_float(row[1]),
                    high=to_float(row[2]),
                    low=to_float(row[3]),
                    close=to_float(row[4]),
                    volume=to_float(row[5]),
                ))
            except (IndexError, TypeError, ValueError) as e:
                logger.warning(f"Skipping invalid kline row for {symbol}: {e}")
        return candles

    def set_leverage(self, symbol: str, leverage: int, category: Optional[str] = None) -> Dict[str, Any]:
        """Set buy/sell leverage for a symbol"""
        value = str(int(leverage))
        result = self._execute(
            self.http.set_leverage,
            category=category or self.category,
            symbol=symbol,
            buyLeverage=value,
            sellLeverage=value,
        )
        logger.debug(f"Leverage set to {value}x for {symbol}")
        return result

    def place_order(self, body: Dict[str, Any]) -> Dict[str, Any]:
        """Submit an order/create request"""
        result = self._execute(self.http.place_order, **body)
        logger.info(f"Order placed: {body.get('side')} {body.get('qty')} {body.get('symbol')} @ {body.get('price')}")
        return result
