from unittest.mock import AsyncMock, MagicMock

import pytest

from src.exchange.errors import ExchangeError
from src.exchange.models import OrderInstruction, OrderSide
from src.exchange.order_executor import OrderExecutor


def make_order(link, side=OrderSide.BUY, reduce_only=False, leverage=3):
    return OrderInstruction(
        category="linear",
        symbol="BTCUSDT",
        side=side,
        qty=0.1,
        price=50_000.0,
        leverage=leverage,
        reduce_only=reduce_only,
        order_link_id=link,
        stop_loss=None if reduce_only else 49_000.0,
        take_profit=None if reduce_only else 52_000.0,
    )


@pytest.fixture
def client():
    client = MagicMock()
    client.place_order.side_effect = lambda body: {"orderId": f"id-{body['orderLinkId']}"}
    return client


@pytest.fixture
def leverage_cache():
    cache = MagicMock()
    cache.ensure_leverage = AsyncMock(side_effect=lambda symbol, leverage, category: leverage)
    return cache


@pytest.mark.asyncio
async def test_orders_submitted_in_execution_order(client, leverage_cache):
    executor = OrderExecutor(client, leverage_cache)
    results = await executor.place_orders([
        make_order("buy"),
        make_order("sell", side=OrderSide.SELL),
        make_order("close", side=OrderSide.SELL, reduce_only=True),
    ])

    submitted = [call.args[0]["orderLinkId"] for call in client.place_order.call_args_list]
    assert submitted == ["close", "sell", "buy"]
    assert [r.order_id for r in results] == ["id-close", "id-sell", "id-buy"]
    assert all(r.succeeded for r in results)


@pytest.mark.asyncio
async def test_reduce_only_orders_skip_leverage(client, leverage_cache):
    executor = OrderExecutor(client, leverage_cache)
    await executor.place_orders([make_order("close", reduce_only=True)])
    leverage_cache.ensure_leverage.assert_not_awaited()


@pytest.mark.asyncio
async def test_leverage_ensured_before_open(client, leverage_cache):
    executor = OrderExecutor(client, leverage_cache)
    await executor.place_order(make_order("open", leverage=7))
    leverage_cache.ensure_leverage.assert_awaited_once_with("BTCUSDT", 7, "linear")


@pytest.mark.asyncio
async def test_failed_order_does_not_block_siblings(client, leverage_cache):
    def place(body):
        if body["orderLinkId"] == "bad":
            raise ExchangeError("Bybit API error Insufficient balance (code 110007)", code=110007)
        return {"orderId": "ok-1"}

    client.place_order.side_effect = place
    executor = OrderExecutor(client, leverage_cache)
    results = await executor.place_orders([make_order("bad"), make_order("good")])

    assert [r.status for r in results] == ["error", "success"]
    assert "110007" in results[0].error
    assert results[1].order_id == "ok-1"


@pytest.mark.asyncio
async def test_leverage_failure_becomes_error_result(client, leverage_cache):
    leverage_cache.ensure_leverage.side_effect = ExchangeError("leverage rejected", code=10001)
    executor = OrderExecutor(client, leverage_cache)
    [result] = await executor.place_orders([make_order("open")])

    assert result.status == "error"
    client.place_order.assert_not_called()


@pytest.mark.asyncio
async def test_unexpected_exception_is_captured(client, leverage_cache):
    client.place_order.side_effect = ConnectionError("socket closed")
    executor = OrderExecutor(client, leverage_cache)
    [result] = await executor.place_orders([make_order("open")])
    assert result.status == "error"
    assert "socket closed" in result.error


@pytest.mark.asyncio
async def test_order_id_falls_back_to_link_id(client, leverage_cache):
    client.place_order.side_effect = lambda body: {"orderLinkId": body["orderLinkId"]}
    executor = OrderExecutor(client, leverage_cache)
    result = await executor.place_order(make_order("link-only"))
    assert result.order_id == "link-only"
