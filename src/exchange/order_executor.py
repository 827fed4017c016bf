"""
Order Executor - Sequential, per-order isolated submission of order instructions
"""
import asyncio
from typing import List, Sequence

from loguru import logger

from src.exchange.bybit_client import BybitClient
from src.exchange.errors import ExchangeError
from src.exchange.leverage_cache import LeverageCache
from src.exchange.models import ExecutionResult, OrderInstruction
from src.risk.order_builder import order_for_execution


class OrderExecutor:
    """Submits orders one at a time; a failed order never blocks its siblings"""

    def __init__(self, client: BybitClient, leverage_cache: LeverageCache):
        self.client = client
        self.leverage_cache = leverage_cache

    async def place_orders(self, orders: Sequence[OrderInstruction]) -> List[ExecutionResult]:
        """Submit orders in execution order and collect one result per order"""
        results = []
        for order in order_for_execution(orders):
            results.append(await self.place_order(order))
        return results

    async def place_order(self, order: OrderInstruction) -> ExecutionResult:
        try:
            if not order.reduce_only:
                await self.leverage_cache.ensure_leverage(order.symbol, order.leverage, order.category)
            response = await asyncio.to_thread(self.client.place_order, order.to_request())
        except ExchangeError as e:
            logger.error(f"Order {order.order_link_id} rejected: {e}")
            return ExecutionResult(order=order, status="error", error=str(e))
        except Exception as e:
            logger.exception(f"Order {order.order_link_id} failed: {e}")
            return ExecutionResult(order=order, status="error", error=str(e))

        order_id = (
            response.get("orderId")
            or (response.get("order") or {}).get("orderId")
            or response.get("orderLinkId")
        )
        return ExecutionResult(order=order, status="success", order_id=order_id, response=response)
