from unittest.mock import AsyncMock

import pytest

from src.exchange.errors import ExchangeError, LEVERAGE_NOT_MODIFIED, is_leverage_unchanged
from src.exchange.leverage_cache import LeverageCache


@pytest.mark.asyncio
async def test_repeat_leverage_makes_no_venue_call():
    setter = AsyncMock(return_value={})
    cache = LeverageCache(setter)

    assert await cache.ensure_leverage("BTCUSDT", 5) == 5
    assert await cache.ensure_leverage("BTCUSDT", 5) == 5

    setter.assert_awaited_once_with("BTCUSDT", 5, "linear")


@pytest.mark.asyncio
async def test_changed_leverage_calls_venue_again():
    setter = AsyncMock(return_value={})
    cache = LeverageCache(setter)

    await cache.ensure_leverage("BTCUSDT", 5)
    await cache.ensure_leverage("BTCUSDT", 10)

    assert setter.await_count == 2
    assert cache.get("BTCUSDT") == 10


@pytest.mark.asyncio
async def test_not_modified_error_counts_as_success():
    setter = AsyncMock(side_effect=ExchangeError("leverage not modified", code=LEVERAGE_NOT_MODIFIED))
    cache = LeverageCache(setter)

    assert await cache.ensure_leverage("BTCUSDT", 7) == 7
    assert cache.get("BTCUSDT") == 7
    await cache.ensure_leverage("BTCUSDT", 7)
    setter.assert_awaited_once()


@pytest.mark.asyncio
async def test_other_errors_propagate_and_leave_cache_untouched():
    setter = AsyncMock(side_effect=ExchangeError("insufficient permissions", code=10005))
    cache = LeverageCache(setter)

    with pytest.raises(ExchangeError):
        await cache.ensure_leverage("BTCUSDT", 3)
    assert cache.get("BTCUSDT") is None


@pytest.mark.asyncio
async def test_categories_cached_separately():
    setter = AsyncMock(return_value={})
    cache = LeverageCache(setter)

    await cache.ensure_leverage("BTCUSDT", 3, "linear")
    await cache.ensure_leverage("BTCUSDT", 3, "inverse")

    assert setter.await_count == 2
    assert cache.get("BTCUSDT", "inverse") == 3


@pytest.mark.parametrize("requested,expected", [
    (None, 50),
    (float("nan"), 50),
    (0, 1),
    (-4, 1),
    (2.6, 3),
    (75, 50),
])
def test_normalize_clamps_to_range(requested, expected):
    cache = LeverageCache(AsyncMock(), max_leverage=50)
    assert cache.normalize(requested) == expected


@pytest.mark.asyncio
async def test_clear_forgets_confirmed_values():
    setter = AsyncMock(return_value={})
    cache = LeverageCache(setter)
    await cache.ensure_leverage("BTCUSDT", 4)
    cache.clear()
    await cache.ensure_leverage("BTCUSDT", 4)
    assert setter.await_count == 2


def test_leverage_unchanged_detection():
    assert is_leverage_unchanged(ExchangeError("x", code=110043))
    assert is_leverage_unchanged(RuntimeError("ErrCode: 110043 leverage not modified"))
    assert not is_leverage_unchanged(ExchangeError("x", code=10001))
