from datetime import datetime, timezone

import pytest

from pricefeed.errors import QuoteUnavailable
from pricefeed.schemas.quote import PriceQuote
from pricefeed.services.polling import PollingRegistry

FIXED_NOW = datetime(2024, 1, 1, tzinfo=timezone.utc)


class FakeQuotes:
    def __init__(self, fail_on=()):
        self.calls = []
        self.fail_on = set(fail_on)

    async def __call__(self, symbol):
        self.calls.append(symbol)
        if len(self.calls) in self.fail_on:
            raise QuoteUnavailable(symbol)
        return PriceQuote(symbol=symbol, price=100.0 + len(self.calls), observed_at=FIXED_NOW)


@pytest.mark.asyncio
async def test_same_group_shares_one_timer(sleeper, settle):
    quotes = FakeQuotes()
    registry = PollingRegistry(quotes, sleep=sleeper)
    got_a, got_b = [], []

    registry.subscribe("BTC-USD", got_a.append, 5000)
    registry.subscribe("BTC-USD", got_b.append, 5000)
    await settle()

    assert registry.active_groups() == {"BTC-USD@5000ms": 2}
    assert sleeper.delays == [5.0]
    assert len(got_a) == 1 and len(got_b) == 1
    assert got_a[0] != got_b[0]

    await sleeper.release()

    assert len(got_a) == 2 and len(got_b) == 2
    assert got_a[-1] == got_b[-1]
    assert len(quotes.calls) == 3
    await registry.stop()


@pytest.mark.asyncio
async def test_unsubscribing_one_keeps_the_other(sleeper, settle):
    quotes = FakeQuotes()
    registry = PollingRegistry(quotes, sleep=sleeper)
    got_a, got_b = [], []
    handle_a = registry.subscribe("BTC-USD", got_a.append, 1000)
    registry.subscribe("BTC-USD", got_b.append, 1000)
    await settle()

    registry.unsubscribe(handle_a)
    await sleeper.release()

    assert len(got_a) == 1
    assert len(got_b) == 2
    assert registry.active_groups() == {"BTC-USD@1000ms": 1}
    await registry.stop()


@pytest.mark.asyncio
async def test_unsubscribing_all_stops_fetching(sleeper, settle):
    quotes = FakeQuotes()
    registry = PollingRegistry(quotes, sleep=sleeper)
    handles = [registry.subscribe("ETH-USD", lambda q: None, 2000) for _ in range(2)]
    await settle()
    await sleeper.release()
    fetched = len(quotes.calls)

    for handle in handles:
        registry.unsubscribe(handle)
    await settle()
    await sleeper.release()
    await sleeper.release()

    assert len(quotes.calls) == fetched
    assert registry.active_groups() == {}


@pytest.mark.asyncio
async def test_groups_are_independent(sleeper, settle):
    quotes = FakeQuotes()
    registry = PollingRegistry(quotes, sleep=sleeper)
    btc, eth = [], []

    registry.subscribe("BTC-USD", btc.append, 5000)
    registry.subscribe("ETH-USD", eth.append, 5000)
    registry.subscribe("BTC-USD", btc.append, 1000)
    await settle()

    assert sorted(registry.active_groups()) == ["BTC-USD@1000ms", "BTC-USD@5000ms", "ETH-USD@5000ms"]
    assert sorted(sleeper.delays) == [1.0, 5.0, 5.0]
    assert {q.symbol for q in btc} == {"BTC-USD"}
    assert {q.symbol for q in eth} == {"ETH-USD"}
    await registry.stop()


@pytest.mark.asyncio
async def test_failed_tick_does_not_stop_the_timer(sleeper, settle):
    quotes = FakeQuotes(fail_on={1, 2})
    registry = PollingRegistry(quotes, sleep=sleeper)
    received = []
    registry.subscribe("BTC-USD", received.append, 5000)
    await settle()
    assert received == []

    await sleeper.release()
    assert received == []

    await sleeper.release()
    assert len(received) == 1
    assert received[0].price == 103.0
    await registry.stop()


@pytest.mark.asyncio
async def test_failing_callback_does_not_starve_others(sleeper, settle):
    registry = PollingRegistry(FakeQuotes(), sleep=sleeper)
    received = []

    def broken(quote):
        raise RuntimeError("render failed")

    registry.subscribe("BTC-USD", broken, 5000)
    registry.subscribe("BTC-USD", received.append, 5000)
    await settle()
    await sleeper.release()

    assert len(received) == 2
    await registry.stop()


@pytest.mark.asyncio
async def test_async_callbacks_are_awaited(sleeper, settle):
    registry = PollingRegistry(FakeQuotes(), sleep=sleeper)
    received = []

    async def on_quote(quote):
        received.append(quote.price)

    registry.subscribe("BTC-USD", on_quote, 5000)
    await settle()

    assert received == [101.0]
    await registry.stop()


@pytest.mark.asyncio
async def test_unsubscribe_is_idempotent(sleeper, settle):
    registry = PollingRegistry(FakeQuotes(), sleep=sleeper)
    handle = registry.subscribe("BTC-USD", lambda q: None, 5000)
    await settle()

    registry.unsubscribe(handle)
    registry.unsubscribe(handle)
    await registry.stop()
    registry.unsubscribe(handle)

    assert registry.active_groups() == {}


@pytest.mark.asyncio
async def test_rejects_non_positive_interval():
    registry = PollingRegistry(FakeQuotes())
    with pytest.raises(ValueError):
        registry.subscribe("BTC-USD", lambda q: None, 0)


@pytest.mark.asyncio
async def test_unexpected_first_fetch_error_is_logged(sleeper, settle, caplog):
    async def explode(symbol):
        raise RuntimeError("decoder crashed")

    registry = PollingRegistry(explode, sleep=sleeper)
    received = []
    registry.subscribe("BTC-USD", received.append, 5000)
    await settle()

    assert received == []
    assert "polling_first_fetch_error" in caplog.messages
    assert registry._first_paints == set()
    await registry.stop()
