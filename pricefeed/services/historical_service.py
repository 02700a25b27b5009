from __future__ import annotations

import logging
import time
from typing import Callable

from pricefeed.cache.ttl_cache import TTLCache
from pricefeed.config.settings import settings
from pricefeed.errors import ProviderRequestFailed
from pricefeed.internal_metrics import MetricsCollector
from pricefeed.providers.base import CandleProvider
from pricefeed.providers.binance_adapter import BinanceAdapter
from pricefeed.resilience_circuit_breaker import ProviderCircuitBreaker
from pricefeed.schemas.candle import Candle
from pricefeed.utils.downsample import downsample

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


def order_series(candles: list[Candle]) -> list[Candle]:
    """Sort by open time and keep the first candle seen for each timestamp."""
    ordered: list[Candle] = []
    for candle in sorted(candles, key=lambda c: c.open_time):
        if ordered and ordered[-1].open_time == candle.open_time:
            continue
        ordered.append(candle)
    return ordered


class HistoricalService:
    """
    Trailing-window candle history for charts.

    Unlike quotes, a total provider outage is not an error here: the caller
    gets an empty series and renders "no data".
    """

    def __init__(
        self,
        primary: BinanceAdapter,
        secondary: CandleProvider,
        cache: TTLCache,
        circuit_breaker: ProviderCircuitBreaker,
        metrics: MetricsCollector,
        lookback_days: int = settings.candle_lookback_days,
        interval: str = settings.candle_interval,
        ttl_seconds: float = settings.candles_ttl_seconds,
        now_ms: Callable[[], int] = _now_ms,
    ):
        self.primary = primary
        self.secondary = secondary
        self.cache = cache
        self.circuit_breaker = circuit_breaker
        self.metrics = metrics
        self.lookback_ms = lookback_days * 86_400_000
        self.interval = interval
        self.ttl_seconds = ttl_seconds
        self.now_ms = now_ms

    async def _fetch_from(self, provider: CandleProvider, symbol: str, start_ms: int, end_ms: int) -> list[Candle]:
        if not self.circuit_breaker.can_execute(provider.name):
            self.metrics.record_skip(provider.name)
            logger.info("candle_provider_skipped", extra={"provider": provider.name, "symbol": symbol})
            return []

        start = time.perf_counter()
        try:
            candles = await provider.fetch_candles(symbol, start_ms, end_ms, self.interval)
        except ProviderRequestFailed as exc:
            self.circuit_breaker.record_failure(provider.name)
            self.metrics.record_request(
                provider.name, success=False, latency_ms=(time.perf_counter() - start) * 1000, error=exc.reason
            )
            logger.warning(
                "candle_provider_failed",
                extra={"provider": provider.name, "symbol": symbol, "reason": exc.reason},
            )
            return []

        self.circuit_breaker.record_success(provider.name)
        self.metrics.record_request(provider.name, success=True, latency_ms=(time.perf_counter() - start) * 1000)
        if not candles:
            logger.info("candle_provider_empty", extra={"provider": provider.name, "symbol": symbol})
        return candles

    async def get_candles(self, symbol: str, point_budget: int = settings.default_point_budget) -> list[Candle]:
        key = f"candles:{symbol}:{point_budget}"
        cached = self.cache.get(key)
        if cached is not None:
            return list(cached)

        end_ms = self.now_ms()
        start_ms = end_ms - self.lookback_ms
        candles = await self._fetch_from(self.primary, symbol, start_ms, end_ms)
        if not candles:
            candles = await self._fetch_from(self.secondary, symbol, start_ms, end_ms)
        if not candles:
            logger.warning("candles_unavailable", extra={"symbol": symbol})
            return []

        series = order_series(candles)
        if len(series) > point_budget:
            series = list(downsample(series, point_budget))
        self.cache.set(key, series, self.ttl_seconds)
        return list(series)

    async def get_klines(self, symbol: str, interval: str = "1m", limit: int = 100) -> list[Candle]:
        """Most recent raw bars from the kline provider; failures propagate."""
        candles = await self.primary.fetch_recent(symbol, interval, limit)
        return order_series(candles)
