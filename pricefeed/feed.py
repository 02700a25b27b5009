"""Application-scoped price feed service."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Iterable

import httpx

from pricefeed.cache.ttl_cache import TTLCache
from pricefeed.config.settings import Settings, settings as default_settings
from pricefeed.internal_metrics import MetricsCollector
from pricefeed.providers.binance_adapter import BinanceAdapter
from pricefeed.providers.coinbase_adapter import CoinbaseAdapter
from pricefeed.providers.coingecko_adapter import CoinGeckoAdapter
from pricefeed.resilience_circuit_breaker import ProviderCircuitBreaker
from pricefeed.schemas.candle import Candle
from pricefeed.schemas.quote import PriceQuote
from pricefeed.services.historical_service import HistoricalService
from pricefeed.services.polling import PollingRegistry, QuoteCallback, SubscriptionHandle
from pricefeed.services.quote_service import QuoteService
from pricefeed.services.streaming import StreamingRegistry, Unsubscribe

logger = logging.getLogger(__name__)

_NO_REQUESTS = {"failure_rate": 0.0, "average_latency_ms": 0.0, "total_requests": 0, "last_error": None}


class PriceFeed:
    """
    Owns every shared resource of the feed: the HTTP client, provider
    adapters, breaker, metrics, candle cache and both subscription
    registries. Construct one per application and call ``start()`` and
    ``stop()`` around its use, or use it as an async context manager.
    """

    def __init__(
        self,
        config: Settings = default_settings,
        client: httpx.AsyncClient | None = None,
        stream_connect: Callable[[], Awaitable[Any]] | None = None,
    ):
        self.config = config
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            timeout=config.request_timeout_seconds,
            headers={"User-Agent": f"pricefeed/{config.app_version}"},
        )
        self.started_at: datetime | None = None

        self.cache = TTLCache(max_entries=config.cache_max_entries)
        self.metrics = MetricsCollector()
        self.circuit_breaker = ProviderCircuitBreaker(
            failure_threshold=config.circuit_failure_threshold,
            recovery_timeout_seconds=config.circuit_recovery_timeout_seconds,
            half_open_max_attempts=config.circuit_half_open_max_attempts,
        )

        coinbase = CoinbaseAdapter(self.client, config.coinbase_api_url)
        binance = BinanceAdapter(
            self.client,
            config.binance_api_url,
            quote_aliases=config.binance_quote_aliases,
            page_limit=config.kline_page_limit,
            max_pages=config.kline_max_pages,
        )
        coingecko = CoinGeckoAdapter(
            self.client,
            config.coingecko_api_url,
            coin_ids=config.coingecko_coin_ids,
            vs_aliases=config.coingecko_vs_aliases,
        )

        self.quote_service = QuoteService([coinbase, binance], self.circuit_breaker, self.metrics)
        self.historical_service = HistoricalService(
            binance,
            coingecko,
            self.cache,
            self.circuit_breaker,
            self.metrics,
            lookback_days=config.candle_lookback_days,
            interval=config.candle_interval,
            ttl_seconds=config.candles_ttl_seconds,
        )
        self.polling = PollingRegistry(self.quote_service.get_quote)
        self.streaming = StreamingRegistry(
            stream_connect,
            url=config.coinbase_ws_url,
            base_delay=config.ws_reconnect_base_delay_seconds,
            max_delay=config.ws_reconnect_max_delay_seconds,
            max_attempts=config.ws_reconnect_max_attempts,
        )

    async def start(self) -> None:
        self.started_at = datetime.now(timezone.utc)
        logger.info("price_feed_started")

    async def stop(self) -> None:
        logger.info("price_feed_stopping")
        await self.polling.stop()
        await self.streaming.stop()
        if self._owns_client:
            await self.client.aclose()
        self.cache.clear()
        logger.info("price_feed_stopped")

    async def __aenter__(self) -> "PriceFeed":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()

    async def get_quote(self, symbol: str) -> PriceQuote:
        return await self.quote_service.get_quote(symbol)

    async def get_candles(self, symbol: str, point_budget: int | None = None) -> list[Candle]:
        budget = self.config.default_point_budget if point_budget is None else point_budget
        return await self.historical_service.get_candles(symbol, budget)

    async def get_klines(self, symbol: str, interval: str = "1m", limit: int = 100) -> list[Candle]:
        return await self.historical_service.get_klines(symbol, interval, limit)

    def subscribe_polling(self, symbol: str, callback: QuoteCallback, interval_ms: int | None = None) -> SubscriptionHandle:
        interval = self.config.default_poll_interval_ms if interval_ms is None else interval_ms
        return self.polling.subscribe(symbol, callback, max(interval, self.config.min_poll_interval_ms))

    def unsubscribe_polling(self, handle: SubscriptionHandle) -> None:
        self.polling.unsubscribe(handle)

    async def subscribe_stream(self, symbols: Iterable[str], callback: QuoteCallback) -> Unsubscribe:
        return await self.streaming.subscribe(symbols, callback)

    def status(self) -> dict[str, Any]:
        uptime = 0.0
        if self.started_at is not None:
            uptime = (datetime.now(timezone.utc) - self.started_at).total_seconds()
        return {
            "uptime_seconds": round(uptime, 3),
            "stream": self.streaming.status(),
            "polling_groups": self.polling.active_groups(),
            "providers": self.provider_status(),
            "cache": self.cache.metrics(),
        }

    def provider_status(self) -> dict[str, dict[str, Any]]:
        per_provider = self.metrics.provider_status()
        breaker = self.circuit_breaker.snapshot()
        out = {}
        for name in ("coinbase", "binance", "coingecko"):
            item = per_provider.get(name, _NO_REQUESTS)
            out[name] = {
                "state": breaker.get(name, {}).get("state", "CLOSED"),
                "retry_in_seconds": breaker.get(name, {}).get("retry_in_seconds", 0.0),
                "total_requests": item["total_requests"],
                "failure_rate": item["failure_rate"],
                "average_latency_ms": item["average_latency_ms"],
                "last_error": item["last_error"],
            }
        return out
