from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Callable, Sequence

from pricefeed.errors import ProviderRequestFailed, QuoteUnavailable
from pricefeed.internal_metrics import MetricsCollector
from pricefeed.providers.base import QuoteProvider
from pricefeed.resilience_circuit_breaker import ProviderCircuitBreaker
from pricefeed.schemas.quote import PriceQuote

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class QuoteService:
    """Spot price with one fallback hop; no retries beyond the provider chain."""

    def __init__(
        self,
        providers: Sequence[QuoteProvider],
        circuit_breaker: ProviderCircuitBreaker,
        metrics: MetricsCollector,
        now: Callable[[], datetime] = _utcnow,
    ):
        self.providers = list(providers)
        self.circuit_breaker = circuit_breaker
        self.metrics = metrics
        self.now = now

    async def get_quote(self, symbol: str) -> PriceQuote:
        last_error: Exception | None = None
        for provider in self.providers:
            if not self.circuit_breaker.can_execute(provider.name):
                self.metrics.record_skip(provider.name)
                last_error = ProviderRequestFailed(provider.name, "circuit open")
                logger.info("quote_provider_skipped", extra={"provider": provider.name, "symbol": symbol})
                continue

            start = time.perf_counter()
            try:
                price = await provider.fetch_price(symbol)
            except ProviderRequestFailed as exc:
                latency_ms = (time.perf_counter() - start) * 1000
                self.circuit_breaker.record_failure(provider.name)
                self.metrics.record_request(provider.name, success=False, latency_ms=latency_ms, error=exc.reason)
                logger.warning(
                    "quote_provider_failed",
                    extra={"provider": provider.name, "symbol": symbol, "reason": exc.reason},
                )
                last_error = exc
                continue

            self.circuit_breaker.record_success(provider.name)
            self.metrics.record_request(provider.name, success=True, latency_ms=(time.perf_counter() - start) * 1000)
            return PriceQuote(symbol=symbol, price=price, observed_at=self.now())

        raise QuoteUnavailable(symbol, last_error) from last_error
