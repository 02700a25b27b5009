from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable


@dataclass
class ProviderMetrics:
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    skipped_requests: int = 0
    latency_total_ms: float = 0.0
    last_error: str | None = None
    last_success_at: float | None = None

    @property
    def failure_rate(self) -> float:
        return 0.0 if self.total_requests == 0 else self.failed_requests / self.total_requests

    @property
    def avg_latency_ms(self) -> float:
        return 0.0 if self.total_requests == 0 else self.latency_total_ms / self.total_requests


class MetricsCollector:
    """Per-provider request outcomes. Skips (open circuit) are not requests."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._providers: dict[str, ProviderMetrics] = {}

    def _for(self, provider: str) -> ProviderMetrics:
        return self._providers.setdefault(provider, ProviderMetrics())

    def record_request(self, provider: str, success: bool, latency_ms: float, error: str | None = None):
        m = self._for(provider)
        m.total_requests += 1
        m.latency_total_ms += max(latency_ms, 0.0)
        if success:
            m.successful_requests += 1
            m.last_success_at = self._clock()
        else:
            m.failed_requests += 1
            m.last_error = error

    def record_skip(self, provider: str):
        self._for(provider).skipped_requests += 1

    def provider_status(self) -> dict[str, dict[str, float | int | str | None]]:
        return {
            name: {
                "total_requests": m.total_requests,
                "successful_requests": m.successful_requests,
                "failed_requests": m.failed_requests,
                "skipped_requests": m.skipped_requests,
                "failure_rate": round(m.failure_rate, 4),
                "average_latency_ms": round(m.avg_latency_ms, 3),
                "last_error": m.last_error,
                "last_success_at": m.last_success_at,
            }
            for name, m in sorted(self._providers.items())
        }

    def global_metrics(self) -> dict[str, float | int | dict]:
        totals = ProviderMetrics()
        for m in self._providers.values():
            totals.total_requests += m.total_requests
            totals.failed_requests += m.failed_requests
            totals.skipped_requests += m.skipped_requests
            totals.latency_total_ms += m.latency_total_ms
        return {
            "request_count": totals.total_requests,
            "skipped_count": totals.skipped_requests,
            "failure_rate": round(totals.failure_rate, 4),
            "average_latency_ms": round(totals.avg_latency_ms, 3),
            "per_provider": self.provider_status(),
        }
