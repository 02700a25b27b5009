from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable


class CircuitState(str, Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


@dataclass
class CircuitStatus:
    state: CircuitState = CircuitState.CLOSED
    failure_count: int = 0
    success_count: int = 0
    last_failure_timestamp: float | None = None
    half_open_attempts: int = 0


class ProviderCircuitBreaker:
    """Per-provider breaker; an open circuit makes the fallback chain skip that provider."""

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout_seconds: float = 60,
        half_open_max_attempts: int = 2,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout_seconds = recovery_timeout_seconds
        self.half_open_max_attempts = half_open_max_attempts
        self._clock = clock
        self._state: dict[str, CircuitStatus] = {}

    def _get(self, provider: str) -> CircuitStatus:
        if provider not in self._state:
            self._state[provider] = CircuitStatus()
        return self._state[provider]

    def can_execute(self, provider: str) -> bool:
        status = self._get(provider)
        if status.state == CircuitState.CLOSED:
            return True

        if status.state == CircuitState.OPEN:
            elapsed = self._clock() - (status.last_failure_timestamp or 0.0)
            if elapsed >= self.recovery_timeout_seconds:
                status.state = CircuitState.HALF_OPEN
                status.half_open_attempts = 1
                return True
            return False

        if status.half_open_attempts < self.half_open_max_attempts:
            status.half_open_attempts += 1
            return True
        return False

    def record_success(self, provider: str):
        status = self._get(provider)
        status.success_count += 1
        status.failure_count = 0
        status.half_open_attempts = 0
        status.state = CircuitState.CLOSED

    def record_failure(self, provider: str):
        status = self._get(provider)
        status.failure_count += 1
        status.last_failure_timestamp = self._clock()

        if status.state == CircuitState.HALF_OPEN:
            status.state = CircuitState.OPEN
            status.half_open_attempts = 0
            return

        if status.failure_count >= self.failure_threshold:
            status.state = CircuitState.OPEN

    def state(self, provider: str) -> CircuitState:
        return self._get(provider).state

    def retry_in_seconds(self, provider: str) -> float:
        """Seconds until an open circuit admits a trial request; 0 otherwise."""
        status = self._get(provider)
        if status.state != CircuitState.OPEN:
            return 0.0
        elapsed = self._clock() - (status.last_failure_timestamp or 0.0)
        return max(self.recovery_timeout_seconds - elapsed, 0.0)

    def snapshot(self) -> dict[str, dict[str, int | float | str | None]]:
        output = {}
        for provider, status in self._state.items():
            output[provider] = {
                "state": status.state.value,
                "failure_count": status.failure_count,
                "success_count": status.success_count,
                "last_failure_timestamp": status.last_failure_timestamp,
                "retry_in_seconds": round(self.retry_in_seconds(provider), 3),
            }
        return output
