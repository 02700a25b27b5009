"""Error taxonomy for the price feed.

Provider failures are recoverable inside a fallback chain; only
``QuoteUnavailable`` reaches the caller of a one-shot quote. Streaming
errors are logged by the registry and never delivered to subscribers.
"""
from __future__ import annotations


class PriceFeedError(Exception):
    """Base class for every error raised by the feed."""


class ProviderRequestFailed(PriceFeedError):
    """Transport failure, non-2xx status or unparsable body from one provider."""

    def __init__(self, provider: str, reason: str):
        super().__init__(f"{provider}: {reason}")
        self.provider = provider
        self.reason = reason


class QuoteUnavailable(PriceFeedError):
    """Every quote provider in the chain failed."""

    def __init__(self, symbol: str, last_error: Exception | None = None):
        message = f"no quote available for {symbol}"
        if last_error is not None:
            message = f"{message} ({last_error})"
        super().__init__(message)
        self.symbol = symbol
        self.last_error = last_error


class MalformedMessage(PriceFeedError):
    """A streamed payload could not be parsed or lacked required fields."""


class ConnectionLost(PriceFeedError):
    """The push connection closed or errored while demand was active."""


class ReconnectExhausted(PriceFeedError):
    """Reconnection gave up after the configured number of attempts."""

    def __init__(self, attempts: int):
        super().__init__(f"reconnect abandoned after {attempts} attempts")
        self.attempts = attempts
