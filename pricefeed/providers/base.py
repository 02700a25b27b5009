from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

import httpx

from pricefeed.errors import ProviderRequestFailed
from pricefeed.schemas.candle import Candle

logger = logging.getLogger(__name__)


class ProviderAdapter(ABC):
    """Shared HTTP plumbing: every failure surfaces as ``ProviderRequestFailed``."""

    name: str = "provider"

    def __init__(self, client: httpx.AsyncClient, base_url: str):
        self.client = client
        self.base_url = base_url.rstrip("/")

    async def _get_json(self, path: str, params: dict[str, Any] | None = None) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = await self.client.get(url, params=params)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as exc:
            raise ProviderRequestFailed(self.name, f"HTTP {exc.response.status_code} from {url}") from exc
        except httpx.HTTPError as exc:
            raise ProviderRequestFailed(self.name, f"{type(exc).__name__} for {url}") from exc
        except ValueError as exc:
            raise ProviderRequestFailed(self.name, f"unparsable body from {url}") from exc

    def _malformed(self, what: str, exc: Exception) -> ProviderRequestFailed:
        return ProviderRequestFailed(self.name, f"malformed {what}: {exc}")


class QuoteProvider(ProviderAdapter):
    @abstractmethod
    async def fetch_price(self, symbol: str) -> float:
        raise NotImplementedError


class CandleProvider(ProviderAdapter):
    @abstractmethod
    async def fetch_candles(self, symbol: str, start_ms: int, end_ms: int, interval: str) -> list[Candle]:
        raise NotImplementedError


def build_candles(rows: list[Any], parse_row) -> list[Candle]:
    """Convert provider rows, skipping any that do not form a valid candle."""
    candles: list[Candle] = []
    skipped = 0
    for row in rows:
        try:
            candles.append(parse_row(row))
        except (IndexError, KeyError, TypeError, ValueError):
            skipped += 1
    if skipped:
        logger.debug("Skipped invalid candle rows", extra={"skipped": skipped, "kept": len(candles)})
    return candles
