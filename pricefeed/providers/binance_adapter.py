from __future__ import annotations

import logging
from typing import Any

import httpx

from pricefeed.providers.base import CandleProvider, QuoteProvider, build_candles
from pricefeed.schemas.candle import Candle
from pricefeed.utils.symbol_normalizer import to_concatenated
from pricefeed.utils.validators import interval_to_ms, parse_price, to_native_float

logger = logging.getLogger(__name__)


def _kline_to_candle(row: list[Any]) -> Candle:
    return Candle(
        open_time=int(row[0]),
        open=float(row[1]),
        high=float(row[2]),
        low=float(row[3]),
        close=float(row[4]),
        volume=to_native_float(row[5] if len(row) > 5 else None),
    )


class BinanceAdapter(QuoteProvider, CandleProvider):
    name = "binance"

    def __init__(
        self,
        client: httpx.AsyncClient,
        base_url: str,
        quote_aliases: dict[str, str] | None = None,
        page_limit: int = 1000,
        max_pages: int = 5,
    ):
        super().__init__(client, base_url)
        self.quote_aliases = quote_aliases or {}
        self.page_limit = page_limit
        self.max_pages = max_pages

    def _token(self, symbol: str) -> str:
        return to_concatenated(symbol, self.quote_aliases)

    async def fetch_price(self, symbol: str) -> float:
        payload = await self._get_json("/api/v3/ticker/price", {"symbol": self._token(symbol)})
        try:
            return parse_price(payload["price"])
        except (KeyError, TypeError, ValueError) as exc:
            raise self._malformed("ticker price", exc) from exc

    async def _klines_page(self, params: dict[str, Any]) -> list[Candle]:
        payload = await self._get_json("/api/v3/klines", params)
        if not isinstance(payload, list):
            raise self._malformed("klines", TypeError(f"expected list, got {type(payload).__name__}"))
        return build_candles(payload, _kline_to_candle)

    async def fetch_candles(self, symbol: str, start_ms: int, end_ms: int, interval: str) -> list[Candle]:
        step_ms = interval_to_ms(interval)
        candles: list[Candle] = []
        cursor = start_ms
        for _ in range(self.max_pages):
            page = await self._klines_page(
                {
                    "symbol": self._token(symbol),
                    "interval": interval,
                    "startTime": cursor,
                    "endTime": end_ms,
                    "limit": self.page_limit,
                }
            )
            if not page:
                break
            candles.extend(page)
            cursor = max(c.open_time for c in page) + step_ms
            if len(page) < self.page_limit or cursor > end_ms:
                break
        else:
            logger.warning(
                "Kline page cap reached",
                extra={"symbol": symbol, "pages": self.max_pages, "rows": len(candles)},
            )
        return candles

    async def fetch_recent(self, symbol: str, interval: str, limit: int) -> list[Candle]:
        return await self._klines_page({"symbol": self._token(symbol), "interval": interval, "limit": limit})
