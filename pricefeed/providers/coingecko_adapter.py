from __future__ import annotations

import math
from typing import Any

import httpx

from pricefeed.providers.base import CandleProvider, build_candles
from pricefeed.schemas.candle import Candle
from pricefeed.utils.symbol_normalizer import to_coin_id, to_vs_currency
from pricefeed.utils.validators import parse_price


def _sample_to_candle(row: list[Any]) -> Candle:
    return Candle.flat(open_time=int(row[0]), price=parse_price(row[1]))


class CoinGeckoAdapter(CandleProvider):
    """Close-only market chart; each sample becomes a flat, zero-volume candle."""

    name = "coingecko"

    def __init__(
        self,
        client: httpx.AsyncClient,
        base_url: str,
        coin_ids: dict[str, str] | None = None,
        vs_aliases: dict[str, str] | None = None,
    ):
        super().__init__(client, base_url)
        self.coin_ids = coin_ids or {}
        self.vs_aliases = vs_aliases or {}

    async def fetch_candles(self, symbol: str, start_ms: int, end_ms: int, interval: str) -> list[Candle]:
        days = max(1, math.ceil((end_ms - start_ms) / 86_400_000))
        payload = await self._get_json(
            f"/api/v3/coins/{to_coin_id(symbol, self.coin_ids)}/market_chart",
            {"vs_currency": to_vs_currency(symbol, self.vs_aliases), "days": days},
        )
        try:
            samples = payload["prices"]
        except (KeyError, TypeError) as exc:
            raise self._malformed("market chart", exc) from exc
        if not isinstance(samples, list):
            raise self._malformed("market chart", TypeError("prices is not a list"))
        return [c for c in build_candles(samples, _sample_to_candle) if start_ms <= c.open_time <= end_ms]
