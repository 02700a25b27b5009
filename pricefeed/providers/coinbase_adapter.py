from __future__ import annotations

from pricefeed.providers.base import QuoteProvider
from pricefeed.utils.symbol_normalizer import to_hyphenated
from pricefeed.utils.validators import parse_price


class CoinbaseAdapter(QuoteProvider):
    name = "coinbase"

    async def fetch_price(self, symbol: str) -> float:
        payload = await self._get_json(f"/v2/prices/{to_hyphenated(symbol)}/spot")
        try:
            return parse_price(payload["data"]["amount"])
        except (KeyError, TypeError, ValueError) as exc:
            raise self._malformed("spot price", exc) from exc
