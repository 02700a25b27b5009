"""Translation between canonical ``BASE-QUOTE`` symbols and provider tokens.

The translators are pure and total: they never raise, whatever string they
are handed. Only :func:`canonicalize`, used at the HTTP boundary to accept
loose user input, rejects what it cannot read.
"""
from __future__ import annotations

import re

_CANONICAL_PATTERN = re.compile(r"^[A-Z0-9]{2,5}-[A-Z0-9]{2,5}$")

# Longest first so BTCUSDT resolves to USDT rather than USD.
_KNOWN_QUOTES = ("USDT", "USDC", "BUSD", "USD", "EUR", "GBP", "BTC", "ETH", "BNB")


def is_canonical(symbol: str) -> bool:
    return bool(_CANONICAL_PATTERN.match(symbol))


def split_symbol(symbol: str) -> tuple[str, str]:
    base, _, quote = symbol.upper().partition("-")
    return base, quote


def to_hyphenated(symbol: str) -> str:
    base, quote = split_symbol(symbol)
    return f"{base}-{quote}" if quote else base


def to_concatenated(symbol: str, quote_aliases: dict[str, str] | None = None) -> str:
    base, quote = split_symbol(symbol)
    if quote_aliases:
        quote = quote_aliases.get(quote, quote)
    return f"{base}{quote}"


def from_product_id(product_id: str) -> str:
    return to_hyphenated(product_id.strip())


def to_coin_id(symbol: str, coin_ids: dict[str, str]) -> str:
    base, _ = split_symbol(symbol)
    return coin_ids.get(base, base.lower())


def to_vs_currency(symbol: str, vs_aliases: dict[str, str]) -> str:
    _, quote = split_symbol(symbol)
    return vs_aliases.get(quote, quote.lower())


def canonicalize(raw: str) -> str:
    cleaned = raw.strip().upper().replace("/", "-").replace("_", "-")
    if is_canonical(cleaned):
        return cleaned
    if cleaned.isalnum():
        for quote in _KNOWN_QUOTES:
            base = cleaned[: -len(quote)]
            if cleaned.endswith(quote) and 2 <= len(base) <= 5:
                return f"{base}-{quote}"
        candidate = f"{cleaned[:3]}-{cleaned[3:]}"
        if is_canonical(candidate):
            return candidate
    raise ValueError("invalid symbol")
