import pytest

from pricefeed.utils.symbol_normalizer import (
    canonicalize,
    from_product_id,
    is_canonical,
    to_coin_id,
    to_concatenated,
    to_hyphenated,
    to_vs_currency,
)

SYMBOLS = ["BTC-USD", "ETH-USDT", "ICP-USD", "DOGE-EUR", "AB-CD", "SHIB1-USDC"]


def test_to_provider_tokens():
    assert to_hyphenated("BTC-USD") == "BTC-USD"
    assert to_concatenated("BTC-USD") == "BTCUSD"
    assert to_concatenated("BTC-USD", {"USD": "USDT"}) == "BTCUSDT"
    assert to_concatenated("ETH-EUR", {"USD": "USDT"}) == "ETHEUR"


def test_product_id_round_trip():
    for symbol in SYMBOLS:
        assert is_canonical(symbol)
        assert from_product_id(to_hyphenated(symbol)) == symbol


def test_coin_id_and_vs_currency():
    coin_ids = {"BTC": "bitcoin", "ICP": "internet-computer"}
    assert to_coin_id("ICP-USD", coin_ids) == "internet-computer"
    assert to_coin_id("PEPE-USD", coin_ids) == "pepe"
    assert to_vs_currency("BTC-USDT", {"USDT": "usd"}) == "usd"
    assert to_vs_currency("BTC-EUR", {}) == "eur"


def test_translators_tolerate_junk():
    for junk in ["", "-", "BTC", "???", "a-b-c"]:
        to_hyphenated(junk)
        to_concatenated(junk, {"USD": "USDT"})
        from_product_id(junk)
        to_coin_id(junk, {})


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("BTC-USD", "BTC-USD"),
        (" btc-usd ", "BTC-USD"),
        ("BTC/USD", "BTC-USD"),
        ("BTCUSD", "BTC-USD"),
        ("BTCUSDT", "BTC-USDT"),
        ("ICPUSDT", "ICP-USDT"),
        ("DOGEEUR", "DOGE-EUR"),
    ],
)
def test_canonicalize_loose_input(raw, expected):
    assert canonicalize(raw) == expected


@pytest.mark.parametrize("raw", ["", "B", "BTC-", "TOOLONGBASE-USD", "BTC USD", "€€€-USD"])
def test_canonicalize_rejects_garbage(raw):
    with pytest.raises(ValueError):
        canonicalize(raw)
