from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Price Feed Aggregator"
    app_version: str = "1.0.0"
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"

    schema_version: str = "1.0"

    request_timeout_seconds: float = 8.0

    coinbase_api_url: str = "https://api.coinbase.com"
    binance_api_url: str = "https://api.binance.com"
    coingecko_api_url: str = "https://api.coingecko.com"
    coinbase_ws_url: str = "wss://ws-feed.exchange.coinbase.com"
    ws_ping_interval_seconds: float = 20.0
    ws_open_timeout_seconds: float = 10.0

    binance_quote_aliases: dict[str, str] = {"USD": "USDT"}
    coingecko_coin_ids: dict[str, str] = {
        "BTC": "bitcoin",
        "ETH": "ethereum",
        "ICP": "internet-computer",
        "SOL": "solana",
        "BNB": "binancecoin",
        "XRP": "ripple",
        "ADA": "cardano",
        "DOGE": "dogecoin",
    }
    coingecko_vs_aliases: dict[str, str] = {"USDT": "usd", "USDC": "usd"}

    candle_lookback_days: int = 7
    candle_interval: str = "5m"
    kline_page_limit: int = 1000
    kline_max_pages: int = 5
    default_point_budget: int = 300
    candles_ttl_seconds: int = 60
    cache_max_entries: int = 256

    default_poll_interval_ms: int = 5000
    min_poll_interval_ms: int = 250

    ws_reconnect_base_delay_seconds: float = 1.0
    ws_reconnect_max_delay_seconds: float = 30.0
    ws_reconnect_max_attempts: int = 8

    circuit_failure_threshold: int = 5
    circuit_recovery_timeout_seconds: int = 60
    circuit_half_open_max_attempts: int = 2

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")


settings = Settings()
