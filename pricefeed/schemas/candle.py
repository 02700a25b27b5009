from __future__ import annotations

from pydantic import BaseModel, ConfigDict, model_validator


class Candle(BaseModel):
    model_config = ConfigDict(frozen=True)

    open_time: int
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0

    @model_validator(mode="after")
    def _check_range(self) -> "Candle":
        if self.low > self.high:
            raise ValueError("low above high")
        if not (self.low <= self.open <= self.high and self.low <= self.close <= self.high):
            raise ValueError("open/close outside the low-high range")
        if self.volume < 0:
            raise ValueError("negative volume")
        return self

    @classmethod
    def flat(cls, open_time: int, price: float) -> "Candle":
        """Degenerate candle for close-only samples."""
        return cls(open_time=open_time, open=price, high=price, low=price, close=price, volume=0.0)


class CandleResponseSchema(BaseModel):
    schema_version: str
    symbol: str
    interval: str
    count: int
    candles: list[Candle]
    data_source: str = "live"
