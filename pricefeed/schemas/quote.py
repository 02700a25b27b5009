from __future__ import annotations

import math
from datetime import datetime

from pydantic import BaseModel, ConfigDict, field_validator


class PriceQuote(BaseModel):
    model_config = ConfigDict(frozen=True)

    symbol: str
    price: float
    observed_at: datetime

    @field_validator("price")
    @classmethod
    def _finite_positive(cls, value: float) -> float:
        if not math.isfinite(value) or value <= 0:
            raise ValueError("price must be a finite positive number")
        return value


class QuoteSchema(BaseModel):
    schema_version: str
    symbol: str
    price: float
    observed_at: datetime
    data_source: str = "live"
