from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any


def to_native_float(value: Any, default: float = 0.0) -> float:
    if value is None:
        return default
    try:
        casted = float(value)
        if casted != casted:
            return default
        return casted
    except (TypeError, ValueError):
        return default


def parse_price(value: Any) -> float:
    """Parse a provider price field, rejecting anything but a finite positive number."""
    if isinstance(value, bool):
        raise ValueError(f"unusable price {value!r}")
    try:
        price = float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"unusable price {value!r}") from exc
    if not math.isfinite(price) or price <= 0:
        raise ValueError(f"unusable price {value!r}")
    return price


def normalize_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        dt = value
    else:
        iso = str(value).replace("Z", "+00:00")
        dt = datetime.fromisoformat(iso)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def interval_to_ms(interval: str) -> int:
    units = {"s": 1_000, "m": 60_000, "h": 3_600_000, "d": 86_400_000, "w": 604_800_000}
    amount, unit = interval[:-1], interval[-1:]
    if unit not in units or not amount.isdigit() or int(amount) <= 0:
        raise ValueError(f"invalid interval {interval!r}")
    return int(amount) * units[unit]
