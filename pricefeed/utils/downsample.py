"""Extrema-preserving decimation of ordered time series for charting."""
from __future__ import annotations

from operator import attrgetter
from typing import Any, Callable, Sequence, TypeVar

T = TypeVar("T")


def downsample(
    series: Sequence[T],
    target_count: int,
    *,
    value: Callable[[T], Any] = attrgetter("close"),
    timestamp: Callable[[T], Any] = attrgetter("open_time"),
) -> Sequence[T]:
    """
    Reduce ``series`` to roughly ``target_count`` points.

    The first and last points and the points holding the highest and lowest
    ``value`` always survive. The rest are stride picks of
    ``len(series) // target_count`` starting after the first point, so the
    result holds at most ``target_count + 2`` points. A series that already
    fits is returned as is.
    """
    size = len(series)
    if size <= target_count:
        return series

    target_count = max(target_count, 2)
    stride = max(size // target_count, 1)

    picked = [0]
    index = stride
    while index < size - 1 and len(picked) < target_count - 1:
        picked.append(index)
        index += stride
    picked.append(size - 1)

    chosen = set(picked)
    chosen.add(max(range(size), key=lambda i: value(series[i])))
    chosen.add(min(range(size), key=lambda i: value(series[i])))

    return sorted((series[i] for i in chosen), key=timestamp)
