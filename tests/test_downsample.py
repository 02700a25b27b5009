import math

from pricefeed.schemas.candle import Candle
from pricefeed.utils.downsample import downsample

FIVE_MINUTES = 300_000


def make_series(count, spikes=None):
    spikes = spikes or {}
    series = []
    for i in range(count):
        price = spikes.get(i, 100 + 5 * math.sin(i / 25))
        series.append(Candle.flat(open_time=1_700_000_000_000 + i * FIVE_MINUTES, price=price))
    return series


def test_short_series_is_returned_unchanged():
    series = make_series(50)
    assert downsample(series, 50) is series
    assert downsample(series, 300) is series
    assert downsample([], 10) == []


def test_keeps_boundaries_and_extrema_off_stride():
    # 2016 bars / 300 gives stride 6; 1001 and 1507 are not multiples of 6.
    series = make_series(2016, spikes={1001: 250.0, 1507: 3.0})
    result = downsample(series, 300)

    assert len(result) <= 304
    assert result[0] == series[0]
    assert result[-1] == series[-1]
    assert series[1001] in result
    assert series[1507] in result
    assert max(c.close for c in result) == 250.0
    assert min(c.close for c in result) == 3.0
    times = [c.open_time for c in result]
    assert times == sorted(times)
    assert len(set(times)) == len(times)


def test_stride_picks_follow_first_element():
    series = make_series(100)
    result = downsample(series, 10)
    stride_times = {series[i].open_time for i in range(0, 90, 10)}
    assert stride_times <= {c.open_time for c in result}
    assert len(result) <= 14


def test_extremum_at_boundary_is_not_duplicated():
    series = make_series(40, spikes={0: 500.0, 39: 1.0})
    result = downsample(series, 8)
    assert result.count(series[0]) == 1
    assert result.count(series[-1]) == 1


def test_tiny_target_still_keeps_anchors():
    series = make_series(30, spikes={7: 999.0, 21: 0.5})
    result = downsample(series, 1)
    assert {series[0], series[7], series[21], series[29]} <= set(result)
    assert len(result) <= 5


def test_custom_accessors_for_plain_records():
    rows = [{"t": i, "v": (i * 37) % 101} for i in range(500)]
    result = downsample(rows, 50, value=lambda r: r["v"], timestamp=lambda r: r["t"])
    values = [r["v"] for r in result]
    assert max(values) == 100
    assert min(values) == 0
    assert result[0]["t"] == 0 and result[-1]["t"] == 499
