"""
Unit tests for candle records and candle-level integrity rules.
"""

import math
from datetime import datetime, timezone

import pandas as pd
import pytest

from signal_backtester.core.candle import (
    Candle,
    candles_from_frame,
    candles_to_frame,
    find_invalid_indices,
    is_valid_candle,
    is_valid_forward_candle,
    timeframe_to_ms,
)
from signal_backtester.core.candle_provider import FetchResult, from_epoch_ms, to_epoch_ms

from candle_factory import BASE_TS, flat_candle


class TestCandle:

    def test_colour_and_body_ratio(self):
        red = Candle(BASE_TS, 101.0, 101.1, 99.9, 100.0, 10.0)
        green = Candle(BASE_TS, 100.0, 101.0, 99.5, 100.9, 10.0)

        assert red.is_red and not red.is_green
        assert green.is_green and not green.is_red
        assert red.body_ratio == pytest.approx(1.0 / 1.2)

    def test_doji_is_neither_colour(self):
        doji = Candle(BASE_TS, 100.0, 101.0, 99.0, 100.0, 10.0)
        assert not doji.is_green
        assert not doji.is_red

    def test_zero_range_body_ratio(self):
        candle = Candle(BASE_TS, 100.0, 100.0, 100.0, 100.0, 10.0)
        assert candle.body_ratio == 0.0

    def test_dict_conversion(self):
        candle = flat_candle(BASE_TS)
        assert Candle.from_dict(candle.to_dict()) == candle

    def test_timeframe_to_ms(self):
        assert timeframe_to_ms("1m") == 60_000
        assert timeframe_to_ms("1h") == 3_600_000
        with pytest.raises(ValueError):
            timeframe_to_ms("7m")


class TestCandleValidity:

    def test_valid_candle(self):
        assert is_valid_candle(flat_candle(BASE_TS))

    @pytest.mark.parametrize("candle", [
        Candle(BASE_TS, 0.0, 101.0, 99.0, 100.0, 10.0),           # 가격 0
        Candle(BASE_TS, 100.0, 99.0, 101.0, 100.0, 10.0),         # high < low
        Candle(BASE_TS, 100.0, 100.5, 99.0, 101.0, 10.0),         # high < close
        Candle(BASE_TS, 100.0, 101.0, 99.5, 99.0, 10.0),          # low > close
        Candle(BASE_TS, 100.0, 101.0, 99.0, 100.0, -1.0),         # 음수 거래량
        Candle(0, 100.0, 101.0, 99.0, 100.0, 10.0),               # timestamp
        Candle(BASE_TS, 100.0, 101.0, 99.0, math.nan, 10.0),      # NaN
        Candle(BASE_TS, 100.0, 200.0, 90.0, 150.0, 10.0),         # 이상치 (폭 > 중간가 50%)
    ])
    def test_invalid_candles(self, candle):
        assert not is_valid_candle(candle)

    def test_forward_candle_ignores_volume(self):
        candle = Candle(BASE_TS, 100.0, 101.0, 99.0, 100.0, -5.0)
        assert not is_valid_candle(candle)
        assert is_valid_forward_candle(candle)

    def test_find_invalid_indices(self):
        candles = [flat_candle(BASE_TS), Candle(BASE_TS + 1, 100.0, 99.0, 101.0, 100.0, 1.0), None]
        assert find_invalid_indices(candles) == [1, 2]


class TestCandleFrames:

    def test_frame_sorted_and_deduplicated(self):
        df = pd.DataFrame({
            "timestamp": [3000, 1000, 2000, 1000],
            "open": [1.0, 1.0, 1.0, 2.0],
            "high": [1.0, 1.0, 1.0, 2.0],
            "low": [1.0, 1.0, 1.0, 2.0],
            "close": [1.0, 1.0, 1.0, 2.0],
            "volume": [1, 1, 1, 1],
        })

        candles = candles_from_frame(df)

        assert [c.timestamp for c in candles] == [1000, 2000, 3000]
        assert candles[0].open == 2.0   # 중복은 마지막 행 유지

    def test_frame_missing_columns(self):
        with pytest.raises(ValueError):
            candles_from_frame(pd.DataFrame({"timestamp": [1], "open": [1.0]}))

    def test_to_frame(self):
        frame = candles_to_frame([flat_candle(BASE_TS), flat_candle(BASE_TS + 1)])
        assert list(frame.columns) == ["timestamp", "open", "high", "low", "close", "volume"]
        assert len(frame) == 2


class TestFetchResult:

    def test_from_candles_sorts_and_sets_range(self):
        result = FetchResult.from_candles([flat_candle(BASE_TS + 2), flat_candle(BASE_TS), flat_candle(BASE_TS + 2)])
        assert [c.timestamp for c in result.candles] == [BASE_TS, BASE_TS + 2]
        assert result.actual_start == BASE_TS
        assert result.actual_end == BASE_TS + 2

    def test_empty(self):
        result = FetchResult.from_candles([])
        assert result.candles == []
        assert result.actual_start is None

    def test_epoch_conversion(self):
        naive = datetime(2024, 1, 1)
        aware = datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert to_epoch_ms(naive) == to_epoch_ms(aware) == 1_704_067_200_000
        assert from_epoch_ms(1_704_067_200_000) == aware
