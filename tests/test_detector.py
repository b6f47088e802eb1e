"""
Unit tests for pattern rules and the signal detection engine.
"""

import dataclasses

from signal_backtester.core.candle import Candle
from signal_backtester.signals.detector import SignalDetectionEngine, classify_volume
from signal_backtester.signals.models import SignalType, VolumeAnalysis, VolumeLevel
from signal_backtester.signals.patterns import PATTERN_REGISTRY, enabled_patterns, match_patterns
from signal_backtester.utils.config import EnabledSignals

from candle_factory import BASE_TS, HOUR_MS, flat_series, make_primary_buy_series, small_config

COLORED = VolumeAnalysis(volume_std_bar=3.0, is_volume_colored=True, volume_level=VolumeLevel.HIGH)
QUIET = VolumeAnalysis()


class TestPatterns:

    def setup_method(self):
        self.config = small_config()
        self.red1 = Candle(BASE_TS, 101.0, 101.1, 99.9, 100.0, 1000.0)            # body 0.83
        self.red2 = Candle(BASE_TS + HOUR_MS, 100.0, 100.1, 98.9, 99.0, 1000.0)  # body 0.83
        self.green = Candle(BASE_TS + 2 * HOUR_MS, 99.0, 101.3, 98.9, 101.2, 1000.0)   # clears red1.open

    def test_registry_has_all_types(self):
        assert set(PATTERN_REGISTRY) == set(SignalType)

    def test_primary_buy(self):
        matched = match_patterns(self.red1, self.red2, self.green, COLORED, COLORED, self.config)
        assert matched == [SignalType.PRIMARY_BUY]

    def test_primary_buy_needs_previous_volume(self):
        assert match_patterns(self.red1, self.red2, self.green, QUIET, COLORED, self.config) == []

    def test_basic_buy_when_enabled(self):
        config = small_config(enabled_signals=EnabledSignals(basic_buy=True))
        matched = match_patterns(self.red1, self.red2, self.green, QUIET, COLORED, config)
        assert matched == [SignalType.BASIC_BUY]

    def test_primary_and_basic_co_fire(self):
        config = small_config(enabled_signals=EnabledSignals(primary_buy=True, basic_buy=True))
        matched = match_patterns(self.red1, self.red2, self.green, COLORED, COLORED, config)
        assert matched == [SignalType.PRIMARY_BUY, SignalType.BASIC_BUY]

    def test_weak_body_blocks_pattern(self):
        weak = dataclasses.replace(self.red1, high=103.0, low=97.0)   # body 1/6
        assert match_patterns(weak, self.red2, self.green, COLORED, COLORED, self.config) == []

    def test_close_must_clear_previous_open(self):
        low_close = dataclasses.replace(self.green, close=99.9, high=100.0)
        assert match_patterns(self.red1, self.red2, low_close, COLORED, COLORED, self.config) == []

    def test_primary_sell(self):
        green1 = Candle(BASE_TS, 99.0, 100.1, 98.9, 100.0, 1.0)
        green2 = Candle(BASE_TS + HOUR_MS, 100.0, 101.1, 99.9, 101.0, 1.0)
        red = Candle(BASE_TS + 2 * HOUR_MS, 101.0, 101.1, 99.4, 99.5, 1.0)

        matched = match_patterns(green1, green2, red, COLORED, COLORED, self.config)

        assert matched == [SignalType.PRIMARY_SELL]

    def sell_triple(self, close: float):
        green1 = Candle(BASE_TS, 99.0, 100.1, 98.9, 100.0, 1.0)
        green2 = Candle(BASE_TS + HOUR_MS, 100.0, 101.1, 99.9, 101.0, 1.0)
        red = Candle(BASE_TS + 2 * HOUR_MS, 101.0, 101.1, min(close, 99.0) - 0.1, close, 1.0)
        return green1, green2, red

    def test_basic_sell_when_enabled(self):
        config = small_config(enabled_signals=EnabledSignals(basic_sell=True))
        matched = match_patterns(*self.sell_triple(98.9), QUIET, COLORED, config)
        assert matched == [SignalType.BASIC_SELL]

    def test_basic_sell_close_must_break_first_open(self):
        config = small_config(enabled_signals=EnabledSignals(basic_sell=True))
        assert match_patterns(*self.sell_triple(99.0), QUIET, COLORED, config) == []
        assert match_patterns(*self.sell_triple(99.5), QUIET, COLORED, config) == []

    def test_basic_sell_needs_current_volume(self):
        config = small_config(enabled_signals=EnabledSignals(basic_sell=True))
        assert match_patterns(*self.sell_triple(98.9), COLORED, QUIET, config) == []

    def test_basic_sell_disabled_by_default(self):
        matched = match_patterns(*self.sell_triple(98.9), COLORED, COLORED, self.config)
        assert matched == [SignalType.PRIMARY_SELL]

    def test_primary_and_basic_sell_co_fire(self):
        config = small_config(enabled_signals=EnabledSignals(basic_sell=True))
        matched = match_patterns(*self.sell_triple(98.9), COLORED, COLORED, config)
        assert matched == [SignalType.PRIMARY_SELL, SignalType.BASIC_SELL]

    def test_enabled_patterns_order(self):
        config = small_config(enabled_signals=EnabledSignals(True, True, True, True))
        assert enabled_patterns(config) == [
            SignalType.PRIMARY_BUY, SignalType.BASIC_BUY, SignalType.PRIMARY_SELL, SignalType.BASIC_SELL,
        ]


class TestVolumeAnalysis:

    def setup_method(self):
        self.engine = SignalDetectionEngine()
        self.config = small_config()

    def test_classify_volume(self):
        assert classify_volume(0.5, self.config) == VolumeLevel.LOW
        assert classify_volume(1.0, self.config) == VolumeLevel.MEDIUM
        assert classify_volume(2.5, self.config) == VolumeLevel.HIGH
        assert classify_volume(4.0, self.config) == VolumeLevel.EXTRA_HIGH

    def test_neutral_before_lookback(self):
        analysis = self.engine.analyze_volume(flat_series(40), 10, self.config)
        assert analysis == VolumeAnalysis()

    def test_spike_is_colored(self):
        candles = make_primary_buy_series()
        analysis = self.engine.analyze_volume(candles, 30, self.config)
        assert analysis.is_volume_colored
        assert analysis.volume_std_bar > 2.5
        assert analysis.volume_level == VolumeLevel.HIGH

    def test_constant_volume_has_zero_bar(self):
        candles = [dataclasses.replace(c, volume=500.0) for c in flat_series(40)]
        analysis = self.engine.analyze_volume(candles, 30, self.config)
        assert analysis.volume_std == 0.0
        assert analysis.volume_std_bar == 0.0
        assert not analysis.is_volume_colored


class TestDetectSignals:

    def setup_method(self):
        self.engine = SignalDetectionEngine()
        self.config = small_config()
        self.candles = make_primary_buy_series()

    def test_single_primary_buy(self):
        signals = self.engine.detect_signals(self.candles, "BTCUSDT", "1h", self.config)

        assert len(signals) == 1
        signal = signals[0]
        assert signal.type == SignalType.PRIMARY_BUY
        assert signal.timestamp == self.candles[30].timestamp
        assert signal.price == 100.5
        assert signal.candle_data.previous1 == self.candles[29]
        assert signal.signal_id == f"BTCUSDT_1h_PRIMARY_BUY_{self.candles[30].timestamp}"

    def test_deterministic(self):
        first = self.engine.detect_signals(self.candles, "BTCUSDT", "1h", self.config)
        second = self.engine.detect_signals(self.candles, "BTCUSDT", "1h", self.config)
        assert first == second

    def test_flat_series_has_no_signals(self):
        result = self.engine.detect_signals_with_stats(flat_series(60), "BTCUSDT", "1h", self.config)
        assert result.signals == []
        assert result.stats.processed == 60 - 5 - 22

    def test_disabled_type_is_not_reported(self):
        config = small_config(enabled_signals=EnabledSignals(primary_buy=False, primary_sell=True))
        assert self.engine.detect_signals(self.candles, "BTCUSDT", "1h", config) == []

    def test_signal_near_end_is_out_of_range(self):
        candles = make_primary_buy_series(count=60, signal_index=56)
        result = self.engine.detect_signals_with_stats(candles, "BTCUSDT", "1h", self.config)
        assert result.signals == []

    def test_phase_one_failure(self):
        result = self.engine.detect_signals_with_stats(self.candles[:2], "BTCUSDT", "1h", self.config)
        assert result.signals == []
        assert result.stats.failed_phase.startswith("Phase 1")

    def test_phase_two_failure(self):
        result = self.engine.detect_signals_with_stats(self.candles[:22], "BTCUSDT", "1h", self.config)
        assert result.stats.failed_phase.startswith("Phase 2")

    def test_phase_three_failure(self):
        result = self.engine.detect_signals_with_stats(self.candles[:26], "BTCUSDT", "1h", self.config)
        assert result.stats.failed_phase.startswith("Phase 3")

    def test_window_rejection_is_counted(self):
        candles = list(self.candles)
        candles[32] = Candle(candles[32].timestamp, 100.0, 100.5, 99.5, 100.05, -1.0)

        result = self.engine.detect_signals_with_stats(candles, "BTCUSDT", "1h", self.config)

        assert result.signals == []
        assert result.stats.matched == 1
        assert result.stats.rejected == 1
        assert result.stats.rejection_reasons["Invalid lookforward data: 1 corrupted candles"] == 1
