"""
Unit tests for zero-tolerance data completeness validation.
"""

from signal_backtester.core.candle import Candle
from signal_backtester.core.errors import (
    DataGapError,
    DataQualityError,
    DataValidationError,
    InsufficientDataError,
    VolumeIncompleteError,
)
from signal_backtester.validation.completeness import (
    DataCompletenessReport,
    DataCompletenessValidator,
    DataRequirements,
)

from candle_factory import BASE_TS, HOUR_MS, flat_candle, flat_series, small_config


class TestRequirements:

    def test_requirements_from_config(self, validator):
        requirements = validator.requirements(small_config())
        assert requirements == DataRequirements(historical=20, pattern=3, lookforward=5, buffer=10, total=38)

    def test_default_config_total(self, validator):
        requirements = validator.requirements(small_config(
            volume_ma_length=610, volume_std_length=610, lookforward_candles=24,
        ))
        assert requirements.total == 647


class TestValidateDataset:

    def setup_method(self):
        self.validator = DataCompletenessValidator()
        self.requirements = self.validator.requirements(small_config())

    def test_complete_dataset(self):
        report = self.validator.validate_dataset(flat_series(40), self.requirements, "BTCUSDT", "1h")
        assert report.is_complete
        assert report.quality_score == 100.0
        assert report.skip_reason is None

    def test_empty_dataset(self):
        report = self.validator.validate_dataset([], self.requirements)
        assert not report.is_complete
        assert report.skip_reason == "No candle data provided"

    def test_insufficient_data(self):
        requirements = DataRequirements(historical=610, pattern=3, lookforward=0, buffer=10, total=623)
        report = self.validator.validate_dataset(flat_series(50), requirements, "BTCUSDT", "1h")

        assert not report.is_complete
        assert "Insufficient data" in report.skip_reason
        assert report.missing_data_points == 573
        assert report.recommendations

    def test_single_invalid_candle_rejects(self):
        candles = flat_series(40)
        candles[7] = Candle(candles[7].timestamp, 100.0, 99.0, 101.0, 100.0, 1000.0)

        report = self.validator.validate_dataset(candles, self.requirements, "BTCUSDT", "1h")

        assert not report.is_complete
        assert report.skip_reason == "Invalid candles detected: 1 corrupted data points"

    def test_gap_rejects(self):
        candles = flat_series(40)
        candles = candles[:20] + [flat_candle(c.timestamp + HOUR_MS) for c in candles[20:]]

        report = self.validator.validate_dataset(candles, self.requirements, "BTCUSDT", "1h")

        assert not report.is_complete
        assert report.skip_reason == "Data gaps detected: 1 missing time periods"
        assert report.data_gaps[0].duration == HOUR_MS

    def test_reversed_order_rejects(self):
        candles = list(reversed(flat_series(40)))

        report = self.validator.validate_dataset(candles, self.requirements, "BTCUSDT", "1h")

        assert not report.is_complete
        assert report.skip_reason == "Timestamp order violated: 39 out-of-order or duplicate candles"
        assert isinstance(DataValidationError.from_report(report), DataQualityError)

    def test_duplicate_timestamp_rejects(self):
        candles = flat_series(40)
        candles[10] = flat_candle(candles[9].timestamp)
        candles = candles[:11] + [flat_candle(c.timestamp - HOUR_MS) for c in candles[11:]]

        report = self.validator.validate_dataset(candles, self.requirements, "BTCUSDT", "1h")

        assert not report.is_complete
        assert report.skip_reason.startswith("Timestamp order violated: 1 ")

    def test_volume_completeness_window(self):
        candles = flat_series(40)
        reason = self.validator._check_volume_completeness(candles, 50)
        assert reason == "Insufficient volume data: need 50, have 40"
        assert self.validator._check_volume_completeness(candles, 20) is None


class TestGapDetection:

    def setup_method(self):
        self.validator = DataCompletenessValidator()

    def test_gap_of_two_seconds(self):
        candles = [flat_candle(BASE_TS), flat_candle(BASE_TS + HOUR_MS + 2000)]
        gaps = self.validator.detect_gaps(candles, "1h")
        assert len(gaps) == 1
        assert gaps[0].duration == 2000
        assert gaps[0].start == BASE_TS + HOUR_MS

    def test_within_tolerance(self):
        candles = [flat_candle(BASE_TS), flat_candle(BASE_TS + HOUR_MS + 1000)]
        assert self.validator.detect_gaps(candles, "1h") == []

    def test_too_close_is_misordered(self):
        candles = [
            flat_candle(BASE_TS),
            flat_candle(BASE_TS + HOUR_MS - 1000),
            flat_candle(BASE_TS + 2 * HOUR_MS - 3000),
        ]
        assert self.validator.detect_misordered(candles, "1h") == [2]
        assert self.validator.detect_misordered(flat_series(5), "1h") == []


class TestSignalWindow:

    def setup_method(self):
        self.validator = DataCompletenessValidator()
        self.requirements = self.validator.requirements(small_config())
        self.candles = flat_series(40)

    def test_valid_window(self):
        report = self.validator.validate_signal_window(self.candles, 30, self.requirements)
        assert report.is_complete

    def test_historical_counts_signal_candle(self):
        assert self.validator.validate_signal_window(self.candles, 19, self.requirements).is_complete
        report = self.validator.validate_signal_window(self.candles, 18, self.requirements)
        assert report.skip_reason == "Insufficient historical data: need 20, have 19"

    def test_insufficient_lookforward(self):
        report = self.validator.validate_signal_window(self.candles, 36, self.requirements)
        assert not report.is_complete
        assert report.skip_reason == "Insufficient lookforward data: need 5, have 3"
        assert report.missing_data_points == 2

    def test_invalid_forward_candle(self):
        candles = list(self.candles)
        candles[32] = Candle(candles[32].timestamp, 100.0, 101.0, 99.0, 100.0, -1.0)
        report = self.validator.validate_signal_window(candles, 30, self.requirements)
        assert report.skip_reason == "Invalid lookforward data: 1 corrupted candles"

    def test_bad_index(self):
        report = self.validator.validate_signal_window(self.candles, 40, self.requirements)
        assert report.skip_reason == "Invalid signal index"


class TestErrorMapping:

    def test_from_report_subclasses(self):
        cases = [
            ("Insufficient data: need 38, have 10", [], InsufficientDataError),
            ("No candle data provided", [], InsufficientDataError),
            ("Invalid candles detected: 1 corrupted data points", [], DataQualityError),
            ("Missing volume data at index 3", [], VolumeIncompleteError),
        ]
        for reason, gaps, expected in cases:
            error = DataValidationError.from_report(DataCompletenessReport(skip_reason=reason, data_gaps=gaps))
            assert type(error) is expected
            assert str(error) == reason

    def test_gap_report(self, validator, config):
        candles = flat_series(40)
        candles = candles[:10] + [flat_candle(c.timestamp + HOUR_MS) for c in candles[10:]]
        report = validator.validate_dataset(candles, validator.requirements(config), "BTCUSDT", "1h")
        assert isinstance(DataValidationError.from_report(report), DataGapError)


class TestValidationReport:

    def test_text_report(self, validator, config):
        requirements = validator.requirements(config)
        candles = flat_series(40)
        dataset_report = validator.validate_dataset(candles, requirements, "BTCUSDT", "1h")
        signal_reports = [
            validator.validate_signal_window(candles, 30, requirements),
            validator.validate_signal_window(candles, 38, requirements),
        ]

        text = validator.generate_validation_report("BTCUSDT", "1h", dataset_report, signal_reports)

        assert "Status: PASSED" in text
        assert "Signal Validations: 2 signals checked" in text
        assert "Insufficient lookforward data: need 5, have 1: 1 signals" in text
