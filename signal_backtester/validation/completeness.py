"""
데이터 완전성 검증 모듈 (zero-tolerance).

[ 역할 ]
    캔들 시리즈가 시그널 통계를 신뢰할 수 있을 만큼 완전한지 검증하고,
    결과를 DataCompletenessReport로 반환한다. 부분 합격은 없다.

[ 필요 캔들 수 ]
    historical  = max(volume_ma_length, volume_std_length)   거래량 통계
    pattern     = 3                                          패턴 (prev2, prev1, current)
    lookforward = lookforward_candles                        성과 분석
    buffer      = 10                                         여유분
    total       = 위 합계

[ validate_dataset() 단계 ] (앞 단계 실패 시 즉시 반환)
    1. 빈 시리즈 또는 total 미달          → "Insufficient data: need N, have M"
    2. 불변 조건 위반 캔들 1개 이상       → "Invalid candles detected: ..."
    3. 타임프레임 + 1초를 넘는 간격       → "Data gaps detected: ..." (gap 목록 포함)
    4. 앞쪽 historical 구간 거래량 누락   → "Missing/Invalid volume data ..."
    5. 품질 점수 < 100                    → "Data quality insufficient: ..."

[ validate_signal_window() ]
    시그널 하나에 대한 좁은 범위 검사. 탐지기가 시그널을 내보내기 전, 그리고
    오케스트레이터가 성과를 계산하기 전에 각각 호출된다 (중복 검사는 의도된 것).

[ 호출하는 곳 ]
    - backtest/orchestrator.py (데이터셋 검사)
    - signals/detector.py (시그널 구간 검사)
"""

import logging
import math
from collections import Counter
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any

from signal_backtester.core.candle import Candle, find_invalid_indices, timeframe_to_ms
from signal_backtester.utils.config import BacktestConfig

logger = logging.getLogger("signal_backtester.validation")

PATTERN_CANDLES = 3
BUFFER_CANDLES = 10
GAP_TOLERANCE_MS = 1000


@dataclass(frozen=True)
class DataRequirements:
    """시그널 처리에 필요한 정확한 캔들 수."""
    historical: int
    pattern: int
    lookforward: int
    buffer: int
    total: int


@dataclass(frozen=True)
class DataGap:
    start: int       # 기대했던 다음 캔들 시각 (ms)
    end: int         # 실제 다음 캔들 시각 (ms)
    duration: int    # end - start (ms)


@dataclass
class DataCompletenessReport:
    """검증 결과. 호출 1회당 1개 생성되는 진단 정보."""
    is_complete: bool = False
    total_required: int = 0
    total_available: int = 0
    missing_data_points: int = 0
    data_gaps: list[DataGap] = field(default_factory=list)
    quality_score: float = 0.0
    skip_reason: str | None = None
    recommendations: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class DataCompletenessValidator:
    """zero-tolerance 데이터 완전성 검증기.

    사용 예:
        validator = DataCompletenessValidator()
        requirements = validator.requirements(config)
        report = validator.validate_dataset(candles, requirements, "BTCUSDT", "1h")
        if not report.is_complete:
            print(report.skip_reason)
    """

    def requirements(self, config: BacktestConfig) -> DataRequirements:
        """설정으로부터 필요한 캔들 수 계산."""
        historical = config.volume_lookback
        lookforward = config.lookforward_candles
        return DataRequirements(
            historical=historical,
            pattern=PATTERN_CANDLES,
            lookforward=lookforward,
            buffer=BUFFER_CANDLES,
            total=historical + PATTERN_CANDLES + lookforward + BUFFER_CANDLES,
        )

    def validate_dataset(
        self,
        candles: list[Candle],
        requirements: DataRequirements,
        symbol: str = "",
        timeframe: str = "1m",
    ) -> DataCompletenessReport:
        """캔들 시리즈 전체 검증."""
        candles = candles or []
        report = DataCompletenessReport(
            total_required=requirements.total,
            total_available=len(candles),
        )

        # ─── 1. 수량 ─────────────────────────────────────────────────────
        if not candles:
            report.skip_reason = "No candle data provided"
            report.recommendations.append("Fetch historical data from source")
            return report

        if len(candles) < requirements.total:
            report.missing_data_points = requirements.total - len(candles)
            report.skip_reason = f"Insufficient data: need {requirements.total}, have {len(candles)}"
            report.recommendations.append("Extend historical data range")
            report.recommendations.append("Try alternative data sources")
            return report

        # ─── 2. 캔들 품질 ───────────────────────────────────────────────
        invalid = find_invalid_indices(candles)
        if invalid:
            report.skip_reason = f"Invalid candles detected: {len(invalid)} corrupted data points"
            report.recommendations.append("Clean corrupted data points")
            report.recommendations.append("Re-fetch data from source")
            return report

        # ─── 3. 시각 연속성 ─────────────────────────────────────────────
        misordered = self.detect_misordered(candles, timeframe)
        if misordered:
            report.skip_reason = (
                f"Timestamp order violated: {len(misordered)} out-of-order or duplicate candles"
            )
            report.recommendations.append("Sort and deduplicate candles by timestamp")
            return report

        gaps = self.detect_gaps(candles, timeframe)
        if gaps:
            report.data_gaps = gaps
            report.skip_reason = f"Data gaps detected: {len(gaps)} missing time periods"
            report.recommendations.append("Fill data gaps with additional requests")
            report.recommendations.append("Use gap-filling algorithms")
            return report

        # ─── 4. 거래량 완전성 ───────────────────────────────────────────
        volume_reason = self._check_volume_completeness(candles, requirements.historical)
        if volume_reason:
            report.skip_reason = volume_reason
            report.recommendations.append("Ensure all volume data is available")
            report.recommendations.append("Validate volume data source")
            return report

        # ─── 5. 품질 점수 (100%만 허용) ─────────────────────────────────
        report.quality_score = self.quality_score(candles, requirements, invalid_count=len(invalid))
        if report.quality_score < 100:
            report.skip_reason = f"Data quality insufficient: {report.quality_score:.1f}% (require 100%)"
            report.recommendations.append("Improve data quality to 100%")
            return report

        report.is_complete = True
        logger.info(f"데이터 검증 통과 {symbol} {timeframe}: {len(candles)}개 캔들, 품질 100%")
        return report

    def validate_signal_window(
        self,
        candles: list[Candle],
        signal_index: int,
        requirements: DataRequirements,
    ) -> DataCompletenessReport:
        """시그널 1개에 대한 과거/전방 구간 검증."""
        report = DataCompletenessReport(total_required=requirements.lookforward)

        if not candles or signal_index < 0 or signal_index >= len(candles):
            report.skip_reason = "Invalid signal index"
            return report

        # 시그널 캔들 포함 과거 구간
        historical_available = signal_index + 1
        if historical_available < requirements.historical:
            report.skip_reason = (
                f"Insufficient historical data: need {requirements.historical}, "
                f"have {historical_available}"
            )
            report.recommendations.append("Extend historical data range")
            return report

        lookforward_available = len(candles) - signal_index - 1
        report.total_available = lookforward_available
        if lookforward_available < requirements.lookforward:
            report.missing_data_points = requirements.lookforward - lookforward_available
            report.skip_reason = (
                f"Insufficient lookforward data: need {requirements.lookforward}, "
                f"have {lookforward_available}"
            )
            report.recommendations.append("Extend future data range")
            return report

        forward = candles[signal_index + 1:signal_index + 1 + requirements.lookforward]
        invalid_forward = find_invalid_indices(forward)
        if invalid_forward:
            report.skip_reason = f"Invalid lookforward data: {len(invalid_forward)} corrupted candles"
            report.recommendations.append("Clean lookforward data")
            return report

        report.is_complete = True
        report.quality_score = 100.0
        return report

    def detect_gaps(self, candles: list[Candle], timeframe: str) -> list[DataGap]:
        """타임프레임 간격 + 1초 허용치를 넘는 구간 탐지."""
        if len(candles) < 2:
            return []

        timeframe_ms = timeframe_to_ms(timeframe)
        gaps = []
        for prev, curr in zip(candles, candles[1:]):
            expected = prev.timestamp + timeframe_ms
            if curr.timestamp > expected + GAP_TOLERANCE_MS:
                gaps.append(DataGap(start=expected, end=curr.timestamp, duration=curr.timestamp - expected))
        return gaps

    def detect_misordered(self, candles: list[Candle], timeframe: str) -> list[int]:
        """직전 캔들보다 간격이 (타임프레임 - 1초)보다 짧은 캔들의 인덱스. 역순/중복 포함."""
        timeframe_ms = timeframe_to_ms(timeframe)
        return [
            i
            for i in range(1, len(candles))
            if candles[i].timestamp - candles[i - 1].timestamp < timeframe_ms - GAP_TOLERANCE_MS
        ]

    def quality_score(
        self,
        candles: list[Candle],
        requirements: DataRequirements,
        invalid_count: int | None = None,
    ) -> float:
        """품질 점수 (0~100). 불량 캔들 비율과 부족분 비율만큼 감점."""
        if not candles:
            return 0.0
        if invalid_count is None:
            invalid_count = len(find_invalid_indices(candles))

        score = 100.0
        score -= invalid_count / len(candles) * 100
        missing = max(0, requirements.total - len(candles))
        if requirements.total > 0:
            score -= missing / requirements.total * 50
        return max(0.0, score)

    def _check_volume_completeness(self, candles: list[Candle], historical: int) -> str | None:
        """앞쪽 historical개 캔들의 거래량 검사. 문제가 있으면 사유 반환."""
        if len(candles) < historical:
            return f"Insufficient volume data: need {historical}, have {len(candles)}"

        for i, candle in enumerate(candles[:historical]):
            volume = candle.volume
            if volume is None or not math.isfinite(volume):
                return f"Missing volume data at index {i}"
            if volume < 0:
                return f"Invalid volume data at index {i}: {volume}"
        return None

    def generate_validation_report(
        self,
        symbol: str,
        timeframe: str,
        dataset_report: DataCompletenessReport,
        signal_reports: list[DataCompletenessReport],
    ) -> str:
        """데이터셋 + 시그널 구간 검증 결과 텍스트 리포트."""
        lines = [
            "=== COMPLETE DATA VALIDATION REPORT ===",
            f"Symbol: {symbol} | Timeframe: {timeframe}",
            f"Timestamp: {datetime.now(timezone.utc).isoformat()}",
            "",
            "Dataset Validation:",
            f"  Status: {'PASSED' if dataset_report.is_complete else 'FAILED'}",
            f"  Required: {dataset_report.total_required} candles",
            f"  Available: {dataset_report.total_available} candles",
            f"  Quality Score: {dataset_report.quality_score:.1f}%",
        ]
        if not dataset_report.is_complete:
            lines.append(f"  Skip Reason: {dataset_report.skip_reason}")
            lines.append("  Recommendations:")
            lines.extend(f"    - {rec}" for rec in dataset_report.recommendations)

        passed = sum(1 for r in signal_reports if r.is_complete)
        failed = len(signal_reports) - passed
        lines += [
            "",
            f"Signal Validations: {len(signal_reports)} signals checked",
            f"  Passed: {passed}",
            f"  Failed: {failed}",
        ]
        if failed:
            lines.append("  Common Skip Reasons:")
            reasons = Counter(r.skip_reason or "Unknown" for r in signal_reports if not r.is_complete)
            lines.extend(f"    - {reason}: {count} signals" for reason, count in reasons.items())

        return "\n".join(lines)
