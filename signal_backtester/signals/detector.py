"""
시그널 탐지 엔진.

[ 역할 ]
    캔들 시리즈에서 거래량 통계를 계산하고, 각 인덱스마다 네 가지 패턴 규칙을
    평가하여 SignalDetection 목록을 생성한다.

[ 실행 흐름 ]
    detect_signals() 호출 시:
        1. 3단계 사전 검사
           Phase 1: 패턴 최소 캔들(3개) + 불량 캔들 5% 이하
           Phase 2: 거래량 lookback + 3개 이상, 유효 거래량도 동일 개수 이상
           Phase 3: lookback 이후 남은 캔들이 lookforward 이상
        2. 탐색 구간 [lookback + 2, len - lookforward) 순회
           → 인덱스마다 활성화된 규칙을 patterns.PATTERN_ORDER 순서로 평가
        3. 일치한 시그널마다 validation/completeness.py의 구간 검사 재실행
           → 통과 시 채택, 실패 시 제외 + rejected 카운트

[ 보장 ]
    순수 함수처럼 동작한다 (엔진에 실행 간 상태 없음).
    같은 입력이면 같은 순서의 같은 시그널 목록을 반환한다.

[ 의존성 ]
    - signals/rolling_stats.py::RollingStats (거래량 평균/표준편차)
    - signals/patterns.py (규칙표)
    - validation/completeness.py::DataCompletenessValidator (시그널 구간 검사)

[ 호출하는 곳 ]
    - backtest/orchestrator.py::BacktestOrchestrator._process_pair()
"""

import logging
import math
from collections import Counter
from dataclasses import dataclass, field

from signal_backtester.core.candle import Candle, is_valid_candle
from signal_backtester.signals.models import (
    PatternCandles,
    SignalDetection,
    VolumeAnalysis,
    VolumeLevel,
)
from signal_backtester.signals.patterns import match_patterns
from signal_backtester.signals.rolling_stats import RollingStats
from signal_backtester.utils.config import BacktestConfig
from signal_backtester.validation.completeness import DataCompletenessValidator

logger = logging.getLogger("signal_backtester.signals")

# Phase 1에서 허용하는 불량 캔들 비율
MAX_CORRUPT_RATIO = 0.05


@dataclass
class DetectionStats:
    """detect_signals() 1회 실행 통계."""
    processed: int = 0          # 평가한 인덱스 수
    matched: int = 0            # 규칙 일치 수 (구간 검사 전)
    confirmed: int = 0          # 채택된 시그널 수
    rejected: int = 0           # 구간 검사에서 제외된 수
    failed_phase: str | None = None
    rejection_reasons: Counter = field(default_factory=Counter)


@dataclass
class DetectionResult:
    signals: list[SignalDetection] = field(default_factory=list)
    stats: DetectionStats = field(default_factory=DetectionStats)


def classify_volume(std_bar: float, config: BacktestConfig) -> VolumeLevel:
    """표준화 막대를 단계로 분류. 높은 단계부터 판단."""
    thresholds = config.volume_thresholds
    if std_bar >= thresholds.extra_high:
        return VolumeLevel.EXTRA_HIGH
    if std_bar >= thresholds.high:
        return VolumeLevel.HIGH
    if std_bar >= thresholds.medium:
        return VolumeLevel.MEDIUM
    return VolumeLevel.LOW


class SignalDetectionEngine:
    """캔들 패턴 + 거래량 기반 시그널 탐지기."""

    def __init__(self, validator: DataCompletenessValidator | None = None):
        self.validator = validator or DataCompletenessValidator()

    def analyze_volume(
        self,
        candles: list[Candle],
        index: int,
        config: BacktestConfig,
        stats: RollingStats | None = None,
    ) -> VolumeAnalysis:
        """index 캔들의 거래량 분석. 데이터가 모자라면 중립값(LOW, 0)."""
        if not candles or index < 0 or index >= len(candles):
            return VolumeAnalysis()

        if index + 1 < config.volume_lookback:
            return VolumeAnalysis()

        if stats is None:
            stats = RollingStats([c.volume for c in candles])

        volume_mean = stats.sma(index, config.volume_ma_length)
        volume_std = stats.stddev(index, config.volume_std_length)

        current_volume = candles[index].volume
        if volume_std == 0 or not math.isfinite(current_volume):
            std_bar = 0.0
        else:
            std_bar = (current_volume - volume_mean) / volume_std

        return VolumeAnalysis(
            volume_mean=volume_mean,
            volume_std=volume_std,
            volume_std_bar=std_bar,
            is_volume_colored=std_bar > config.volume_thresholds.medium,
            volume_level=classify_volume(std_bar, config),
        )

    def detect_signals(
        self,
        candles: list[Candle],
        symbol: str,
        timeframe: str,
        config: BacktestConfig,
    ) -> list[SignalDetection]:
        """시그널 탐지. timestamp 오름차순 목록 반환."""
        return self.detect_signals_with_stats(candles, symbol, timeframe, config).signals

    def detect_signals_with_stats(
        self,
        candles: list[Candle],
        symbol: str,
        timeframe: str,
        config: BacktestConfig,
    ) -> DetectionResult:
        """detect_signals()와 같으나 처리 통계를 함께 반환."""
        result = DetectionResult()
        lookback = config.volume_lookback

        failure = self._check_preconditions(candles, lookback, config.lookforward_candles)
        if failure:
            logger.info(f"[{symbol} {timeframe}] 사전 검사 실패: {failure}")
            result.stats.failed_phase = failure
            return result

        start_index = lookback + 2
        end_index = len(candles) - config.lookforward_candles
        if start_index >= end_index:
            result.stats.failed_phase = f"No processing range: start={start_index}, end={end_index}"
            return result

        requirements = self.validator.requirements(config)
        volume_stats = RollingStats([c.volume for c in candles])

        for i in range(start_index, end_index):
            result.stats.processed += 1
            prev2, prev1, current = candles[i - 2], candles[i - 1], candles[i]
            current_volume = self.analyze_volume(candles, i, config, volume_stats)
            prev1_volume = self.analyze_volume(candles, i - 1, config, volume_stats)

            matched = match_patterns(prev2, prev1, current, prev1_volume, current_volume, config)
            if not matched:
                continue

            window = self.validator.validate_signal_window(candles, i, requirements)
            for signal_type in matched:
                result.stats.matched += 1
                if not window.is_complete:
                    result.stats.rejected += 1
                    result.stats.rejection_reasons[window.skip_reason] += 1
                    logger.debug(f"[{symbol} {timeframe}] 시그널 제외 {signal_type.value} @ {current.timestamp}: {window.skip_reason}")
                    continue

                result.signals.append(SignalDetection(
                    type=signal_type,
                    timestamp=current.timestamp,
                    price=current.close,
                    symbol=symbol,
                    timeframe=timeframe,
                    volume_data=current_volume,
                    candle_data=PatternCandles(current=current, previous1=prev1, previous2=prev2),
                ))
                result.stats.confirmed += 1

        logger.info(
            f"[{symbol} {timeframe}] 탐지 완료: 평가 {result.stats.processed}개 인덱스, "
            f"채택 {result.stats.confirmed}, 제외 {result.stats.rejected}"
        )
        return result

    def _check_preconditions(
        self,
        candles: list[Candle],
        lookback: int,
        lookforward: int,
    ) -> str | None:
        """3단계 사전 검사. 실패 사유 문자열 또는 None."""
        # Phase 1: 패턴 탐지 기본 요건
        if not candles or len(candles) < 3:
            count = len(candles) if candles else 0
            return f"Phase 1: Insufficient data for pattern detection: {count} candles (minimum 3 required)"

        invalid_count = sum(1 for c in candles if not is_valid_candle(c))
        if invalid_count > len(candles) * MAX_CORRUPT_RATIO:
            return f"Phase 1: Too many invalid candles: {invalid_count}/{len(candles)}"

        # Phase 2: 거래량 통계 요건
        required = lookback + 3
        if len(candles) < required:
            return f"Phase 2: Insufficient data for volume analysis: need {required}, have {len(candles)}"

        valid_volumes = sum(1 for c in candles if math.isfinite(c.volume) and c.volume >= 0)
        if valid_volumes < required:
            return f"Phase 2: Insufficient valid volume data: need {required}, have {valid_volumes}"

        # Phase 3: 전방 분석 요건
        usable = len(candles) - lookback - 3
        if usable <= 0:
            return "Phase 3: No usable candles for signal detection after volume lookback"
        if usable < lookforward:
            return f"Phase 3: Insufficient forward data: need {lookforward} lookforward candles, can only analyze {usable}"

        return None
