"""
캔들 패턴 규칙.

[ 규칙 등록 방식 ]
    @register(SignalType.X) 데코레이터를 붙이면 PATTERN_REGISTRY에 등록된다.
    탐지기는 PATTERN_ORDER 순서대로 활성화된 규칙만 평가한다.

[ 규칙표 ] (prev2 = i-2, prev1 = i-1, current = i)

    시그널        | 앞 두 캔들 | 거래량 조건                 | 종가 조건                  | 몸통 비율
    PRIMARY_BUY  | 둘 다 음봉 | prev1, current 모두 colored | current.close > prev1.open | prev2, prev1 ≥ 임계값
    BASIC_BUY    | 둘 다 음봉 | current colored            | current.close > prev2.open | prev2, prev1 ≥ 임계값
    PRIMARY_SELL | 둘 다 양봉 | prev1, current 모두 colored | current.close < prev1.open | prev2, prev1 ≥ 임계값
    BASIC_SELL   | 둘 다 양봉 | current colored            | current.close < prev2.open | prev2, prev1 ≥ 임계값

    BUY 규칙은 current가 양봉, SELL 규칙은 current가 음봉이어야 한다.
    BUY/SELL은 캔들 색이 반대라 동시에 성립할 수 없다. 같은 방향의 PRIMARY/BASIC은
    각자의 활성화 플래그로 따로 평가되므로 한 캔들에서 함께 나올 수 있다.

[ 호출하는 곳 ]
    - signals/detector.py::SignalDetectionEngine.detect_signals()
"""

from typing import Callable

from signal_backtester.core.candle import Candle
from signal_backtester.signals.models import SignalType, VolumeAnalysis
from signal_backtester.utils.config import BacktestConfig

PatternRule = Callable[[Candle, Candle, Candle, VolumeAnalysis, VolumeAnalysis, BacktestConfig], bool]

# 시그널 종류 → 규칙 함수
PATTERN_REGISTRY: dict[SignalType, PatternRule] = {}

# 평가 순서 (결과 순서를 고정하기 위함)
PATTERN_ORDER = (
    SignalType.PRIMARY_BUY,
    SignalType.BASIC_BUY,
    SignalType.PRIMARY_SELL,
    SignalType.BASIC_SELL,
)


def register(signal_type: SignalType):
    """규칙 함수를 PATTERN_REGISTRY에 등록하는 데코레이터."""
    def decorator(func: PatternRule) -> PatternRule:
        PATTERN_REGISTRY[signal_type] = func
        return func
    return decorator


def _strong_bodies(prev2: Candle, prev1: Candle, threshold: float) -> bool:
    return prev2.body_ratio >= threshold and prev1.body_ratio >= threshold


@register(SignalType.PRIMARY_BUY)
def primary_buy(prev2, prev1, current, prev1_volume, current_volume, config) -> bool:
    return (
        prev2.is_red and prev1.is_red
        and prev1_volume.is_volume_colored
        and current.is_green and current_volume.is_volume_colored
        and current.close > prev1.open
        and _strong_bodies(prev2, prev1, config.body_ratio_threshold)
    )


@register(SignalType.BASIC_BUY)
def basic_buy(prev2, prev1, current, prev1_volume, current_volume, config) -> bool:
    return (
        prev2.is_red and prev1.is_red
        and current.is_green and current_volume.is_volume_colored
        and current.close > prev2.open
        and _strong_bodies(prev2, prev1, config.body_ratio_threshold)
    )


@register(SignalType.PRIMARY_SELL)
def primary_sell(prev2, prev1, current, prev1_volume, current_volume, config) -> bool:
    return (
        prev2.is_green and prev1.is_green
        and prev1_volume.is_volume_colored
        and current.is_red and current_volume.is_volume_colored
        and current.close < prev1.open
        and _strong_bodies(prev2, prev1, config.body_ratio_threshold)
    )


@register(SignalType.BASIC_SELL)
def basic_sell(prev2, prev1, current, prev1_volume, current_volume, config) -> bool:
    return (
        prev2.is_green and prev1.is_green
        and current.is_red and current_volume.is_volume_colored
        and current.close < prev2.open
        and _strong_bodies(prev2, prev1, config.body_ratio_threshold)
    )


def enabled_patterns(config: BacktestConfig) -> list[SignalType]:
    """설정에서 활성화된 시그널 종류 (평가 순서 유지)."""
    return [t for t in PATTERN_ORDER if getattr(config.enabled_signals, t.config_key)]


def match_patterns(
    prev2: Candle,
    prev1: Candle,
    current: Candle,
    prev1_volume: VolumeAnalysis,
    current_volume: VolumeAnalysis,
    config: BacktestConfig,
) -> list[SignalType]:
    """세 캔들에 대해 활성화된 규칙을 평가하여 일치한 시그널 종류 목록 반환."""
    return [
        signal_type
        for signal_type in enabled_patterns(config)
        if PATTERN_REGISTRY[signal_type](prev2, prev1, current, prev1_volume, current_volume, config)
    ]
