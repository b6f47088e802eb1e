"""
시그널 성과 분석 모듈.

[ 역할 ]
    시그널 이후 lookforward 구간의 가격 움직임을 시뮬레이션하여
    최대 유리 움직임(drawup) / 최대 불리 움직임(drawdown), 위험보상비, 성공 여부를 계산.

[ 방향 ]
    BUY  시그널: drawup = max(0, high - 진입가),  drawdown = max(0, 진입가 - low)
    SELL 시그널: drawup = max(0, 진입가 - low),   drawdown = max(0, high - 진입가)

[ 위험보상비 (riskRewardRatio) ]
    "의미 있는 움직임" = 진입가 대비 0.1% 이상
    - drawup, drawdown 모두 의미 있음 → drawup / drawdown (최대 100)
    - drawup만 의미 있음             → perfect signal (비율 0, 평균에서 제외)
    - 그 외                          → 0

[ 성공 여부 ]
    (drawup > 0 and drawdown > 0 and drawup > drawdown) or (drawup > 0 and drawdown == 0)

[ 호출하는 곳 ]
    - backtest/orchestrator.py::BacktestOrchestrator._process_pair()
    - 요약 통계는 backtest/metrics.py::calculate_summary()
"""

import logging
import math
from dataclasses import asdict, dataclass
from typing import Any

from signal_backtester.core.candle import Candle, is_valid_forward_candle
from signal_backtester.signals.models import SignalDetection
from signal_backtester.utils.config import BacktestConfig

logger = logging.getLogger("signal_backtester.performance")

MEANINGFUL_MOVE_PCT = 0.1     # 의미 있는 움직임 기준 (%)
MAX_RISK_REWARD = 100.0       # 위험보상비 상한


@dataclass(frozen=True)
class SignalPerformance:
    """시그널 1개의 성과. SignalDetection과 signal_id로 1:1 대응."""
    signal_id: str
    max_drawup: float = 0.0
    max_drawdown: float = 0.0
    max_drawup_percent: float = 0.0
    max_drawdown_percent: float = 0.0
    risk_reward_ratio: float = 0.0
    is_successful: bool = False
    time_to_max_drawup: int = 0       # 최대 drawup 도달 캔들 (1부터)
    time_to_max_drawdown: int = 0
    final_price: float = 0.0
    final_price_percent: float = 0.0

    @property
    def has_meaningful_drawup(self) -> bool:
        return self.max_drawup_percent >= MEANINGFUL_MOVE_PCT

    @property
    def has_meaningful_drawdown(self) -> bool:
        return self.max_drawdown_percent >= MEANINGFUL_MOVE_PCT

    @property
    def is_perfect(self) -> bool:
        """의미 있는 보상만 있고 의미 있는 위험은 없는 시그널."""
        return self.has_meaningful_drawup and not self.has_meaningful_drawdown

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SignalPerformance":
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


def _finite(value: float, default: float = 0.0) -> float:
    return value if math.isfinite(value) else default


class PerformanceAnalyzer:
    """lookforward 구간 성과 분석기. 상태 없음."""

    def analyze(
        self,
        signal: SignalDetection,
        candles: list[Candle],
        signal_index: int,
        config: BacktestConfig,
    ) -> SignalPerformance:
        """시그널 성과 분석.

        Args:
            signal: 탐지된 시그널 (진입가 = signal.price)
            candles: 시그널이 탐지된 캔들 시리즈
            signal_index: candles에서 시그널 캔들의 인덱스
            config: lookforward_candles 사용

        Returns:
            SignalPerformance (전방 데이터가 없으면 진입가 기준 중립 기록)
        """
        entry_price = signal.price
        signal_id = signal.signal_id

        if not candles or signal_index < 0 or signal_index >= len(candles):
            logger.warning(f"잘못된 분석 입력: signal_index={signal_index}, candles={len(candles or [])}")
            return self.empty_performance(signal)

        if not math.isfinite(entry_price) or entry_price <= 0:
            logger.warning(f"잘못된 진입가 {entry_price}: {signal_id}")
            return self.empty_performance(signal)

        end_index = min(signal_index + 1 + config.lookforward_candles, len(candles))
        window = candles[signal_index + 1:end_index]
        forward = [c for c in window if is_valid_forward_candle(c)]

        if not forward:
            logger.debug(f"전방 데이터 없음: {signal_id}")
            return self.empty_performance(signal)

        if len(forward) < len(window):
            logger.warning(f"불량 전방 캔들 {len(window) - len(forward)}개 제외: {signal_id}")

        is_buy = signal.type.is_buy
        max_drawup = 0.0
        max_drawdown = 0.0
        time_to_max_drawup = 0
        time_to_max_drawdown = 0

        for offset, candle in enumerate(forward, start=1):
            if is_buy:
                drawup = max(0.0, candle.high - entry_price)
                drawdown = max(0.0, entry_price - candle.low)
            else:
                drawup = max(0.0, entry_price - candle.low)
                drawdown = max(0.0, candle.high - entry_price)

            # 최초 도달 시점을 유지하기 위해 strict 비교
            if drawup > max_drawup:
                max_drawup = drawup
                time_to_max_drawup = offset
            if drawdown > max_drawdown:
                max_drawdown = drawdown
                time_to_max_drawdown = offset

        max_drawup_percent = max_drawup / entry_price * 100
        max_drawdown_percent = max_drawdown / entry_price * 100

        final_price = forward[-1].close
        final_price_percent = (final_price - entry_price) / entry_price * 100

        return SignalPerformance(
            signal_id=signal_id,
            max_drawup=_finite(max_drawup),
            max_drawdown=_finite(max_drawdown),
            max_drawup_percent=_finite(max_drawup_percent),
            max_drawdown_percent=_finite(max_drawdown_percent),
            risk_reward_ratio=risk_reward_ratio(max_drawup, max_drawdown, max_drawup_percent, max_drawdown_percent),
            is_successful=is_successful(max_drawup, max_drawdown),
            time_to_max_drawup=time_to_max_drawup,
            time_to_max_drawdown=time_to_max_drawdown,
            final_price=_finite(final_price, entry_price),
            final_price_percent=_finite(final_price_percent),
        )

    def empty_performance(self, signal: SignalDetection) -> SignalPerformance:
        """분석할 수 없을 때의 중립 기록 (진입가 기준)."""
        entry_price = signal.price if math.isfinite(signal.price) else 0.0
        return SignalPerformance(signal_id=signal.signal_id, final_price=entry_price)


def risk_reward_ratio(
    drawup: float,
    drawdown: float,
    drawup_percent: float,
    drawdown_percent: float,
) -> float:
    """위험보상비. 양쪽 모두 의미 있는 움직임일 때만 drawup / drawdown."""
    meaningful_up = drawup_percent >= MEANINGFUL_MOVE_PCT
    meaningful_down = drawdown_percent >= MEANINGFUL_MOVE_PCT

    if not (meaningful_up and meaningful_down):
        # perfect signal / 손실만 / 움직임 없음 → 0
        return 0.0

    ratio = drawup / drawdown
    if not math.isfinite(ratio) or ratio < 0:
        return 0.0
    return min(ratio, MAX_RISK_REWARD)


def is_successful(drawup: float, drawdown: float) -> bool:
    if drawup <= 0:
        return False
    return drawdown == 0 or drawup > drawdown
