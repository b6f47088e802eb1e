"""
시그널 필터 조회 및 분포 집계.

[ 역할 ]
    저장된 실행 결과에서 조건에 맞는 시그널/성과를 골라낸다.
    시그널과 성과는 signal_id로 조인되며, 성과가 포함되면 그 시그널도 포함되고
    그 반대도 성립하도록 두 목록을 함께 거른다.

[ 필터 적용 순서 ]
    1. 시그널 조건: 종류, 심볼, 타임프레임, 시각 범위
    2. 남은 시그널에 대응하는 성과만 유지
    3. 성과 조건: 위험보상비 범위, 성공 시그널만
    4. 남은 성과에 대응하는 시그널만 유지

[ 호출하는 곳 ]
    - backtest/orchestrator.py::BacktestOrchestrator.get_filtered_signals()
    - run_backtest.py (분포 출력)
"""

from dataclasses import dataclass
from typing import Iterable

import pandas as pd

from signal_backtester.backtest.performance import SignalPerformance
from signal_backtester.signals.models import SignalDetection, SignalType


@dataclass(frozen=True)
class SignalFilter:
    """필터 조건. None/빈 값인 항목은 적용하지 않는다."""
    signal_types: frozenset[SignalType] | None = None
    symbols: frozenset[str] | None = None
    timeframes: frozenset[str] | None = None
    start_time: int | None = None           # epoch ms, 이상
    end_time: int | None = None             # epoch ms, 이하
    min_risk_reward: float | None = None
    max_risk_reward: float | None = None
    only_successful: bool = False

    @classmethod
    def create(
        cls,
        signal_types: Iterable[SignalType | str] | None = None,
        symbols: Iterable[str] | None = None,
        timeframes: Iterable[str] | None = None,
        **kwargs,
    ) -> "SignalFilter":
        """리스트/문자열 인자를 받아 생성하는 편의 생성자."""
        types = None
        if signal_types:
            types = frozenset(t if isinstance(t, SignalType) else SignalType(t) for t in signal_types)
        return cls(
            signal_types=types,
            symbols=frozenset(symbols) if symbols else None,
            timeframes=frozenset(timeframes) if timeframes else None,
            **kwargs,
        )

    def accepts_signal(self, signal: SignalDetection) -> bool:
        if self.signal_types and signal.type not in self.signal_types:
            return False
        if self.symbols and signal.symbol not in self.symbols:
            return False
        if self.timeframes and signal.timeframe not in self.timeframes:
            return False
        if self.start_time is not None and signal.timestamp < self.start_time:
            return False
        if self.end_time is not None and signal.timestamp > self.end_time:
            return False
        return True

    def accepts_performance(self, performance: SignalPerformance) -> bool:
        if self.min_risk_reward is not None and performance.risk_reward_ratio < self.min_risk_reward:
            return False
        if self.max_risk_reward is not None and performance.risk_reward_ratio > self.max_risk_reward:
            return False
        if self.only_successful and not performance.is_successful:
            return False
        return True


def filter_signals(
    signals: list[SignalDetection],
    performances: list[SignalPerformance],
    filters: SignalFilter,
) -> tuple[list[SignalDetection], list[SignalPerformance]]:
    """조건에 맞는 (시그널, 성과) 목록. 원래 순서 유지."""
    kept_signals = [s for s in signals if filters.accepts_signal(s)]
    signal_ids = {s.signal_id for s in kept_signals}

    kept_performances = [
        p for p in performances
        if p.signal_id in signal_ids and filters.accepts_performance(p)
    ]
    performance_ids = {p.signal_id for p in kept_performances}

    kept_signals = [s for s in kept_signals if s.signal_id in performance_ids]
    return kept_signals, kept_performances


def _count_table(frame: pd.DataFrame, column: str) -> pd.DataFrame:
    counts = frame.groupby(column).size().rename("count").reset_index()
    counts["percentage"] = counts["count"] / len(frame) * 100
    return counts.sort_values(["count", column], ascending=[False, True]).reset_index(drop=True)


def signals_breakdown(
    signals: list[SignalDetection],
    performances: list[SignalPerformance],
) -> dict[str, pd.DataFrame]:
    """시그널 분포 (종류/심볼/타임프레임별 건수·비율) + 종류별 성과.

    Returns:
        {"by_type", "by_symbol", "by_timeframe", "performance_by_type"} → DataFrame
    """
    if not signals:
        empty = pd.DataFrame(columns=["count", "percentage"])
        return {
            "by_type": empty.copy(),
            "by_symbol": empty.copy(),
            "by_timeframe": empty.copy(),
            "performance_by_type": pd.DataFrame(
                columns=["type", "total", "successful", "success_rate", "avg_risk_reward"]
            ),
        }

    frame = pd.DataFrame([
        {
            "signal_id": s.signal_id,
            "type": s.type.value,
            "symbol": s.symbol,
            "timeframe": s.timeframe,
        }
        for s in signals
    ])

    perf_frame = pd.DataFrame(
        [
            {
                "signal_id": p.signal_id,
                "is_successful": p.is_successful,
                "risk_reward_ratio": p.risk_reward_ratio,
            }
            for p in performances
        ],
        columns=["signal_id", "is_successful", "risk_reward_ratio"],
    )
    joined = frame.merge(perf_frame, on="signal_id", how="inner")
    performance_by_type = (
        joined.groupby("type")
        .agg(
            total=("signal_id", "size"),
            successful=("is_successful", "sum"),
            avg_risk_reward=("risk_reward_ratio", "mean"),
        )
        .reset_index()
    )
    performance_by_type["successful"] = performance_by_type["successful"].astype(int)
    performance_by_type["success_rate"] = performance_by_type["successful"] / performance_by_type["total"] * 100
    performance_by_type = performance_by_type[["type", "total", "successful", "success_rate", "avg_risk_reward"]]

    return {
        "by_type": _count_table(frame, "type"),
        "by_symbol": _count_table(frame, "symbol"),
        "by_timeframe": _count_table(frame, "timeframe"),
        "performance_by_type": performance_by_type,
    }
