"""
백테스트 요약 지표 계산 모듈.

[ 역할 ]
    시그널별 성과(SignalPerformance) 목록을 받아 실행 단위 요약 지표를 계산.
    calculate_summary() 함수가 핵심.

[ 계산하는 지표 ]
    - 성공률 (%)
    - 평균 위험보상비: drawup%, drawdown% 모두 0.1% 이상 + 비율이 (0, 100) 구간인 시그널만
    - perfect signal 수: 의미 있는 drawup + 의미 없는 drawdown
    - 평균 drawup / drawdown (%): 움직임이 0인 시그널 포함 전체 평균
    - best / worst 시그널: 포화(perfect 또는 상한 100 도달) 시그널을 뺀 나머지 중 최대/최소 비율

[ 호출하는 곳 ]
    - backtest/orchestrator.py 실행 완료 시 호출
"""

from dataclasses import asdict, dataclass
from typing import Any

from signal_backtester.backtest.performance import MAX_RISK_REWARD, SignalPerformance


@dataclass
class RunSummary:
    """실행 요약 지표. summary()로 포맷된 리포트 출력 가능."""
    total_signals: int = 0
    successful_signals: int = 0
    success_rate: float = 0.0          # %
    avg_risk_reward: float = 0.0
    avg_drawup: float = 0.0            # %
    avg_drawdown: float = 0.0          # %
    best_signal: SignalPerformance | None = None
    worst_signal: SignalPerformance | None = None
    perfect_signals: int = 0

    def to_dict(self) -> dict[str, Any]:
        """딕셔너리 변환."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "RunSummary":
        if not data:
            return cls()
        picked = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        for key in ("best_signal", "worst_signal"):
            if picked.get(key) is not None:
                picked[key] = SignalPerformance.from_dict(picked[key])
        return cls(**picked)

    def summary(self) -> str:
        """성과 요약 문자열."""
        best = f"{self.best_signal.risk_reward_ratio:.2f} ({self.best_signal.signal_id})" if self.best_signal else "N/A"
        worst = f"{self.worst_signal.risk_reward_ratio:.2f} ({self.worst_signal.signal_id})" if self.worst_signal else "N/A"
        lines = [
            "=" * 50,
            "시그널 백테스트 성과 리포트",
            "=" * 50,
            f"총 시그널:        {self.total_signals:>10d}",
            f"성공 시그널:      {self.successful_signals:>10d}",
            f"성공률:           {self.success_rate:>10.2f}%",
            f"Perfect 시그널:   {self.perfect_signals:>10d}",
            "-" * 50,
            f"평균 위험보상비:  {self.avg_risk_reward:>10.2f}",
            f"평균 drawup:      {self.avg_drawup:>10.2f}%",
            f"평균 drawdown:    {self.avg_drawdown:>10.2f}%",
            "-" * 50,
            f"Best:  {best}",
            f"Worst: {worst}",
            "=" * 50,
        ]
        return "\n".join(lines)


def is_saturated(performance: SignalPerformance) -> bool:
    """비율이 의미를 잃은 시그널 (위험 없이 보상만 있거나 상한 도달)."""
    return performance.is_perfect or performance.risk_reward_ratio >= MAX_RISK_REWARD


def calculate_summary(performances: list[SignalPerformance]) -> RunSummary:
    """요약 지표 계산. orchestrator.py에서 실행 완료 후 호출됨."""
    summary = RunSummary()

    if not performances:
        return summary

    total = len(performances)
    summary.total_signals = total
    summary.successful_signals = sum(1 for p in performances if p.is_successful)
    summary.success_rate = summary.successful_signals / total * 100

    # ─── 위험보상비 평균 (위험/보상 모두 있는 시그널만) ─────────────────
    valid_ratios = [
        p.risk_reward_ratio
        for p in performances
        if p.has_meaningful_drawup
        and p.has_meaningful_drawdown
        and 0 < p.risk_reward_ratio < MAX_RISK_REWARD
    ]
    if valid_ratios:
        summary.avg_risk_reward = sum(valid_ratios) / len(valid_ratios)

    summary.perfect_signals = sum(1 for p in performances if p.is_perfect)

    # ─── drawup / drawdown 평균 (전체) ─────────────────────────────────
    summary.avg_drawup = sum(p.max_drawup_percent for p in performances) / total
    summary.avg_drawdown = sum(p.max_drawdown_percent for p in performances) / total

    # ─── best / worst ──────────────────────────────────────────────────
    # 동률이면 먼저 나온 시그널 유지
    for p in performances:
        if is_saturated(p):
            continue
        if summary.best_signal is None or p.risk_reward_ratio > summary.best_signal.risk_reward_ratio:
            summary.best_signal = p
        if summary.worst_signal is None or p.risk_reward_ratio < summary.worst_signal.risk_reward_ratio:
            summary.worst_signal = p

    return summary
