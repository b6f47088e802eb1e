"""
백테스트 실행 기록.

[ 상태 전이 ]
    PENDING → RUNNING → COMPLETED | FAILED | CANCELLED
    (PENDING/RUNNING에서만 CANCELLED로 전이 가능)

[ 주요 클래스 ]
    RunStatus       - 실행 상태
    ProcessingStats - 조합/시그널 처리 통계 + skip 사유별 집계
    BacktestRun     - 저장소에 저장되는 실행 기록 전체

[ 호출하는 곳 ]
    - backtest/orchestrator.py (생성/갱신)
    - core/run_store.py 구현체 (저장/조회, to_dict/from_dict로 직렬화)
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from signal_backtester.backtest.metrics import RunSummary
from signal_backtester.backtest.performance import SignalPerformance
from signal_backtester.signals.models import SignalDetection
from signal_backtester.utils.config import BacktestConfig


class RunStatus(Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"

    @property
    def is_active(self) -> bool:
        return self in (RunStatus.PENDING, RunStatus.RUNNING)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _parse_iso(value: str | datetime | None) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


@dataclass
class ProcessingStats:
    """조합/시그널 처리 통계."""
    total_combinations: int = 0
    completed_combinations: int = 0
    skipped_combinations: int = 0
    failed_combinations: int = 0
    total_signals_detected: int = 0
    total_signals_processed: int = 0
    total_signals_skipped: int = 0
    skip_reasons: dict[str, int] = field(default_factory=dict)

    @property
    def finished_combinations(self) -> int:
        return self.completed_combinations + self.skipped_combinations + self.failed_combinations

    def add_skip_reason(self, reason: str, count: int = 1) -> None:
        self.skip_reasons[reason] = self.skip_reasons.get(reason, 0) + count

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_combinations": self.total_combinations,
            "completed_combinations": self.completed_combinations,
            "skipped_combinations": self.skipped_combinations,
            "failed_combinations": self.failed_combinations,
            "total_signals_detected": self.total_signals_detected,
            "total_signals_processed": self.total_signals_processed,
            "total_signals_skipped": self.total_signals_skipped,
            "skip_reasons": dict(self.skip_reasons),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "ProcessingStats":
        if not data:
            return cls()
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


@dataclass
class BacktestRun:
    """저장소에 저장되는 실행 기록. 한 실행은 자신의 기록만 갱신한다."""
    run_id: str
    config: BacktestConfig
    signals: list[SignalDetection] = field(default_factory=list)
    performances: list[SignalPerformance] = field(default_factory=list)
    summary: RunSummary = field(default_factory=RunSummary)
    created_at: datetime = field(default_factory=utc_now)
    completed_at: datetime | None = None
    status: RunStatus = RunStatus.PENDING
    progress: int = 0
    error: str | None = None
    processing_stats: ProcessingStats = field(default_factory=ProcessingStats)

    def to_dict(self) -> dict[str, Any]:
        """JSON 직렬화 가능한 딕셔너리."""
        return {
            "run_id": self.run_id,
            "config": self.config.to_dict(),
            "signals": [s.to_dict() for s in self.signals],
            "performances": [p.to_dict() for p in self.performances],
            "summary": self.summary.to_dict(),
            "created_at": _iso(self.created_at),
            "completed_at": _iso(self.completed_at),
            "status": self.status.value,
            "progress": self.progress,
            "error": self.error,
            "processing_stats": self.processing_stats.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BacktestRun":
        return cls(
            run_id=data["run_id"],
            config=BacktestConfig.from_dict(data["config"]),
            signals=[SignalDetection.from_dict(s) for s in data.get("signals", [])],
            performances=[SignalPerformance.from_dict(p) for p in data.get("performances", [])],
            summary=RunSummary.from_dict(data.get("summary")),
            created_at=_parse_iso(data.get("created_at")) or utc_now(),
            completed_at=_parse_iso(data.get("completed_at")),
            status=RunStatus(data.get("status", RunStatus.PENDING.value)),
            progress=int(data.get("progress", 0)),
            error=data.get("error"),
            processing_stats=ProcessingStats.from_dict(data.get("processing_stats")),
        )
