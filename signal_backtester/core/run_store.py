"""
백테스트 실행 기록 저장소 추상 클래스 정의.

[ 역할 ]
    실행 ID 단위로 실행 기록(설정, 시그널, 성과, 요약, 상태, 진행률)을 보관.
    코어가 요구하는 것은 ID 기준 원자적 upsert와 조회뿐이다.

[ 구현체 ]
    - data/memory.py::InMemoryRunStore
    - data/clickhouse_store.py::ClickHouseRunStore

[ 호출하는 곳 ]
    - backtest/orchestrator.py (상태 갱신, 결과 저장, 조회/취소/삭제)
"""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from signal_backtester.backtest.run import BacktestRun


class RunStore(ABC):
    """실행 기록 저장소 추상 클래스.

    구현체는 접근 실패 시 core/errors.py::StoreError를 발생시켜야 한다.
    """

    @abstractmethod
    def upsert(self, run: "BacktestRun") -> None:
        """run.run_id 기준으로 기록 전체를 저장 (없으면 생성, 있으면 교체)."""
        ...

    @abstractmethod
    def get(self, run_id: str) -> "BacktestRun | None":
        """ID로 기록 조회. 없으면 None."""
        ...

    @abstractmethod
    def list_runs(self, offset: int = 0, limit: int = 10) -> tuple[list["BacktestRun"], int]:
        """생성일 역순 목록과 전체 개수."""
        ...

    @abstractmethod
    def delete(self, run_id: str) -> bool:
        """기록 삭제. 삭제했으면 True."""
        ...
