"""
ClickHouse 기반 RunStore 구현.

[ 역할 ]
    백테스트 실행 기록을 backtest_runs 테이블에 저장/조회.
    기록 전체를 JSON payload 한 컬럼에 담고, 목록/상태 조회용 컬럼만 따로 둔다.

[ 저장 방식 ]
    - ReplacingMergeTree(updated_at): upsert는 INSERT만 한다.
      같은 run_id의 행 중 updated_at이 가장 큰 행이 최신 기록.
    - 조회는 항상 FINAL로 최신 행만 읽는다.
    - 삭제는 is_deleted = 1 행을 추가하는 방식 (mutation 없음).

[ 의존성 ]
    - core/run_store.py::RunStore (추상 클래스)
    - ingestion/clickhouse_schema.py (연결, 테이블 생성)

[ 호출하는 곳 ]
    - run_backtest.py (--store clickhouse 옵션 사용 시)
"""

import json
import logging
import threading
from datetime import datetime, timedelta, timezone

from clickhouse_connect.driver import Client

from signal_backtester.backtest.run import BacktestRun
from signal_backtester.core.errors import StoreError
from signal_backtester.core.run_store import RunStore
from signal_backtester.ingestion.clickhouse_schema import RUN_TABLE, get_client

logger = logging.getLogger("signal_backtester.data")

RUN_COLUMNS = ["run_id", "created_at", "status", "progress", "payload", "is_deleted", "updated_at"]


class ClickHouseRunStore(RunStore):
    """ClickHouse 실행 기록 저장소.

    사용 예:
        store = ClickHouseRunStore('localhost', 8123, 'default', password='password')
        store.upsert(run)
        run = store.get(run.run_id)
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 8123,
        database: str = "default",
        user: str = "default",
        password: str = "password",
        client: Client | None = None,
    ):
        self.client: Client = client or get_client(host, port, database, user, password)
        self._lock = threading.Lock()
        self._last_version = datetime.fromtimestamp(0, tz=timezone.utc)

    def _next_version(self) -> datetime:
        """updated_at 값. 같은 프로세스 안에서는 항상 증가."""
        with self._lock:
            now = datetime.now(timezone.utc)
            if now <= self._last_version:
                now = self._last_version + timedelta(microseconds=1)
            self._last_version = now
            return now

    def _insert(self, run: BacktestRun, is_deleted: int = 0) -> None:
        row = [
            run.run_id,
            run.created_at,
            run.status.value,
            run.progress,
            json.dumps(run.to_dict(), ensure_ascii=False),
            is_deleted,
            self._next_version(),
        ]
        try:
            self.client.insert(RUN_TABLE, [row], column_names=RUN_COLUMNS)
        except Exception as e:
            raise StoreError(f"Failed to save backtest run {run.run_id}: {e}") from e

    def _query(self, query: str, parameters: dict | None = None):
        try:
            return self.client.query(query, parameters=parameters or {})
        except Exception as e:
            raise StoreError(f"Run store query failed: {e}") from e

    def upsert(self, run: BacktestRun) -> None:
        self._insert(run)

    def get(self, run_id: str) -> BacktestRun | None:
        result = self._query(
            f"SELECT payload FROM {RUN_TABLE} FINAL "
            "WHERE run_id = %(run_id)s AND is_deleted = 0",
            {"run_id": run_id},
        )
        if not result.result_rows:
            return None
        return BacktestRun.from_dict(json.loads(result.result_rows[0][0]))

    def list_runs(self, offset: int = 0, limit: int = 10) -> tuple[list[BacktestRun], int]:
        count = self._query(f"SELECT COUNT(*) FROM {RUN_TABLE} FINAL WHERE is_deleted = 0")
        total = int(count.result_rows[0][0]) if count.result_rows else 0

        result = self._query(
            f"SELECT payload FROM {RUN_TABLE} FINAL WHERE is_deleted = 0 "
            "ORDER BY created_at DESC LIMIT %(limit)s OFFSET %(offset)s",
            {"limit": limit, "offset": offset},
        )
        runs = [BacktestRun.from_dict(json.loads(row[0])) for row in result.result_rows]
        return runs, total

    def delete(self, run_id: str) -> bool:
        run = self.get(run_id)
        if run is None:
            return False
        self._insert(run, is_deleted=1)
        logger.debug(f"실행 기록 삭제 표시 {run_id}")
        return True
