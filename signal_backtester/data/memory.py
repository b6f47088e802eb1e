"""
메모리 기반 캔들 공급자 / 실행 저장소 구현.

[ 역할 ]
    외부 거래소나 DB 없이 백테스트를 돌리기 위한 구현체.

[ 포함 클래스 ]
    InMemoryCandleProvider - core/candle_provider.py::CandleProvider 구현체
                             미리 적재한 캔들을 기간으로 잘라 제공
    InMemoryRunStore       - core/run_store.py::RunStore 구현체
                             기록을 dict 스냅샷으로 보관 (호출자와 객체 공유 없음)

[ 호출하는 곳 ]
    - run_backtest.py (--source sample, --store memory)
    - 단위 테스트
"""

import threading
from datetime import datetime

from signal_backtester.backtest.run import BacktestRun
from signal_backtester.core.candle import Candle
from signal_backtester.core.candle_provider import CandleProvider, FetchResult, to_epoch_ms
from signal_backtester.core.errors import FetchError
from signal_backtester.core.run_store import RunStore


# ─── 메모리 캔들 공급자 ──────────────────────────────────────────────────────

class InMemoryCandleProvider(CandleProvider):
    """미리 적재한 캔들을 제공하는 공급자.

    사용법:
        provider = InMemoryCandleProvider()
        provider.load_candles("BTCUSDT", "1h", candles)
        result = provider.fetch_historical("BTCUSDT", "1h", start, end)
    """

    def __init__(self):
        self._data: dict[tuple[str, str], list[Candle]] = {}
        self._errors: dict[tuple[str, str], Exception] = {}
        self.requests: list[tuple[str, str]] = []   # 조회 요청 기록 (순서 확인용)

    def load_candles(self, symbol: str, timeframe: str, candles: list[Candle]) -> None:
        """캔들 적재. 정렬/중복 제거는 조회 시 수행."""
        self._data[(symbol, timeframe)] = list(candles)

    def set_error(self, symbol: str, timeframe: str, error: Exception) -> None:
        """해당 조합 조회 시 발생시킬 예외 등록."""
        self._errors[(symbol, timeframe)] = error

    def fetch_historical(
        self,
        symbol: str,
        timeframe: str,
        start: datetime,
        end: datetime,
    ) -> FetchResult:
        key = (symbol, timeframe)
        self.requests.append(key)

        if key in self._errors:
            error = self._errors[key]
            if isinstance(error, FetchError):
                raise error
            raise FetchError(str(error), symbol, timeframe) from error

        start_ms = to_epoch_ms(start)
        end_ms = to_epoch_ms(end)
        candles = [c for c in self._data.get(key, []) if start_ms <= c.timestamp <= end_ms]
        return FetchResult.from_candles(candles)


# ─── 메모리 실행 저장소 ──────────────────────────────────────────────────────

class InMemoryRunStore(RunStore):
    """dict 기반 실행 저장소. 스레드 안전."""

    def __init__(self):
        self._records: dict[str, dict] = {}
        self._lock = threading.Lock()

    def upsert(self, run: BacktestRun) -> None:
        snapshot = run.to_dict()
        with self._lock:
            self._records[run.run_id] = snapshot

    def get(self, run_id: str) -> BacktestRun | None:
        with self._lock:
            snapshot = self._records.get(run_id)
        return BacktestRun.from_dict(snapshot) if snapshot else None

    def list_runs(self, offset: int = 0, limit: int = 10) -> tuple[list[BacktestRun], int]:
        with self._lock:
            snapshots = list(self._records.values())
        runs = sorted(
            (BacktestRun.from_dict(s) for s in snapshots),
            key=lambda r: r.created_at,
            reverse=True,
        )
        return runs[offset:offset + limit], len(runs)

    def delete(self, run_id: str) -> bool:
        with self._lock:
            return self._records.pop(run_id, None) is not None
