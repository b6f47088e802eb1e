"""
Integration tests for the backtest orchestrator with in-memory collaborators.
"""

import threading

import pytest

from signal_backtester.backtest.filters import SignalFilter
from signal_backtester.backtest.orchestrator import BacktestOrchestrator, NO_CANDLES_REASON, progress_percent
from signal_backtester.backtest.run import BacktestRun, RunStatus
from signal_backtester.core.errors import ConfigValidationError, FetchError, RunNotFoundError, StoreError
from signal_backtester.data.memory import InMemoryCandleProvider, InMemoryRunStore
from signal_backtester.signals.models import SignalType

from candle_factory import flat_series, make_primary_buy_series, small_config


class GatedProvider(InMemoryCandleProvider):
    """첫 조회에서 gate가 열릴 때까지 멈추는 공급자."""

    def __init__(self):
        super().__init__()
        self.entered = threading.Event()
        self.gate = threading.Event()

    def fetch_historical(self, symbol, timeframe, start, end):
        self.entered.set()
        self.gate.wait(timeout=5)
        return super().fetch_historical(symbol, timeframe, start, end)


class FlakyStore(InMemoryRunStore):
    """진행률이 기록되기 시작하면 저장에 실패하는 저장소."""

    def upsert(self, run: BacktestRun) -> None:
        if run.progress > 0:
            raise StoreError("store unavailable")
        super().upsert(run)


class StaleReadStore(InMemoryRunStore):
    """지정한 실행의 다음 get() 한 번만 오래된 기록을 돌려주는 저장소."""

    def __init__(self):
        super().__init__()
        self.stale: dict[str, BacktestRun] = {}

    def get(self, run_id: str) -> BacktestRun | None:
        if run_id in self.stale:
            return self.stale.pop(run_id)
        return super().get(run_id)


class TestBacktestRun:

    def setup_method(self):
        self.provider = InMemoryCandleProvider()
        self.provider.load_candles("BTCUSDT", "1h", make_primary_buy_series())
        self.provider.load_candles("ETHUSDT", "1h", flat_series(10))
        self.provider.set_error("SOLUSDT", "1h", FetchError("rate limited", "SOLUSDT", "1h"))
        self.store = InMemoryRunStore()
        self.orchestrator = BacktestOrchestrator(self.provider, self.store)

    def teardown_method(self):
        self.orchestrator.shutdown()

    def test_completed_run(self):
        run = self.orchestrator.run(small_config())

        assert run.status == RunStatus.COMPLETED
        assert run.progress == 100
        assert run.completed_at is not None
        assert len(run.signals) == 1
        assert run.signals[0].type == SignalType.PRIMARY_BUY
        assert [p.signal_id for p in run.performances] == [run.signals[0].signal_id]
        assert run.summary.total_signals == 1

        stored = self.orchestrator.get_result(run.run_id)
        assert stored.status == RunStatus.COMPLETED
        assert stored.signals == run.signals

    def test_pair_isolation(self):
        config = small_config(symbols=("BTCUSDT", "ETHUSDT", "SOLUSDT", "XRPUSDT"))

        run = self.orchestrator.run(config)

        stats = run.processing_stats
        assert run.status == RunStatus.COMPLETED
        assert stats.total_combinations == 4
        assert stats.completed_combinations == 1
        assert stats.skipped_combinations == 2
        assert stats.failed_combinations == 1
        assert stats.skip_reasons == {
            "Insufficient data: need 38, have 10": 1,
            NO_CANDLES_REASON: 1,
            "Processing error: rate limited": 1,
        }
        assert len(run.signals) == 1

    def test_pairs_fetched_sequentially(self):
        config = small_config(symbols=("BTCUSDT", "ETHUSDT"), timeframes=("1h", "15m"))
        self.orchestrator.run(config)
        assert self.provider.requests == [
            ("BTCUSDT", "1h"), ("BTCUSDT", "15m"), ("ETHUSDT", "1h"), ("ETHUSDT", "15m"),
        ]

    def test_invalid_config_never_starts(self):
        with pytest.raises(ConfigValidationError):
            self.orchestrator.start(small_config(symbols=()))
        assert self.orchestrator.list_runs() == ([], 0)

    def test_progress(self):
        run = self.orchestrator.run(small_config(symbols=("BTCUSDT", "ETHUSDT", "SOLUSDT")))
        progress = self.orchestrator.get_progress(run.run_id)
        assert progress.status == RunStatus.COMPLETED
        assert progress.progress == 100
        assert progress.error is None

    def test_list_runs_newest_first(self):
        first = self.orchestrator.run(small_config())
        second = self.orchestrator.run(small_config(symbols=("ETHUSDT",)))

        runs, total = self.orchestrator.list_runs()
        assert total == 2
        assert [r.run_id for r in runs] == [second.run_id, first.run_id]

        page, total = self.orchestrator.list_runs(offset=1, limit=1)
        assert [r.run_id for r in page] == [first.run_id]

    def test_delete_run(self):
        run = self.orchestrator.run(small_config())
        self.orchestrator.delete_run(run.run_id)

        with pytest.raises(RunNotFoundError):
            self.orchestrator.get_result(run.run_id)
        with pytest.raises(RunNotFoundError):
            self.orchestrator.delete_run(run.run_id)

    def test_filtered_signals(self):
        run = self.orchestrator.run(small_config(symbols=("BTCUSDT", "ETHUSDT")))

        signals, performances = self.orchestrator.get_filtered_signals(
            run.run_id, SignalFilter.create(symbols=["BTCUSDT"]),
        )
        assert len(signals) == len(performances) == 1

        signals, performances = self.orchestrator.get_filtered_signals(
            run.run_id, SignalFilter.create(signal_types=[SignalType.PRIMARY_SELL]),
        )
        assert signals == [] and performances == []

    def test_unknown_run(self):
        with pytest.raises(RunNotFoundError):
            self.orchestrator.get_progress("missing")


class TestCancellation:

    def test_cancel_between_pairs(self):
        provider = GatedProvider()
        provider.load_candles("BTCUSDT", "1h", make_primary_buy_series())
        orchestrator = BacktestOrchestrator(provider, InMemoryRunStore())
        try:
            run_id = orchestrator.start(small_config(symbols=("BTCUSDT", "ETHUSDT")))
            assert provider.entered.wait(timeout=5)

            assert orchestrator.cancel(run_id)
            provider.gate.set()
            run = orchestrator.wait(run_id, timeout=5)
        finally:
            orchestrator.shutdown()

        assert run.status == RunStatus.CANCELLED
        assert provider.requests == [("BTCUSDT", "1h")]
        assert orchestrator.get_result(run_id).status == RunStatus.CANCELLED

    def test_cancel_finished_run(self, provider, store):
        orchestrator = BacktestOrchestrator(provider, store)
        try:
            run = orchestrator.run(small_config())
            assert not orchestrator.cancel(run.run_id)
        finally:
            orchestrator.shutdown()

    def test_cancel_after_worker_finished_keeps_result(self, provider):
        store = StaleReadStore()
        orchestrator = BacktestOrchestrator(provider, store)
        try:
            run = orchestrator.run(small_config())
            store.stale[run.run_id] = BacktestRun(
                run_id=run.run_id, config=run.config, status=RunStatus.RUNNING,
            )

            assert not orchestrator.cancel(run.run_id)
        finally:
            orchestrator.shutdown()

        stored = store.get(run.run_id)
        assert stored.status == RunStatus.COMPLETED
        assert len(stored.signals) == 1
        assert stored.summary.total_signals == 1

    def test_cancel_orphaned_record(self, provider, store):
        orphan = BacktestRun(run_id="orphan", config=small_config(), status=RunStatus.RUNNING)
        store.upsert(orphan)
        orchestrator = BacktestOrchestrator(provider, store)
        try:
            assert orchestrator.cancel("orphan")
        finally:
            orchestrator.shutdown()
        assert store.get("orphan").status == RunStatus.CANCELLED


class TestStoreFailure:

    def test_store_failure_marks_run_failed(self, provider):
        orchestrator = BacktestOrchestrator(provider, FlakyStore())
        try:
            run = orchestrator.run(small_config())
        finally:
            orchestrator.shutdown()

        assert run.status == RunStatus.FAILED
        assert run.error == "store unavailable"
        assert run.completed_at is not None


class TestProgressPercent:

    @pytest.mark.parametrize("done, total, expected", [
        (1, 8, 13),
        (5, 8, 63),
        (1, 3, 33),
        (2, 3, 67),
        (4, 4, 100),
        (0, 0, 100),
    ])
    def test_halves_round_up(self, done, total, expected):
        assert progress_percent(done, total) == expected
