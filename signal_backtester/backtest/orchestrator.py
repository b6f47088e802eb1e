"""
백테스트 오케스트레이터.

[ 역할 ]
    실행(run) 하나의 수명 주기를 관리한다.
    (symbol × timeframe) 조합마다 조회 → 검증 → 탐지 → 성과 분석을 순서대로 수행하고
    진행률/결과를 RunStore에 기록한다.

[ 상태 전이 ]
    start()  : 설정 검증 → PENDING 기록 저장 → 워커 제출
    워커     : RUNNING → 조합 루프 → COMPLETED
               저장소 오류 등 루프 밖으로 나온 예외 → FAILED (error 메시지 기록)
               cancel() 요청 → 다음 조합 시작 전에 확인 → CANCELLED

[ 실행 흐름 ] (_execute → _process_pair, 조합마다)
    1. provider.fetch_historical()로 설정 기간 캔들 조회
    2. 캔들 0개 → skip (실패 아님)
    3. validator.validate_dataset() 실패 → DataValidationError로 skip
    4. detector.detect_signals_with_stats()
    5. 시그널마다 timestamp로 인덱스를 찾고 구간 재검사 → analyzer.analyze()
    6. 결과와 상관없이 progress = 완료 조합 / 전체 조합 * 100 (0.5는 올림) 갱신 후 저장

    조합 처리 중 예외는 그 조합에서 끝난다 (skip 사유로 집계, 실행은 계속).
    StoreError만 실행 전체를 FAILED로 만든다.

[ 동시성 ]
    실행 1개 = 워커 스레드 1개. 조합은 순차 처리한다 (캔들 공급자가 rate limit을
    공유하므로). 실행 기록은 해당 워커만 갱신한다.

[ 의존성 ]
    - core/candle_provider.py::CandleProvider
    - core/run_store.py::RunStore
    - validation/completeness.py::DataCompletenessValidator
    - signals/detector.py::SignalDetectionEngine
    - backtest/performance.py::PerformanceAnalyzer
    - backtest/metrics.py::calculate_summary()

[ 호출하는 곳 ]
    - run_backtest.py
"""

import logging
import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass

from signal_backtester.backtest.filters import SignalFilter, filter_signals
from signal_backtester.backtest.metrics import calculate_summary
from signal_backtester.backtest.performance import PerformanceAnalyzer, SignalPerformance
from signal_backtester.backtest.run import BacktestRun, RunStatus, utc_now
from signal_backtester.core.candle_provider import CandleProvider
from signal_backtester.core.errors import (
    DataValidationError,
    InsufficientDataError,
    RunNotFoundError,
    SignalWindowRejected,
    StoreError,
)
from signal_backtester.core.run_store import RunStore
from signal_backtester.signals.detector import SignalDetectionEngine
from signal_backtester.signals.models import SignalDetection
from signal_backtester.utils.config import BacktestConfig
from signal_backtester.validation.completeness import DataCompletenessValidator, DataRequirements

logger = logging.getLogger("signal_backtester.backtest")

NO_CANDLES_REASON = "No candle data returned from provider"


def progress_percent(done: int, total: int) -> int:
    """완료 비율(%)을 정수로. 0.5는 올림."""
    if total <= 0:
        return 100
    return int(done * 100 / total + 0.5)


@dataclass(frozen=True)
class RunProgress:
    run_id: str
    status: RunStatus
    progress: int
    error: str | None = None


class BacktestOrchestrator:
    """백테스트 실행 관리자.

    사용법:
        orchestrator = BacktestOrchestrator(provider, InMemoryRunStore())
        run_id = orchestrator.start(config)
        run = orchestrator.wait(run_id)
        print(run.summary.summary())
    """

    def __init__(
        self,
        provider: CandleProvider,
        store: RunStore,
        validator: DataCompletenessValidator | None = None,
        detector: SignalDetectionEngine | None = None,
        analyzer: PerformanceAnalyzer | None = None,
        max_workers: int = 4,   # 동시에 진행할 수 있는 실행 수
    ):
        self.provider = provider
        self.store = store
        self.validator = validator or DataCompletenessValidator()
        self.detector = detector or SignalDetectionEngine(self.validator)
        self.analyzer = analyzer or PerformanceAnalyzer()

        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="backtest")
        self._futures: dict[str, Future] = {}
        self._cancel_events: dict[str, threading.Event] = {}
        self._lock = threading.Lock()

    # ─── 실행 제어 ───────────────────────────────────────────────────────

    def start(self, config: BacktestConfig) -> str:
        """설정 검증 후 실행을 시작하고 run_id 반환.

        Raises:
            ConfigValidationError: 설정 위반 (실행은 생성되지 않음)
            StoreError: 초기 기록 저장 실패
        """
        config.validate()

        run = BacktestRun(run_id=uuid.uuid4().hex, config=config)
        run.processing_stats.total_combinations = len(config.pairs())
        self.store.upsert(run)

        cancel_event = threading.Event()
        with self._lock:
            self._cancel_events[run.run_id] = cancel_event
            self._futures[run.run_id] = self._executor.submit(self._execute, run, cancel_event)

        logger.info(
            f"백테스트 시작 {run.run_id}: 심볼 {len(config.symbols)}개 × "
            f"타임프레임 {len(config.timeframes)}개"
        )
        return run.run_id

    def run(self, config: BacktestConfig) -> BacktestRun:
        """start() + wait(). 최종 실행 기록 반환."""
        return self.wait(self.start(config))

    def wait(self, run_id: str, timeout: float | None = None) -> BacktestRun:
        """실행 종료까지 대기.

        이 오케스트레이터가 시작한 실행이면 워커가 마지막으로 가진 기록을 반환하므로
        저장소가 내려가 FAILED를 저장하지 못한 경우에도 결과를 확인할 수 있다.
        """
        with self._lock:
            future = self._futures.get(run_id)
        if future is None:
            return self.get_result(run_id)
        return future.result(timeout=timeout)

    def cancel(self, run_id: str) -> bool:
        """PENDING/RUNNING 실행 취소 요청. 이미 끝난 실행이면 False.

        워커가 살아 있으면 다음 조합 시작 전에 CANCELLED로 전이한다.
        """
        run = self.get_result(run_id)
        if not run.status.is_active:
            return False

        with self._lock:
            cancel_event = self._cancel_events.get(run_id)
            future = self._futures.get(run_id)

        if future is not None:
            if not future.done():
                cancel_event.set()
                logger.info(f"취소 요청 {run_id}")
                return True
            # 조회 직후 워커가 끝난 경우: 최종 기록을 덮어쓰지 않는다
            run = self.get_result(run_id)
            if not run.status.is_active:
                return False

        # 워커가 없거나 최종 상태를 저장하지 못한 기록
        run.status = RunStatus.CANCELLED
        run.completed_at = utc_now()
        self.store.upsert(run)
        logger.info(f"실행 취소 {run_id}")
        return True

    def shutdown(self, wait: bool = True) -> None:
        """워커 풀 종료. 진행 중인 실행에는 취소를 요청한다."""
        with self._lock:
            events = list(self._cancel_events.values())
        if not wait:
            for event in events:
                event.set()
        self._executor.shutdown(wait=wait)

    # ─── 조회 ────────────────────────────────────────────────────────────

    def get_result(self, run_id: str) -> BacktestRun:
        run = self.store.get(run_id)
        if run is None:
            raise RunNotFoundError(f"Backtest run not found: {run_id}")
        return run

    def get_progress(self, run_id: str) -> RunProgress:
        run = self.get_result(run_id)
        return RunProgress(run_id=run.run_id, status=run.status, progress=run.progress, error=run.error)

    def list_runs(self, offset: int = 0, limit: int = 10) -> tuple[list[BacktestRun], int]:
        """최신순 실행 목록과 전체 개수."""
        return self.store.list_runs(offset=offset, limit=limit)

    def delete_run(self, run_id: str) -> None:
        """실행 기록 삭제. 진행 중이면 취소 후 워커 종료를 기다린 뒤 삭제한다."""
        with self._lock:
            cancel_event = self._cancel_events.pop(run_id, None)
            future = self._futures.pop(run_id, None)
        if cancel_event is not None and future is not None:
            cancel_event.set()
            future.result()

        if not self.store.delete(run_id):
            raise RunNotFoundError(f"Backtest run not found: {run_id}")
        logger.info(f"실행 삭제 {run_id}")

    def get_filtered_signals(
        self,
        run_id: str,
        filters: SignalFilter,
    ) -> tuple[list[SignalDetection], list[SignalPerformance]]:
        run = self.get_result(run_id)
        return filter_signals(run.signals, run.performances, filters)

    # ─── 워커 ────────────────────────────────────────────────────────────

    def _execute(self, run: BacktestRun, cancel_event: threading.Event) -> BacktestRun:
        """워커 스레드 본체. 예외를 밖으로 내보내지 않고 최종 상태를 기록한다."""
        config = run.config
        pairs = config.pairs()
        requirements = self.validator.requirements(config)

        try:
            run.status = RunStatus.RUNNING
            self.store.upsert(run)

            for done, (symbol, timeframe) in enumerate(pairs, start=1):
                if cancel_event.is_set():
                    return self._finish_cancelled(run)

                self._process_pair(run, symbol, timeframe, requirements)
                run.progress = progress_percent(done, len(pairs))
                self.store.upsert(run)

            if cancel_event.is_set():
                return self._finish_cancelled(run)

            run.summary = calculate_summary(run.performances)
            run.status = RunStatus.COMPLETED
            run.progress = 100
            run.completed_at = utc_now()
            self.store.upsert(run)

            stats = run.processing_stats
            logger.info(
                f"백테스트 완료 {run.run_id}: 시그널 {len(run.signals)}개, "
                f"조합 완료 {stats.completed_combinations} / skip {stats.skipped_combinations} "
                f"/ 실패 {stats.failed_combinations}"
            )
        except Exception as e:
            logger.exception(f"백테스트 실패 {run.run_id}: {e}")
            self._finish_failed(run, str(e))
        return run

    def _finish_cancelled(self, run: BacktestRun) -> BacktestRun:
        run.status = RunStatus.CANCELLED
        run.completed_at = utc_now()
        self.store.upsert(run)
        logger.info(f"백테스트 취소됨 {run.run_id} (진행률 {run.progress}%)")
        return run

    def _finish_failed(self, run: BacktestRun, message: str) -> None:
        run.status = RunStatus.FAILED
        run.error = message
        run.completed_at = utc_now()
        try:
            self.store.upsert(run)
        except StoreError as e:
            logger.error(f"FAILED 상태 저장 실패 {run.run_id}: {e}")

    def _process_pair(
        self,
        run: BacktestRun,
        symbol: str,
        timeframe: str,
        requirements: DataRequirements,
    ) -> None:
        """조합 1개 처리. 결과는 run의 누적 목록/통계에 반영."""
        config = run.config
        stats = run.processing_stats

        try:
            fetched = self.provider.fetch_historical(
                symbol, timeframe, config.start_datetime, config.end_datetime
            )
            candles = fetched.candles
            if not candles:
                raise InsufficientDataError(NO_CANDLES_REASON)

            report = self.validator.validate_dataset(candles, requirements, symbol, timeframe)
            if not report.is_complete:
                raise DataValidationError.from_report(report)

            detection = self.detector.detect_signals_with_stats(candles, symbol, timeframe, config)
            stats.total_signals_detected += detection.stats.matched
            stats.total_signals_skipped += detection.stats.rejected

            index_by_timestamp = {c.timestamp: i for i, c in enumerate(candles)}
            accepted = 0
            for signal in detection.signals:
                try:
                    index = self._signal_index(signal, index_by_timestamp, candles, requirements)
                except SignalWindowRejected as e:
                    stats.total_signals_skipped += 1
                    logger.debug(f"[{symbol} {timeframe}] 시그널 제외 {signal.signal_id}: {e}")
                    continue

                run.signals.append(signal)
                run.performances.append(self.analyzer.analyze(signal, candles, index, config))
                stats.total_signals_processed += 1
                accepted += 1

            stats.completed_combinations += 1
            logger.info(f"[{symbol} {timeframe}] 처리 완료: 캔들 {len(candles)}개, 시그널 {accepted}개")

        except DataValidationError as e:
            stats.skipped_combinations += 1
            stats.add_skip_reason(str(e))
            logger.info(f"[{symbol} {timeframe}] skip: {e}")
        except StoreError:
            raise
        except Exception as e:
            stats.failed_combinations += 1
            stats.add_skip_reason(f"Processing error: {e}")
            logger.error(f"[{symbol} {timeframe}] 처리 오류: {e}")

    def _signal_index(self, signal, index_by_timestamp, candles, requirements) -> int:
        """시그널 캔들 인덱스. 찾지 못하거나 구간이 불완전하면 SignalWindowRejected."""
        index = index_by_timestamp.get(signal.timestamp)
        if index is None:
            raise SignalWindowRejected(f"Signal candle not found at {signal.timestamp}")

        window = self.validator.validate_signal_window(candles, index, requirements)
        if not window.is_complete:
            raise SignalWindowRejected(window.skip_reason)
        return index
