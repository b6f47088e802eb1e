"""
시그널 백테스트 실행 스크립트 (시스템 진입점).

[ 사용법 ]
    # 기본 실행 (config.yaml 설정, 샘플 데이터)
    python run_backtest.py

    # 심볼/타임프레임 오버라이드
    python run_backtest.py -s BTC-USD -s ETH-USD -t 1h -t 15m

    # 전방 분석 캔들 수 변경
    python run_backtest.py --lookforward 48

    # Yahoo Finance / ClickHouse 데이터 사용
    python run_backtest.py --source yahoo
    python run_backtest.py --source clickhouse --store clickhouse

    # 데이터 검증 리포트만 출력 (백테스트 미실행)
    python run_backtest.py --validate-only

    # 실행 기록을 JSON으로 저장
    python run_backtest.py --output results/run.json
"""

import argparse
import dataclasses
import json
import zlib
from pathlib import Path

import numpy as np
import pandas as pd

from signal_backtester.backtest.filters import signals_breakdown
from signal_backtester.backtest.orchestrator import BacktestOrchestrator
from signal_backtester.backtest.run import BacktestRun
from signal_backtester.core.candle import Candle, candles_from_frame, timeframe_to_ms
from signal_backtester.core.candle_provider import CandleProvider, to_epoch_ms
from signal_backtester.core.errors import ConfigValidationError
from signal_backtester.core.run_store import RunStore
from signal_backtester.data.memory import InMemoryCandleProvider, InMemoryRunStore
from signal_backtester.signals.detector import SignalDetectionEngine
from signal_backtester.utils.config import BacktestConfig, Config
from signal_backtester.utils.logger import setup_logger
from signal_backtester.utils.rate_limiter import RateLimiter
from signal_backtester.validation.completeness import DataCompletenessValidator


def generate_sample_candles(
    symbol: str,
    timeframe: str,
    start_ms: int,
    end_ms: int,
    initial_price: float = 100.0,
    volatility: float = 0.004,
) -> list[Candle]:
    """백테스트용 샘플 캔들 생성 (간격 누락 없음, 가끔 거래량 급증)."""
    rng = np.random.RandomState(zlib.crc32(f"{symbol}:{timeframe}".encode()))

    step = timeframe_to_ms(timeframe)
    first = start_ms + (-start_ms) % step
    timestamps = np.arange(first, end_ms + 1, step, dtype=np.int64)
    n = len(timestamps)
    if n == 0:
        return []

    closes = initial_price * np.cumprod(1 + rng.normal(0, volatility, n))
    opens = np.concatenate(([initial_price], closes[:-1])) * (1 + rng.normal(0, volatility / 10, n))
    highs = np.maximum(opens, closes) * (1 + np.abs(rng.normal(0, volatility / 4, n)))
    lows = np.minimum(opens, closes) * (1 - np.abs(rng.normal(0, volatility / 4, n)))
    volumes = rng.lognormal(10, 0.3, n)
    spikes = rng.random_sample(n) < 0.03
    volumes[spikes] *= rng.uniform(3, 8, spikes.sum())

    df = pd.DataFrame({
        "timestamp": timestamps,
        "open": opens,
        "high": highs,
        "low": lows,
        "close": closes,
        "volume": volumes,
    })
    return candles_from_frame(df)


def build_provider(config: Config, source: str) -> CandleProvider:
    """데이터 소스에 맞는 캔들 공급자 생성."""
    bt = config.backtest

    if source == "sample":
        print("샘플 데이터 생성 중...")
        provider = InMemoryCandleProvider()
        start_ms, end_ms = to_epoch_ms(bt.start_datetime), to_epoch_ms(bt.end_datetime)
        for symbol, timeframe in bt.pairs():
            candles = generate_sample_candles(symbol, timeframe, start_ms, end_ms)
            provider.load_candles(symbol, timeframe, candles)
            print(f"  {symbol} {timeframe}: {len(candles)}개 캔들")
        return provider

    if source == "yahoo":
        from signal_backtester.data.yahoo_provider import YahooFinanceCandleProvider

        limiter = RateLimiter(config.provider.max_requests, config.provider.window_seconds)
        return YahooFinanceCandleProvider(
            limiter,
            max_retries=config.provider.max_retries,
            retry_delay=config.provider.retry_delay,
        )

    if source == "clickhouse":
        from signal_backtester.data.clickhouse_provider import ClickHouseCandleProvider

        db = config.database
        return ClickHouseCandleProvider(db.host, db.port, db.database, db.user, db.password)

    raise ValueError(f"알 수 없는 데이터 소스: {source}")


def build_store(config: Config, store: str) -> RunStore:
    if store == "clickhouse":
        from signal_backtester.data.clickhouse_store import ClickHouseRunStore
        from signal_backtester.ingestion.clickhouse_schema import get_client, initialize_schema

        db = config.database
        client = get_client(db.host, db.port, db.database, db.user, db.password)
        initialize_schema(client)
        return ClickHouseRunStore(client=client)
    return InMemoryRunStore()


def apply_overrides(config: Config, args: argparse.Namespace) -> Config:
    """CLI 인자로 backtest 설정 덮어쓰기."""
    changes = {}
    if args.symbol:
        changes["symbols"] = tuple(args.symbol)
    if args.timeframe:
        changes["timeframes"] = tuple(args.timeframe)
    if args.lookforward is not None:
        changes["lookforward_candles"] = args.lookforward
    if changes:
        config.backtest = dataclasses.replace(config.backtest, **changes)
    return config


def validate_only(config: BacktestConfig, provider: CandleProvider) -> None:
    """조합별 데이터 검증 리포트 출력."""
    validator = DataCompletenessValidator()
    detector = SignalDetectionEngine(validator)
    requirements = validator.requirements(config)

    for symbol, timeframe in config.pairs():
        candles = provider.fetch_historical(symbol, timeframe, config.start_datetime, config.end_datetime).candles
        dataset_report = validator.validate_dataset(candles, requirements, symbol, timeframe)

        signal_reports = []
        if dataset_report.is_complete:
            index_by_timestamp = {c.timestamp: i for i, c in enumerate(candles)}
            for signal in detector.detect_signals(candles, symbol, timeframe, config):
                index = index_by_timestamp[signal.timestamp]
                signal_reports.append(validator.validate_signal_window(candles, index, requirements))

        print()
        print(validator.generate_validation_report(symbol, timeframe, dataset_report, signal_reports))


def print_result(run: BacktestRun) -> None:
    """실행 결과 출력."""
    print(f"\n[실행 {run.run_id}] 상태: {run.status.value} ({run.progress}%)")
    if run.error:
        print(f"오류: {run.error}")

    print(run.summary.summary())

    stats = run.processing_stats
    print(
        f"\n조합: 전체 {stats.total_combinations} / 완료 {stats.completed_combinations} "
        f"/ skip {stats.skipped_combinations} / 실패 {stats.failed_combinations}"
    )
    print(
        f"시그널: 탐지 {stats.total_signals_detected} / 분석 {stats.total_signals_processed} "
        f"/ 제외 {stats.total_signals_skipped}"
    )
    if stats.skip_reasons:
        print("\nSkip 사유:")
        for reason, count in sorted(stats.skip_reasons.items(), key=lambda item: -item[1]):
            print(f"  {count:>4}  {reason}")

    if run.signals:
        breakdown = signals_breakdown(run.signals, run.performances)
        for title, key in (("종류별", "by_type"), ("심볼별", "by_symbol"), ("타임프레임별", "by_timeframe")):
            print(f"\n{title} 시그널:")
            print(breakdown[key].to_string(index=False, float_format=lambda v: f"{v:.2f}"))
        print("\n종류별 성과:")
        print(breakdown["performance_by_type"].to_string(index=False, float_format=lambda v: f"{v:.2f}"))


def main():
    parser = argparse.ArgumentParser(description="캔들 패턴 + 거래량 시그널 백테스트 실행")
    parser.add_argument("--config", type=str, default="config.yaml", help="설정 파일 경로")
    parser.add_argument("--source", type=str, default=None, choices=["sample", "yahoo", "clickhouse"], help="데이터 소스")
    parser.add_argument("--store", type=str, default=None, choices=["memory", "clickhouse"], help="실행 기록 저장소")
    parser.add_argument("-s", "--symbol", action="append", default=[], help="심볼 (여러 번 지정 가능)")
    parser.add_argument("-t", "--timeframe", action="append", default=[], help="타임프레임 (여러 번 지정 가능)")
    parser.add_argument("--lookforward", type=int, default=None, help="전방 분석 캔들 수")
    parser.add_argument("--validate-only", action="store_true", help="데이터 검증 리포트만 출력")
    parser.add_argument("--output", type=str, default=None, help="실행 기록 JSON 저장 경로")
    args = parser.parse_args()

    # 설정 로드
    config_path = Path(args.config)
    if config_path.exists():
        config = Config.from_yaml(config_path)
    else:
        print(f"설정 파일 없음: {config_path}, 기본값 사용")
        config = Config()
    config = apply_overrides(config, args)

    setup_logger(level=config.log_level, log_dir=config.log_dir, area_levels=config.log_levels)

    try:
        config.backtest.validate()
    except ConfigValidationError as e:
        print("설정 오류:")
        for message in e.errors:
            print(f"  - {message}")
        return

    provider = build_provider(config, args.source or config.provider.source)
    try:
        if args.validate_only:
            validate_only(config.backtest, provider)
            return

        orchestrator = BacktestOrchestrator(provider, build_store(config, args.store or config.store))
        try:
            run = orchestrator.run(config.backtest)
        finally:
            orchestrator.shutdown()

        print_result(run)

        if args.output:
            output_path = Path(args.output)
            output_path.parent.mkdir(parents=True, exist_ok=True)
            with open(output_path, "w", encoding="utf-8") as f:
                json.dump(run.to_dict(), f, ensure_ascii=False, indent=2)
            print(f"\n실행 기록 저장: {output_path}")
    finally:
        provider.close()


if __name__ == "__main__":
    main()
