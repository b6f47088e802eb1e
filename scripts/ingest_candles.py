#!/usr/bin/env python3
"""
Yahoo Finance 캔들을 ClickHouse로 수집하는 스크립트

    python scripts/ingest_candles.py --symbols BTC-USD,ETH-USD --timeframes 1h,15m --init-schema
    python scripts/ingest_candles.py --symbols BTC-USD --timeframes 1h --incremental
    python scripts/ingest_candles.py --verify
    python scripts/ingest_candles.py --list --timeframes 1h,15m
"""
import argparse
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
import logging

# 프로젝트 루트를 sys.path에 추가
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from signal_backtester.core.candle_provider import from_epoch_ms
from signal_backtester.core.errors import FetchError
from signal_backtester.data.yahoo_provider import YahooFinanceCandleProvider
from signal_backtester.ingestion.clickhouse_schema import (
    get_client,
    get_last_ingested_timestamp,
    get_record_count,
    get_symbols,
    get_time_range,
    initialize_schema,
    insert_candles,
    log_ingestion,
    verify_connection,
)
from signal_backtester.utils.rate_limiter import RateLimiter

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def ingest_pair(client, provider, symbol: str, timeframe: str, start: datetime, end: datetime) -> bool:
    """
    (심볼, 타임프레임) 하나의 캔들을 수집하고 ClickHouse에 저장

    Returns:
        성공 시 True, 실패 시 False
    """
    logger.info(f"Starting ingestion for {symbol} {timeframe} ({start} to {end})")

    try:
        result = provider.fetch_historical(symbol, timeframe, start, end)
    except FetchError as e:
        logger.error(f"Error fetching {symbol} {timeframe}: {e}")
        log_ingestion(client, symbol, timeframe, 0, 0, 'failed')
        return False

    if not result.candles:
        logger.warning(f"No data fetched for {symbol} {timeframe}")
        log_ingestion(client, symbol, timeframe, 0, 0, 'failed')
        return False

    record_count = insert_candles(client, symbol, timeframe, result.candles, source='yahoo')
    log_ingestion(client, symbol, timeframe, result.actual_end, record_count, 'success')

    logger.info(f"Successfully ingested {record_count} candles for {symbol} {timeframe}")
    return True


def list_inventory(client, timeframes: list[str]) -> list[tuple[str, str, int, int, int]]:
    """
    저장된 캔들 현황 조회 및 출력

    Returns:
        (심볼, 타임프레임, 시작 ms, 끝 ms, 심볼 전체 레코드 수) 목록
    """
    inventory = []
    for timeframe in timeframes:
        for symbol in get_symbols(client, timeframe):
            time_range = get_time_range(client, symbol, timeframe)
            if time_range is None:
                continue
            start_ms, end_ms = time_range
            inventory.append((symbol, timeframe, start_ms, end_ms, get_record_count(client, symbol)))

    if not inventory:
        logger.info("No candles stored")
    for symbol, timeframe, start_ms, end_ms, count in inventory:
        logger.info(
            f"  {symbol:<10} {timeframe:<4} {from_epoch_ms(start_ms)} ~ {from_epoch_ms(end_ms)} "
            f"({count} rows for symbol)"
        )
    return inventory


def main():
    parser = argparse.ArgumentParser(description='Ingest candles from Yahoo Finance to ClickHouse')

    parser.add_argument('--symbols', type=str, default='', help='Comma-separated symbols (e.g., "BTC-USD,ETH-USD")')
    parser.add_argument('--timeframes', type=str, default='1h', help='Comma-separated timeframes (e.g., "1h,15m")')
    parser.add_argument('--days', type=int, default=60, help='Days to fetch back from now (default: 60)')
    parser.add_argument('--incremental', action='store_true', help='Start from the last ingested candle')

    # ClickHouse 연결 정보
    parser.add_argument('--host', type=str, default='localhost', help='ClickHouse host')
    parser.add_argument('--port', type=int, default=8123, help='ClickHouse HTTP port')
    parser.add_argument('--database', type=str, default='default', help='ClickHouse database')
    parser.add_argument('--user', type=str, default='default', help='ClickHouse user')
    parser.add_argument('--password', type=str, default='password', help='ClickHouse password')

    # 요청 제어
    parser.add_argument('--max-requests', type=int, default=1190, help='Requests allowed per rate-limit window')
    parser.add_argument('--window-seconds', type=float, default=60.0, help='Rate-limit window length')

    parser.add_argument('--init-schema', action='store_true', help='Initialize schema before ingestion')
    parser.add_argument('--verify', action='store_true', help='Only check the ClickHouse connection')
    parser.add_argument('--list', action='store_true', help='Only list stored symbols and time ranges')

    args = parser.parse_args()
    if not (args.symbols or args.verify or args.list):
        parser.error('--symbols is required unless --verify or --list is given')

    symbols = [s.strip() for s in args.symbols.split(',') if s.strip()]
    timeframes = [t.strip() for t in args.timeframes.split(',') if t.strip()]
    end = datetime.now(timezone.utc)
    default_start = end - timedelta(days=args.days)

    logger.info(f"Ingestion parameters:")
    logger.info(f"  Symbols: {symbols}")
    logger.info(f"  Timeframes: {timeframes}")
    logger.info(f"  ClickHouse: {args.host}:{args.port}/{args.database}")

    try:
        client = get_client(
            host=args.host,
            port=args.port,
            database=args.database,
            user=args.user,
            password=args.password
        )
        if not verify_connection(client):
            logger.error("ClickHouse connection check failed")
            sys.exit(1)
        logger.info("Connected to ClickHouse")
        if args.verify:
            sys.exit(0)

        if args.list:
            list_inventory(client, timeframes)
            sys.exit(0)

        if args.init_schema:
            initialize_schema(client)

        provider = YahooFinanceCandleProvider(RateLimiter(args.max_requests, args.window_seconds))

        success_count = 0
        fail_count = 0
        for symbol in symbols:
            for timeframe in timeframes:
                start = default_start
                if args.incremental:
                    last = get_last_ingested_timestamp(client, symbol, timeframe)
                    if last:
                        start = from_epoch_ms(last)

                if ingest_pair(client, provider, symbol, timeframe, start, end):
                    success_count += 1
                else:
                    fail_count += 1

        total = len(symbols) * len(timeframes)
        logger.info("=" * 60)
        logger.info(f"Ingestion completed:")
        logger.info(f"  Success: {success_count}/{total}")
        logger.info(f"  Failed: {fail_count}/{total}")

        sys.exit(0 if fail_count == 0 else 1)

    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
