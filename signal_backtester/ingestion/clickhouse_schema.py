"""
ClickHouse 데이터베이스 스키마 정의 및 연결 관리

[ 테이블 ]
    candle_ohlcv   - (symbol, timeframe, timestamp) 캔들. timestamp는 epoch ms
    ingestion_log  - (symbol, timeframe)별 마지막 수집 기록
    backtest_runs  - 백테스트 실행 기록 (JSON payload, updated_at 기준 최신 행 유지)
"""
import logging
from datetime import datetime, timezone
from typing import Optional, Tuple

import clickhouse_connect
from clickhouse_connect.driver import Client

from signal_backtester.core.candle import Candle

logger = logging.getLogger("signal_backtester.data")

CANDLE_TABLE = "candle_ohlcv"
INGESTION_LOG_TABLE = "ingestion_log"
RUN_TABLE = "backtest_runs"


def get_client(
    host: str = "localhost",
    port: int = 8123,
    database: str = "default",
    user: str = "default",
    password: str = "password",
) -> Client:
    """
    ClickHouse 클라이언트 연결 생성

    Args:
        host: ClickHouse 호스트
        port: HTTP 포트 (기본값: 8123)
        database: 데이터베이스 이름
        user: 사용자 이름
        password: 비밀번호

    Returns:
        ClickHouse 클라이언트 객체
    """
    client = clickhouse_connect.get_client(
        host=host,
        port=port,
        database=database,
        username=user,
        password=password,
    )
    return client


def initialize_schema(client: Client) -> None:
    """
    필요한 테이블 생성 (이미 존재하면 무시)

    Args:
        client: ClickHouse 클라이언트
    """
    create_candle_table = f"""
    CREATE TABLE IF NOT EXISTS {CANDLE_TABLE} (
        symbol String,
        timeframe LowCardinality(String),
        timestamp UInt64,
        open Float64,
        high Float64,
        low Float64,
        close Float64,
        volume Float64,
        source String DEFAULT 'yahoo',
        ingestion_time DateTime DEFAULT now()
    )
    ENGINE = ReplacingMergeTree(ingestion_time)
    PARTITION BY (timeframe, toYYYYMM(toDateTime(intDiv(timestamp, 1000))))
    ORDER BY (symbol, timeframe, timestamp)
    SETTINGS index_granularity = 8192
    """

    create_log_table = f"""
    CREATE TABLE IF NOT EXISTS {INGESTION_LOG_TABLE} (
        symbol String,
        timeframe String,
        last_timestamp UInt64,
        last_ingestion DateTime,
        record_count UInt32,
        status String
    )
    ENGINE = ReplacingMergeTree(last_ingestion)
    ORDER BY (symbol, timeframe)
    """

    create_run_table = f"""
    CREATE TABLE IF NOT EXISTS {RUN_TABLE} (
        run_id String,
        created_at DateTime64(3, 'UTC'),
        status LowCardinality(String),
        progress UInt8,
        payload String,
        is_deleted UInt8 DEFAULT 0,
        updated_at DateTime64(6, 'UTC')
    )
    ENGINE = ReplacingMergeTree(updated_at)
    ORDER BY run_id
    """

    client.command(create_candle_table)
    client.command(create_log_table)
    client.command(create_run_table)
    logger.info("테이블 생성 완료 (또는 이미 존재)")


def verify_connection(client: Client) -> bool:
    """
    ClickHouse 연결 검증

    Args:
        client: ClickHouse 클라이언트

    Returns:
        연결 성공 시 True
    """
    try:
        result = client.command("SELECT 1")
        return result == 1
    except Exception as e:
        logger.warning(f"연결 실패: {e}")
        return False


def insert_candles(
    client: Client,
    symbol: str,
    timeframe: str,
    candles: list[Candle],
    source: str = "yahoo",
) -> int:
    """
    캔들 저장. 같은 (symbol, timeframe, timestamp)는 병합 시 최신 행만 남는다.

    Returns:
        저장한 행 수
    """
    if not candles:
        return 0

    rows = [
        [symbol, timeframe, c.timestamp, c.open, c.high, c.low, c.close, c.volume, source]
        for c in candles
    ]
    client.insert(
        CANDLE_TABLE,
        rows,
        column_names=["symbol", "timeframe", "timestamp", "open", "high", "low", "close", "volume", "source"],
    )
    return len(rows)


def log_ingestion(
    client: Client,
    symbol: str,
    timeframe: str,
    last_timestamp: int,
    record_count: int,
    status: str = "success",
) -> None:
    """수집 결과를 ingestion_log에 기록."""
    client.insert(
        INGESTION_LOG_TABLE,
        [[symbol, timeframe, last_timestamp, datetime.now(timezone.utc), record_count, status]],
        column_names=["symbol", "timeframe", "last_timestamp", "last_ingestion", "record_count", "status"],
    )


def get_symbols(client: Client, timeframe: Optional[str] = None) -> list[str]:
    """
    저장된 심볼 목록 조회

    Args:
        client: ClickHouse 클라이언트
        timeframe: 특정 타임프레임만 (None이면 전체)

    Returns:
        심볼 리스트
    """
    if timeframe:
        query = f"SELECT DISTINCT symbol FROM {CANDLE_TABLE} WHERE timeframe = %(timeframe)s ORDER BY symbol"
        result = client.query(query, parameters={"timeframe": timeframe})
    else:
        query = f"SELECT DISTINCT symbol FROM {CANDLE_TABLE} ORDER BY symbol"
        result = client.query(query)
    return [row[0] for row in result.result_rows]


def get_time_range(client: Client, symbol: str, timeframe: str) -> Optional[Tuple[int, int]]:
    """
    특정 (심볼, 타임프레임)의 저장 구간 조회

    Returns:
        (최소 timestamp, 최대 timestamp) 튜플 (epoch ms), 데이터가 없으면 None
    """
    query = f"""
        SELECT MIN(timestamp), MAX(timestamp), COUNT(*)
        FROM {CANDLE_TABLE}
        WHERE symbol = %(symbol)s AND timeframe = %(timeframe)s
    """
    result = client.query(query, parameters={"symbol": symbol, "timeframe": timeframe})

    if result.result_rows:
        min_ts, max_ts, count = result.result_rows[0]
        if count:
            return (int(min_ts), int(max_ts))

    return None


def get_record_count(client: Client, symbol: Optional[str] = None) -> int:
    """
    레코드 수 조회

    Args:
        client: ClickHouse 클라이언트
        symbol: 특정 심볼 (None이면 전체)

    Returns:
        레코드 수
    """
    if symbol:
        query = f"SELECT COUNT(*) FROM {CANDLE_TABLE} WHERE symbol = %(symbol)s"
        result = client.query(query, parameters={"symbol": symbol})
    else:
        query = f"SELECT COUNT(*) FROM {CANDLE_TABLE}"
        result = client.query(query)

    return result.result_rows[0][0] if result.result_rows else 0


def get_last_ingested_timestamp(client: Client, symbol: str, timeframe: str) -> Optional[int]:
    """
    마지막 수집 캔들 시각 조회 (ingestion_log에서)

    Returns:
        epoch ms, 없으면 None
    """
    query = f"""
        SELECT last_timestamp
        FROM {INGESTION_LOG_TABLE}
        WHERE symbol = %(symbol)s AND timeframe = %(timeframe)s
        ORDER BY last_ingestion DESC
        LIMIT 1
    """
    result = client.query(query, parameters={"symbol": symbol, "timeframe": timeframe})

    if result.result_rows:
        return int(result.result_rows[0][0])

    return None
