"""
ClickHouse 기반 CandleProvider 구현.

[ 역할 ]
    scripts/ingest_candles.py로 candle_ohlcv 테이블에 저장한 캔들을 조회하여
    백테스트에 제공. CandleProvider 인터페이스 구현체.

[ 의존성 ]
    - core/candle_provider.py::CandleProvider (추상 클래스)
    - ingestion/clickhouse_schema.py (ClickHouse 연결 및 스키마)

[ 호출하는 곳 ]
    - run_backtest.py (--source clickhouse 옵션 사용 시)
"""

from datetime import datetime

import pandas as pd
from clickhouse_connect.driver import Client

from signal_backtester.core.candle import CANDLE_COLUMNS, candles_from_frame
from signal_backtester.core.candle_provider import CandleProvider, FetchResult, to_epoch_ms
from signal_backtester.core.errors import FetchError
from signal_backtester.ingestion.clickhouse_schema import CANDLE_TABLE, get_client


class ClickHouseCandleProvider(CandleProvider):
    """ClickHouse 기반 캔들 공급자.

    사용 예:
        provider = ClickHouseCandleProvider('localhost', 8123, 'default', password='password')
        result = provider.fetch_historical('BTC-USD', '1h', start, end)
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
        """
        Args:
            host: ClickHouse 호스트
            port: HTTP 포트 (기본값: 8123)
            database: 데이터베이스 이름
            user: 사용자 이름
            password: 비밀번호
            client: 이미 연결된 클라이언트 (주어지면 위 접속 정보는 무시)
        """
        self.client: Client = client or get_client(host, port, database, user, password)

    def fetch_historical(
        self,
        symbol: str,
        timeframe: str,
        start: datetime,
        end: datetime,
    ) -> FetchResult:
        """저장된 캔들 조회.

        Raises:
            FetchError: 쿼리 실패
        """
        # FINAL: 중복 수집된 행은 최신 행만
        query = f"""
            SELECT timestamp, open, high, low, close, volume
            FROM {CANDLE_TABLE} FINAL
            WHERE symbol = %(symbol)s
              AND timeframe = %(timeframe)s
              AND timestamp >= %(start)s
              AND timestamp <= %(end)s
            ORDER BY timestamp ASC
        """

        try:
            result = self.client.query(
                query,
                parameters={
                    "symbol": symbol,
                    "timeframe": timeframe,
                    "start": to_epoch_ms(start),
                    "end": to_epoch_ms(end),
                },
            )
        except Exception as e:
            raise FetchError(f"ClickHouse query failed for {symbol} {timeframe}: {e}", symbol, timeframe) from e

        df = pd.DataFrame(result.result_rows, columns=CANDLE_COLUMNS)
        return FetchResult.from_candles(candles_from_frame(df))

    def close(self):
        """ClickHouse 연결 종료."""
        if hasattr(self.client, 'close'):
            self.client.close()
