"""
캔들 데이터 공급자 추상 클래스 정의.

[ 역할 ]
    과거 OHLCV 캔들을 제공하는 인터페이스.
    데이터 소스(거래소 API, DB, 메모리 등)에 독립적으로 백테스트에 데이터 공급.

[ 구현체 ]
    - data/memory.py::InMemoryCandleProvider       (테스트/샘플 데이터)
    - data/yahoo_provider.py::YahooFinanceCandleProvider (yfinance, rate limit 적용)
    - data/clickhouse_provider.py::ClickHouseCandleProvider (수집된 캔들 조회)

[ 계약 ]
    - 반환 캔들은 timestamp 오름차순, 중복 없음
    - 부분 구간/빈 결과는 정상 결과 (예외 아님)
    - 네트워크/심볼 오류는 core/errors.py::FetchError

[ 호출하는 곳 ]
    - backtest/orchestrator.py::BacktestOrchestrator._process_pair()
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone

from signal_backtester.core.candle import Candle


def to_epoch_ms(value: datetime) -> int:
    """datetime → epoch ms. naive datetime은 UTC로 간주."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp() * 1000)


def from_epoch_ms(value: int) -> datetime:
    """epoch ms → UTC datetime."""
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


@dataclass
class FetchResult:
    """fetch_historical()의 반환값."""
    candles: list[Candle] = field(default_factory=list)
    actual_start: int | None = None   # 실제 첫 캔들 timestamp (ms)
    actual_end: int | None = None     # 실제 마지막 캔들 timestamp (ms)

    @classmethod
    def from_candles(cls, candles: list[Candle]) -> "FetchResult":
        """정렬 + 중복 제거 후 실제 구간을 채워 생성."""
        unique: dict[int, Candle] = {}
        for candle in candles:
            unique[candle.timestamp] = candle
        ordered = [unique[ts] for ts in sorted(unique)]
        if not ordered:
            return cls()
        return cls(
            candles=ordered,
            actual_start=ordered[0].timestamp,
            actual_end=ordered[-1].timestamp,
        )


class CandleProvider(ABC):
    """캔들 데이터 공급자 추상 클래스.

    모든 공급자 구현체는 이 클래스를 상속받아 fetch_historical()을 구현해야 한다.
    """

    @abstractmethod
    def fetch_historical(
        self,
        symbol: str,
        timeframe: str,
        start: datetime,
        end: datetime,
    ) -> FetchResult:
        """과거 캔들 조회.

        Args:
            symbol: 심볼 (예: 'BTC-USD', 'BTCUSDT')
            timeframe: 타임프레임 (예: '1h', '15m')
            start: 시작 시각
            end: 종료 시각

        Returns:
            FetchResult: 정렬/중복 제거된 캔들 + 실제 조회 구간

        Raises:
            FetchError: 공급자 측 오류
        """
        ...

    def close(self) -> None:
        """연결 자원 해제. 필요한 구현체만 오버라이드."""
