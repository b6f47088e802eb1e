"""
Yahoo Finance 캔들 공급자.

[ 역할 ]
    yfinance로 과거 캔들을 조회하여 Candle 리스트로 변환.
    CandleProvider 인터페이스 구현체.

[ 요청 제어 ]
    - 요청 직전마다 주입받은 RateLimiter.acquire() (공급자끼리 limiter 공유 가능)
    - 실패 시 retry_delay, retry_delay*2, retry_delay*4 ... 간격으로 max_retries회 재시도
    - 재시도까지 모두 실패하면 FetchError

[ 타임프레임 ]
    yfinance 지원 interval로 변환 (1h → 60m). 지원하지 않는 타임프레임(4h 등)은 FetchError.

[ 호출하는 곳 ]
    - run_backtest.py (--source yahoo)
    - scripts/ingest_candles.py (ClickHouse 적재용 수집)
"""

import logging
import time
from datetime import datetime
from typing import Callable

import pandas as pd
import yfinance as yf

from signal_backtester.core.candle import CANDLE_COLUMNS, candles_from_frame
from signal_backtester.core.candle_provider import CandleProvider, FetchResult, to_epoch_ms
from signal_backtester.core.errors import FetchError
from signal_backtester.utils.rate_limiter import RateLimiter

logger = logging.getLogger("signal_backtester.data")

# 타임프레임 → yfinance interval
YAHOO_INTERVALS: dict[str, str] = {
    "1m": "1m",
    "5m": "5m",
    "15m": "15m",
    "30m": "30m",
    "1h": "60m",
    "1d": "1d",
}

_EPOCH = pd.Timestamp("1970-01-01", tz="UTC")


def history_to_frame(df: pd.DataFrame) -> pd.DataFrame:
    """yfinance history() 결과 → (timestamp, open, high, low, close, volume) DataFrame."""
    if df is None or df.empty:
        return pd.DataFrame(columns=CANDLE_COLUMNS)

    index = pd.to_datetime(df.index, utc=True)
    frame = pd.DataFrame({
        "timestamp": (index - _EPOCH) // pd.Timedelta(milliseconds=1),
        "open": df["Open"].to_numpy(),
        "high": df["High"].to_numpy(),
        "low": df["Low"].to_numpy(),
        "close": df["Close"].to_numpy(),
        "volume": df["Volume"].to_numpy(),
    })
    return frame.dropna(subset=["open", "high", "low", "close"])


class YahooFinanceCandleProvider(CandleProvider):
    """yfinance 기반 캔들 공급자.

    사용 예:
        limiter = RateLimiter(max_requests=1190, window_seconds=60)
        provider = YahooFinanceCandleProvider(limiter)
        result = provider.fetch_historical('BTC-USD', '1h', start, end)
    """

    def __init__(
        self,
        rate_limiter: RateLimiter | None = None,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.rate_limiter = rate_limiter or RateLimiter(max_requests=1190, window_seconds=60)
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._sleep = sleep

    def fetch_historical(
        self,
        symbol: str,
        timeframe: str,
        start: datetime,
        end: datetime,
    ) -> FetchResult:
        interval = YAHOO_INTERVALS.get(timeframe)
        if interval is None:
            raise FetchError(f"Timeframe not supported by Yahoo Finance: {timeframe}", symbol, timeframe)

        df = self._download(symbol, timeframe, interval, start, end)
        candles = candles_from_frame(history_to_frame(df))

        start_ms, end_ms = to_epoch_ms(start), to_epoch_ms(end)
        candles = [c for c in candles if start_ms <= c.timestamp <= end_ms]
        if not candles:
            logger.warning(f"No data found for {symbol} {timeframe}")
        return FetchResult.from_candles(candles)

    def _download(
        self,
        symbol: str,
        timeframe: str,
        interval: str,
        start: datetime,
        end: datetime,
    ) -> pd.DataFrame:
        attempts = self.max_retries + 1
        for attempt in range(attempts):
            self.rate_limiter.acquire()
            try:
                logger.info(f"Fetching {symbol} {timeframe} from {start} to {end} (attempt {attempt + 1}/{attempts})")
                return yf.Ticker(symbol).history(
                    start=start,
                    end=end,
                    interval=interval,
                    auto_adjust=False,
                    actions=False,
                    raise_errors=True,
                )
            except Exception as e:
                logger.error(f"Error fetching {symbol} {timeframe} (attempt {attempt + 1}/{attempts}): {e}")
                if attempt == attempts - 1:
                    raise FetchError(
                        f"Failed to fetch {symbol} {timeframe} after {attempts} attempts: {e}",
                        symbol,
                        timeframe,
                    ) from e
                delay = self.retry_delay * (2 ** attempt)
                logger.info(f"Retrying in {delay:.1f} seconds...")
                self._sleep(delay)

        raise FetchError(f"Failed to fetch {symbol} {timeframe}", symbol, timeframe)
