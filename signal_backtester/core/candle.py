"""
캔들(OHLCV) 데이터 타입 및 무결성 검사.

[ 역할 ]
    하나의 봉(Candle)을 표현하는 불변 레코드와, 봉 단위 무결성 규칙을 정의.
    검증기/탐지기/성과분석기가 모두 이 규칙을 공유한다.

[ 캔들 불변 조건 ]
    - 모든 가격 > 0
    - high >= low, high >= max(open, close), low <= min(open, close)
    - volume >= 0
    - timestamp > 0 (ms), 시리즈 내에서 타임프레임 간격으로 증가

[ 호출하는 곳 ]
    - core/candle_provider.py (공급자가 Candle 리스트를 반환)
    - validation/completeness.py (zero-tolerance 검사)
    - signals/detector.py, backtest/performance.py
"""

import math
from dataclasses import asdict, dataclass
from typing import Any, Iterable

import pandas as pd

# 타임프레임 문자열 → 밀리초
TIMEFRAME_MS: dict[str, int] = {
    "1m": 60 * 1000,
    "3m": 3 * 60 * 1000,
    "5m": 5 * 60 * 1000,
    "15m": 15 * 60 * 1000,
    "30m": 30 * 60 * 1000,
    "1h": 60 * 60 * 1000,
    "2h": 2 * 60 * 60 * 1000,
    "4h": 4 * 60 * 60 * 1000,
    "6h": 6 * 60 * 60 * 1000,
    "8h": 8 * 60 * 60 * 1000,
    "12h": 12 * 60 * 60 * 1000,
    "1d": 24 * 60 * 60 * 1000,
}

CANDLE_COLUMNS = ["timestamp", "open", "high", "low", "close", "volume"]

# 고가-저가 폭이 중간가의 50%를 넘으면 이상치로 본다
MAX_RANGE_TO_MID_RATIO = 0.5


def timeframe_to_ms(timeframe: str) -> int:
    """타임프레임 문자열을 밀리초로 변환. 알 수 없는 값은 ValueError."""
    try:
        return TIMEFRAME_MS[timeframe]
    except KeyError:
        available = ", ".join(TIMEFRAME_MS)
        raise ValueError(f"Unknown timeframe '{timeframe}'. Available: {available}") from None


@dataclass(frozen=True)
class Candle:
    """단일 봉 데이터. 공급자가 생성하며 이후 변경되지 않는다."""
    timestamp: int    # 봉 시작 시각 (epoch ms)
    open: float
    high: float
    low: float
    close: float
    volume: float

    @property
    def is_green(self) -> bool:
        return self.close > self.open

    @property
    def is_red(self) -> bool:
        return self.close < self.open

    @property
    def body_ratio(self) -> float:
        """몸통 비율 = |close - open| / (high - low). 폭이 0이면 0."""
        total_range = self.high - self.low
        if total_range <= 0:
            return 0.0
        return abs(self.close - self.open) / total_range

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Candle":
        return cls(
            timestamp=int(data["timestamp"]),
            open=float(data["open"]),
            high=float(data["high"]),
            low=float(data["low"]),
            close=float(data["close"]),
            volume=float(data["volume"]),
        )


def is_valid_candle(candle: Candle | None) -> bool:
    """캔들 불변 조건 + 이상치 검사. 하나라도 어기면 False."""
    if candle is None:
        return False

    values = (candle.open, candle.high, candle.low, candle.close, candle.volume, candle.timestamp)
    try:
        if any(v is None or not math.isfinite(float(v)) for v in values):
            return False
    except (TypeError, ValueError):
        return False

    if candle.open <= 0 or candle.high <= 0 or candle.low <= 0 or candle.close <= 0:
        return False
    if candle.volume < 0:
        return False
    if candle.high < candle.low:
        return False
    if candle.high < max(candle.open, candle.close):
        return False
    if candle.low > min(candle.open, candle.close):
        return False
    if candle.timestamp <= 0:
        return False

    mid_price = (candle.high + candle.low) / 2
    if candle.high - candle.low > mid_price * MAX_RANGE_TO_MID_RATIO:
        return False

    return True


def is_valid_forward_candle(candle: Candle | None) -> bool:
    """성과 분석용 가격 검사. 거래량/타임스탬프는 보지 않는다."""
    if candle is None:
        return False
    prices = (candle.open, candle.high, candle.low, candle.close)
    if not all(isinstance(p, (int, float)) and math.isfinite(p) and p > 0 for p in prices):
        return False
    return candle.high >= candle.low


def find_invalid_indices(candles: Iterable[Candle | None]) -> list[int]:
    """불변 조건을 어긴 캔들의 인덱스 목록."""
    return [i for i, c in enumerate(candles) if not is_valid_candle(c)]


def candles_from_frame(df: pd.DataFrame) -> list[Candle]:
    """DataFrame(timestamp, open, high, low, close, volume) → Candle 리스트.

    timestamp 기준 오름차순 정렬 + 중복 제거 후 변환한다.
    """
    if df is None or df.empty:
        return []

    missing = [c for c in CANDLE_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"Candle frame must contain {CANDLE_COLUMNS} (missing: {missing})")

    frame = (
        df[CANDLE_COLUMNS]
        .drop_duplicates(subset="timestamp", keep="last")
        .sort_values("timestamp")
        .reset_index(drop=True)
    )
    return [
        Candle(
            timestamp=int(row.timestamp),
            open=float(row.open),
            high=float(row.high),
            low=float(row.low),
            close=float(row.close),
            volume=float(row.volume),
        )
        for row in frame.itertuples(index=False)
    ]


def candles_to_frame(candles: list[Candle]) -> pd.DataFrame:
    """Candle 리스트 → DataFrame."""
    return pd.DataFrame([c.to_dict() for c in candles], columns=CANDLE_COLUMNS)
