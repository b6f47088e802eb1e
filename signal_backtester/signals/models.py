"""
시그널 관련 데이터 타입.

[ 주요 타입 ]
    SignalType      - PRIMARY_BUY / BASIC_BUY / PRIMARY_SELL / BASIC_SELL
    VolumeLevel     - low / medium / high / extraHigh
    VolumeAnalysis  - 캔들 인덱스별 거래량 통계 (필요할 때마다 재계산)
    PatternCandles  - 패턴을 이루는 3개 캔들 (previous2, previous1, current)
    SignalDetection - 탐지된 시그널. 탐지 이후 읽기 전용

[ 식별 키 ]
    SignalDetection.signal_id = "{symbol}_{timeframe}_{type}_{timestamp}"
    → backtest/performance.py::SignalPerformance.signal_id와 1:1로 조인된다.
"""

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any

from signal_backtester.core.candle import Candle


class SignalType(Enum):
    """탐지 가능한 시그널 종류."""
    PRIMARY_BUY = "PRIMARY_BUY"
    BASIC_BUY = "BASIC_BUY"
    PRIMARY_SELL = "PRIMARY_SELL"
    BASIC_SELL = "BASIC_SELL"

    @property
    def is_buy(self) -> bool:
        return self in (SignalType.PRIMARY_BUY, SignalType.BASIC_BUY)

    @property
    def config_key(self) -> str:
        """EnabledSignals 필드명 (PRIMARY_BUY → primary_buy)."""
        return self.value.lower()


class VolumeLevel(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    EXTRA_HIGH = "extraHigh"


@dataclass(frozen=True)
class VolumeAnalysis:
    """거래량 분석 결과."""
    volume_mean: float = 0.0
    volume_std: float = 0.0
    volume_std_bar: float = 0.0        # (vol - mean) / std, std == 0이면 0
    is_volume_colored: bool = False    # std_bar > medium 임계값
    volume_level: VolumeLevel = VolumeLevel.LOW

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["volume_level"] = self.volume_level.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "VolumeAnalysis":
        return cls(
            volume_mean=float(data.get("volume_mean", 0.0)),
            volume_std=float(data.get("volume_std", 0.0)),
            volume_std_bar=float(data.get("volume_std_bar", 0.0)),
            is_volume_colored=bool(data.get("is_volume_colored", False)),
            volume_level=VolumeLevel(data.get("volume_level", VolumeLevel.LOW.value)),
        )


@dataclass(frozen=True)
class PatternCandles:
    current: Candle
    previous1: Candle
    previous2: Candle

    def to_dict(self) -> dict[str, Any]:
        return {
            "current": self.current.to_dict(),
            "previous1": self.previous1.to_dict(),
            "previous2": self.previous2.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PatternCandles":
        return cls(
            current=Candle.from_dict(data["current"]),
            previous1=Candle.from_dict(data["previous1"]),
            previous2=Candle.from_dict(data["previous2"]),
        )


@dataclass(frozen=True)
class SignalDetection:
    """탐지된 시그널. 가격/시각은 확인 캔들(current)의 종가/시각."""
    type: SignalType
    timestamp: int
    price: float
    symbol: str
    timeframe: str
    volume_data: VolumeAnalysis
    candle_data: PatternCandles

    @property
    def signal_id(self) -> str:
        return make_signal_id(self.symbol, self.timeframe, self.type, self.timestamp)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "timestamp": self.timestamp,
            "price": self.price,
            "symbol": self.symbol,
            "timeframe": self.timeframe,
            "volume_data": self.volume_data.to_dict(),
            "candle_data": self.candle_data.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SignalDetection":
        return cls(
            type=SignalType(data["type"]),
            timestamp=int(data["timestamp"]),
            price=float(data["price"]),
            symbol=data["symbol"],
            timeframe=data["timeframe"],
            volume_data=VolumeAnalysis.from_dict(data["volume_data"]),
            candle_data=PatternCandles.from_dict(data["candle_data"]),
        )


def make_signal_id(symbol: str, timeframe: str, signal_type: SignalType, timestamp: int) -> str:
    return f"{symbol}_{timeframe}_{signal_type.value}_{timestamp}"
