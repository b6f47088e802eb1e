"""
설정 관리 모듈.

[ 역할 ]
    config.yaml (또는 .json) 파일을 파싱하여 Config 객체로 변환.
    백테스트 파라미터, 데이터 공급자, 저장소, 로깅 설정 등을 통합 관리.

[ 설정 파일 구조 (config.yaml) ]
    backtest:         → BacktestConfig (심볼/타임프레임/기간/시그널 파라미터)
      volume_thresholds: → VolumeThresholds
      enabled_signals:   → EnabledSignals
    provider:         → ProviderConfig (캔들 공급자, rate limit, 재시도)
    database:         → DatabaseConfig (ClickHouse)
    store:            → "memory" / "clickhouse"
    log_level:        → "INFO" / "DEBUG"
    log_dir:          → 로그 디렉토리 경로

    키는 snake_case와 camelCase(lookforwardCandles 등)를 모두 허용한다.

[ 호출하는 곳 ]
    - run_backtest.py에서 Config.from_yaml()로 로드
    - backtest/orchestrator.py::start()에서 BacktestConfig.validate() 호출
"""

import json
import re
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime
from pathlib import Path
from typing import Any

import yaml

from signal_backtester.core.candle import TIMEFRAME_MS
from signal_backtester.core.errors import ConfigValidationError

# 원천 데이터 보관 한도 (약 2년)
DEFAULT_MAX_RANGE_DAYS = 730


def _snake(key: str) -> str:
    """camelCase → snake_case (extraHigh → extra_high)."""
    return re.sub(r"(?<!^)(?=[A-Z])", "_", key).lower()


def _pick(cls, data: dict[str, Any] | None) -> dict[str, Any]:
    """dataclass 필드에 해당하는 키만 snake_case로 골라낸다."""
    names = {f.name for f in fields(cls)}
    picked = {}
    for key, value in (data or {}).items():
        name = _snake(key)
        if name in names:
            picked[name] = value
    return picked


def _parse_datetime(value: str | datetime) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


@dataclass(frozen=True)
class VolumeThresholds:
    """거래량 표준화 막대 임계값. medium < high < extra_high."""
    medium: float = 1.0
    high: float = 2.5
    extra_high: float = 4.0

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "VolumeThresholds":
        return cls(**{k: float(v) for k, v in _pick(cls, data).items()})


@dataclass(frozen=True)
class EnabledSignals:
    """시그널 종류별 활성화 여부."""
    primary_buy: bool = True
    basic_buy: bool = False
    primary_sell: bool = True
    basic_sell: bool = False

    def any_enabled(self) -> bool:
        return self.primary_buy or self.basic_buy or self.primary_sell or self.basic_sell

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "EnabledSignals":
        return cls(**{k: bool(v) for k, v in _pick(cls, data).items()})


@dataclass(frozen=True)
class BacktestConfig:
    """백테스트 설정. config.yaml의 backtest 섹션에 대응. 실행당 한 번 생성, 불변."""
    symbols: tuple[str, ...] = ()
    timeframes: tuple[str, ...] = ()
    start_date: str = ""
    end_date: str = ""
    lookforward_candles: int = 24
    volume_ma_length: int = 610
    volume_std_length: int = 610
    volume_thresholds: VolumeThresholds = field(default_factory=VolumeThresholds)
    body_ratio_threshold: float = 0.61
    enabled_signals: EnabledSignals = field(default_factory=EnabledSignals)
    max_range_days: int | None = DEFAULT_MAX_RANGE_DAYS

    @property
    def volume_lookback(self) -> int:
        """거래량 통계에 필요한 과거 캔들 수."""
        return max(self.volume_ma_length, self.volume_std_length)

    @property
    def start_datetime(self) -> datetime:
        return _parse_datetime(self.start_date)

    @property
    def end_datetime(self) -> datetime:
        return _parse_datetime(self.end_date)

    def pairs(self) -> list[tuple[str, str]]:
        """(symbol, timeframe) 조합. symbol 우선 순서."""
        return [(s, tf) for s in self.symbols for tf in self.timeframes]

    def validate(self) -> None:
        """검증 실패 시 ConfigValidationError."""
        errors = validate_config(self)
        if errors:
            raise ConfigValidationError(errors)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["symbols"] = list(self.symbols)
        data["timeframes"] = list(self.timeframes)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "BacktestConfig":
        """딕셔너리에서 생성. 중첩 섹션과 camelCase 키 처리."""
        picked = _pick(cls, data)
        picked["symbols"] = tuple(picked.get("symbols") or ())
        picked["timeframes"] = tuple(picked.get("timeframes") or ())
        for key in ("start_date", "end_date"):
            if isinstance(picked.get(key), datetime):
                picked[key] = picked[key].isoformat()
            elif key in picked and picked[key] is not None:
                picked[key] = str(picked[key])
        picked["volume_thresholds"] = VolumeThresholds.from_dict(picked.get("volume_thresholds"))
        picked["enabled_signals"] = EnabledSignals.from_dict(picked.get("enabled_signals"))
        return cls(**picked)


def validate_config(config: BacktestConfig) -> list[str]:
    """설정 검증. 위반 항목 메시지 리스트 반환 (비어 있으면 통과)."""
    errors: list[str] = []

    if not config.symbols:
        errors.append("At least one symbol must be selected")

    if not config.timeframes:
        errors.append("At least one timeframe must be selected")
    else:
        unknown = [tf for tf in config.timeframes if tf not in TIMEFRAME_MS]
        if unknown:
            errors.append(f"Unsupported timeframes: {', '.join(unknown)}")

    if not config.start_date:
        errors.append("Start date is required")
    if not config.end_date:
        errors.append("End date is required")

    # ─── 기간 ────────────────────────────────────────────────────────────
    if config.start_date and config.end_date:
        try:
            start = config.start_datetime
            end = config.end_datetime
        except ValueError:
            errors.append("Start and end dates must be ISO-8601 dates")
        else:
            if (start.tzinfo is None) != (end.tzinfo is None):
                errors.append("Start and end dates must both carry a timezone or neither")
            elif start >= end:
                errors.append("End date must be after start date")
            elif config.max_range_days is not None:
                days = (end - start).total_seconds() / 86400
                if days > config.max_range_days:
                    errors.append(f"Date range cannot exceed {config.max_range_days} days")

    # ─── 수치 범위 ──────────────────────────────────────────────────────
    if not 1 <= config.lookforward_candles <= 10000:
        errors.append("Lookforward candles must be between 1 and 10000")

    if not 1 <= config.volume_ma_length <= 2000:
        errors.append("Volume MA length must be between 1 and 2000")

    if not 1 <= config.volume_std_length <= 2000:
        errors.append("Volume Std length must be between 1 and 2000")

    thresholds = config.volume_thresholds
    if not thresholds.medium < thresholds.high < thresholds.extra_high:
        errors.append("Volume thresholds must be ascending (medium < high < extraHigh)")

    if not 0 <= config.body_ratio_threshold <= 1:
        errors.append("Body ratio threshold must be between 0 and 1")

    if not config.enabled_signals.any_enabled():
        errors.append("At least one signal type must be enabled")

    return errors


@dataclass
class ProviderConfig:
    """캔들 공급자 설정. config.yaml의 provider 섹션에 대응."""
    source: str = "sample"            # sample / yahoo / clickhouse
    max_requests: int = 1190          # rate limit 창당 최대 요청 수
    window_seconds: float = 60.0      # rate limit 창 길이
    max_retries: int = 3
    retry_delay: float = 1.0          # 첫 재시도 대기(초), 이후 2배씩 증가


@dataclass
class DatabaseConfig:
    """데이터베이스 설정. config.yaml의 database 섹션에 대응."""
    host: str = "localhost"
    port: int = 8123
    database: str = "default"
    user: str = "default"
    password: str = "password"


@dataclass
class Config:
    """전체 설정. from_yaml() 또는 from_json()으로 파일에서 로드."""
    backtest: BacktestConfig = field(default_factory=BacktestConfig)
    provider: ProviderConfig = field(default_factory=ProviderConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    store: str = "memory"
    log_level: str = "INFO"
    log_dir: str = "logs"
    log_levels: dict[str, str] = field(default_factory=dict)   # 영역별 레벨 (예: signals: DEBUG)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Config":
        """YAML 파일에서 설정 로드."""
        path = Path(path)
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
        return cls._from_dict(data or {})

    @classmethod
    def from_json(cls, path: str | Path) -> "Config":
        """JSON 파일에서 설정 로드."""
        path = Path(path)
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return cls._from_dict(data)

    @classmethod
    def _from_dict(cls, data: dict[str, Any]) -> "Config":
        """딕셔너리에서 Config 생성."""
        return cls(
            backtest=BacktestConfig.from_dict(data.get("backtest", {})),
            provider=ProviderConfig(**_pick(ProviderConfig, data.get("provider", {}))),
            database=DatabaseConfig(**_pick(DatabaseConfig, data.get("database", {}))),
            store=data.get("store", "memory"),
            log_level=data.get("log_level", "INFO"),
            log_dir=data.get("log_dir", "logs"),
            log_levels=dict(data.get("log_levels") or {}),
        )

    def to_dict(self) -> dict[str, Any]:
        """딕셔너리로 변환."""
        data = asdict(self)
        data["backtest"] = self.backtest.to_dict()
        return data

    def save_yaml(self, path: str | Path) -> None:
        """YAML 파일로 저장."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            yaml.dump(self.to_dict(), f, allow_unicode=True, default_flow_style=False)
