"""
예외 계층 정의.

[ 분류 ]
    BacktestError                 - 최상위
    ├── ConfigValidationError     - 설정 범위 위반. 실행 자체가 시작되지 않음
    ├── DataValidationError       - 데이터 부적합. 조합(symbol×timeframe) 단위 skip
    │     ├── InsufficientDataError
    │     ├── DataQualityError
    │     ├── DataGapError
    │     └── VolumeIncompleteError
    ├── SignalWindowRejected      - 전방 구간이 불완전한 시그널. 조용히 제외 + 카운트
    ├── FetchError                - 외부 캔들 공급자 오류. 조합 단위로 격리
    ├── RunNotFoundError          - 존재하지 않는 실행 ID
    └── StoreError                - 실행 상태 저장 실패. 유일하게 실행을 FAILED로 만듦

[ 호출하는 곳 ]
    - utils/config.py::BacktestConfig.validate()
    - backtest/orchestrator.py 조합 루프에서 raise/catch
    - data/* 어댑터
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from signal_backtester.validation.completeness import DataCompletenessReport


class BacktestError(Exception):
    """signal_backtester 예외의 최상위 클래스."""


class ConfigValidationError(BacktestError):
    """설정 검증 실패. errors에 위반 항목이 모두 담긴다."""

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors) or "Invalid configuration")


class DataValidationError(BacktestError):
    """데이터 검증 실패 (non-fatal, skip 사유로 집계)."""

    def __init__(self, reason: str, report: "DataCompletenessReport | None" = None):
        self.reason = reason
        self.report = report
        super().__init__(reason)

    @classmethod
    def from_report(cls, report: "DataCompletenessReport") -> "DataValidationError":
        """실패한 검증 리포트를 skip 사유에 맞는 하위 예외로 변환."""
        reason = report.skip_reason or "Data validation failed"
        if reason.startswith(("Insufficient data", "No candle data", "Insufficient historical",
                              "Insufficient lookforward")):
            error_cls = InsufficientDataError
        elif report.data_gaps:
            error_cls = DataGapError
        elif "volume" in reason.lower():
            error_cls = VolumeIncompleteError
        else:
            error_cls = DataQualityError
        return error_cls(reason, report)


class InsufficientDataError(DataValidationError):
    pass


class DataQualityError(DataValidationError):
    pass


class DataGapError(DataValidationError):
    pass


class VolumeIncompleteError(DataValidationError):
    pass


class SignalWindowRejected(BacktestError):
    """시그널의 전방 구간이 불완전하여 제외됨."""


class FetchError(BacktestError):
    """외부 캔들 공급자 조회 실패 (네트워크, rate limit, 잘못된 심볼 등)."""

    def __init__(self, message: str, symbol: str = "", timeframe: str = ""):
        self.symbol = symbol
        self.timeframe = timeframe
        super().__init__(message)


class RunNotFoundError(BacktestError):
    """실행 ID에 해당하는 기록이 없음."""


class StoreError(BacktestError):
    """실행 저장소 접근 실패."""
