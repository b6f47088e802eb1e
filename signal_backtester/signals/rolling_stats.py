"""
이동 통계 (단순이동평균 / 표준편차).

[ 역할 ]
    query 인덱스에서 끝나는 직전 N개 구간의 평균과 모표준편차(ddof=0)를 계산.
    구간 밖의 값은 결과에 영향을 주지 않는다.

[ 유효 샘플 ]
    음수 또는 유한하지 않은 값(NaN, inf)은 구간 안에 있어도 계산에서 제외한다.
    구간 길이 자체가 N보다 짧으면 (시리즈 앞부분) 0을 반환한다.

[ 호출하는 곳 ]
    - signals/detector.py::SignalDetectionEngine.analyze_volume()
"""

from typing import Sequence

import numpy as np


def _window(values: np.ndarray, end: int, length: int) -> np.ndarray | None:
    """values[end-length+1 : end+1] 구간 중 유효 샘플. 구간이 모자라면 None."""
    if length < 1 or end < 0 or end >= len(values):
        return None
    start = end - length + 1
    if start < 0:
        return None
    window = values[start:end + 1]
    valid = window[np.isfinite(window) & (window >= 0)]
    if valid.size == 0:
        return None
    return valid


class RollingStats:
    """수치 시리즈에 대한 반복 조회용 이동 통계.

    사용 예:
        stats = RollingStats([c.volume for c in candles])
        mean = stats.sma(end=i, length=610)
        std = stats.stddev(end=i, length=610)
    """

    def __init__(self, values: Sequence[float] | np.ndarray):
        self.values = np.asarray(values, dtype=float)

    def __len__(self) -> int:
        return len(self.values)

    def sma(self, end: int, length: int) -> float:
        """end에서 끝나는 length 구간의 단순이동평균."""
        window = _window(self.values, end, length)
        if window is None:
            return 0.0
        return float(np.mean(window))

    def stddev(self, end: int, length: int) -> float:
        """end에서 끝나는 length 구간의 모표준편차."""
        window = _window(self.values, end, length)
        if window is None:
            return 0.0
        return float(np.std(window))


def sma(values: Sequence[float], end: int, length: int) -> float:
    return RollingStats(values).sma(end, length)


def stddev(values: Sequence[float], end: int, length: int) -> float:
    return RollingStats(values).stddev(end, length)
