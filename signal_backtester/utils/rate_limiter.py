"""
요청 rate limiter.

[ 역할 ]
    외부 캔들 공급자의 전역 요청 한도(창당 N회)를 지키기 위한 슬라이딩 윈도우 limiter.
    acquire()는 한도가 남아 있으면 즉시 반환하고, 소진되었으면 가장 오래된
    요청이 창을 벗어날 때까지 대기한다.

[ 사용 방식 ]
    전역 변수로 두지 않고 공급자에 주입한다. 여러 워커가 같은 공급자를 쓰면
    같은 limiter 인스턴스를 공유해야 한도가 지켜진다.

[ 호출하는 곳 ]
    - data/yahoo_provider.py::YahooFinanceCandleProvider (요청 직전 acquire)
"""

import logging
import threading
import time
from collections import deque
from typing import Callable

logger = logging.getLogger("signal_backtester.data")


class RateLimiter:
    """슬라이딩 윈도우 rate limiter. 스레드 안전."""

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._sleep = sleep
        self._requests: deque[float] = deque()  # 창 안의 요청 시각
        self._lock = threading.Lock()

    def _evict(self, now: float) -> None:
        while self._requests and now - self._requests[0] >= self.window_seconds:
            self._requests.popleft()

    def acquire(self) -> float:
        """요청 1회 허가. 대기한 총 시간(초) 반환."""
        waited = 0.0
        while True:
            with self._lock:
                now = self._clock()
                self._evict(now)
                if len(self._requests) < self.max_requests:
                    self._requests.append(now)
                    return waited
                wait_time = self.window_seconds - (now - self._requests[0])

            if wait_time > 0:
                logger.info(f"Rate limit 도달, {wait_time:.2f}초 대기")
                self._sleep(wait_time)
                waited += wait_time

    @property
    def remaining(self) -> int:
        """현재 창에서 남은 요청 수."""
        with self._lock:
            self._evict(self._clock())
            return self.max_requests - len(self._requests)
