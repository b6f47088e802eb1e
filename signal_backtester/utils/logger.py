"""
로깅 모듈.

[ 역할 ]
    "signal_backtester" 루트 로거에 파일 + 콘솔 핸들러를 붙이고,
    영역별 하위 로거의 레벨을 따로 조정한다.

[ 로그 파일 위치 ]
    {log_dir}/{name}_{YYYYMMDD}.log (예: logs/signal_backtester_20240601.log)

[ 영역별 로거 ]
    validation   데이터셋 검증 통과/실패
    signals      시그널 탐지, 구간 검사에서 제외된 시그널 (DEBUG)
    performance  전방 구간 분석
    backtest     실행 시작/완료, 조합별 skip (INFO), 조합 오류 (ERROR)
    data         캔들 공급자/저장소 요청과 재시도

    하위 로거는 핸들러 없이 루트 로거로 전파된다. area_levels로 특정 영역만
    자세히 볼 수 있다. (예: {"signals": "DEBUG"} → 제외된 시그널 사유 출력)

[ 호출하는 곳 ]
    - run_backtest.py에서 setup_logger() 호출 (config.yaml의 log_level / log_levels)
    - 각 모듈에서 logging.getLogger("signal_backtester.<영역>") 사용
"""

import logging
import sys
from datetime import datetime
from pathlib import Path

LOG_AREAS = ("validation", "signals", "performance", "backtest", "data")

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def _level(value: str) -> int:
    level = logging.getLevelName(value.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {value}")
    return level


def set_area_levels(area_levels: dict[str, str], root: str = "signal_backtester") -> None:
    """영역별 하위 로거 레벨 설정. 모르는 영역이면 ValueError."""
    for area, value in area_levels.items():
        if area not in LOG_AREAS:
            raise ValueError(f"Unknown log area: {area} (expected one of {', '.join(LOG_AREAS)})")
        logging.getLogger(f"{root}.{area}").setLevel(_level(value))


def setup_logger(
    name: str = "signal_backtester",
    level: str = "INFO",
    log_dir: str | None = "logs",
    console: bool = True,
    area_levels: dict[str, str] | None = None,
) -> logging.Logger:
    """루트 로거 설정. 다시 호출하면 핸들러는 그대로 두고 레벨만 갱신한다.

    log_dir=None이면 파일에 기록하지 않는다.
    """
    logger = logging.getLogger(name)
    logger.setLevel(_level(level))
    if area_levels:
        set_area_levels(area_levels, root=name)

    if logger.handlers:
        return logger

    formatter = logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    if log_dir:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        today = datetime.now().strftime("%Y%m%d")
        file_handler = logging.FileHandler(log_path / f"{name}_{today}.log", encoding="utf-8")
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    if console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    return logger
