"""
=============================================================================
캔들 패턴 + 거래량 시그널 백테스터 (Signal Backtester)
=============================================================================

[ 시스템 전체 구조 ]

    run_backtest.py (진입점)
         │
         ├── utils/config.py            ← config.yaml 설정 로드 + 검증
         ├── utils/logger.py            ← 로깅
         │
         └── backtest/orchestrator.py   ← 실행 관리 (조합 루프, 진행률, 취소)
               │
               ├── validation/completeness.py  ← zero-tolerance 데이터 검증
               ├── signals/detector.py         ← 패턴 + 거래량 시그널 탐지
               │     ├── signals/patterns.py       (규칙표)
               │     └── signals/rolling_stats.py  (거래량 평균/표준편차)
               ├── backtest/performance.py     ← 시그널별 drawup/drawdown 분석
               ├── backtest/metrics.py         ← 실행 요약 통계
               └── backtest/filters.py         ← 결과 필터 / 분포 집계


[ 핵심 추상 클래스 (core/) - 모든 구현체의 부모 ]

    core/candle_provider.py  → data/memory.py::InMemoryCandleProvider   (테스트/샘플)
                             → data/yahoo_provider.py                   (yfinance + rate limit)
                             → data/clickhouse_provider.py              (수집된 캔들)

    core/run_store.py        → data/memory.py::InMemoryRunStore
                             → data/clickhouse_store.py


[ 데이터 흐름 ]

    1. config.yaml에서 심볼/타임프레임/기간/시그널 파라미터 로드 및 검증
    2. (symbol, timeframe) 조합마다 CandleProvider가 캔들 제공
    3. DataCompletenessValidator가 데이터셋 검증 (실패 시 조합 skip)
    4. SignalDetectionEngine이 시그널 탐지
    5. PerformanceAnalyzer가 시그널별 전방 구간 성과 계산
    6. calculate_summary()로 실행 요약 → RunStore에 저장
"""

__version__ = "0.1.0"
