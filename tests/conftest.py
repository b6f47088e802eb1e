import pytest

from candle_factory import make_primary_buy_series, small_config
from signal_backtester.data.memory import InMemoryCandleProvider, InMemoryRunStore
from signal_backtester.validation.completeness import DataCompletenessValidator


@pytest.fixture
def config():
    return small_config()


@pytest.fixture
def validator():
    return DataCompletenessValidator()


@pytest.fixture
def primary_buy_candles():
    return make_primary_buy_series()


@pytest.fixture
def provider(primary_buy_candles):
    provider = InMemoryCandleProvider()
    provider.load_candles("BTCUSDT", "1h", primary_buy_candles)
    return provider


@pytest.fixture
def store():
    return InMemoryRunStore()
