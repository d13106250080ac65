"""Wspólne fixture'y: ręczny zegar, sztuczny feed, wyrocznia ze scenariuszem."""
import random
from typing import Callable, Dict, List, Mapping, Optional, Union

import pytest

from paperdesk.app.engine import PortfolioEngine
from paperdesk.config import Settings
from paperdesk.domain.dto import MarketSnapshotEntry, OracleDecision, OracleResult, Quote
from paperdesk.domain.interfaces import PriceFeed, StrategyOracle
from paperdesk.infra.clock import ManualClock

T0 = 1_700_000_000.0


class FakeFeed(PriceFeed):
    def __init__(self, prices: Optional[Dict[str, float]] = None, histories: Optional[Dict[str, List[float]]] = None):
        self.prices: Dict[str, Optional[float]] = dict(prices or {})
        self.histories = dict(histories or {})

    def get_quote(self, symbol: str) -> Optional[Quote]:
        price = self.prices.get(symbol)
        if price is None:
            return None
        return Quote(symbol=symbol, price=price)

    def get_history(self, symbol: str) -> List[float]:
        if symbol in self.histories:
            return list(self.histories[symbol])
        price = self.prices.get(symbol) or 100.0
        return [price] * 20

    def available_symbols(self) -> List[str]:
        return list(self.prices)


Script = Union[OracleResult, Exception, Callable[[Mapping[str, MarketSnapshotEntry], str], OracleResult]]


class ScriptedOracle(StrategyOracle):
    """Zwraca kolejne wyniki ze scenariusza; callable może coś zrobić 'w locie'."""

    def __init__(self, *script: Script):
        self.script = list(script)
        self.calls: List[tuple] = []

    def evaluate(self, snapshot, mode):
        self.calls.append((dict(snapshot), mode))
        item = self.script.pop(0) if self.script else OracleDecision(symbol="X", action="hold")
        if isinstance(item, Exception):
            raise item
        if callable(item):
            return item(snapshot, mode)
        return item


@pytest.fixture
def clock():
    return ManualClock(T0)


@pytest.fixture
def cfg():
    return Settings(_env_file=None, STARTING_BALANCE_USD=100_000.0, RANDOM_SEED=7)


@pytest.fixture
def feed():
    return FakeFeed({"AAPL": 100.0, "TSLA": 200.0, "RELIANCE.NS": 2900.0})


@pytest.fixture
def oracle():
    return ScriptedOracle()


@pytest.fixture
def make_engine(cfg, clock):
    def _make(feed: PriceFeed, oracle: StrategyOracle, **kwargs) -> PortfolioEngine:
        kwargs.setdefault("rng", random.Random(7))
        return PortfolioEngine(feed, oracle, cfg=cfg, clock=clock, **kwargs)

    return _make


@pytest.fixture
def engine(make_engine, feed, oracle):
    return make_engine(feed, oracle)


def quotes(**prices: float) -> Dict[str, Quote]:
    """quotes(AAPL=170) -> {"AAPL": Quote(...)}; kropki w symbolu przez _ (RELIANCE_NS)."""
    out = {}
    for key, price in prices.items():
        symbol = key.replace("_", ".")
        out[symbol] = Quote(symbol=symbol, price=price)
    return out
