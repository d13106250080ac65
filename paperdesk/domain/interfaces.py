from abc import ABC, abstractmethod
from typing import List, Mapping, Optional

from .dto import MarketSnapshotEntry, OracleMode, OracleResult, Quote


class PriceFeed(ABC):
    @abstractmethod
    def get_quote(self, symbol: str) -> Optional[Quote]: ...  # None = brak ceny

    @abstractmethod
    def get_history(self, symbol: str) -> List[float]: ...  # najnowsza na końcu

    @abstractmethod
    def available_symbols(self) -> List[str]: ...


class StrategyOracle(ABC):
    @abstractmethod
    def evaluate(self, snapshot: Mapping[str, MarketSnapshotEntry], mode: OracleMode) -> OracleResult: ...


class Clock(ABC):
    @abstractmethod
    def now(self) -> float: ...  # epoch sekundy

    def now_ms(self) -> int:
        return int(self.now() * 1000)
