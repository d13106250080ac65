from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional, Tuple, Union

Side = Literal["buy", "sell"]
OracleMode = Literal["entry", "exit"]
OracleAction = Literal["buy", "sell", "hold"]
QuoteSource = Literal["live", "cached", "synthetic"]


@dataclass(frozen=True)
class Quote:
    symbol: str
    price: float
    change: float = 0.0
    change_percent: float = 0.0
    ts: int = 0  # epoch ms
    source: QuoteSource = "live"


@dataclass(frozen=True)
class TradeRecord:
    symbol: str
    side: Side
    amount: float
    price: float  # natywna waluta aktywa
    ts: int  # epoch ms
    cause: str  # TradeCause.value


@dataclass(frozen=True)
class MarketSnapshotEntry:
    price: float
    history: Tuple[float, ...] = ()


# ===== Wynik wyroczni: Decision | Malformed | Unavailable =====

@dataclass(frozen=True)
class OracleDecision:
    symbol: str
    action: OracleAction
    reasoning: str = ""
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None


@dataclass(frozen=True)
class OracleMalformed:
    reason: str
    raw: str = ""


@dataclass(frozen=True)
class OracleUnavailableResult:
    reason: str


OracleResult = Union[OracleDecision, OracleMalformed, OracleUnavailableResult]

ERROR_SYMBOL = "ERROR"


def as_decision(result: OracleResult) -> OracleDecision:
    """Błędne/niedostępne odpowiedzi zamieniamy na 'hold' z symbolem ERROR."""
    if isinstance(result, OracleDecision):
        return result
    return OracleDecision(symbol=ERROR_SYMBOL, action="hold", reasoning=result.reason)


@dataclass(frozen=True)
class OrderResult:
    ok: bool
    reason: str = "ok"
    trade: Optional[TradeRecord] = None
