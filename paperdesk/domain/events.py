"""
Typowane zdarzenia domenowe silnika + prosta szyna obserwatorów.

Silnik nie wie nic o prezentacji: UI, dziennik zdarzeń czy testy
podpinają się przez EventBus.subscribe().
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from loguru import logger

from paperdesk.domain.dto import TradeRecord

Severity = str  # 'info' | 'success' | 'warning' | 'error'


@dataclass(frozen=True)
class DomainEvent:
    ts: int  # epoch ms
    journaled = True  # czy trafia do EventLog

    def describe(self) -> Tuple[str, Severity, Optional[str]]:
        return type(self).__name__, "info", None


@dataclass(frozen=True)
class PositionOpened(DomainEvent):
    journaled = False
    symbol: str
    amount: float
    price: float
    cause: str

    def describe(self):
        return f"Opened {self.symbol}: {self.amount:.6g} @ {self.price:.2f} ({self.cause})", "success", self.symbol


@dataclass(frozen=True)
class PositionClosed(DomainEvent):
    journaled = False
    symbol: str
    amount: float
    price: float
    cause: str
    realized_pnl_usd: float

    def describe(self):
        sev = "success" if self.realized_pnl_usd > 0 else "warning"
        return (
            f"Closed {self.symbol} @ {self.price:.2f} ({self.cause}), PnL {self.realized_pnl_usd:+.2f} USD",
            sev,
            self.symbol,
        )


@dataclass(frozen=True)
class TradeFilled(DomainEvent):
    trade: TradeRecord

    def describe(self):
        t = self.trade
        return f"{t.side.upper()} {t.amount:.6g} {t.symbol} @ {t.price:.2f} ({t.cause})", "success", t.symbol


@dataclass(frozen=True)
class StopTriggered(DomainEvent):
    symbol: str
    kind: str  # stop_loss | take_profit
    level: float
    price: float

    def describe(self):
        label = "STOP LOSS" if self.kind == "stop_loss" else "TAKE PROFIT"
        sev = "warning" if self.kind == "stop_loss" else "success"
        return f"{label} triggered for {self.symbol} at {self.price:.2f} (level {self.level:.2f})", sev, self.symbol


@dataclass(frozen=True)
class TrailingStopRaised(DomainEvent):
    journaled = False
    symbol: str
    old_level: Optional[float]
    new_level: float

    def describe(self):
        return f"Trailing stop for {self.symbol} raised to {self.new_level:.2f}", "info", self.symbol


@dataclass(frozen=True)
class BotStateChanged(DomainEvent):
    old_state: str
    new_state: str
    reason: str = ""

    @property
    def journaled(self) -> bool:
        # Idle <-> Scanning co skan zaśmiecałoby dziennik
        return "scanning" not in (self.old_state, self.new_state)

    def describe(self):
        return f"Bot {self.old_state} -> {self.new_state} {self.reason}".strip(), "info", None


@dataclass(frozen=True)
class BotAutoDisabled(DomainEvent):
    total_profit_usd: float
    target_usd: float

    def describe(self):
        return (
            f"DAILY TARGET HIT ({self.total_profit_usd:.2f} >= {self.target_usd:.2f} USD). Bot stopped.",
            "success",
            None,
        )


@dataclass(frozen=True)
class ScanCompleted(DomainEvent):
    candidate: str
    mode: str
    action: str
    executed: bool
    reasoning: str = ""

    def describe(self):
        if self.executed:
            return f"BOT SIGNAL: {self.action.upper()} {self.candidate}. {self.reasoning}".strip(), "success", self.candidate
        return f"Scan {self.candidate} ({self.mode}): {self.action}", "info", self.candidate


@dataclass(frozen=True)
class ScanFailed(DomainEvent):
    candidate: Optional[str]
    reason: str

    def describe(self):
        return f"Bot scan failed for {self.candidate or '-'}: {self.reason}", "error", self.candidate


@dataclass(frozen=True)
class OrderRejected(DomainEvent):
    symbol: str
    side: str
    reason: str

    def describe(self):
        return f"{self.side.upper()} {self.symbol} rejected: {self.reason}", "error", self.symbol


@dataclass(frozen=True)
class PanicLiquidation(DomainEvent):
    positions_closed: int
    proceeds_usd: float

    def describe(self):
        return (
            f"PANIC SELL: liquidated {self.positions_closed} position(s) for {self.proceeds_usd:.2f} USD",
            "error",
            None,
        )


Handler = Callable[[DomainEvent], None]


class EventBus:
    def __init__(self) -> None:
        self._handlers: List[Handler] = []

    def subscribe(self, handler: Handler) -> Callable[[], None]:
        self._handlers.append(handler)

        def _unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return _unsubscribe

    def publish(self, event: DomainEvent) -> None:
        for handler in list(self._handlers):
            try:
                handler(event)
            except Exception:
                # błąd obserwatora nie może zatrzymać silnika
                logger.exception(f"Handler zdarzenia {type(event).__name__} rzucił wyjątek")
