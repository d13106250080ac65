from __future__ import annotations

from typing import List, Mapping, Optional

from loguru import logger

from paperdesk.app.order_service import TradeExecutor
from paperdesk.domain.dto import TradeRecord
from paperdesk.domain.events import StopTriggered, TrailingStopRaised
from paperdesk.domain.models import Position, TradeCause

TRAIL_FACTOR = 0.02  # trailing stop 2% pod ceną


class Watchdog:
    """
    Strażnik uruchamiany co tick cenowy (po revalue), pozycja po pozycji:
    1) trailing stop: podnosi SL za ceną, nigdy w dół
    2) stop-loss: ma pierwszeństwo; jeśli strzeli, TP nie jest sprawdzany
    3) take-profit: tylko dla pozycji bez trailingu

    Wyjście wymuszone idzie od razu przez TradeExecutor, zanim ruszymy
    następną pozycję. Maks. jedno wyjście na pozycję na tick.
    """

    def __init__(self, executor: TradeExecutor, trail_factor: float = TRAIL_FACTOR):
        self.executor = executor
        self.ledger = executor.ledger
        self.bus = executor.bus
        self.trail_factor = trail_factor

    def check(self, quotes: Mapping[str, float]) -> List[TradeRecord]:
        exits: List[TradeRecord] = []
        with self.executor.lock:
            for symbol in self.ledger.symbols():
                price = quotes.get(symbol)
                pos = self.ledger.get(symbol)
                if price is None or pos is None:
                    continue
                self._ratchet(pos, price)
                cause = self.exit_reason(pos, price)
                if cause is None:
                    continue
                level = pos.stop_loss if cause is TradeCause.STOP_LOSS else pos.take_profit
                logger.warning(f"{cause.value.upper()} {symbol} @ {price:.2f} (poziom {level:.2f})")
                self.bus.publish(StopTriggered(self.executor.clock.now_ms(), symbol, cause.value, level, price))
                trade = self.executor.sell(symbol, pos.amount, price, cause)
                if trade is not None:
                    exits.append(trade)
        return exits

    def _ratchet(self, pos: Position, price: float) -> None:
        if not pos.is_trailing or price <= pos.avg_price:
            return
        candidate = price * (1 - self.trail_factor)
        old = pos.stop_loss
        if self.ledger.raise_stop(pos.symbol, candidate):
            logger.debug(f"Trailing SL {pos.symbol}: {old} -> {candidate:.4f}")
            self.bus.publish(TrailingStopRaised(self.executor.clock.now_ms(), pos.symbol, old, candidate))

    @staticmethod
    def exit_reason(pos: Position, price: float) -> Optional[TradeCause]:
        if pos.stop_loss is not None and price <= pos.stop_loss:
            return TradeCause.STOP_LOSS
        if not pos.is_trailing and pos.take_profit is not None and price >= pos.take_profit:
            return TradeCause.TAKE_PROFIT
        return None
