"""
TradeExecutor: jedyne miejsce, które zmienia saldo, księgę pozycji,
historię transakcji i statystyki bota.

Każda transakcja to jeden krok pod blokadą: saldo, pozycja, statystyki
i wpis w historii zmieniają się razem albo wcale.
"""
from __future__ import annotations

import math
import threading
from typing import Callable, List, Mapping, Optional, Tuple

from loguru import logger

from paperdesk.app.portfolio_service import PositionLedger
from paperdesk.app.stats import StatsAccumulator
from paperdesk.domain.dto import TradeRecord
from paperdesk.domain.errors import InsufficientFunds
from paperdesk.domain.events import EventBus, PanicLiquidation, PositionClosed, PositionOpened, TradeFilled
from paperdesk.domain.interfaces import Clock
from paperdesk.domain.models import BotStats, TradeCause
from paperdesk.infra.clock import SystemClock
from paperdesk.infra.currency import CurrencyConverter, format_money


def is_usable_price(value: float) -> bool:
    return value is not None and math.isfinite(value) and value > 0


def _check_order(amount: float, native_price: float) -> None:
    # NaN i inf odrzucane tak samo jak zero
    if not (is_usable_price(amount) and is_usable_price(native_price)):
        raise ValueError(f"amount and price must be positive and finite (amount={amount}, price={native_price})")


class TradeExecutor:
    def __init__(
        self,
        ledger: PositionLedger,
        starting_balance_usd: float,
        bus: Optional[EventBus] = None,
        clock: Optional[Clock] = None,
        converter: Optional[CurrencyConverter] = None,
        default_trailing_sl_pct: float = 0.05,
    ):
        self.ledger = ledger
        self.bus = bus or EventBus()
        self.clock = clock or SystemClock()
        self.converter = converter or ledger.converter
        self.default_trailing_sl_pct = default_trailing_sl_pct
        # RLock: Watchdog woła sell() będąc już pod blokadą
        self.lock = threading.RLock()
        self._balance_usd = float(starting_balance_usd)
        self._history: List[TradeRecord] = []
        self._stats = BotStats(start_time=self.clock.now_ms())

    # ---------- odczyt ----------

    @property
    def balance_usd(self) -> float:
        with self.lock:
            return self._balance_usd

    @property
    def stats(self) -> BotStats:
        with self.lock:
            return self._stats

    @property
    def history(self) -> Tuple[TradeRecord, ...]:
        with self.lock:
            return tuple(self._history)

    # ---------- zapis ----------

    def buy(
        self,
        symbol: str,
        amount: float,
        native_price: float,
        stop_loss: Optional[float] = None,
        take_profit: Optional[float] = None,
        trailing: bool = False,
        cause: TradeCause = TradeCause.MARKET,
    ) -> TradeRecord:
        _check_order(amount, native_price)
        cost_usd = amount * self.converter.to_usd(native_price, symbol)
        if trailing and stop_loss is None:
            stop_loss = native_price * (1 - self.default_trailing_sl_pct)

        with self.lock:
            if self._balance_usd < cost_usd:
                raise InsufficientFunds(symbol, cost_usd, self._balance_usd)
            is_new = symbol not in self.ledger
            self._balance_usd -= cost_usd
            self.ledger.apply_buy(symbol, amount, native_price, stop_loss, take_profit, trailing)
            trade = self._record(symbol, "buy", amount, native_price, cause)

            logger.info(
                f"BUY {amount:.6g} {symbol} @ {native_price:.2f} ({cause.value}), koszt {format_money(cost_usd)}, "
                f"saldo {format_money(self._balance_usd)}"
            )
            if is_new:
                self.bus.publish(PositionOpened(trade.ts, symbol, amount, native_price, cause.value))
            self.bus.publish(TradeFilled(trade.ts, trade))
            return trade

    def sell(self, symbol: str, amount: float, native_price: float, cause: TradeCause = TradeCause.MARKET) -> Optional[TradeRecord]:
        """Brak pozycji = no-op (np. wymuszone wyjście wyprzedziło ręczne)."""
        _check_order(amount, native_price)

        with self.lock:
            pos = self.ledger.get(symbol)
            if pos is None:
                logger.debug(f"SELL {symbol}: brak pozycji, pomijam.")
                return None
            amount = min(amount, pos.amount)
            price_usd = self.converter.to_usd(native_price, symbol)
            proceeds_usd = amount * price_usd
            cost_basis_usd = amount * self.converter.to_usd(pos.avg_price, symbol)
            realized = proceeds_usd - cost_basis_usd

            self._balance_usd += proceeds_usd
            self._stats = StatsAccumulator.apply(self._stats, realized)
            remaining = self.ledger.apply_sell(symbol, amount, native_price)
            trade = self._record(symbol, "sell", amount, native_price, cause)

            logger.info(
                f"SELL {amount:.6g} {symbol} @ {native_price:.2f} ({cause.value}), PnL {realized:+.2f} USD, "
                f"saldo {format_money(self._balance_usd)}"
            )
            if remaining is None:
                self.bus.publish(PositionClosed(trade.ts, symbol, amount, native_price, cause.value, realized))
            self.bus.publish(TradeFilled(trade.ts, trade))
            return trade

    def panic_liquidate_all(
        self,
        prices: Mapping[str, float],
        disable_bot: Optional[Callable[[], None]] = None,
    ) -> List[TradeRecord]:
        """
        Wyłącza bota i sprzedaje wszystko po najlepszej znanej cenie
        (ostatni kurs, w ostateczności cena średnia). Jeden przelew na saldo.
        """
        with self.lock:
            if disable_bot is not None:
                disable_bot()
            closed = self.ledger.pop_all()
            total_usd = 0.0
            trades = []
            closes = []
            for pos in closed:
                price = prices.get(pos.symbol)
                if not is_usable_price(price):
                    price = pos.avg_price
                proceeds_usd = pos.amount * self.converter.to_usd(price, pos.symbol)
                # PnL tylko do zdarzenia, BotStats bez zmian
                realized = proceeds_usd - pos.amount * self.converter.to_usd(pos.avg_price, pos.symbol)
                total_usd += proceeds_usd
                trade = self._record(pos.symbol, "sell", pos.amount, price, TradeCause.PANIC_SELL)
                trades.append(trade)
                closes.append(PositionClosed(trade.ts, pos.symbol, pos.amount, price, TradeCause.PANIC_SELL.value, realized))
            self._balance_usd += total_usd

            logger.warning(f"PANIC SELL: {len(trades)} pozycji, wpływ {format_money(total_usd)}")
            now = self.clock.now_ms()
            self.bus.publish(PanicLiquidation(now, len(trades), total_usd))
            for event, trade in zip(closes, trades):
                self.bus.publish(event)
                self.bus.publish(TradeFilled(trade.ts, trade))
            return trades

    def _record(self, symbol: str, side: str, amount: float, price: float, cause: TradeCause) -> TradeRecord:
        trade = TradeRecord(symbol=symbol, side=side, amount=amount, price=price, ts=self.clock.now_ms(), cause=cause.value)
        self._history.append(trade)
        return trade
