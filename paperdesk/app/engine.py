"""
PortfolioEngine: jedna instancja = jeden papierowy rachunek.

Skleja PositionLedger, TradeExecutor, Watchdog i BotScheduler oraz wystawia
powierzchnię usługową: buy / sell / panic_liquidate_all / set_bot_config /
get_snapshot, plus dwa wejścia dla timerów: on_price_tick i on_bot_tick.
"""
from __future__ import annotations

import random
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from loguru import logger

from paperdesk.app.order_service import TradeExecutor, is_usable_price
from paperdesk.app.orchestration import BotScheduler, ScanOutcome
from paperdesk.app.portfolio_service import PositionLedger
from paperdesk.app.stats import StatsAccumulator, StatsSummary
from paperdesk.config import Settings, settings as default_settings
from paperdesk.domain.dto import OrderResult, Quote, TradeRecord
from paperdesk.domain.errors import InsufficientFunds, StaleOrMissingQuote
from paperdesk.domain.events import EventBus, OrderRejected
from paperdesk.domain.interfaces import Clock, PriceFeed, StrategyOracle
from paperdesk.domain.models import BotConfig, BotState, PortfolioSnapshot, TradeCause
from paperdesk.infra.clock import SystemClock
from paperdesk.infra.currency import CurrencyConverter
from paperdesk.infra.event_log import EventLog
from paperdesk.risk.core import Watchdog


class PortfolioEngine:
    def __init__(
        self,
        feed: PriceFeed,
        oracle: StrategyOracle,
        *,
        cfg: Optional[Settings] = None,
        bot_config: Optional[BotConfig] = None,
        clock: Optional[Clock] = None,
        rng: Optional[random.Random] = None,
        converter: Optional[CurrencyConverter] = None,
        bus: Optional[EventBus] = None,
    ):
        self.cfg = cfg or default_settings
        self.feed = feed
        self.clock = clock or SystemClock()
        self.converter = converter or CurrencyConverter()
        self.bus = bus or EventBus()
        self.event_log = EventLog(self.cfg.EVENT_LOG_SIZE, now_ms=self.clock.now_ms)
        self.event_log.attach(self.bus)

        self.ledger = PositionLedger(self.converter)
        self.executor = TradeExecutor(
            self.ledger,
            self.cfg.STARTING_BALANCE_USD,
            bus=self.bus,
            clock=self.clock,
            converter=self.converter,
            default_trailing_sl_pct=self.cfg.DEFAULT_TRAILING_SL_PCT,
        )
        self.watchdog = Watchdog(self.executor, trail_factor=self.cfg.TRAIL_FACTOR)
        self.scheduler = BotScheduler(
            self.executor,
            feed,
            oracle,
            config=bot_config,
            rng=rng or random.Random(self.cfg.RANDOM_SEED),
            entry_size_pct=self.cfg.AUTO_ENTRY_SIZE_PCT,
            history_points=self.cfg.HISTORY_POINTS,
        )
        self._last_quotes: Dict[str, Quote] = {}

    # ---------- ceny ----------

    def on_price_tick(self, quotes: Mapping[str, Optional[Quote]]) -> List[TradeRecord]:
        """Wycena + Watchdog dla cen z tego ticku. Symbole bez ceny są pomijane."""
        fresh: Dict[str, float] = {}
        for symbol, quote in quotes.items():
            if quote is None or not is_usable_price(quote.price):
                continue
            fresh[symbol] = quote.price
        with self.executor.lock:
            for symbol in fresh:
                self._last_quotes[symbol] = quotes[symbol]
            self.ledger.revalue(fresh)
            return self.watchdog.check(fresh)

    def refresh_prices(self, symbols: Optional[Iterable[str]] = None) -> List[TradeRecord]:
        """Pobiera kursy z PriceFeed (bez blokady) i odpala on_price_tick."""
        if symbols is None:
            with self.executor.lock:
                held = self.ledger.symbols()
            symbols = list(dict.fromkeys(list(self.feed.available_symbols()) + held))
        quotes: Dict[str, Optional[Quote]] = {}
        for symbol in symbols:
            quotes[symbol] = self.feed.get_quote(symbol)
            if quotes[symbol] is None:
                logger.debug(f"Brak kursu {symbol} w tym ticku.")
        return self.on_price_tick(quotes)

    def last_price(self, symbol: str) -> float:
        with self.executor.lock:
            quote = self._last_quotes.get(symbol)
        if quote is None:
            raise StaleOrMissingQuote(f"No known quote for {symbol}")
        return quote.price

    # ---------- bot ----------

    def on_bot_tick(self) -> Optional[ScanOutcome]:
        return self.scheduler.tick()

    def set_bot_config(self, config: Union[BotConfig, Mapping[str, Any]]) -> BotConfig:
        return self.scheduler.set_config(config)

    @property
    def bot_state(self) -> BotState:
        return self.scheduler.state

    # ---------- zlecenia ręczne ----------

    def buy(
        self,
        symbol: str,
        amount: float,
        price: Optional[float] = None,
        stop_loss: Optional[float] = None,
        take_profit: Optional[float] = None,
        trailing: bool = False,
    ) -> OrderResult:
        try:
            native_price = price if price is not None else self.last_price(symbol)
            trade = self.executor.buy(symbol, amount, native_price, stop_loss, take_profit, trailing, TradeCause.MARKET)
        except (InsufficientFunds, StaleOrMissingQuote, ValueError) as e:
            return self._reject(symbol, "buy", e)
        return OrderResult(ok=True, trade=trade)

    def sell(self, symbol: str, amount: Optional[float] = None, price: Optional[float] = None) -> OrderResult:
        """amount=None sprzedaje całą pozycję."""
        with self.executor.lock:
            pos = self.ledger.get(symbol)
            if pos is None:
                return OrderResult(ok=False, reason="no position")
            try:
                native_price = price if price is not None else self.last_price(symbol)
                trade = self.executor.sell(symbol, pos.amount if amount is None else amount, native_price)
            except (StaleOrMissingQuote, ValueError) as e:
                return self._reject(symbol, "sell", e)
        return OrderResult(ok=True, trade=trade)

    def panic_liquidate_all(self) -> List[TradeRecord]:
        with self.executor.lock:
            prices = {s: q.price for s, q in self._last_quotes.items()}
            return self.executor.panic_liquidate_all(prices, disable_bot=lambda: self.scheduler.disable("panic sell"))

    def _reject(self, symbol: str, side: str, error: Exception) -> OrderResult:
        logger.warning(f"{side.upper()} {symbol} odrzucone: {error}")
        self.bus.publish(OrderRejected(self.clock.now_ms(), symbol, side, str(error)))
        return OrderResult(ok=False, reason=str(error))

    # ---------- odczyt ----------

    def get_snapshot(self) -> PortfolioSnapshot:
        with self.executor.lock:
            return PortfolioSnapshot(
                balance_usd=self.executor.balance_usd,
                positions=tuple(self.ledger.positions()),
                stats=self.executor.stats,
                bot_state=self.scheduler.state,
                bot_config=self.scheduler.config,
                trades=self.executor.history,
            )

    def stats_summary(self) -> StatsSummary:
        return StatsAccumulator.summarize(self.executor.stats)
