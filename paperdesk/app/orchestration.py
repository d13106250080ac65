"""
BotScheduler: automat stanów bota (Disabled -> Idle -> Scanning -> Idle).

Jeden skan = jeden losowy kandydat z puli, jedno zapytanie do wyroczni,
najwyżej jedna transakcja. Wyrocznię wołamy BEZ blokady portfela; po
powrocie decyzja jest ponownie walidowana pod blokadą, bo Watchdog mógł
w międzyczasie zamknąć tę samą pozycję.
"""
from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Union

from loguru import logger
from pydantic import ValidationError

from paperdesk.app.order_service import TradeExecutor, is_usable_price
from paperdesk.app.portfolio_service import compute_order_amount
from paperdesk.domain.dto import (
    MarketSnapshotEntry,
    OracleDecision,
    OracleMode,
    OracleResult,
    OracleUnavailableResult,
    as_decision,
)
from paperdesk.domain.errors import InsufficientFunds, InvalidConfig
from paperdesk.domain.events import BotAutoDisabled, BotStateChanged, ScanCompleted, ScanFailed
from paperdesk.domain.interfaces import PriceFeed, StrategyOracle
from paperdesk.domain.models import BotConfig, BotState, TradeCause

AUTO_ENTRY_SIZE_PCT = 0.05  # 5% salda na wejście
HISTORY_POINTS = 15


@dataclass(frozen=True)
class ScanOutcome:
    candidate: Optional[str]
    mode: Optional[OracleMode]
    action: str  # buy | sell | hold | skip | error
    executed: bool = False
    reason: str = ""


class BotScheduler:
    def __init__(
        self,
        executor: TradeExecutor,
        feed: PriceFeed,
        oracle: StrategyOracle,
        config: Optional[BotConfig] = None,
        rng: Optional[random.Random] = None,
        entry_size_pct: float = AUTO_ENTRY_SIZE_PCT,
        history_points: int = HISTORY_POINTS,
    ):
        self.executor = executor
        self.ledger = executor.ledger
        self.bus = executor.bus
        self.clock = executor.clock
        self.feed = feed
        self.oracle = oracle
        self.rng = rng or random.Random()
        self.entry_size_pct = entry_size_pct
        self.history_points = history_points

        self._config = BotConfig()
        self._state = BotState.DISABLED
        self._last_scan_at: Optional[float] = None
        self._epoch = 0  # rośnie przy każdym wyłączeniu; unieważnia decyzje "w locie"
        if config is not None:
            self.set_config(config)

    # ---------- stan / konfiguracja ----------

    @property
    def state(self) -> BotState:
        with self.executor.lock:
            return self._state

    @property
    def config(self) -> BotConfig:
        with self.executor.lock:
            return self._config

    def set_config(self, config: Union[BotConfig, Mapping[str, Any]]) -> BotConfig:
        """Waliduje i podmienia konfigurację. Przy błędzie zostaje poprzednia (InvalidConfig)."""
        try:
            if isinstance(config, BotConfig):
                new = BotConfig.model_validate(config.model_dump())
            else:
                new = BotConfig.model_validate(dict(config))
        except ValidationError as e:
            logger.warning(f"Odrzucona konfiguracja bota: {e.error_count()} błąd(ów)")
            raise InvalidConfig(str(e)) from e

        with self.executor.lock:
            self._config = new
            if new.enabled and self._state is BotState.DISABLED:
                self._transition(BotState.IDLE, "enabled")
            elif not new.enabled and self._state is not BotState.DISABLED:
                self._disable_locked("disabled by config")
            return new

    def disable(self, reason: str = "manual") -> None:
        """Wyłącza bota i kasuje oczekujący skan. Decyzje w locie zostaną odrzucone."""
        with self.executor.lock:
            if self._config.enabled:
                self._config = self._config.model_copy(update={"enabled": False})
            self._disable_locked(reason)

    def _disable_locked(self, reason: str) -> None:
        self._epoch += 1
        self._last_scan_at = None
        if self._state is not BotState.DISABLED:
            self._transition(BotState.DISABLED, reason)

    def _transition(self, new: BotState, reason: str = "") -> None:
        old = self._state
        self._state = new
        logger.info(f"Bot: {old.value} -> {new.value} ({reason})")
        self.bus.publish(BotStateChanged(self.clock.now_ms(), old.value, new.value, reason))

    # ---------- pętla ----------

    def tick(self) -> Optional[ScanOutcome]:
        """Zewnętrzny tick. Zwraca wynik skanu albo None, gdy skanu nie było."""
        with self.executor.lock:
            if self._state is not BotState.IDLE:
                return None
            stats = self.executor.stats
            if stats.total_profit_usd >= self._config.daily_profit_target:
                target = self._config.daily_profit_target
                self._config = self._config.model_copy(update={"enabled": False})
                self._disable_locked("daily profit target")
                logger.success(f"Cel dzienny osiągnięty ({stats.total_profit_usd:.2f} >= {target:.2f} USD), bot stop.")
                self.bus.publish(BotAutoDisabled(self.clock.now_ms(), stats.total_profit_usd, target))
                return None
            now = self.clock.now()
            if self._last_scan_at is not None and now - self._last_scan_at < self._config.interval_seconds:
                return None
            self._last_scan_at = now
            self._transition(BotState.SCANNING, "interval elapsed")
            epoch = self._epoch
            config = self._config

        try:
            return self._scan(config, epoch)
        except Exception as e:
            logger.exception("Skan bota przerwany wyjątkiem")
            self.bus.publish(ScanFailed(self.clock.now_ms(), None, repr(e)))
            return ScanOutcome(None, None, "error", reason=repr(e))
        finally:
            with self.executor.lock:
                if self._state is BotState.SCANNING:
                    self._transition(BotState.IDLE, "scan done")

    def candidate_pool(self, config: BotConfig) -> List[str]:
        available = self.feed.available_symbols()
        if config.allowed_symbols:
            return [s for s in config.allowed_symbols if s in available]
        return list(available)

    def _scan(self, config: BotConfig, epoch: int) -> ScanOutcome:
        pool = self.candidate_pool(config)
        if not pool:
            logger.info("Pusta pula symboli, pomijam skan.")
            return ScanOutcome(None, None, "skip", reason="empty pool")

        candidate = self.rng.choice(pool)
        with self.executor.lock:
            held = candidate in self.ledger
            open_count = len(self.ledger)
        if not held and open_count >= config.max_open_positions:
            logger.info(f"Limit pozycji ({open_count}/{config.max_open_positions}), pomijam {candidate}.")
            return ScanOutcome(candidate, None, "skip", reason="max open positions")

        mode: OracleMode = "exit" if held else "entry"
        quote = self.feed.get_quote(candidate)
        if quote is None or not is_usable_price(quote.price):
            return self._fail(candidate, mode, "no quote")
        history = self.feed.get_history(candidate)[-self.history_points:]
        snapshot = {candidate: MarketSnapshotEntry(price=quote.price, history=tuple(history))}

        result = self._ask_oracle(snapshot, mode)
        if not isinstance(result, OracleDecision):
            return self._fail(candidate, mode, as_decision(result).reasoning)

        if mode == "exit":
            return self._apply_exit(candidate, result, quote.price, epoch)
        return self._apply_entry(candidate, result, quote.price, config, epoch)

    def _ask_oracle(self, snapshot: Mapping[str, MarketSnapshotEntry], mode: OracleMode) -> OracleResult:
        try:
            return self.oracle.evaluate(snapshot, mode)
        except Exception as e:
            # wyrocznia jest niezaufana: każdy wyjątek = nieudany skan
            logger.warning(f"Wyrocznia rzuciła wyjątek: {e!r}")
            return OracleUnavailableResult(reason=str(e) or type(e).__name__)

    def _still_valid(self, epoch: int) -> bool:
        return self._epoch == epoch and self._state is not BotState.DISABLED

    def _apply_exit(self, candidate: str, decision: OracleDecision, price: float, epoch: int) -> ScanOutcome:
        if decision.action != "sell":
            logger.info(f"Monitoring {candidate}: {decision.action}.")
            return self._done(candidate, "exit", decision, executed=False)
        with self.executor.lock:
            pos = self.ledger.get(candidate)
            if not self._still_valid(epoch) or pos is None:
                logger.info(f"Decyzja SELL {candidate} nieaktualna (bot wyłączony lub pozycja zamknięta), odrzucam.")
                return self._done(candidate, "exit", decision, executed=False, reason="stale decision")
            trade = self.executor.sell(candidate, pos.amount, price, TradeCause.AUTO_EXIT)
            return self._done(candidate, "exit", decision, executed=trade is not None)

    def _apply_entry(
        self, candidate: str, decision: OracleDecision, price: float, config: BotConfig, epoch: int
    ) -> ScanOutcome:
        if decision.action != "buy" or decision.symbol != candidate:
            return self._done(candidate, "entry", decision, executed=False)
        with self.executor.lock:
            if not self._still_valid(epoch):
                logger.info(f"Decyzja BUY {candidate} nieaktualna (bot wyłączony), odrzucam.")
                return self._done(candidate, "entry", decision, executed=False, reason="stale decision")
            if candidate in self.ledger or len(self.ledger) >= self._config.max_open_positions:
                return self._done(candidate, "entry", decision, executed=False, reason="position state changed")
            budget_usd = self.executor.balance_usd * self.entry_size_pct
            amount = compute_order_amount(budget_usd, price, candidate, self.executor.converter)
            if amount <= 0:
                return self._done(candidate, "entry", decision, executed=False, reason="zero size")
            try:
                self.executor.buy(
                    candidate,
                    amount,
                    price,
                    stop_loss=decision.stop_loss,
                    take_profit=decision.take_profit,
                    trailing=self._config.use_trailing_stop,
                    cause=TradeCause.AUTO_ENTRY,
                )
            except InsufficientFunds as e:
                logger.warning(str(e))
                return self._done(candidate, "entry", decision, executed=False, reason="insufficient funds")
            return self._done(candidate, "entry", decision, executed=True)

    def _done(
        self, candidate: str, mode: OracleMode, decision: OracleDecision, executed: bool, reason: str = ""
    ) -> ScanOutcome:
        self.bus.publish(
            ScanCompleted(self.clock.now_ms(), candidate, mode, decision.action, executed, decision.reasoning)
        )
        return ScanOutcome(candidate, mode, decision.action, executed, reason or decision.reasoning)

    def _fail(self, candidate: str, mode: OracleMode, reason: str) -> ScanOutcome:
        logger.warning(f"Skan {candidate} ({mode}) nieudany: {reason}")
        self.bus.publish(ScanFailed(self.clock.now_ms(), candidate, reason))
        return ScanOutcome(candidate, mode, "error", reason=reason)
