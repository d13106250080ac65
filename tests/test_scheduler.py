"""Testy automatu stanów bota i logiki skanu."""
import math
import random

import pytest
from conftest import FakeFeed, ScriptedOracle, quotes

from paperdesk.domain.dto import OracleDecision, OracleMalformed, OracleUnavailableResult
from paperdesk.domain.errors import InvalidConfig
from paperdesk.domain.events import BotAutoDisabled, ScanFailed
from paperdesk.domain.models import BotConfig, BotState


def enabled(**kwargs):
    kwargs.setdefault("enabled", True)
    kwargs.setdefault("interval_seconds", 30)
    return BotConfig(**kwargs)


class TestLifecycle:
    def test_starts_disabled_and_does_not_scan(self, engine, oracle):
        assert engine.bot_state is BotState.DISABLED
        assert engine.on_bot_tick() is None
        assert oracle.calls == []

    def test_enable_then_scan_returns_to_idle(self, engine, oracle):
        engine.set_bot_config(enabled(allowed_symbols=["AAPL"]))
        assert engine.bot_state is BotState.IDLE
        outcome = engine.on_bot_tick()
        assert outcome.candidate == "AAPL"
        assert outcome.mode == "entry"
        assert len(oracle.calls) == 1
        assert engine.bot_state is BotState.IDLE

    def test_interval_gates_scans(self, engine, oracle, clock):
        engine.set_bot_config(enabled(allowed_symbols=["AAPL"], interval_seconds=30))
        engine.on_bot_tick()
        clock.advance(10)
        assert engine.on_bot_tick() is None
        clock.advance(20)
        assert engine.on_bot_tick() is not None
        assert len(oracle.calls) == 2

    def test_disable_via_config(self, engine):
        engine.set_bot_config(enabled())
        engine.set_bot_config(enabled(enabled=False))
        assert engine.bot_state is BotState.DISABLED

    def test_invalid_config_keeps_previous(self, engine):
        engine.set_bot_config(enabled(max_open_positions=2))
        for bad in (
            {"enabled": True, "interval_seconds": "abc"},
            {"enabled": True, "max_open_positions": 0},
            {"enabled": True, "daily_profit_target": float("nan")},
            {"enabled": True, "strategy": "yolo"},
            {"enabled": True, "unknown": 1},
        ):
            with pytest.raises(InvalidConfig):
                engine.set_bot_config(bad)
        assert engine.scheduler.config.max_open_positions == 2
        assert engine.bot_state is BotState.IDLE

    def test_allowed_symbols_are_normalised(self, engine):
        cfg = engine.set_bot_config({"allowed_symbols": [" aapl", "AAPL", "tsla"]})
        assert cfg.allowed_symbols == ["AAPL", "TSLA"]


class TestEntry:
    def test_buy_decision_sizes_five_percent_of_balance(self, engine, feed):
        engine.scheduler.oracle = ScriptedOracle(
            OracleDecision(symbol="AAPL", action="buy", reasoning="higher low", stop_loss=95.0, take_profit=120.0)
        )
        engine.set_bot_config(enabled(allowed_symbols=["AAPL"], use_trailing_stop=True))
        outcome = engine.on_bot_tick()

        assert outcome.executed is True
        trade = engine.executor.history[-1]
        assert trade.cause == "auto_entry"
        assert trade.amount == pytest.approx(50.0)
        pos = engine.ledger.get("AAPL")
        assert pos.stop_loss == 95.0
        assert pos.take_profit == 120.0
        assert pos.is_trailing is True
        assert engine.executor.balance_usd == pytest.approx(95_000.0)

    def test_foreign_asset_sized_in_native_units(self, engine):
        engine.scheduler.oracle = ScriptedOracle(OracleDecision(symbol="RELIANCE.NS", action="buy"))
        engine.set_bot_config(enabled(allowed_symbols=["RELIANCE.NS"], use_trailing_stop=False))
        engine.on_bot_tick()
        pos = engine.ledger.get("RELIANCE.NS")
        assert pos.amount == pytest.approx(5000.0 * 84.50 / 2900.0)
        assert pos.is_trailing is False
        assert engine.executor.balance_usd == pytest.approx(95_000.0)

    def test_capacity_reached_skips_without_oracle(self, engine, oracle):
        engine.buy("TSLA", 1, 200.0)
        engine.set_bot_config(enabled(allowed_symbols=["AAPL"], max_open_positions=1))
        outcome = engine.on_bot_tick()
        assert outcome.action == "skip"
        assert oracle.calls == []

    @pytest.mark.parametrize("symbol", ["ERROR", "SYSTEM", "TSLA"])
    def test_unresolvable_symbol_is_not_bought(self, engine, symbol):
        engine.scheduler.oracle = ScriptedOracle(OracleDecision(symbol=symbol, action="buy"))
        engine.set_bot_config(enabled(allowed_symbols=["AAPL"]))
        outcome = engine.on_bot_tick()
        assert outcome.executed is False
        assert len(engine.ledger) == 0

    def test_snapshot_carries_price_and_recent_history(self, make_engine):
        feed = FakeFeed({"AAPL": 101.0}, histories={"AAPL": list(range(1, 31))})
        oracle = ScriptedOracle()
        engine = make_engine(feed, oracle)
        engine.set_bot_config(enabled())
        engine.on_bot_tick()
        snapshot, mode = oracle.calls[0]
        assert mode == "entry"
        assert snapshot["AAPL"].price == 101.0
        assert snapshot["AAPL"].history == tuple(range(16, 31))


class TestExit:
    def test_sell_decision_exits_full_position(self, engine):
        engine.buy("AAPL", 7, 90.0)
        engine.scheduler.oracle = ScriptedOracle(OracleDecision(symbol="AAPL", action="sell"))
        engine.set_bot_config(enabled(allowed_symbols=["AAPL"]))
        outcome = engine.on_bot_tick()
        assert outcome.mode == "exit"
        assert outcome.executed is True
        trade = engine.executor.history[-1]
        assert (trade.side, trade.cause, trade.amount, trade.price) == ("sell", "auto_exit", 7, 100.0)
        assert "AAPL" not in engine.ledger

    def test_hold_keeps_position(self, engine):
        engine.buy("AAPL", 7, 90.0)
        engine.scheduler.oracle = ScriptedOracle(OracleDecision(symbol="AAPL", action="hold"))
        engine.set_bot_config(enabled(allowed_symbols=["AAPL"]))
        outcome = engine.on_bot_tick()
        assert outcome.executed is False
        assert engine.ledger.get("AAPL").amount == 7


class TestFailures:
    @pytest.mark.parametrize(
        "result",
        [OracleMalformed(reason="gibberish"), OracleUnavailableResult(reason="timeout"), RuntimeError("boom")],
    )
    def test_failed_scan_degrades_to_hold(self, engine, result):
        engine.scheduler.oracle = ScriptedOracle(result)
        engine.set_bot_config(enabled(allowed_symbols=["AAPL"]))
        failures = []
        engine.bus.subscribe(lambda e: failures.append(e) if isinstance(e, ScanFailed) else None)

        outcome = engine.on_bot_tick()

        assert outcome.action == "error"
        assert len(failures) == 1
        assert engine.executor.history == ()
        assert engine.bot_state is BotState.IDLE
        assert any(e.severity == "error" for e in engine.event_log.entries())

    def test_missing_quote_fails_scan_without_oracle(self, make_engine):
        oracle = ScriptedOracle()
        engine = make_engine(FakeFeed({"AAPL": None}), oracle)
        engine.set_bot_config(enabled())
        assert engine.on_bot_tick().action == "error"
        assert oracle.calls == []

    @pytest.mark.parametrize("bad", [math.nan, math.inf])
    def test_non_finite_quote_fails_scan_without_oracle(self, make_engine, bad):
        oracle = ScriptedOracle(OracleDecision("AAPL", "buy"))
        engine = make_engine(FakeFeed({"AAPL": bad}), oracle)
        engine.set_bot_config(enabled())
        outcome = engine.on_bot_tick()
        assert outcome.action == "error"
        assert oracle.calls == []
        assert engine.executor.history == ()
        assert engine.executor.balance_usd == 100_000.0

    def test_whitelist_outside_universe_skips(self, engine, oracle):
        engine.set_bot_config(enabled(allowed_symbols=["ZZZ"]))
        assert engine.on_bot_tick().action == "skip"
        assert oracle.calls == []


class TestDailyTarget:
    def test_auto_disables_exactly_once(self, engine, clock):
        disabled = []
        engine.bus.subscribe(lambda e: disabled.append(e) if isinstance(e, BotAutoDisabled) else None)
        engine.set_bot_config(enabled(daily_profit_target=50.0))
        engine.buy("AAPL", 10, 100.0)
        engine.sell("AAPL", 5, 120.0)  # +100 USD

        assert engine.on_bot_tick() is None
        assert engine.bot_state is BotState.DISABLED
        assert engine.scheduler.config.enabled is False

        engine.sell("AAPL", 5, 130.0)  # zysk dalej rośnie
        clock.advance(60)
        assert engine.on_bot_tick() is None
        assert engine.bot_state is BotState.DISABLED
        assert len(disabled) == 1
        assert disabled[0].total_profit_usd == pytest.approx(100.0)


class TestInFlightRevalidation:
    def test_stop_loss_during_oracle_call_prevents_double_sell(self, engine):
        engine.buy("AAPL", 10, 100.0, stop_loss=95.0)

        def watchdog_fires(snapshot, mode):
            engine.on_price_tick(quotes(AAPL=94.0))
            return OracleDecision(symbol="AAPL", action="sell")

        engine.scheduler.oracle = ScriptedOracle(watchdog_fires)
        engine.set_bot_config(enabled(allowed_symbols=["AAPL"]))
        outcome = engine.on_bot_tick()

        sells = [t for t in engine.executor.history if t.side == "sell"]
        assert [t.cause for t in sells] == ["stop_loss"]
        assert outcome.executed is False

    def test_disable_during_oracle_call_discards_decision(self, engine):
        def user_disables(snapshot, mode):
            engine.scheduler.disable("user")
            return OracleDecision(symbol="AAPL", action="buy")

        engine.scheduler.oracle = ScriptedOracle(user_disables)
        engine.set_bot_config(enabled(allowed_symbols=["AAPL"]))
        outcome = engine.on_bot_tick()

        assert outcome.executed is False
        assert len(engine.ledger) == 0
        assert engine.bot_state is BotState.DISABLED

    def test_disable_and_reenable_during_call_still_discards(self, engine):
        def flip(snapshot, mode):
            engine.set_bot_config(enabled(enabled=False, allowed_symbols=["AAPL"]))
            engine.set_bot_config(enabled(allowed_symbols=["AAPL"]))
            return OracleDecision(symbol="AAPL", action="buy")

        engine.scheduler.oracle = ScriptedOracle(flip)
        engine.set_bot_config(enabled(allowed_symbols=["AAPL"]))
        assert engine.on_bot_tick().executed is False
        assert len(engine.ledger) == 0

    def test_panic_during_oracle_call(self, engine):
        engine.buy("AAPL", 3, 100.0)

        def panic(snapshot, mode):
            engine.panic_liquidate_all()
            return OracleDecision(symbol="AAPL", action="sell")

        engine.scheduler.oracle = ScriptedOracle(panic)
        engine.set_bot_config(enabled(allowed_symbols=["AAPL"]))
        engine.on_bot_tick()

        causes = [t.cause for t in engine.executor.history if t.side == "sell"]
        assert causes == ["panic_sell"]
        assert engine.bot_state is BotState.DISABLED


def test_seeded_selection_is_reproducible(make_engine, clock):
    def picks(seed):
        oracle = ScriptedOracle()
        engine = make_engine(FakeFeed({"A": 1.0, "B": 2.0, "C": 3.0, "D": 4.0}), oracle, rng=random.Random(seed))
        engine.set_bot_config(enabled(interval_seconds=1))
        for _ in range(8):
            engine.on_bot_tick()
            clock.advance(1)
        return [list(snapshot)[0] for snapshot, _ in oracle.calls]

    first = picks(42)
    assert len(first) == 8
    assert first == picks(42)
