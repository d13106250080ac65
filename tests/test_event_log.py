"""Testy szyny zdarzeń i ograniczonego dziennika."""
from paperdesk.domain.dto import TradeRecord
from paperdesk.domain.events import BotStateChanged, EventBus, PositionOpened, ScanFailed, TradeFilled
from paperdesk.infra.event_log import EventLog


class TestEventLog:
    def test_keeps_most_recent_entries(self):
        log = EventLog(maxlen=3)
        for i in range(5):
            log.append(f"m{i}")
        assert [e.message for e in log.entries()] == ["m2", "m3", "m4"]

    def test_unknown_severity_falls_back_to_info(self):
        log = EventLog()
        assert log.append("x", severity="whale").severity == "info"

    def test_journals_events_from_bus(self):
        bus = EventBus()
        log = EventLog()
        log.attach(bus)
        trade = TradeRecord("AAPL", "buy", 1, 100.0, 5, "market")
        bus.publish(PositionOpened(5, "AAPL", 1, 100.0, "market"))
        bus.publish(TradeFilled(5, trade))
        bus.publish(BotStateChanged(6, "idle", "scanning"))
        bus.publish(BotStateChanged(7, "idle", "disabled", "manual"))
        bus.publish(ScanFailed(8, "AAPL", "timeout"))
        entries = log.entries()
        assert len(entries) == 3
        assert entries[0].symbol == "AAPL"
        assert entries[0].ts == 5
        assert entries[-1].severity == "error"


class TestEventBus:
    def test_failing_handler_does_not_break_publish(self):
        bus = EventBus()
        seen = []

        def broken(event):
            raise RuntimeError("observer bug")

        bus.subscribe(broken)
        bus.subscribe(seen.append)
        bus.publish(ScanFailed(1, None, "x"))
        assert len(seen) == 1

    def test_unsubscribe(self):
        bus = EventBus()
        seen = []
        unsubscribe = bus.subscribe(seen.append)
        unsubscribe()
        bus.publish(ScanFailed(1, None, "x"))
        assert seen == []
