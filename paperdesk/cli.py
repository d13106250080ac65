import argparse
import random
import sys
import time

from loguru import logger

from paperdesk.app.engine import PortfolioEngine
from paperdesk.app.runtime import EngineRuntime
from paperdesk.backend.data.market_data import MarketDataService
from paperdesk.backend.oracle.gemini import GeminiStrategyOracle
from paperdesk.config import settings
from paperdesk.domain.errors import InvalidConfig
from paperdesk.domain.models import BotConfig
from paperdesk.infra.currency import format_money
from paperdesk.infra.logging import setup_logging
from paperdesk.report import positions_frame, stats_frame, trades_frame


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="paperdesk", description="Papierowy rachunek z botem (symulacja, bez realnych zleceń).")
    sub = p.add_subparsers(dest="cmd", required=True)

    run = sub.add_parser("run", help="Pętla: tick cenowy + tick bota, aż do Ctrl+C")
    scan = sub.add_parser("scan", help="Jeden skan bota i raport")
    for sp in (run, scan):
        sp.add_argument("--symbols", nargs="*", default=[], help="Whitelist symboli (domyślnie wszystkie)")
        sp.add_argument("--max-positions", type=int, default=3)
        sp.add_argument("--target", type=float, default=5000.0, help="Dzienny cel zysku w USD")
        sp.add_argument("--no-trailing", action="store_true")
        sp.add_argument("--seed", type=int, default=settings.RANDOM_SEED)
    run.add_argument("--interval", type=int, default=30, help="Co ile sekund bot skanuje")
    run.add_argument("--duration", type=float, default=None, help="Zakończ po N sekundach")

    quote = sub.add_parser("quote", help="Pokaż kurs")
    quote.add_argument("symbol", type=str)
    return p


def build_engine(args) -> PortfolioEngine:
    rng = random.Random(args.seed)
    feed = MarketDataService(rng=random.Random(args.seed))
    engine = PortfolioEngine(feed, GeminiStrategyOracle(), rng=rng)
    engine.set_bot_config(
        BotConfig(
            enabled=True,
            interval_seconds=getattr(args, "interval", 30),
            max_open_positions=args.max_positions,
            use_trailing_stop=not args.no_trailing,
            allowed_symbols=args.symbols,
            daily_profit_target=args.target,
        )
    )
    return engine


def print_report(engine: PortfolioEngine) -> None:
    snap = engine.get_snapshot()
    print(f"\n=== KONTO ({snap.bot_state.value}) ===")
    print(f"Saldo   : {format_money(snap.balance_usd)}")
    print(f"Equity  : {format_money(snap.equity_usd)}")
    print("\n=== POZYCJE ===")
    pos = positions_frame(snap)
    print(pos.to_string(index=False) if not pos.empty else "(brak)")
    print("\n=== TRANSAKCJE ===")
    trades = trades_frame(snap.trades)
    print(trades.tail(20).to_string(index=False) if not trades.empty else "(brak)")
    print("\n=== STATYSTYKI ===")
    print(stats_frame(snap.stats).to_string(index=False))
    print("\n=== LOG ===")
    for e in engine.event_log.entries()[-10:]:
        print(f"[{e.severity:>7}] {e.message}")
    print()


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(settings.LOG_LEVEL, settings.LOG_FILE)

    if args.cmd == "quote":
        q = MarketDataService().get_quote(args.symbol.upper())
        if q is None:
            print("Brak kursu.")
            return 1
        print(f"{q.symbol}: {q.price:.2f} ({q.change:+.2f}, {q.change_percent:+.2f}%) [{q.source}]")
        return 0

    try:
        engine = build_engine(args)
    except InvalidConfig as e:
        logger.error(f"Błędna konfiguracja: {e}")
        return 2

    if args.cmd == "scan":
        engine.refresh_prices()
        outcome = engine.on_bot_tick()
        logger.info(f"Skan: {outcome}")
        print_report(engine)
        return 0

    runtime = EngineRuntime(engine, settings.PRICE_TICK_SEC, settings.BOT_TICK_SEC)
    runtime.start()
    started = time.monotonic()
    try:
        while args.duration is None or time.monotonic() - started < args.duration:
            runtime.wait(1.0)
    except KeyboardInterrupt:
        logger.info("Przerwano.")
        runtime.stop(timeout=5)
        print_report(engine)
        return 130
    runtime.stop(timeout=5)
    print_report(engine)
    return 0


if __name__ == "__main__":
    sys.exit(main())
