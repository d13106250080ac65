from __future__ import annotations

import threading
from typing import Callable, List, Optional

from loguru import logger

from paperdesk.app.engine import PortfolioEngine


class PeriodicTask:
    """Wątek wołający fn co `interval` sekund, aż do stop()."""

    def __init__(self, name: str, interval: float, fn: Callable[[], object], stop_event: Optional[threading.Event] = None):
        self.name = name
        self.interval = interval
        self.fn = fn
        self._stop = stop_event or threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                self.fn()
            except Exception:
                # pojedynczy nieudany tick nie zatrzymuje pętli
                logger.exception(f"[{self.name}] tick nieudany")
            self._stop.wait(self.interval)


class EngineRuntime:
    """Dwa niezależne timery: tick cenowy (wycena + Watchdog) i tick bota."""

    def __init__(self, engine: PortfolioEngine, price_interval: float, bot_interval: float):
        self.engine = engine
        self._stop = threading.Event()
        self.tasks: List[PeriodicTask] = [
            PeriodicTask("price-tick", price_interval, engine.refresh_prices, self._stop),
            PeriodicTask("bot-tick", bot_interval, engine.on_bot_tick, self._stop),
        ]

    def start(self) -> None:
        logger.info(f"Start runtime: {', '.join(f'{t.name} co {t.interval}s' for t in self.tasks)}")
        for task in self.tasks:
            task.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        for task in self.tasks:
            task.join(timeout)
        logger.info("Runtime zatrzymany.")

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._stop.wait(timeout)
