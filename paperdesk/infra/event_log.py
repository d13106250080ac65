from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, List, Optional

from paperdesk.domain.events import DomainEvent, EventBus

SEVERITIES = ("info", "success", "warning", "error")


@dataclass(frozen=True)
class LogEntry:
    ts: int
    message: str
    severity: str = "info"
    symbol: Optional[str] = None


class EventLog:
    """Bufor cykliczny ostatnich wpisów dla użytkownika (domyślnie 50)."""

    def __init__(self, maxlen: int = 50, now_ms: Optional[Callable[[], int]] = None):
        self._entries: Deque[LogEntry] = deque(maxlen=maxlen)
        self._now_ms = now_ms or (lambda: 0)

    def append(self, message: str, severity: str = "info", symbol: Optional[str] = None, ts: Optional[int] = None) -> LogEntry:
        if severity not in SEVERITIES:
            severity = "info"
        entry = LogEntry(ts=self._now_ms() if ts is None else ts, message=message, severity=severity, symbol=symbol)
        self._entries.append(entry)
        return entry

    def on_event(self, event: DomainEvent) -> None:
        if not event.journaled:
            return
        message, severity, symbol = event.describe()
        self.append(message, severity, symbol, ts=event.ts)

    def attach(self, bus: EventBus) -> Callable[[], None]:
        return bus.subscribe(self.on_event)

    def entries(self) -> List[LogEntry]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)
