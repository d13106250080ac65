# paperdesk/backend/data/market_data.py
from __future__ import annotations

import math
import random
import threading
from dataclasses import dataclass
from typing import Dict, List, Optional

import pandas as pd
import requests
from loguru import logger

from paperdesk.config import Settings, settings as default_settings
from paperdesk.domain.dto import Quote
from paperdesk.domain.interfaces import Clock, PriceFeed
from paperdesk.infra.clock import SystemClock

DEFAULT_SYMBOLS = [
    "AAPL", "TSLA", "NVDA", "BINANCE:BTCUSDT", "BINANCE:ETHUSDT",
    "RELIANCE.NS", "TCS.NS", "HDFCBANK.NS", "NIFTYBEES.NS", "TATAMOTORS.NS",
]

# ceny odniesienia dla trybu bez klucza / awarii API (waluta natywna)
REFERENCE_PRICES: Dict[str, float] = {
    "AAPL": 175.50,
    "TSLA": 240.00,
    "NVDA": 850.00,
    "BINANCE:BTCUSDT": 65000.0,
    "BINANCE:ETHUSDT": 3500.0,
    "RELIANCE.NS": 2900.0,
    "TCS.NS": 4000.0,
    "HDFCBANK.NS": 1500.0,
    "NIFTYBEES.NS": 240.0,
    "TATAMOTORS.NS": 980.0,
}


@dataclass
class MarketDataConfig:
    api_key: Optional[str]
    base_url: str = "https://finnhub.io/api/v1"
    timeout: float = 10.0
    history_minutes: int = 60
    synthetic_points: int = 30
    jitter_pct: float = 0.01  # +/- 0.5% wokół ceny odniesienia

    @staticmethod
    def from_settings(cfg: Optional[Settings] = None) -> "MarketDataConfig":
        cfg = cfg or default_settings
        return MarketDataConfig(api_key=cfg.FINNHUB_API_KEY, base_url=cfg.FINNHUB_BASE_URL, timeout=cfg.HTTP_TIMEOUT_SEC)


class MarketDataService(PriceFeed):
    """
    Kursy i historia z Finnhub (quote + 1-minutowe świece).

    Nigdy nie blokuje wyceny: przy braku klucza lub błędzie API zwraca
    ostatni znany kurs ('cached'), a gdy go nie ma, estymatę syntetyczną
    wokół ceny odniesienia ('synthetic').
    """

    def __init__(
        self,
        cfg: Optional[MarketDataConfig] = None,
        session: Optional[requests.Session] = None,
        rng: Optional[random.Random] = None,
        clock: Optional[Clock] = None,
        symbols: Optional[List[str]] = None,
    ) -> None:
        self.cfg = cfg or MarketDataConfig.from_settings()
        self.rng = rng or random.Random()
        self.clock = clock or SystemClock()
        self._symbols: List[str] = list(symbols or DEFAULT_SYMBOLS)
        self._last_live: Dict[str, Quote] = {}
        # tick cenowy i tick bota wołają serwis z różnych wątków
        self._shared_session = session
        self._local = threading.local()
        self._lock = threading.Lock()

    @property
    def session(self) -> requests.Session:
        """Wstrzyknięta sesja albo osobna requests.Session na wątek."""
        if self._shared_session is not None:
            return self._shared_session
        s = getattr(self._local, "session", None)
        if s is None:
            s = self._local.session = requests.Session()
        return s

    # ---------- uniwersum symboli ----------

    def available_symbols(self) -> List[str]:
        with self._lock:
            return list(self._symbols)

    def add_symbol(self, symbol: str) -> None:
        symbol = symbol.strip().upper()
        with self._lock:
            if symbol and symbol not in self._symbols:
                self._symbols.insert(0, symbol)

    # ---------- kursy ----------

    def get_quote(self, symbol: str) -> Optional[Quote]:
        live = self._fetch_quote(symbol) if self.cfg.api_key else None
        with self._lock:
            if live is not None:
                self._last_live[symbol] = live
                return live
            cached = self._last_live.get(symbol)
        if cached is not None:
            return Quote(cached.symbol, cached.price, cached.change, cached.change_percent, cached.ts, "cached")
        return self._synthetic_quote(symbol)

    def _fetch_quote(self, symbol: str) -> Optional[Quote]:
        data = self._get("quote", {"symbol": symbol})
        if not isinstance(data, dict):
            return None
        price = data.get("c")
        # Finnhub zwraca zera dla nieznanego symbolu
        if not isinstance(price, (int, float)) or not math.isfinite(price) or price <= 0:
            return None
        change = data.get("d")
        change_pct = data.get("dp")
        return Quote(
            symbol=symbol,
            price=float(price),
            change=float(change) if isinstance(change, (int, float)) else 0.0,
            change_percent=float(change_pct) if isinstance(change_pct, (int, float)) else 0.0,
            ts=self.clock.now_ms(),
            source="live",
        )

    def _synthetic_quote(self, symbol: str) -> Quote:
        base = REFERENCE_PRICES.get(symbol, 100.0)
        with self._lock:
            u_price, u_change, u_pct = self.rng.random(), self.rng.random(), self.rng.random()
        return Quote(
            symbol=symbol,
            price=base * (1 + (u_price - 0.5) * self.cfg.jitter_pct),
            change=(u_change - 0.5) * 5,
            change_percent=(u_pct - 0.5) * 2,
            ts=self.clock.now_ms(),
            source="synthetic",
        )

    # ---------- historia ----------

    def get_history(self, symbol: str) -> List[float]:
        if self.cfg.api_key:
            df = self.get_candles(symbol)
            if not df.empty:
                return df["close"].astype(float).tolist()
        return self._synthetic_history(symbol)

    def get_candles(self, symbol: str, resolution: str = "1") -> pd.DataFrame:
        """DataFrame: timestamp (UTC), close. Pusty przy braku danych."""
        to_ts = int(self.clock.now())
        from_ts = to_ts - self.cfg.history_minutes * 60
        data = self._get(
            "stock/candle",
            {"symbol": symbol, "resolution": resolution, "from": from_ts, "to": to_ts},
        )
        empty = pd.DataFrame(columns=["timestamp", "close"])
        if not isinstance(data, dict) or data.get("s") != "ok":
            return empty
        ts, closes = data.get("t") or [], data.get("c") or []
        if not ts or len(ts) != len(closes):
            return empty
        df = pd.DataFrame({"timestamp": pd.to_datetime(ts, unit="s", utc=True), "close": closes})
        df["close"] = pd.to_numeric(df["close"], errors="coerce")
        # tylko dodatnie, skończone zamknięcia (NaN i inf odpadają)
        df = df[df["close"].between(0, math.inf, inclusive="neither")]
        df = df.sort_values("timestamp").reset_index(drop=True)
        return df

    def _synthetic_history(self, symbol: str) -> List[float]:
        price = REFERENCE_PRICES.get(symbol, 100.0)
        with self._lock:
            draws = [self.rng.random() for _ in range(self.cfg.synthetic_points)]
        out = []
        for u in draws:
            price = price * (1 + (u - 0.5) * self.cfg.jitter_pct)
            out.append(round(price, 2))
        return out

    def _get(self, path: str, params: Dict[str, object]) -> Optional[object]:
        try:
            r = self.session.get(
                f"{self.cfg.base_url}/{path}",
                params={**params, "token": self.cfg.api_key},
                timeout=self.cfg.timeout,
            )
            r.raise_for_status()
            return r.json()
        except (requests.RequestException, ValueError) as e:
            logger.warning(f"Finnhub {path} {params.get('symbol')}: {e}")
            return None
