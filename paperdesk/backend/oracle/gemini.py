from __future__ import annotations

import json
from typing import Any, Dict, List, Mapping, Optional

import requests
from loguru import logger

from paperdesk.backend.oracle.parsing import parse_oracle_text
from paperdesk.config import Settings, settings as default_settings
from paperdesk.domain.dto import MarketSnapshotEntry, OracleDecision, OracleMode, OracleResult, OracleUnavailableResult
from paperdesk.domain.errors import OracleUnavailable
from paperdesk.domain.interfaces import StrategyOracle

GOALS = {
    "entry": "Identify the single best BUY opportunity.",
    "exit": "Analyze if the current asset should be SOLD immediately due to market structure breakdown.",
}

PROMPT = """Role: Crisis fund manager.
Task: {goal}
Data: {data} ('p' = price, 'h' = last ticks, most recent last)

Rules:
1. If prices in 'h' drop more than 2% in a straight line it is a falling knife: never BUY.
2. Only BUY on a clear higher-low structure in 'h'. Avoid buying tops.
3. If 'p' is below the lowest point of 'h' by a margin, SELL. Capital preservation first.
4. Select ONE symbol and an action: "buy", "sell" or "hold".
5. Suggest a stop loss (sl) and take profit (tp) in the asset's price units.

Return ONLY a raw JSON object, no markdown:
{{"symbol": "AAPL", "action": "buy", "reasoning": "higher low formed", "sl": 150.20, "tp": 165.00}}
Reasoning: max 10 words, no quotes."""


def clean_snapshot(snapshot: Mapping[str, MarketSnapshotEntry], points: int = 15) -> List[Dict[str, Any]]:
    """Kompaktowy zapis dla modelu; odrzuca wpisy bez ceny lub bez historii."""
    out = []
    for symbol, entry in snapshot.items():
        history = [float(h) for h in entry.history if h and h > 0][-points:]
        if entry.price and entry.price > 0 and history:
            out.append({"s": symbol, "p": float(entry.price), "h": history})
    return out


class GeminiStrategyOracle(StrategyOracle):
    """
    Wyrocznia oparta na Gemini (REST generateContent).
    Zawsze zwraca OracleResult; błędy sieci/HTTP -> OracleUnavailableResult.
    """

    def __init__(self, cfg: Optional[Settings] = None, session: Optional[requests.Session] = None):
        self.cfg = cfg or default_settings
        self.session = session or requests.Session()

    def evaluate(self, snapshot: Mapping[str, MarketSnapshotEntry], mode: OracleMode) -> OracleResult:
        if not self.cfg.GEMINI_API_KEY:
            return OracleDecision(symbol="SYSTEM", action="hold", reasoning="Missing GEMINI_API_KEY.")
        data = clean_snapshot(snapshot, self.cfg.HISTORY_POINTS)
        if not data:
            return OracleDecision(symbol="MARKET", action="hold", reasoning="No valid price data available to scan.")

        prompt = PROMPT.format(goal=GOALS[mode], data=json.dumps(data, separators=(",", ":")))
        try:
            text = self._generate(prompt)
        except OracleUnavailable as e:
            logger.warning(f"Gemini niedostępny: {e}")
            return OracleUnavailableResult(reason=str(e))
        return parse_oracle_text(text)

    def _generate(self, prompt: str) -> str:
        url = f"{self.cfg.GEMINI_BASE_URL}/models/{self.cfg.GEMINI_MODEL}:generateContent"
        body = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {"maxOutputTokens": 1000},
        }
        try:
            r = self.session.post(
                url,
                params={"key": self.cfg.GEMINI_API_KEY},
                json=body,
                timeout=self.cfg.HTTP_TIMEOUT_SEC,
            )
            r.raise_for_status()
            payload = r.json()
        except requests.RequestException as e:
            raise OracleUnavailable(f"request failed: {e}") from e
        except ValueError as e:
            raise OracleUnavailable(f"non-JSON reply: {e}") from e

        try:
            parts = payload["candidates"][0]["content"]["parts"]
            text = "".join(p.get("text", "") for p in parts)
        except (KeyError, IndexError, TypeError, AttributeError) as e:
            raise OracleUnavailable(f"empty response: {e!r}") from e
        if not text.strip():
            raise OracleUnavailable("empty response text")
        return text
