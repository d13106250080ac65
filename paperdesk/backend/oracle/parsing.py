"""
Parsowanie odpowiedzi wyroczni na ścisły wynik:
OracleDecision | OracleMalformed. Brak pola nigdy nie wywraca wołającego.
"""
from __future__ import annotations

import json
import math
import re
from typing import Any, Mapping, Optional

from paperdesk.domain.dto import OracleDecision, OracleMalformed, OracleResult
from paperdesk.domain.errors import OracleMalformedResponse

ACTIONS = {"buy", "sell", "hold"}
_FENCE = re.compile(r"```(?:json)?", re.IGNORECASE)


def extract_json_object(text: str) -> str:
    """Zdejmuje ```json ... ``` i wycina najszerszy {...} z gadaniny wokół."""
    text = _FENCE.sub("", text or "").strip()
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end < start:
        raise OracleMalformedResponse(f"no JSON object in response: {text[:80]!r}")
    return text[start:end + 1]


def _level(value: Any) -> Optional[float]:
    try:
        level = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(level) or math.isinf(level) or level <= 0:
        return None
    return level


def decision_from_payload(payload: Any) -> OracleDecision:
    if not isinstance(payload, Mapping):
        raise OracleMalformedResponse(f"expected JSON object, got {type(payload).__name__}")
    symbol = payload.get("symbol")
    action = payload.get("action")
    if not isinstance(symbol, str) or not symbol.strip():
        raise OracleMalformedResponse("missing 'symbol'")
    if not isinstance(action, str) or action.strip().lower() not in ACTIONS:
        raise OracleMalformedResponse(f"bad 'action': {action!r}")
    reasoning = payload.get("reasoning")
    return OracleDecision(
        symbol=symbol.strip().upper(),
        action=action.strip().lower(),
        reasoning=reasoning if isinstance(reasoning, str) else "",
        stop_loss=_level(payload.get("sl", payload.get("stopLoss"))),
        take_profit=_level(payload.get("tp", payload.get("takeProfit"))),
    )


def parse_oracle_text(text: str) -> OracleResult:
    try:
        payload = json.loads(extract_json_object(text))
        return decision_from_payload(payload)
    except (OracleMalformedResponse, json.JSONDecodeError) as e:
        return OracleMalformed(reason=f"malformed oracle response: {e}", raw=(text or "")[:500])
