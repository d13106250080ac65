from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from paperdesk.domain.dto import TradeRecord


class TradeCause(str, Enum):
    MARKET = "market"
    STOP_LOSS = "stop_loss"
    TAKE_PROFIT = "take_profit"
    AUTO_ENTRY = "auto_entry"
    AUTO_EXIT = "auto_exit"
    PANIC_SELL = "panic_sell"


class StrategyVariant(str, Enum):
    CONSERVATIVE = "conservative"
    AGGRESSIVE = "aggressive"
    DEGEN = "degen"


class BotState(str, Enum):
    DISABLED = "disabled"
    IDLE = "idle"
    SCANNING = "scanning"


@dataclass
class Position:
    """Otwarta pozycja. Ceny w walucie natywnej aktywa, wycena w USD."""
    symbol: str
    amount: float
    avg_price: float
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None
    is_trailing: bool = False
    current_value_usd: float = 0.0
    pnl_usd: float = 0.0
    pnl_percent: float = 0.0


class BotConfig(BaseModel):
    """
    Konfiguracja bota. Walidowana przez pydantic; błędne wartości
    (nie-liczby, NaN, poza zakresem) nie przechodzą.
    """
    model_config = ConfigDict(extra="forbid", frozen=True)

    enabled: bool = False
    risk_per_trade: float = Field(default=1.0, gt=0, le=100, allow_inf_nan=False)  # % salda
    interval_seconds: int = Field(default=30, ge=1)
    max_open_positions: int = Field(default=3, ge=1)
    strategy: StrategyVariant = StrategyVariant.CONSERVATIVE
    use_trailing_stop: bool = True
    allowed_symbols: List[str] = Field(default_factory=list)  # pusta lista = wszystkie
    daily_profit_target: float = Field(default=5000.0, gt=0, allow_inf_nan=False)  # USD

    @field_validator("allowed_symbols")
    @classmethod
    def _symbols(cls, v: List[str]) -> List[str]:
        out: List[str] = []
        for s in v:
            s = s.strip().upper()
            if s and s not in out:
                out.append(s)
        return out


@dataclass(frozen=True)
class BotStats:
    wins: int = 0
    losses: int = 0
    total_profit_usd: float = 0.0
    gross_profit: float = 0.0
    gross_loss: float = 0.0
    peak_pnl: float = 0.0
    max_drawdown: float = 0.0
    start_time: int = 0  # epoch ms


@dataclass(frozen=True)
class PortfolioSnapshot:
    balance_usd: float
    positions: Tuple[Position, ...]
    stats: BotStats
    bot_state: BotState
    bot_config: BotConfig
    trades: Tuple[TradeRecord, ...] = field(default_factory=tuple)

    @property
    def positions_value_usd(self) -> float:
        return sum(p.current_value_usd for p in self.positions)

    @property
    def equity_usd(self) -> float:
        return self.balance_usd + self.positions_value_usd
