"""Statystyki bota liczone ze zrealizowanych transakcji (czysty reduktor)."""
import math
from dataclasses import dataclass, replace

from paperdesk.domain.models import BotStats

PROFIT_FACTOR_INFINITE = math.inf


@dataclass(frozen=True)
class StatsSummary:
    total_trades: int
    win_rate: float  # %
    profit_factor: float  # math.inf gdy brak strat, a są zyski
    total_profit_usd: float
    max_drawdown: float
    peak_pnl: float


def profit_factor(gross_profit: float, gross_loss: float) -> float:
    if gross_loss > 0:
        return gross_profit / gross_loss
    if gross_profit > 0:
        return PROFIT_FACTOR_INFINITE
    return 0.0


def format_profit_factor(pf: float) -> str:
    return "∞" if math.isinf(pf) else f"{pf:.2f}"


class StatsAccumulator:
    @staticmethod
    def apply(stats: BotStats, realized_pnl: float) -> BotStats:
        total = stats.total_profit_usd + realized_pnl
        peak = max(stats.peak_pnl, total)
        return replace(
            stats,
            wins=stats.wins + 1 if realized_pnl > 0 else stats.wins,
            losses=stats.losses + 1 if realized_pnl <= 0 else stats.losses,
            total_profit_usd=total,
            gross_profit=stats.gross_profit + realized_pnl if realized_pnl > 0 else stats.gross_profit,
            gross_loss=stats.gross_loss + abs(realized_pnl) if realized_pnl < 0 else stats.gross_loss,
            peak_pnl=peak,
            max_drawdown=max(stats.max_drawdown, peak - total),
        )

    @staticmethod
    def summarize(stats: BotStats) -> StatsSummary:
        total = stats.wins + stats.losses
        win_rate = (stats.wins / total * 100) if total > 0 else 0.0
        return StatsSummary(
            total_trades=total,
            win_rate=win_rate,
            profit_factor=profit_factor(stats.gross_profit, stats.gross_loss),
            total_profit_usd=stats.total_profit_usd,
            max_drawdown=stats.max_drawdown,
            peak_pnl=stats.peak_pnl,
        )
