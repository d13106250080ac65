from typing import Iterable

import pandas as pd

from paperdesk.app.stats import StatsAccumulator, format_profit_factor
from paperdesk.domain.dto import TradeRecord
from paperdesk.domain.models import BotStats, PortfolioSnapshot


def positions_frame(snapshot: PortfolioSnapshot) -> pd.DataFrame:
    cols = ["symbol", "amount", "avg_price", "stop_loss", "take_profit", "trailing", "value_usd", "pnl_usd", "pnl_pct"]
    rows = [
        (p.symbol, p.amount, p.avg_price, p.stop_loss, p.take_profit, p.is_trailing,
         round(p.current_value_usd, 2), round(p.pnl_usd, 2), round(p.pnl_percent, 2))
        for p in snapshot.positions
    ]
    return pd.DataFrame(rows, columns=cols)


def trades_frame(trades: Iterable[TradeRecord]) -> pd.DataFrame:
    df = pd.DataFrame(
        [(t.ts, t.symbol, t.side, t.amount, t.price, t.cause) for t in trades],
        columns=["ts", "symbol", "side", "amount", "price", "cause"],
    )
    if not df.empty:
        df["ts"] = pd.to_datetime(df["ts"], unit="ms", utc=True)
    return df


def stats_frame(stats: BotStats) -> pd.DataFrame:
    s = StatsAccumulator.summarize(stats)
    return pd.DataFrame(
        {
            "metric": ["trades", "win_rate_pct", "profit_factor", "total_profit_usd", "peak_pnl_usd", "max_drawdown_usd"],
            "value": [
                s.total_trades,
                round(s.win_rate, 1),
                format_profit_factor(s.profit_factor),
                round(s.total_profit_usd, 2),
                round(s.peak_pnl, 2),
                round(s.max_drawdown, 2),
            ],
        }
    )
