from typing import Dict, List, Mapping, Optional

from paperdesk.domain.models import Position
from paperdesk.infra.currency import CurrencyConverter

EPSILON = 1e-6  # pozycja poniżej tej ilości znika z księgi


def compute_order_amount(budget_usd: float, native_price: float, symbol: str, converter: CurrencyConverter) -> float:
    """Ile jednostek aktywa kupimy za budżet w USD (cena natywna -> USD)."""
    price_usd = converter.to_usd(native_price, symbol)
    if price_usd <= 0:
        return 0.0
    return budget_usd / price_usd


class PositionLedger:
    """
    Księga pozycji: symbol -> Position.

    Nie pilnuje salda ani historii; wołana wyłącznie przez TradeExecutor
    (oraz Watchdog przy podnoszeniu trailing stopa), pod jego blokadą.
    """

    def __init__(self, converter: Optional[CurrencyConverter] = None):
        self.converter = converter or CurrencyConverter()
        self._positions: Dict[str, Position] = {}

    def __contains__(self, symbol: str) -> bool:
        return symbol in self._positions

    def __len__(self) -> int:
        return len(self._positions)

    def get(self, symbol: str) -> Optional[Position]:
        return self._positions.get(symbol)

    def symbols(self) -> List[str]:
        return list(self._positions)

    def positions(self) -> List[Position]:
        """Kopie pozycji (bezpieczne do oddania na zewnątrz)."""
        return [Position(**vars(p)) for p in self._positions.values()]

    def apply_buy(
        self,
        symbol: str,
        amount: float,
        native_price: float,
        stop_loss: Optional[float] = None,
        take_profit: Optional[float] = None,
        trailing: bool = False,
    ) -> Position:
        pos = self._positions.get(symbol)
        if pos is None:
            pos = Position(
                symbol=symbol,
                amount=amount,
                avg_price=native_price,
                stop_loss=stop_loss,
                take_profit=take_profit,
                is_trailing=trailing,
            )
            self._positions[symbol] = pos
        else:
            # średnia ważona kosztu
            total_amount = pos.amount + amount
            pos.avg_price = (pos.amount * pos.avg_price + amount * native_price) / total_amount
            pos.amount = total_amount
            if stop_loss is not None:
                pos.stop_loss = stop_loss
            if take_profit is not None:
                pos.take_profit = take_profit
            pos.is_trailing = pos.is_trailing or trailing
        self._mark(pos, native_price)
        return pos

    def apply_sell(self, symbol: str, amount: float, native_price: float) -> Optional[Position]:
        """Zwraca pozycję po sprzedaży albo None, gdy została zlikwidowana."""
        pos = self._positions.get(symbol)
        if pos is None:
            return None
        pos.amount = max(pos.amount - amount, 0.0)
        if pos.amount <= EPSILON:
            del self._positions[symbol]
            return None
        self._mark(pos, native_price)
        return pos

    def raise_stop(self, symbol: str, level: float) -> bool:
        """Podnosi stop-loss; nigdy go nie obniża."""
        pos = self._positions.get(symbol)
        if pos is None:
            return False
        if pos.stop_loss is not None and level <= pos.stop_loss:
            return False
        pos.stop_loss = level
        return True

    def revalue(self, quotes: Mapping[str, float]) -> List[str]:
        """Przelicza wycenę pozycji, dla których mamy świeżą cenę. Reszta zostaje bez zmian."""
        updated = []
        for symbol, pos in self._positions.items():
            price = quotes.get(symbol)
            if price is None:
                continue
            self._mark(pos, price)
            updated.append(symbol)
        return updated

    def pop_all(self) -> List[Position]:
        closed = list(self._positions.values())
        self._positions.clear()
        return closed

    def _mark(self, pos: Position, native_price: float) -> None:
        current = pos.amount * self.converter.to_usd(native_price, pos.symbol)
        cost_basis = pos.amount * self.converter.to_usd(pos.avg_price, pos.symbol)
        pos.current_value_usd = current
        pos.pnl_usd = current - cost_basis
        pos.pnl_percent = (pos.pnl_usd / cost_basis * 100) if cost_basis != 0 else 0.0
