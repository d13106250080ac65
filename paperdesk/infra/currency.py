"""
Przeliczanie walut przez USD (stała tabela kursów, bez stanu).

Cała księgowość silnika (saldo, koszt, PnL, statystyki) odbywa się w USD;
ceny aktywów zostają w ich walucie natywnej.
"""
from __future__ import annotations

from typing import Dict, Mapping, Optional

# ile jednostek waluty za 1 USD
CURRENCY_RATES: Dict[str, float] = {
    "USD": 1.0,
    "INR": 84.50,
    "EUR": 0.92,
    "GBP": 0.78,
    "JPY": 150.25,
}

CURRENCY_SIGNS: Dict[str, str] = {
    "USD": "$",
    "INR": "₹",
    "EUR": "€",
    "GBP": "£",
    "JPY": "¥",
}

# sufiks giełdy -> waluta lokalna
SUFFIX_CURRENCY: Dict[str, str] = {
    ".NS": "INR",
    ".BO": "INR",
    ".T": "JPY",
    ".L": "GBP",
    ".DE": "EUR",
    ".PA": "EUR",
    ".AS": "EUR",
}


class CurrencyConverter:
    def __init__(self, rates: Optional[Mapping[str, float]] = None, suffixes: Optional[Mapping[str, str]] = None):
        self.rates = dict(rates or CURRENCY_RATES)
        self.suffixes = dict(suffixes or SUFFIX_CURRENCY)

    def _rate(self, currency: str) -> float:
        # nieznana waluta = kurs 1
        rate = self.rates.get(currency.upper())
        return rate if rate else 1.0

    def convert(self, value: float, from_ccy: str, to_ccy: str) -> float:
        value_usd = value / self._rate(from_ccy)
        return value_usd * self._rate(to_ccy)

    def asset_currency(self, symbol: str) -> str:
        sym = symbol.upper()
        for suffix, ccy in self.suffixes.items():
            if sym.endswith(suffix):
                return ccy
        return "USD"

    def to_usd(self, native_value: float, symbol: str) -> float:
        return self.convert(native_value, self.asset_currency(symbol), "USD")

    def from_usd(self, usd_value: float, symbol: str) -> float:
        return self.convert(usd_value, "USD", self.asset_currency(symbol))

    def display_price(self, native_price: float, symbol: str, target_ccy: str) -> float:
        """Cena natywna aktywa w walucie wybranej do wyświetlania."""
        return self.convert(native_price, self.asset_currency(symbol), target_ccy)


def format_money(value: float, currency: str = "USD") -> str:
    sign = CURRENCY_SIGNS.get(currency.upper(), "")
    if value < 0:
        return f"-{sign}{abs(value):,.2f}"
    return f"{sign}{value:,.2f}"
