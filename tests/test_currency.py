"""Testy przeliczania walut i formatowania kwot."""
import itertools

import pytest

from paperdesk.infra.currency import CURRENCY_RATES, CurrencyConverter, format_money


class TestCurrencyConverter:
    def setup_method(self):
        self.cc = CurrencyConverter()

    def test_convert_through_usd(self):
        assert self.cc.convert(1.0, "USD", "INR") == pytest.approx(84.50)
        assert self.cc.convert(84.50, "INR", "USD") == pytest.approx(1.0)
        assert self.cc.convert(92.0, "EUR", "GBP") == pytest.approx(78.0)

    def test_round_trip_all_pairs(self):
        """convert(convert(x, A, B), B, A) == x for every supported pair."""
        for a, b in itertools.product(CURRENCY_RATES, repeat=2):
            x = 1234.5678
            assert self.cc.convert(self.cc.convert(x, a, b), b, a) == pytest.approx(x, rel=1e-12)

    def test_unknown_currency_defaults_to_rate_one(self):
        assert self.cc.convert(10.0, "XYZ", "USD") == pytest.approx(10.0)
        assert self.cc.convert(10.0, "USD", "XYZ") == pytest.approx(10.0)

    def test_asset_currency_from_suffix(self):
        assert self.cc.asset_currency("RELIANCE.NS") == "INR"
        assert self.cc.asset_currency("tcs.bo") == "INR"
        assert self.cc.asset_currency("7203.T") == "JPY"
        assert self.cc.asset_currency("SAP.DE") == "EUR"
        assert self.cc.asset_currency("AAPL") == "USD"
        assert self.cc.asset_currency("BINANCE:BTCUSDT") == "USD"

    def test_to_and_from_usd_use_asset_currency(self):
        assert self.cc.to_usd(2900.0, "RELIANCE.NS") == pytest.approx(2900.0 / 84.50)
        assert self.cc.from_usd(1.0, "RELIANCE.NS") == pytest.approx(84.50)
        assert self.cc.to_usd(175.5, "AAPL") == 175.5

    def test_display_price(self):
        assert self.cc.display_price(100.0, "AAPL", "EUR") == pytest.approx(92.0)


def test_format_money():
    assert format_money(1234.5) == "$1,234.50"
    assert format_money(-5) == "-$5.00"
    assert format_money(10, "INR") == "₹10.00"
