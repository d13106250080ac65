class PaperDeskError(Exception):
    """Ogólny błąd silnika portfela."""


class InsufficientFunds(PaperDeskError):
    """Za mało gotówki na zakup; saldo bez zmian."""

    def __init__(self, symbol: str, required_usd: float, available_usd: float):
        super().__init__(
            f"Insufficient funds for {symbol}: need {required_usd:.2f} USD, have {available_usd:.2f} USD"
        )
        self.symbol = symbol
        self.required_usd = required_usd
        self.available_usd = available_usd


class StaleOrMissingQuote(PaperDeskError):
    """Brak świeżej ceny dla symbolu w tym ticku."""


class OracleUnavailable(PaperDeskError):
    """Wyrocznia nie odpowiedziała (sieć, HTTP, brak klucza)."""


class OracleMalformedResponse(PaperDeskError):
    """Odpowiedź wyroczni nie daje się sparsować."""


class InvalidConfig(PaperDeskError):
    """Konfiguracja odrzucona; obowiązuje poprzednia."""
