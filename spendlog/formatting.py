"""Display formatting for amounts."""

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP

from spendlog.config import AVAILABLE_CURRENCIES, DEFAULT_CURRENCY

CENT = Decimal("0.01")


def round_cents(amount: Decimal) -> Decimal:
    return Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


def currency_symbol(currency_code: str) -> str:
    symbol, _ = AVAILABLE_CURRENCIES.get(currency_code, AVAILABLE_CURRENCIES[DEFAULT_CURRENCY])
    return symbol


def format_currency(amount, currency_code: str = DEFAULT_CURRENCY, include_sign: bool = True) -> str:
    """Format an amount for display, rounded to cents.

    Example:
        >>> format_currency(Decimal("1234.5"))
        '$1,234.50'
        >>> format_currency(Decimal("9.999"), "EUR")
        '€10.00'
    """
    formatted = f"{round_cents(amount):,.2f}"
    return f"{currency_symbol(currency_code)}{formatted}" if include_sign else formatted
