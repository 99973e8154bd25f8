"""Parse one-line entries such as ``"Costco 126 mar 3"`` or ``"lunch 3/10 12.50"``."""

from __future__ import annotations
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import NamedTuple, Optional

from spendlog.errors import ValidationError

MONTHS = ["jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec"]


class QuickEntry(NamedTuple):
    amount: Decimal
    date: date
    description: str


def _is_month(token: str) -> bool:
    return any(token.lower().startswith(m) for m in MONTHS)


def _numeric(token: str) -> Optional[Decimal]:
    digits = "".join(ch for ch in token if ch in "0123456789.")
    if not digits:
        return None
    try:
        return Decimal(digits)
    except InvalidOperation:
        return None


def _follows_month(tokens: list[str], index: int) -> bool:
    return index > 0 and _is_month(tokens[index - 1])


def _safe_date(year: int, month: int, day: int) -> Optional[date]:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def _parse_date(tokens: list[str], today: date) -> Optional[date]:
    slashed = next((t for t in tokens if "/" in t), None)
    if slashed is not None:
        parts = slashed.split("/")
        if len(parts) == 2 and parts[0].isdigit() and parts[1].isdigit():
            month, day = int(parts[0]), int(parts[1])
            if 1 <= month <= 12 and 1 <= day <= 31:
                return _safe_date(today.year, month, day)
        return None

    for i, token in enumerate(tokens):
        if _is_month(token):
            month = MONTHS.index(token.lower()[:3]) + 1
            day = 1
            if i + 1 < len(tokens) and tokens[i + 1].isdigit():
                day = int(tokens[i + 1])
            return _safe_date(today.year, month, day)
    return None


def parse_quick_entry(text: str, today: Optional[date] = None) -> QuickEntry:
    """Split free text into amount, date and description.

    The amount is the last numeric-looking token that is not a date
    (``3/10``) or a day following a month name. Dates without a year use
    the current one; anything unparsable falls back to `today`.
    """
    today = today or date.today()
    tokens = text.split()

    amount_index = None
    amount = None
    for i in range(len(tokens) - 1, -1, -1):
        token = tokens[i]
        if "/" in token or _follows_month(tokens, i):
            continue
        value = _numeric(token)
        if value is not None:
            amount_index, amount = i, value
            break

    if amount is None or amount <= 0:
        raise ValidationError("Please include an amount (e.g., 'Costco 126')")

    description = " ".join(
        token for i, token in enumerate(tokens)
        if i != amount_index
        and not _is_month(token)
        and not (token.isdigit() and _follows_month(tokens, i))
        and "/" not in token
    ).strip()

    return QuickEntry(amount, _parse_date(tokens, today) or today, description)
