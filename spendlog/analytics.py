"""Read-only spending queries.

Every function takes the expenses to look at (usually
``store.snapshot().expenses``) and never modifies them.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, Optional

from dateutil.relativedelta import relativedelta

from spendlog.config import TREND_PERIODS
from spendlog.formatting import round_cents
from spendlog.models import Category, Expense, RecurringExpense, TimeFrame, to_date

ZERO = Decimal(0)


def period_start(time_frame: TimeFrame, day: date) -> date:
    if time_frame is TimeFrame.WEEK:
        return day - timedelta(days=day.weekday())
    if time_frame is TimeFrame.MONTH:
        return day.replace(day=1)
    return day.replace(month=1, day=1)


def period_step(time_frame: TimeFrame, count: int = 1) -> relativedelta:
    if time_frame is TimeFrame.WEEK:
        return relativedelta(weeks=count)
    if time_frame is TimeFrame.MONTH:
        return relativedelta(months=count)
    return relativedelta(years=count)


def time_frame_window(time_frame: TimeFrame, day: date) -> tuple[date, date]:
    """Half-open [start, end) window of the week (ISO, Monday first), month or year holding `day`."""
    start = period_start(time_frame, to_date(day))
    return start, start + period_step(time_frame)


def in_window(expense: Expense, window: tuple[date, date]) -> bool:
    start, end = window
    return start <= expense.date < end


def total_expenses(
        expenses: Iterable[Expense],
        category: Optional[Category] = None,
        time_frame: TimeFrame = TimeFrame.MONTH,
        day: Optional[date] = None,
) -> Decimal:
    window = time_frame_window(time_frame, day or date.today())
    return sum(
        (e.amount for e in expenses
         if (category is None or e.category == category) and in_window(e, window)),
        ZERO,
    )


def expenses_by_category(
        expenses: Iterable[Expense],
        time_frame: TimeFrame = TimeFrame.MONTH,
        day: Optional[date] = None,
) -> list[tuple[Category, Decimal]]:
    """Per-category totals for the window, biggest first; empty categories are left out.

    Equal totals keep the Category declaration order.
    """
    window = time_frame_window(time_frame, day or date.today())
    totals: dict[Category, Decimal] = defaultdict(lambda: ZERO)
    for expense in expenses:
        if in_window(expense, window):
            totals[expense.category] += expense.amount

    breakdown = [(category, totals[category]) for category in Category if totals[category] > 0]
    breakdown.sort(key=lambda item: item[1], reverse=True)
    return breakdown


def filtered_total(
        expenses: Iterable[Expense],
        time_frame: TimeFrame = TimeFrame.MONTH,
        day: Optional[date] = None,
        excluded: Iterable[Category] = (),
) -> Decimal:
    excluded = set(excluded)
    return sum(
        (amount for category, amount in expenses_by_category(expenses, time_frame, day)
         if category not in excluded),
        ZERO,
    )


def recurring_expenses_by_category(
        templates: Iterable[RecurringExpense],
) -> list[tuple[Category, Decimal]]:
    """Monthly-equivalent cost of the active templates per category, biggest first."""
    totals: dict[Category, Decimal] = defaultdict(lambda: ZERO)
    for template in templates:
        if template.is_active:
            totals[template.category] += template.frequency.monthly_equivalent(template.amount)

    breakdown = [
        (category, round_cents(totals[category]))
        for category in Category
        if round_cents(totals[category]) > 0
    ]
    breakdown.sort(key=lambda item: item[1], reverse=True)
    return breakdown


def monthly_expenses(expenses: Iterable[Expense], day: date) -> Decimal:
    return total_expenses(expenses, None, TimeFrame.MONTH, day)


def trend_series(
        expenses: Iterable[Expense],
        time_frame: TimeFrame = TimeFrame.MONTH,
        day: Optional[date] = None,
        excluded: Iterable[Category] = (),
        periods: int = TREND_PERIODS,
) -> list[tuple[date, Decimal]]:
    """Totals for the `periods` most recent periods ending with the one holding `day`, oldest first.

    Periods without spending are reported as zero.
    """
    excluded = set(excluded)
    included = [e for e in expenses if e.category not in excluded]
    current = period_start(time_frame, to_date(day or date.today()))

    series = []
    for back in range(periods - 1, -1, -1):
        start = current - period_step(time_frame, back)
        window = (start, start + period_step(time_frame))
        series.append((start, sum((e.amount for e in included if in_window(e, window)), ZERO)))
    return series


def budget_progress(spent: Decimal, budget: Decimal) -> Decimal:
    """Fraction of the budget used; 0 when there is no budget. Not clamped at 1."""
    if budget > 0:
        return Decimal(spent) / Decimal(budget)
    return ZERO


def budget_remaining(spent: Decimal, budget: Decimal) -> Decimal:
    return Decimal(budget) - Decimal(spent)
