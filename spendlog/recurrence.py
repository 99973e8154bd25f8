from __future__ import annotations
from datetime import date, timedelta
from typing import Iterable, Iterator, Optional

from dateutil.relativedelta import relativedelta

from spendlog.models import CalendarUnit, Expense, Frequency, RecurringExpense, to_date


def advance(current: date, frequency: Frequency, anchor_day: Optional[int] = None) -> date:
    """Return the occurrence after `current`.

    Month and year steps keep `anchor_day` (the template's day of month)
    where the target month has it and fall back to the month's last day
    otherwise, so a series started on the 31st stays on month ends.
    """
    unit, step = frequency.unit, frequency.step
    if unit is CalendarUnit.DAY:
        return current + timedelta(days=step)
    if unit is CalendarUnit.WEEK:
        return current + timedelta(weeks=step)

    day = anchor_day or current.day
    if unit is CalendarUnit.MONTH:
        return current + relativedelta(months=step, day=day)
    return current + relativedelta(years=step, day=day)


def occurrences(template: RecurringExpense, reference: date) -> Iterator[date]:
    """Yield every occurrence of `template` from its start date up to `reference` inclusive."""
    current = template.start_date
    anchor_day = template.start_date.day

    while current <= reference:
        yield current
        following = advance(current, template.frequency, anchor_day)
        if following <= current:
            # calendar arithmetic failed to move forward
            return
        current = following


def bucket_key(day: date, frequency: Frequency) -> tuple:
    unit = frequency.unit
    if unit is CalendarUnit.DAY:
        return day.year, day.month, day.day
    if unit is CalendarUnit.WEEK:
        iso = day.isocalendar()
        return iso[0], iso[1]
    if unit is CalendarUnit.MONTH:
        return day.year, day.month
    return (day.year,)


def same_bucket(first: date, second: date, frequency: Frequency) -> bool:
    return bucket_key(first, frequency) == bucket_key(second, frequency)


def project(
        templates: Iterable[RecurringExpense],
        existing: Iterable[Expense],
        reference: date,
) -> list[Expense]:
    """Build the expenses still missing for every active template.

    An occurrence counts as covered when an expense linked to the same
    template already falls in its calendar bucket (same day, ISO week,
    month or year depending on the frequency). Inputs are not modified.
    """
    reference = to_date(reference)

    linked: dict[str, list[date]] = {}
    for expense in existing:
        if expense.recurring_expense_id is not None:
            linked.setdefault(expense.recurring_expense_id, []).append(expense.date)

    created = []
    for template in templates:
        if not template.is_active:
            continue

        covered = {bucket_key(d, template.frequency) for d in linked.get(template.id, [])}
        for occurrence in occurrences(template, reference):
            key = bucket_key(occurrence, template.frequency)
            if key in covered:
                continue
            covered.add(key)
            created.append(Expense(
                amount=template.amount,
                category=template.category,
                date=occurrence,
                description=template.description,
                is_recurring=True,
                recurring_expense_id=template.id,
            ))

    return created
