from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Optional
from uuid import uuid4


class Category(Enum):
    FOOD = "Food"
    GROCERIES = "Groceries"
    TRANSPORTATION = "Transportation"
    HOUSING = "Housing"
    UTILITIES = "Utilities"
    ENTERTAINMENT = "Entertainment"
    SHOPPING = "Shopping"
    HEALTHCARE = "Healthcare"
    EDUCATION = "Education"
    SUBSCRIPTIONS = "Subscriptions"
    OTHER = "Other"

    @property
    def icon(self) -> str:
        return CATEGORY_ICONS[self]


CATEGORY_ICONS = {
    Category.FOOD: "fork.knife",
    Category.GROCERIES: "cart.fill",
    Category.TRANSPORTATION: "car.fill",
    Category.HOUSING: "house.fill",
    Category.UTILITIES: "bolt.fill",
    Category.ENTERTAINMENT: "tv.fill",
    Category.SHOPPING: "bag.fill",
    Category.HEALTHCARE: "heart.fill",
    Category.EDUCATION: "book.fill",
    Category.SUBSCRIPTIONS: "repeat",
    Category.OTHER: "square.fill",
}


class CalendarUnit(Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


class Frequency(Enum):
    DAILY = "Daily"
    WEEKLY = "Weekly"
    BIWEEKLY = "Biweekly"
    MONTHLY = "Monthly"
    QUARTERLY = "Quarterly"
    YEARLY = "Yearly"

    @property
    def unit(self) -> CalendarUnit:
        return FREQUENCY_STEPS[self][0]

    @property
    def step(self) -> int:
        return FREQUENCY_STEPS[self][1]

    def monthly_equivalent(self, amount: Decimal) -> Decimal:
        """Average monthly cost of one template charging `amount` at this frequency."""
        multiplier, divisor = MONTHLY_FACTORS[self]
        return amount * multiplier / divisor


FREQUENCY_STEPS = {
    Frequency.DAILY: (CalendarUnit.DAY, 1),
    Frequency.WEEKLY: (CalendarUnit.WEEK, 1),
    Frequency.BIWEEKLY: (CalendarUnit.WEEK, 2),
    Frequency.MONTHLY: (CalendarUnit.MONTH, 1),
    Frequency.QUARTERLY: (CalendarUnit.MONTH, 3),
    Frequency.YEARLY: (CalendarUnit.YEAR, 1),
}

# (multiplier, divisor)
MONTHLY_FACTORS = {
    Frequency.DAILY: (30, 1),
    Frequency.WEEKLY: (4, 1),
    Frequency.BIWEEKLY: (2, 1),
    Frequency.MONTHLY: (1, 1),
    Frequency.QUARTERLY: (1, 3),
    Frequency.YEARLY: (1, 12),
}


class TimeFrame(Enum):
    WEEK = "Week"
    MONTH = "Month"
    YEAR = "Year"


def new_id() -> str:
    return str(uuid4())


def to_amount(value) -> Decimal:
    if isinstance(value, float):
        # go through repr so 19.99 stays 19.99 instead of its binary expansion
        value = repr(value)
    try:
        amount = value if isinstance(value, Decimal) else Decimal(value)
    except (InvalidOperation, TypeError) as e:
        raise ValueError(f"Invalid amount: {value!r}") from e
    if not amount.is_finite():
        raise ValueError(f"Invalid amount: {value!r}")
    return amount


def to_date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(value)


@dataclass
class Expense:
    amount: Decimal
    category: Category
    date: date
    description: str = ""
    is_recurring: bool = False
    recurring_expense_id: Optional[str] = None
    id: str = field(default_factory=new_id)

    def __post_init__(self):
        self.amount = to_amount(self.amount)
        self.date = to_date(self.date)
        self.category = Category(self.category)
        if self.amount < 0:
            raise ValueError("Expense amount cannot be negative")
        if self.is_recurring != (self.recurring_expense_id is not None):
            raise ValueError("is_recurring must be set exactly when recurring_expense_id is")


@dataclass
class RecurringExpense:
    amount: Decimal
    category: Category
    description: str
    frequency: Frequency
    start_date: date
    is_active: bool = True
    id: str = field(default_factory=new_id)

    def __post_init__(self):
        self.amount = to_amount(self.amount)
        self.start_date = to_date(self.start_date)
        self.category = Category(self.category)
        self.frequency = Frequency(self.frequency)
        if self.amount < 0:
            raise ValueError("Recurring expense amount cannot be negative")
