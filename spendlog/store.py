from __future__ import annotations
import threading
from dataclasses import replace
from datetime import date
from typing import Callable, NamedTuple, Optional

from spendlog.config import (
    AVAILABLE_CURRENCIES, DEFAULT_CURRENCY, EXPENSES_FILE, PREFERENCES_FILE, RECURRING_EXPENSES_FILE
)
from spendlog.errors import PersistenceError, ValidationError
from spendlog.models import Category, Expense, RecurringExpense
from spendlog.recurrence import project
from spendlog.storage import Storage


class Snapshot(NamedTuple):
    expenses: tuple[Expense, ...]
    recurring_expenses: tuple[RecurringExpense, ...]


def validate_amount(amount) -> None:
    if amount is None or amount <= 0:
        raise ValidationError("Amount must be greater than zero")


def validate_category(category) -> None:
    if not isinstance(category, Category):
        raise ValidationError("A category is required")


class ExpenseStore:
    """The session's expenses and recurring templates.

    Every mutation runs under one lock, is saved through `storage` before
    returning, and keeps its in-memory effect even when the save fails
    (a PersistenceError is raised afterwards). Readers should work on
    `snapshot()` so they never see a half-applied change.
    """

    def __init__(self, storage: Optional[Storage] = None, clock: Callable[[], date] = date.today):
        self.storage = storage
        self.clock = clock
        self.currency_code = DEFAULT_CURRENCY
        self._expenses: list[Expense] = []
        self._recurring: list[RecurringExpense] = []
        self._lock = threading.RLock()

    @classmethod
    def open(cls, storage: Storage, clock: Callable[[], date] = date.today) -> ExpenseStore:
        """Load everything from `storage` and bring recurring expenses up to date.

        Missing or unreadable stores start out empty.
        """
        store = cls(storage, clock)
        with store._lock:
            store._expenses = list(storage.load_expenses() or [])
            store._recurring = list(storage.load_recurring_expenses() or [])
            preferences = storage.load_preferences() or {}
            code = preferences.get("currencyCode")
            if code in AVAILABLE_CURRENCIES:
                store.currency_code = code
            created = store._project()
            if created:
                print(f"✓ Added {len(created)} recurring expenses")
                try:
                    store._commit(expenses=True)
                except PersistenceError as e:
                    print(f"Error saving recurring expenses: {e}")
        return store

    # ===== READS =====
    def snapshot(self) -> Snapshot:
        with self._lock:
            return Snapshot(tuple(self._expenses), tuple(self._recurring))

    @property
    def expenses(self) -> tuple[Expense, ...]:
        return self.snapshot().expenses

    @property
    def recurring_expenses(self) -> tuple[RecurringExpense, ...]:
        return self.snapshot().recurring_expenses

    def get_expense(self, expense_id: str) -> Expense | None:
        with self._lock:
            return next((e for e in self._expenses if e.id == expense_id), None)

    def get_recurring_expense(self, template_id: str) -> RecurringExpense | None:
        with self._lock:
            return next((t for t in self._recurring if t.id == template_id), None)

    def filtered_expenses(
            self,
            category: Optional[Category] = None,
            start: Optional[date] = None,
            end: Optional[date] = None,
    ) -> list[Expense]:
        """Expenses matching the category and inclusive date range, newest first."""
        matches = [
            e for e in self.snapshot().expenses
            if (category is None or e.category == category)
            and (start is None or e.date >= start)
            and (end is None or e.date <= end)
        ]
        matches.sort(key=lambda e: e.date, reverse=True)
        return matches

    # ===== EXPENSES =====
    def add_expense(self, expense: Expense) -> Expense:
        validate_amount(expense.amount)
        validate_category(expense.category)
        with self._lock:
            self._check_template_link(expense)
            if self.get_expense(expense.id) is not None:
                raise ValidationError(f"Expense {expense.id} already exists")
            self._expenses.append(expense)
            self._commit(expenses=True)
        return expense

    def update_expense(self, expense: Expense) -> bool:
        validate_amount(expense.amount)
        validate_category(expense.category)
        with self._lock:
            self._check_template_link(expense)
            for i, e in enumerate(self._expenses):
                if e.id == expense.id:
                    self._expenses[i] = expense
                    self._commit(expenses=True)
                    return True
        return False

    def delete_expense(self, expense_id: str) -> bool:
        with self._lock:
            count = len(self._expenses)
            self._expenses = [e for e in self._expenses if e.id != expense_id]
            if len(self._expenses) == count:
                return False
            self._commit(expenses=True)
        return True

    # ===== RECURRING EXPENSES =====
    def add_recurring_expense(self, template: RecurringExpense) -> RecurringExpense:
        self._validate_template(template)
        with self._lock:
            if self.get_recurring_expense(template.id) is not None:
                raise ValidationError(f"Recurring expense {template.id} already exists")
            self._recurring.append(template)
            created = self._project()
            self._commit(recurring=True, expenses=bool(created))
        return template

    def update_recurring_expense(self, template: RecurringExpense) -> bool:
        self._validate_template(template)
        with self._lock:
            for i, t in enumerate(self._recurring):
                if t.id == template.id:
                    self._recurring[i] = template
                    created = self._project()
                    self._commit(recurring=True, expenses=bool(created))
                    return True
        return False

    def set_recurring_active(self, template_id: str, active: bool) -> bool:
        with self._lock:
            template = self.get_recurring_expense(template_id)
            if template is None:
                return False
            return self.update_recurring_expense(replace(template, is_active=active))

    def delete_recurring_expense(self, template_id: str) -> bool:
        """Remove a template and every expense generated from it."""
        with self._lock:
            count = len(self._recurring)
            self._recurring = [t for t in self._recurring if t.id != template_id]
            if len(self._recurring) == count:
                return False
            self._expenses = [e for e in self._expenses if e.recurring_expense_id != template_id]
            self._commit(recurring=True, expenses=True)
        return True

    def run_projection(self, reference: Optional[date] = None) -> list[Expense]:
        """Create the missing recurring expenses up to `reference` (default: today)."""
        with self._lock:
            created = self._project(reference)
            if created:
                self._commit(expenses=True)
        return created

    # ===== PREFERENCES =====
    def set_currency(self, code: str) -> bool:
        if code not in AVAILABLE_CURRENCIES:
            return False
        with self._lock:
            self.currency_code = code
            if self.storage is not None and \
                    not self.storage.save_preferences({"currencyCode": code}):
                raise PersistenceError(PREFERENCES_FILE)
        return True

    # ===== HELPERS =====
    @staticmethod
    def _validate_template(template: RecurringExpense) -> None:
        validate_amount(template.amount)
        validate_category(template.category)
        if not template.description.strip():
            raise ValidationError("A description is required for recurring expenses")

    def _check_template_link(self, expense: Expense) -> None:
        if expense.recurring_expense_id is not None and \
                self.get_recurring_expense(expense.recurring_expense_id) is None:
            raise ValidationError(f"Unknown recurring expense {expense.recurring_expense_id}")

    def _project(self, reference: Optional[date] = None) -> list[Expense]:
        created = project(self._recurring, self._expenses, reference or self.clock())
        self._expenses.extend(created)
        return created

    def _commit(self, expenses: bool = False, recurring: bool = False) -> None:
        if self.storage is None:
            return
        failed = []
        if recurring and not self.storage.save_recurring_expenses(list(self._recurring)):
            failed.append(RECURRING_EXPENSES_FILE)
        if expenses and not self.storage.save_expenses(list(self._expenses)):
            failed.append(EXPENSES_FILE)
        if failed:
            raise PersistenceError(", ".join(failed))
