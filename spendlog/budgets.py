from __future__ import annotations
from datetime import date
from decimal import Decimal
from typing import Optional

from spendlog import analytics
from spendlog.config import BUDGETS_FILE
from spendlog.errors import PersistenceError, ValidationError
from spendlog.models import Category, TimeFrame, to_amount
from spendlog.storage import Storage


class BudgetTracker:
    """Monthly spending ceilings per category."""

    def __init__(self, storage: Optional[Storage] = None, budgets: Optional[dict] = None):
        self.storage = storage
        self._budgets: dict[Category, Decimal] = dict(budgets or {})

    @classmethod
    def open(cls, storage: Storage) -> BudgetTracker:
        return cls(storage, storage.load_budgets() or {})

    def set_budget(self, category: Category, amount) -> None:
        category, amount = Category(category), to_amount(amount)
        if amount < 0:
            raise ValidationError(f"Budget for {category.value} cannot be negative")
        self._budgets[category] = amount
        self._persist()

    def clear_budget(self, category: Category) -> bool:
        if category not in self._budgets:
            return False
        del self._budgets[category]
        self._persist()
        return True

    def get_budget(self, category: Category) -> Decimal:
        return self._budgets.get(category, Decimal(0))

    def as_dict(self) -> dict[Category, Decimal]:
        return dict(self._budgets)

    def progress(
            self,
            expenses,
            category: Category,
            time_frame: TimeFrame = TimeFrame.MONTH,
            day: Optional[date] = None,
    ) -> Decimal:
        spent = analytics.total_expenses(expenses, category, time_frame, day)
        return analytics.budget_progress(spent, self.get_budget(category))

    def _persist(self) -> None:
        if self.storage is not None and not self.storage.save_budgets(self._budgets):
            raise PersistenceError(BUDGETS_FILE)
