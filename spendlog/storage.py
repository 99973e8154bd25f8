import json
from abc import ABC, abstractmethod
from datetime import date
from decimal import Decimal
from pathlib import Path

from spendlog.config import (
    BUDGETS_FILE, EXPENSES_FILE, PREFERENCES_FILE, RECURRING_EXPENSES_FILE
)
from spendlog.models import Category, Expense, Frequency, RecurringExpense, to_amount


class EnhancedJSONEncoder(json.JSONEncoder):
    def default(self, obj):
        if isinstance(obj, date):
            return obj.isoformat()
        if isinstance(obj, Decimal):
            return str(obj)
        if isinstance(obj, (Category, Frequency)):
            return obj.value
        return super().default(obj)


def expense_to_dict(expense: Expense) -> dict:
    return {
        "id": expense.id,
        "amount": expense.amount,
        "category": expense.category,
        "date": expense.date,
        "description": expense.description,
        "isRecurring": expense.is_recurring,
        "recurringExpenseId": expense.recurring_expense_id,
    }


def expense_from_dict(data: dict) -> Expense:
    return Expense(
        id=data["id"],
        amount=data["amount"],
        category=Category(data["category"]),
        date=date.fromisoformat(data["date"][:10]),
        description=data.get("description", ""),
        is_recurring=data.get("isRecurring", False),
        recurring_expense_id=data.get("recurringExpenseId"),
    )


def recurring_to_dict(template: RecurringExpense) -> dict:
    return {
        "id": template.id,
        "amount": template.amount,
        "category": template.category,
        "description": template.description,
        "frequency": template.frequency,
        "startDate": template.start_date,
        "isActive": template.is_active,
    }


def recurring_from_dict(data: dict) -> RecurringExpense:
    return RecurringExpense(
        id=data["id"],
        amount=data["amount"],
        category=Category(data["category"]),
        description=data.get("description", ""),
        frequency=Frequency(data["frequency"]),
        start_date=date.fromisoformat(data["startDate"][:10]),
        is_active=data.get("isActive", True),
    )


def budgets_to_dict(budgets: dict) -> dict:
    return {category.value: amount for category, amount in budgets.items()}


def budgets_from_dict(data: dict) -> dict:
    budgets = {}
    for name, amount in data.items():
        try:
            budgets[Category(name)] = to_amount(amount)
        except (ValueError, ArithmeticError) as e:
            print(f"Warning: Skipping invalid budget {name!r}: {e}")
    return budgets


class Storage(ABC):
    """Load/save contract for the three independent stores and preferences.

    ``load_*`` returns None when nothing has been saved yet.
    ``save_*`` returns True on success and False on an I/O failure.
    """

    @abstractmethod
    def load_expenses(self) -> list[Expense] | None: ...

    @abstractmethod
    def save_expenses(self, expenses: list[Expense]) -> bool: ...

    @abstractmethod
    def load_recurring_expenses(self) -> list[RecurringExpense] | None: ...

    @abstractmethod
    def save_recurring_expenses(self, templates: list[RecurringExpense]) -> bool: ...

    @abstractmethod
    def load_budgets(self) -> dict[Category, Decimal] | None: ...

    @abstractmethod
    def save_budgets(self, budgets: dict[Category, Decimal]) -> bool: ...

    @abstractmethod
    def load_preferences(self) -> dict | None: ...

    @abstractmethod
    def save_preferences(self, preferences: dict) -> bool: ...


class JsonStorage(Storage):
    """Each store lives in its own JSON file inside `directory`."""

    def __init__(self, directory):
        self.directory = Path(directory)

    def _path(self, name: str) -> Path:
        return self.directory / name

    def _read(self, name: str):
        filepath = self._path(name)
        if not filepath.exists():
            return None
        try:
            return json.loads(filepath.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            print(f"Error loading {name}: {e}")
            return None

    def _write(self, name: str, data) -> bool:
        try:
            json_str = json.dumps(data, cls=EnhancedJSONEncoder, indent=2)
            self.directory.mkdir(parents=True, exist_ok=True)
            filepath = self._path(name)
            # write next to the target first so a failed write keeps the previous file
            tmp_path = filepath.with_suffix(filepath.suffix + ".tmp")
            tmp_path.write_text(json_str, encoding="utf-8")
            tmp_path.replace(filepath)
            return True
        except (OSError, TypeError, ValueError) as e:
            print(f"Error saving {name}: {e}")
            return False

    def _read_records(self, name: str, decode):
        data = self._read(name)
        if data is None:
            return None
        if not isinstance(data, list):
            print(f"Error loading {name}: expected a JSON array")
            return None

        records = []
        for item in data:
            try:
                records.append(decode(item))
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                item_id = item.get("id") if isinstance(item, dict) else None
                print(f"Warning: Skipping invalid record {item_id} in {name}: {e}")
        return records

    def load_expenses(self):
        return self._read_records(EXPENSES_FILE, expense_from_dict)

    def save_expenses(self, expenses):
        return self._write(EXPENSES_FILE, [expense_to_dict(e) for e in expenses])

    def load_recurring_expenses(self):
        return self._read_records(RECURRING_EXPENSES_FILE, recurring_from_dict)

    def save_recurring_expenses(self, templates):
        return self._write(RECURRING_EXPENSES_FILE, [recurring_to_dict(t) for t in templates])

    def load_budgets(self):
        data = self._read(BUDGETS_FILE)
        if data is None:
            return None
        if not isinstance(data, dict):
            print(f"Error loading {BUDGETS_FILE}: expected a JSON object")
            return None
        return budgets_from_dict(data)

    def save_budgets(self, budgets):
        return self._write(BUDGETS_FILE, budgets_to_dict(budgets))

    def load_preferences(self):
        data = self._read(PREFERENCES_FILE)
        return data if isinstance(data, dict) else None

    def save_preferences(self, preferences):
        return self._write(PREFERENCES_FILE, preferences)


class MemoryStorage(Storage):
    """Keeps the encoded stores in memory; used for tests and throwaway sessions."""

    def __init__(self):
        self.data: dict[str, str] = {}
        self.fail_saves = False

    def _write(self, name: str, payload) -> bool:
        if self.fail_saves:
            print(f"Error saving {name}: storage unavailable")
            return False
        self.data[name] = json.dumps(payload, cls=EnhancedJSONEncoder)
        return True

    def _read(self, name: str):
        if name not in self.data:
            return None
        return json.loads(self.data[name])

    def load_expenses(self):
        data = self._read(EXPENSES_FILE)
        return None if data is None else [expense_from_dict(item) for item in data]

    def save_expenses(self, expenses):
        return self._write(EXPENSES_FILE, [expense_to_dict(e) for e in expenses])

    def load_recurring_expenses(self):
        data = self._read(RECURRING_EXPENSES_FILE)
        return None if data is None else [recurring_from_dict(item) for item in data]

    def save_recurring_expenses(self, templates):
        return self._write(RECURRING_EXPENSES_FILE, [recurring_to_dict(t) for t in templates])

    def load_budgets(self):
        data = self._read(BUDGETS_FILE)
        return None if data is None else budgets_from_dict(data)

    def save_budgets(self, budgets):
        return self._write(BUDGETS_FILE, budgets_to_dict(budgets))

    def load_preferences(self):
        return self._read(PREFERENCES_FILE)

    def save_preferences(self, preferences):
        return self._write(PREFERENCES_FILE, preferences)
