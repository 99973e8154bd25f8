import asyncio
import io
import json
import tempfile
import threading
import unittest
from contextlib import redirect_stdout
from dataclasses import replace
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path

from spendlog import analytics
from spendlog.budgets import BudgetTracker
from spendlog.cli import ExpenseTrackerCLI
from spendlog.errors import InsightError, PersistenceError, ValidationError
from spendlog.formatting import format_currency
from spendlog.insights import (
    InsightCoordinator, InsightService, insight_context, parse_categorization
)
from spendlog.models import (
    CalendarUnit, Category, Expense, Frequency, RecurringExpense, TimeFrame
)
from spendlog.quick_entry import parse_quick_entry
from spendlog.recurrence import advance, occurrences, project, same_bucket
from spendlog.storage import JsonStorage, MemoryStorage
from spendlog.store import ExpenseStore

TODAY = date(2024, 3, 15)


def template(amount="10", category=Category.SUBSCRIPTIONS, frequency=Frequency.MONTHLY,
             start=date(2024, 1, 1), description="Streaming", **kwargs):
    return RecurringExpense(
        amount=Decimal(amount),
        category=category,
        description=description,
        frequency=frequency,
        start_date=start,
        **kwargs
    )


def expense(amount, category=Category.FOOD, day=TODAY, description=""):
    return Expense(amount=Decimal(amount), category=category, date=day, description=description)


class TestModels(unittest.TestCase):
    def test_category_raw_values_and_icons(self):
        """Categories keep their display names as raw values"""
        self.assertEqual(Category("Groceries"), Category.GROCERIES)
        self.assertEqual(len(Category), 11)
        self.assertEqual(Category.FOOD.icon, "fork.knife")
        self.assertEqual(Category.SUBSCRIPTIONS.icon, "repeat")

    def test_frequency_table(self):
        """Each frequency maps to a calendar unit and step count"""
        self.assertEqual((Frequency.DAILY.unit, Frequency.DAILY.step), (CalendarUnit.DAY, 1))
        self.assertEqual((Frequency.BIWEEKLY.unit, Frequency.BIWEEKLY.step), (CalendarUnit.WEEK, 2))
        self.assertEqual((Frequency.QUARTERLY.unit, Frequency.QUARTERLY.step), (CalendarUnit.MONTH, 3))
        self.assertEqual((Frequency.YEARLY.unit, Frequency.YEARLY.step), (CalendarUnit.YEAR, 1))
        self.assertEqual(Frequency("Monthly"), Frequency.MONTHLY)

    def test_expense_coerces_amount_and_date(self):
        """Floats become exact decimals and datetimes become dates"""
        e = Expense(amount=19.99, category=Category.FOOD, date=datetime(2024, 3, 1, 18, 30))
        self.assertEqual(e.amount, Decimal("19.99"))
        self.assertEqual(e.date, date(2024, 3, 1))
        self.assertTrue(e.id)

    def test_expense_invariants(self):
        """Negative amounts and a dangling recurring flag are rejected"""
        with self.assertRaises(ValueError):
            expense("-1")
        with self.assertRaises(ValueError):
            Expense(amount=Decimal(1), category=Category.FOOD, date=TODAY, is_recurring=True)
        with self.assertRaises(ValueError):
            Expense(amount=Decimal(1), category=Category.FOOD, date=TODAY, recurring_expense_id="x")
        with self.assertRaises(ValueError):
            Expense(amount=Decimal("NaN"), category=Category.FOOD, date=TODAY)
        with self.assertRaises(ValueError):
            Expense(amount=float("inf"), category=Category.FOOD, date=TODAY)


class TestRecurrence(unittest.TestCase):
    def test_month_end_series(self):
        """A series started on Jan 31 lands on each month's last valid day"""
        t = template(start=date(2024, 1, 31))
        self.assertEqual(
            list(occurrences(t, date(2024, 4, 1))),
            [date(2024, 1, 31), date(2024, 2, 29), date(2024, 3, 31)]
        )

    def test_future_start_is_empty(self):
        """Nothing is due before the start date"""
        t = template(start=date(2024, 6, 1))
        self.assertEqual(list(occurrences(t, TODAY)), [])
        self.assertEqual(project([t], [], TODAY), [])

    def test_daily_and_biweekly(self):
        """Day and week steps advance by fixed lengths"""
        daily = template(frequency=Frequency.DAILY, start=date(2024, 3, 1))
        self.assertEqual(len(list(occurrences(daily, date(2024, 3, 5)))), 5)

        biweekly = template(frequency=Frequency.BIWEEKLY, start=date(2024, 1, 1))
        self.assertEqual(
            list(occurrences(biweekly, date(2024, 1, 31))),
            [date(2024, 1, 1), date(2024, 1, 15), date(2024, 1, 29)]
        )

    def test_quarterly_and_yearly_leap_day(self):
        """Quarters step three months; Feb 29 falls back to Feb 28 in common years"""
        self.assertEqual(advance(date(2024, 1, 31), Frequency.QUARTERLY, 31), date(2024, 4, 30))
        yearly = template(frequency=Frequency.YEARLY, start=date(2024, 2, 29))
        self.assertEqual(
            list(occurrences(yearly, date(2028, 3, 1))),
            [date(2024, 2, 29), date(2025, 2, 28), date(2026, 2, 28),
             date(2027, 2, 28), date(2028, 2, 29)]
        )

    def test_same_bucket(self):
        """Buckets follow the frequency's calendar unit"""
        self.assertTrue(same_bucket(date(2024, 3, 1), date(2024, 3, 31), Frequency.MONTHLY))
        self.assertFalse(same_bucket(date(2024, 3, 31), date(2024, 4, 1), Frequency.QUARTERLY))
        # Monday and Sunday of ISO week 10
        self.assertTrue(same_bucket(date(2024, 3, 4), date(2024, 3, 10), Frequency.WEEKLY))
        self.assertFalse(same_bucket(date(2024, 3, 10), date(2024, 3, 11), Frequency.BIWEEKLY))
        # ISO week 1 of 2025 starts in December 2024
        self.assertTrue(same_bucket(date(2024, 12, 30), date(2025, 1, 2), Frequency.WEEKLY))

    def test_project_creates_linked_expenses(self):
        """Generated expenses copy the template and point back to it"""
        t = template(amount="15.99", start=date(2024, 1, 10))
        created = project([t], [], TODAY)

        self.assertEqual([e.date for e in created], [date(2024, 1, 10), date(2024, 2, 10), date(2024, 3, 10)])
        for e in created:
            self.assertEqual(e.amount, Decimal("15.99"))
            self.assertEqual(e.category, Category.SUBSCRIPTIONS)
            self.assertEqual(e.description, "Streaming")
            self.assertTrue(e.is_recurring)
            self.assertEqual(e.recurring_expense_id, t.id)

    def test_project_is_idempotent(self):
        """Running projection again creates nothing new"""
        t = template(frequency=Frequency.WEEKLY, start=date(2024, 1, 3))
        first = project([t], [], TODAY)
        self.assertEqual(project([t], first, TODAY), [])

    def test_bucket_match_not_exact_date(self):
        """An expense moved within its month still covers that month"""
        t = template(start=date(2024, 1, 5))
        moved = Expense(amount=Decimal(10), category=Category.SUBSCRIPTIONS, date=date(2024, 2, 20),
                        is_recurring=True, recurring_expense_id=t.id)
        created = project([t], [moved], TODAY)
        self.assertEqual([e.date for e in created], [date(2024, 1, 5), date(2024, 3, 5)])

    def test_inactive_templates_are_skipped(self):
        """Paused templates produce nothing"""
        t = template(is_active=False)
        self.assertEqual(project([t], [], TODAY), [])

    def test_frequency_change_keeps_history(self):
        """Switching cadence adds the new occurrences without touching old ones"""
        t = template(start=date(2024, 1, 1))
        existing = project([t], [], date(2024, 1, 31))
        self.assertEqual(len(existing), 1)

        weekly = replace(t, frequency=Frequency.WEEKLY)
        created = project([weekly], existing, date(2024, 1, 31))
        self.assertEqual(
            [e.date for e in created],
            [date(2024, 1, 8), date(2024, 1, 15), date(2024, 1, 22), date(2024, 1, 29)]
        )

    def test_project_accepts_datetime_reference(self):
        """A reference instant with a time of day is treated as its date"""
        t = template(start=date(2024, 3, 15))
        self.assertEqual(len(project([t], [], datetime(2024, 3, 15, 8, 0))), 1)


class TestExpenseStore(unittest.TestCase):
    def setUp(self):
        self.storage = MemoryStorage()
        self.store = ExpenseStore(self.storage, clock=lambda: TODAY)

    def test_add_update_delete(self):
        """Basic expense lifecycle is persisted"""
        e = self.store.add_expense(expense("12.50", description="Lunch"))
        self.assertEqual(self.storage.load_expenses(), [e])

        changed = replace(e, amount=Decimal("13.00"))
        self.assertTrue(self.store.update_expense(changed))
        self.assertEqual(self.store.get_expense(e.id).amount, Decimal("13.00"))

        self.assertTrue(self.store.delete_expense(e.id))
        self.assertEqual(self.store.expenses, ())
        self.assertEqual(self.storage.load_expenses(), [])

    def test_update_cannot_link_unknown_template(self):
        """Edits may not point an expense at a template that doesn't exist"""
        e = self.store.add_expense(expense("5"))
        linked = replace(e, is_recurring=True, recurring_expense_id="nope")
        with self.assertRaises(ValidationError):
            self.store.update_expense(linked)
        self.assertIsNone(self.store.get_expense(e.id).recurring_expense_id)

    def test_unknown_ids_are_reported(self):
        """Updating or deleting a missing id is a no-op returning False"""
        self.assertFalse(self.store.update_expense(expense("5")))
        self.assertFalse(self.store.delete_expense("missing"))
        self.assertFalse(self.store.update_recurring_expense(template()))
        self.assertFalse(self.store.delete_recurring_expense("missing"))
        self.assertNotIn("expenses.json", self.storage.data)

    def test_validation_leaves_store_untouched(self):
        """Invalid input is rejected before reaching the store"""
        with self.assertRaises(ValidationError):
            self.store.add_expense(expense("0"))
        with self.assertRaises(ValidationError):
            self.store.add_recurring_expense(template(description="  "))
        orphan = Expense(amount=Decimal(5), category=Category.FOOD, date=TODAY,
                         is_recurring=True, recurring_expense_id="nope")
        with self.assertRaises(ValidationError):
            self.store.add_expense(orphan)
        self.assertEqual(self.store.snapshot().expenses, ())
        self.assertEqual(self.store.snapshot().recurring_expenses, ())

    def test_add_recurring_projects_immediately(self):
        """Adding a template fills in everything due up to today"""
        t = self.store.add_recurring_expense(template(start=date(2024, 1, 20)))
        self.assertEqual(len(self.store.expenses), 2)
        self.assertEqual(len(self.storage.load_expenses()), 2)
        self.assertEqual(self.storage.load_recurring_expenses(), [t])

    def test_update_recurring_reprojects(self):
        """A template moved earlier gets the missing months"""
        t = self.store.add_recurring_expense(template(start=date(2024, 3, 1)))
        self.assertEqual(len(self.store.expenses), 1)
        self.assertTrue(self.store.update_recurring_expense(replace(t, start_date=date(2024, 1, 1))))
        self.assertEqual(len(self.store.expenses), 3)

    def test_pause_keeps_generated_expenses(self):
        """Deactivating a template keeps what it already produced"""
        t = self.store.add_recurring_expense(template(start=date(2024, 1, 1)))
        self.assertTrue(self.store.set_recurring_active(t.id, False))
        self.assertEqual(len(self.store.expenses), 3)
        self.assertEqual(self.store.run_projection(date(2024, 6, 1)), [])

    def test_cascade_delete(self):
        """Deleting a template removes exactly its generated expenses"""
        rent = self.store.add_recurring_expense(template("1200", Category.HOUSING, description="Rent"))
        gym = self.store.add_recurring_expense(template("40", Category.HEALTHCARE, description="Gym"))
        manual = self.store.add_expense(expense("8"))

        self.assertTrue(self.store.delete_recurring_expense(rent.id))
        remaining = self.store.expenses
        self.assertNotIn(rent.id, [e.recurring_expense_id for e in remaining])
        self.assertEqual(len([e for e in remaining if e.recurring_expense_id == gym.id]), 3)
        self.assertIn(manual, remaining)
        self.assertEqual(len(self.storage.load_expenses()), 4)

    def test_failed_save_keeps_change(self):
        """A save failure is raised but the in-memory change stays"""
        self.storage.fail_saves = True
        with redirect_stdout(io.StringIO()):
            with self.assertRaises(PersistenceError):
                self.store.add_expense(expense("20"))
        self.assertEqual(len(self.store.expenses), 1)

    def test_filtered_expenses(self):
        """Filters are inclusive and results come newest first"""
        a = self.store.add_expense(expense("1", Category.FOOD, date(2024, 3, 1)))
        b = self.store.add_expense(expense("2", Category.FOOD, date(2024, 3, 10)))
        self.store.add_expense(expense("3", Category.SHOPPING, date(2024, 3, 5)))
        c = self.store.add_expense(expense("4", Category.FOOD, date(2024, 3, 20)))

        self.assertEqual(self.store.filtered_expenses(Category.FOOD), [c, b, a])
        self.assertEqual(
            self.store.filtered_expenses(Category.FOOD, date(2024, 3, 1), date(2024, 3, 10)),
            [b, a]
        )
        self.assertEqual(len(self.store.filtered_expenses()), 4)

    def test_open_projects_and_is_idempotent(self):
        """Opening a session brings templates up to date exactly once"""
        self.storage.save_recurring_expenses([template(start=date(2024, 1, 10))])
        with redirect_stdout(io.StringIO()):
            first = ExpenseStore.open(self.storage, clock=lambda: TODAY)
            second = ExpenseStore.open(self.storage, clock=lambda: TODAY)
        self.assertEqual(len(first.expenses), 3)
        self.assertEqual(len(second.expenses), 3)

    def test_open_survives_failed_save(self):
        """A startup save failure is printed and the projected expenses are kept"""
        self.storage.save_recurring_expenses([template(start=date(2024, 1, 1))])
        self.storage.fail_saves = True
        with redirect_stdout(io.StringIO()) as out:
            store = ExpenseStore.open(self.storage, clock=lambda: TODAY)
        self.assertEqual(len(store.expenses), 3)
        self.assertIn("Could not save expenses.json", out.getvalue())

    def test_open_with_empty_storage(self):
        """Nothing saved yet means an empty store"""
        store = ExpenseStore.open(MemoryStorage(), clock=lambda: TODAY)
        self.assertEqual(store.snapshot().expenses, ())
        self.assertEqual(store.currency_code, "USD")

    def test_currency_preference(self):
        """Only known currency codes are accepted and they persist"""
        self.assertTrue(self.store.set_currency("EUR"))
        self.assertFalse(self.store.set_currency("XYZ"))
        self.assertEqual(self.store.currency_code, "EUR")
        reopened = ExpenseStore.open(self.storage, clock=lambda: TODAY)
        self.assertEqual(reopened.currency_code, "EUR")

    def test_concurrent_projection_has_no_duplicates(self):
        """Parallel writers never double-book a month"""
        self.store.add_recurring_expense(template(start=date(2023, 1, 1)))
        threads = [
            threading.Thread(target=self.store.run_projection, args=(date(2024, 12, 31),))
            for _ in range(8)
        ]
        threads += [
            threading.Thread(target=self.store.add_expense, args=(expense("1"),))
            for _ in range(8)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        recurring = [e for e in self.store.expenses if e.is_recurring]
        self.assertEqual(len(recurring), 24)
        self.assertEqual(len(self.store.expenses), 32)


class TestAnalytics(unittest.TestCase):
    def test_time_frame_windows(self):
        """Windows are calendar aligned and half open"""
        self.assertEqual(analytics.time_frame_window(TimeFrame.MONTH, TODAY),
                         (date(2024, 3, 1), date(2024, 4, 1)))
        self.assertEqual(analytics.time_frame_window(TimeFrame.WEEK, date(2024, 3, 13)),
                         (date(2024, 3, 11), date(2024, 3, 18)))
        self.assertEqual(analytics.time_frame_window(TimeFrame.YEAR, TODAY),
                         (date(2024, 1, 1), date(2025, 1, 1)))

    def test_month_total_window(self):
        """Only expenses inside [Mar 1, Apr 1) are counted"""
        expenses = [
            expense("10", day=date(2024, 2, 29)),
            expense("20", day=date(2024, 3, 1)),
            expense("30.05", day=date(2024, 3, 31)),
            expense("40", day=date(2024, 4, 1)),
        ]
        self.assertEqual(analytics.total_expenses(expenses, None, TimeFrame.MONTH, TODAY), Decimal("50.05"))
        self.assertEqual(analytics.monthly_expenses(expenses, TODAY), Decimal("50.05"))
        self.assertEqual(analytics.total_expenses(expenses, Category.HOUSING, TimeFrame.MONTH, TODAY), 0)

    def test_decimal_sums_are_exact(self):
        """Cents add up without float drift"""
        expenses = [expense("0.10"), expense("0.20")]
        self.assertEqual(analytics.total_expenses(expenses, None, TimeFrame.MONTH, TODAY), Decimal("0.30"))

    def test_expenses_by_category(self):
        """Zero totals are dropped and the rest sorted descending"""
        expenses = [
            expense("50", Category.FOOD),
            expense("0", Category.GROCERIES),
            expense("25", Category.TRANSPORTATION),
        ]
        self.assertEqual(
            analytics.expenses_by_category(expenses, TimeFrame.MONTH, TODAY),
            [(Category.FOOD, Decimal(50)), (Category.TRANSPORTATION, Decimal(25))]
        )

    def test_expenses_by_category_ties(self):
        """Equal totals keep category order"""
        expenses = [expense("10", Category.HOUSING), expense("10", Category.FOOD)]
        self.assertEqual(
            [c for c, _ in analytics.expenses_by_category(expenses, TimeFrame.MONTH, TODAY)],
            [Category.FOOD, Category.HOUSING]
        )

    def test_filtered_total(self):
        """Excluded categories are left out of the headline total"""
        expenses = [expense("50", Category.FOOD), expense("1000", Category.HOUSING)]
        self.assertEqual(
            analytics.filtered_total(expenses, TimeFrame.MONTH, TODAY, {Category.HOUSING}),
            Decimal(50)
        )

    def test_recurring_by_category(self):
        """Active templates are normalized to a monthly equivalent"""
        templates = [
            template("15", Category.SUBSCRIPTIONS, Frequency.MONTHLY),
            template("120", Category.SUBSCRIPTIONS, Frequency.YEARLY),
            template("2", Category.FOOD, Frequency.DAILY),
            template("100", Category.UTILITIES, Frequency.QUARTERLY),
            template("25", Category.TRANSPORTATION, Frequency.WEEKLY),
            template("1000", Category.HOUSING, Frequency.MONTHLY, is_active=False),
        ]
        self.assertEqual(
            analytics.recurring_expenses_by_category(templates),
            [
                (Category.TRANSPORTATION, Decimal("100.00")),
                (Category.FOOD, Decimal("60.00")),
                (Category.UTILITIES, Decimal("33.33")),
                (Category.SUBSCRIPTIONS, Decimal("25.00")),
            ]
        )

    def test_trend_series_months(self):
        """Five periods, oldest first, empty ones reported as zero"""
        expenses = [
            expense("5", day=date(2023, 11, 5)),
            expense("10", day=date(2024, 1, 10)),
            expense("100", Category.HOUSING, day=date(2024, 3, 2)),
            expense("7", day=date(2024, 3, 3)),
        ]
        series = analytics.trend_series(expenses, TimeFrame.MONTH, TODAY, {Category.HOUSING})
        self.assertEqual(series, [
            (date(2023, 11, 1), Decimal(5)),
            (date(2023, 12, 1), Decimal(0)),
            (date(2024, 1, 1), Decimal(10)),
            (date(2024, 2, 1), Decimal(0)),
            (date(2024, 3, 1), Decimal(7)),
        ])

    def test_trend_series_always_five(self):
        """The series length doesn't depend on data"""
        for frame in TimeFrame:
            series = analytics.trend_series([], frame, TODAY)
            self.assertEqual(len(series), 5)
            self.assertTrue(all(amount == 0 for _, amount in series))
        weeks = analytics.trend_series([], TimeFrame.WEEK, date(2024, 3, 13))
        self.assertEqual(weeks[0][0], date(2024, 2, 12))
        self.assertEqual(weeks[-1][0], date(2024, 3, 11))

    def test_budget_progress(self):
        """Zero budget gives 0; overspending goes above 1"""
        self.assertEqual(analytics.budget_progress(Decimal(50), Decimal(0)), 0)
        self.assertEqual(analytics.budget_progress(Decimal(150), Decimal(100)), Decimal("1.5"))
        self.assertEqual(analytics.budget_remaining(Decimal(150), Decimal(100)), Decimal(-50))


class TestBudgetTracker(unittest.TestCase):
    def test_set_and_get(self):
        """Budgets default to zero and are persisted on change"""
        storage = MemoryStorage()
        budgets = BudgetTracker(storage)
        self.assertEqual(budgets.get_budget(Category.FOOD), 0)

        budgets.set_budget(Category.FOOD, Decimal("300"))
        budgets.set_budget(Category.FOOD, Decimal("250"))
        self.assertEqual(budgets.get_budget(Category.FOOD), Decimal("250"))
        self.assertEqual(BudgetTracker.open(storage).as_dict(), {Category.FOOD: Decimal("250")})

        self.assertTrue(budgets.clear_budget(Category.FOOD))
        self.assertFalse(budgets.clear_budget(Category.FOOD))

    def test_negative_budget_rejected(self):
        """Negative ceilings are a validation error"""
        budgets = BudgetTracker()
        with self.assertRaises(ValidationError):
            budgets.set_budget(Category.FOOD, Decimal("-1"))
        self.assertEqual(budgets.as_dict(), {})

    def test_progress(self):
        """Progress compares this month's spend with the ceiling"""
        budgets = BudgetTracker()
        budgets.set_budget(Category.FOOD, Decimal("200"))
        expenses = [expense("150"), expense("150"), expense("90", day=date(2024, 2, 1))]
        self.assertEqual(budgets.progress(expenses, Category.FOOD, TimeFrame.MONTH, TODAY), Decimal("1.5"))
        self.assertEqual(budgets.progress(expenses, Category.HOUSING, TimeFrame.MONTH, TODAY), 0)


class TestJsonStorage(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.directory = Path(self.tmp.name)
        self.storage = JsonStorage(self.directory)

    def tearDown(self):
        self.tmp.cleanup()

    def test_missing_files_load_as_none(self):
        """Nothing saved yet is reported as not found"""
        self.assertIsNone(self.storage.load_expenses())
        self.assertIsNone(self.storage.load_recurring_expenses())
        self.assertIsNone(self.storage.load_budgets())
        self.assertIsNone(self.storage.load_preferences())

    def test_round_trip(self):
        """Saving and loading reproduces the same records"""
        t = template("9.99", start=date(2024, 1, 31))
        expenses = project([t], [], TODAY) + [expense("12.34", Category.GROCERIES, description="Market")]

        self.assertTrue(self.storage.save_expenses(expenses))
        self.assertTrue(self.storage.save_recurring_expenses([t]))
        self.assertTrue(self.storage.save_budgets({Category.FOOD: Decimal("300.50")}))

        self.assertEqual(self.storage.load_expenses(), expenses)
        self.assertEqual(self.storage.load_recurring_expenses(), [t])
        self.assertEqual(self.storage.load_budgets(), {Category.FOOD: Decimal("300.50")})

    def test_wire_format(self):
        """Field names and enum raw values are stable"""
        t = template(category=Category.GROCERIES)
        self.storage.save_recurring_expenses([t])
        data = json.loads((self.directory / "recurring_expenses.json").read_text())
        self.assertEqual(
            set(data[0]),
            {"id", "amount", "category", "description", "frequency", "startDate", "isActive"}
        )
        self.assertEqual(data[0]["category"], "Groceries")
        self.assertEqual(data[0]["frequency"], "Monthly")
        self.assertEqual(data[0]["startDate"], "2024-01-01")

        self.storage.save_expenses(project([t], [], date(2024, 1, 1)))
        data = json.loads((self.directory / "expenses.json").read_text())
        self.assertEqual(
            set(data[0]),
            {"id", "amount", "category", "date", "description", "isRecurring", "recurringExpenseId"}
        )
        self.assertEqual(data[0]["recurringExpenseId"], t.id)

    def test_non_finite_amounts_are_skipped(self):
        """NaN and Infinity amounts are treated as invalid records"""
        (self.directory / "expenses.json").write_text(json.dumps([
            {"id": "a", "amount": "NaN", "category": "Food", "date": "2024-03-01"},
            {"id": "b", "amount": "Infinity", "category": "Food", "date": "2024-03-01"},
            {"id": "c", "amount": "4.20", "category": "Food", "date": "2024-03-01"},
        ]))
        (self.directory / "category_budgets.json").write_text(json.dumps({"Food": "NaN", "Housing": "900"}))
        with redirect_stdout(io.StringIO()):
            loaded = self.storage.load_expenses()
            budgets = self.storage.load_budgets()
        self.assertEqual([e.id for e in loaded], ["c"])
        self.assertEqual(budgets, {Category.HOUSING: Decimal("900")})

    def test_invalid_records_are_skipped(self):
        """A bad record doesn't prevent loading the rest"""
        (self.directory / "expenses.json").write_text(json.dumps([
            {"id": "a", "amount": 12.5, "category": "Food", "date": "2024-03-01",
             "description": "ok", "isRecurring": False},
            {"id": "b", "amount": 3, "category": "Pizza", "date": "2024-03-01"},
        ]))
        with redirect_stdout(io.StringIO()) as out:
            loaded = self.storage.load_expenses()
        self.assertEqual([e.id for e in loaded], ["a"])
        self.assertEqual(loaded[0].amount, Decimal("12.5"))
        self.assertIn("Skipping invalid record b", out.getvalue())

    def test_corrupt_file_loads_as_none(self):
        """Unreadable JSON starts an empty session instead of crashing"""
        (self.directory / "expenses.json").write_text("{not json")
        with redirect_stdout(io.StringIO()):
            self.assertIsNone(self.storage.load_expenses())
            store = ExpenseStore.open(self.storage, clock=lambda: TODAY)
        self.assertEqual(store.expenses, ())


class TestQuickEntry(unittest.TestCase):
    today = date(2024, 5, 20)

    def test_amount_and_description(self):
        """A trailing number is the amount"""
        entry = parse_quick_entry("Costco 126", self.today)
        self.assertEqual(entry, (Decimal("126"), self.today, "Costco"))

    def test_numeric_date(self):
        """M/D tokens set the date in the current year"""
        entry = parse_quick_entry("lunch 3/10 12.50", self.today)
        self.assertEqual(entry, (Decimal("12.50"), date(2024, 3, 10), "lunch"))

    def test_month_name_date(self):
        """A day after a month name is part of the date, not the amount"""
        entry = parse_quick_entry("Target mar 3 45", self.today)
        self.assertEqual(entry, (Decimal("45"), date(2024, 3, 3), "Target"))

        entry = parse_quick_entry("Dinner feb 14 $80.5", self.today)
        self.assertEqual(entry, (Decimal("80.5"), date(2024, 2, 14), "Dinner"))

    def test_month_without_day(self):
        """A bare month name means the first of that month"""
        entry = parse_quick_entry("Rent 900 march", self.today)
        self.assertEqual(entry, (Decimal("900"), date(2024, 3, 1), "Rent"))

    def test_missing_amount(self):
        """Text without a positive amount is rejected"""
        with self.assertRaises(ValidationError):
            parse_quick_entry("coffee", self.today)
        with self.assertRaises(ValidationError):
            parse_quick_entry("refund 0", self.today)


class FakeInsightService(InsightService):
    def __init__(self, delay=0.0, fail=False):
        self.delay = delay
        self.fail = fail
        self.received = None

    async def categorize(self, description):
        await asyncio.sleep(self.delay)
        if self.fail:
            raise RuntimeError("service unavailable")
        return Decimal(0), Category.GROCERIES

    async def answer_question(self, expenses, total, question):
        self.received = (expenses, total, question)
        return f"You spent {total}"


class TestInsights(unittest.TestCase):
    def test_context_is_current_month(self):
        """Only this month's expenses and their exact total are shared"""
        expenses = [expense("10.10"), expense("5.05"), expense("99", day=date(2024, 2, 28))]
        context = insight_context(expenses, TODAY)
        self.assertEqual(len(context.expenses), 2)
        self.assertEqual(context.total, Decimal("15.15"))

    def test_ask(self):
        """Questions carry the precomputed total"""
        service = FakeInsightService()
        coordinator = InsightCoordinator(service, timeout=1)
        reply = asyncio.run(coordinator.ask([expense("20"), expense("2.5")], "How much?", TODAY))
        self.assertEqual(reply.value, "You spent 22.5")
        self.assertTrue(coordinator.is_current(reply.token))
        self.assertEqual(service.received[1], Decimal("22.5"))

    def test_timeout_is_recoverable(self):
        """A slow service raises InsightError"""
        coordinator = InsightCoordinator(FakeInsightService(delay=1), timeout=0.01)
        with self.assertRaises(InsightError):
            asyncio.run(coordinator.categorize("milk"))

    def test_suggest_category_fallback(self):
        """Failures fall back to the given category"""
        coordinator = InsightCoordinator(FakeInsightService(fail=True), timeout=1)
        self.assertEqual(asyncio.run(coordinator.suggest_category("milk", Category.OTHER)), Category.OTHER)
        with self.assertRaises(InsightError):
            asyncio.run(coordinator.suggest_category("milk"))

        ok = InsightCoordinator(FakeInsightService(), timeout=1)
        self.assertEqual(asyncio.run(ok.suggest_category("milk")), Category.GROCERIES)

    def test_stale_replies(self):
        """Only the latest request's reply is current"""
        coordinator = InsightCoordinator(FakeInsightService(), timeout=1)

        async def two_requests():
            return await asyncio.gather(coordinator.categorize("a"), coordinator.categorize("b"))

        first, second = asyncio.run(two_requests())
        self.assertFalse(coordinator.is_current(first.token))
        self.assertTrue(coordinator.is_current(second.token))

    def test_parse_categorization(self):
        """Collaborator JSON is decoded into amount and category"""
        self.assertEqual(parse_categorization('{"amount": 12.5, "category": "Food"}'),
                         (Decimal("12.5"), Category.FOOD))
        with self.assertRaises(InsightError):
            parse_categorization('{"amount": 1, "category": "Pizza"}')
        with self.assertRaises(InsightError):
            parse_categorization("not json")


class TestCLI(unittest.TestCase):
    def setUp(self):
        self.store = ExpenseStore(MemoryStorage(), clock=lambda: TODAY)
        self.budgets = BudgetTracker()
        self.cli = ExpenseTrackerCLI(self.store, self.budgets)

    def run_command(self, line):
        with redirect_stdout(io.StringIO()) as out:
            self.cli.onecmd(line)
        return out.getvalue()

    def test_add_and_report(self):
        """Commands go through the store and show in reports"""
        self.assertIn("✓ Added", self.run_command("add 12.50 food 2024-03-10 --desc lunch"))
        self.run_command("budget set food 25")
        report = self.run_command("report")
        self.assertIn("$12.50", report)
        self.assertIn("50% of $25.00", report)
        self.assertEqual(self.store.expenses[0].description, "lunch")

    def test_recurring_and_quick(self):
        """Recurring templates and quick entries are added"""
        self.run_command("recurring add 9.99 subscriptions monthly 2024-01-05 --desc Music")
        self.assertEqual(len(self.store.expenses), 3)
        self.run_command("quick Costco 3/12 126 --category groceries")
        self.assertEqual(self.store.filtered_expenses(Category.GROCERIES)[0].amount, Decimal("126"))

    def test_bad_input_is_reported(self):
        """Errors are printed, never raised"""
        self.assertIn("Invalid input", self.run_command("add abc food"))
        self.assertIn("Error", self.run_command("add 0 food"))
        self.assertIn("Unsupported currency", self.run_command("currency XYZ"))
        self.assertIn("Invalid input", self.run_command("add nan food"))
        self.assertIn("Invalid input", self.run_command("add inf food"))
        self.assertIn("Invalid input", self.run_command("budget set food -Infinity"))
        self.assertEqual(self.store.expenses, ())


class TestFormatting(unittest.TestCase):
    def test_format_currency(self):
        """Amounts are shown with the currency symbol, rounded to cents"""
        self.assertEqual(format_currency(Decimal("1234.5")), "$1,234.50")
        self.assertEqual(format_currency(Decimal("9.999"), "EUR"), "€10.00")
        self.assertEqual(format_currency(Decimal("5"), "INR", include_sign=False), "5.00")


if __name__ == "__main__":
    unittest.main()
