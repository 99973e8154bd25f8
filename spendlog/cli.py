import cmd
from datetime import date
from decimal import Decimal

from spendlog import analytics
from spendlog.budgets import BudgetTracker
from spendlog.config import AVAILABLE_CURRENCIES
from spendlog.errors import SpendlogError
from spendlog.formatting import format_currency
from spendlog.models import Category, Expense, Frequency, RecurringExpense, TimeFrame, to_amount
from spendlog.quick_entry import parse_quick_entry
from spendlog.store import ExpenseStore


def parse_category(name: str) -> Category:
    for category in Category:
        if category.value.lower() == name.lower():
            return category
    raise ValueError(f"Unknown category: {name} (use one of: {', '.join(c.value for c in Category)})")


def parse_frequency(name: str) -> Frequency:
    for frequency in Frequency:
        if frequency.value.lower() == name.lower():
            return frequency
    raise ValueError(f"Unknown frequency: {name} (use one of: {', '.join(f.value.lower() for f in Frequency)})")


def parse_time_frame(name: str) -> TimeFrame:
    for time_frame in TimeFrame:
        if time_frame.value.lower() == name.lstrip("-").lower():
            return time_frame
    raise ValueError("Timeframe must be week, month or year")


def parse_amount(text: str) -> Decimal:
    return to_amount(text)


class ExpenseTrackerCLI(cmd.Cmd):
    prompt = "(spendlog) "

    def __init__(self, store: ExpenseStore, budgets: BudgetTracker):
        super().__init__()
        self.store = store
        self.budgets = budgets
        self.intro = "Welcome to spendlog. Type 'help' for commands."

    def money(self, amount) -> str:
        return format_currency(amount, self.store.currency_code)

    def _find(self, items, prefix: str):
        """Match an item by id or unique id prefix."""
        matches = [item for item in items if item.id.startswith(prefix)]
        if len(matches) != 1:
            return None
        return matches[0]

    # ===== CORE COMMANDS =====
    def do_add(self, arg):
        """Add an expense: add <amount> <category> [YYYY-MM-DD] [--desc "description"]"""
        try:
            args = self._parse_add_args(arg)
            expense = self.store.add_expense(Expense(
                amount=args['amount'],
                category=args['category'],
                date=args['date'],
                description=args['desc'],
            ))
            print(f"✓ Added {expense.category.value} expense of {self.money(expense.amount)} [{expense.id[:8]}]")
        except SpendlogError as e:
            print(f"Error: {e}")
        except ValueError as e:
            print(f"Invalid input: {e}")

    def do_quick(self, arg):
        """Quick entry: quick <free text>, e.g. quick Costco 126 mar 3 --category groceries"""
        text, _, category_name = arg.partition("--category")
        try:
            entry = parse_quick_entry(text, self.store.clock())
            category = parse_category(category_name.strip()) if category_name.strip() else Category.OTHER
            expense = self.store.add_expense(Expense(
                amount=entry.amount,
                category=category,
                date=entry.date,
                description=entry.description,
            ))
            print(f"✓ Added {self.money(expense.amount)} on {expense.date} ({expense.description or 'no description'})")
        except SpendlogError as e:
            print(f"Error: {e}")
        except ValueError as e:
            print(f"Invalid input: {e}")

    def do_list(self, arg):
        """List expenses: list [category] [--from YYYY-MM-DD] [--to YYYY-MM-DD]"""
        try:
            args = self._parse_list_args(arg)
        except ValueError as e:
            print(f"Invalid input: {e}")
            return

        expenses = self.store.filtered_expenses(args['category'], args['start'], args['end'])
        if not expenses:
            print("No expenses found")
            return
        for e in expenses:
            marker = " (recurring)" if e.is_recurring else ""
            print(f"  {e.id[:8]}  {e.date}  {e.category.value:<14} {self.money(e.amount):>12}  {e.description}{marker}")

    def do_delete(self, arg):
        """Delete an expense: delete <ID or ID prefix>"""
        prefix = arg.strip()
        if not prefix:
            print("Usage: delete <ID>")
            return
        expense = self._find(self.store.expenses, prefix)
        try:
            if expense is not None and self.store.delete_expense(expense.id):
                print(f"✓ Deleted expense {expense.id[:8]}")
            else:
                print("Expense not found")
        except SpendlogError as e:
            print(f"Error: {e}")

    # ===== RECURRING =====
    def do_recurring(self, arg):
        """Manage recurring expenses:
        recurring add <amount> <category> <frequency> [YYYY-MM-DD] --desc <description>
        recurring list
        recurring pause|resume|delete <ID>
        """
        args = arg.split()
        if not args:
            print(self.do_recurring.__doc__)
            return

        try:
            if args[0] == "add":
                template = self._parse_recurring_args(args[1:])
                self.store.add_recurring_expense(template)
                print(f"✓ Added {template.frequency.value.lower()} expense '{template.description}' "
                      f"of {self.money(template.amount)}")
            elif args[0] == "list":
                if not self.store.recurring_expenses:
                    print("No recurring expenses defined")
                    return
                for t in self.store.recurring_expenses:
                    status = "active" if t.is_active else "paused"
                    print(f"  {t.id[:8]}  {t.frequency.value:<10} {self.money(t.amount):>12}  "
                          f"{t.category.value:<14} {t.description} (from {t.start_date}, {status})")
            elif args[0] in ("pause", "resume", "delete") and len(args) > 1:
                template = self._find(self.store.recurring_expenses, args[1])
                if template is None:
                    print(f"Recurring expense not found: {args[1]}")
                elif args[0] == "delete":
                    self.store.delete_recurring_expense(template.id)
                    print(f"✓ Deleted '{template.description}' and its expenses")
                else:
                    self.store.set_recurring_active(template.id, args[0] == "resume")
                    print(f"✓ {'Resumed' if args[0] == 'resume' else 'Paused'} '{template.description}'")
            else:
                print(self.do_recurring.__doc__)
        except SpendlogError as e:
            print(f"Error: {e}")
        except ValueError as e:
            print(f"Invalid input: {e}")

    # ===== REPORTS =====
    def do_report(self, arg):
        """
        Spending report: report [--week|--month|--year] [YYYY-MM-DD] [--exclude category,...]

        Examples:
            report
            report --year 2024-01-01
            report --month 2024-03-15 --exclude housing
        """
        try:
            args = self._parse_report_args(arg)
        except ValueError as e:
            print(f"Invalid input: {e}")
            return

        snapshot = self.store.snapshot()
        time_frame, day, excluded = args['timeframe'], args['date'], args['excluded']
        start, end = analytics.time_frame_window(time_frame, day)

        print(f"\n{' ' + time_frame.value + ' Report ':-^50}")
        print(f"Period: {start} to {end}")
        total = analytics.filtered_total(snapshot.expenses, time_frame, day, excluded)
        print(f"\nTotal: {self.money(total)}")

        print("\nBy Category:")
        for category, amount in analytics.expenses_by_category(snapshot.expenses, time_frame, day):
            if category in excluded:
                continue
            line = f"  {category.value:<14} {self.money(amount):>12}"
            budget = self.budgets.get_budget(category)
            if time_frame is TimeFrame.MONTH and budget > 0:
                progress = analytics.budget_progress(amount, budget)
                line += f"  ({progress:.0%} of {self.money(budget)})"
            print(line)

        recurring = [(c, a) for c, a in analytics.recurring_expenses_by_category(snapshot.recurring_expenses)
                     if c not in excluded]
        if recurring:
            print("\nRecurring (monthly equivalent):")
            for category, amount in recurring:
                print(f"  {category.value:<14} {self.money(amount):>12}")

    def do_trend(self, arg):
        """Spending trend over the last five periods: trend [--week|--month|--year] [YYYY-MM-DD] [--exclude ...]"""
        try:
            args = self._parse_report_args(arg)
        except ValueError as e:
            print(f"Invalid input: {e}")
            return

        series = analytics.trend_series(self.store.expenses, args['timeframe'], args['date'], args['excluded'])
        for start, amount in series:
            print(f"  {start}  {self.money(amount):>12}")

    # ===== BUDGETS =====
    def do_budget(self, arg):
        """Manage budgets: budget set <category> <amount> | budget clear <category> | budget list"""
        args = arg.split()
        if not args:
            print(self.do_budget.__doc__)
            return

        try:
            if args[0] == "set" and len(args) == 3:
                category = parse_category(args[1])
                self.budgets.set_budget(category, parse_amount(args[2]))
                print(f"✓ Budget for {category.value}: {self.money(self.budgets.get_budget(category))}")
            elif args[0] == "clear" and len(args) == 2:
                category = parse_category(args[1])
                if self.budgets.clear_budget(category):
                    print(f"✓ Cleared budget for {category.value}")
                else:
                    print(f"No budget set for {category.value}")
            elif args[0] == "list":
                budgets = self.budgets.as_dict()
                if not budgets:
                    print("No budgets defined")
                    return
                today = self.store.clock()
                expenses = self.store.expenses
                for category, budget in budgets.items():
                    spent = analytics.total_expenses(expenses, category, TimeFrame.MONTH, today)
                    progress = analytics.budget_progress(spent, budget)
                    remaining = analytics.budget_remaining(spent, budget)
                    print(f"  {category.value:<14} {self.money(spent):>12} of {self.money(budget):>12} "
                          f"({progress:.0%}, {self.money(remaining)} left)")
            else:
                print(self.do_budget.__doc__)
        except SpendlogError as e:
            print(f"Error: {e}")
        except ValueError as e:
            print(f"Invalid input: {e}")

    def do_currency(self, arg):
        """Show or set the display currency: currency [CODE]"""
        code = arg.strip().upper()
        if not code:
            print(f"Currency: {self.store.currency_code} (available: {', '.join(AVAILABLE_CURRENCIES)})")
            return
        try:
            if self.store.set_currency(code):
                print(f"✓ Currency set to {code}")
            else:
                print(f"Unsupported currency: {code}")
        except SpendlogError as e:
            print(f"Error: {e}")

    # ===== UTILITIES =====
    def do_exit(self, arg):
        """Exit the program"""
        print("Goodbye!")
        return True

    # ===== HELPERS =====
    def _parse_add_args(self, arg):
        """Parse add command arguments"""
        args = arg.split()
        if len(args) < 2:
            raise ValueError("Missing required arguments (amount and category)")

        result = {
            'amount': parse_amount(args[0]),
            'category': parse_category(args[1]),
            'date': self.store.clock(),
            'desc': ""
        }

        i = 2
        while i < len(args):
            if args[i] == '--desc':
                result['desc'] = ' '.join(args[i+1:])
                break
            elif args[i].startswith('--'):
                raise ValueError(f"Unknown flag: {args[i]}")
            else:
                try:
                    result['date'] = date.fromisoformat(args[i])
                except ValueError:
                    raise ValueError(f"Unexpected argument: {args[i]}")
                i += 1

        return result

    def _parse_recurring_args(self, args):
        """Parse `recurring add` arguments into a template"""
        if len(args) < 3:
            raise ValueError("Missing required arguments (amount, category and frequency)")

        start_date = self.store.clock()
        desc = ""
        i = 3
        while i < len(args):
            if args[i] == '--desc':
                desc = ' '.join(args[i+1:])
                break
            start_date = date.fromisoformat(args[i])
            i += 1

        return RecurringExpense(
            amount=parse_amount(args[0]),
            category=parse_category(args[1]),
            frequency=parse_frequency(args[2]),
            start_date=start_date,
            description=desc,
        )

    @staticmethod
    def _parse_list_args(arg):
        """Parse list filters"""
        args = arg.split()
        result = {'category': None, 'start': None, 'end': None}

        i = 0
        while i < len(args):
            if args[i] == "--from" and i+1 < len(args):
                result['start'] = date.fromisoformat(args[i+1])
                i += 2
            elif args[i] == "--to" and i+1 < len(args):
                result['end'] = date.fromisoformat(args[i+1])
                i += 2
            else:
                result['category'] = parse_category(args[i])
                i += 1

        return result

    def _parse_report_args(self, arg):
        """Parse arguments for spending reports"""
        args = arg.split()
        result = {
            'timeframe': TimeFrame.MONTH,
            'date': self.store.clock(),
            'excluded': set()
        }

        i = 0
        while i < len(args):
            if args[i] in ('--week', '--month', '--year'):
                result['timeframe'] = parse_time_frame(args[i])
            elif args[i] == '--exclude' and i+1 < len(args):
                result['excluded'] = {parse_category(name) for name in args[i+1].split(',') if name}
                i += 1
            else:
                result['date'] = date.fromisoformat(args[i])
            i += 1

        return result
