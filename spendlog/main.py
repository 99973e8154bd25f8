from spendlog.budgets import BudgetTracker
from spendlog.cli import ExpenseTrackerCLI
from spendlog.config import ensure_data_dir
from spendlog.storage import JsonStorage
from spendlog.store import ExpenseStore


def main():
    storage = JsonStorage(ensure_data_dir())
    store = ExpenseStore.open(storage)
    budgets = BudgetTracker.open(storage)
    ExpenseTrackerCLI(store, budgets).cmdloop()


if __name__ == "__main__":
    main()
