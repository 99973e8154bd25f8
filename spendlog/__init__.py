"""Personal expense tracking: recurring expenses, budgets and spending analytics."""
