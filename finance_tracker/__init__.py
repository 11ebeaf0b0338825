"""Top‑level package for the personal finance tracker.

The primary modules are:

* ``budget_engine`` – evaluates budgets against a month's spending
* ``dashboard`` – monthly totals, category breakdowns and budget progress
* ``db`` – local data-access layer, every call scoped by an explicit session
* ``schemas`` – form validation for budgets, incomes, expenses and settings

To print a month's budget report from the local store run:

```bash
python scripts/budget_report.py --user <user-id> --month 3 --year 2024
```
"""

from .budget_engine import aggregate_totals, evaluate_budgets  # noqa: F401  # re-exported for convenience
from .models import BudgetStatus, BudgetWithStats  # noqa: F401  # re-exported for convenience

__all__ = ["aggregate_totals", "evaluate_budgets", "BudgetStatus", "BudgetWithStats"]
