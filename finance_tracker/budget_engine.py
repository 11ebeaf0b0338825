"""Budget evaluation: limits, spending and status per budget for one month.

Given a month, a year, the owner's budgets (with their income sources
already resolved) and the owner's expenses, ``evaluate_budgets`` returns one
``BudgetWithStats`` per budget:

* income base: sum of the linked income amounts (missing incomes count 0)
* effective limit: percentage of the income base when a percentage is set
  and the base is positive, otherwise the fixed amount, otherwise 0
* spent: expenses of the budget's category dated in that calendar month
* balance: limit minus spent
* status: ``no-spending``, ``exceeded``, ``attention`` or ``on-track``

Amounts are rounded to cents before statuses are classified.  The functions
here perform no I/O and never raise on partial data.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import pandas as pd

from .config import ATTENTION_RATIO, UNCATEGORIZED_LABEL
from .formatting import percent_of, percentage_amount, round_currency
from .models import Budget, BudgetStatus, BudgetTotals, BudgetWithStats, Expense

logger = logging.getLogger(__name__)

BudgetLike = Union[Budget, Mapping[str, Any]]
ExpenseLike = Union[Expense, Mapping[str, Any]]


def _as_budget(value: BudgetLike) -> Budget:
    return value if isinstance(value, Budget) else Budget.from_record(value)


def _as_expense(value: ExpenseLike) -> Expense:
    return value if isinstance(value, Expense) else Expense.from_record(value)


def _in_month(day: Optional[date], month: int, year: int) -> bool:
    return day is not None and day.month == month and day.year == year


def compute_income_total(budget: BudgetLike) -> float:
    """Sum the amounts of the incomes linked to ``budget``."""
    total = 0.0
    for source in _as_budget(budget).income_sources:
        if source.income is not None:
            total += source.income.amount
    return round_currency(total)


def compute_limit(
    percentage: Optional[float],
    limit_amount: Optional[float],
    income_total: float,
) -> float:
    """Resolve the effective spending ceiling.

    Example:
        >>> compute_limit(10, 500, 1000)
        100.0
        >>> compute_limit(10, 200, 0)
        200.0
    """
    if percentage is not None and income_total > 0:
        return round_currency(percentage_amount(percentage, income_total))
    if limit_amount is not None:
        return round_currency(limit_amount)
    return 0.0


def compute_spent(
    category_id: Optional[str],
    month: int,
    year: int,
    expenses: Iterable[ExpenseLike],
) -> float:
    """Sum expenses of ``category_id`` dated in ``(month, year)``.

    A ``None`` category only matches expenses without a category.
    """
    total = 0.0
    for expense in map(_as_expense, expenses):
        if expense.category_id == category_id and _in_month(expense.expense_date, month, year):
            total += expense.amount
    return round_currency(total)


def classify_status(
    spent: float,
    limit: float,
    attention_ratio: float = ATTENTION_RATIO,
) -> BudgetStatus:
    """Classify spending against a limit.

    Any spending against a zero limit is ``exceeded``.  Exactly reaching the
    limit is ``attention``, not ``exceeded``.  A negative total (refunds
    outweighing purchases) is compared like any other amount.
    """
    if spent == 0:
        return BudgetStatus.NO_SPENDING
    if spent > limit:
        return BudgetStatus.EXCEEDED
    if spent > limit * attention_ratio:
        return BudgetStatus.ATTENTION
    return BudgetStatus.ON_TRACK


def _spent_by_category(
    month: int,
    year: int,
    expenses: Iterable[ExpenseLike],
) -> Dict[Optional[str], float]:
    totals: Dict[Optional[str], float] = {}
    for expense in map(_as_expense, expenses):
        if _in_month(expense.expense_date, month, year):
            totals[expense.category_id] = totals.get(expense.category_id, 0.0) + expense.amount
    return totals


def evaluate_budget(
    budget: BudgetLike,
    spent: float,
    attention_ratio: float = ATTENTION_RATIO,
) -> BudgetWithStats:
    """Annotate a single budget given the amount already spent."""
    resolved = _as_budget(budget)
    income_total = compute_income_total(resolved)
    limit = compute_limit(resolved.percentage, resolved.limit_amount, income_total)
    spent = round_currency(spent)
    return BudgetWithStats(
        budget=resolved,
        income_total=income_total,
        limit_calculated=limit,
        spent=spent,
        balance=round_currency(limit - spent),
        status=classify_status(spent, limit, attention_ratio),
    )


def evaluate_budgets(
    month: int,
    year: int,
    budgets: Sequence[BudgetLike],
    expenses: Iterable[ExpenseLike],
    *,
    attention_ratio: Optional[float] = None,
) -> List[BudgetWithStats]:
    """Evaluate every budget for ``(month, year)``.

    Args:
        month: Calendar month, 1-12
        year: Four digit year
        budgets: Budgets (models or storage records) with income sources resolved
        expenses: The owner's expenses (models or storage records)
        attention_ratio: Share of the limit above which spending needs attention

    Returns:
        One ``BudgetWithStats`` per budget, in input order
    """
    ratio = ATTENTION_RATIO if attention_ratio is None else attention_ratio
    spent_by_category = _spent_by_category(month, year, expenses)
    results = [
        evaluate_budget(budget, spent_by_category.get(budget.category_id, 0.0), ratio)
        for budget in map(_as_budget, budgets)
    ]
    logger.debug("Evaluated %d budgets for %02d/%d", len(results), month, year)
    return results


def effective_percentage(item: BudgetWithStats) -> Optional[float]:
    """Percentage of the income base the budget represents, if known."""
    if item.percentage is not None:
        return item.percentage
    if item.limit_amount and item.income_total > 0:
        return percent_of(item.limit_amount, item.income_total)
    return None


def usage_percentage(spent: float, limit: float) -> float:
    """Share of the limit already spent, 0 when there is no limit."""
    if limit <= 0:
        return 0.0
    return percent_of(spent, limit)


def aggregate_totals(items: Iterable[BudgetWithStats]) -> BudgetTotals:
    """Sum limits, spending and balances for a summary row.

    The aggregate percentage adds each budget's percentage, or the
    equivalent percentage of its fixed amount over its own income base.
    """
    limit_total = spent_total = balance_total = percentage_total = 0.0
    count = 0
    for item in items:
        count += 1
        limit_total += item.limit_calculated
        spent_total += item.spent
        balance_total += item.balance
        if item.percentage is not None:
            percentage_total += item.percentage
        elif item.limit_amount and item.income_total > 0:
            percentage_total += percent_of(item.limit_amount, item.income_total)
    return BudgetTotals(
        limit_calculated=round_currency(limit_total),
        spent=round_currency(spent_total),
        balance=round_currency(balance_total),
        percentage=percentage_total,
        count=count,
    )


BUDGET_FRAME_COLUMNS: Tuple[str, ...] = (
    'Budget ID',
    'Category ID',
    'Category',
    'Color',
    'Month',
    'Year',
    'Percentage',
    'Limit Amount',
    'Income Base',
    'Limit',
    'Spent',
    'Balance',
    'Percent Used',
    'Status',
)


def budgets_to_frame(items: Iterable[BudgetWithStats]) -> pd.DataFrame:
    """Tabulate evaluated budgets, one row per budget in input order."""
    rows = []
    for item in items:
        category = item.category
        rows.append({
            'Budget ID': item.id,
            'Category ID': item.category_id,
            'Category': category.name if category else UNCATEGORIZED_LABEL,
            'Color': category.color if category else None,
            'Month': item.month,
            'Year': item.year,
            'Percentage': effective_percentage(item),
            'Limit Amount': item.limit_amount,
            'Income Base': item.income_total,
            'Limit': item.limit_calculated,
            'Spent': item.spent,
            'Balance': item.balance,
            'Percent Used': usage_percentage(item.spent, item.limit_calculated),
            'Status': item.status.value,
        })
    return pd.DataFrame(rows, columns=list(BUDGET_FRAME_COLUMNS))
