"""Dashboard summaries: monthly totals, category breakdowns and budget progress."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

import pandas as pd

from .budget_engine import evaluate_budgets, usage_percentage
from .config import UNCATEGORIZED_LABEL
from .formatting import percent_of
from .models import Budget, BudgetWithStats, Category, Expense, Income

IncomeLike = Union[Income, Mapping[str, Any]]
ExpenseLike = Union[Expense, Mapping[str, Any]]

CATEGORY_COLUMNS = ['Category', 'Amount', 'Color']
PROGRESS_COLUMNS = ['Category ID', 'Category', 'Color', 'Limit', 'Spent', 'Percent Used', 'Status']
MONTHLY_COLUMNS = ['Month', 'Income', 'Expense', 'Balance']


@dataclass
class IncomeSummary:
    total: float = 0.0
    received: float = 0.0
    pending: float = 0.0


@dataclass
class DashboardData:
    month: int
    year: int
    total_income: float
    total_expense: float
    balance: float
    savings_rate: float
    income_by_category: pd.DataFrame
    expense_by_category: pd.DataFrame
    budget_progress: pd.DataFrame
    budgets: List[BudgetWithStats] = field(default_factory=list)


def _incomes(values: Iterable[IncomeLike]) -> List[Income]:
    return [v if isinstance(v, Income) else Income.from_record(v) for v in values]


def _expenses(values: Iterable[ExpenseLike]) -> List[Expense]:
    return [v if isinstance(v, Expense) else Expense.from_record(v) for v in values]


def _resolve_category(
    category: Optional[Category],
    category_id: Optional[str],
    categories: Mapping[str, Category],
) -> Optional[Category]:
    if category is not None:
        return category
    if category_id is None:
        return None
    return categories.get(category_id)


def _category_frame(rows: List[Dict[str, Any]]) -> pd.DataFrame:
    if not rows:
        return pd.DataFrame(columns=CATEGORY_COLUMNS)
    df = pd.DataFrame(rows)
    grouped = (
        df.groupby('Category', sort=False)
        .agg(Amount=('Amount', 'sum'), Color=('Color', 'first'))
        .reset_index()
    )
    grouped = grouped.sort_values('Amount', ascending=False, kind='mergesort')
    return grouped[CATEGORY_COLUMNS].reset_index(drop=True)


def income_summary(incomes: Iterable[IncomeLike]) -> IncomeSummary:
    """Total, received and pending income amounts."""
    summary = IncomeSummary()
    for income in _incomes(incomes):
        summary.total += income.amount
        if income.is_received:
            summary.received += income.amount
        else:
            summary.pending += income.amount
    return summary


def monthly_income_vs_expense(
    incomes: Iterable[IncomeLike],
    expenses: Iterable[ExpenseLike],
    year: int,
) -> pd.DataFrame:
    """Create DataFrame showing income vs expense for each month of ``year``.

    Returns:
        DataFrame with columns: Month (1-12), Income, Expense, Balance
    """
    def monthly(pairs) -> pd.Series:
        frame = pd.DataFrame(
            [(day.month, amount) for day, amount in pairs if day is not None and day.year == year],
            columns=['Month', 'Amount'],
        )
        totals = frame.groupby('Month')['Amount'].sum() if not frame.empty else pd.Series(dtype=float)
        return totals.reindex(range(1, 13), fill_value=0.0).astype(float)

    income_by_month = monthly((i.income_date, i.amount) for i in _incomes(incomes))
    expense_by_month = monthly((e.expense_date, e.amount) for e in _expenses(expenses))
    result = pd.DataFrame({
        'Month': list(range(1, 13)),
        'Income': income_by_month.values,
        'Expense': expense_by_month.values,
    })
    result['Balance'] = result['Income'] - result['Expense']
    return result[MONTHLY_COLUMNS]


def budget_progress_frame(
    items: Sequence[BudgetWithStats],
    categories: Optional[Mapping[str, Category]] = None,
) -> pd.DataFrame:
    """One progress row per evaluated budget."""
    lookup = categories or {}
    rows = []
    for item in items:
        category = _resolve_category(item.category, item.category_id, lookup)
        rows.append({
            'Category ID': item.category_id,
            'Category': category.name if category else UNCATEGORIZED_LABEL,
            'Color': category.color if category else None,
            'Limit': item.limit_calculated,
            'Spent': item.spent,
            'Percent Used': usage_percentage(item.spent, item.limit_calculated),
            'Status': item.status.value,
        })
    return pd.DataFrame(rows, columns=PROGRESS_COLUMNS)


def build_dashboard(
    month: int,
    year: int,
    incomes: Iterable[IncomeLike],
    expenses: Iterable[ExpenseLike],
    budgets: Sequence[Union[Budget, Mapping[str, Any]]],
    categories: Optional[Mapping[str, Category]] = None,
) -> DashboardData:
    """Summarize one month for the dashboard.

    Args:
        month: Calendar month, 1-12
        year: Four digit year
        incomes: The owner's incomes
        expenses: The owner's expenses
        budgets: The owner's budgets for the month, income sources resolved
        categories: Optional id -> Category lookup for records without a joined category

    Returns:
        DashboardData with totals, savings rate, category breakdowns and budget progress
    """
    lookup = categories or {}
    all_expenses = _expenses(expenses)
    month_incomes = [
        i for i in _incomes(incomes)
        if i.income_date is not None and (i.income_date.month, i.income_date.year) == (month, year)
    ]
    month_expenses = [
        e for e in all_expenses
        if e.expense_date is not None and (e.expense_date.month, e.expense_date.year) == (month, year)
    ]

    total_income = sum(i.amount for i in month_incomes)
    total_expense = sum(e.amount for e in month_expenses)
    balance = total_income - total_expense

    income_rows = []
    for income in month_incomes:
        category = _resolve_category(income.category, income.category_id, lookup)
        income_rows.append({
            'Category': category.name if category else UNCATEGORIZED_LABEL,
            'Amount': income.amount,
            'Color': category.color if category else None,
        })
    expense_rows = []
    for expense in month_expenses:
        category = _resolve_category(expense.category, expense.category_id, lookup)
        expense_rows.append({
            'Category': category.name if category else UNCATEGORIZED_LABEL,
            'Amount': expense.amount,
            'Color': category.color if category else None,
        })

    evaluated = evaluate_budgets(month, year, budgets, all_expenses)
    return DashboardData(
        month=month,
        year=year,
        total_income=float(total_income),
        total_expense=float(total_expense),
        balance=float(balance),
        savings_rate=percent_of(balance, total_income) if total_income > 0 else 0.0,
        income_by_category=_category_frame(income_rows),
        expense_by_category=_category_frame(expense_rows),
        budget_progress=budget_progress_frame(evaluated, lookup),
        budgets=evaluated,
    )
