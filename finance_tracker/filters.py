"""Income and expense list filters used by the listing screens."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Iterable, List, Optional

from .models import Expense, Income

INCOME_STATUSES = {'all', 'received', 'pending'}
FIXED_TYPES = {'all', 'fixed', 'variable'}
PAID_STATUSES = {'all', 'paid', 'unpaid'}


def _check_choice(name: str, value: str, allowed: set) -> None:
    if value not in allowed:
        raise ValueError(f"{name} must be one of {sorted(allowed)}, got {value!r}")


def _within(day: Optional[date], start: Optional[date], end: Optional[date]) -> bool:
    if start is None and end is None:
        return True
    if day is None:
        return False
    if start is not None and day < start:
        return False
    if end is not None and day > end:
        return False
    return True


@dataclass(frozen=True)
class IncomeFilters:
    search: str = ''
    category_id: Optional[str] = None
    institution_id: Optional[str] = None
    status: str = 'all'
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    fixed_type: str = 'all'

    def __post_init__(self) -> None:
        _check_choice('status', self.status, INCOME_STATUSES)
        _check_choice('fixed_type', self.fixed_type, FIXED_TYPES)

    def matches(self, income: Income) -> bool:
        search = self.search.strip().lower()
        if search and search not in income.description.lower():
            return False
        if self.category_id and income.category_id != self.category_id:
            return False
        if self.institution_id and income.institution_id != self.institution_id:
            return False
        if self.status == 'received' and not income.is_received:
            return False
        if self.status == 'pending' and income.is_received:
            return False
        if self.fixed_type == 'fixed' and not income.is_fixed:
            return False
        if self.fixed_type == 'variable' and income.is_fixed:
            return False
        return _within(income.income_date, self.start_date, self.end_date)


@dataclass(frozen=True)
class ExpenseFilters:
    search: str = ''
    category_id: Optional[str] = None
    type_id: Optional[str] = None
    institution_id: Optional[str] = None
    paid_status: str = 'all'
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    def __post_init__(self) -> None:
        _check_choice('paid_status', self.paid_status, PAID_STATUSES)

    def matches(self, expense: Expense) -> bool:
        search = self.search.strip().lower()
        if search and search not in expense.description.lower():
            return False
        # category is resolved through the expense type
        if self.category_id and expense.category_id != self.category_id:
            return False
        if self.type_id and expense.expense_type_id != self.type_id:
            return False
        if self.institution_id and expense.institution_id != self.institution_id:
            return False
        if self.paid_status == 'paid' and not expense.is_paid:
            return False
        if self.paid_status == 'unpaid' and expense.is_paid:
            return False
        return _within(expense.expense_date, self.start_date, self.end_date)


def filter_incomes(incomes: Iterable[Income], filters: Optional[IncomeFilters] = None) -> List[Income]:
    """Return the incomes matching ``filters``, preserving order."""
    active = filters or IncomeFilters()
    return [income for income in incomes if active.matches(income)]


def filter_expenses(expenses: Iterable[Expense], filters: Optional[ExpenseFilters] = None) -> List[Expense]:
    """Return the expenses matching ``filters``, preserving order."""
    active = filters or ExpenseFilters()
    return [expense for expense in expenses if active.matches(expense)]
