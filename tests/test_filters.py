from __future__ import annotations

from datetime import date

import pytest

from finance_tracker.filters import ExpenseFilters, IncomeFilters, filter_expenses, filter_incomes
from finance_tracker.models import Expense, ExpenseType, Income


def _incomes():
    return [
        Income(id='i1', description='Salary', amount=5000, income_date=date(2024, 3, 5),
               is_fixed=True, is_received=True, category_id='work', institution_id='bank'),
        Income(id='i2', description='Freelance logo', amount=800, income_date=date(2024, 3, 20),
               category_id='side'),
        Income(id='i3', description='Salary bonus', amount=1000, income_date=None, is_received=True),
    ]


def _expenses():
    food = ExpenseType(id='t1', name='Market', category_id='food')
    return [
        Expense(id='e1', description='Supermarket', amount=300, expense_date=date(2024, 3, 2), expense_type=food,
                is_paid=True),
        Expense(id='e2', description='Bus pass', amount=90, expense_date=date(2024, 4, 1),
                expense_type=ExpenseType(id='t2', name='Transit', category_id='transport'), institution_id='card'),
        Expense(id='e3', description='Farmers market', amount=45, expense_date=date(2024, 3, 9), expense_type=food),
    ]


def test_no_filters_keeps_everything_in_order():
    assert [i.id for i in filter_incomes(_incomes())] == ['i1', 'i2', 'i3']
    assert [e.id for e in filter_expenses(_expenses())] == ['e1', 'e2', 'e3']


def test_income_filters():
    incomes = _incomes()
    assert [i.id for i in filter_incomes(incomes, IncomeFilters(search='SALARY'))] == ['i1', 'i3']
    assert [i.id for i in filter_incomes(incomes, IncomeFilters(status='pending'))] == ['i2']
    assert [i.id for i in filter_incomes(incomes, IncomeFilters(status='received', fixed_type='variable'))] == ['i3']
    assert [i.id for i in filter_incomes(incomes, IncomeFilters(category_id='work'))] == ['i1']
    assert [i.id for i in filter_incomes(incomes, IncomeFilters(institution_id='bank'))] == ['i1']


def test_income_date_range_is_inclusive_and_skips_undated():
    filters = IncomeFilters(start_date=date(2024, 3, 5), end_date=date(2024, 3, 20))
    assert [i.id for i in filter_incomes(_incomes(), filters)] == ['i1', 'i2']


def test_expense_filters():
    expenses = _expenses()
    assert [e.id for e in filter_expenses(expenses, ExpenseFilters(search='market'))] == ['e1', 'e3']
    assert [e.id for e in filter_expenses(expenses, ExpenseFilters(category_id='food'))] == ['e1', 'e3']
    assert [e.id for e in filter_expenses(expenses, ExpenseFilters(type_id='t2'))] == ['e2']
    assert [e.id for e in filter_expenses(expenses, ExpenseFilters(paid_status='unpaid'))] == ['e2', 'e3']
    assert [e.id for e in filter_expenses(expenses, ExpenseFilters(institution_id='card'))] == ['e2']
    assert [e.id for e in filter_expenses(expenses, ExpenseFilters(end_date=date(2024, 3, 31)))] == ['e1', 'e3']


def test_unknown_choices_are_rejected():
    with pytest.raises(ValueError):
        IncomeFilters(status='late')
    with pytest.raises(ValueError):
        ExpenseFilters(paid_status='maybe')
