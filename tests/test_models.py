from __future__ import annotations

from datetime import date

from finance_tracker.models import (
    Budget,
    BudgetStatus,
    Expense,
    ExpenseType,
    FixedLimit,
    Income,
    PercentageLimit,
)


def test_expense_category_resolves_through_expense_type():
    expense = Expense.from_record({
        'id': 'e1',
        'description': 'Market',
        'amount': '42.10',
        'expense_date': '2024-03-05',
        'expense_types': {
            'id': 't1',
            'name': 'Supermarket',
            'category_id': 'food',
            'expense_category': {'id': 'food', 'name': 'Food', 'color': '#00ff00'},
        },
    })

    assert expense.amount == 42.10
    assert expense.expense_date == date(2024, 3, 5)
    assert expense.expense_type_id == 't1'
    assert expense.category_id == 'food'
    assert expense.category.name == 'Food'


def test_expense_type_wins_over_flat_category():
    expense = Expense(id='e1', category_id='other', expense_type=ExpenseType(id='t1', name='Bus', category_id='transport'))
    assert expense.category_id == 'transport'
    assert expense.expense_type_id == 't1'


def test_income_from_partial_record():
    income = Income.from_record({'id': 7, 'amount': None, 'income_date': 'bad'})
    assert income.id == '7'
    assert income.amount == 0.0
    assert income.income_date is None
    assert not income.is_received


def test_budget_from_record_coerces_fields():
    budget = Budget.from_record({
        'id': 'b1',
        'category_id': '',
        'month': '3',
        'year': 2024,
        'percentage': '',
        'limit_amount': '150.5',
        'expense_category': {'id': 'x', 'name': 'X'},
        'income_sources': [{'income': {'id': 'i1', 'amount': 10}}],
    })

    assert budget.category_id is None
    assert budget.month == 3
    assert budget.percentage is None
    assert budget.limit_amount == 150.5
    assert budget.category.name == 'X'
    assert budget.income_sources[0].income_id == 'i1'


def test_limit_kind_variants():
    assert Budget(id='b', category_id=None, month=1, year=2024, percentage=10).limit_kind == PercentageLimit(10)
    assert Budget(id='b', category_id=None, month=1, year=2024, limit_amount=50).limit_kind == FixedLimit(50)
    assert Budget(id='b', category_id=None, month=1, year=2024, percentage=5, limit_amount=50).limit_kind == PercentageLimit(5)
    assert Budget(id='b', category_id=None, month=1, year=2024).limit_kind is None


def test_status_is_a_plain_string():
    assert BudgetStatus.ON_TRACK == 'on-track'
    assert str(BudgetStatus.NO_SPENDING) == 'no-spending'
