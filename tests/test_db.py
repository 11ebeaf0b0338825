from __future__ import annotations

from datetime import date

import pytest
from pydantic import ValidationError

from finance_tracker.budget_engine import evaluate_budgets
from finance_tracker.db import (
    BudgetConflictError,
    CategoryInUseError,
    FinanceStore,
    NotAuthenticatedError,
    RecordNotFoundError,
)
from finance_tracker.models import BudgetStatus
from finance_tracker.notifications import INCOME_OVERDUE, IncomeAlert
from finance_tracker.schemas import BudgetForm, CategoryForm, ExpenseForm, IncomeForm, InstitutionForm
from finance_tracker.session import Session

ALICE = Session(user_id='alice')
BOB = Session(user_id='bob')


@pytest.fixture
def store(tmp_path):
    return FinanceStore(tmp_path / 'finance.db')


def _income(store, session=ALICE, amount=1000.0, day=date(2024, 5, 5), **kwargs):
    return store.create_income(session, IncomeForm(description='Salary', amount=amount, income_date=day, **kwargs))


def _expense(store, type_id, amount, day, session=ALICE):
    return store.create_expense(
        session, ExpenseForm(description='Spend', amount=amount, expense_date=day, expense_type_id=type_id)
    )


def test_requires_authenticated_session(store):
    with pytest.raises(NotAuthenticatedError):
        store.fetch_incomes(None)
    with pytest.raises(NotAuthenticatedError):
        store.fetch_budgets(Session(user_id=''), 5, 2024)


def test_income_crud_is_scoped_to_owner(store):
    income = _income(store, payment_type='  pix ')
    assert income.payment_type == 'pix'
    assert income.income_date == date(2024, 5, 5)
    assert store.fetch_incomes(BOB) == []

    with pytest.raises(RecordNotFoundError):
        store.get_income(BOB, income.id)
    with pytest.raises(RecordNotFoundError):
        store.delete_income(BOB, income.id)

    received = store.set_income_received(ALICE, income.id)
    assert received.is_received

    updated = store.update_income(
        ALICE, income.id, IncomeForm(description='Bonus', amount=250, income_date=date(2024, 6, 1))
    )
    assert (updated.description, updated.amount, updated.is_received) == ('Bonus', 250.0, False)

    store.delete_income(ALICE, income.id)
    assert store.fetch_incomes(ALICE) == []


def test_expense_resolves_type_and_category(store):
    food = store.create_category(ALICE, CategoryForm(name='Food', color='#ff0000'))
    groceries = store.create_expense_type(ALICE, ' Groceries ', food.id)
    expense = _expense(store, groceries.id, 42.5, date(2024, 5, 10))

    assert expense.category_id == food.id
    assert expense.category.name == 'Food'
    assert expense.expense_type.name == 'Groceries'
    assert [t.category.name for t in store.list_expense_types(ALICE)] == ['Food']

    with pytest.raises(RecordNotFoundError):
        _expense(store, groceries.id, 1, date(2024, 5, 10), session=BOB)


def test_category_in_use_cannot_be_deleted(store):
    food = store.create_category(ALICE, CategoryForm(name='Food'))
    store.create_expense_type(ALICE, 'Groceries', food.id)

    assert store.category_references(ALICE, food.id)['expense_types'] == 1
    with pytest.raises(CategoryInUseError):
        store.delete_category(ALICE, food.id)

    salary = store.create_category(ALICE, CategoryForm(name='Salary'), kind='income')
    store.delete_category(ALICE, salary.id, kind='income')
    assert store.list_categories(ALICE, kind='income') == []

    with pytest.raises(ValueError):
        store.list_categories(ALICE, kind='savings')


def test_institutions(store):
    bank = store.create_institution(ALICE, InstitutionForm(name='Bank'))
    assert [i.name for i in store.list_institutions(ALICE)] == ['Bank']
    store.delete_institution(ALICE, bank.id)
    assert store.list_institutions(ALICE) == []


def test_budget_round_trip_and_evaluation(store):
    food = store.create_category(ALICE, CategoryForm(name='Food', color='#00aa00'))
    groceries = store.create_expense_type(ALICE, 'Groceries', food.id)
    salary = _income(store, amount=3000)
    extra = _income(store, amount=1000)
    _expense(store, groceries.id, 700, date(2024, 5, 3))
    _expense(store, groceries.id, 50, date(2024, 4, 30))

    budget = store.create_budget(
        ALICE, BudgetForm(category_id=food.id, month=5, year=2024, percentage=20, income_ids=[salary.id, extra.id])
    )
    assert budget.category.name == 'Food'
    assert sorted(s.income_id for s in budget.income_sources) == sorted([salary.id, extra.id])

    [item] = evaluate_budgets(5, 2024, store.fetch_budgets(ALICE, 5, 2024), store.fetch_expenses(ALICE))
    assert item.income_total == 4000
    assert item.limit_calculated == 800
    assert item.spent == 700
    assert item.status is BudgetStatus.ATTENTION

    # deleting an income drops it from the income base
    store.delete_income(ALICE, extra.id)
    [item] = evaluate_budgets(5, 2024, store.fetch_budgets(ALICE, 5, 2024), store.fetch_expenses(ALICE))
    assert item.limit_calculated == 600
    assert item.status is BudgetStatus.EXCEEDED


def test_budget_uniqueness_per_category_and_month(store):
    food = store.create_category(ALICE, CategoryForm(name='Food'))
    form = BudgetForm(category_id=food.id, month=1, year=2024, limit_amount=300)
    store.create_budget(ALICE, form)

    with pytest.raises(BudgetConflictError):
        store.create_budget(ALICE, form)
    store.create_budget(ALICE, BudgetForm(category_id=food.id, month=2, year=2024, limit_amount=300))
    store.create_budget(BOB, BudgetForm(month=1, year=2024, limit_amount=10))

    store.create_budget(ALICE, BudgetForm(month=1, year=2024, limit_amount=50))
    with pytest.raises(BudgetConflictError):
        store.create_budget(ALICE, BudgetForm(month=1, year=2024, limit_amount=60))


def test_upsert_budget_replaces_sources(store):
    first = _income(store, amount=500)
    second = _income(store, amount=1500)
    created = store.upsert_budget(ALICE, BudgetForm(month=3, year=2024, percentage=10, income_ids=[first.id]))
    updated = store.upsert_budget(ALICE, BudgetForm(month=3, year=2024, percentage=15, income_ids=[second.id]))

    assert updated.id == created.id
    assert updated.percentage == 15
    assert [s.income_id for s in updated.income_sources] == [second.id]
    assert len(store.fetch_budgets(ALICE, 3, 2024)) == 1


def test_budget_rejects_foreign_income_sources(store):
    bobs = _income(store, session=BOB)
    with pytest.raises(RecordNotFoundError):
        store.create_budget(ALICE, BudgetForm(month=5, year=2024, percentage=10, income_ids=[bobs.id]))
    assert store.fetch_budgets(ALICE, 5, 2024) == []


def test_delete_budget(store):
    budget = store.create_budget(ALICE, BudgetForm(month=5, year=2024, limit_amount=100))
    with pytest.raises(RecordNotFoundError):
        store.delete_budget(BOB, budget.id)
    store.delete_budget(ALICE, budget.id)
    with pytest.raises(RecordNotFoundError):
        store.get_budget(ALICE, budget.id)


def test_frames(store):
    food = store.create_category(ALICE, CategoryForm(name='Food'))
    groceries = store.create_expense_type(ALICE, 'Groceries', food.id)
    _income(store, amount=100, is_received=True)
    _expense(store, groceries.id, 30, date(2024, 5, 2))

    incomes = store.incomes_frame(ALICE)
    expenses = store.expenses_frame(ALICE)

    assert list(incomes['Amount']) == [100.0]
    assert bool(incomes.loc[0, 'Received']) is True
    assert list(expenses['Category']) == ['Food']
    assert store.incomes_frame(BOB).empty


def test_update_and_delete_expense(store):
    home = store.create_category(ALICE, CategoryForm(name='Home'))
    renamed = store.update_category(ALICE, home.id, CategoryForm(name='House', color='#123456'))
    assert [c.name for c in store.list_categories(ALICE)] == ['House']
    assert renamed.color == '#123456'

    rent = store.create_expense_type(ALICE, 'Rent', home.id)
    expense = _expense(store, None, 10, date(2024, 5, 1))
    assert expense.category_id is None

    updated = store.update_expense(
        ALICE,
        expense.id,
        ExpenseForm(description='Rent May', amount=1200, expense_date=date(2024, 5, 1), expense_type_id=rent.id, is_paid=True),
    )
    assert (updated.amount, updated.is_paid, updated.category_id) == (1200.0, True, home.id)

    with pytest.raises(RecordNotFoundError):
        store.update_expense(BOB, expense.id, ExpenseForm(description='x', amount=1, expense_date=date(2024, 5, 1)))
    store.delete_expense(ALICE, expense.id)
    assert store.fetch_expenses(ALICE) == []


def test_writes_cannot_reference_another_users_records(store):
    medical = store.create_category(ALICE, CategoryForm(name='Alice Medical', color='#ff0000'))
    salary = store.create_category(ALICE, CategoryForm(name='Alice Salary'), kind='income')
    bank = store.create_institution(ALICE, InstitutionForm(name='Alice Bank'))
    pharmacy = store.create_expense_type(ALICE, 'Pharmacy', medical.id)

    with pytest.raises(RecordNotFoundError):
        store.create_budget(BOB, BudgetForm(category_id=medical.id, month=5, year=2024, limit_amount=10))
    with pytest.raises(RecordNotFoundError):
        _income(store, session=BOB, category_id=salary.id)
    with pytest.raises(RecordNotFoundError):
        _income(store, session=BOB, institution_id=bank.id)
    with pytest.raises(RecordNotFoundError):
        store.create_expense(
            BOB, ExpenseForm(description='x', amount=1, expense_date=date(2024, 5, 1), institution_id=bank.id)
        )

    bobs_budget = store.create_budget(BOB, BudgetForm(month=5, year=2024, limit_amount=10))
    with pytest.raises(RecordNotFoundError):
        store.update_budget(
            BOB, bobs_budget.id, BudgetForm(category_id=medical.id, month=5, year=2024, limit_amount=10)
        )
    bobs_income = _income(store, session=BOB)
    with pytest.raises(RecordNotFoundError):
        store.update_income(
            BOB, bobs_income.id,
            IncomeForm(description='x', amount=1, income_date=date(2024, 5, 1), category_id=salary.id),
        )
    bobs_expense = _expense(store, None, 5, date(2024, 5, 1), session=BOB)
    with pytest.raises(RecordNotFoundError):
        store.update_expense(
            BOB, bobs_expense.id,
            ExpenseForm(description='x', amount=1, expense_date=date(2024, 5, 1), expense_type_id=pharmacy.id),
        )

    assert store.get_budget(BOB, bobs_budget.id).category is None
    assert store.get_income(BOB, bobs_income.id).category is None


def test_budget_spending_summing_to_fractional_limit(store):
    food = store.create_category(ALICE, CategoryForm(name='Food'))
    groceries = store.create_expense_type(ALICE, 'Groceries', food.id)
    _expense(store, groceries.id, 0.1, date(2024, 5, 1))
    _expense(store, groceries.id, 0.2, date(2024, 5, 2))
    store.create_budget(ALICE, BudgetForm(category_id=food.id, month=5, year=2024, limit_amount=0.3))

    [item] = evaluate_budgets(5, 2024, store.fetch_budgets(ALICE, 5, 2024), store.fetch_expenses(ALICE))

    assert item.spent == 0.3
    assert item.balance == 0
    assert item.status is BudgetStatus.ATTENTION


def test_notification_settings_defaults_and_partial_update(store):
    settings = store.get_notification_settings(ALICE)
    assert settings.upcoming_days == 3
    assert settings.overdue_alerts

    updated = store.update_notification_settings(ALICE, upcoming_days=7, overdue_alerts=False)
    assert (updated.upcoming_days, updated.overdue_alerts, updated.upcoming_alerts) == (7, False, True)
    assert store.get_notification_settings(ALICE) == updated
    assert store.get_notification_settings(BOB).upcoming_days == 3

    with pytest.raises(ValidationError):
        store.update_notification_settings(ALICE, upcoming_days=0)
    with pytest.raises(ValueError):
        store.update_notification_settings(ALICE, theme='dark')


def test_notification_read_state_and_deletion(store):
    alert = IncomeAlert(
        type=INCOME_OVERDUE, title='Income overdue', message='late', reference_id='i1', expires_at=date(2024, 6, 9)
    )
    first = store.create_notification(ALICE, alert)
    second = store.create_notification(ALICE, alert)

    assert first.id and not first.is_read
    assert first.expires_at == date(2024, 6, 9)
    assert [n.id for n in store.list_notifications(ALICE)] == [second.id, first.id]
    assert store.list_notifications(ALICE, limit=1)[0].id == second.id
    assert store.unread_notification_count(ALICE) == 2
    assert store.list_notifications(BOB) == []

    with pytest.raises(RecordNotFoundError):
        store.mark_notification_read(BOB, first.id)
    assert store.mark_notification_read(ALICE, first.id).is_read
    assert [n.id for n in store.list_notifications(ALICE, unread_only=True)] == [second.id]

    assert store.mark_all_notifications_read(ALICE) == 1
    assert store.unread_notification_count(ALICE) == 0

    store.delete_notification(ALICE, first.id)
    with pytest.raises(RecordNotFoundError):
        store.get_notification(ALICE, first.id)
