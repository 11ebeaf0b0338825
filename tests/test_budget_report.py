import importlib.util
from datetime import date
from pathlib import Path

from finance_tracker.db import FinanceStore
from finance_tracker.schemas import BudgetForm, CategoryForm, ExpenseForm, IncomeForm
from finance_tracker.session import Session

SCRIPT_PATH = Path(__file__).resolve().parents[1] / 'scripts' / 'budget_report.py'


def _load_script_module():
    spec = importlib.util.spec_from_file_location('budget_report_test', SCRIPT_PATH)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def test_report_without_budgets(tmp_path, capsys):
    module = _load_script_module()
    assert module.main('nobody', 2, 2024, tmp_path / 'finance.db') == 0
    assert 'No budgets defined for 02/2024.' in capsys.readouterr().out


def test_report_prints_budgets_and_totals(tmp_path, capsys):
    db_path = tmp_path / 'finance.db'
    store = FinanceStore(db_path)
    session = Session(user_id='alice')
    food = store.create_category(session, CategoryForm(name='Food'))
    groceries = store.create_expense_type(session, 'Groceries', food.id)
    salary = store.create_income(
        session, IncomeForm(description='Salary', amount=4000, income_date=date(2024, 2, 5))
    )
    store.create_expense(
        session,
        ExpenseForm(description='Market', amount=900, expense_date=date(2024, 2, 10), expense_type_id=groceries.id),
    )
    store.create_budget(
        session, BudgetForm(category_id=food.id, month=2, year=2024, percentage=20, income_ids=[salary.id])
    )

    module = _load_script_module()
    assert module.main('alice', 2, 2024, db_path) == 0

    out = capsys.readouterr().out
    assert 'Budgets for 02/2024' in out
    assert 'Food' in out
    assert 'exceeded' in out
    assert 'R$ 800,00' in out
    assert '-R$ 100,00' in out
    assert 'Percentage: 20.00%' in out
