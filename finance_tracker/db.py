"""Local data-access layer.

A sqlite store mirroring the hosted backend's tables.  Every public method
takes the authenticated ``Session`` as its first argument and scopes all
reads and writes to ``session.user_id``.
"""

from __future__ import annotations

import logging
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence

import pandas as pd

from .config import DB_PATH, ensure_data_directories
from .models import Budget, Category, Expense, ExpenseType, Income, Institution
from .notifications import IncomeAlert
from .schemas import BudgetForm, CategoryForm, ExpenseForm, IncomeForm, InstitutionForm, NotificationPreferences
from .session import Session

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
PRAGMA journal_mode=WAL;

CREATE TABLE IF NOT EXISTS expense_categories (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    color TEXT,
    user_id TEXT NOT NULL,
    created_at TEXT,
    updated_at TEXT
);

CREATE TABLE IF NOT EXISTS income_categories (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    color TEXT,
    user_id TEXT NOT NULL,
    created_at TEXT,
    updated_at TEXT
);

CREATE TABLE IF NOT EXISTS institutions (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    type TEXT,
    logo_url TEXT,
    user_id TEXT NOT NULL,
    created_at TEXT,
    updated_at TEXT
);

CREATE TABLE IF NOT EXISTS expense_types (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    category_id TEXT REFERENCES expense_categories (id),
    user_id TEXT NOT NULL,
    created_at TEXT,
    updated_at TEXT
);

CREATE TABLE IF NOT EXISTS incomes (
    id TEXT PRIMARY KEY,
    description TEXT NOT NULL,
    notes TEXT,
    payment_type TEXT,
    amount REAL NOT NULL,
    income_date TEXT NOT NULL,
    is_fixed INTEGER NOT NULL DEFAULT 0,
    is_received INTEGER NOT NULL DEFAULT 0,
    category_id TEXT REFERENCES income_categories (id),
    institution_id TEXT REFERENCES institutions (id) ON DELETE SET NULL,
    user_id TEXT NOT NULL,
    created_at TEXT,
    updated_at TEXT
);

CREATE TABLE IF NOT EXISTS expenses (
    id TEXT PRIMARY KEY,
    description TEXT NOT NULL,
    amount REAL NOT NULL,
    expense_type_id TEXT REFERENCES expense_types (id),
    institution_id TEXT REFERENCES institutions (id) ON DELETE SET NULL,
    payment_type TEXT,
    expense_date TEXT NOT NULL,
    payment_date TEXT,
    is_paid INTEGER NOT NULL DEFAULT 0,
    user_id TEXT NOT NULL,
    created_at TEXT,
    updated_at TEXT
);

CREATE TABLE IF NOT EXISTS expense_budgets (
    id TEXT PRIMARY KEY,
    category_id TEXT REFERENCES expense_categories (id),
    month INTEGER NOT NULL,
    year INTEGER NOT NULL,
    percentage REAL,
    limit_amount REAL,
    user_id TEXT NOT NULL,
    created_at TEXT,
    updated_at TEXT
);

CREATE UNIQUE INDEX IF NOT EXISTS ux_budget_owner_category_period
ON expense_budgets (user_id, COALESCE(category_id, ''), month, year);

CREATE TABLE IF NOT EXISTS budget_income_sources (
    id TEXT PRIMARY KEY,
    budget_id TEXT NOT NULL REFERENCES expense_budgets (id) ON DELETE CASCADE,
    income_id TEXT NOT NULL REFERENCES incomes (id) ON DELETE CASCADE,
    user_id TEXT NOT NULL,
    created_at TEXT
);

CREATE TABLE IF NOT EXISTS notification_settings (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL UNIQUE,
    email_notifications INTEGER NOT NULL DEFAULT 1,
    push_notifications INTEGER NOT NULL DEFAULT 1,
    overdue_alerts INTEGER NOT NULL DEFAULT 1,
    upcoming_alerts INTEGER NOT NULL DEFAULT 1,
    upcoming_days INTEGER NOT NULL DEFAULT 3,
    created_at TEXT,
    updated_at TEXT
);

CREATE TABLE IF NOT EXISTS notifications (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    type TEXT NOT NULL,
    title TEXT NOT NULL,
    message TEXT NOT NULL,
    reference_id TEXT,
    reference_type TEXT,
    is_read INTEGER NOT NULL DEFAULT 0,
    created_at TEXT,
    expires_at TEXT
);

CREATE INDEX IF NOT EXISTS ix_income_user_date ON incomes (user_id, income_date);
CREATE INDEX IF NOT EXISTS ix_expense_user_date ON expenses (user_id, expense_date);
CREATE INDEX IF NOT EXISTS ix_sources_budget ON budget_income_sources (budget_id);
CREATE INDEX IF NOT EXISTS ix_notifications_user ON notifications (user_id, is_read);
"""

CATEGORY_TABLES = {
    'expense': 'expense_categories',
    'income': 'income_categories',
}


class FinanceStoreError(Exception):
    """Base class for data-access failures."""


class NotAuthenticatedError(FinanceStoreError):
    pass


class RecordNotFoundError(FinanceStoreError):
    pass


class BudgetConflictError(FinanceStoreError):
    """A budget already exists for this owner, category, month and year."""


class CategoryInUseError(FinanceStoreError):
    """The category is still referenced and cannot be deleted."""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _new_id() -> str:
    return str(uuid.uuid4())


def _user_id(session: Optional[Session]) -> str:
    if session is None or not session.user_id:
        raise NotAuthenticatedError("User not authenticated")
    return session.user_id


def _category_table(kind: str) -> str:
    try:
        return CATEGORY_TABLES[kind]
    except KeyError:
        raise ValueError(f"Unknown category kind: {kind!r}") from None


def _income_from_row(row: sqlite3.Row) -> Income:
    record = dict(row)
    if record.get('category_name') is not None:
        record['income_categories'] = {
            'id': record['category_id'],
            'name': record['category_name'],
            'color': record.get('category_color'),
        }
    return Income.from_record(record)


def _expense_from_row(row: sqlite3.Row) -> Expense:
    record = dict(row)
    if record.get('type_name') is not None:
        expense_type: Dict[str, Any] = {
            'id': record['expense_type_id'],
            'name': record['type_name'],
            'category_id': record.get('type_category_id'),
        }
        if record.get('category_name') is not None:
            expense_type['expense_category'] = {
                'id': record['type_category_id'],
                'name': record['category_name'],
                'color': record.get('category_color'),
            }
        record['expense_type'] = expense_type
    return Expense.from_record(record)


INCOME_SELECT = """
SELECT i.*, c.name AS category_name, c.color AS category_color
FROM incomes i
LEFT JOIN income_categories c ON c.id = i.category_id
"""

EXPENSE_SELECT = """
SELECT e.*, t.name AS type_name, t.category_id AS type_category_id,
       c.name AS category_name, c.color AS category_color
FROM expenses e
LEFT JOIN expense_types t ON t.id = e.expense_type_id
LEFT JOIN expense_categories c ON c.id = t.category_id
"""


class FinanceStore:
    """Handles all reads and writes of one user's finance records."""

    def __init__(self, db_path: Optional[Path] = None):
        """Initialize the store and create the schema if needed.

        Args:
            db_path: Optional custom database file. Defaults to DB_PATH from config.
        """
        if db_path is None:
            ensure_data_directories()
            self.db_path = DB_PATH
        else:
            self.db_path = Path(db_path)
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.init_db()

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys=ON")
        try:
            yield conn
        finally:
            conn.close()

    def init_db(self) -> None:
        with self.connect() as conn:
            conn.executescript(SCHEMA_SQL)
            conn.commit()

    def _execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        try:
            with self.connect() as conn:
                cursor = conn.execute(sql, params)
                conn.commit()
                return cursor.rowcount
        except sqlite3.Error as e:
            raise FinanceStoreError(f"Database write failed: {e}") from e

    def _query(self, sql: str, params: Sequence[Any] = ()) -> List[sqlite3.Row]:
        with self.connect() as conn:
            return conn.execute(sql, params).fetchall()

    def _require_owned(self, table: str, record_id: str, user_id: str) -> None:
        rows = self._query(f"SELECT id FROM {table} WHERE id = ? AND user_id = ?", (record_id, user_id))
        if not rows:
            raise RecordNotFoundError(f"{table} record {record_id} not found")

    def _require_references(self, user_id: str, **references: Optional[str]) -> None:
        """Check that every referenced record (keyed by table) belongs to the user."""
        for table, record_id in references.items():
            if record_id is not None:
                self._require_owned(table, record_id, user_id)

    # Categories

    def create_category(self, session: Session, form: CategoryForm, kind: str = 'expense') -> Category:
        user_id = _user_id(session)
        table = _category_table(kind)
        category_id = _new_id()
        now = _now()
        self._execute(
            f"INSERT INTO {table} (id, name, color, user_id, created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?)",
            (category_id, form.name, form.color, user_id, now, now),
        )
        return Category(id=category_id, name=form.name, color=form.color, user_id=user_id)

    def list_categories(self, session: Session, kind: str = 'expense') -> List[Category]:
        user_id = _user_id(session)
        table = _category_table(kind)
        rows = self._query(f"SELECT * FROM {table} WHERE user_id = ? ORDER BY name", (user_id,))
        return [Category.from_record(dict(row)) for row in rows]

    def update_category(self, session: Session, category_id: str, form: CategoryForm, kind: str = 'expense') -> Category:
        user_id = _user_id(session)
        table = _category_table(kind)
        self._require_owned(table, category_id, user_id)
        self._execute(
            f"UPDATE {table} SET name = ?, color = ?, updated_at = ? WHERE id = ? AND user_id = ?",
            (form.name, form.color, _now(), category_id, user_id),
        )
        return Category(id=category_id, name=form.name, color=form.color, user_id=user_id)

    def category_references(self, session: Session, category_id: str, kind: str = 'expense') -> Dict[str, int]:
        """Count records referencing a category, by table."""
        user_id = _user_id(session)
        if kind == 'income':
            checks = {'incomes': "SELECT COUNT(*) FROM incomes WHERE category_id = ? AND user_id = ?"}
        else:
            _category_table(kind)
            checks = {
                'expense_types': "SELECT COUNT(*) FROM expense_types WHERE category_id = ? AND user_id = ?",
                'expenses': (
                    "SELECT COUNT(*) FROM expenses e JOIN expense_types t ON t.id = e.expense_type_id "
                    "WHERE t.category_id = ? AND e.user_id = ?"
                ),
                'expense_budgets': "SELECT COUNT(*) FROM expense_budgets WHERE category_id = ? AND user_id = ?",
            }
        with self.connect() as conn:
            return {name: conn.execute(sql, (category_id, user_id)).fetchone()[0] for name, sql in checks.items()}

    def delete_category(self, session: Session, category_id: str, kind: str = 'expense') -> None:
        """Delete a category.

        Raises:
            CategoryInUseError: If any record still references the category
            RecordNotFoundError: If the category does not belong to the user
        """
        user_id = _user_id(session)
        table = _category_table(kind)
        self._require_owned(table, category_id, user_id)
        references = {name: count for name, count in self.category_references(session, category_id, kind).items() if count}
        if references:
            raise CategoryInUseError(f"Category {category_id} is still used by {references}")
        self._execute(f"DELETE FROM {table} WHERE id = ? AND user_id = ?", (category_id, user_id))
        logger.info("Deleted %s category %s", kind, category_id)

    # Institutions and expense types

    def create_institution(self, session: Session, form: InstitutionForm) -> Institution:
        user_id = _user_id(session)
        institution_id = _new_id()
        now = _now()
        self._execute(
            "INSERT INTO institutions (id, name, type, logo_url, user_id, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)",
            (institution_id, form.name, form.type, form.logo_url, user_id, now, now),
        )
        return Institution(id=institution_id, name=form.name, logo_url=form.logo_url, user_id=user_id)

    def list_institutions(self, session: Session) -> List[Institution]:
        user_id = _user_id(session)
        rows = self._query("SELECT * FROM institutions WHERE user_id = ? ORDER BY name", (user_id,))
        return [Institution.from_record(dict(row)) for row in rows]

    def delete_institution(self, session: Session, institution_id: str) -> None:
        user_id = _user_id(session)
        self._require_owned('institutions', institution_id, user_id)
        self._execute("DELETE FROM institutions WHERE id = ? AND user_id = ?", (institution_id, user_id))

    def create_expense_type(self, session: Session, name: str, category_id: Optional[str] = None) -> ExpenseType:
        user_id = _user_id(session)
        if not name or not name.strip():
            raise ValueError("Expense type name cannot be empty")
        if category_id is not None:
            self._require_owned('expense_categories', category_id, user_id)
        type_id = _new_id()
        now = _now()
        self._execute(
            "INSERT INTO expense_types (id, name, category_id, user_id, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (type_id, name.strip(), category_id, user_id, now, now),
        )
        return ExpenseType(id=type_id, name=name.strip(), category_id=category_id, user_id=user_id)

    def list_expense_types(self, session: Session) -> List[ExpenseType]:
        user_id = _user_id(session)
        rows = self._query(
            "SELECT t.*, c.name AS category_name, c.color AS category_color FROM expense_types t "
            "LEFT JOIN expense_categories c ON c.id = t.category_id WHERE t.user_id = ? ORDER BY t.name",
            (user_id,),
        )
        types = []
        for row in rows:
            record = dict(row)
            if record.get('category_name') is not None:
                record['expense_category'] = {
                    'id': record['category_id'],
                    'name': record['category_name'],
                    'color': record.get('category_color'),
                }
            types.append(ExpenseType.from_record(record))
        return types

    # Incomes

    def create_income(self, session: Session, form: IncomeForm) -> Income:
        user_id = _user_id(session)
        self._require_references(user_id, income_categories=form.category_id, institutions=form.institution_id)
        income_id = _new_id()
        now = _now()
        self._execute(
            "INSERT INTO incomes (id, description, notes, payment_type, amount, income_date, is_fixed, "
            "is_received, category_id, institution_id, user_id, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                income_id, form.description, form.notes, form.payment_type, form.amount,
                form.income_date.isoformat(), int(form.is_fixed), int(form.is_received),
                form.category_id, form.institution_id, user_id, now, now,
            ),
        )
        return self.get_income(session, income_id)

    def get_income(self, session: Session, income_id: str) -> Income:
        user_id = _user_id(session)
        rows = self._query(INCOME_SELECT + " WHERE i.id = ? AND i.user_id = ?", (income_id, user_id))
        if not rows:
            raise RecordNotFoundError(f"Income {income_id} not found")
        return _income_from_row(rows[0])

    def fetch_incomes(self, session: Session) -> List[Income]:
        """All incomes of the user, most recent first."""
        user_id = _user_id(session)
        rows = self._query(INCOME_SELECT + " WHERE i.user_id = ? ORDER BY i.income_date DESC, i.id", (user_id,))
        return [_income_from_row(row) for row in rows]

    def update_income(self, session: Session, income_id: str, form: IncomeForm) -> Income:
        user_id = _user_id(session)
        self._require_owned('incomes', income_id, user_id)
        self._require_references(user_id, income_categories=form.category_id, institutions=form.institution_id)
        self._execute(
            "UPDATE incomes SET description = ?, notes = ?, payment_type = ?, amount = ?, income_date = ?, "
            "is_fixed = ?, is_received = ?, category_id = ?, institution_id = ?, updated_at = ? "
            "WHERE id = ? AND user_id = ?",
            (
                form.description, form.notes, form.payment_type, form.amount, form.income_date.isoformat(),
                int(form.is_fixed), int(form.is_received), form.category_id, form.institution_id,
                _now(), income_id, user_id,
            ),
        )
        return self.get_income(session, income_id)

    def set_income_received(self, session: Session, income_id: str, received: bool = True) -> Income:
        user_id = _user_id(session)
        self._require_owned('incomes', income_id, user_id)
        self._execute(
            "UPDATE incomes SET is_received = ?, updated_at = ? WHERE id = ? AND user_id = ?",
            (int(received), _now(), income_id, user_id),
        )
        return self.get_income(session, income_id)

    def delete_income(self, session: Session, income_id: str) -> None:
        user_id = _user_id(session)
        self._require_owned('incomes', income_id, user_id)
        self._execute("DELETE FROM incomes WHERE id = ? AND user_id = ?", (income_id, user_id))

    # Expenses

    def create_expense(self, session: Session, form: ExpenseForm) -> Expense:
        user_id = _user_id(session)
        self._require_references(user_id, expense_types=form.expense_type_id, institutions=form.institution_id)
        expense_id = _new_id()
        now = _now()
        self._execute(
            "INSERT INTO expenses (id, description, amount, expense_type_id, institution_id, payment_type, "
            "expense_date, payment_date, is_paid, user_id, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                expense_id, form.description, form.amount, form.expense_type_id, form.institution_id,
                form.payment_type, form.expense_date.isoformat(),
                form.payment_date.isoformat() if form.payment_date else None,
                int(form.is_paid), user_id, now, now,
            ),
        )
        return self.get_expense(session, expense_id)

    def get_expense(self, session: Session, expense_id: str) -> Expense:
        user_id = _user_id(session)
        rows = self._query(EXPENSE_SELECT + " WHERE e.id = ? AND e.user_id = ?", (expense_id, user_id))
        if not rows:
            raise RecordNotFoundError(f"Expense {expense_id} not found")
        return _expense_from_row(rows[0])

    def fetch_expenses(self, session: Session) -> List[Expense]:
        """All expenses of the user with their expense type and category resolved."""
        user_id = _user_id(session)
        rows = self._query(EXPENSE_SELECT + " WHERE e.user_id = ? ORDER BY e.expense_date DESC, e.id", (user_id,))
        return [_expense_from_row(row) for row in rows]

    def update_expense(self, session: Session, expense_id: str, form: ExpenseForm) -> Expense:
        user_id = _user_id(session)
        self._require_owned('expenses', expense_id, user_id)
        self._require_references(user_id, expense_types=form.expense_type_id, institutions=form.institution_id)
        self._execute(
            "UPDATE expenses SET description = ?, amount = ?, expense_type_id = ?, institution_id = ?, "
            "payment_type = ?, expense_date = ?, payment_date = ?, is_paid = ?, updated_at = ? "
            "WHERE id = ? AND user_id = ?",
            (
                form.description, form.amount, form.expense_type_id, form.institution_id, form.payment_type,
                form.expense_date.isoformat(), form.payment_date.isoformat() if form.payment_date else None,
                int(form.is_paid), _now(), expense_id, user_id,
            ),
        )
        return self.get_expense(session, expense_id)

    def delete_expense(self, session: Session, expense_id: str) -> None:
        user_id = _user_id(session)
        self._require_owned('expenses', expense_id, user_id)
        self._execute("DELETE FROM expenses WHERE id = ? AND user_id = ?", (expense_id, user_id))

    # Budgets

    def _insert_sources(self, conn: sqlite3.Connection, budget_id: str, income_ids: Sequence[str], user_id: str) -> None:
        if not income_ids:
            return
        placeholders = ",".join("?" for _ in income_ids)
        owned = {
            row[0] for row in conn.execute(
                f"SELECT id FROM incomes WHERE user_id = ? AND id IN ({placeholders})",
                (user_id, *income_ids),
            )
        }
        missing = [income_id for income_id in income_ids if income_id not in owned]
        if missing:
            raise RecordNotFoundError(f"Incomes not found: {', '.join(missing)}")
        now = _now()
        conn.executemany(
            "INSERT INTO budget_income_sources (id, budget_id, income_id, user_id, created_at) VALUES (?, ?, ?, ?, ?)",
            [(_new_id(), budget_id, income_id, user_id, now) for income_id in income_ids],
        )

    def create_budget(self, session: Session, form: BudgetForm) -> Budget:
        """Create a budget and its income sources.

        Raises:
            BudgetConflictError: If the user already has a budget for this category and month
            RecordNotFoundError: If the category or an income source is not the user's
        """
        user_id = _user_id(session)
        self._require_references(user_id, expense_categories=form.category_id)
        budget_id = _new_id()
        now = _now()
        try:
            with self.connect() as conn:
                conn.execute(
                    "INSERT INTO expense_budgets (id, category_id, month, year, percentage, limit_amount, "
                    "user_id, created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (budget_id, form.category_id, form.month, form.year, form.percentage,
                     form.limit_amount, user_id, now, now),
                )
                self._insert_sources(conn, budget_id, form.income_ids, user_id)
                conn.commit()
        except sqlite3.IntegrityError as e:
            if 'UNIQUE' in str(e):
                raise BudgetConflictError(
                    f"A budget for category {form.category_id} in {form.month:02d}/{form.year} already exists"
                ) from e
            raise FinanceStoreError(f"Failed to create budget: {e}") from e
        logger.info("Created budget %s for %02d/%d", budget_id, form.month, form.year)
        return self.get_budget(session, budget_id)

    def update_budget(self, session: Session, budget_id: str, form: BudgetForm) -> Budget:
        """Update a budget, replacing its income sources."""
        user_id = _user_id(session)
        self._require_owned('expense_budgets', budget_id, user_id)
        self._require_references(user_id, expense_categories=form.category_id)
        try:
            with self.connect() as conn:
                conn.execute(
                    "UPDATE expense_budgets SET category_id = ?, month = ?, year = ?, percentage = ?, "
                    "limit_amount = ?, updated_at = ? WHERE id = ? AND user_id = ?",
                    (form.category_id, form.month, form.year, form.percentage, form.limit_amount,
                     _now(), budget_id, user_id),
                )
                conn.execute("DELETE FROM budget_income_sources WHERE budget_id = ?", (budget_id,))
                self._insert_sources(conn, budget_id, form.income_ids, user_id)
                conn.commit()
        except sqlite3.IntegrityError as e:
            if 'UNIQUE' in str(e):
                raise BudgetConflictError(
                    f"A budget for category {form.category_id} in {form.month:02d}/{form.year} already exists"
                ) from e
            raise FinanceStoreError(f"Failed to update budget: {e}") from e
        return self.get_budget(session, budget_id)

    def upsert_budget(self, session: Session, form: BudgetForm) -> Budget:
        """Create the budget or update the one already set for its category and month."""
        user_id = _user_id(session)
        rows = self._query(
            "SELECT id FROM expense_budgets WHERE user_id = ? AND COALESCE(category_id, '') = ? "
            "AND month = ? AND year = ?",
            (user_id, form.category_id or '', form.month, form.year),
        )
        if rows:
            return self.update_budget(session, rows[0]['id'], form)
        return self.create_budget(session, form)

    def delete_budget(self, session: Session, budget_id: str) -> None:
        user_id = _user_id(session)
        self._require_owned('expense_budgets', budget_id, user_id)
        self._execute("DELETE FROM expense_budgets WHERE id = ? AND user_id = ?", (budget_id, user_id))

    def _budgets(self, where: str, params: Sequence[Any]) -> List[Budget]:
        with self.connect() as conn:
            budget_rows = conn.execute(
                "SELECT b.*, c.name AS category_name, c.color AS category_color FROM expense_budgets b "
                "LEFT JOIN expense_categories c ON c.id = b.category_id WHERE " + where + " ORDER BY b.created_at, b.id",
                params,
            ).fetchall()
            if not budget_rows:
                return []
            ids = [row['id'] for row in budget_rows]
            placeholders = ",".join("?" for _ in ids)
            source_rows = conn.execute(
                "SELECT s.id AS source_id, s.budget_id, s.income_id, i.id AS income_pk, i.description, "
                "i.amount, i.income_date, i.is_fixed, i.is_received "
                "FROM budget_income_sources s LEFT JOIN incomes i ON i.id = s.income_id "
                f"WHERE s.budget_id IN ({placeholders}) ORDER BY s.created_at, s.id",
                ids,
            ).fetchall()

        sources: Dict[str, List[Dict[str, Any]]] = {}
        for row in source_rows:
            income = None
            if row['income_pk'] is not None:
                income = {
                    'id': row['income_pk'],
                    'description': row['description'],
                    'amount': row['amount'],
                    'income_date': row['income_date'],
                    'is_fixed': bool(row['is_fixed']),
                    'is_received': bool(row['is_received']),
                }
            sources.setdefault(row['budget_id'], []).append({
                'id': row['source_id'],
                'budget_id': row['budget_id'],
                'income_id': row['income_id'],
                'income': income,
            })

        budgets = []
        for row in budget_rows:
            record = dict(row)
            if record.get('category_name') is not None:
                record['expense_category'] = {
                    'id': record['category_id'],
                    'name': record['category_name'],
                    'color': record.get('category_color'),
                }
            record['income_sources'] = sources.get(record['id'], [])
            budgets.append(Budget.from_record(record))
        return budgets

    def get_budget(self, session: Session, budget_id: str) -> Budget:
        user_id = _user_id(session)
        budgets = self._budgets("b.id = ? AND b.user_id = ?", (budget_id, user_id))
        if not budgets:
            raise RecordNotFoundError(f"Budget {budget_id} not found")
        return budgets[0]

    def fetch_budgets(self, session: Session, month: int, year: int) -> List[Budget]:
        """Budgets of one month with category and income sources resolved."""
        user_id = _user_id(session)
        return self._budgets("b.user_id = ? AND b.month = ? AND b.year = ?", (user_id, month, year))

    # Notifications

    def get_notification_settings(self, session: Session) -> NotificationPreferences:
        """Return the user's alert preferences, storing the defaults on first read."""
        user_id = _user_id(session)
        rows = self._query("SELECT * FROM notification_settings WHERE user_id = ?", (user_id,))
        if rows:
            return NotificationPreferences.model_validate(dict(rows[0]))
        defaults = NotificationPreferences()
        self._save_notification_settings(user_id, defaults, exists=False)
        return defaults

    def update_notification_settings(self, session: Session, **changes: Any) -> NotificationPreferences:
        """Apply a partial update to the user's alert preferences.

        Raises:
            ValueError: If a key is not a preference field
            pydantic.ValidationError: If a value is out of range
        """
        unknown = set(changes) - set(NotificationPreferences.model_fields)
        if unknown:
            raise ValueError(f"Unknown notification settings: {sorted(unknown)}")
        current = self.get_notification_settings(session)
        updated = NotificationPreferences.model_validate({**current.model_dump(), **changes})
        self._save_notification_settings(_user_id(session), updated, exists=True)
        return updated

    def _save_notification_settings(self, user_id: str, preferences: NotificationPreferences, exists: bool) -> None:
        values = (
            int(preferences.email_notifications), int(preferences.push_notifications),
            int(preferences.overdue_alerts), int(preferences.upcoming_alerts), preferences.upcoming_days,
        )
        now = _now()
        if exists:
            self._execute(
                "UPDATE notification_settings SET email_notifications = ?, push_notifications = ?, "
                "overdue_alerts = ?, upcoming_alerts = ?, upcoming_days = ?, updated_at = ? WHERE user_id = ?",
                (*values, now, user_id),
            )
        else:
            self._execute(
                "INSERT INTO notification_settings (id, user_id, email_notifications, push_notifications, "
                "overdue_alerts, upcoming_alerts, upcoming_days, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (_new_id(), user_id, *values, now, now),
            )

    def create_notification(self, session: Session, alert: IncomeAlert) -> IncomeAlert:
        user_id = _user_id(session)
        notification_id = _new_id()
        self._execute(
            "INSERT INTO notifications (id, user_id, type, title, message, reference_id, reference_type, "
            "is_read, created_at, expires_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                notification_id, user_id, alert.type, alert.title, alert.message, alert.reference_id,
                alert.reference_type, int(alert.is_read), _now(),
                alert.expires_at.isoformat() if alert.expires_at else None,
            ),
        )
        return self.get_notification(session, notification_id)

    def get_notification(self, session: Session, notification_id: str) -> IncomeAlert:
        user_id = _user_id(session)
        rows = self._query("SELECT * FROM notifications WHERE id = ? AND user_id = ?", (notification_id, user_id))
        if not rows:
            raise RecordNotFoundError(f"Notification {notification_id} not found")
        return IncomeAlert.from_record(dict(rows[0]))

    def list_notifications(
        self,
        session: Session,
        unread_only: bool = False,
        limit: Optional[int] = None,
    ) -> List[IncomeAlert]:
        """The user's notifications, newest first."""
        user_id = _user_id(session)
        sql = "SELECT * FROM notifications WHERE user_id = ?"
        params: List[Any] = [user_id]
        if unread_only:
            sql += " AND is_read = 0"
        sql += " ORDER BY created_at DESC, rowid DESC"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        return [IncomeAlert.from_record(dict(row)) for row in self._query(sql, params)]

    def mark_notification_read(self, session: Session, notification_id: str) -> IncomeAlert:
        user_id = _user_id(session)
        self._require_owned('notifications', notification_id, user_id)
        self._execute(
            "UPDATE notifications SET is_read = 1 WHERE id = ? AND user_id = ?", (notification_id, user_id)
        )
        return self.get_notification(session, notification_id)

    def mark_all_notifications_read(self, session: Session) -> int:
        """Mark every unread notification as read; returns how many changed."""
        user_id = _user_id(session)
        return self._execute("UPDATE notifications SET is_read = 1 WHERE user_id = ? AND is_read = 0", (user_id,))

    def delete_notification(self, session: Session, notification_id: str) -> None:
        user_id = _user_id(session)
        self._require_owned('notifications', notification_id, user_id)
        self._execute("DELETE FROM notifications WHERE id = ? AND user_id = ?", (notification_id, user_id))

    def unread_notification_count(self, session: Session) -> int:
        user_id = _user_id(session)
        rows = self._query("SELECT COUNT(*) FROM notifications WHERE user_id = ? AND is_read = 0", (user_id,))
        return rows[0][0]

    # Tabular exports

    def incomes_frame(self, session: Session) -> pd.DataFrame:
        user_id = _user_id(session)
        sql = (
            "SELECT i.id, i.income_date AS 'Date', i.description AS 'Description', c.name AS 'Category', "
            "i.amount AS 'Amount', i.is_fixed AS 'Fixed', i.is_received AS 'Received' FROM incomes i "
            "LEFT JOIN income_categories c ON c.id = i.category_id WHERE i.user_id = ? ORDER BY i.income_date ASC, i.id"
        )
        with self.connect() as conn:
            df = pd.read_sql_query(sql, conn, params=[user_id])
        if not df.empty:
            df['Date'] = pd.to_datetime(df['Date'])
            df['Fixed'] = df['Fixed'].astype(bool)
            df['Received'] = df['Received'].astype(bool)
        return df

    def expenses_frame(self, session: Session) -> pd.DataFrame:
        user_id = _user_id(session)
        sql = (
            "SELECT e.id, e.expense_date AS 'Date', e.description AS 'Description', c.name AS 'Category', "
            "t.name AS 'Type', e.amount AS 'Amount', e.is_paid AS 'Paid' FROM expenses e "
            "LEFT JOIN expense_types t ON t.id = e.expense_type_id "
            "LEFT JOIN expense_categories c ON c.id = t.category_id "
            "WHERE e.user_id = ? ORDER BY e.expense_date ASC, e.id"
        )
        with self.connect() as conn:
            df = pd.read_sql_query(sql, conn, params=[user_id])
        if not df.empty:
            df['Date'] = pd.to_datetime(df['Date'])
            df['Paid'] = df['Paid'].astype(bool)
        return df
