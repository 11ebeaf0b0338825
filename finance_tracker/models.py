"""Plain records exchanged between the data-access layer, the engine and the dashboard.

Every record can be built from the dict shape returned by the storage layer
through ``from_record``.  Those constructors are tolerant: missing amounts
become ``0.0``, missing relations become ``None`` and unparseable dates
become ``None``, so a half-loaded record never raises.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import date
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from .formatting import parse_date, to_amount


def _optional_number(value: Any) -> Optional[float]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if number != number:  # NaN
        return None
    return number


def _to_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _optional_id(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


def _mapping(value: Any) -> Optional[Mapping[str, Any]]:
    return value if isinstance(value, Mapping) else None


@dataclass(frozen=True)
class Category:
    id: str
    name: str
    color: Optional[str] = None
    user_id: Optional[str] = None

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> 'Category':
        return cls(
            id=str(record.get('id', '')),
            name=str(record.get('name') or ''),
            color=record.get('color') or None,
            user_id=_optional_id(record.get('user_id')),
        )


@dataclass(frozen=True)
class Institution:
    id: str
    name: str
    logo_url: Optional[str] = None
    user_id: Optional[str] = None

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> 'Institution':
        return cls(
            id=str(record.get('id', '')),
            name=str(record.get('name') or ''),
            logo_url=record.get('logo_url') or None,
            user_id=_optional_id(record.get('user_id')),
        )


@dataclass(frozen=True)
class ExpenseType:
    id: str
    name: str
    category_id: Optional[str] = None
    user_id: Optional[str] = None
    category: Optional[Category] = None

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> 'ExpenseType':
        category = _mapping(record.get('expense_category') or record.get('category'))
        category_id = _optional_id(record.get('category_id'))
        if category_id is None and category is not None:
            category_id = _optional_id(category.get('id'))
        return cls(
            id=str(record.get('id', '')),
            name=str(record.get('name') or ''),
            category_id=category_id,
            user_id=_optional_id(record.get('user_id')),
            category=Category.from_record(category) if category else None,
        )


@dataclass(frozen=True)
class Income:
    """A single recorded inflow of money."""

    id: str
    description: str = ''
    amount: float = 0.0
    income_date: Optional[date] = None
    is_fixed: bool = False
    is_received: bool = False
    category_id: Optional[str] = None
    institution_id: Optional[str] = None
    payment_type: Optional[str] = None
    user_id: Optional[str] = None
    category: Optional[Category] = None

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> 'Income':
        category = _mapping(record.get('income_categories') or record.get('category'))
        return cls(
            id=str(record.get('id', '')),
            description=str(record.get('description') or ''),
            amount=to_amount(record.get('amount')),
            income_date=parse_date(record.get('income_date')),
            is_fixed=bool(record.get('is_fixed', False)),
            is_received=bool(record.get('is_received', False)),
            category_id=_optional_id(record.get('category_id')),
            institution_id=_optional_id(record.get('institution_id')),
            payment_type=record.get('payment_type') or None,
            user_id=_optional_id(record.get('user_id')),
            category=Category.from_record(category) if category else None,
        )


@dataclass(frozen=True)
class Expense:
    """A single recorded outflow.

    ``category_id`` is resolved through the expense type when one is given.
    """

    id: str
    description: str = ''
    amount: float = 0.0
    expense_date: Optional[date] = None
    is_paid: bool = False
    payment_date: Optional[date] = None
    expense_type_id: Optional[str] = None
    expense_type: Optional[ExpenseType] = None
    category_id: Optional[str] = None
    institution_id: Optional[str] = None
    payment_type: Optional[str] = None
    user_id: Optional[str] = None

    def __post_init__(self) -> None:
        if self.expense_type is not None:
            object.__setattr__(self, 'category_id', self.expense_type.category_id)
            if self.expense_type_id is None:
                object.__setattr__(self, 'expense_type_id', self.expense_type.id or None)

    @property
    def category(self) -> Optional[Category]:
        return self.expense_type.category if self.expense_type else None

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> 'Expense':
        expense_type = _mapping(record.get('expense_type') or record.get('expense_types'))
        return cls(
            id=str(record.get('id', '')),
            description=str(record.get('description') or ''),
            amount=to_amount(record.get('amount')),
            expense_date=parse_date(record.get('expense_date')),
            is_paid=bool(record.get('is_paid', False)),
            payment_date=parse_date(record.get('payment_date')),
            expense_type_id=_optional_id(record.get('expense_type_id')),
            expense_type=ExpenseType.from_record(expense_type) if expense_type else None,
            category_id=_optional_id(record.get('category_id')),
            institution_id=_optional_id(record.get('institution_id')),
            payment_type=record.get('payment_type') or None,
            user_id=_optional_id(record.get('user_id')),
        )


@dataclass(frozen=True)
class BudgetIncomeSource:
    """Link between a budget and one income counted in its income base."""

    income_id: Optional[str]
    income: Optional[Income] = None
    id: Optional[str] = None
    budget_id: Optional[str] = None

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> 'BudgetIncomeSource':
        income = _mapping(record.get('income'))
        income_id = _optional_id(record.get('income_id'))
        if income_id is None and income is not None:
            income_id = _optional_id(income.get('id'))
        return cls(
            income_id=income_id,
            income=Income.from_record(income) if income else None,
            id=_optional_id(record.get('id')),
            budget_id=_optional_id(record.get('budget_id')),
        )


@dataclass(frozen=True)
class PercentageLimit:
    value: float


@dataclass(frozen=True)
class FixedLimit:
    value: float


LimitKind = Union[PercentageLimit, FixedLimit]


@dataclass(frozen=True)
class Budget:
    """A per-category, per-month spending plan."""

    id: str
    category_id: Optional[str]
    month: int
    year: int
    percentage: Optional[float] = None
    limit_amount: Optional[float] = None
    income_sources: Tuple[BudgetIncomeSource, ...] = ()
    user_id: Optional[str] = None
    category: Optional[Category] = None

    @property
    def limit_kind(self) -> Optional[LimitKind]:
        """Return the limit variant; percentage wins when both are stored."""
        if self.percentage is not None:
            return PercentageLimit(self.percentage)
        if self.limit_amount is not None:
            return FixedLimit(self.limit_amount)
        return None

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> 'Budget':
        category = _mapping(record.get('expense_category') or record.get('category'))
        sources = record.get('income_sources') or ()
        return cls(
            id=str(record.get('id', '')),
            category_id=_optional_id(record.get('category_id')),
            month=_to_int(record.get('month')),
            year=_to_int(record.get('year')),
            percentage=_optional_number(record.get('percentage')),
            limit_amount=_optional_number(record.get('limit_amount')),
            income_sources=tuple(
                BudgetIncomeSource.from_record(source)
                for source in sources
                if isinstance(source, Mapping)
            ),
            user_id=_optional_id(record.get('user_id')),
            category=Category.from_record(category) if category else None,
        )


class BudgetStatus(str, Enum):
    EXCEEDED = 'exceeded'
    ON_TRACK = 'on-track'
    ATTENTION = 'attention'
    NO_SPENDING = 'no-spending'

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class BudgetWithStats:
    """A budget annotated with its evaluation for one month."""

    budget: Budget
    income_total: float
    limit_calculated: float
    spent: float
    balance: float
    status: BudgetStatus

    @property
    def id(self) -> str:
        return self.budget.id

    @property
    def category_id(self) -> Optional[str]:
        return self.budget.category_id

    @property
    def month(self) -> int:
        return self.budget.month

    @property
    def year(self) -> int:
        return self.budget.year

    @property
    def percentage(self) -> Optional[float]:
        return self.budget.percentage

    @property
    def limit_amount(self) -> Optional[float]:
        return self.budget.limit_amount

    @property
    def category(self) -> Optional[Category]:
        return self.budget.category

    def to_record(self) -> Dict[str, Any]:
        """Flatten into the budget's fields plus the computed ones."""
        record = asdict(self.budget)
        record.update(
            income_total=self.income_total,
            limit_calculated=self.limit_calculated,
            spent=self.spent,
            balance=self.balance,
            status=self.status.value,
        )
        return record


@dataclass(frozen=True)
class BudgetTotals:
    limit_calculated: float = 0.0
    spent: float = 0.0
    balance: float = 0.0
    percentage: float = 0.0
    count: int = 0
