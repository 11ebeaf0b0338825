"""
Form schemas

Pydantic models validating what the user submits before it reaches the
data-access layer.  Invalid input raises ``pydantic.ValidationError``.
"""

from __future__ import annotations

from datetime import date
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .config import DEFAULT_UPCOMING_DAYS
from .models import FixedLimit, LimitKind, PercentageLimit


def _strip_optional(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


class BudgetForm(BaseModel):
    """Budget creation/edit form. Exactly one limit kind is chosen."""

    category_id: Optional[str] = Field(None, description="Expense category, None for uncategorized")
    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=1900, le=9999)
    percentage: Optional[float] = Field(None, ge=0, le=100, description="Percentage of the selected incomes")
    limit_amount: Optional[float] = Field(None, ge=0, description="Fixed spending limit")
    income_ids: List[str] = Field(default_factory=list, description="Incomes forming the income base")

    @field_validator('income_ids')
    @classmethod
    def _dedupe_income_ids(cls, value: List[str]) -> List[str]:
        return list(dict.fromkeys(value))

    @model_validator(mode='after')
    def _check_limit_kind(self) -> 'BudgetForm':
        if (self.percentage is None) == (self.limit_amount is None):
            raise ValueError("Provide either a percentage or a fixed limit amount")
        if self.percentage is not None and not self.income_ids:
            raise ValueError("A percentage budget needs at least one income source")
        return self

    def limit_kind(self) -> LimitKind:
        if self.percentage is not None:
            return PercentageLimit(self.percentage)
        return FixedLimit(self.limit_amount)


class IncomeForm(BaseModel):
    description: str = Field(..., min_length=1)
    notes: Optional[str] = None
    amount: float = Field(..., gt=0)
    income_date: date
    is_fixed: bool = False
    is_received: bool = False
    category_id: Optional[str] = None
    institution_id: Optional[str] = None
    payment_type: Optional[str] = None

    @field_validator('description', mode='before')
    @classmethod
    def _strip_description(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator('payment_type', 'notes')
    @classmethod
    def _blank_to_none(cls, value: Optional[str]) -> Optional[str]:
        return _strip_optional(value)


class ExpenseForm(BaseModel):
    description: str = Field(..., min_length=1)
    amount: float = Field(..., gt=0)
    expense_date: date
    payment_date: Optional[date] = None
    is_paid: bool = False
    expense_type_id: Optional[str] = None
    institution_id: Optional[str] = None
    payment_type: Optional[str] = None

    @field_validator('description', mode='before')
    @classmethod
    def _strip_description(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator('payment_type')
    @classmethod
    def _blank_to_none(cls, value: Optional[str]) -> Optional[str]:
        return _strip_optional(value)


class CategoryForm(BaseModel):
    name: str = Field(..., min_length=1)
    color: Optional[str] = Field(None, pattern=r'^#[0-9A-Fa-f]{6}$')

    @field_validator('name', mode='before')
    @classmethod
    def _strip_name(cls, value):
        return value.strip() if isinstance(value, str) else value


class InstitutionForm(BaseModel):
    name: str = Field(..., min_length=1)
    type: Optional[str] = None
    logo_url: Optional[str] = Field(None, pattern=r'^https?://\S+$')


class NotificationPreferences(BaseModel):
    email_notifications: bool = True
    push_notifications: bool = True
    overdue_alerts: bool = True
    upcoming_alerts: bool = True
    upcoming_days: int = Field(DEFAULT_UPCOMING_DAYS, ge=1, le=30)
