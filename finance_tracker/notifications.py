"""Due-date alerts for incomes that have not been received yet."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import TYPE_CHECKING, Any, Iterable, List, Mapping, Optional, Union

from .formatting import format_currency, format_date, parse_date
from .models import Income
from .schemas import NotificationPreferences

if TYPE_CHECKING:
    from .db import FinanceStore
    from .session import Session

logger = logging.getLogger(__name__)

INCOME_OVERDUE = 'income_overdue'
INCOME_UPCOMING = 'income_upcoming'
OVERDUE_EXPIRY_DAYS = 30


@dataclass(frozen=True)
class IncomeAlert:
    type: str
    title: str
    message: str
    reference_id: str
    expires_at: Optional[date]
    reference_type: str = 'income'
    is_read: bool = False
    id: Optional[str] = None
    created_at: Optional[str] = None

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> 'IncomeAlert':
        return cls(
            type=str(record['type']),
            title=str(record.get('title') or ''),
            message=str(record.get('message') or ''),
            reference_id=str(record.get('reference_id') or ''),
            expires_at=parse_date(record.get('expires_at')),
            reference_type=str(record.get('reference_type') or 'income'),
            is_read=bool(record.get('is_read', False)),
            id=record.get('id'),
            created_at=record.get('created_at'),
        )


def _plural(count: int) -> str:
    return 'day' if count == 1 else 'days'


def _overdue_alert(income: Income, today: date) -> IncomeAlert:
    days_late = (today - income.income_date).days
    return IncomeAlert(
        type=INCOME_OVERDUE,
        title='Income overdue',
        message=(
            f'"{income.description}" ({format_currency(income.amount)}, due {format_date(income.income_date)}) '
            f'is {days_late} {_plural(days_late)} late. Check the payment!'
        ),
        reference_id=income.id,
        expires_at=today + timedelta(days=OVERDUE_EXPIRY_DAYS),
    )


def _upcoming_alert(income: Income, today: date) -> IncomeAlert:
    days_until = (income.income_date - today).days
    return IncomeAlert(
        type=INCOME_UPCOMING,
        title='Income coming up',
        message=(
            f'"{income.description}" ({format_currency(income.amount)}) is due in '
            f'{days_until} {_plural(days_until)}, on {format_date(income.income_date)}.'
        ),
        reference_id=income.id,
        expires_at=income.income_date,
    )


def income_alerts(
    incomes: Iterable[Union[Income, Mapping[str, Any]]],
    preferences: Optional[NotificationPreferences] = None,
    today: Optional[date] = None,
    existing: Iterable[IncomeAlert] = (),
) -> List[IncomeAlert]:
    """Build overdue/upcoming alerts for pending incomes.

    An income due before ``today`` is overdue; one due after ``today`` and
    strictly before ``today + upcoming_days`` is upcoming.  Incomes that
    already have an alert of the same type in ``existing`` are skipped.
    """
    prefs = preferences or NotificationPreferences()
    current = today or date.today()
    already = {(alert.reference_id, alert.type) for alert in existing}
    horizon = current + timedelta(days=prefs.upcoming_days)

    alerts: List[IncomeAlert] = []
    for value in incomes:
        income = value if isinstance(value, Income) else Income.from_record(value)
        if income.is_received or income.income_date is None:
            continue
        due = income.income_date
        if prefs.overdue_alerts and due < current and (income.id, INCOME_OVERDUE) not in already:
            alerts.append(_overdue_alert(income, current))
        elif prefs.upcoming_alerts and current < due < horizon and (income.id, INCOME_UPCOMING) not in already:
            alerts.append(_upcoming_alert(income, current))
    logger.debug("Generated %d income alerts", len(alerts))
    return alerts


def unread_count(alerts: Iterable[IncomeAlert]) -> int:
    return sum(1 for alert in alerts if not alert.is_read)


def refresh_income_alerts(
    store: 'FinanceStore',
    session: 'Session',
    today: Optional[date] = None,
) -> List[IncomeAlert]:
    """Store alerts for the user's pending incomes that have none yet.

    Preferences and already stored alerts are read from ``store``; returns
    the alerts created by this call.
    """
    preferences = store.get_notification_settings(session)
    stored = store.list_notifications(session)
    pending = income_alerts(store.fetch_incomes(session), preferences, today=today, existing=stored)
    created = [store.create_notification(session, alert) for alert in pending]
    if created:
        logger.info("Stored %d new income alerts for %s", len(created), session.user_id)
    return created
