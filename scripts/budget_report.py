#!/usr/bin/env python3
"""Print a month's evaluated budgets and totals from the local store."""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import date
from pathlib import Path
from typing import List, Optional

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from finance_tracker import config
from finance_tracker.budget_engine import aggregate_totals, budgets_to_frame, evaluate_budgets
from finance_tracker.db import FinanceStore
from finance_tracker.formatting import format_currency, format_percentage
from finance_tracker.session import Session

logger = logging.getLogger("budget_report")


def main(user_id: str, month: int, year: int, db_path: Optional[Path] = None) -> int:
    store = FinanceStore(db_path)
    session = Session(user_id=user_id)
    budgets = store.fetch_budgets(session, month, year)
    if not budgets:
        print(f"No budgets defined for {month:02d}/{year}.")
        return 0

    evaluated = evaluate_budgets(month, year, budgets, store.fetch_expenses(session))
    logger.info("Loaded %d budgets for %s", len(evaluated), user_id)

    table = budgets_to_frame(evaluated)
    columns: List[str] = ['Category', 'Percentage', 'Limit', 'Spent', 'Balance', 'Status']
    display = table[columns].copy()
    display['Percentage'] = display['Percentage'].map(format_percentage)
    for column in ['Limit', 'Spent', 'Balance']:
        display[column] = display[column].map(format_currency)
    print(f"Budgets for {month:02d}/{year}")
    print(display.to_string(index=False))

    totals = aggregate_totals(evaluated)
    print("\nTotals:")
    print(f"  Percentage: {format_percentage(totals.percentage)}")
    print(f"  Limit:      {format_currency(totals.limit_calculated)}")
    print(f"  Spent:      {format_currency(totals.spent)}")
    print(f"  Balance:    {format_currency(totals.balance)}")
    return 0


if __name__ == '__main__':
    today = date.today()
    parser = argparse.ArgumentParser(description='Show evaluated budgets for a month.')
    parser.add_argument('--user', required=True, help='Owner user id')
    parser.add_argument('--month', type=int, default=today.month, choices=range(1, 13), help='Month (1-12)')
    parser.add_argument('--year', type=int, default=today.year, help='Four digit year')
    parser.add_argument('--db', type=Path, default=None, help='Database file (defaults to FINTRACK_DB_PATH)')
    args = parser.parse_args()
    config.configure_logging()
    raise SystemExit(main(args.user, args.month, args.year, args.db))
