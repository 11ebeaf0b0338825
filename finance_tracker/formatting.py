"""Numeric and display helpers shared by the engine, dashboard and alerts."""

from __future__ import annotations

from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional, Union

import pandas as pd

from .config import CURRENCY_SYMBOL

Number = Union[int, float, Decimal]

_CENTS = Decimal("0.01")


def to_amount(value: Any) -> float:
    """Convert a stored or typed amount into a float.

    Missing and unparseable values become ``0.0`` so partially populated
    records never break a calculation.

    Example:
        >>> to_amount("1,234.50")
        1234.5
        >>> to_amount(None)
        0.0
    """
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float, Decimal)):
        number = float(value)
        return 0.0 if pd.isna(number) else number
    if isinstance(value, str):
        cleaned = value.strip().replace(CURRENCY_SYMBOL, "").replace("$", "").replace(",", "")
        if not cleaned:
            return 0.0
        try:
            number = float(cleaned)
        except ValueError:
            return 0.0
        return 0.0 if pd.isna(number) else number
    return 0.0


def round_currency(value: Any) -> float:
    """Round an amount half-up to cents."""
    try:
        quantized = Decimal(str(to_amount(value))).quantize(_CENTS, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        return 0.0
    return float(quantized)


def percentage_amount(percentage: Number, base: Number) -> float:
    """Return ``percentage`` percent of ``base``."""
    return float(base) * float(percentage) / 100


def percent_of(part: Number, whole: Number) -> float:
    """Return ``part`` as a percentage of ``whole`` (0 when ``whole`` is 0)."""
    if not whole:
        return 0.0
    return float(part) / float(whole) * 100


def format_currency(amount: Any, include_sign: bool = True) -> str:
    """Format a currency amount with pt-BR separators.

    Example:
        >>> format_currency(1234.56)
        'R$ 1.234,56'
        >>> format_currency(-10, include_sign=False)
        '-10,00'
    """
    value = round_currency(amount)
    formatted = f"{abs(value):,.2f}".translate(str.maketrans(",.", ".,"))
    if include_sign:
        formatted = f"{CURRENCY_SYMBOL} {formatted}"
    return f"-{formatted}" if value < 0 else formatted


def format_percentage(value: Optional[Number], digits: int = 2) -> str:
    if value is None or pd.isna(value):
        return "-"
    return f"{float(value):.{digits}f}%"


def parse_date(value: Any) -> Optional[date]:
    """Return the calendar date of ``value`` or ``None``.

    ISO strings are read by their date components, so ``"2024-03-01"`` is
    always March 1st regardless of the local timezone.
    """
    if value is None or value is pd.NaT:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return date.fromisoformat(text[:10])
        except ValueError:
            pass
        ts = pd.to_datetime(text, errors="coerce")
        if pd.isna(ts):
            return None
        return ts.date()
    return None


def format_date(value: Any) -> str:
    """Format a date as ``DD/MM/YYYY``; unparseable input is returned as-is."""
    if value is None or value == "":
        return "-"
    parsed = parse_date(value)
    if parsed is None:
        return str(value)
    return parsed.strftime("%d/%m/%Y")
