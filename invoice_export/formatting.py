"""Display formatting helpers for the invoice view."""

from __future__ import annotations

from typing import Any

from dateutil import parser as dateutil_parser


def fmt_money(amount: Any, symbol: str = "$") -> str:
    """Whole amounts with dot thousands separators, e.g. 120000 -> '$120.000'."""
    value = safe_float(amount, 0.0)
    sign = "-" if round(value) < 0 else ""
    grouped = f"{abs(round(value)):,d}".replace(",", ".")
    return f"{sign}{symbol}{grouped}"


def fmt_qty(qty: Any) -> str:
    try:
        return f"{float(qty):,.1f}"
    except Exception:
        return str(qty)


def safe_float(value: Any, default: float = 0.0) -> float:
    try:
        return float(value)
    except Exception:
        return default


def fmt_date(raw: Any) -> str:
    """Parse a date string and return it as 'DD/MM/YYYY'."""
    raw = str(raw or "").strip()
    if not raw:
        return "N/A"
    try:
        dt = dateutil_parser.parse(raw)
        return dt.strftime("%d/%m/%Y")
    except (ValueError, OverflowError):
        return raw
