"""
promeasure/wbs/financial.py

Deterministic money/number helpers shared by every WBS computation.

Rules:
- All arithmetic runs on Decimal. Floats are converted through str() so that
  0.1 stays 0.1 instead of its binary approximation.
- Monetary rounding: 2 decimals, ROUND_HALF_UP (half away from zero).
- Truncation (ROUND_DOWN) is reserved for back-solving unit prices.

Display helpers follow the pt-BR convention used in measurement reports
(1.234,56 / DD/MM/YYYY).
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_DOWN, ROUND_HALF_UP
from typing import Any, Iterable

ZERO = Decimal("0.00")
CENT = Decimal("0.01")
HUNDRED = Decimal("100")


def to_decimal(value: Any) -> Decimal:
    """Convert Numeric/str/int/float/None to Decimal (None and blanks become 0.00)."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Not a number: {value!r}")

    raw = str(value).strip()
    if raw == "":
        return ZERO
    try:
        result = Decimal(raw)
    except InvalidOperation as exc:
        raise ValueError(f"Not a number: {value!r}") from exc
    if not result.is_finite():
        raise ValueError(f"Not a finite number: {value!r}")
    return result


def round_money(value: Any) -> Decimal:
    """2-decimal rounding, half away from zero."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def truncate(value: Any) -> Decimal:
    """Cut to 2 decimals without rounding (1.239 -> 1.23, -1.239 -> -1.23)."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_DOWN)


def fsum(values: Iterable[Any]) -> Decimal:
    """Exact Decimal sum, rounded once at the end."""
    total = ZERO
    for value in values:
        total += to_decimal(value)
    return round_money(total)


def markup_factor(bdi: Any) -> Decimal:
    """Multiplier for a BDI percentage: 25 -> 1.25."""
    return Decimal("1") + to_decimal(bdi) / HUNDRED


def percent_of(part: Any, whole: Any) -> Decimal:
    """
    part / whole * 100, rounded to 2 decimals.

    A zero whole yields 0: percentages of an empty contract are zero, never an error.
    """
    whole_dec = to_decimal(whole)
    if whole_dec == 0:
        return ZERO
    return round_money(to_decimal(part) / whole_dec * HUNDRED)


def clamp(value: Any, low: Any, high: Any) -> Decimal:
    """Clamp value into [low, high]. If high < low, low wins."""
    return max(to_decimal(low), min(to_decimal(value), to_decimal(high)))


# ---------------------------------------------------------------------
# Display helpers (pt-BR)
# ---------------------------------------------------------------------
def format_visual(value: Any) -> str:
    """1234.5 -> '1.234,50' (no currency prefix)."""
    amount = round_money(value)
    text = f"{abs(amount):,.2f}"
    text = text.replace(",", "_").replace(".", ",").replace("_", ".")
    return f"-{text}" if amount < 0 else text


def format_brl(value: Any, symbol: str = "R$") -> str:
    """1234.5 -> 'R$ 1.234,50'."""
    amount = round_money(value)
    if amount < 0:
        return f"-{symbol} {format_visual(-amount)}"
    return f"{symbol} {format_visual(amount)}"


def mask_currency(raw: str | None) -> str:
    """
    Typing mask: keeps digits only and reads them as cents.

    '1234' -> '12,34'; '123456' -> '1.234,56'; '' -> '0,00'
    """
    digits = "".join(ch for ch in str(raw or "") if ch.isdigit())
    if not digits:
        return "0,00"
    return format_visual(Decimal(int(digits)) / HUNDRED)


def parse_locale_number(raw: str | None) -> Decimal:
    """'1.234,56' -> Decimal('1234.56'). Unparseable input yields 0."""
    if not raw:
        return ZERO
    clean = str(raw).strip().replace(".", "").replace(",", ".")
    try:
        return to_decimal(clean)
    except ValueError:
        return ZERO


def format_date(value: date | datetime | str | None) -> str:
    """
    ISO date (or datetime string) -> 'DD/MM/YYYY'.

    Works on the date part only, so no timezone shift can move the day.
    """
    if not value:
        return "—"
    if isinstance(value, (date, datetime)):
        return value.strftime("%d/%m/%Y")

    clean = str(value).split("T")[0]
    parts = clean.split("-")
    if len(parts) != 3:
        return str(value)
    year, month, day = parts
    return f"{day}/{month}/{year}"
