from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, localcontext
import math
import re

from exgrid.core.types import CellValue

from .errors import FormulaError

_NUMERIC_PATTERN = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?$")
# Rounding further left than this overflows a float anyway.
_MIN_DECIMALS = -400


def parse_number(text: str) -> float | None:
    """Parse a numeric literal; return None for anything else (incl. 'nan')."""
    candidate = text.strip()
    if not _NUMERIC_PATTERN.match(candidate):
        return None
    return float(candidate)


def numeric_or_none(value: CellValue) -> float | None:
    """Return the numeric value of a cell, or None when it is not a number."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    return parse_number(value)


def to_number(value: CellValue) -> float:
    """Coerce a scalar for arithmetic; blanks and non-numeric text become 0."""
    if value is None:
        return 0.0
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        return float(value)
    parsed = parse_number(value)
    return 0.0 if parsed is None else parsed


def to_integer(value: CellValue) -> int:
    number = to_number(value)
    if not math.isfinite(number):
        raise FormulaError(f"Expected an integer, got {value!r}")
    return int(number)


def to_text(value: CellValue) -> str:
    """Render a scalar the way text functions and lookups see it."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, (int, float)):
        return format_number(float(value))
    return value


def to_bool(value: CellValue) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    normalized = value.strip().upper()
    if normalized == "TRUE":
        return True
    if normalized in ("FALSE", ""):
        return False
    parsed = parse_number(value)
    if parsed is None:
        raise FormulaError(f"Cannot use {value!r} as a condition")
    return parsed != 0


def format_number(number: float) -> str:
    """Shortest general notation: integral values drop the trailing '.0'."""
    if math.isfinite(number) and number.is_integer() and abs(number) < 1e21:
        return str(int(number))
    return repr(number)


def is_nan(value: CellValue) -> bool:
    return isinstance(value, float) and math.isnan(value)


def round_decimal(
    value: Decimal, decimals: int, rounding: str = ROUND_HALF_UP
) -> Decimal:
    """Round to `decimals` places; negative counts round left of the point.

    The context precision grows with the magnitude of `value`, so values
    beyond 28 significant digits round instead of failing.
    """
    if decimals >= -value.as_tuple().exponent:
        return value
    decimals = max(decimals, _MIN_DECIMALS)
    with localcontext() as context:
        context.prec = max(context.prec, value.adjusted() + decimals + 2)
        return value.quantize(Decimal(1).scaleb(-decimals), rounding=rounding)
