from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal
import math
import re

from exgrid.core.types import SERIAL_EPOCH_OFFSET, CellValue, is_error_token

from .values import format_number, parse_number, round_decimal

FORMAT_ALIASES: dict[str, str] = {
    "number": "0.00",
    "currency": "$#,##0.00",
    "percentage": "0.00%",
    "percent": "0.00%",
    "date": "mm/dd/yyyy",
    "thousands": "#,##0",
}

_DECIMALS_PATTERN = re.compile(r"\.(0+)")
_DATE_PART_PATTERN = re.compile(r"yyyy|yy|mm|dd|m|d", re.IGNORECASE)
_EPOCH = datetime(1970, 1, 1)


def format_cell(value: CellValue, format_spec: str | None = None) -> str:
    """Render a cell value for display.

    Args:
        value: Evaluated cell value (number, text, boolean, error token or None).
        format_spec: Number format code such as ``"0.00"``, ``"#,##0"``,
            ``"$#,##0.00"``, ``"0.00%"`` or ``"mm/dd/yyyy"``, or one of the
            aliases in `FORMAT_ALIASES`. None or ``"General"`` means general.

    Returns:
        Display text. Text values and error tokens pass through unchanged;
        numeric text is formatted only when a non-general format is set.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    spec = _resolve_format(format_spec)
    if isinstance(value, str):
        if spec is None or is_error_token(value):
            return value
        parsed = parse_number(value)
        if parsed is None:
            return value
        number = parsed
    else:
        number = float(value)
        if spec is None:
            return format_number(number)
    if not math.isfinite(number):
        return format_number(number)
    if _is_date_format(spec):
        return _format_date(number, spec)
    return _format_numeric(number, spec)


def _resolve_format(format_spec: str | None) -> str | None:
    if format_spec is None:
        return None
    stripped = format_spec.strip()
    if not stripped or stripped.lower() == "general":
        return None
    return FORMAT_ALIASES.get(stripped.lower(), stripped)


def _is_date_format(spec: str) -> bool:
    lowered = spec.lower()
    return "yy" in lowered or "dd" in lowered or "m/d" in lowered


def _format_date(serial: float, spec: str) -> str:
    try:
        moment = _EPOCH + timedelta(days=serial - SERIAL_EPOCH_OFFSET)
    except OverflowError:
        return format_number(serial)

    def replace(match: re.Match[str]) -> str:
        part = match.group(0).lower()
        if part == "yyyy":
            return f"{moment.year:04d}"
        if part == "yy":
            return f"{moment.year % 100:02d}"
        if part == "mm":
            return f"{moment.month:02d}"
        if part == "dd":
            return f"{moment.day:02d}"
        if part == "m":
            return str(moment.month)
        return str(moment.day)

    return _DATE_PART_PATTERN.sub(replace, spec)


def _format_numeric(number: float, spec: str) -> str:
    percent = "%" in spec
    currency = "$" in spec
    grouping = "," in spec
    match = _DECIMALS_PATTERN.search(spec)
    decimals = len(match.group(1)) if match else 0
    scaled = Decimal(repr(number)) * (100 if percent else 1)
    rounded = round_decimal(abs(scaled), decimals)
    body = f"{rounded:,.{decimals}f}" if grouping else f"{rounded:.{decimals}f}"
    sign = "-" if scaled < 0 and rounded != 0 else ""
    return f"{sign}{'$' if currency else ''}{body}{'%' if percent else ''}"
