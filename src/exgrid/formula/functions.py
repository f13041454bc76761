"""Spreadsheet function library.

Every function receives the evaluation context and its *unevaluated*
argument nodes, so conditionals (``IF``, ``IFERROR``) only evaluate the
branch they return and range-aware functions can read whole rectangles.
"""

from __future__ import annotations

from collections.abc import Callable
from decimal import ROUND_DOWN, ROUND_HALF_UP, ROUND_UP, Decimal
import math
import time
from typing import Protocol

from exgrid.core.types import (
    REF_TOKEN,
    SERIAL_EPOCH_OFFSET,
    CellValue,
    is_error_token,
    is_error_value,
)
from exgrid.shared.a1 import column_index_to_label, range_bounds

from .errors import FormulaError, LookupMissError
from .parser import FormulaNode, RangeNode
from .values import (
    is_nan,
    numeric_or_none,
    parse_number,
    round_decimal,
    to_bool,
    to_integer,
    to_number,
    to_text,
)

_SECONDS_PER_DAY = 86_400


class EvaluationContext(Protocol):
    """What the function library needs from the evaluator."""

    def value(self, node: FormulaNode) -> CellValue:
        """Evaluate a node to a scalar; error tokens raise FormulaError."""

    def cells(self, start: str, end: str) -> list[list[CellValue]]:
        """Resolve a rectangle row by row; error cells stay as tokens."""


FunctionImpl = Callable[[EvaluationContext, list[FormulaNode]], CellValue]

FUNCTIONS: dict[str, FunctionImpl] = {}


def _register(*names: str) -> Callable[[FunctionImpl], FunctionImpl]:
    def decorator(func: FunctionImpl) -> FunctionImpl:
        for name in names:
            FUNCTIONS[name] = func
        return func

    return decorator


def call_function(
    name: str, ctx: EvaluationContext, args: list[FormulaNode]
) -> CellValue:
    """Dispatch a function call by case-insensitive name."""
    func = FUNCTIONS.get(name.upper())
    if func is None:
        raise FormulaError(f"Unknown function: {name}")
    return func(ctx, args)


def _clock() -> float:
    return time.time()


def _require(name: str, args: list[FormulaNode], minimum: int, maximum: int) -> None:
    if not minimum <= len(args) <= maximum:
        raise FormulaError(
            f"{name} takes {minimum}..{maximum} arguments, got {len(args)}"
        )


def _grid(ctx: EvaluationContext, node: FormulaNode) -> list[list[CellValue]]:
    if isinstance(node, RangeNode):
        return ctx.cells(node.start, node.end)
    return [[ctx.value(node)]]


def _flatten(ctx: EvaluationContext, args: list[FormulaNode]) -> list[CellValue]:
    items: list[CellValue] = []
    for node in args:
        for row in _grid(ctx, node):
            items.extend(row)
    return items


def _require_range(name: str, node: FormulaNode) -> RangeNode:
    if not isinstance(node, RangeNode):
        raise FormulaError(f"{name} expects a range argument")
    return node


# Aggregates -----------------------------------------------------------------


@_register("SUM")
def _sum(ctx: EvaluationContext, args: list[FormulaNode]) -> CellValue:
    _require("SUM", args, 1, 255)
    return math.fsum(_numbers_or_zero(_flatten(ctx, args)))


@_register("AVERAGE")
def _average(ctx: EvaluationContext, args: list[FormulaNode]) -> CellValue:
    _require("AVERAGE", args, 1, 255)
    items = _flatten(ctx, args)
    if not items:
        return 0.0
    return math.fsum(_numbers_or_zero(items)) / len(items)


@_register("COUNT")
def _count(ctx: EvaluationContext, args: list[FormulaNode]) -> CellValue:
    _require("COUNT", args, 1, 255)
    return sum(1 for item in _flatten(ctx, args) if numeric_or_none(item) is not None)


@_register("MAX")
def _max(ctx: EvaluationContext, args: list[FormulaNode]) -> CellValue:
    _require("MAX", args, 1, 255)
    numbers = _numbers_only(_flatten(ctx, args))
    return max(numbers) if numbers else 0.0


@_register("MIN")
def _min(ctx: EvaluationContext, args: list[FormulaNode]) -> CellValue:
    _require("MIN", args, 1, 255)
    numbers = _numbers_only(_flatten(ctx, args))
    return min(numbers) if numbers else 0.0


@_register("PRODUCT")
def _product(ctx: EvaluationContext, args: list[FormulaNode]) -> CellValue:
    _require("PRODUCT", args, 1, 255)
    return math.prod(_numbers_or_zero(_flatten(ctx, args)))


def _numbers_or_zero(items: list[CellValue]) -> list[float]:
    return [numeric_or_none(item) or 0.0 for item in items]


def _numbers_only(items: list[CellValue]) -> list[float]:
    numbers = (numeric_or_none(item) for item in items)
    return [number for number in numbers if number is not None]


# Conditionals and lookups ---------------------------------------------------


@_register("IF")
def _if(ctx: EvaluationContext, args: list[FormulaNode]) -> CellValue:
    _require("IF", args, 2, 3)
    if to_bool(ctx.value(args[0])):
        return ctx.value(args[1])
    if len(args) == 3:
        return ctx.value(args[2])
    return False


@_register("IFERROR")
def _iferror(ctx: EvaluationContext, args: list[FormulaNode]) -> CellValue:
    _require("IFERROR", args, 2, 2)
    try:
        value = ctx.value(args[0])
    except (ArithmeticError, ValueError):
        return ctx.value(args[1])
    if is_error_token(value) or is_nan(value):
        return ctx.value(args[1])
    return value


@_register("VLOOKUP")
def _vlookup(ctx: EvaluationContext, args: list[FormulaNode]) -> CellValue:
    _require("VLOOKUP", args, 3, 4)
    key = to_text(ctx.value(args[0]))
    table = _require_range("VLOOKUP", args[1])
    column = to_integer(ctx.value(args[2]))
    if len(args) == 4:
        # Only exact matching is supported; the flag is still evaluated.
        ctx.value(args[3])
    rows = ctx.cells(table.start, table.end)
    if column < 1:
        raise FormulaError(f"VLOOKUP column index must be >= 1, got {column}")
    if rows and column > len(rows[0]):
        raise FormulaError("VLOOKUP column outside range", code=REF_TOKEN)
    for row in rows:
        if is_error_value(row[0]):
            continue
        if to_text(row[0]) == key:
            found = row[column - 1]
            return 0.0 if found is None else found
    raise LookupMissError(f"VLOOKUP found no match for {key!r}")


@_register("COUNTIF")
def _countif(ctx: EvaluationContext, args: list[FormulaNode]) -> CellValue:
    _require("COUNTIF", args, 2, 2)
    target = _require_range("COUNTIF", args[0])
    criteria = to_text(ctx.value(args[1]))
    values = [value for row in ctx.cells(target.start, target.end) for value in row]
    return sum(1 for value in values if matches_criteria(value, criteria))


@_register("SUMIF")
def _sumif(ctx: EvaluationContext, args: list[FormulaNode]) -> CellValue:
    _require("SUMIF", args, 2, 3)
    target = _require_range("SUMIF", args[0])
    criteria = to_text(ctx.value(args[1]))
    rows = ctx.cells(target.start, target.end)
    if len(args) == 3:
        sum_node = _require_range("SUMIF", args[2])
        sum_rows = ctx.cells(*_aligned_corners(target, sum_node))
    else:
        sum_rows = rows
    total: list[float] = []
    for row, sum_row in zip(rows, sum_rows):
        for value, addend in zip(row, sum_row):
            if matches_criteria(value, criteria):
                total.append(numeric_or_none(addend) or 0.0)
    return math.fsum(total)


def _aligned_corners(target: RangeNode, sum_node: RangeNode) -> tuple[str, str]:
    """Return a sum range with the criteria range's shape at sum_node's top-left."""
    min_row, min_col, max_row, max_col = range_bounds(target.start, target.end)
    sum_row, sum_col, _, _ = range_bounds(sum_node.start, sum_node.end)
    end_row = sum_row + (max_row - min_row)
    end_col = sum_col + (max_col - min_col)
    return (
        f"{column_index_to_label(sum_col)}{sum_row}",
        f"{column_index_to_label(end_col)}{end_row}",
    )


def matches_criteria(value: CellValue, criteria: str) -> bool:
    """Match a cell against COUNTIF/SUMIF criteria.

    Comparison prefixes (``>=``, ``<=``, ``<>``, ``>``, ``<``, ``=``) compare
    numerically when both sides are numbers; a bare criterion matches on
    equality or substring.
    """
    if is_error_value(value):
        return False
    text = to_text(value)
    for prefix in (">=", "<=", "<>", ">", "<", "="):
        if not criteria.startswith(prefix):
            continue
        operand = criteria[len(prefix) :]
        left = numeric_or_none(value)
        right = parse_number(operand)
        if prefix in ("=", "<>"):
            if left is not None and right is not None:
                equal = left == right
            else:
                equal = text == operand
            return equal if prefix == "=" else not equal
        if left is None or right is None:
            return False
        if prefix == ">=":
            return left >= right
        if prefix == "<=":
            return left <= right
        if prefix == ">":
            return left > right
        return left < right
    if criteria == "":
        return text == ""
    return text == criteria or criteria in text


# Text -----------------------------------------------------------------------


@_register("CONCATENATE", "CONCAT")
def _concat(ctx: EvaluationContext, args: list[FormulaNode]) -> CellValue:
    _require("CONCATENATE", args, 1, 255)
    parts: list[str] = []
    for node in args:
        for row in _grid(ctx, node):
            for item in row:
                # Scalar arguments already raised; range cells carry their error.
                if isinstance(node, RangeNode) and is_error_value(item):
                    raise FormulaError(code=str(item))
                parts.append(to_text(item))
    return "".join(parts)


@_register("UPPER")
def _upper(ctx: EvaluationContext, args: list[FormulaNode]) -> CellValue:
    _require("UPPER", args, 1, 1)
    return to_text(ctx.value(args[0])).upper()


@_register("LOWER")
def _lower(ctx: EvaluationContext, args: list[FormulaNode]) -> CellValue:
    _require("LOWER", args, 1, 1)
    return to_text(ctx.value(args[0])).lower()


@_register("TRIM")
def _trim(ctx: EvaluationContext, args: list[FormulaNode]) -> CellValue:
    _require("TRIM", args, 1, 1)
    return " ".join(part for part in to_text(ctx.value(args[0])).split(" ") if part)


@_register("LEN")
def _len(ctx: EvaluationContext, args: list[FormulaNode]) -> CellValue:
    _require("LEN", args, 1, 1)
    return len(to_text(ctx.value(args[0])))


@_register("LEFT")
def _left(ctx: EvaluationContext, args: list[FormulaNode]) -> CellValue:
    _require("LEFT", args, 1, 2)
    text = to_text(ctx.value(args[0]))
    count = _char_count(ctx, args)
    return text[:count]


@_register("RIGHT")
def _right(ctx: EvaluationContext, args: list[FormulaNode]) -> CellValue:
    _require("RIGHT", args, 1, 2)
    text = to_text(ctx.value(args[0]))
    count = _char_count(ctx, args)
    return text[len(text) - count :] if count else ""


@_register("MID")
def _mid(ctx: EvaluationContext, args: list[FormulaNode]) -> CellValue:
    _require("MID", args, 3, 3)
    text = to_text(ctx.value(args[0]))
    start = to_integer(ctx.value(args[1]))
    count = to_integer(ctx.value(args[2]))
    if start < 1 or count < 0:
        raise FormulaError(
            f"MID expects start >= 1 and length >= 0, got {start}, {count}"
        )
    return text[start - 1 : start - 1 + count]


def _char_count(ctx: EvaluationContext, args: list[FormulaNode]) -> int:
    count = to_integer(ctx.value(args[1])) if len(args) > 1 else 1
    if count < 0:
        raise FormulaError(f"Character count must be >= 0, got {count}")
    return count


# Math -----------------------------------------------------------------------


@_register("ROUND")
def _round(ctx: EvaluationContext, args: list[FormulaNode]) -> CellValue:
    return _round_with(ctx, args, "ROUND", ROUND_HALF_UP)


@_register("ROUNDUP")
def _roundup(ctx: EvaluationContext, args: list[FormulaNode]) -> CellValue:
    return _round_with(ctx, args, "ROUNDUP", ROUND_UP)


@_register("ROUNDDOWN")
def _rounddown(ctx: EvaluationContext, args: list[FormulaNode]) -> CellValue:
    return _round_with(ctx, args, "ROUNDDOWN", ROUND_DOWN)


def _round_with(
    ctx: EvaluationContext, args: list[FormulaNode], name: str, rounding: str
) -> float:
    _require(name, args, 1, 2)
    number = to_number(ctx.value(args[0]))
    digits = to_integer(ctx.value(args[1])) if len(args) == 2 else 0
    if not math.isfinite(number):
        raise FormulaError(f"{name} of a non-finite number")
    # Decimal rounding modes are symmetric around zero, as spreadsheets expect.
    return float(round_decimal(Decimal(repr(number)), digits, rounding))


@_register("ABS")
def _abs(ctx: EvaluationContext, args: list[FormulaNode]) -> CellValue:
    _require("ABS", args, 1, 1)
    return abs(to_number(ctx.value(args[0])))


@_register("SQRT")
def _sqrt(ctx: EvaluationContext, args: list[FormulaNode]) -> CellValue:
    _require("SQRT", args, 1, 1)
    number = to_number(ctx.value(args[0]))
    if number < 0:
        raise FormulaError("SQRT of a negative number")
    return math.sqrt(number)


@_register("POWER")
def _power(ctx: EvaluationContext, args: list[FormulaNode]) -> CellValue:
    _require("POWER", args, 2, 2)
    return math.pow(to_number(ctx.value(args[0])), to_number(ctx.value(args[1])))


@_register("MOD")
def _mod(ctx: EvaluationContext, args: list[FormulaNode]) -> CellValue:
    _require("MOD", args, 2, 2)
    number = to_number(ctx.value(args[0]))
    divisor = to_number(ctx.value(args[1]))
    if divisor == 0:
        raise FormulaError("MOD by zero")
    # Python's % already takes the sign of the divisor.
    return number % divisor


@_register("INT")
def _int(ctx: EvaluationContext, args: list[FormulaNode]) -> CellValue:
    _require("INT", args, 1, 1)
    return float(math.floor(to_number(ctx.value(args[0]))))


# Dates ----------------------------------------------------------------------


@_register("TODAY")
def _today(ctx: EvaluationContext, args: list[FormulaNode]) -> CellValue:
    _require("TODAY", args, 0, 0)
    return float(math.floor(_clock() / _SECONDS_PER_DAY) + SERIAL_EPOCH_OFFSET)


@_register("NOW")
def _now(ctx: EvaluationContext, args: list[FormulaNode]) -> CellValue:
    _require("NOW", args, 0, 0)
    return _clock() / _SECONDS_PER_DAY + SERIAL_EPOCH_OFFSET


__all__ = ["FUNCTIONS", "EvaluationContext", "call_function", "matches_criteria"]
