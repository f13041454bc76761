"""Tree-walking formula evaluator.

`evaluate` is the public contract: it takes formula text and a cell mapping
and always returns a value or an error token. Errors raised internally as
`FormulaError` subclasses are converted to their token at this boundary.
"""

from __future__ import annotations

from collections.abc import Mapping
import logging
import math

from exgrid.core.models import raw_text
from exgrid.core.types import (
    ERROR_TOKEN,
    REF_TOKEN,
    CellValue,
    is_error_token,
    is_error_value,
)
from exgrid.shared.a1 import parse_cell_id, range_bounds

from .errors import CircularReferenceError, FormulaError
from .functions import call_function
from .graph import DependencyGraph, parse_cached, range_cells
from .parser import (
    BinaryOpNode,
    BooleanNode,
    CellRefNode,
    FormulaNode,
    FunctionCallNode,
    NumberNode,
    RangeNode,
    StringNode,
    UnaryOpNode,
)
from .values import parse_number, to_number, to_text

logger = logging.getLogger(__name__)

_TYPE_RANK = {float: 0, str: 1, bool: 2}


class Evaluator:
    """Evaluate formula cells of one sheet with memoisation.

    Args:
        cells: Mapping of cell id to `CellContent` or plain raw text.
        cached: Already-known results for formula cells that are still valid.
        graph: Dependency graph of `cells`; built when omitted.
    """

    def __init__(
        self,
        cells: Mapping[str, object],
        *,
        cached: Mapping[str, CellValue] | None = None,
        graph: DependencyGraph | None = None,
    ) -> None:
        self._cells = cells
        self._memo: dict[str, CellValue] = dict(cached or {})
        self._graph = graph if graph is not None else DependencyGraph.from_cells(cells)
        self._cyclic = self._graph.cyclic_cells()
        self._visiting: set[str] = set()

    @property
    def cyclic_cells(self) -> set[str]:
        return set(self._cyclic)

    def evaluate_cell(self, cell_id: str) -> CellValue:
        """Return the value of a cell: literal, computed formula, or token."""
        if cell_id in self._memo:
            return self._memo[cell_id]
        raw = raw_text(self._cells.get(cell_id))
        if raw is None:
            return None
        if not raw.startswith("="):
            return literal_value(raw)
        if cell_id in self._visiting:
            return REF_TOKEN
        if cell_id in self._cyclic:
            value: CellValue = REF_TOKEN
        else:
            self._visiting.add(cell_id)
            try:
                value = self.evaluate_formula(raw, cell_id)
            finally:
                self._visiting.discard(cell_id)
        self._memo[cell_id] = value
        return value

    def evaluate_formula(
        self, formula: str, current_cell_id: str | None = None
    ) -> CellValue:
        """Evaluate formula text as if it sat in `current_cell_id`; never raises."""
        try:
            node = parse_cached(formula)
            return _normalize(_Frame(self, current_cell_id).value(node))
        except FormulaError as exc:
            return exc.code
        except RecursionError:
            logger.debug("Recursion limit hit while evaluating %s", current_cell_id)
            return ERROR_TOKEN
        except Exception:  # noqa: BLE001
            logger.debug(
                "Unexpected failure evaluating %r in %s",
                formula,
                current_cell_id,
                exc_info=True,
            )
            return ERROR_TOKEN


def evaluate(
    formula: CellValue,
    cells: Mapping[str, object],
    current_cell_id: str | None = None,
) -> CellValue:
    """Evaluate `formula` against `cells`.

    Text that does not start with '=' is returned unchanged. The formula is
    treated as the content of `current_cell_id`, so reading that cell (or a
    cycle through it) yields '#REF!'.

    Args:
        formula: Raw cell text.
        cells: Mapping of cell id to `CellContent` or raw text.
        current_cell_id: Cell the formula belongs to, if any.

    Returns:
        The computed scalar or an error token.
    """
    if not isinstance(formula, str) or not formula.startswith("="):
        return formula
    if current_cell_id is None:
        return Evaluator(cells).evaluate_formula(formula)
    parsed = parse_cell_id(current_cell_id)
    owner = f"{parsed[0]}{parsed[1]}" if parsed else current_cell_id
    store = dict(cells)
    store[owner] = formula
    return Evaluator(store).evaluate_cell(owner)


def literal_value(raw: str) -> CellValue:
    """Read literal cell text: numeric text becomes a number."""
    number = parse_number(raw)
    return raw if number is None else number


class _Frame:
    """Evaluation of one formula; implements the function library's context."""

    def __init__(self, evaluator: Evaluator, current_cell_id: str | None) -> None:
        self._evaluator = evaluator
        self._current = current_cell_id

    def value(self, node: FormulaNode) -> CellValue:
        result = self._eval(node)
        if is_error_token(result):
            raise FormulaError(code=result)
        return result

    def cells(self, start: str, end: str) -> list[list[CellValue]]:
        ids = range_cells(start, end)
        values = [
            REF_TOKEN if cell == self._current else self._evaluator.evaluate_cell(cell)
            for cell in ids
        ]
        _, min_col, _, max_col = range_bounds(start, end)
        width = max_col - min_col + 1
        return [values[i : i + width] for i in range(0, len(values), width)]

    def _eval(self, node: FormulaNode) -> CellValue:
        if isinstance(node, (NumberNode, StringNode, BooleanNode)):
            return node.value
        if isinstance(node, CellRefNode):
            if node.cell == self._current:
                raise CircularReferenceError(f"{node.cell} refers to itself")
            return _referenced(self._evaluator.evaluate_cell(node.cell))
        if isinstance(node, RangeNode):
            rows = self.cells(node.start, node.end)
            if len(rows) == 1 and len(rows[0]) == 1:
                return _referenced(rows[0][0])
            raise FormulaError(f"Range {node.start}:{node.end} used as a single value")
        if isinstance(node, FunctionCallNode):
            return call_function(node.name, self, node.args)
        if isinstance(node, UnaryOpNode):
            return self._unary(node)
        if isinstance(node, BinaryOpNode):
            return self._binary(node)
        raise FormulaError(f"Unsupported node {type(node).__name__}")

    def _unary(self, node: UnaryOpNode) -> CellValue:
        # Walk prefix/postfix chains iteratively, innermost operator first.
        ops: list[str] = []
        inner: FormulaNode = node
        while isinstance(inner, UnaryOpNode):
            ops.append(inner.op)
            inner = inner.operand
        result = self.value(inner)
        for op in reversed(ops):
            operand = to_number(result)
            if op == "-":
                result = -operand
            elif op == "%":
                result = operand / 100
            else:
                result = operand
        return result

    def _binary(self, node: BinaryOpNode) -> CellValue:
        # Operators associate left, so a long chain nests down the left side.
        chain: list[BinaryOpNode] = []
        left: FormulaNode = node
        while isinstance(left, BinaryOpNode):
            chain.append(left)
            left = left.left
        result = self.value(left)
        for link in reversed(chain):
            result = _apply(link.op, result, self.value(link.right))
        return result


def _apply(op: str, left: CellValue, right: CellValue) -> CellValue:
    if op == "&":
        return to_text(left) + to_text(right)
    if op in ("=", "<>", "<", ">", "<=", ">="):
        return _compare(op, left, right)
    a = to_number(left)
    b = to_number(right)
    if op == "+":
        return a + b
    if op == "-":
        return a - b
    if op == "*":
        return a * b
    if op == "/":
        if b == 0:
            raise FormulaError("Division by zero")
        return a / b
    try:
        return math.pow(a, b)
    except (ValueError, OverflowError, ZeroDivisionError) as exc:
        raise FormulaError(f"Invalid power {a}^{b}") from exc


def _referenced(value: CellValue) -> CellValue:
    """Raise for error text read from another cell, whatever its code."""
    if is_error_value(value):
        raise FormulaError(f"Referenced cell holds {value}", code=str(value))
    return value


def _compare(op: str, left: CellValue, right: CellValue) -> bool:
    # Blanks compare as the empty value of the other side's type.
    if left is None:
        left = _blank_like(right)
    if right is None:
        right = _blank_like(left)
    l_key = _sort_key(left)
    r_key = _sort_key(right)
    if op == "=":
        return l_key == r_key
    if op == "<>":
        return l_key != r_key
    if op == "<":
        return l_key < r_key
    if op == ">":
        return l_key > r_key
    if op == "<=":
        return l_key <= r_key
    return l_key >= r_key


def _blank_like(other: CellValue) -> CellValue:
    if isinstance(other, bool):
        return False
    if isinstance(other, str):
        return ""
    return 0.0


def _sort_key(value: CellValue) -> tuple[int, float | str | bool]:
    if isinstance(value, bool):
        return _TYPE_RANK[bool], value
    if isinstance(value, (int, float)):
        return _TYPE_RANK[float], float(value)
    return _TYPE_RANK[str], str(value).lower()


def _normalize(value: CellValue) -> CellValue:
    if value is None:
        return 0.0
    if isinstance(value, float):
        if not math.isfinite(value):
            return ERROR_TOKEN
        if value == 0:
            return 0.0
    return value
