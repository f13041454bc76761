"""Formula dependency graph.

Edges point from a formula cell to the cells it reads (its precedents).
The graph answers three questions for the workbook: which cells sit on a
reference cycle, which formulas are affected by a write, and in what order
those formulas must be recomputed.
"""

from __future__ import annotations

from collections import defaultdict, deque
from collections.abc import Iterable, Mapping
from functools import lru_cache

from exgrid.core.models import raw_text
from exgrid.core.types import MAX_RANGE_CELLS
from exgrid.shared.a1 import expand_range, range_bounds

from .errors import FormulaError
from .parser import (
    BinaryOpNode,
    CellRefNode,
    FormulaNode,
    FunctionCallNode,
    RangeNode,
    UnaryOpNode,
    parse_formula,
)


@lru_cache(maxsize=2048)
def parse_cached(formula: str) -> FormulaNode:
    """Parse formula text, reusing the AST for identical text."""
    return parse_formula(formula)


def range_cells(start: str, end: str) -> list[str]:
    """Expand a range reference row-major, refusing oversized rectangles.

    Raises:
        FormulaError: If the rectangle exceeds MAX_RANGE_CELLS.
    """
    min_row, min_col, max_row, max_col = range_bounds(start, end)
    size = (max_row - min_row + 1) * (max_col - min_col + 1)
    if size > MAX_RANGE_CELLS:
        raise FormulaError(f"Range {start}:{end} is too large ({size} cells)")
    return expand_range(start, end)


def node_references(node: FormulaNode) -> set[str]:
    """Collect every cell id an AST reads; ranges are expanded."""
    refs: set[str] = set()
    stack: list[FormulaNode] = [node]
    while stack:
        current = stack.pop()
        if isinstance(current, CellRefNode):
            refs.add(current.cell)
        elif isinstance(current, RangeNode):
            refs.update(range_cells(current.start, current.end))
        elif isinstance(current, FunctionCallNode):
            stack.extend(current.args)
        elif isinstance(current, UnaryOpNode):
            stack.append(current.operand)
        elif isinstance(current, BinaryOpNode):
            stack.extend((current.left, current.right))
    return refs


def formula_references(formula: str) -> set[str]:
    """Return the cell ids a formula reads; unparsable formulas read nothing."""
    if not formula.startswith("="):
        return set()
    try:
        return node_references(parse_cached(formula))
    except (FormulaError, RecursionError):
        return set()


class DependencyGraph:
    """Precedent/dependent index over the formula cells of one sheet."""

    def __init__(self) -> None:
        self._precedents: dict[str, set[str]] = {}
        self._dependents: defaultdict[str, set[str]] = defaultdict(set)

    @classmethod
    def from_cells(cls, cells: Mapping[str, object]) -> DependencyGraph:
        graph = cls()
        for cell_id, entry in cells.items():
            raw = raw_text(entry)
            if raw is not None and raw.startswith("="):
                graph.register(cell_id, formula_references(raw))
        return graph

    def register(self, cell_id: str, references: Iterable[str]) -> None:
        """Record (or replace) the precedents of a formula cell.

        Self-edges are dropped: a cell reading itself is reported by the
        evaluator, and a range that includes its own owner skips that cell.
        """
        self.unregister(cell_id)
        precedents = {ref for ref in references if ref != cell_id}
        self._precedents[cell_id] = precedents
        for ref in precedents:
            self._dependents[ref].add(cell_id)

    def unregister(self, cell_id: str) -> None:
        for ref in self._precedents.pop(cell_id, set()):
            dependents = self._dependents.get(ref)
            if dependents is not None:
                dependents.discard(cell_id)
                if not dependents:
                    del self._dependents[ref]

    @property
    def formula_cells(self) -> set[str]:
        return set(self._precedents)

    def precedents(self, cell_id: str) -> set[str]:
        return set(self._precedents.get(cell_id, set()))

    def dependents(self, cell_id: str) -> set[str]:
        return set(self._dependents.get(cell_id, set()))

    def affected(self, changed: Iterable[str]) -> set[str]:
        """Return formula cells that must be recomputed after `changed` is written.

        Includes changed cells that are themselves formulas.
        """
        seeds = set(changed)
        affected = {cell for cell in seeds if cell in self._precedents}
        queue = deque(seeds)
        seen = set(seeds)
        while queue:
            current = queue.popleft()
            for dependent in self._dependents.get(current, ()):
                affected.add(dependent)
                if dependent not in seen:
                    seen.add(dependent)
                    queue.append(dependent)
        return affected

    def cyclic_cells(self) -> set[str]:
        """Return every formula cell that lies on a reference cycle."""
        # Iterative Tarjan: strongly connected components with more than one
        # member are cycles (self-edges were dropped on register).
        index_of: dict[str, int] = {}
        lowlink: dict[str, int] = {}
        on_stack: set[str] = set()
        stack: list[str] = []
        cyclic: set[str] = set()
        counter = 0
        for root in self._precedents:
            if root in index_of:
                continue
            work: list[tuple[str, list[str]]] = [
                (root, sorted(self._precedents.get(root, ())))
            ]
            index_of[root] = lowlink[root] = counter
            counter += 1
            stack.append(root)
            on_stack.add(root)
            while work:
                node, pending = work[-1]
                if pending:
                    nxt = pending.pop()
                    if nxt not in self._precedents:
                        continue
                    if nxt not in index_of:
                        index_of[nxt] = lowlink[nxt] = counter
                        counter += 1
                        stack.append(nxt)
                        on_stack.add(nxt)
                        work.append((nxt, sorted(self._precedents.get(nxt, ()))))
                    elif nxt in on_stack:
                        lowlink[node] = min(lowlink[node], index_of[nxt])
                    continue
                work.pop()
                if work:
                    parent = work[-1][0]
                    lowlink[parent] = min(lowlink[parent], lowlink[node])
                if lowlink[node] == index_of[node]:
                    component: list[str] = []
                    while True:
                        member = stack.pop()
                        on_stack.discard(member)
                        component.append(member)
                        if member == node:
                            break
                    if len(component) > 1:
                        cyclic.update(component)
        return cyclic

    def recalculation_order(
        self, cells: Iterable[str], *, exclude: set[str] | None = None
    ) -> list[str]:
        """Topologically order formula cells so precedents come first.

        Cells in `exclude` (typically the cyclic ones) are left out, and edges
        from them are ignored.
        """
        skip = exclude or set()
        targets = {
            cell for cell in cells if cell in self._precedents and cell not in skip
        }
        indegree = {cell: 0 for cell in targets}
        for cell in targets:
            for ref in self._precedents[cell]:
                if ref in targets:
                    indegree[cell] += 1
        ready = deque(sorted(cell for cell, degree in indegree.items() if degree == 0))
        order: list[str] = []
        while ready:
            current = ready.popleft()
            order.append(current)
            for dependent in sorted(self._dependents.get(current, ())):
                if dependent not in indegree:
                    continue
                indegree[dependent] -= 1
                if indegree[dependent] == 0:
                    ready.append(dependent)
        return order
