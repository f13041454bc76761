from __future__ import annotations

import pytest

from exgrid.formula.errors import FormulaError
from exgrid.formula.graph import DependencyGraph, formula_references, range_cells


def test_formula_references() -> None:
    assert formula_references("=A1+SUM(B1:B3)") == {"A1", "B1", "B2", "B3"}
    assert formula_references("=1+") == set()
    assert formula_references("plain") == set()
    assert formula_references("=" + "(" * 300 + "A1" + ")" * 300) == set()


def test_range_cells_guard() -> None:
    assert range_cells("B2", "A1") == ["A1", "B1", "A2", "B2"]
    with pytest.raises(FormulaError, match="too large"):
        range_cells("A1", "Z10000")


def test_register_drops_self_edges() -> None:
    graph = DependencyGraph.from_cells({"A4": "=SUM(A1:A4)"})
    assert graph.precedents("A4") == {"A1", "A2", "A3"}
    assert graph.dependents("A1") == {"A4"}
    assert graph.cyclic_cells() == set()


def test_unregister_clears_dependents() -> None:
    graph = DependencyGraph.from_cells({"B1": "=A1"})
    graph.unregister("B1")
    assert graph.dependents("A1") == set()
    assert graph.formula_cells == set()


def test_affected_follows_transitive_dependents() -> None:
    graph = DependencyGraph.from_cells(
        {"A1": "1", "B1": "=A1", "C1": "=B1*2", "D1": "=9", "E1": "=C1"}
    )
    assert graph.affected(["A1"]) == {"B1", "C1", "E1"}
    assert graph.affected(["D1"]) == {"D1"}
    assert graph.affected(["Z9"]) == set()


def test_cyclic_cells_finds_every_member() -> None:
    graph = DependencyGraph.from_cells(
        {"A1": "=B1", "B1": "=C1", "C1": "=A1", "D1": "=A1", "E1": "=E2", "E2": "=E1"}
    )
    assert graph.cyclic_cells() == {"A1", "B1", "C1", "E1", "E2"}


def test_recalculation_order_puts_precedents_first() -> None:
    graph = DependencyGraph.from_cells(
        {"A1": "=B1+C1", "B1": "=C1", "C1": "=1", "D1": "=A1"}
    )
    order = graph.recalculation_order(["D1", "A1", "B1", "C1"])
    assert order == ["C1", "B1", "A1", "D1"]


def test_recalculation_order_excludes_cycles() -> None:
    graph = DependencyGraph.from_cells(
        {"A1": "=B1", "B1": "=A1", "C1": "=A1", "D1": "=2"}
    )
    cyclic = graph.cyclic_cells()
    order = graph.recalculation_order(["A1", "B1", "C1", "D1"], exclude=cyclic)
    assert order == ["C1", "D1"]
