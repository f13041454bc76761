from __future__ import annotations

import pytest

from exgrid.core.models import CellContent
from exgrid.formula.evaluator import Evaluator, evaluate


@pytest.fixture
def numbers() -> dict[str, str]:
    return {"A1": "1", "A2": "2", "A3": "3"}


@pytest.mark.parametrize("text", ["hello", "", "42", "#REF!", " =not a formula"])
def test_literal_identity(text: str) -> None:
    assert evaluate(text, {}, "B1") == text


def test_self_reference_is_ref_error() -> None:
    assert evaluate("=A1", {}, "A1") == "#REF!"
    assert evaluate("=a1+1", {"A1": "5"}, "A1") == "#REF!"


def test_multi_cell_cycle_is_ref_error() -> None:
    cells = {"B1": "=C1+1", "C1": "=A1*2"}
    assert evaluate("=B1", cells, "A1") == "#REF!"


def test_cell_downstream_of_cycle_gets_ref() -> None:
    cells = {"A1": "=B1", "B1": "=A1", "C1": "=A1+1"}
    evaluator = Evaluator(cells)
    assert evaluator.cyclic_cells == {"A1", "B1"}
    assert evaluator.evaluate_cell("C1") == "#REF!"


def test_aggregates(numbers: dict[str, str]) -> None:
    assert evaluate("=SUM(A1:A3)", numbers) == 6
    assert evaluate("=AVERAGE(A1:A3)", numbers) == 2
    assert evaluate("=MAX(A1:A3)", numbers) == 3
    assert evaluate("=MIN(A3:A1)", numbers) == 1


def test_range_including_current_cell_skips_it(numbers: dict[str, str]) -> None:
    assert evaluate("=SUM(A1:A4)", numbers, "A4") == 6


def test_error_propagation_and_iferror() -> None:
    cells = {"A1": "=1/0"}
    assert evaluate("=A1+1", cells, "B1") == "#ERROR!"
    assert evaluate("=IFERROR(A1+1, 0)", cells, "B1") == 0


def test_same_error_token_propagates() -> None:
    cells = {"A1": '=VLOOKUP("q", C1:D1, 2, FALSE)', "C1": "x", "D1": "1"}
    assert evaluate("=A1&\"!\"", cells, "B1") == "#N/A"
    assert evaluate("=A1", {"A1": "=A1"}, "B1") == "#REF!"


def test_references_resolve_transitively() -> None:
    cells = {"A1": "2", "A2": "=A1*10", "A3": "=A2+A1"}
    assert evaluate("=A3/2", cells, "B1") == 11


def test_empty_reference_is_zero() -> None:
    assert evaluate("=A1", {}, "B1") == 0
    assert evaluate('=A1&"x"', {}, "B1") == "x"


def test_cell_content_values_are_accepted() -> None:
    cells = {"A1": CellContent(raw="4"), "A2": CellContent(raw="=A1*A1", cached=0)}
    assert evaluate("=A2+1", cells, "B1") == 17


def test_arithmetic_and_text() -> None:
    assert evaluate("=2^10", {}) == 1024
    assert evaluate("=-3+5%", {}) == pytest.approx(-2.95)
    assert evaluate('="a"&1&TRUE', {}) == "a1TRUE"
    assert evaluate('=1/0', {}) == "#ERROR!"
    assert evaluate('=(-8)^0.5', {}) == "#ERROR!"


def test_comparisons() -> None:
    cells = {"A1": "10", "A2": "apple"}
    assert evaluate("=A1>5", cells) is True
    assert evaluate("=A1<>10", cells) is False
    assert evaluate('=A2="APPLE"', cells) is True
    assert evaluate('=A2>A1', cells) is True
    assert evaluate("=A9=0", cells) is True


def test_failures_never_raise() -> None:
    assert evaluate("=SUM(", {}) == "#ERROR!"
    assert evaluate("=NOPE(1)", {}) == "#ERROR!"
    assert evaluate("=A1:B2", {}) == "#ERROR!"
    assert evaluate("=SUM(A1:XFD1048576)", {}) == "#ERROR!"


def test_non_string_input_is_returned_unchanged() -> None:
    assert evaluate(3.5, {}) == 3.5
    assert evaluate(None, {}) is None


def test_deeply_nested_formula_is_an_error_value() -> None:
    formula = "=" + "(" * 300 + "1" + ")" * 300
    assert evaluate(formula, {}, "B1") == "#ERROR!"
    assert evaluate(formula, {}) == "#ERROR!"
    assert evaluate("=" + "SUM(" * 20 + "A1" + ")" * 20, {"A1": "2"}, "B1") == 2


def test_long_operator_chains_evaluate() -> None:
    assert evaluate("=" + "+".join(["1"] * 400), {}, "B1") == 400
    assert evaluate("=" + "&".join(['"a"'] * 400), {}, "B1") == "a" * 400
    assert evaluate("=" + "-" * 401 + "2", {}, "B1") == -2
    assert evaluate("=10-2-3", {}, "B1") == 5
    assert evaluate("=2^3^2", {}, "B1") == 64


def test_imported_error_text_propagates() -> None:
    cells = {"A1": "#DIV/0!", "A2": "2", "C1": "#VALUE!"}
    assert evaluate("=A1+1", cells, "B1") == "#DIV/0!"
    assert evaluate("=A1:A1", cells, "B1") == "#DIV/0!"
    assert evaluate("=IFERROR(A1, 0)", cells, "B1") == 0
    assert evaluate("=CONCAT(C1:C1)", cells, "B1") == "#VALUE!"
    assert evaluate("=SUM(A1:A2)", cells, "B1") == 2
    assert evaluate('=LEN("#tag")', cells, "B1") == 4
