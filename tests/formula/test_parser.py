from __future__ import annotations

import pytest

from exgrid.formula.errors import FormulaSyntaxError
from exgrid.formula.parser import (
    MAX_NESTING_DEPTH,
    BinaryOpNode,
    BooleanNode,
    CellRefNode,
    FunctionCallNode,
    NumberNode,
    RangeNode,
    StringNode,
    UnaryOpNode,
    parse_formula,
)
from exgrid.formula.tokenizer import tokenize


def test_tokenize_kinds() -> None:
    tokens = tokenize('SUM($a$1:B2, "x""y") >= 3')
    assert [token.kind for token in tokens] == [
        "ident",
        "lparen",
        "ref",
        "colon",
        "ref",
        "comma",
        "string",
        "rparen",
        "op",
        "number",
        "eof",
    ]
    assert tokens[2].text == "A1"
    assert tokens[6].text == 'x"y'
    assert tokens[6].position == 13
    assert tokens[8].text == ">="


def test_tokenize_function_name_shaped_like_reference() -> None:
    tokens = tokenize("log10(5)")
    assert tokens[0] == ("ident", "LOG10", 0)


def test_tokenize_rejects_unterminated_string() -> None:
    with pytest.raises(FormulaSyntaxError, match="Unterminated string"):
        tokenize('"abc')


def test_tokenize_rejects_unknown_character() -> None:
    with pytest.raises(FormulaSyntaxError, match="Unexpected character"):
        tokenize("1 # 2")


def test_precedence() -> None:
    node = parse_formula("=1+2*3^2")
    assert node == BinaryOpNode(
        op="+",
        left=NumberNode(value=1),
        right=BinaryOpNode(
            op="*",
            left=NumberNode(value=2),
            right=BinaryOpNode(
                op="^", left=NumberNode(value=3), right=NumberNode(value=2)
            ),
        ),
    )


def test_comparison_binds_loosest_and_aliases() -> None:
    node = parse_formula('=A1&"x"==B2')
    assert isinstance(node, BinaryOpNode)
    assert node.op == "="
    assert node.left == BinaryOpNode(
        op="&", left=CellRefNode(cell="A1"), right=StringNode(value="x")
    )


def test_unary_and_percent() -> None:
    assert parse_formula("=-A1") == UnaryOpNode(op="-", operand=CellRefNode(cell="A1"))
    assert parse_formula("=50%") == UnaryOpNode(op="%", operand=NumberNode(value=50))


def test_function_call_with_range_and_booleans() -> None:
    node = parse_formula("=vlookup(\"y\", A1:B3; 2, TRUE)")
    assert node == FunctionCallNode(
        name="VLOOKUP",
        args=[
            StringNode(value="y"),
            RangeNode(start="A1", end="B3"),
            NumberNode(value=2),
            BooleanNode(value=True),
        ],
    )


def test_empty_call() -> None:
    assert parse_formula("=TODAY()") == FunctionCallNode(name="TODAY", args=[])


@pytest.mark.parametrize(
    "formula",
    ["=", "=1+", "=(1", "=SUM(1,", "=foo", "=A1:", "=1 2"],
)
def test_malformed_formulas_raise(formula: str) -> None:
    with pytest.raises(FormulaSyntaxError):
        parse_formula(formula)


def test_nesting_limit() -> None:
    depth = MAX_NESTING_DEPTH
    assert parse_formula("=" + "(" * depth + "1" + ")" * depth) == NumberNode(value=1)
    with pytest.raises(FormulaSyntaxError, match="nests deeper"):
        parse_formula("=" + "(" * (depth + 1) + "1" + ")" * (depth + 1))
    with pytest.raises(FormulaSyntaxError, match="nests deeper"):
        parse_formula("=" + "ABS(" * 300 + "1" + ")" * 300)


def test_long_operator_chains_parse_flat() -> None:
    node = parse_formula("=" + "+".join(["1"] * 500))
    assert isinstance(node, BinaryOpNode)
    negated = parse_formula("=" + "-" * 500 + "1")
    assert isinstance(negated, UnaryOpNode)
