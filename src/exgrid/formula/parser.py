"""Recursive-descent parser producing a formula AST.

Operator precedence, lowest first::

    comparison   = <> < > <= >=
    concat       &
    additive     + -
    term         * /
    power        ^
    unary        - +
    postfix      %
"""

from __future__ import annotations

from typing import Literal, Union

from pydantic import BaseModel, ConfigDict

from .errors import FormulaSyntaxError
from .tokenizer import Token, tokenize

BinaryOperator = Literal["+", "-", "*", "/", "^", "&", "=", "<>", "<", ">", "<=", ">="]
UnaryOperator = Literal["-", "+", "%"]

# Parentheses and function calls may nest this deep.
MAX_NESTING_DEPTH = 64

_COMPARISON_OPS = {"=", "==", "<>", "!=", "<", ">", "<=", ">="}
_OP_ALIASES = {"==": "=", "!=": "<>"}


class _Node(BaseModel):
    model_config = ConfigDict(frozen=True)


class NumberNode(_Node):
    value: float


class StringNode(_Node):
    value: str


class BooleanNode(_Node):
    value: bool


class CellRefNode(_Node):
    cell: str


class RangeNode(_Node):
    start: str
    end: str


class FunctionCallNode(_Node):
    name: str
    args: list[FormulaNode]


class UnaryOpNode(_Node):
    op: UnaryOperator
    operand: FormulaNode


class BinaryOpNode(_Node):
    op: BinaryOperator
    left: FormulaNode
    right: FormulaNode


FormulaNode = Union[
    NumberNode,
    StringNode,
    BooleanNode,
    CellRefNode,
    RangeNode,
    FunctionCallNode,
    UnaryOpNode,
    BinaryOpNode,
]

FunctionCallNode.model_rebuild()
UnaryOpNode.model_rebuild()
BinaryOpNode.model_rebuild()


def parse_formula(formula: str) -> FormulaNode:
    """Parse formula text (with or without the leading '=') into an AST.

    Raises:
        FormulaSyntaxError: If the text is not a well-formed expression.
    """
    body = formula[1:] if formula.startswith("=") else formula
    if not body.strip():
        raise FormulaSyntaxError("Empty formula")
    return _Parser(tokenize(body)).parse()


class _Parser:
    def __init__(self, tokens: list[Token]) -> None:
        self._tokens = tokens
        self._index = 0
        self._depth = 0

    def parse(self) -> FormulaNode:
        node = self._comparison()
        token = self._peek()
        if token.kind != "eof":
            raise FormulaSyntaxError(
                f"Unexpected token {token.text!r} at {token.position}"
            )
        return node

    def _peek(self) -> Token:
        return self._tokens[self._index]

    def _advance(self) -> Token:
        token = self._tokens[self._index]
        if token.kind != "eof":
            self._index += 1
        return token

    def _expect(self, kind: str) -> Token:
        token = self._advance()
        if token.kind != kind:
            raise FormulaSyntaxError(
                f"Expected {kind} but found {token.text!r} at {token.position}"
            )
        return token

    def _descend(self, token: Token) -> None:
        self._depth += 1
        if self._depth > MAX_NESTING_DEPTH:
            raise FormulaSyntaxError(
                f"Formula nests deeper than {MAX_NESTING_DEPTH} levels "
                f"at {token.position}"
            )

    def _match_op(self, ops: set[str] | tuple[str, ...]) -> str | None:
        token = self._peek()
        if token.kind == "op" and token.text in ops:
            self._advance()
            return _OP_ALIASES.get(token.text, token.text)
        return None

    def _comparison(self) -> FormulaNode:
        node = self._concat()
        while (op := self._match_op(_COMPARISON_OPS)) is not None:
            node = BinaryOpNode(op=op, left=node, right=self._concat())
        return node

    def _concat(self) -> FormulaNode:
        node = self._additive()
        while self._match_op(("&",)) is not None:
            node = BinaryOpNode(op="&", left=node, right=self._additive())
        return node

    def _additive(self) -> FormulaNode:
        node = self._term()
        while (op := self._match_op(("+", "-"))) is not None:
            node = BinaryOpNode(op=op, left=node, right=self._term())
        return node

    def _term(self) -> FormulaNode:
        node = self._power()
        while (op := self._match_op(("*", "/"))) is not None:
            node = BinaryOpNode(op=op, left=node, right=self._power())
        return node

    def _power(self) -> FormulaNode:
        node = self._unary()
        while self._match_op(("^",)) is not None:
            node = BinaryOpNode(op="^", left=node, right=self._unary())
        return node

    def _unary(self) -> FormulaNode:
        prefixes: list[str] = []
        while (op := self._match_op(("-", "+"))) is not None:
            prefixes.append(op)
        node = self._postfix()
        for op in reversed(prefixes):
            node = UnaryOpNode(op=op, operand=node)
        return node

    def _postfix(self) -> FormulaNode:
        node = self._primary()
        while self._match_op(("%",)) is not None:
            node = UnaryOpNode(op="%", operand=node)
        return node

    def _primary(self) -> FormulaNode:
        token = self._advance()
        if token.kind == "number":
            return NumberNode(value=float(token.text))
        if token.kind == "string":
            return StringNode(value=token.text)
        if token.kind == "ref":
            if self._peek().kind == "colon":
                self._advance()
                end = self._expect("ref")
                return RangeNode(start=token.text, end=end.text)
            return CellRefNode(cell=token.text)
        if token.kind == "ident":
            if self._peek().kind == "lparen":
                self._descend(token)
                node = self._call(token.text)
                self._depth -= 1
                return node
            if token.text in ("TRUE", "FALSE"):
                return BooleanNode(value=token.text == "TRUE")
            raise FormulaSyntaxError(
                f"Unknown name {token.text!r} at {token.position}"
            )
        if token.kind == "lparen":
            self._descend(token)
            node = self._comparison()
            self._expect("rparen")
            self._depth -= 1
            return node
        raise FormulaSyntaxError(
            f"Unexpected token {token.text or 'end of formula'!r} at {token.position}"
        )

    def _call(self, name: str) -> FunctionCallNode:
        self._expect("lparen")
        args: list[FormulaNode] = []
        if self._peek().kind == "rparen":
            self._advance()
            return FunctionCallNode(name=name, args=args)
        while True:
            args.append(self._comparison())
            token = self._advance()
            if token.kind == "rparen":
                return FunctionCallNode(name=name, args=args)
            if token.kind != "comma":
                raise FormulaSyntaxError(
                    f"Expected ',' or ')' but found {token.text!r} at {token.position}"
                )
