from __future__ import annotations

import re
from typing import Literal, NamedTuple

from .errors import FormulaSyntaxError

TokenKind = Literal[
    "number",
    "string",
    "ref",
    "ident",
    "op",
    "lparen",
    "rparen",
    "comma",
    "colon",
    "eof",
]

_NUMBER_PATTERN = re.compile(r"(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")
_WORD_PATTERN = re.compile(r"[$A-Za-z_][$A-Za-z0-9_.]*")
_REF_PATTERN = re.compile(r"^\$?([A-Za-z]{1,3})\$?([1-9][0-9]*)$")
_TWO_CHAR_OPS = ("<=", ">=", "<>", "==", "!=")
_ONE_CHAR_OPS = "+-*/^&%=<>"


class Token(NamedTuple):
    kind: TokenKind
    text: str
    position: int


def tokenize(expression: str) -> list[Token]:
    """Split a formula body (without the leading '=') into tokens.

    String literals may use double or single quotes; a doubled quote inside
    a literal is an escaped quote. Both ',' and ';' separate arguments.

    Raises:
        FormulaSyntaxError: On an unterminated string or unknown character.
    """
    tokens: list[Token] = []
    i = 0
    length = len(expression)
    while i < length:
        ch = expression[i]
        if ch.isspace():
            i += 1
            continue
        if ch in ('"', "'"):
            text, end = _read_string(expression, i)
            tokens.append(Token("string", text, i))
            i = end
            continue
        number = _NUMBER_PATTERN.match(expression, i)
        if number is not None and (ch.isdigit() or ch == "."):
            tokens.append(Token("number", number.group(0), i))
            i = number.end()
            continue
        word = _WORD_PATTERN.match(expression, i)
        if word is not None:
            tokens.append(_classify_word(word.group(0), expression, word.end(), i))
            i = word.end()
            continue
        pair = expression[i : i + 2]
        if pair in _TWO_CHAR_OPS:
            tokens.append(Token("op", pair, i))
            i += 2
            continue
        if ch in _ONE_CHAR_OPS:
            tokens.append(Token("op", ch, i))
        elif ch == "(":
            tokens.append(Token("lparen", ch, i))
        elif ch == ")":
            tokens.append(Token("rparen", ch, i))
        elif ch in ",;":
            tokens.append(Token("comma", ch, i))
        elif ch == ":":
            tokens.append(Token("colon", ch, i))
        else:
            raise FormulaSyntaxError(f"Unexpected character {ch!r} at {i}")
        i += 1
    tokens.append(Token("eof", "", length))
    return tokens


def _read_string(expression: str, start: int) -> tuple[str, int]:
    quote = expression[start]
    chunks: list[str] = []
    i = start + 1
    while i < len(expression):
        ch = expression[i]
        if ch == quote:
            if i + 1 < len(expression) and expression[i + 1] == quote:
                chunks.append(quote)
                i += 2
                continue
            return "".join(chunks), i + 1
        chunks.append(ch)
        i += 1
    raise FormulaSyntaxError(f"Unterminated string starting at {start}")


def _classify_word(word: str, expression: str, end: int, start: int) -> Token:
    # A word followed by '(' is always a function name, even if it looks
    # like a cell id (e.g. LOG10).
    rest = expression[end:].lstrip()
    if rest.startswith("("):
        return Token("ident", word.upper(), start)
    match = _REF_PATTERN.match(word)
    if match is not None:
        return Token("ref", f"{match.group(1).upper()}{match.group(2)}", start)
    if "$" in word:
        raise FormulaSyntaxError(f"Invalid reference {word!r} at {start}")
    return Token("ident", word.upper(), start)
