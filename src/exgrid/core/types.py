from __future__ import annotations

from typing import Literal, TypeAlias

CellValue: TypeAlias = float | int | str | bool | None

ErrorToken = Literal["#ERROR!", "#REF!", "#N/A"]
ERROR_TOKEN: ErrorToken = "#ERROR!"
REF_TOKEN: ErrorToken = "#REF!"
NA_TOKEN: ErrorToken = "#N/A"
ERROR_TOKENS: frozenset[str] = frozenset({ERROR_TOKEN, REF_TOKEN, NA_TOKEN})

TextAlign = Literal["left", "center", "right"]
EditKey = Literal[
    "Enter",
    "Tab",
    "Escape",
    "Delete",
    "Backspace",
    "ArrowUp",
    "ArrowDown",
    "ArrowLeft",
    "ArrowRight",
]

DEFAULT_COLUMN_WIDTH = 96.0
DEFAULT_ROW_HEIGHT = 24.0
MIN_COLUMN_WIDTH = 20.0
MIN_ROW_HEIGHT = 15.0
DEFAULT_HISTORY_CAPACITY = 50
# Largest rectangle a single range reference may expand to.
MAX_RANGE_CELLS = 100_000

# Days between the spreadsheet-file epoch and 1970-01-01.
SERIAL_EPOCH_OFFSET = 25569


def is_error_token(value: object) -> bool:
    """Return True when value is one of the reserved error tokens."""
    return isinstance(value, str) and value in ERROR_TOKENS


def is_error_value(value: object) -> bool:
    """Return True for any error text read from a cell.

    Besides the reserved tokens this covers errors imported from files,
    such as '#DIV/0!' or '#VALUE!'.
    """
    return isinstance(value, str) and value.startswith("#")
