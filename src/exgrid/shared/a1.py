from __future__ import annotations

import re

_A1_PATTERN = re.compile(r"^\$?([A-Za-z]{1,3})\$?([1-9][0-9]*)$")
_A1_RANGE_PATTERN = re.compile(r"^[A-Za-z]{1,3}[1-9][0-9]*:[A-Za-z]{1,3}[1-9][0-9]*$")
_COLUMN_LABEL_PATTERN = re.compile(r"^[A-Za-z]{1,3}$")

MAX_COLUMNS = 16_384
MAX_ROWS = 1_048_576


def cell_id(row: int, col: int) -> str:
    """Build an A1 id from 0-based (row, col) coordinates."""
    if row < 0 or col < 0:
        raise ValueError(f"Coordinates must be non-negative: ({row}, {col})")
    return f"{column_index_to_label(col + 1)}{row + 1}"


def parse_cell_id(value: str) -> tuple[str, int] | None:
    """Parse an A1 id into (column_label, row); return None when malformed."""
    if not isinstance(value, str):
        return None
    match = _A1_PATTERN.match(value.strip())
    if match is None:
        return None
    return match.group(1).upper(), int(match.group(2))


def split_a1(value: str) -> tuple[str, int]:
    """Split A1 notation into normalized (column_label, row_index)."""
    parsed = parse_cell_id(value)
    if parsed is None:
        raise ValueError(f"Invalid cell reference: {value}")
    return parsed


def normalize_cell_id(value: str) -> str:
    """Return the canonical upper-case form of an A1 id."""
    column, row = split_a1(value)
    return f"{column}{row}"


def cell_coordinates(value: str) -> tuple[int, int]:
    """Return 1-based (row, column) for an A1 id."""
    column, row = split_a1(value)
    return row, column_label_to_index(column)


def column_label_to_index(label: str) -> int:
    """Convert Excel-style column label (A/AA) to 1-based index."""
    normalized = label.strip().upper()
    if not _COLUMN_LABEL_PATTERN.match(normalized):
        raise ValueError(f"Invalid column label: {label}")
    index = 0
    for char in normalized:
        index = index * 26 + (ord(char) - ord("A") + 1)
    return index


def column_index_to_label(index: int) -> str:
    """Convert 1-based column index to Excel-style column label."""
    if index < 1:
        raise ValueError("Column index must be positive.")
    chunks: list[str] = []
    current = index
    while current > 0:
        current -= 1
        chunks.append(chr(ord("A") + (current % 26)))
        current //= 26
    return "".join(reversed(chunks))


def normalize_range(value: str) -> str:
    """Validate and normalize an A1 range string."""
    candidate = value.strip().replace("$", "")
    if not _A1_RANGE_PATTERN.match(candidate):
        raise ValueError(f"Invalid range reference: {value}")
    start, end = candidate.split(":", maxsplit=1)
    return f"{start.upper()}:{end.upper()}"


def range_bounds(start: str, end: str) -> tuple[int, int, int, int]:
    """Return 1-based (min_row, min_col, max_row, max_col) for two corners."""
    start_row, start_col = cell_coordinates(start)
    end_row, end_col = cell_coordinates(end)
    return (
        min(start_row, end_row),
        min(start_col, end_col),
        max(start_row, end_row),
        max(start_col, end_col),
    )


def expand_range(start: str, end: str) -> list[str]:
    """Expand two corners into the row-major list of covered cell ids."""
    min_row, min_col, max_row, max_col = range_bounds(start, end)
    labels = [column_index_to_label(col) for col in range(min_col, max_col + 1)]
    return [f"{label}{row}" for row in range(min_row, max_row + 1) for label in labels]


def range_rows(start: str, end: str) -> list[list[str]]:
    """Expand two corners into rows of cell ids."""
    min_row, min_col, max_row, max_col = range_bounds(start, end)
    labels = [column_index_to_label(col) for col in range(min_col, max_col + 1)]
    return [
        [f"{label}{row}" for label in labels] for row in range(min_row, max_row + 1)
    ]


def range_cell_count(range_ref: str) -> int:
    """Return the number of cells represented by an A1 range."""
    start, end = normalize_range(range_ref).split(":", maxsplit=1)
    min_row, min_col, max_row, max_col = range_bounds(start, end)
    return (max_col - min_col + 1) * (max_row - min_row + 1)


def parse_range_geometry(range_ref: str) -> tuple[str, int, int]:
    """Parse A1 range and return top-left cell + (rows, cols)."""
    start_ref, end_ref = normalize_range(range_ref).split(":", maxsplit=1)
    min_row, min_col, max_row, max_col = range_bounds(start_ref, end_ref)
    return (
        f"{column_index_to_label(min_col)}{min_row}",
        max_row - min_row + 1,
        max_col - min_col + 1,
    )
