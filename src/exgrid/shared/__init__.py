from __future__ import annotations

from .a1 import (
    cell_coordinates,
    cell_id,
    column_index_to_label,
    column_label_to_index,
    expand_range,
    normalize_cell_id,
    normalize_range,
    parse_cell_id,
    parse_range_geometry,
    range_bounds,
    range_cell_count,
    range_rows,
    split_a1,
)

__all__ = [
    "cell_coordinates",
    "cell_id",
    "column_index_to_label",
    "column_label_to_index",
    "expand_range",
    "normalize_cell_id",
    "normalize_range",
    "parse_cell_id",
    "parse_range_geometry",
    "range_bounds",
    "range_cell_count",
    "range_rows",
    "split_a1",
]
