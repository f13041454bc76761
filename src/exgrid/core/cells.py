"""Functional updates over the cell store of a `Sheet`.

Every helper returns a new `Sheet`; the input value is never mutated.
"""

from __future__ import annotations

from collections.abc import Mapping

from .models import CellContent, CellFormat, Sheet
from .types import CellValue


def set_contents(sheet: Sheet, updates: Mapping[str, CellContent | None]) -> Sheet:
    """Replace several cells at once; None removes the cell."""
    if not updates:
        return sheet
    cells = dict(sheet.cells)
    for cell_id, content in updates.items():
        if content is None:
            cells.pop(cell_id, None)
        else:
            cells[cell_id] = content
    return sheet.model_copy(update={"cells": cells})


def set_content(sheet: Sheet, cell_id: str, content: CellContent | None) -> Sheet:
    return set_contents(sheet, {cell_id: content})


def with_cached(sheet: Sheet, results: Mapping[str, CellValue]) -> Sheet:
    """Store evaluation results on the matching formula cells."""
    cells = dict(sheet.cells)
    changed = False
    for cell_id, value in results.items():
        content = cells.get(cell_id)
        if content is None or not content.is_formula or content.cached == value:
            continue
        cells[cell_id] = content.model_copy(update={"cached": value})
        changed = True
    return sheet.model_copy(update={"cells": cells}) if changed else sheet


def set_format(sheet: Sheet, cell_id: str, cell_format: CellFormat | None) -> Sheet:
    formats = dict(sheet.formats)
    if cell_format is None or cell_format == CellFormat():
        formats.pop(cell_id, None)
    else:
        formats[cell_id] = cell_format
    return sheet.model_copy(update={"formats": formats})


def set_column_width(sheet: Sheet, column: str, width: float) -> Sheet:
    widths = dict(sheet.column_widths)
    widths[column] = width
    return sheet.model_copy(update={"column_widths": widths})


def set_row_height(sheet: Sheet, row: int, height: float) -> Sheet:
    heights = dict(sheet.row_heights)
    heights[row] = height
    return sheet.model_copy(update={"row_heights": heights})
