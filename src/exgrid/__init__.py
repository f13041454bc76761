"""ExGrid: an in-memory spreadsheet engine with formulas, merges and undo/redo."""

from __future__ import annotations

from .core.models import CellContent, CellFormat, CellRange, MergeRect, Sheet
from .core.types import ERROR_TOKEN, NA_TOKEN, REF_TOKEN, CellValue
from .core.workbook import Workbook
from .formula import evaluate, format_cell

__version__ = "0.1.0"

__all__ = [
    "ERROR_TOKEN",
    "NA_TOKEN",
    "REF_TOKEN",
    "CellContent",
    "CellFormat",
    "CellRange",
    "CellValue",
    "MergeRect",
    "Sheet",
    "Workbook",
    "evaluate",
    "format_cell",
]
