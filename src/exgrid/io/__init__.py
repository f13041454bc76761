"""Excel (.xlsx) import/export through openpyxl."""

from __future__ import annotations

from .xlsx import (
    load_workbook_from_xlsx,
    openpyxl_workbook,
    read_xlsx_cells,
    write_xlsx,
)

__all__ = [
    "load_workbook_from_xlsx",
    "openpyxl_workbook",
    "read_xlsx_cells",
    "write_xlsx",
]
