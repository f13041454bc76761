from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date, datetime, time
import logging
from pathlib import Path
import re
from typing import Any
import warnings

from openpyxl import Workbook as OpenpyxlWorkbook, load_workbook
from openpyxl.styles import Alignment, Font, PatternFill

from exgrid.core.models import CellContent, CellFormat, MergeRect, Sheet
from exgrid.core.types import (
    DEFAULT_COLUMN_WIDTH,
    DEFAULT_HISTORY_CAPACITY,
    DEFAULT_ROW_HEIGHT,
    CellValue,
)
from exgrid.core.workbook import Workbook
from exgrid.formula.format import FORMAT_ALIASES
from exgrid.formula.values import format_number
from exgrid.shared.a1 import normalize_range
from exgrid.shared.output_path import OnConflictPolicy, apply_conflict_policy

logger = logging.getLogger(__name__)

# Grid dimensions are pixels; openpyxl uses character widths and points.
_PIXELS_PER_CHARACTER = 7.0
_PIXELS_PER_POINT = 4.0 / 3.0
_EXCEL_EPOCH = datetime(1899, 12, 30)
_HEX_COLOR_PATTERN = re.compile(r"^#?(?:[0-9A-Fa-f]{6}|[0-9A-Fa-f]{8})$")


@contextmanager
def openpyxl_workbook(
    file_path: Path, *, data_only: bool, read_only: bool
) -> Iterator[Any]:
    """Open an openpyxl workbook and ensure it is closed.

    Args:
        file_path: Workbook path.
        data_only: Whether to read cached formula results instead of formulas.
        read_only: Whether to open in read-only mode.

    Yields:
        openpyxl workbook instance.
    """
    with warnings.catch_warnings():
        warnings.filterwarnings(
            "ignore",
            message="Unknown extension is not supported and will be removed",
            category=UserWarning,
            module="openpyxl",
        )
        warnings.filterwarnings(
            "ignore",
            message="Data Validation extension is not supported and will be removed",
            category=UserWarning,
            module="openpyxl",
        )
        wb = load_workbook(file_path, data_only=data_only, read_only=read_only)
    try:
        yield wb
    finally:
        try:
            wb.close()
        except Exception:  # noqa: BLE001
            logger.debug("Failed to close workbook %s", file_path, exc_info=True)


def read_xlsx_cells(
    file_path: Path, sheet_name: str | None = None, *, data_only: bool = True
) -> dict[str, str]:
    """Read one worksheet as cell text suitable for `Workbook.import_cells`.

    Args:
        file_path: Workbook path.
        sheet_name: Worksheet title; the first worksheet when omitted.
        data_only: Read the results cached in the file (the default).
            Pass False to read formula text instead.

    Returns:
        Mapping of A1 id to text. Numbers use general notation and dates
        become day serials.

    Raises:
        ValueError: If `sheet_name` does not exist in the workbook.
    """
    with openpyxl_workbook(file_path, data_only=data_only, read_only=False) as wb:
        if sheet_name is None:
            worksheet = wb.worksheets[0]
        elif sheet_name in wb.sheetnames:
            worksheet = wb[sheet_name]
        else:
            raise ValueError(f"Sheet not found: {sheet_name}")
        cells = _worksheet_cells(worksheet)
    logger.info("Read %d cell(s) from %s [%s]", len(cells), file_path, worksheet.title)
    return cells


def load_workbook_from_xlsx(
    file_path: Path,
    *,
    data_only: bool = True,
    history_capacity: int = DEFAULT_HISTORY_CAPACITY,
) -> Workbook:
    """Build a `Workbook` from every worksheet of an .xlsx file.

    Cell values, merged ranges, column widths, row heights and basic formats
    (bold/italic/underline, alignment, number format) are imported. Formula
    cells arrive as the results cached in the file; with `data_only=False`
    their formula text is imported instead and recalculated by the engine.
    """
    sheets: list[Sheet] = []
    with openpyxl_workbook(file_path, data_only=data_only, read_only=False) as wb:
        for index, worksheet in enumerate(wb.worksheets, start=1):
            sheets.append(_worksheet_to_sheet(worksheet, f"sheet-{index}"))
    logger.info("Loaded %d sheet(s) from %s", len(sheets), file_path)
    return Workbook(sheets, history_capacity=history_capacity)


def write_xlsx(
    workbook: Workbook,
    file_path: Path,
    *,
    on_conflict: OnConflictPolicy = "overwrite",
) -> Path | None:
    """Write every sheet's resolved values to an .xlsx file.

    Formulas are written as their cached results. Merged regions, column
    widths, row heights and cell formats are carried over.

    Returns:
        The written path (possibly renamed), or None when skipped.
    """
    output_path, warning, skipped = apply_conflict_policy(file_path, on_conflict)
    if warning is not None:
        logger.warning(warning)
    if skipped:
        return None
    output_path.parent.mkdir(parents=True, exist_ok=True)
    book = OpenpyxlWorkbook()
    try:
        default_sheet = book.active
        if default_sheet is not None:
            book.remove(default_sheet)
        for sheet in workbook.sheets:
            worksheet = book.create_sheet(title=sheet.name)
            _fill_worksheet(worksheet, sheet, workbook.export_snapshot(sheet.id))
        book.save(output_path)
    finally:
        book.close()
    logger.info("Wrote %d sheet(s) to %s", len(workbook.sheets), output_path)
    return output_path


def _worksheet_cells(worksheet: Any) -> dict[str, str]:
    cells: dict[str, str] = {}
    for row in worksheet.iter_rows():
        for cell in row:
            text = _cell_text(cell.value)
            if text is not None:
                cells[cell.coordinate] = text
    return cells


def _cell_text(value: object) -> str | None:
    if value is None:
        return None
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, (int, float)):
        return format_number(float(value))
    if isinstance(value, datetime):
        return format_number((value - _EXCEL_EPOCH).total_seconds() / 86_400)
    if isinstance(value, date):
        return format_number(float((value - _EXCEL_EPOCH.date()).days))
    if isinstance(value, time):
        seconds = value.hour * 3600 + value.minute * 60 + value.second
        return format_number(seconds / 86_400)
    # Array formulas expose their text on `.text`.
    text = getattr(value, "text", value)
    rendered = str(text)
    return rendered if rendered != "" else None


def _worksheet_to_sheet(worksheet: Any, sheet_id: str) -> Sheet:
    cells: dict[str, CellContent] = {}
    formats: dict[str, CellFormat] = {}
    for row in worksheet.iter_rows():
        for cell in row:
            text = _cell_text(cell.value)
            if text is not None:
                cells[cell.coordinate] = CellContent(raw=text.strip())
            cell_format = _read_format(cell)
            if cell_format is not None:
                formats[cell.coordinate] = cell_format
    merged = [
        MergeRect.from_corners(*normalize_range(str(rng.coord)).split(":"))
        for rng in worksheet.merged_cells.ranges
    ]
    column_widths = {
        label: round(dimension.width * _PIXELS_PER_CHARACTER, 2)
        for label, dimension in worksheet.column_dimensions.items()
        if dimension.customWidth and dimension.width
    }
    row_heights = {
        row: round(dimension.height * _PIXELS_PER_POINT, 2)
        for row, dimension in worksheet.row_dimensions.items()
        if dimension.height
    }
    return Sheet(
        id=sheet_id,
        name=worksheet.title,
        cells={key: value for key, value in cells.items() if value.raw},
        formats=formats,
        merged_regions=merged,
        column_widths=column_widths,
        row_heights=row_heights,
    )


def _read_format(cell: Any) -> CellFormat | None:
    fields: dict[str, object] = {}
    font = cell.font
    if font is not None:
        if font.b:
            fields["bold"] = True
        if font.i:
            fields["italic"] = True
        if font.u:
            fields["underline"] = True
    horizontal = cell.alignment.horizontal if cell.alignment is not None else None
    if horizontal in ("left", "center", "right"):
        fields["text_align"] = horizontal
    if cell.number_format and cell.number_format != "General":
        fields["number_format"] = cell.number_format
    return CellFormat.model_validate(fields) if fields else None


def _fill_worksheet(
    worksheet: Any, sheet: Sheet, values: dict[str, CellValue]
) -> None:
    for cell_id, value in values.items():
        cell = worksheet[cell_id]
        cell.value = value
        if isinstance(value, str) and value.startswith("="):
            # Resolved text; openpyxl would otherwise store it as a formula.
            cell.data_type = "s"
    for cell_id, cell_format in sheet.formats.items():
        _write_format(worksheet[cell_id], cell_format)
    for region in sheet.merged_regions:
        if region.row_span > 1 or region.col_span > 1:
            worksheet.merge_cells(region.ref)
    for label, width in sheet.column_widths.items():
        if width != DEFAULT_COLUMN_WIDTH:
            worksheet.column_dimensions[label].width = round(
                width / _PIXELS_PER_CHARACTER, 2
            )
    for row, height in sheet.row_heights.items():
        if height != DEFAULT_ROW_HEIGHT:
            worksheet.row_dimensions[row].height = round(height / _PIXELS_PER_POINT, 2)


def _write_format(cell: Any, cell_format: CellFormat) -> None:
    if cell_format.number_format:
        code = cell_format.number_format
        cell.number_format = FORMAT_ALIASES.get(code.strip().lower(), code)
    font_color = _hex_color(cell_format.font_color)
    if (
        cell_format.bold
        or cell_format.italic
        or cell_format.underline
        or cell_format.font_size
        or font_color
    ):
        cell.font = Font(
            bold=bool(cell_format.bold),
            italic=bool(cell_format.italic),
            underline="single" if cell_format.underline else None,
            size=cell_format.font_size,
            color=font_color,
        )
    fill_color = _hex_color(cell_format.background_color)
    if fill_color:
        cell.fill = PatternFill(
            fill_type="solid", start_color=fill_color, end_color=fill_color
        )
    if cell_format.text_align:
        cell.alignment = Alignment(horizontal=cell_format.text_align)


def _hex_color(value: str | None) -> str | None:
    """Normalize '#RRGGBB'/'AARRGGBB' into AARRGGBB; other values are dropped."""
    if value is None:
        return None
    text = value.strip().upper()
    if not _HEX_COLOR_PATTERN.match(text):
        logger.debug("Skipping non-hex color %r", value)
        return None
    raw = text.lstrip("#")
    return raw if len(raw) == 8 else f"FF{raw}"
