from __future__ import annotations

import logging
from pathlib import Path

from pydantic import BaseModel, Field

from exgrid.core.types import DEFAULT_HISTORY_CAPACITY, CellValue
from exgrid.core.workbook import Workbook
from exgrid.io.xlsx import load_workbook_from_xlsx, write_xlsx
from exgrid.shared.a1 import normalize_cell_id, normalize_range, range_rows
from exgrid.shared.output_path import OnConflictPolicy, apply_conflict_policy

from .io import PathPolicy, resolve_output_path

logger = logging.getLogger(__name__)


class WorkbookSession:
    """The single workbook an MCP server process edits."""

    def __init__(self, *, history_capacity: int = DEFAULT_HISTORY_CAPACITY) -> None:
        self.history_capacity = history_capacity
        self.workbook = Workbook(history_capacity=history_capacity)

    def sheet_id(self, name: str | None) -> str:
        """Resolve a sheet name to its id; None means the active sheet.

        Raises:
            ValueError: If no sheet has that name.
        """
        if name is None:
            return self.workbook.active_sheet_id
        sheet = self.workbook.find_sheet_by_name(name)
        if sheet is None:
            raise ValueError(f"Sheet not found: {name}")
        return sheet.id

    def sheet_name(self, sheet_id: str) -> str:
        return self.workbook.get_sheet(sheet_id).name

    def replace(self, workbook: Workbook) -> None:
        self.workbook = workbook


class SetCellToolInput(BaseModel):
    """MCP tool input for writing one cell."""

    cell: str
    value: str = Field(..., description="Literal text, or a formula starting with '='.")
    sheet: str | None = None


class SetCellToolOutput(BaseModel):
    """MCP tool output for writing one cell."""

    sheet: str
    cell: str
    raw: str
    display: str
    value: CellValue = None


class ReadRangeToolInput(BaseModel):
    """MCP tool input for reading a rectangle of cells."""

    range: str = Field(..., description="A1 range such as 'A1:C10'.")  # noqa: A003
    sheet: str | None = None


class ReadRangeToolOutput(BaseModel):
    """MCP tool output for reading a rectangle of cells."""

    sheet: str
    range: str  # noqa: A003
    values: list[list[CellValue]] = Field(default_factory=list)
    display: list[list[str]] = Field(default_factory=list)
    raw: list[list[str]] = Field(default_factory=list)


class MergeToolInput(BaseModel):
    """MCP tool input for merging a range."""

    range: str  # noqa: A003
    sheet: str | None = None


class UnmergeToolInput(BaseModel):
    """MCP tool input for removing the merge containing a cell."""

    cell: str
    sheet: str | None = None


class MergeToolOutput(BaseModel):
    """Merged regions of a sheet after a merge/unmerge."""

    sheet: str
    merged_regions: list[str] = Field(default_factory=list)


class HistoryToolOutput(BaseModel):
    """Result of an undo/redo call."""

    applied: bool
    can_undo: bool
    can_redo: bool


class AddSheetToolInput(BaseModel):
    """MCP tool input for adding a sheet."""

    name: str | None = None


class AddSheetToolOutput(BaseModel):
    """MCP tool output for adding a sheet."""

    name: str
    sheets: list[str] = Field(default_factory=list)


class ImportXlsxToolInput(BaseModel):
    """MCP tool input for loading an .xlsx file into the session."""

    xlsx_path: str
    keep_formulas: bool = Field(
        default=False,
        description="Import formula text instead of the results cached in the file.",
    )


class ImportXlsxToolOutput(BaseModel):
    """MCP tool output for loading an .xlsx file."""

    sheets: list[str] = Field(default_factory=list)
    cell_count: int = 0


class ExportXlsxToolInput(BaseModel):
    """MCP tool input for writing the session to an .xlsx file."""

    out_path: str
    on_conflict: OnConflictPolicy | None = None


class ExportXlsxToolOutput(BaseModel):
    """MCP tool output for writing the session to an .xlsx file."""

    out_path: str | None = None
    skipped: bool = False
    warnings: list[str] = Field(default_factory=list)


def run_set_cell_tool(
    payload: SetCellToolInput, *, session: WorkbookSession
) -> SetCellToolOutput:
    """Write a literal or formula into a cell and report the result.

    Raises:
        ValueError: If the sheet or cell id is invalid.
    """
    sheet_id = session.sheet_id(payload.sheet)
    cell = normalize_cell_id(payload.cell)
    workbook = session.workbook
    workbook.set_cell_raw(sheet_id, cell, payload.value)
    return SetCellToolOutput(
        sheet=session.sheet_name(sheet_id),
        cell=cell,
        raw=workbook.get_raw_content(sheet_id, cell),
        display=workbook.get_display_value(sheet_id, cell),
        value=workbook.get_value(sheet_id, cell),
    )


def run_read_range_tool(
    payload: ReadRangeToolInput, *, session: WorkbookSession
) -> ReadRangeToolOutput:
    """Read resolved values, display text and raw text for a range."""
    sheet_id = session.sheet_id(payload.sheet)
    normalized = normalize_range(
        payload.range if ":" in payload.range else f"{payload.range}:{payload.range}"
    )
    start, end = normalized.split(":", maxsplit=1)
    rows = range_rows(start, end)
    workbook = session.workbook
    return ReadRangeToolOutput(
        sheet=session.sheet_name(sheet_id),
        range=normalized,
        values=[[workbook.get_value(sheet_id, cell) for cell in row] for row in rows],
        display=[
            [workbook.get_display_value(sheet_id, cell) for cell in row] for row in rows
        ],
        raw=[
            [workbook.get_raw_content(sheet_id, cell) for cell in row] for row in rows
        ],
    )


def run_merge_tool(
    payload: MergeToolInput, *, session: WorkbookSession
) -> MergeToolOutput:
    sheet_id = session.sheet_id(payload.sheet)
    session.workbook.merge_selection(sheet_id, payload.range)
    return _merge_output(session, sheet_id)


def run_unmerge_tool(
    payload: UnmergeToolInput, *, session: WorkbookSession
) -> MergeToolOutput:
    sheet_id = session.sheet_id(payload.sheet)
    session.workbook.unmerge_cell(sheet_id, payload.cell)
    return _merge_output(session, sheet_id)


def run_undo_tool(session: WorkbookSession) -> HistoryToolOutput:
    applied = session.workbook.undo()
    return _history_output(session, applied)


def run_redo_tool(session: WorkbookSession) -> HistoryToolOutput:
    applied = session.workbook.redo()
    return _history_output(session, applied)


def run_add_sheet_tool(
    payload: AddSheetToolInput, *, session: WorkbookSession
) -> AddSheetToolOutput:
    sheet = session.workbook.add_sheet(payload.name)
    return AddSheetToolOutput(
        name=sheet.name, sheets=[item.name for item in session.workbook.sheets]
    )


def load_import_workbook(
    payload: ImportXlsxToolInput,
    *,
    policy: PathPolicy | None = None,
    history_capacity: int = DEFAULT_HISTORY_CAPACITY,
) -> Workbook:
    """Read an .xlsx file into a fresh workbook (file I/O only).

    Raises:
        ValueError: If the path is outside the policy root.
        FileNotFoundError: If the file does not exist.
    """
    path = Path(payload.xlsx_path)
    resolved = (
        policy.ensure_existing_file(path) if policy is not None else path.resolve()
    )
    return load_workbook_from_xlsx(
        resolved,
        data_only=not payload.keep_formulas,
        history_capacity=history_capacity,
    )


def adopt_imported_workbook(
    session: WorkbookSession, workbook: Workbook
) -> ImportXlsxToolOutput:
    """Make an imported workbook the session's workbook."""
    session.replace(workbook)
    return ImportXlsxToolOutput(
        sheets=[sheet.name for sheet in workbook.sheets],
        cell_count=sum(len(sheet.cells) for sheet in workbook.sheets),
    )


def run_import_xlsx_tool(
    payload: ImportXlsxToolInput,
    *,
    session: WorkbookSession,
    policy: PathPolicy | None = None,
) -> ImportXlsxToolOutput:
    workbook = load_import_workbook(
        payload, policy=policy, history_capacity=session.history_capacity
    )
    return adopt_imported_workbook(session, workbook)


def run_export_xlsx_tool(
    payload: ExportXlsxToolInput,
    *,
    session: WorkbookSession,
    policy: PathPolicy | None = None,
    on_conflict: OnConflictPolicy | None = None,
) -> ExportXlsxToolOutput:
    """Write the session workbook to disk, honouring the conflict policy.

    Raises:
        ValueError: If the path is outside the policy root.
    """
    output_path = resolve_output_path(Path(payload.out_path), policy=policy)
    effective = payload.on_conflict or on_conflict or "overwrite"
    target, warning, skipped = apply_conflict_policy(output_path, effective)
    warnings = [warning] if warning else []
    if skipped:
        logger.info("Export skipped; %s already exists.", output_path)
        return ExportXlsxToolOutput(out_path=None, skipped=True, warnings=warnings)
    written = write_xlsx(session.workbook, target, on_conflict="overwrite")
    return ExportXlsxToolOutput(
        out_path=str(written) if written is not None else None, warnings=warnings
    )


def _merge_output(session: WorkbookSession, sheet_id: str) -> MergeToolOutput:
    sheet = session.workbook.get_sheet(sheet_id)
    return MergeToolOutput(
        sheet=sheet.name, merged_regions=[region.ref for region in sheet.merged_regions]
    )


def _history_output(session: WorkbookSession, applied: bool) -> HistoryToolOutput:
    history = session.workbook.history
    return HistoryToolOutput(
        applied=applied, can_undo=history.can_undo(), can_redo=history.can_redo()
    )
