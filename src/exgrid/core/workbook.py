"""Workbook controller.

`Workbook` owns the sheets, the active sheet, the selection state and the
history stack. Every mutating operation builds a new `Sheet` value,
re-evaluates the affected formulas, swaps the sheet in and records exactly
one history entry. Reads never mutate.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
import itertools
import logging
import re

from exgrid.formula.evaluator import Evaluator, literal_value
from exgrid.formula.format import format_cell
from exgrid.formula.graph import DependencyGraph
from exgrid.formula.values import format_number, numeric_or_none
from exgrid.shared.a1 import (
    cell_coordinates,
    column_index_to_label,
    column_label_to_index,
    normalize_cell_id,
    parse_cell_id,
    range_rows,
)

from . import selection as sel
from .cells import (
    set_column_width as _set_column_width,
    set_contents,
    set_format,
    set_row_height as _set_row_height,
    with_cached,
)
from .history import HistoryManager
from .merge import cell_span, find_region, merge_range, resolve_anchor, unmerge
from .models import CellContent, CellFormat, CellRange, SelectionState, Sheet, raw_text
from .types import (
    DEFAULT_COLUMN_WIDTH,
    DEFAULT_HISTORY_CAPACITY,
    DEFAULT_ROW_HEIGHT,
    MIN_COLUMN_WIDTH,
    MIN_ROW_HEIGHT,
    REF_TOKEN,
    CellValue,
    EditKey,
)

logger = logging.getLogger(__name__)

_ARROW_DELTAS: dict[str, tuple[int, int]] = {
    "ArrowUp": (-1, 0),
    "ArrowDown": (1, 0),
    "ArrowLeft": (0, -1),
    "ArrowRight": (0, 1),
}


class Workbook:
    """In-memory multi-sheet workbook with undo/redo.

    Args:
        sheets: Initial sheets; a single empty ``Sheet1`` when omitted.
        history_capacity: Maximum number of retained history snapshots.
    """

    def __init__(
        self,
        sheets: Iterable[Sheet] | None = None,
        *,
        history_capacity: int = DEFAULT_HISTORY_CAPACITY,
    ) -> None:
        initial = list(sheets or [])
        self._ids = itertools.count(1)
        if not initial:
            initial = [Sheet(id=self._new_sheet_id(set()), name="Sheet1")]
        ids = [sheet.id for sheet in initial]
        if len(set(ids)) != len(ids):
            raise ValueError(f"Duplicate sheet ids: {ids}")
        self._sheets = [self._recalculate(sheet, None) for sheet in initial]
        self._active_sheet_id = self._sheets[0].id
        self._selection = SelectionState()
        self._history = HistoryManager(history_capacity, initial=self._sheets)

    # Read side ---------------------------------------------------------------

    @property
    def sheets(self) -> list[Sheet]:
        return list(self._sheets)

    @property
    def active_sheet_id(self) -> str:
        return self._active_sheet_id

    @property
    def active_sheet(self) -> Sheet:
        return self.get_sheet(self._active_sheet_id)

    @property
    def selection(self) -> SelectionState:
        return self._selection

    @property
    def history(self) -> HistoryManager:
        return self._history

    def get_sheet(self, sheet_id: str) -> Sheet:
        """Return a sheet by id.

        Raises:
            ValueError: If no sheet has that id.
        """
        for sheet in self._sheets:
            if sheet.id == sheet_id:
                return sheet
        raise ValueError(f"Sheet not found: {sheet_id}")

    def find_sheet_by_name(self, name: str) -> Sheet | None:
        for sheet in self._sheets:
            if sheet.name == name:
                return sheet
        return None

    def get_raw_content(self, sheet_id: str, cell_id: str) -> str:
        """Return the editable source text of a cell ('' when blank)."""
        sheet = self.get_sheet(sheet_id)
        content = sheet.cells.get(self._target_cell(sheet, cell_id))
        return content.raw if content is not None else ""

    def get_value(self, sheet_id: str, cell_id: str) -> CellValue:
        """Return the resolved value: cached formula result or literal."""
        sheet = self.get_sheet(sheet_id)
        return _resolved(sheet.cells.get(self._target_cell(sheet, cell_id)))

    def get_display_value(self, sheet_id: str, cell_id: str) -> str:
        """Return the cell as shown in the grid, honouring its number format."""
        sheet = self.get_sheet(sheet_id)
        target = self._target_cell(sheet, cell_id)
        content = sheet.cells.get(target)
        if content is None:
            return ""
        cell_format = sheet.formats.get(target)
        number_format = cell_format.number_format if cell_format else None
        if content.is_formula:
            return format_cell(content.cached, number_format)
        return format_cell(content.raw, number_format)

    def get_format(self, sheet_id: str, cell_id: str) -> CellFormat:
        sheet = self.get_sheet(sheet_id)
        return sheet.formats.get(self._target_cell(sheet, cell_id), CellFormat())

    def cell_span(self, sheet_id: str, cell_id: str) -> tuple[int, int] | None:
        """Render span of a cell; None when absorbed by a merged region."""
        return cell_span(self.get_sheet(sheet_id), normalize_cell_id(cell_id))

    def column_width(self, sheet_id: str, column: str) -> float:
        label = column_index_to_label(column_label_to_index(column))
        return self.get_sheet(sheet_id).column_widths.get(label, DEFAULT_COLUMN_WIDTH)

    def row_height(self, sheet_id: str, row: int) -> float:
        return self.get_sheet(sheet_id).row_heights.get(row, DEFAULT_ROW_HEIGHT)

    def export_snapshot(self, sheet_id: str) -> dict[str, CellValue]:
        """Return every non-blank cell as a resolved scalar.

        Formulas are replaced by their cached results and numeric literals
        are returned as numbers, so the result can be written to a file
        format without any recalculation.
        """
        sheet = self.get_sheet(sheet_id)
        return {
            cell_id: _resolved(content)
            for cell_id, content in _row_major(sheet.cells.items())
        }

    def find_cells(
        self, sheet_id: str, text: str, *, match_case: bool = False
    ) -> list[str]:
        """Return ids of cells whose display value contains `text`, row-major."""
        if not text:
            return []
        sheet = self.get_sheet(sheet_id)
        needle = text if match_case else text.lower()
        found: list[str] = []
        for cell_id, _ in _row_major(sheet.cells.items()):
            display = self.get_display_value(sheet_id, cell_id)
            haystack = display if match_case else display.lower()
            if needle in haystack:
                found.append(cell_id)
        return found

    def copy_selection(self) -> str:
        """Return the selected cells as tab/newline separated display text."""
        state = self._selection
        if state.range is not None:
            start, end = state.range.start, state.range.end
        elif state.active_cell is not None:
            start = end = state.active_cell
        else:
            return ""
        rows = range_rows(start, end)
        return "\n".join(
            "\t".join(self._copy_text(cell) for cell in row)
            for row in rows
        )

    # Cell edits --------------------------------------------------------------

    def set_cell_raw(self, sheet_id: str, cell_id: str, text: str) -> None:
        """Commit literal or formula text into a cell (one history entry).

        Surrounding whitespace is trimmed; empty text clears the cell.

        Raises:
            ValueError: If the sheet or the cell id is invalid.
        """
        self._write_cells(sheet_id, {cell_id: text})

    def clear_cell(self, sheet_id: str, cell_id: str) -> None:
        self._write_cells(sheet_id, {cell_id: ""})

    def import_cells(self, sheet_id: str, cells: Mapping[str, object]) -> None:
        """Populate a sheet from externally parsed values in one commit.

        Values are stored as their text; None and empty strings clear the
        target cell.
        """
        updates = {cell_id: raw_text(value) or "" for cell_id, value in cells.items()}
        self._write_cells(sheet_id, updates)

    def paste(self, text: str) -> None:
        """Paste tab/newline separated text starting at the active cell."""
        anchor = self._selection.active_cell
        if anchor is None:
            return
        lines = text.replace("\r\n", "\n").replace("\r", "\n").split("\n")
        if len(lines) > 1 and lines[-1] == "":
            lines.pop()
        start_row, start_col = cell_coordinates(anchor)
        updates: dict[str, str] = {}
        for row_offset, line in enumerate(lines):
            for col_offset, value in enumerate(line.split("\t")):
                target = (
                    f"{column_index_to_label(start_col + col_offset)}"
                    f"{start_row + row_offset}"
                )
                updates[target] = value
        self._write_cells(self._active_sheet_id, updates)

    def replace_in_cells(
        self,
        sheet_id: str,
        find: str,
        replace: str,
        cell_ids: Iterable[str] | None = None,
        *,
        match_case: bool = False,
    ) -> int:
        """Replace text inside raw cell content; returns the number of cells changed.

        Raises:
            ValueError: If `find` is empty.
        """
        if not find:
            raise ValueError("Search text must not be empty.")
        sheet = self.get_sheet(sheet_id)
        targets = (
            [normalize_cell_id(cell) for cell in cell_ids]
            if cell_ids is not None
            else list(sheet.cells)
        )
        flags = 0 if match_case else re.IGNORECASE
        pattern = re.compile(re.escape(find), flags)
        updates: dict[str, str] = {}
        for cell_id in targets:
            content = sheet.cells.get(cell_id)
            if content is None:
                continue
            replaced = pattern.sub(lambda _: replace, content.raw)
            if replaced != content.raw:
                updates[cell_id] = replaced
        self._write_cells(sheet_id, updates)
        return len(updates)

    def auto_fill(self, sheet_id: str, start: str, end: str) -> None:
        """Fill a range from the values at its start.

        The leading non-blank cells (row-major) are the seeds. Two or more
        numeric seeds extend as an arithmetic series; anything else repeats
        the seeds cyclically. Malformed ids are a no-op.
        """
        if parse_cell_id(start) is None or parse_cell_id(end) is None:
            return
        sheet = self.get_sheet(sheet_id)
        cells = [cell for row in range_rows(start, end) for cell in row]
        seeds: list[CellValue] = []
        for cell in cells:
            value = _resolved(sheet.cells.get(cell))
            if value is None:
                break
            seeds.append(value)
        if not seeds:
            return
        numbers = [numeric_or_none(seed) for seed in seeds]
        updates: dict[str, str] = {}
        if len(seeds) >= 2 and all(number is not None for number in numbers):
            first = numbers[0] or 0.0
            step = (numbers[1] or 0.0) - first
            for index in range(len(seeds), len(cells)):
                updates[cells[index]] = format_number(round(first + step * index, 10))
        else:
            for index in range(len(seeds), len(cells)):
                seed = seeds[index % len(seeds)]
                updates[cells[index]] = format_cell(seed)
        self._write_cells(sheet_id, updates)

    def recalculate(self, sheet_id: str | None = None) -> None:
        """Re-evaluate every formula (e.g. for TODAY/NOW); no history entry."""
        targets = [sheet_id] if sheet_id is not None else [s.id for s in self._sheets]
        for target in targets:
            self._replace_sheet(self._recalculate(self.get_sheet(target), None))

    # Merges, formats, dimensions ---------------------------------------------

    def merge_selection(self, sheet_id: str, cell_range: CellRange | str) -> None:
        """Merge a range; malformed or fully-contained requests are no-ops."""
        if isinstance(cell_range, str):
            start, _, end = cell_range.partition(":")
            end = end or start
        else:
            start, end = cell_range.start, cell_range.end
        sheet = self.get_sheet(sheet_id)
        merged = merge_range(sheet, start, end)
        if merged is sheet:
            logger.debug("Merge %s:%s left sheet %s unchanged", start, end, sheet_id)
            return
        self._apply(merged)

    def unmerge_cell(self, sheet_id: str, cell_id: str) -> None:
        sheet = self.get_sheet(sheet_id)
        updated = unmerge(sheet, cell_id)
        if updated is not sheet:
            self._apply(updated)

    def apply_format(self, sheet_id: str, cell_id: str, **fields: object) -> None:
        """Merge partial format fields into a cell's format (one history entry).

        Raises:
            pydantic.ValidationError: If a field name or value is invalid.
        """
        sheet = self.get_sheet(sheet_id)
        target = self._target_cell(sheet, cell_id)
        current = sheet.formats.get(target, CellFormat())
        updated = current.merged(**fields)
        if updated == current:
            return
        self._apply(set_format(sheet, target, updated))

    def set_column_width(self, sheet_id: str, column: str, width: float) -> None:
        label = column_index_to_label(column_label_to_index(column))
        sheet = self.get_sheet(sheet_id)
        self._apply(_set_column_width(sheet, label, max(MIN_COLUMN_WIDTH, width)))

    def set_row_height(self, sheet_id: str, row: int, height: float) -> None:
        if row < 1:
            raise ValueError(f"Row index must be >= 1, got {row}")
        sheet = self.get_sheet(sheet_id)
        self._apply(_set_row_height(sheet, row, max(MIN_ROW_HEIGHT, height)))

    # Sheets ------------------------------------------------------------------

    def add_sheet(self, name: str | None = None) -> Sheet:
        """Append a new empty sheet and make it active."""
        names = {sheet.name for sheet in self._sheets}
        if name is None:
            number = len(self._sheets) + 1
            while f"Sheet{number}" in names:
                number += 1
            name = f"Sheet{number}"
        else:
            name = self._validate_name(name, names)
        sheet = Sheet(id=self._new_sheet_id({s.id for s in self._sheets}), name=name)
        self._sheets.append(sheet)
        self._commit()
        self.set_active_sheet(sheet.id)
        return sheet

    def remove_sheet(self, sheet_id: str) -> None:
        """Delete a sheet.

        Raises:
            ValueError: If the sheet is unknown or is the last one.
        """
        sheet = self.get_sheet(sheet_id)
        if len(self._sheets) == 1:
            raise ValueError("Cannot remove the last sheet.")
        self._sheets = [item for item in self._sheets if item.id != sheet.id]
        self._commit()
        if self._active_sheet_id == sheet.id:
            self.set_active_sheet(self._sheets[0].id)

    def rename_sheet(self, sheet_id: str, name: str) -> None:
        sheet = self.get_sheet(sheet_id)
        others = {item.name for item in self._sheets if item.id != sheet_id}
        new_name = self._validate_name(name, others)
        if new_name == sheet.name:
            return
        self._apply(sheet.model_copy(update={"name": new_name}))

    def set_active_sheet(self, sheet_id: str) -> None:
        """Switch sheets; the selection starts over empty."""
        self.get_sheet(sheet_id)
        self._active_sheet_id = sheet_id
        self._selection = SelectionState()

    # History -----------------------------------------------------------------

    def undo(self) -> bool:
        """Restore the previous snapshot; False when there is none."""
        return self._restore(self._history.undo())

    def redo(self) -> bool:
        """Re-apply an undone snapshot; False when there is none."""
        return self._restore(self._history.redo())

    # Selection and editing ---------------------------------------------------

    def mouse_down(self, cell_id: str) -> None:
        target = self._target_cell(self.active_sheet, cell_id)
        if self._selection.editing_cell not in (None, target):
            self.commit_edit()
        self._selection = sel.mouse_down(self._selection, target)

    def mouse_move(self, cell_id: str) -> None:
        target = self._target_cell(self.active_sheet, cell_id)
        self._selection = sel.mouse_move(self._selection, target)

    def mouse_up(self) -> None:
        self._selection = sel.mouse_up(self._selection)

    def click_cell(self, cell_id: str, *, shift: bool = False) -> None:
        """Select a cell and start editing it; shift-click extends the range."""
        target = self._target_cell(self.active_sheet, cell_id)
        if self._selection.editing_cell not in (None, target):
            self.commit_edit()
        if shift:
            self._selection = sel.extend_selection(self._selection, target)
            return
        if self._selection.editing_cell == target:
            return
        raw = self.get_raw_content(self._active_sheet_id, target)
        self._selection = sel.begin_edit(self._selection, target, raw)

    def type_text(self, text: str) -> None:
        """Replace the draft; never touches the cell store or history."""
        self._selection = sel.type_text(self._selection, text)

    def commit_edit(self) -> None:
        """Write the draft into the edited cell and leave editing."""
        state = self._selection
        if state.editing_cell is None:
            return
        cell = state.editing_cell
        draft = state.draft_text
        self._selection = sel.finish_edit(state)
        if draft.strip() != self.get_raw_content(self._active_sheet_id, cell):
            self.set_cell_raw(self._active_sheet_id, cell, draft)

    def cancel_edit(self) -> None:
        self._selection = sel.finish_edit(self._selection)

    def handle_key(self, key: EditKey) -> None:
        """Apply a keyboard event to the selection/editing state machine."""
        state = self._selection
        if key == "Escape":
            self.cancel_edit()
        elif key in ("Enter", "Tab"):
            origin = state.editing_cell or state.active_cell
            self.commit_edit()
            if origin is not None:
                self._move_from(origin, (1, 0) if key == "Enter" else (0, 1))
        elif key in _ARROW_DELTAS:
            if state.is_editing or state.active_cell is None:
                return
            self._move_from(state.active_cell, _ARROW_DELTAS[key])
        elif key in ("Delete", "Backspace"):
            if state.is_editing or state.active_cell is None:
                return
            self.clear_cell(self._active_sheet_id, state.active_cell)

    # Internals ---------------------------------------------------------------

    def _copy_text(self, cell_id: str) -> str:
        # Absorbed members of a merge copy as blanks.
        if self.cell_span(self._active_sheet_id, cell_id) is None:
            return ""
        return self.get_display_value(self._active_sheet_id, cell_id)

    def _move_from(self, cell_id: str, delta: tuple[int, int]) -> None:
        sheet = self.active_sheet
        d_row, d_col = delta
        region = find_region(sheet, cell_id)
        if region is not None:
            # Step out of the whole merged block, not just one cell.
            top, left, bottom, right = region.bounds()
            row = bottom if d_row > 0 else top
            col = right if d_col > 0 else left
            cell_id = f"{column_index_to_label(col)}{row}"
        target = resolve_anchor(sheet, sel.offset_cell(cell_id, d_row, d_col))
        self._selection = sel.select_cell(sel.finish_edit(self._selection), target)

    def _target_cell(self, sheet: Sheet, cell_id: str) -> str:
        return resolve_anchor(sheet, normalize_cell_id(cell_id))

    def _write_cells(self, sheet_id: str, updates: Mapping[str, str]) -> None:
        sheet = self.get_sheet(sheet_id)
        contents: dict[str, CellContent | None] = {}
        for cell_id, text in updates.items():
            target = self._target_cell(sheet, cell_id)
            stripped = text.strip()
            existing = sheet.cells.get(target)
            if existing is not None and existing.raw == stripped:
                contents[target] = existing
            else:
                contents[target] = CellContent(raw=stripped) if stripped else None
        updated = set_contents(sheet, contents)
        if updated.cells == sheet.cells:
            return
        self._apply(self._recalculate(updated, contents.keys()))

    def _recalculate(self, sheet: Sheet, changed: Iterable[str] | None) -> Sheet:
        graph = DependencyGraph.from_cells(sheet.cells)
        targets = graph.formula_cells if changed is None else graph.affected(changed)
        if not targets:
            return sheet
        cyclic = graph.cyclic_cells()
        cached = {
            cell_id: content.cached
            for cell_id, content in sheet.cells.items()
            if content.is_formula and cell_id not in targets
        }
        evaluator = Evaluator(sheet.cells, cached=cached, graph=graph)
        results: dict[str, CellValue] = {
            cell_id: evaluator.evaluate_cell(cell_id)
            for cell_id in graph.recalculation_order(targets, exclude=cyclic)
        }
        results.update({cell_id: REF_TOKEN for cell_id in targets & cyclic})
        logger.debug(
            "Recalculated %d formula cell(s) on sheet %s (%d cyclic)",
            len(results),
            sheet.id,
            len(targets & cyclic),
        )
        return with_cached(sheet, results)

    def _apply(self, sheet: Sheet) -> None:
        self._replace_sheet(sheet)
        self._commit()

    def _replace_sheet(self, sheet: Sheet) -> None:
        self._sheets = [sheet if item.id == sheet.id else item for item in self._sheets]

    def _commit(self) -> None:
        self._history.commit(self._sheets)

    def _restore(self, sheets: list[Sheet] | None) -> bool:
        if sheets is None:
            return False
        self._sheets = sheets
        if all(sheet.id != self._active_sheet_id for sheet in sheets):
            self._active_sheet_id = sheets[0].id
            self._selection = SelectionState()
        else:
            self._selection = sel.finish_edit(self._selection)
        return True

    def _new_sheet_id(self, taken: set[str]) -> str:
        while True:
            candidate = f"sheet-{next(self._ids)}"
            if candidate not in taken:
                return candidate

    @staticmethod
    def _validate_name(name: str, taken: set[str]) -> str:
        stripped = name.strip()
        if not stripped:
            raise ValueError("Sheet name must not be empty.")
        if stripped in taken:
            raise ValueError(f"Sheet name already exists: {stripped}")
        return stripped


def _resolved(content: CellContent | None) -> CellValue:
    if content is None:
        return None
    if content.is_formula:
        return content.cached
    return literal_value(content.raw)


def _row_major(
    items: Iterable[tuple[str, CellContent]],
) -> list[tuple[str, CellContent]]:
    return sorted(items, key=lambda item: cell_coordinates(item[0]))
