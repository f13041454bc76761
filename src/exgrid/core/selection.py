"""Selection and editing state transitions.

Pure functions from one `SelectionState` to the next. They never touch the
cell store: committing a draft is the workbook's job, which then calls
`finish_edit` to leave the Editing state.
"""

from __future__ import annotations

from exgrid.shared.a1 import (
    MAX_COLUMNS,
    MAX_ROWS,
    cell_coordinates,
    column_index_to_label,
)

from .models import CellRange, SelectionState


def select_cell(state: SelectionState, cell_id: str) -> SelectionState:
    """Make `cell_id` the active cell with a single-cell range."""
    return state.model_copy(
        update={
            "active_cell": cell_id,
            "range": CellRange(start=cell_id, end=cell_id),
            "selecting": False,
            "drag_origin": None,
        }
    )


def mouse_down(state: SelectionState, cell_id: str) -> SelectionState:
    """Idle -> Selecting: anchor a drag at `cell_id`."""
    return state.model_copy(
        update={
            "active_cell": cell_id,
            "range": CellRange(start=cell_id, end=cell_id),
            "selecting": True,
            "drag_origin": cell_id,
        }
    )


def mouse_move(state: SelectionState, cell_id: str) -> SelectionState:
    """Extend the dragged range; ignored outside the Selecting state."""
    if not state.selecting or state.drag_origin is None:
        return state
    return state.model_copy(
        update={"range": CellRange(start=state.drag_origin, end=cell_id)}
    )


def mouse_up(state: SelectionState) -> SelectionState:
    """Selecting -> Idle, keeping the dragged range."""
    return state.model_copy(update={"selecting": False, "drag_origin": None})


def extend_selection(state: SelectionState, cell_id: str) -> SelectionState:
    """Shift-click: range from the active cell to `cell_id`."""
    if state.active_cell is None:
        return select_cell(state, cell_id)
    return state.model_copy(
        update={"range": CellRange(start=state.active_cell, end=cell_id)}
    )


def begin_edit(state: SelectionState, cell_id: str, text: str) -> SelectionState:
    """Idle -> Editing with `text` as the initial draft."""
    return select_cell(state, cell_id).model_copy(
        update={"editing_cell": cell_id, "draft_text": text}
    )


def type_text(state: SelectionState, text: str) -> SelectionState:
    """Replace the draft; typing while idle starts an edit of the active cell."""
    if state.editing_cell is not None:
        return state.model_copy(update={"draft_text": text})
    if state.active_cell is None:
        return state
    return begin_edit(state, state.active_cell, text)


def finish_edit(state: SelectionState) -> SelectionState:
    """Editing -> Idle; the draft is dropped (commit happens elsewhere)."""
    return state.model_copy(update={"editing_cell": None, "draft_text": ""})


def offset_cell(cell_id: str, d_row: int, d_col: int) -> str:
    """Move a cell id by a row/column delta, clamped to the grid."""
    row, col = cell_coordinates(cell_id)
    row = min(max(1, row + d_row), MAX_ROWS)
    col = min(max(1, col + d_col), MAX_COLUMNS)
    return f"{column_index_to_label(col)}{row}"


__all__ = [
    "begin_edit",
    "extend_selection",
    "finish_edit",
    "mouse_down",
    "mouse_move",
    "mouse_up",
    "offset_cell",
    "select_cell",
    "type_text",
]
