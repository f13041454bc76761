from __future__ import annotations

import pytest

from exgrid.core.cells import set_content
from exgrid.core.history import HistoryManager
from exgrid.core.models import CellContent, Sheet


def _state(value: str) -> list[Sheet]:
    sheet = Sheet(id="sheet-1", name="Sheet1")
    return [set_content(sheet, "A1", CellContent(raw=value))]


def _value(sheets: list[Sheet] | None) -> str:
    assert sheets is not None
    return sheets[0].cells["A1"].raw


def test_rejects_invalid_capacity() -> None:
    with pytest.raises(ValueError, match="capacity"):
        HistoryManager(capacity=0)


def test_undo_redo_walks_entries() -> None:
    history = HistoryManager(initial=_state("0"))
    history.commit(_state("1"))
    history.commit(_state("2"))
    assert _value(history.undo()) == "1"
    assert _value(history.undo()) == "0"
    assert history.undo() is None
    assert _value(history.redo()) == "1"
    assert _value(history.redo()) == "2"
    assert history.redo() is None


def test_commit_after_undo_truncates_redo_tail() -> None:
    history = HistoryManager(initial=_state("0"))
    history.commit(_state("1"))
    history.commit(_state("2"))
    history.undo()
    history.commit(_state("3"))
    assert not history.can_redo()
    assert len(history) == 3
    assert _value(history.undo()) == "1"


def test_capacity_drops_oldest_entries() -> None:
    history = HistoryManager(capacity=3, initial=_state("0"))
    for value in ("1", "2", "3", "4"):
        history.commit(_state(value))
    assert len(history) == 3
    assert history.cursor == 2
    assert _value(history.undo()) == "3"
    assert _value(history.undo()) == "2"
    assert not history.can_undo()


def test_snapshots_are_independent_copies() -> None:
    state = _state("0")
    history = HistoryManager(initial=state)
    history.commit(_state("1"))
    restored = history.undo()
    assert restored == state
    assert restored is not None and restored[0] is not state[0]
