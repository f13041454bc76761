from __future__ import annotations

from collections.abc import Callable

import pytest

from exgrid.core.workbook import Workbook
from exgrid.formula import functions

# 2024-01-02 12:00:00 UTC
FROZEN_EPOCH_SECONDS = 1_704_196_800.0


@pytest.fixture
def workbook() -> Workbook:
    """Return a fresh single-sheet workbook."""
    return Workbook()


@pytest.fixture
def sheet_id(workbook: Workbook) -> str:
    """Return the id of the workbook's active sheet."""
    return workbook.active_sheet_id


@pytest.fixture
def set_clock(monkeypatch: pytest.MonkeyPatch) -> Callable[[float], None]:
    """Pin the clock read by TODAY() and NOW() to a Unix timestamp."""

    def _set(seconds: float) -> None:
        monkeypatch.setattr(functions, "_clock", lambda: seconds)

    _set(FROZEN_EPOCH_SECONDS)
    return _set
