from __future__ import annotations

import logging

from .models import Sheet
from .types import DEFAULT_HISTORY_CAPACITY

logger = logging.getLogger(__name__)


class HistoryManager:
    """Bounded undo/redo stack of whole-workbook snapshots.

    Each entry is a deep copy of every sheet. The cursor points at the entry
    matching the current state; committing after an undo discards the redo
    tail, and the oldest entries are dropped once `capacity` is exceeded.
    """

    def __init__(
        self,
        capacity: int = DEFAULT_HISTORY_CAPACITY,
        initial: list[Sheet] | None = None,
    ) -> None:
        if capacity < 1:
            raise ValueError(f"History capacity must be >= 1, got {capacity}")
        self._capacity = capacity
        self._entries: list[list[Sheet]] = []
        self._cursor = -1
        if initial is not None:
            self.reset(initial)

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def cursor(self) -> int:
        return self._cursor

    def __len__(self) -> int:
        return len(self._entries)

    def reset(self, sheets: list[Sheet]) -> None:
        """Forget all entries and start over from `sheets`."""
        self._entries = [_snapshot(sheets)]
        self._cursor = 0

    def commit(self, sheets: list[Sheet]) -> None:
        del self._entries[self._cursor + 1 :]
        self._entries.append(_snapshot(sheets))
        overflow = len(self._entries) - self._capacity
        if overflow > 0:
            del self._entries[:overflow]
        self._cursor = len(self._entries) - 1
        logger.debug(
            "History commit: %d entries, cursor at %d", len(self._entries), self._cursor
        )

    def can_undo(self) -> bool:
        return self._cursor > 0

    def can_redo(self) -> bool:
        return self._cursor < len(self._entries) - 1

    def undo(self) -> list[Sheet] | None:
        """Step back one entry; None when already at the oldest."""
        if not self.can_undo():
            return None
        self._cursor -= 1
        return _snapshot(self._entries[self._cursor])

    def redo(self) -> list[Sheet] | None:
        """Step forward one entry; None when there is nothing to redo."""
        if not self.can_redo():
            return None
        self._cursor += 1
        return _snapshot(self._entries[self._cursor])


def _snapshot(sheets: list[Sheet]) -> list[Sheet]:
    return [sheet.model_copy(deep=True) for sheet in sheets]
