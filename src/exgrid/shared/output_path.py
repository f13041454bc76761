"""Conflict handling for files the workbook is exported to."""

from __future__ import annotations

from pathlib import Path
from typing import Literal, NamedTuple

OnConflictPolicy = Literal["overwrite", "skip", "rename"]

_MAX_RENAME_ATTEMPTS = 10_000


class ConflictOutcome(NamedTuple):
    """Where an export should be written, and what to report about it."""

    path: Path
    warning: str | None
    skipped: bool


def apply_conflict_policy(
    output_path: Path, on_conflict: OnConflictPolicy
) -> ConflictOutcome:
    """Decide the export target when `output_path` may already exist.

    Args:
        output_path: Resolved target path.
        on_conflict: ``overwrite`` keeps the path, ``skip`` reports the
            existing file without writing, ``rename`` picks the first free
            ``<stem>_<n><suffix>`` sibling.

    Returns:
        The target path, an optional warning and whether the write is skipped.
    """
    if on_conflict == "overwrite" or not output_path.exists():
        return ConflictOutcome(output_path, None, False)
    if on_conflict == "skip":
        return ConflictOutcome(
            output_path, f"{output_path.name} already exists; export skipped.", True
        )
    renamed = next_available_path(output_path)
    return ConflictOutcome(
        renamed,
        f"{output_path.name} already exists; exported as {renamed.name}.",
        False,
    )


def next_available_path(path: Path) -> Path:
    """Return `path` itself when free, else its first unused numbered sibling.

    Raises:
        RuntimeError: If every numbered sibling is taken.
    """
    if not path.exists():
        return path
    for index in range(1, _MAX_RENAME_ATTEMPTS):
        candidate = path.with_name(f"{path.stem}_{index}{path.suffix}")
        if not candidate.exists():
            return candidate
    raise RuntimeError(f"No free file name next to {path}")
