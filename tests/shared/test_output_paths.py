from __future__ import annotations

from pathlib import Path

from exgrid.shared.output_path import (
    ConflictOutcome,
    apply_conflict_policy,
    next_available_path,
)


def test_apply_conflict_policy_rename(tmp_path: Path) -> None:
    target = tmp_path / "book.xlsx"
    target.write_text("x", encoding="utf-8")
    (tmp_path / "book_1.xlsx").write_text("x", encoding="utf-8")
    resolved, warning, skipped = apply_conflict_policy(target, "rename")
    assert resolved.name == "book_2.xlsx"
    assert warning == "book.xlsx already exists; exported as book_2.xlsx."
    assert skipped is False


def test_apply_conflict_policy_skip(tmp_path: Path) -> None:
    target = tmp_path / "book.xlsx"
    target.write_text("x", encoding="utf-8")
    outcome = apply_conflict_policy(target, "skip")
    assert outcome.path == target
    assert outcome.warning == "book.xlsx already exists; export skipped."
    assert outcome.skipped is True


def test_apply_conflict_policy_overwrite_keeps_path(tmp_path: Path) -> None:
    target = tmp_path / "book.xlsx"
    target.write_text("x", encoding="utf-8")
    assert apply_conflict_policy(target, "overwrite") == ConflictOutcome(
        target, None, False
    )


def test_apply_conflict_policy_no_conflict(tmp_path: Path) -> None:
    target = tmp_path / "book.xlsx"
    assert apply_conflict_policy(target, "skip") == (target, None, False)


def test_next_available_path_no_conflict(tmp_path: Path) -> None:
    target = tmp_path / "book.xlsx"
    assert next_available_path(target) == target
