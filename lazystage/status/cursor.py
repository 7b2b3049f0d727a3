"""Cursor anchoring across status refreshes.

Before a refresh the cursor row is captured as an identity-based anchor;
afterwards the anchor is resolved against the new rows with a fixed
fallback cascade.
"""

from __future__ import annotations

from dataclasses import dataclass

from .tree import StatusRow, StatusTree


@dataclass(frozen=True)
class CursorAnchor:
    kind: str
    section: str | None = None
    path: str | None = None
    hunk_index: int | None = None
    line_index: int | None = None
    commit: str | None = None
    row: int = 0
    preceding: tuple[str, ...] = ()

    @property
    def key(self) -> tuple:
        return (self.kind, self.section, self.path, self.hunk_index, self.line_index, self.commit)


def capture_anchor(tree: StatusTree | None, row: int) -> CursorAnchor | None:
    """Describe the row under the cursor by identity, not position.

    ``preceding`` lists entry paths (nearest first) that sat above the
    cursor in the same section.
    """
    if tree is None or not tree.rows:
        return None
    row = max(0, min(row, len(tree.rows) - 1))
    current = tree.rows[row]

    preceding: list[str] = []
    seen: set[str] = set()
    for index in range(row - 1, -1, -1):
        candidate = tree.rows[index]
        if candidate.section != current.section:
            break
        if candidate.kind == "entry" and candidate.path is not None and candidate.path not in seen:
            seen.add(candidate.path)
            preceding.append(candidate.path)

    return CursorAnchor(
        kind=current.kind,
        section=current.section,
        path=current.path,
        hunk_index=current.hunk_index,
        line_index=current.line_index,
        commit=current.commit,
        row=row,
        preceding=tuple(preceding),
    )


def _entry_row(rows: tuple[StatusRow, ...], section: str | None, path: str | None) -> int | None:
    for index, row in enumerate(rows):
        if row.kind == "entry" and row.section == section and row.path == path:
            return index
    return None


def _clamped_line_row(rows: tuple[StatusRow, ...], anchor: CursorAnchor) -> int | None:
    """Row of the same hunk with the line offset clamped to what exists."""
    best: int | None = None
    best_line = -1
    header: int | None = None
    for index, row in enumerate(rows):
        if row.section != anchor.section or row.path != anchor.path or row.hunk_index != anchor.hunk_index:
            continue
        if row.kind == "hunk":
            header = index
        elif row.kind == "line" and row.line_index is not None:
            assert anchor.line_index is not None
            if best_line < row.line_index <= anchor.line_index:
                best, best_line = index, row.line_index
    return best if best is not None else header


def restore_cursor(tree: StatusTree, anchor: CursorAnchor | None) -> int:
    """Resolve ``anchor`` to a row of ``tree``.

    Cascade: the same row identity (line offsets clamped within the hunk);
    the entry row for a hunk or line anchor; the nearest preceding entry of
    the same section still present; the section header; row 0.
    """
    rows = tree.rows
    if anchor is None or not rows:
        return 0

    exact = tree.find_row(anchor.key)
    if exact is not None:
        return exact

    if anchor.kind in ("hunk", "line"):
        if anchor.kind == "line":
            clamped = _clamped_line_row(rows, anchor)
            if clamped is not None:
                return clamped
        entry = _entry_row(rows, anchor.section, anchor.path)
        if entry is not None:
            return entry

    for path in anchor.preceding:
        entry = _entry_row(rows, anchor.section, path)
        if entry is not None:
            return entry

    if anchor.section is not None:
        header = tree.find_row(("section", anchor.section, None, None, None, None))
        if header is not None:
            return header
    return 0


__all__ = ["CursorAnchor", "capture_anchor", "restore_cursor"]
