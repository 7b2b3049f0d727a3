"""Three-column alignment of two diffs that share an anchor side.

Staged (HEAD -> INDEX) and unstaged (INDEX -> WORKTREE) diffs share INDEX;
merge views pair OURS -> BASE with BASE -> THEIRS and share BASE. Both diffs
are requested with unlimited context, so each one lists every anchor line and
the columns can be joined on anchor line numbers.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from pathlib import Path

from .line_map import (
    ROW_CONTEXT,
    ROW_FILLER,
    ROW_HEADER,
    LineMapEntry,
    RowType,
    build_line_map,
    next_boundary,
    prev_boundary,
)
from .model import DiffSpec, FilePair


@dataclass(frozen=True)
class ThreeWayFile:
    """One path with its first (left->anchor) and second (anchor->right) diff."""

    path: str
    first: FilePair | None = None
    second: FilePair | None = None

    @property
    def additions(self) -> int:
        return sum(pair.additions for pair in (self.first, self.second) if pair is not None)

    @property
    def deletions(self) -> int:
        return sum(pair.deletions for pair in (self.first, self.second) if pair is not None)


@dataclass(frozen=True)
class ThreeWayEntry:
    buffer_row: int
    file_index: int
    left_type: RowType
    mid_type: RowType
    right_type: RowType
    is_hunk_boundary: bool = False
    left_lineno: int | None = None
    mid_lineno: int | None = None
    right_lineno: int | None = None
    left_text: str = ""
    mid_text: str = ""
    right_text: str = ""

    @property
    def is_header(self) -> bool:
        return self.mid_type == ROW_HEADER

    @property
    def is_change(self) -> bool:
        return any(kind not in (ROW_CONTEXT, ROW_HEADER) for kind in (self.left_type, self.mid_type, self.right_type))


@dataclass(frozen=True)
class ThreeWayMap:
    entries: tuple[ThreeWayEntry, ...] = ()
    boundary_rows: tuple[int, ...] = ()

    def __len__(self) -> int:
        return len(self.entries)

    def __getitem__(self, row: int) -> ThreeWayEntry:
        return self.entries[row]

    def next_hunk_row(self, row: int) -> int | None:
        return next_boundary(self.boundary_rows, row)

    def prev_hunk_row(self, row: int) -> int | None:
        return prev_boundary(self.boundary_rows, row)

    def column(self, side: str) -> list[str]:
        return [getattr(entry, f"{side}_text") for entry in self.entries]


def merge_file_lists(first_pairs: Sequence[FilePair], second_pairs: Sequence[FilePair]) -> list[ThreeWayFile]:
    """Join two file lists by path, first-list order then second-only paths."""
    second_by_path = {pair.path: pair for pair in second_pairs}
    files: list[ThreeWayFile] = []
    seen: set[str] = set()
    for pair in first_pairs:
        if pair.path in seen:
            continue
        seen.add(pair.path)
        files.append(ThreeWayFile(pair.path, first=pair, second=second_by_path.get(pair.path)))
    for pair in second_pairs:
        if pair.path in seen:
            continue
        seen.add(pair.path)
        files.append(ThreeWayFile(pair.path, second=pair))
    return files


def _content_rows(pair: FilePair | None) -> list[LineMapEntry]:
    if pair is None:
        return []
    spec = DiffSpec(repo_root=Path("."), files=(pair,))
    return [entry for entry in build_line_map(spec, with_headers=False).entries if not entry.is_header]


def _aligned_cells(first: FilePair | None, second: FilePair | None) -> list[tuple]:
    """Walk both row lists joined on the anchor line number.

    Each produced cell tuple is ``(type, lineno, text)`` for left, mid, right.
    A side missing its diff mirrors the anchor as unchanged context.
    """
    first_rows = _content_rows(first)
    second_rows = _content_rows(second)
    cells: list[tuple] = []
    filler = (ROW_FILLER, None, "")
    fi = si = 0
    while fi < len(first_rows) or si < len(second_rows):
        a = first_rows[fi] if fi < len(first_rows) else None
        b = second_rows[si] if si < len(second_rows) else None

        if a is not None and a.right_type == ROW_FILLER:
            cells.append(((a.left_type, a.left_lineno, a.left_text), filler, filler))
            fi += 1
            continue
        if b is not None and b.left_type == ROW_FILLER:
            cells.append((filler, filler, (b.right_type, b.right_lineno, b.right_text)))
            si += 1
            continue

        if a is not None and b is not None and a.right_lineno == b.left_lineno:
            cells.append(
                (
                    (a.left_type, a.left_lineno, a.left_text),
                    (a.right_type, a.right_lineno, a.right_text),
                    (b.right_type, b.right_lineno, b.right_text),
                )
            )
            fi += 1
            si += 1
        elif a is not None and (b is None or (a.right_lineno or 0) < (b.left_lineno or 0)):
            cells.append(
                (
                    (a.left_type, a.left_lineno, a.left_text),
                    (a.right_type, a.right_lineno, a.right_text),
                    (ROW_CONTEXT, a.right_lineno, a.right_text),
                )
            )
            fi += 1
        else:
            assert b is not None
            cells.append(
                (
                    (ROW_CONTEXT, b.left_lineno, b.left_text),
                    (b.left_type, b.left_lineno, b.left_text),
                    (b.right_type, b.right_lineno, b.right_text),
                )
            )
            si += 1
    return cells


def build_three_way_map(files: Sequence[ThreeWayFile], file_indices: Iterable[int] | None = None) -> ThreeWayMap:
    """Align the chosen files into one three-column row list.

    With more than one file, each file starts with a header row. A row is a
    hunk boundary when it is the first changed row after unchanged rows.
    """
    indices = tuple(range(len(files))) if file_indices is None else tuple(file_indices)
    with_headers = len(indices) > 1
    entries: list[ThreeWayEntry] = []
    for file_index in indices:
        item = files[file_index]
        if with_headers:
            entries.append(
                ThreeWayEntry(
                    buffer_row=len(entries),
                    file_index=file_index,
                    left_type=ROW_HEADER,
                    mid_type=ROW_HEADER,
                    right_type=ROW_HEADER,
                    left_text=item.path,
                    mid_text=item.path,
                    right_text=item.path,
                )
            )
        in_change_run = False
        for left, mid, right in _aligned_cells(item.first, item.second):
            changed = any(cell[0] != ROW_CONTEXT for cell in (left, mid, right))
            entries.append(
                ThreeWayEntry(
                    buffer_row=len(entries),
                    file_index=file_index,
                    left_type=left[0],
                    mid_type=mid[0],
                    right_type=right[0],
                    is_hunk_boundary=changed and not in_change_run,
                    left_lineno=left[1],
                    mid_lineno=mid[1],
                    right_lineno=right[1],
                    left_text=left[2],
                    mid_text=mid[2],
                    right_text=right[2],
                )
            )
            in_change_run = changed

    boundaries = tuple(entry.buffer_row for entry in entries if entry.is_hunk_boundary)
    return ThreeWayMap(entries=tuple(entries), boundary_rows=boundaries)


__all__ = [
    "ThreeWayEntry",
    "ThreeWayFile",
    "ThreeWayMap",
    "build_three_way_map",
    "merge_file_lists",
]
