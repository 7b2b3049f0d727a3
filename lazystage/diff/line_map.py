"""Side-by-side row model for a DiffSpec.

Every buffer row gets exactly one ``LineMapEntry``; lines present on only one
side get a filler cell opposite so both columns stay aligned line-for-line.
The map is a row-indexed tuple, so any buffer row resolves back to its file,
hunk and diff line in O(1).
"""

from __future__ import annotations

from bisect import bisect_left, bisect_right
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Literal

from .model import LINE_ADD, LINE_CONTEXT, LINE_DELETE, DiffSpec, FilePair, Hunk

RowType = Literal["context", "add", "delete", "filler", "header"]

ROW_CONTEXT: RowType = "context"
ROW_ADD: RowType = "add"
ROW_DELETE: RowType = "delete"
ROW_FILLER: RowType = "filler"
ROW_HEADER: RowType = "header"


def next_boundary(boundary_rows: tuple[int, ...], row: int) -> int | None:
    """First boundary strictly after ``row``; ``None`` at the last hunk (no wrap)."""
    position = bisect_right(boundary_rows, row)
    if position >= len(boundary_rows):
        return None
    return boundary_rows[position]


def prev_boundary(boundary_rows: tuple[int, ...], row: int) -> int | None:
    """Last boundary strictly before ``row``; ``None`` at the first hunk (no wrap)."""
    position = bisect_left(boundary_rows, row)
    if position <= 0:
        return None
    return boundary_rows[position - 1]


@dataclass(frozen=True)
class LineMapEntry:
    """One rendered row.

    ``left_line``/``right_line`` index into ``hunk.lines`` for the cell on
    that side (``None`` for filler and header cells). A paired change row
    carries a delete on the left and an add on the right.
    """

    buffer_row: int
    file_index: int
    hunk_index: int | None
    left_type: RowType
    right_type: RowType
    is_hunk_boundary: bool = False
    left_lineno: int | None = None
    right_lineno: int | None = None
    left_line: int | None = None
    right_line: int | None = None
    left_text: str = ""
    right_text: str = ""

    @property
    def is_header(self) -> bool:
        return self.left_type == ROW_HEADER

    @property
    def has_filler(self) -> bool:
        return ROW_FILLER in (self.left_type, self.right_type)

    @property
    def is_change(self) -> bool:
        return self.left_type in (ROW_ADD, ROW_DELETE) or self.right_type in (ROW_ADD, ROW_DELETE)

    def changed_line_indices(self) -> tuple[int, ...]:
        """Indices into ``hunk.lines`` of the add/delete cells on this row."""
        found: list[int] = []
        if self.left_type in (ROW_ADD, ROW_DELETE) and self.left_line is not None:
            found.append(self.left_line)
        if self.right_type in (ROW_ADD, ROW_DELETE) and self.right_line is not None and self.right_line not in found:
            found.append(self.right_line)
        return tuple(found)


@dataclass(frozen=True)
class LineMap:
    entries: tuple[LineMapEntry, ...] = ()
    file_indices: tuple[int, ...] = ()
    boundary_rows: tuple[int, ...] = ()

    def __len__(self) -> int:
        return len(self.entries)

    def __getitem__(self, row: int) -> LineMapEntry:
        return self.entries[row]

    def entry(self, row: int) -> LineMapEntry | None:
        if 0 <= row < len(self.entries):
            return self.entries[row]
        return None

    @property
    def left_lines(self) -> list[str]:
        return [entry.left_text for entry in self.entries]

    @property
    def right_lines(self) -> list[str]:
        return [entry.right_text for entry in self.entries]

    def next_hunk_row(self, row: int) -> int | None:
        return next_boundary(self.boundary_rows, row)

    def prev_hunk_row(self, row: int) -> int | None:
        return prev_boundary(self.boundary_rows, row)

    def first_row_of_file(self, file_index: int) -> int | None:
        for entry in self.entries:
            if entry.file_index == file_index:
                return entry.buffer_row
        return None

    def change_run(self, row: int) -> tuple[int, int] | None:
        """Inclusive row span of the contiguous change block containing ``row``."""
        entry = self.entry(row)
        if entry is None or not entry.is_change:
            return None
        start = end = row
        while start > 0 and self.entries[start - 1].is_change and not self.entries[start].is_hunk_boundary:
            start -= 1
        while (
            end + 1 < len(self.entries)
            and self.entries[end + 1].is_change
            and not self.entries[end + 1].is_hunk_boundary
        ):
            end += 1
        return start, end

    def rows_for_hunk(self, file_index: int, hunk_index: int) -> list[int]:
        return [
            entry.buffer_row
            for entry in self.entries
            if entry.file_index == file_index and entry.hunk_index == hunk_index and not entry.is_header
        ]


def _emit_hunk_rows(
    rows: list[LineMapEntry],
    file_index: int,
    hunk_index: int,
    hunk: Hunk,
) -> None:
    lines = hunk.lines
    in_change_run = False
    index = 0
    while index < len(lines):
        line = lines[index]
        if line.kind == LINE_CONTEXT:
            rows.append(
                LineMapEntry(
                    buffer_row=len(rows),
                    file_index=file_index,
                    hunk_index=hunk_index,
                    left_type=ROW_CONTEXT,
                    right_type=ROW_CONTEXT,
                    left_lineno=line.old_lineno,
                    right_lineno=line.new_lineno,
                    left_line=index,
                    right_line=index,
                    left_text=line.text,
                    right_text=line.text,
                )
            )
            in_change_run = False
            index += 1
            continue

        deletes: list[int] = []
        while index < len(lines) and lines[index].kind == LINE_DELETE:
            deletes.append(index)
            index += 1
        adds: list[int] = []
        while index < len(lines) and lines[index].kind == LINE_ADD:
            adds.append(index)
            index += 1

        for offset in range(max(len(deletes), len(adds))):
            left_index = deletes[offset] if offset < len(deletes) else None
            right_index = adds[offset] if offset < len(adds) else None
            left = lines[left_index] if left_index is not None else None
            right = lines[right_index] if right_index is not None else None
            rows.append(
                LineMapEntry(
                    buffer_row=len(rows),
                    file_index=file_index,
                    hunk_index=hunk_index,
                    left_type=ROW_DELETE if left is not None else ROW_FILLER,
                    right_type=ROW_ADD if right is not None else ROW_FILLER,
                    is_hunk_boundary=offset == 0 and not in_change_run,
                    left_lineno=left.old_lineno if left is not None else None,
                    right_lineno=right.new_lineno if right is not None else None,
                    left_line=left_index,
                    right_line=right_index,
                    left_text=left.text if left is not None else "",
                    right_text=right.text if right is not None else "",
                )
            )
        in_change_run = True


def _header_row(rows: list[LineMapEntry], file_index: int, text: str) -> None:
    rows.append(
        LineMapEntry(
            buffer_row=len(rows),
            file_index=file_index,
            hunk_index=None,
            left_type=ROW_HEADER,
            right_type=ROW_HEADER,
            left_text=text,
            right_text=text,
        )
    )


def file_header_text(pair: FilePair) -> str:
    label = f"{pair.status_code} {pair.display_name}"
    if pair.is_binary:
        return f"{label} (binary)"
    return label


def build_line_map(
    spec: DiffSpec,
    file_indices: Iterable[int] | None = None,
    *,
    with_headers: bool | None = None,
) -> LineMap:
    """Expand files of ``spec`` into aligned rows.

    When more than one file is included (or ``with_headers`` is set) each
    file starts with a header row; hunks after a file's first are preceded by
    a separator header row. Header rows are never hunk boundaries.
    """
    indices = tuple(range(len(spec.files))) if file_indices is None else tuple(file_indices)
    if with_headers is None:
        with_headers = len(indices) > 1

    rows: list[LineMapEntry] = []
    for file_index in indices:
        pair = spec.files[file_index]
        if with_headers:
            _header_row(rows, file_index, file_header_text(pair))
        for hunk_index, hunk in enumerate(pair.hunks):
            if hunk_index > 0:
                _header_row(rows, file_index, hunk.header)
            _emit_hunk_rows(rows, file_index, hunk_index, hunk)

    boundaries = tuple(entry.buffer_row for entry in rows if entry.is_hunk_boundary)
    return LineMap(entries=tuple(rows), file_indices=indices, boundary_rows=boundaries)


__all__ = [
    "LineMap",
    "LineMapEntry",
    "ROW_ADD",
    "ROW_CONTEXT",
    "ROW_DELETE",
    "ROW_FILLER",
    "ROW_HEADER",
    "RowType",
    "build_line_map",
    "file_header_text",
    "next_boundary",
    "prev_boundary",
]
