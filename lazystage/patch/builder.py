"""Turn a selection of diff rows into a minimal partial patch.

A partial hunk keeps every context line and every selected change. An
unselected change is rewritten to whatever the apply target already holds:
for forward application (staging) an unselected delete stays as context and
an unselected add disappears; for reverse application (unstaging,
discarding) an unselected add stays as context and an unselected delete
disappears. Line counts are recomputed from what was emitted.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Literal

from ..diff.line_map import LineMap
from ..diff.model import (
    DEV_NULL,
    LINE_ADD,
    LINE_CONTEXT,
    LINE_DELETE,
    NO_NEWLINE_MARKER,
    DiffLine,
    DiffSpec,
    FilePair,
    Hunk,
    format_hunk_header,
)
from ..diff.parser import quote_path
from ..errors import (
    SELECTION_INVALID_ROW,
    SELECTION_MULTIPLE_FILES,
    SELECTION_NOTHING_TO_STAGE,
    SELECTION_UNSUPPORTED,
    SelectionError,
)

SelectionKind = Literal["rows", "lines", "hunk", "file"]

# Header lines that only make sense for whole-file creation/deletion.
_CREATION_HEADER_PREFIXES = ("new file mode ", "deleted file mode ", "index ", "--- ", "+++ ")


@dataclass(frozen=True)
class Selection:
    """What the user picked.

    ``rows`` selections are buffer rows of a ``LineMap`` (inclusive range);
    ``lines`` selections name ``hunk.lines`` indices directly and are used by
    the status tree, which has no side-by-side map.
    """

    kind: SelectionKind
    start: int = 0
    end: int = 0
    file_index: int | None = None
    hunk_index: int | None = None
    hunk_lines: tuple[tuple[int, tuple[int, ...]], ...] = ()

    @classmethod
    def row(cls, row: int) -> Selection:
        return cls("rows", start=row, end=row)

    @classmethod
    def range(cls, first: int, last: int) -> Selection:
        return cls("rows", start=min(first, last), end=max(first, last))

    @classmethod
    def lines(cls, file_index: int, lines_by_hunk: Mapping[int, Iterable[int]]) -> Selection:
        """Explicit ``hunk.lines`` indices per hunk index."""
        hunk_lines = tuple(sorted((hunk, tuple(sorted(set(lines)))) for hunk, lines in lines_by_hunk.items()))
        return cls("lines", file_index=file_index, hunk_lines=hunk_lines)

    @classmethod
    def hunk(cls, file_index: int, hunk_index: int) -> Selection:
        return cls("hunk", file_index=file_index, hunk_index=hunk_index)

    @classmethod
    def file(cls, file_index: int) -> Selection:
        return cls("file", file_index=file_index)


@dataclass(frozen=True)
class ResolvedSelection:
    """Selected change lines of one file, grouped by originating hunk."""

    file_index: int
    lines_by_hunk: dict[int, frozenset[int]]

    @property
    def changed_lines(self) -> int:
        return sum(len(lines) for lines in self.lines_by_hunk.values())


@dataclass(frozen=True)
class PartialPatch:
    file_index: int
    path: str
    text: str
    hunk_count: int
    changed_lines: int
    reverse: bool = False


def _changed_indices(hunk: Hunk) -> frozenset[int]:
    return frozenset(index for index, line in enumerate(hunk.lines) if line.is_change)


def _resolve_rows(spec: DiffSpec, line_map: LineMap, selection: Selection) -> tuple[ResolvedSelection | None, SelectionError | None]:
    if not line_map.entries or selection.start < 0 or selection.end >= len(line_map):
        return None, SelectionError(SELECTION_INVALID_ROW)

    files: set[int] = set()
    grouped: dict[int, set[int]] = {}
    for row in range(selection.start, selection.end + 1):
        entry = line_map[row]
        if entry.is_header:
            continue
        files.add(entry.file_index)
        if entry.hunk_index is None:
            continue
        for line_index in entry.changed_line_indices():
            grouped.setdefault(entry.hunk_index, set()).add(line_index)

    if len(files) > 1:
        return None, SelectionError(SELECTION_MULTIPLE_FILES)
    if not files or not grouped:
        return None, SelectionError(SELECTION_NOTHING_TO_STAGE)
    file_index = next(iter(files))
    if not 0 <= file_index < len(spec.files):
        return None, SelectionError(SELECTION_INVALID_ROW)
    return ResolvedSelection(file_index, {hunk: frozenset(lines) for hunk, lines in grouped.items()}), None


def resolve_selection(
    spec: DiffSpec,
    line_map: LineMap | None,
    selection: Selection,
) -> tuple[ResolvedSelection | None, SelectionError | None]:
    """Map a selection to the add/delete lines it covers.

    Header, filler and context rows are dropped here; they are never staging
    targets. Context stays in the synthesized hunk regardless.
    """
    if selection.kind == "rows":
        if line_map is None:
            return None, SelectionError(SELECTION_UNSUPPORTED)
        return _resolve_rows(spec, line_map, selection)

    file_index = selection.file_index
    if file_index is None or not 0 <= file_index < len(spec.files):
        return None, SelectionError(SELECTION_INVALID_ROW)
    pair = spec.files[file_index]
    if pair.is_binary:
        return None, SelectionError(SELECTION_UNSUPPORTED, "Binary files can only be staged whole")

    grouped: dict[int, frozenset[int]] = {}
    if selection.kind == "file":
        for hunk_index, hunk in enumerate(pair.hunks):
            changed = _changed_indices(hunk)
            if changed:
                grouped[hunk_index] = changed
        if not grouped:
            # Mode changes, pure renames and hunkless pairs still change the file.
            return None, SelectionError(
                SELECTION_UNSUPPORTED,
                f"{pair.path} has no line changes; stage the whole path instead",
            )
    elif selection.kind == "lines":
        for hunk_index, line_indices in selection.hunk_lines:
            if not 0 <= hunk_index < len(pair.hunks):
                return None, SelectionError(SELECTION_INVALID_ROW)
            changed = _changed_indices(pair.hunks[hunk_index]) & frozenset(line_indices)
            if changed:
                grouped[hunk_index] = changed
    else:
        hunk_index = selection.hunk_index
        if hunk_index is None or not 0 <= hunk_index < len(pair.hunks):
            return None, SelectionError(SELECTION_INVALID_ROW)
        changed = _changed_indices(pair.hunks[hunk_index])
        if changed:
            grouped[hunk_index] = changed

    if not grouped:
        return None, SelectionError(SELECTION_NOTHING_TO_STAGE)
    return ResolvedSelection(file_index, grouped), None


def _other_start(start: int, count_src: int, count_dst: int, delta: int) -> int:
    # A zero count means the start names the line before the (empty) range.
    first = start if count_src > 0 else start + 1
    target = first + delta
    return target if count_dst > 0 else target - 1


def _terminate_last_line(emitted: list[tuple[str, DiffLine]], *, reverse: bool) -> list[tuple[str, DiffLine, bool]]:
    """Expand ``(prefix, line)`` pairs into ``(prefix, line, marker)`` triples.

    An unselected change kept as context may be the target's final line with
    no trailing newline. If anything is emitted after it, that line has to gain
    a newline first, so it becomes a delete/add pair of the same text whose
    marker sits on the side that lacks the newline.
    """
    out: list[tuple[str, DiffLine, bool]] = []
    last = len(emitted) - 1
    for position, (prefix, line) in enumerate(emitted):
        if prefix == " " and line.is_change and line.no_newline and position < last:
            if reverse:
                out.append(("-", line, False))
                out.append(("+", line, True))
            else:
                out.append(("-", line, True))
                out.append(("+", line, False))
            continue
        out.append((prefix, line, line.no_newline))
    return out


def _partial_hunk(hunk: Hunk, selected: frozenset[int], *, reverse: bool) -> tuple[list[str], int, int, int]:
    """Emit one partial hunk body; returns ``(body, old_count, new_count, changes)``."""
    emitted: list[tuple[str, DiffLine]] = []
    changes = 0
    for index, line in enumerate(hunk.lines):
        if line.kind == LINE_CONTEXT:
            prefix = " "
        elif index in selected:
            prefix = line.prefix
            changes += 1
        elif (line.kind == LINE_DELETE and not reverse) or (line.kind == LINE_ADD and reverse):
            prefix = " "
        else:
            continue
        emitted.append((prefix, line))

    body: list[str] = []
    old_count = new_count = 0
    for prefix, line, marker in _terminate_last_line(emitted, reverse=reverse):
        body.append(prefix + line.text)
        if prefix in (" ", "-"):
            old_count += 1
        if prefix in (" ", "+"):
            new_count += 1
        if marker:
            body.append(NO_NEWLINE_MARKER)
    return body, old_count, new_count, changes


def _downgraded_header(pair: FilePair) -> list[str]:
    """Header for a partial creation/deletion: a plain modification of the path."""
    path = pair.old_path if pair.new_path == DEV_NULL else pair.new_path
    header = [line for line in pair.header_lines if not line.startswith(_CREATION_HEADER_PREFIXES)]
    header.append(f"--- {quote_path(f'a/{path}')}")
    header.append(f"+++ {quote_path(f'b/{path}')}")
    return header


def build_patch(
    spec: DiffSpec,
    line_map: LineMap | None,
    selection: Selection,
    *,
    reverse: bool = False,
) -> tuple[PartialPatch | None, SelectionError | None]:
    """Build the patch for ``selection``.

    ``reverse`` selects which image the patch must match: ``False`` for
    ``apply`` forward (staging), ``True`` for ``apply --reverse``
    (unstaging, discarding). The patch text itself is always written in the
    diff's own orientation.
    """
    resolved, error = resolve_selection(spec, line_map, selection)
    if error is not None:
        return None, error
    assert resolved is not None

    pair = spec.files[resolved.file_index]
    hunk_texts: list[str] = []
    hunk_count = 0
    delta = 0
    changed_lines = 0
    any_old = any_new = False
    for hunk_index in sorted(resolved.lines_by_hunk):
        hunk = pair.hunks[hunk_index]
        body, old_count, new_count, changes = _partial_hunk(hunk, resolved.lines_by_hunk[hunk_index], reverse=reverse)
        if changes == 0:
            continue
        if reverse:
            new_start = hunk.new_start
            old_start = _other_start(hunk.new_start, new_count, old_count, -delta)
        else:
            old_start = hunk.old_start
            new_start = _other_start(hunk.old_start, old_count, new_count, delta)
        delta += new_count - old_count
        changed_lines += changes
        any_old = any_old or old_count > 0
        any_new = any_new or new_count > 0
        hunk_texts.append(format_hunk_header(old_start, old_count, new_start, new_count, hunk.section))
        hunk_texts.extend(body)
        hunk_count += 1

    if not hunk_texts:
        return None, SelectionError(SELECTION_NOTHING_TO_STAGE)

    if (pair.status == "deleted" and any_new) or (pair.status == "added" and any_old):
        header = _downgraded_header(pair)
    else:
        header = list(pair.header_lines)

    text = "\n".join([*header, *hunk_texts]) + "\n"
    patch = PartialPatch(
        file_index=resolved.file_index,
        path=pair.path,
        text=text,
        hunk_count=hunk_count,
        changed_lines=changed_lines,
        reverse=reverse,
    )
    return patch, None


__all__ = [
    "PartialPatch",
    "ResolvedSelection",
    "Selection",
    "build_patch",
    "resolve_selection",
]
