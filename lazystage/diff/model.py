"""Immutable diff model: DiffSpec -> FilePair -> Hunk -> DiffLine.

Built once per view open/refresh by the parser and never mutated; every
consumer (line maps, patch builder, status tree) reads from it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from ..errors import ParseError

LineKind = Literal["context", "add", "delete"]
FileStatus = Literal["added", "deleted", "modified", "renamed", "copied", "type-changed"]

LINE_CONTEXT: LineKind = "context"
LINE_ADD: LineKind = "add"
LINE_DELETE: LineKind = "delete"

DEV_NULL = "/dev/null"
NO_NEWLINE_MARKER = "\\ No newline at end of file"

_STATUS_CODES: dict[str, str] = {
    "added": "A",
    "deleted": "D",
    "modified": "M",
    "renamed": "R",
    "copied": "C",
    "type-changed": "T",
}


@dataclass(frozen=True)
class DiffLine:
    kind: LineKind
    text: str
    old_lineno: int | None = None
    new_lineno: int | None = None
    no_newline: bool = False

    @property
    def is_change(self) -> bool:
        return self.kind != LINE_CONTEXT

    @property
    def prefix(self) -> str:
        if self.kind == LINE_ADD:
            return "+"
        if self.kind == LINE_DELETE:
            return "-"
        return " "


@dataclass(frozen=True)
class Hunk:
    old_start: int
    old_count: int
    new_start: int
    new_count: int
    lines: tuple[DiffLine, ...] = ()
    section: str = ""

    @property
    def header(self) -> str:
        return format_hunk_header(self.old_start, self.old_count, self.new_start, self.new_count, self.section)

    @property
    def additions(self) -> int:
        return sum(1 for line in self.lines if line.kind == LINE_ADD)

    @property
    def deletions(self) -> int:
        return sum(1 for line in self.lines if line.kind == LINE_DELETE)

    @property
    def has_changes(self) -> bool:
        return any(line.is_change for line in self.lines)


@dataclass(frozen=True)
class FilePair:
    """One file's worth of diff.

    ``header_lines`` holds every line of the file block before its first
    ``@@`` exactly as git printed it; partial patches reuse them verbatim.
    """

    old_path: str
    new_path: str
    status: FileStatus
    hunks: tuple[Hunk, ...] = ()
    header_lines: tuple[str, ...] = ()
    is_binary: bool = False
    old_mode: str | None = None
    new_mode: str | None = None
    similarity: int | None = None

    @property
    def path(self) -> str:
        """Display/identity path: the new path unless the file was deleted."""
        if self.status == "deleted" or self.new_path in {"", DEV_NULL}:
            return self.old_path
        return self.new_path

    @property
    def status_code(self) -> str:
        return _STATUS_CODES[self.status]

    @property
    def additions(self) -> int:
        return sum(hunk.additions for hunk in self.hunks)

    @property
    def deletions(self) -> int:
        return sum(hunk.deletions for hunk in self.hunks)

    @property
    def display_name(self) -> str:
        if self.status in {"renamed", "copied"} and self.old_path != self.new_path:
            return f"{self.old_path} -> {self.new_path}"
        return self.path


@dataclass(frozen=True)
class DiffSpec:
    """Parsed diff for one view: repo root plus ordered file pairs.

    ``errors`` lists files that were skipped because their diff text was
    malformed; the remaining files are still usable.
    """

    repo_root: Path
    files: tuple[FilePair, ...] = ()
    errors: tuple[ParseError, ...] = ()
    source: object | None = field(default=None, compare=False)

    @property
    def is_empty(self) -> bool:
        return not self.files

    def index_of(self, path: str) -> int | None:
        for index, pair in enumerate(self.files):
            if pair.path == path or pair.old_path == path:
                return index
        return None


def format_hunk_header(old_start: int, old_count: int, new_start: int, new_count: int, section: str = "") -> str:
    header = f"@@ -{old_start},{old_count} +{new_start},{new_count} @@"
    return f"{header}{section}" if section else header


__all__ = [
    "DEV_NULL",
    "DiffLine",
    "DiffSpec",
    "FilePair",
    "FileStatus",
    "Hunk",
    "LINE_ADD",
    "LINE_CONTEXT",
    "LINE_DELETE",
    "LineKind",
    "NO_NEWLINE_MARKER",
    "format_hunk_header",
]
