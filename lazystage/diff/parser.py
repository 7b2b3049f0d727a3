"""Unified-diff parser.

Splits git diff output into per-file blocks, parses header metadata before
the first ``@@`` and consumes each hunk body by its declared line counts, so
``---``/``+++`` text inside a hunk is always treated as content. A malformed
file block is reported as ``ParseError`` and skipped; other files still parse.
"""

from __future__ import annotations

from dataclasses import replace
import logging
from pathlib import Path
import re

from ..errors import ParseError
from .model import (
    DEV_NULL,
    LINE_ADD,
    LINE_CONTEXT,
    LINE_DELETE,
    DiffLine,
    DiffSpec,
    FilePair,
    FileStatus,
    Hunk,
)

logger = logging.getLogger(__name__)

HUNK_HEADER_RE = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@(.*)$")
_BLOCK_PREFIXES = ("diff --git ", "diff --cc ", "diff --combined ")
_QUOTE_ESCAPES = {"a": 7, "b": 8, "t": 9, "n": 10, "v": 11, "f": 12, "r": 13, '"': 34, "\\": 92}
_FILE_TYPE_MASK = 0o170000


def unquote_path(raw: str) -> str:
    """Decode a git C-style quoted path; unquoted input is returned unchanged."""
    if len(raw) < 2 or not (raw.startswith('"') and raw.endswith('"')):
        return raw
    body = raw[1:-1]
    out = bytearray()
    index = 0
    while index < len(body):
        ch = body[index]
        if ch != "\\" or index + 1 >= len(body):
            out.extend(ch.encode("utf-8", errors="surrogateescape"))
            index += 1
            continue
        nxt = body[index + 1]
        if nxt in _QUOTE_ESCAPES:
            out.append(_QUOTE_ESCAPES[nxt])
            index += 2
        elif len(body[index + 1 : index + 4]) == 3 and body[index + 1 : index + 4].isdigit():
            out.append(int(body[index + 1 : index + 4], 8) & 0xFF)
            index += 4
        else:
            out.extend(nxt.encode("utf-8", errors="surrogateescape"))
            index += 2
    return out.decode("utf-8", errors="surrogateescape")


def quote_path(path: str) -> str:
    """Quote ``path`` the way git does when it contains special characters."""
    if not any(ch in path for ch in '"\\\t\n') and not any(ord(ch) < 32 for ch in path):
        return path
    out = []
    for ch in path:
        if ch == '"':
            out.append('\\"')
        elif ch == "\\":
            out.append("\\\\")
        elif ch == "\t":
            out.append("\\t")
        elif ch == "\n":
            out.append("\\n")
        elif ord(ch) < 32:
            out.append(f"\\{ord(ch):03o}")
        else:
            out.append(ch)
    return '"' + "".join(out) + '"'


def _take_quoted(text: str) -> tuple[str, str]:
    """Split a leading quoted token off ``text``; returns ``(token, rest)``."""
    index = 1
    while index < len(text):
        if text[index] == "\\":
            index += 2
            continue
        if text[index] == '"':
            return text[: index + 1], text[index + 1 :]
        index += 1
    return text, ""


def _strip_side_prefix(path: str, prefix: str) -> str:
    if path == DEV_NULL:
        return path
    return path[len(prefix) :] if path.startswith(prefix) else path


def _header_path(raw: str, prefix: str) -> str:
    """Path from a ``---``/``+++`` line, minus its side prefix and any tab suffix."""
    value = raw
    if not value.startswith('"') and "\t" in value:
        value = value.split("\t", 1)[0]
    return _strip_side_prefix(unquote_path(value), prefix)


def _paths_from_git_line(rest: str) -> tuple[str | None, str | None]:
    """Recover old/new paths from the text after ``diff --git ``."""
    if rest.startswith('"'):
        first, remainder = _take_quoted(rest)
        second = remainder.strip()
        return _strip_side_prefix(unquote_path(first), "a/"), _strip_side_prefix(unquote_path(second), "b/")
    if rest.endswith('"') and ' "' in rest:
        first, second = rest.split(' "', 1)
        return _strip_side_prefix(first, "a/"), _strip_side_prefix(unquote_path('"' + second), "b/")

    half = (len(rest) - 1) // 2
    if len(rest) % 2 == 1 and rest[half] == " ":
        left, right = rest[:half], rest[half + 1 :]
        if left.startswith("a/") and right.startswith("b/") and left[2:] == right[2:]:
            return left[2:], right[2:]

    split_at = rest.find(" b/")
    if rest.startswith("a/") and split_at != -1:
        return rest[2:split_at], rest[split_at + 3 :]
    return None, None


def _file_type_bits(mode: str | None) -> int | None:
    if not mode:
        return None
    try:
        return int(mode, 8) & _FILE_TYPE_MASK
    except ValueError:
        return None


def _split_file_blocks(lines: list[str]) -> list[tuple[int, list[str]]]:
    """Group lines into ``(first_line_number, block_lines)`` per file.

    A block starts at every ``diff --git`` line; hunk content always begins
    with a prefix character so it can never be mistaken for a block start.
    Text before the first block (commit headers, blank lines) is kept as its
    own block only when it contains a hunk, i.e. a plain non-git unified diff.
    """
    blocks: list[tuple[int, list[str]]] = []
    current: list[str] = []
    current_start = 1
    for number, line in enumerate(lines, start=1):
        if line.startswith(_BLOCK_PREFIXES):
            if current:
                blocks.append((current_start, current))
            current = [line]
            current_start = number
            continue
        current.append(line)
    if current:
        blocks.append((current_start, current))

    if blocks and not blocks[0][1][0].startswith(_BLOCK_PREFIXES):
        prelude_start, prelude = blocks[0]
        first_header = next((i for i, line in enumerate(prelude) if line.startswith("--- ")), None)
        if first_header is None or not any(line.startswith("@@") for line in prelude):
            blocks.pop(0)
        else:
            blocks[0] = (prelude_start + first_header, prelude[first_header:])
    return blocks


def _parse_hunk(
    lines: list[str],
    index: int,
    match: re.Match[str],
    path: str | None,
    first_line_number: int,
) -> tuple[Hunk, int]:
    old_start = int(match.group(1))
    old_count = int(match.group(2)) if match.group(2) is not None else 1
    new_start = int(match.group(3))
    new_count = int(match.group(4)) if match.group(4) is not None else 1
    section = match.group(5) or ""

    old_left = old_count
    new_left = new_count
    old_no = old_start
    new_no = new_start
    body: list[DiffLine] = []
    index += 1

    while old_left > 0 or new_left > 0:
        if index >= len(lines):
            raise ParseError("truncated hunk body", path=path, line_number=first_line_number + index)
        line = lines[index]
        if line.startswith("\\"):
            if body:
                body[-1] = replace(body[-1], no_newline=True)
            index += 1
            continue

        prefix = line[:1]
        if prefix == " " or line == "":
            if old_left <= 0 or new_left <= 0:
                raise ParseError("hunk body exceeds header counts", path=path, line_number=first_line_number + index)
            body.append(DiffLine(LINE_CONTEXT, line[1:], old_no, new_no))
            old_no += 1
            new_no += 1
            old_left -= 1
            new_left -= 1
        elif prefix == "-":
            if old_left <= 0:
                raise ParseError("hunk body exceeds header counts", path=path, line_number=first_line_number + index)
            body.append(DiffLine(LINE_DELETE, line[1:], old_no, None))
            old_no += 1
            old_left -= 1
        elif prefix == "+":
            if new_left <= 0:
                raise ParseError("hunk body exceeds header counts", path=path, line_number=first_line_number + index)
            body.append(DiffLine(LINE_ADD, line[1:], None, new_no))
            new_no += 1
            new_left -= 1
        else:
            raise ParseError(f"malformed hunk line {line!r}", path=path, line_number=first_line_number + index)
        index += 1

    while index < len(lines) and lines[index].startswith("\\"):
        if body:
            body[-1] = replace(body[-1], no_newline=True)
        index += 1

    hunk = Hunk(old_start, old_count, new_start, new_count, tuple(body), section)
    return hunk, index


def _parse_file_block(lines: list[str], first_line_number: int) -> FilePair:
    first = lines[0]
    if first.startswith(("diff --cc ", "diff --combined ")):
        raise ParseError("combined merge diffs are not supported", path=first.split(" ", 2)[-1])

    git_old: str | None = None
    git_new: str | None = None
    if first.startswith("diff --git "):
        git_old, git_new = _paths_from_git_line(first[len("diff --git ") :])

    minus_path: str | None = None
    plus_path: str | None = None
    rename_from: str | None = None
    rename_to: str | None = None
    copy_from: str | None = None
    copy_to: str | None = None
    old_mode: str | None = None
    new_mode: str | None = None
    similarity: int | None = None
    created = False
    deleted = False
    is_binary = False

    header: list[str] = []
    index = 0
    while index < len(lines) and not lines[index].startswith("@@"):
        line = lines[index]
        header.append(line)
        if line.startswith("--- "):
            minus_path = _header_path(line[4:], "a/")
        elif line.startswith("+++ "):
            plus_path = _header_path(line[4:], "b/")
        elif line.startswith("new file mode "):
            created = True
            new_mode = line[len("new file mode ") :].strip()
        elif line.startswith("deleted file mode "):
            deleted = True
            old_mode = line[len("deleted file mode ") :].strip()
        elif line.startswith("old mode "):
            old_mode = line[len("old mode ") :].strip()
        elif line.startswith("new mode "):
            new_mode = line[len("new mode ") :].strip()
        elif line.startswith("rename from "):
            rename_from = unquote_path(line[len("rename from ") :])
        elif line.startswith("rename to "):
            rename_to = unquote_path(line[len("rename to ") :])
        elif line.startswith("copy from "):
            copy_from = unquote_path(line[len("copy from ") :])
        elif line.startswith("copy to "):
            copy_to = unquote_path(line[len("copy to ") :])
        elif line.startswith(("similarity index ", "dissimilarity index ")):
            digits = line.rsplit(" ", 1)[-1].rstrip("%")
            similarity = int(digits) if digits.isdigit() else None
        elif line.startswith("Binary files ") or line == "GIT binary patch":
            is_binary = True
        index += 1

    while header and header[-1] == "":
        header.pop()

    old_path = rename_from or copy_from or minus_path or git_old
    new_path = rename_to or copy_to or plus_path or git_new
    if old_path is None and new_path is None:
        raise ParseError("file block has no path information", line_number=first_line_number)
    if created:
        old_path = DEV_NULL
    if deleted:
        new_path = DEV_NULL
    old_path = old_path if old_path is not None else new_path
    new_path = new_path if new_path is not None else old_path
    assert old_path is not None and new_path is not None
    display_path = old_path if new_path == DEV_NULL else new_path

    status: FileStatus
    if created or old_path == DEV_NULL:
        status = "added"
    elif deleted or new_path == DEV_NULL:
        status = "deleted"
    elif rename_from is not None:
        status = "renamed"
    elif copy_from is not None:
        status = "copied"
    elif (
        old_mode is not None
        and new_mode is not None
        and _file_type_bits(old_mode) != _file_type_bits(new_mode)
    ):
        status = "type-changed"
    else:
        status = "modified"

    hunks: list[Hunk] = []
    while index < len(lines):
        line = lines[index]
        if line == "":
            index += 1
            continue
        match = HUNK_HEADER_RE.match(line)
        if match is None:
            raise ParseError(
                f"unexpected line outside hunk {line!r}",
                path=display_path,
                line_number=first_line_number + index,
            )
        hunk, index = _parse_hunk(lines, index, match, display_path, first_line_number)
        hunks.append(hunk)

    return FilePair(
        old_path=old_path,
        new_path=new_path,
        status=status,
        hunks=tuple(hunks),
        header_lines=tuple(header),
        is_binary=is_binary,
        old_mode=old_mode,
        new_mode=new_mode,
        similarity=similarity,
    )


def split_diff_lines(text: str) -> list[str]:
    """Split on ``\\n`` only; ``\\r`` and other separators stay in line content."""
    if not text:
        return []
    lines = text.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    return lines


def parse_file_pairs(text: str) -> tuple[list[FilePair], list[ParseError]]:
    pairs: list[FilePair] = []
    errors: list[ParseError] = []
    for first_line_number, block in _split_file_blocks(split_diff_lines(text)):
        try:
            pairs.append(_parse_file_block(block, first_line_number))
        except ParseError as exc:
            if exc.line_number is None:
                exc.line_number = first_line_number
            logger.warning("skipping malformed diff block: %s", exc)
            errors.append(exc)
    return pairs, errors


def parse_unified_diff(text: str, repo_root: Path, *, source: object | None = None) -> DiffSpec:
    """Parse raw ``git diff`` output into a ``DiffSpec``.

    Empty input yields a spec with no files; malformed file blocks land in
    ``DiffSpec.errors`` instead of aborting the parse.
    """
    pairs, errors = parse_file_pairs(text)
    return DiffSpec(repo_root=Path(repo_root), files=tuple(pairs), errors=tuple(errors), source=source)


def parse_untracked_content(path: str, content: str, *, mode: str = "100644") -> FilePair:
    """Synthesize a new-file ``FilePair`` from raw file content.

    The whole file becomes one all-insertion hunk (``@@ -0,0 +1,N @@``).
    Content containing a NUL byte is treated as binary and gets no hunks.
    """
    quoted_a = quote_path(f"a/{path}")
    quoted_b = quote_path(f"b/{path}")
    git_line = f"diff --git {quoted_a} {quoted_b}"

    if "\0" in content:
        header = (git_line, f"new file mode {mode}", f"Binary files /dev/null and {quoted_b} differ")
        return FilePair(DEV_NULL, path, "added", (), header, is_binary=True, new_mode=mode)

    if content == "":
        return FilePair(DEV_NULL, path, "added", (), (git_line, f"new file mode {mode}"), new_mode=mode)

    raw_lines = content.split("\n")
    missing_newline = raw_lines[-1] != ""
    if not missing_newline:
        raw_lines.pop()

    body = [DiffLine(LINE_ADD, text, None, number) for number, text in enumerate(raw_lines, start=1)]
    if missing_newline:
        body[-1] = replace(body[-1], no_newline=True)

    header = (git_line, f"new file mode {mode}", "--- /dev/null", f"+++ {quoted_b}")
    hunk = Hunk(0, 0, 1, len(body), tuple(body))
    return FilePair(DEV_NULL, path, "added", (hunk,), header, new_mode=mode)


__all__ = [
    "HUNK_HEADER_RE",
    "parse_file_pairs",
    "parse_unified_diff",
    "parse_untracked_content",
    "quote_path",
    "split_diff_lines",
    "unquote_path",
]
