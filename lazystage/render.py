"""Terminal rendering for the status tree and side-by-side diff views.

Syntax colors come from Pygments; added/removed rows get background tints
and paired rows get word-level emphasis. With ``color=False`` every function
returns plain text suitable for pipes and tests.
"""

from __future__ import annotations

from pathlib import Path
import re
import unicodedata

from pygments import highlight
from pygments.formatters import Terminal256Formatter
from pygments.lexers import TextLexer, get_lexer_for_filename
from pygments.styles import get_style_by_name
from pygments.util import ClassNotFound

from .diff.buffers import FILLER_DISPLAY
from .diff.inline import inline_ranges
from .diff.line_map import ROW_ADD, ROW_DELETE, ROW_FILLER, ROW_HEADER
from .status.tree import StatusTree
from .view import DiffView

ANSI_ESCAPE_RE = re.compile(r"\x1b\[[0-9;?]*[ -/]*[@-~]")
_CONTROL_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f]")
TAB_STOP = 8
DEFAULT_STYLE = "monokai"

RESET = "\x1b[0m"
BOLD = "\x1b[1m"
DIM = "\x1b[2m"
REVERSE = "\x1b[7m"
_ADDED_BG_SGR = "48;2;36;74;52"
_REMOVED_BG_SGR = "48;2;92;43;49"
_ADDED_EMPHASIS_SGR = "48;2;46;120;72"
_REMOVED_EMPHASIS_SGR = "48;2;150;52;62"
_HUNK_SGR = "36"
_SECTION_SGR = "1;35"
_ADD_FG_SGR = "32"
_DELETE_FG_SGR = "31"

_FORMATTERS: dict[str, Terminal256Formatter] = {}


def sanitize_terminal_text(text: str) -> str:
    """Escape control bytes so file content cannot move the cursor or ring the bell."""
    if _CONTROL_RE.search(text) is None:
        return text
    return _CONTROL_RE.sub(lambda match: f"\\x{ord(match.group(0)):02x}", text)


def char_display_width(ch: str, col: int) -> int:
    if ch == "\t":
        return TAB_STOP - (col % TAB_STOP)
    if unicodedata.combining(ch):
        return 0
    if unicodedata.east_asian_width(ch) in {"W", "F"}:
        return 2
    return 1


def fit_cell(text: str, width: int) -> str:
    """Clip ``text`` to ``width`` display columns and pad with spaces.

    Escape sequences are kept and do not count toward the width; tabs expand
    to spaces so both columns stay aligned.
    """
    if width <= 0:
        return ""
    out: list[str] = []
    col = 0
    index = 0
    while index < len(text) and col < width:
        if text[index] == "\x1b":
            match = ANSI_ESCAPE_RE.match(text, index)
            if match:
                out.append(match.group(0))
                index = match.end()
                continue
        ch = text[index]
        step = char_display_width(ch, col)
        if col + step > width:
            break
        out.append(" " * step if ch == "\t" else ch)
        col += step
        index += 1
    styled = any(part.startswith("\x1b") for part in out)
    return "".join(out) + (RESET if styled else "") + " " * (width - col)


def _formatter(style: str) -> Terminal256Formatter:
    formatter = _FORMATTERS.get(style)
    if formatter is None:
        try:
            get_style_by_name(style)
        except ClassNotFound:
            style = DEFAULT_STYLE
        formatter = _FORMATTERS.setdefault(style, Terminal256Formatter(style=style))
    return formatter


def highlight_lines(lines: list[str], path: str, *, style: str = DEFAULT_STYLE, color: bool = True) -> list[str]:
    """Syntax-highlight ``lines`` as one file; always returns one string per input line."""
    clean = [sanitize_terminal_text(line) for line in lines]
    if not color or not clean:
        return clean
    source = "\n".join(clean) + "\n"
    try:
        lexer = get_lexer_for_filename(Path(path).name, source, stripnl=False)
    except ClassNotFound:
        lexer = TextLexer(stripnl=False)
    rendered = highlight(source, lexer, _formatter(style)).split("\n")
    if len(rendered) < len(clean):
        rendered.extend(clean[len(rendered) :])
    return rendered[: len(clean)]


def _sgr(code: str) -> str:
    return f"\x1b[{code}m"


def _tint(text: str, bg_sgr: str) -> str:
    """Paint a background under already-highlighted text, surviving inner resets."""
    tint = _sgr(bg_sgr)
    return tint + text.replace(RESET, RESET + tint) + RESET


def _emphasize(text: str, ranges: tuple[tuple[int, int], ...], bg_sgr: str, emphasis_sgr: str) -> str:
    parts: list[str] = []
    cursor = 0
    for start, end in ranges:
        parts.append(_sgr(bg_sgr) + text[cursor:start])
        parts.append(_sgr(emphasis_sgr) + BOLD + text[start:end] + RESET)
        cursor = end
    parts.append(_sgr(bg_sgr) + text[cursor:] + RESET)
    return "".join(parts)


def _gutter(lineno: int | None, width: int) -> str:
    return (str(lineno) if lineno is not None else "").rjust(width)


def render_diff(
    view: DiffView,
    *,
    width: int = 160,
    color: bool = True,
    style: str = DEFAULT_STYLE,
) -> list[str]:
    """Compose the current file of ``view`` as side-by-side (or three-column) lines."""
    lines = [_sgr(_SECTION_SGR) + view.title + RESET if color else view.title]
    if view.placeholder is not None or view.buffers is None:
        lines.append(view.placeholder or "")
        return lines

    path = view.current_path or ""
    surfaces = view.buffers.surfaces()
    if view.three_way_map is not None:
        entries = view.three_way_map.entries
    else:
        entries = view.line_map.entries

    columns = list(surfaces)
    linenos = [
        [getattr(entry, f"{side}_lineno", None) for entry in entries]
        for side in columns
    ]
    gutter = max((len(str(n)) for column in linenos for n in column if n is not None), default=1)
    separator = " │ "
    cell = max(1, (width - 2 - len(separator) * (len(columns) - 1)) // len(columns) - gutter - 1)

    texts = {side: surface.display_lines() for side, surface in surfaces.items()}
    painted = {
        side: highlight_lines(surface.lines, path, style=style, color=color) for side, surface in surfaces.items()
    }
    row_count = max(len(column) for column in texts.values())

    for row in range(row_count):
        entry = entries[row] if row < len(entries) else None
        cells: list[str] = []
        emphasis = None
        if color and entry is not None and len(columns) == 2:
            if entry.left_type == ROW_DELETE and entry.right_type == ROW_ADD:
                emphasis = inline_ranges(texts["left"][row], texts["right"][row])

        for position, side in enumerate(columns):
            kind = getattr(entry, f"{side}_type") if entry is not None else None
            raw = texts[side][row] if row < len(texts[side]) else ""
            number = linenos[position][row] if row < len(entries) else None
            if kind == ROW_HEADER:
                body = _sgr(_HUNK_SGR) + raw + RESET if color else raw
            elif kind == ROW_FILLER:
                body = DIM + FILLER_DISPLAY + RESET if color else FILLER_DISPLAY
            elif not color:
                marker = {ROW_ADD: "+", ROW_DELETE: "-"}.get(kind or "", " ")
                body = marker + sanitize_terminal_text(raw)
            elif kind in (ROW_ADD, ROW_DELETE):
                bg = _ADDED_BG_SGR if kind == ROW_ADD else _REMOVED_BG_SGR
                ranges = ()
                if emphasis is not None:
                    ranges = emphasis.new_ranges if kind == ROW_ADD else emphasis.old_ranges
                if ranges:
                    strong = _ADDED_EMPHASIS_SGR if kind == ROW_ADD else _REMOVED_EMPHASIS_SGR
                    body = _emphasize(sanitize_terminal_text(raw), ranges, bg, strong)
                else:
                    body = _tint(painted[side][row], bg)
            else:
                body = painted[side][row] if row < len(painted[side]) else raw
            cells.append(_gutter(number, gutter) + " " + fit_cell(body, cell))

        prefix = ">" if row == view.cursor_row else " "
        lines.append(prefix + " " + separator.join(cells).rstrip())
    return lines


def _status_line_sgr(text: str) -> str | None:
    if text.startswith("+"):
        return _ADD_FG_SGR
    if text.startswith("-"):
        return _DELETE_FG_SGR
    return None


def render_status(tree: StatusTree | None, cursor_row: int = 0, *, color: bool = True, stale: bool = False) -> list[str]:
    """Compose the status surface, one output line per tree row."""
    if tree is None:
        return ["Loading..."]
    lines: list[str] = []
    for index, row in enumerate(tree.rows):
        text = "  " * max(0, row.depth - 1) + sanitize_terminal_text(row.text)
        if row.kind == "entry":
            text = "  " + text
        if color:
            if row.kind == "section":
                text = _sgr(_SECTION_SGR) + text + RESET
            elif row.kind == "hunk":
                text = _sgr(_HUNK_SGR) + text + RESET
            elif row.kind == "line":
                code = _status_line_sgr(row.text)
                if code is not None:
                    text = _sgr(code) + text + RESET
            if index == cursor_row:
                text = REVERSE + text + RESET
        elif index == cursor_row:
            text = "> " + text
        else:
            text = "  " + text
        lines.append(text)
    if stale:
        lines.insert(0, (DIM + "(stale: refresh to update)" + RESET) if color else "(stale)")
    return lines


__all__ = [
    "fit_cell",
    "highlight_lines",
    "render_diff",
    "render_status",
    "sanitize_terminal_text",
]
