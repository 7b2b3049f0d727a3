"""Synchronized text surfaces behind side-by-side and three-column views.

A ``TextSurface`` is a long-lived handle: refreshes replace its content in
place so the UI never swaps buffers (no flicker). Filler rows are tracked per
row and stripped by ``get_real_lines`` before any patch or save is built from
editable content.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from .line_map import ROW_FILLER, ROW_HEADER, LineMap
from .three_way import ThreeWayMap

FILLER_DISPLAY = "~"
_NON_CONTENT = (ROW_FILLER, ROW_HEADER)


class TextSurface:
    """Lines plus a parallel per-row filler flag."""

    def __init__(self, name: str, *, editable: bool = False) -> None:
        self.name = name
        self.editable = editable
        self.lines: list[str] = []
        self._filler: list[bool] = []
        self.generation = 0
        self.modified = False

    def __len__(self) -> int:
        return len(self.lines)

    def set_content(self, lines: Sequence[str], filler_rows: Iterable[bool]) -> None:
        """Replace content in place; the handle identity is preserved."""
        flags = list(filler_rows)
        if len(flags) != len(lines):
            raise ValueError("filler flags must cover every row")
        self.lines[:] = list(lines)
        self._filler[:] = flags
        self.generation += 1
        self.modified = False

    def is_filler(self, row: int) -> bool:
        return 0 <= row < len(self._filler) and self._filler[row]

    def display_lines(self) -> list[str]:
        return [FILLER_DISPLAY if filler else line for line, filler in zip(self.lines, self._filler)]

    def get_real_lines(self) -> list[str]:
        return [line for line, filler in zip(self.lines, self._filler) if not filler]

    def _require_editable(self) -> None:
        if not self.editable:
            raise ValueError(f"{self.name} buffer is read-only")

    def set_line(self, row: int, text: str) -> None:
        """Replace one row; typing into a filler row turns it into content."""
        self._require_editable()
        self.lines[row] = text
        self._filler[row] = False
        self.modified = True

    def insert_lines(self, row: int, lines: Sequence[str]) -> None:
        self._require_editable()
        self.lines[row:row] = list(lines)
        self._filler[row:row] = [False] * len(lines)
        self.modified = True

    def delete_lines(self, start: int, end: int) -> None:
        """Delete rows ``[start, end)``."""
        self._require_editable()
        del self.lines[start:end]
        del self._filler[start:end]
        self.modified = True


class BufferPair:
    """Left/right surfaces for a two-column diff of one file."""

    def __init__(self, left_ref: str, right_ref: str, *, editable_ref: str | None = None) -> None:
        self.left = TextSurface(left_ref, editable=editable_ref == left_ref)
        self.right = TextSurface(right_ref, editable=editable_ref == right_ref)

    def surfaces(self) -> dict[str, TextSurface]:
        return {"left": self.left, "right": self.right}

    def surface(self, side: str) -> TextSurface:
        try:
            return self.surfaces()[side]
        except KeyError:
            raise ValueError(f"unknown buffer side {side!r}") from None

    def load(self, line_map: LineMap) -> None:
        self.left.set_content(
            line_map.left_lines,
            (entry.left_type in _NON_CONTENT for entry in line_map.entries),
        )
        self.right.set_content(
            line_map.right_lines,
            (entry.right_type in _NON_CONTENT for entry in line_map.entries),
        )

    def get_real_lines(self, side: str) -> list[str]:
        return self.surface(side).get_real_lines()

    @property
    def modified(self) -> bool:
        return any(surface.modified for surface in self.surfaces().values())


class BufferTriple(BufferPair):
    """Left/mid/right surfaces for three-way (HEAD/INDEX/WORKTREE) or merge views."""

    def __init__(
        self,
        left_ref: str,
        mid_ref: str,
        right_ref: str,
        *,
        editable_refs: Iterable[str] = (),
    ) -> None:
        editable = set(editable_refs)
        self.left = TextSurface(left_ref, editable=left_ref in editable)
        self.mid = TextSurface(mid_ref, editable=mid_ref in editable)
        self.right = TextSurface(right_ref, editable=right_ref in editable)

    def surfaces(self) -> dict[str, TextSurface]:
        return {"left": self.left, "mid": self.mid, "right": self.right}

    def load(self, three_way_map: ThreeWayMap) -> None:  # type: ignore[override]
        for side, surface in self.surfaces().items():
            surface.set_content(
                three_way_map.column(side),
                (getattr(entry, f"{side}_type") in _NON_CONTENT for entry in three_way_map.entries),
            )


__all__ = ["BufferPair", "BufferTriple", "FILLER_DISPLAY", "TextSurface"]
