"""UI-facing diff view: one file at a time, side by side.

``DiffView`` owns the current ``DiffSpec``, its ``LineMap`` and the buffer
surfaces, and exposes the operations a front end binds keys to. Refreshes go
through a latest-request-wins gate so a slow, superseded fetch never
overwrites a newer one.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging

from .async_utils import LatestRequest
from .diff.buffers import BufferPair, BufferTriple
from .diff.line_map import LineMap, build_line_map
from .diff.model import DiffSpec, FilePair
from .diff.save import save_lines, side_missing_newline
from .diff.source import (
    FULL_CONTEXT,
    REF_INDEX,
    DiffSource,
    ThreeWayDiff,
    diff_title,
    fetch_diff_spec,
    fetch_three_way,
)
from .diff.three_way import ThreeWayMap, build_three_way_map
from .errors import SELECTION_NOTHING_TO_STAGE, SELECTION_UNSUPPORTED, LazyStageError, SelectionError
from .patch.apply import PatchApplier
from .patch.builder import Selection
from .repo_state import RepoState

logger = logging.getLogger(__name__)

NO_CHANGES = "No changes"

RowRange = tuple[int, int]


@dataclass(frozen=True)
class ViewOptions:
    context_lines: int = FULL_CONTEXT
    path: str | None = None


def _covers_whole_file(pair: FilePair) -> bool:
    """True when the pair's single hunk starts at the top of both sides."""
    if len(pair.hunks) != 1:
        return False
    hunk = pair.hunks[0]
    return hunk.old_start <= 1 and hunk.new_start <= 1


class DiffView:
    def __init__(self, repo: RepoState) -> None:
        self.repo = repo
        self.applier = PatchApplier(repo.executor)
        self.options = ViewOptions()
        self.source: DiffSource | None = None
        self.spec: DiffSpec | None = None
        self.three_way: ThreeWayDiff | None = None
        self.file_index = 0
        self.line_map: LineMap = LineMap()
        self.three_way_map: ThreeWayMap | None = None
        self.buffers: BufferPair | None = None
        self.cursor_row = 0
        self.title = ""
        self.whole_file = False
        self._latest: LatestRequest = LatestRequest()

    # state

    @property
    def file_count(self) -> int:
        if self.three_way is not None:
            return len(self.three_way.files)
        return len(self.spec.files) if self.spec is not None else 0

    @property
    def placeholder(self) -> str | None:
        return NO_CHANGES if self.file_count == 0 else None

    @property
    def current_pair(self) -> FilePair | None:
        if self.spec is None or not 0 <= self.file_index < len(self.spec.files):
            return None
        return self.spec.files[self.file_index]

    @property
    def current_path(self) -> str | None:
        if self.three_way is not None and 0 <= self.file_index < len(self.three_way.files):
            return self.three_way.files[self.file_index].path
        pair = self.current_pair
        return pair.path if pair is not None else None

    @property
    def editable_side(self) -> str | None:
        if self.source is None or self.source.editable_ref is None:
            return None
        refs = self.source.side_refs
        if self.source.is_three_column:
            return "right"
        return "left" if refs[0] == self.source.editable_ref else "right"

    def _boundaries(self) -> LineMap | ThreeWayMap:
        return self.three_way_map if self.three_way_map is not None else self.line_map

    # open / refresh

    async def open(
        self,
        target: DiffSpec | DiffSource,
        opts: ViewOptions | None = None,
    ) -> tuple[bool, LazyStageError | None]:
        """Show a parsed spec as-is, or a source that ``refresh()`` re-runs."""
        self.options = opts or ViewOptions()
        self.buffers = None
        self.file_index = 0
        self.cursor_row = 0
        if isinstance(target, DiffSpec):
            self.source = target.source if isinstance(target.source, DiffSource) else None
            self.three_way = None
            self.whole_file = False
            self._load_spec(target, self.options.path)
            return True, None
        self.source = target
        return await self.refresh()

    async def refresh(self) -> tuple[bool, LazyStageError | None]:
        """Re-run the source's git commands; keeps the current file by path."""
        source = self.source
        if source is None:
            return True, None
        keep = self.current_path or self.options.path

        if source.is_three_column:
            delivered, result = await self._latest.run(lambda: fetch_three_way(self.repo.executor, source))
            if not delivered:
                return False, None
            assert result is not None
            three_way, error = result
            if error is not None:
                return False, error
            assert three_way is not None
            self.whole_file = True
            self._load_three_way(three_way, keep)
            return True, None

        delivered, result = await self._latest.run(
            lambda: fetch_diff_spec(self.repo.executor, source, context_lines=self.options.context_lines)
        )
        if not delivered:
            return False, None
        assert result is not None
        spec, error = result
        if error is not None:
            return False, error
        assert spec is not None
        self.whole_file = self.options.context_lines >= FULL_CONTEXT
        self._load_spec(spec, keep)
        return True, None

    def _pick_index(self, paths: list[str], keep: str | None) -> int:
        if keep is not None and keep in paths:
            return paths.index(keep)
        if not paths:
            return 0
        return max(0, min(self.file_index, len(paths) - 1))

    def _load_spec(self, spec: DiffSpec, keep: str | None) -> None:
        self.spec = spec
        self.three_way = None
        self.three_way_map = None
        self.file_index = self._pick_index([pair.path for pair in spec.files], keep)
        if self.source is not None:
            self.title = diff_title(self.source, len(spec.files))
        for error in spec.errors:
            logger.warning("diff view skipped a file: %s", error)
        self._rebuild()

    def _load_three_way(self, three_way: ThreeWayDiff, keep: str | None) -> None:
        self.spec = None
        self.three_way = three_way
        self.line_map = LineMap()
        self.file_index = self._pick_index([item.path for item in three_way.files], keep)
        self.title = diff_title(three_way.source, len(three_way.files))
        self._rebuild()

    def _ensure_buffers(self) -> BufferPair:
        source = self.source
        refs = source.side_refs if source is not None else ("a", "b")
        editable = source.editable_ref if source is not None else None
        if len(refs) == 3:
            if not isinstance(self.buffers, BufferTriple):
                self.buffers = BufferTriple(*refs, editable_refs=[editable] if editable else [])
        elif self.buffers is None or isinstance(self.buffers, BufferTriple):
            self.buffers = BufferPair(refs[0], refs[1], editable_ref=editable)
        return self.buffers

    def _rebuild(self) -> None:
        """Rebuild the row map for the current file, reusing buffer handles."""
        buffers = self._ensure_buffers()
        if self.three_way is not None:
            files = self.three_way.files
            self.three_way_map = build_three_way_map(files, [self.file_index] if files else [])
            assert isinstance(buffers, BufferTriple)
            buffers.load(self.three_way_map)
            rows = len(self.three_way_map)
        else:
            assert self.spec is not None
            indices = [self.file_index] if self.spec.files else []
            self.line_map = build_line_map(self.spec, indices, with_headers=False)
            buffers.load(self.line_map)
            rows = len(self.line_map)
        self.cursor_row = max(0, min(self.cursor_row, rows - 1))

    def get_real_lines(self, side: str) -> list[str]:
        """Content of ``side`` with filler rows stripped."""
        if self.buffers is None:
            return []
        return self.buffers.get_real_lines(side)

    # navigation

    def next_hunk(self) -> int:
        """Move to the next hunk boundary; stays put at the last hunk."""
        row = self._boundaries().next_hunk_row(self.cursor_row)
        if row is not None:
            self.cursor_row = row
        return self.cursor_row

    def prev_hunk(self) -> int:
        row = self._boundaries().prev_hunk_row(self.cursor_row)
        if row is not None:
            self.cursor_row = row
        return self.cursor_row

    def select_file(self, target: int | str) -> bool:
        if isinstance(target, str):
            if self.three_way is not None:
                paths = [item.path for item in self.three_way.files]
            else:
                paths = [pair.path for pair in self.spec.files] if self.spec is not None else []
            if target not in paths:
                return False
            target = paths.index(target)
        if not 0 <= target < self.file_count:
            return False
        self.file_index = target
        self.cursor_row = 0
        self._rebuild()
        boundaries = self._boundaries().boundary_rows
        if boundaries:
            self.cursor_row = boundaries[0]
        return True

    def next_file(self) -> int:
        """Show the next file, wrapping from the last to the first."""
        if self.file_count:
            self.select_file((self.file_index + 1) % self.file_count)
        return self.file_index

    def prev_file(self) -> int:
        if self.file_count:
            self.select_file((self.file_index - 1) % self.file_count)
        return self.file_index

    # staging

    def _selection(self, rows: RowRange | None) -> Selection:
        if rows is None:
            return Selection.row(self.cursor_row)
        return Selection.range(rows[0], rows[1])

    def _require(self, kinds: set[str]) -> SelectionError | None:
        if self.placeholder is not None:
            return SelectionError(SELECTION_NOTHING_TO_STAGE)
        if self.source is None or self.source.kind not in kinds or self.spec is None:
            return SelectionError(SELECTION_UNSUPPORTED)
        return None

    async def _after_mutation(self, ok: bool, error: LazyStageError | None) -> tuple[bool, LazyStageError | None]:
        if not ok:
            return ok, error
        _, refresh_error = await self.refresh()
        return True, refresh_error

    async def stage_selection(self, rows: RowRange | None = None) -> tuple[bool, LazyStageError | None]:
        """Stage the rows ``(first, last)`` (default: cursor row) of an unstaged diff."""
        error = self._require({"unstaged"})
        if error is not None:
            return False, error
        assert self.spec is not None
        ok, error = await self.applier.stage_selection(self.spec, self.line_map, self._selection(rows))
        return await self._after_mutation(ok, error)

    async def unstage_selection(self, rows: RowRange | None = None) -> tuple[bool, LazyStageError | None]:
        error = self._require({"staged"})
        if error is not None:
            return False, error
        assert self.spec is not None
        ok, error = await self.applier.unstage_selection(self.spec, self.line_map, self._selection(rows))
        return await self._after_mutation(ok, error)

    async def discard_selection(self, rows: RowRange | None = None) -> tuple[bool, LazyStageError | None]:
        error = self._require({"unstaged"})
        if error is not None:
            return False, error
        assert self.spec is not None
        ok, error = await self.applier.discard_selection(self.spec, self.line_map, self._selection(rows))
        return await self._after_mutation(ok, error)

    def hunk_rows(self) -> RowRange | None:
        """Row span of the change block under the cursor."""
        return self.line_map.change_run(self.cursor_row)

    async def stage_hunk(self) -> tuple[bool, LazyStageError | None]:
        rows = self.hunk_rows()
        if rows is None:
            return False, SelectionError(SELECTION_NOTHING_TO_STAGE)
        return await self.stage_selection(rows)

    async def unstage_hunk(self) -> tuple[bool, LazyStageError | None]:
        rows = self.hunk_rows()
        if rows is None:
            return False, SelectionError(SELECTION_NOTHING_TO_STAGE)
        return await self.unstage_selection(rows)

    # editing

    async def save(self) -> tuple[bool, LazyStageError | None]:
        """Write the editable column back to the index or worktree."""
        side = self.editable_side
        path = self.current_path
        if side is None or self.buffers is None or self.source is None or path is None:
            return False, SelectionError(SELECTION_UNSUPPORTED, "Nothing editable in this view")
        surface = self.buffers.surface(side)
        ref = surface.name

        pair: FilePair | None
        if self.three_way is not None:
            item = self.three_way.files[self.file_index]
            pair = item.second or item.first
        else:
            pair = self.current_pair
            if not self.whole_file or pair is None or not _covers_whole_file(pair):
                return False, SelectionError(
                    SELECTION_UNSUPPORTED,
                    "Only a full-context diff of one hunk can be saved",
                )
        missing_newline = side_missing_newline(pair, "new") if pair is not None else False

        ok, error = await save_lines(
            self.repo.executor,
            ref,
            path,
            surface.get_real_lines(),
            missing_newline=missing_newline,
        )
        if not ok:
            return ok, error
        logger.info("saved %s side of %s", "index" if ref == REF_INDEX else "worktree", path)
        _, refresh_error = await self.refresh()
        return True, refresh_error


__all__ = ["DiffView", "NO_CHANGES", "ViewOptions"]
