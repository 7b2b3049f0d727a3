"""Status surface controller: refresh loop, expansion and row mutations.

``refresh()`` never restarts a refresh already in flight. A request or an
external change that arrives meanwhile is folded into one follow-up pass.
Row mutations fan out to one git call per entry and re-render once.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import replace
import logging

from ..diff.model import DiffSpec, FilePair
from ..diff.source import DiffSource, fetch_diff_spec, untracked_file_pairs
from ..errors import (
    SELECTION_INVALID_ROW,
    SELECTION_NOTHING_TO_STAGE,
    SELECTION_UNSUPPORTED,
    LazyStageError,
    SelectionError,
)
from ..git.snapshot import fetch_snapshot
from ..patch.apply import PatchApplier
from ..patch.builder import Selection
from ..repo_state import RepoState
from .cursor import CursorAnchor, capture_anchor, restore_cursor
from .expansion import ExpansionState, restore_expansion, toggle_file, toggle_hunk, toggle_section, with_level
from .machine import (
    EXTERNAL_CHANGE,
    REFRESH_DONE,
    REFRESH_FAILED,
    RENDER_DONE,
    RENDERED,
    REQUEST_REFRESH,
    RefreshMachine,
)
from .tree import (
    FILE_SECTIONS,
    SECTION_CONFLICTED,
    SECTION_STAGED,
    SECTION_UNSTAGED,
    SECTION_UNTRACKED,
    DiffCache,
    Identity,
    StatusEntry,
    StatusTree,
    build_status_tree,
    classify_entries,
)

logger = logging.getLogger(__name__)

CONFLICT_MARKER = "<<<<<<<"

ConfirmCallback = Callable[[str], Awaitable[bool]]
RenderCallback = Callable[[StatusTree], None]

_ACTION_SECTIONS = {
    "stage": frozenset({SECTION_UNSTAGED, SECTION_UNTRACKED, SECTION_CONFLICTED}),
    "unstage": frozenset({SECTION_STAGED}),
    "discard": frozenset({SECTION_UNSTAGED, SECTION_UNTRACKED}),
}
_NOTHING_MESSAGES = {
    "stage": "Nothing to stage",
    "unstage": "Nothing to unstage",
    "discard": "Nothing to discard",
}


def has_conflict_markers(text: str) -> bool:
    return any(line.startswith(CONFLICT_MARKER) for line in text.split("\n"))


class StatusController:
    def __init__(
        self,
        repo: RepoState,
        *,
        confirm: ConfirmCallback | None = None,
        on_render: RenderCallback | None = None,
    ) -> None:
        self.repo = repo
        self.executor = repo.executor
        self.applier = PatchApplier(repo.executor)
        self.machine = RefreshMachine()
        self.expansion = ExpansionState(level=repo.config.git.visibility_level)
        self.confirm = confirm
        self.on_render = on_render
        self.tree: StatusTree | None = None
        self.cursor_row = 0
        self.render_count = 0
        self.last_error: LazyStageError | None = None
        self._entries: dict[str, tuple[StatusEntry, ...]] = {}
        self._cache = DiffCache()
        self._inflight: asyncio.Future | None = None

    @property
    def context_lines(self) -> int:
        return self.repo.config.git.status_context_lines

    @property
    def is_stale(self) -> bool:
        return self.machine.is_stale

    # refresh

    async def refresh(self) -> tuple[StatusTree | None, LazyStageError | None]:
        """Fetch a snapshot and rebuild the tree, or join the refresh in flight."""
        if self._inflight is not None and not self._inflight.done():
            # A loop that has not started yet will pick the request up itself.
            if self.machine.is_refreshing:
                self.machine.dispatch(REQUEST_REFRESH)
            return await asyncio.shield(self._inflight)
        self._inflight = asyncio.ensure_future(self._refresh_loop())
        return await asyncio.shield(self._inflight)

    def mark_stale(self) -> None:
        """External change hook; safe to call while a refresh is running."""
        self.machine.dispatch(EXTERNAL_CHANGE)

    async def _refresh_loop(self) -> tuple[StatusTree | None, LazyStageError | None]:
        while True:
            self.machine.dispatch(REQUEST_REFRESH)
            anchor = capture_anchor(self.tree, self.cursor_row)
            error = await self._refresh_once(anchor)
            if error is not None:
                self.last_error = error
                self.machine.dispatch(REFRESH_FAILED)
                if self.machine.take_follow_up():
                    continue
                return self.tree, error

            self.last_error = None
            self.machine.dispatch(REFRESH_DONE)
            self._render()
            if self.machine.state == RENDERED:
                self.machine.dispatch(RENDER_DONE)
            if self.machine.take_follow_up():
                logger.debug("running follow-up refresh")
                continue
            return self.tree, None

    async def _refresh_once(self, anchor: CursorAnchor | None) -> LazyStageError | None:
        snapshot, error = await fetch_snapshot(self.executor, self.repo.git_dir)
        if error is not None:
            return error
        assert snapshot is not None

        entries = classify_entries(snapshot)
        identities = [entry.identity for section in entries.values() for entry in section]
        expansion = restore_expansion(self.expansion, identities)
        self._cache.prune(set(identities))
        error = await self._fetch_diffs(entries, expansion, refetch=True)
        if error is not None:
            return error

        entries = self._attach(entries)
        hunk_counts = {entry.identity: len(entry.hunks) for section in entries.values() for entry in section}
        self.expansion = restore_expansion(expansion, identities, hunk_counts)
        self._entries = entries
        self.tree = build_status_tree(snapshot, entries, self.expansion)
        self.cursor_row = restore_cursor(self.tree, anchor)
        self.repo.set_snapshot(snapshot)
        return None

    async def _fetch_section(self, section: str, entries: list[StatusEntry]) -> tuple[dict[str, FilePair], LazyStageError | None]:
        paths = [entry.path for entry in entries]
        if section == SECTION_UNTRACKED:
            pairs = untracked_file_pairs(self.repo.root, paths)
            return {pair.path: pair for pair in pairs}, None

        pathspec: list[str] = []
        for entry in entries:
            pathspec.append(entry.path)
            if entry.orig_path:
                pathspec.append(entry.orig_path)
        if section == SECTION_STAGED:
            source = DiffSource.staged(*pathspec)
        else:
            source = DiffSource("unstaged", paths=tuple(pathspec), include_untracked=False)
        spec, error = await fetch_diff_spec(self.executor, source, context_lines=self.context_lines)
        if error is not None:
            return {}, error
        assert spec is not None
        return {pair.path: pair for pair in spec.files}, None

    async def _fetch_diffs(
        self,
        entries: dict[str, tuple[StatusEntry, ...]],
        expansion: ExpansionState,
        *,
        refetch: bool = False,
    ) -> LazyStageError | None:
        """Fetch hunks for open entries; conflicted entries show none."""
        wanted: dict[str, list[StatusEntry]] = {}
        for section, section_entries in entries.items():
            if section == SECTION_CONFLICTED:
                continue
            for entry in section_entries:
                if not expansion.is_open(entry.identity):
                    continue
                if not refetch and entry.identity in self._cache:
                    continue
                wanted.setdefault(section, []).append(entry)
        if not wanted:
            return None

        sections = list(wanted)
        results = await asyncio.gather(*(self._fetch_section(name, wanted[name]) for name in sections))
        for name, (pairs, error) in zip(sections, results):
            if error is not None:
                return error
            for entry in wanted[name]:
                self._cache.put(entry.identity, pairs.get(entry.path))
        return None

    def _attach(self, entries: dict[str, tuple[StatusEntry, ...]]) -> dict[str, tuple[StatusEntry, ...]]:
        return {
            section: tuple(replace(entry, diff=self._cache.get(entry.identity)) for entry in section_entries)
            for section, section_entries in entries.items()
        }

    def _render(self) -> None:
        self.render_count += 1
        if self.on_render is not None and self.tree is not None:
            self.on_render(self.tree)

    async def _rebuild(self) -> LazyStageError | None:
        """Rebuild rows from the current snapshot after an expansion change."""
        if self.tree is None:
            return None
        anchor = capture_anchor(self.tree, self.cursor_row)
        error = await self._fetch_diffs(self._entries, self.expansion)
        if error is not None:
            return error
        self._entries = self._attach(self._entries)
        self.tree = build_status_tree(self.tree.snapshot, self._entries, self.expansion)
        self.cursor_row = restore_cursor(self.tree, anchor)
        self._render()
        return None

    # expansion and cursor

    def move_cursor(self, delta: int) -> int:
        if self.tree is None or not self.tree.rows:
            return 0
        self.cursor_row = max(0, min(len(self.tree.rows) - 1, self.cursor_row + delta))
        return self.cursor_row

    async def toggle_expand(self, row: int | None = None) -> tuple[StatusTree | None, LazyStageError | None]:
        """Toggle the section, entry or hunk under ``row`` (default: cursor)."""
        if self.tree is None:
            return None, None
        row = self.cursor_row if row is None else row
        if not 0 <= row < len(self.tree.rows):
            return self.tree, SelectionError(SELECTION_INVALID_ROW)
        self.cursor_row = row
        item = self.tree.rows[row]
        identity = item.identity
        if item.kind == "section" and item.section is not None:
            self.expansion = toggle_section(self.expansion, item.section)
        elif item.kind == "entry" and identity is not None:
            self.expansion = toggle_file(self.expansion, identity)
        elif item.kind in ("hunk", "line") and identity is not None and item.hunk_index is not None:
            self.expansion = toggle_hunk(self.expansion, identity, item.hunk_index)
        else:
            return self.tree, None
        error = await self._rebuild()
        return self.tree, error

    async def set_visibility_level(self, level: int) -> tuple[StatusTree | None, LazyStageError | None]:
        self.expansion = with_level(self.expansion, level)
        error = await self._rebuild()
        return self.tree, error

    # mutations

    def _plan(self, start: int, end: int) -> tuple[list[StatusEntry], dict[Identity, dict[int, set[int]]]]:
        """Split rows into whole entries and per-hunk line selections."""
        assert self.tree is not None
        whole: dict[Identity, StatusEntry] = {}
        partial: dict[Identity, dict[int, set[int]]] = {}
        for item in self.tree.rows[start : end + 1]:
            if item.kind == "section" and item.section in FILE_SECTIONS:
                section = self.tree.section(item.section)
                for entry in section.entries if section is not None else ():
                    whole[entry.identity] = entry
                continue
            identity = item.identity
            if identity is None:
                continue
            entry = self.tree.entry(identity)
            if entry is None:
                continue
            if item.kind == "entry":
                whole[identity] = entry
            elif item.kind == "hunk" and item.hunk_index is not None:
                hunk = entry.hunks[item.hunk_index]
                partial.setdefault(identity, {}).setdefault(item.hunk_index, set()).update(range(len(hunk.lines)))
            elif item.kind == "line" and item.hunk_index is not None and item.line_index is not None:
                partial.setdefault(identity, {}).setdefault(item.hunk_index, set()).add(item.line_index)
        for identity in whole:
            partial.pop(identity, None)
        return list(whole.values()), partial

    async def _confirm_markers(self, entry: StatusEntry) -> bool:
        """Ask before staging a worktree file that still has conflict markers."""
        try:
            text = (self.repo.root / entry.path).read_bytes().decode("utf-8", errors="surrogateescape")
        except OSError:
            return True
        if not has_conflict_markers(text):
            return True
        if self.confirm is None:
            logger.info("not staging %s: conflict markers present", entry.path)
            return False
        return await self.confirm(entry.path)

    async def _whole(self, action: str, entry: StatusEntry) -> tuple[bool, LazyStageError | None]:
        if action == "stage":
            return await self.applier.stage_paths([entry.path])
        if action == "unstage":
            paths = [entry.path, entry.orig_path] if entry.orig_path else [entry.path]
            return await self.applier.unstage_paths(paths)
        return await self.applier.discard_paths([entry.path], untracked=entry.classification == SECTION_UNTRACKED)

    async def _partial(self, action: str, entry: StatusEntry, lines_by_hunk: dict[int, set[int]]) -> tuple[bool, LazyStageError | None]:
        if entry.diff is None:
            return False, SelectionError(SELECTION_UNSUPPORTED, "Expand the file before selecting lines")
        spec = DiffSpec(repo_root=self.repo.root, files=(entry.diff,))
        selection = Selection.lines(0, lines_by_hunk)
        if action == "stage":
            return await self.applier.stage_selection(spec, None, selection)
        if action == "unstage":
            return await self.applier.unstage_selection(spec, None, selection)
        return await self.applier.discard_selection(spec, None, selection)

    async def _mutate_rows(self, action: str, start: int | None, end: int | None) -> tuple[int, LazyStageError | None]:
        if self.tree is None or not self.tree.rows:
            return 0, SelectionError(SELECTION_INVALID_ROW)
        start = self.cursor_row if start is None else start
        end = start if end is None else end
        start, end = min(start, end), max(start, end)
        if start < 0 or end >= len(self.tree.rows):
            return 0, SelectionError(SELECTION_INVALID_ROW)

        allowed = _ACTION_SECTIONS[action]
        planned, partial = self._plan(start, end)
        touched = {entry.classification for entry in planned} | {identity[0] for identity in partial}
        whole = [entry for entry in planned if entry.classification in allowed]
        targets = [(self.tree.entry(identity), lines) for identity, lines in partial.items() if identity[0] in allowed]
        if not whole and not targets:
            if action == "discard" and SECTION_STAGED in touched:
                return 0, SelectionError(SELECTION_UNSUPPORTED, "Staged changes cannot be discarded")
            return 0, SelectionError(SELECTION_NOTHING_TO_STAGE, _NOTHING_MESSAGES[action])

        done = 0
        first_error: LazyStageError | None = None
        for entry in whole:
            if action == "stage" and not await self._confirm_markers(entry):
                continue
            ok, error = await self._whole(action, entry)
            done += int(ok)
            first_error = first_error or error
        for entry, lines in targets:
            assert entry is not None
            ok, error = await self._partial(action, entry, lines)
            done += int(ok)
            first_error = first_error or error

        _, refresh_error = await self.refresh()
        return done, first_error or refresh_error

    async def stage_rows(self, start: int | None = None, end: int | None = None) -> tuple[int, LazyStageError | None]:
        """Stage entries, hunks or lines under rows ``start..end`` (inclusive)."""
        return await self._mutate_rows("stage", start, end)

    async def unstage_rows(self, start: int | None = None, end: int | None = None) -> tuple[int, LazyStageError | None]:
        return await self._mutate_rows("unstage", start, end)

    async def discard_rows(self, start: int | None = None, end: int | None = None) -> tuple[int, LazyStageError | None]:
        return await self._mutate_rows("discard", start, end)

    def entries(self, sections: Iterable[str] = FILE_SECTIONS) -> list[StatusEntry]:
        wanted = set(sections)
        return [entry for name, section in self._entries.items() if name in wanted for entry in section]


__all__ = ["CONFLICT_MARKER", "StatusController", "has_conflict_markers"]
