"""Expansion state for the status tree, as pure reducer functions.

Each file entry is collapsed, shows hunk headers only, or is fully expanded;
``toggled_hunks`` flips individual hunks against that mode. Sections can be
collapsed as a whole. Visibility levels set everything at once:

1. section headers only
2. sections and file entries
3. file entries with hunk headers
4. everything expanded
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from typing import Literal

ExpansionMode = Literal["collapsed", "headers", "expanded"]

MODE_COLLAPSED: ExpansionMode = "collapsed"
MODE_HEADERS: ExpansionMode = "headers"
MODE_EXPANDED: ExpansionMode = "expanded"

MIN_LEVEL = 1
MAX_LEVEL = 4

_CYCLE = {MODE_COLLAPSED: MODE_HEADERS, MODE_HEADERS: MODE_EXPANDED, MODE_EXPANDED: MODE_COLLAPSED}


@dataclass(frozen=True)
class FileExpansion:
    mode: ExpansionMode = MODE_COLLAPSED
    toggled_hunks: frozenset[int] = frozenset()

    @property
    def is_open(self) -> bool:
        return self.mode != MODE_COLLAPSED


def mode_for_level(level: int) -> ExpansionMode:
    if level >= 4:
        return MODE_EXPANDED
    if level == 3:
        return MODE_HEADERS
    return MODE_COLLAPSED


@dataclass(frozen=True)
class ExpansionState:
    """Per-identity file expansion plus collapsed sections.

    Identities without an explicit entry use the level's default mode.
    """

    level: int = 2
    files: dict[tuple[str, str], FileExpansion] = field(default_factory=dict)
    collapsed_sections: frozenset[str] = frozenset()

    def file_state(self, identity: tuple[str, str]) -> FileExpansion:
        state = self.files.get(identity)
        if state is None:
            return FileExpansion(mode_for_level(self.level))
        return state

    def is_open(self, identity: tuple[str, str]) -> bool:
        return self.file_state(identity).is_open

    def is_section_collapsed(self, section: str) -> bool:
        # Level 1 collapses every section; toggling flips that default.
        return (section in self.collapsed_sections) != (self.level <= MIN_LEVEL)


def _with_file(state: ExpansionState, identity: tuple[str, str], value: FileExpansion) -> ExpansionState:
    files = dict(state.files)
    files[identity] = value
    return replace(state, files=files)


def toggle_file(state: ExpansionState, identity: tuple[str, str]) -> ExpansionState:
    """Open a collapsed entry fully; close an open one."""
    current = state.file_state(identity)
    mode = MODE_EXPANDED if current.mode == MODE_COLLAPSED else MODE_COLLAPSED
    return _with_file(state, identity, FileExpansion(mode))


def cycle_file(state: ExpansionState, identity: tuple[str, str]) -> ExpansionState:
    """collapsed -> headers -> expanded -> collapsed."""
    current = state.file_state(identity)
    return _with_file(state, identity, FileExpansion(_CYCLE[current.mode]))


def toggle_hunk(state: ExpansionState, identity: tuple[str, str], hunk_index: int) -> ExpansionState:
    current = state.file_state(identity)
    if current.mode == MODE_COLLAPSED:
        return state
    return _with_file(state, identity, replace(current, toggled_hunks=current.toggled_hunks ^ {hunk_index}))


def toggle_section(state: ExpansionState, section: str) -> ExpansionState:
    return replace(state, collapsed_sections=state.collapsed_sections ^ {section})


def with_level(state: ExpansionState, level: int) -> ExpansionState:
    """Reset every entry and section to what ``level`` shows."""
    level = max(MIN_LEVEL, min(MAX_LEVEL, int(level)))
    return replace(state, level=level, files={}, collapsed_sections=frozenset())


def restore_expansion(
    state: ExpansionState,
    identities: Iterable[tuple[str, str]],
    hunk_counts: dict[tuple[str, str], int] | None = None,
) -> ExpansionState:
    """Carry expansion over to a new entry set, matching by path.

    An identity that is still present keeps its state. A path that moved to
    another section (for example from unstaged to staged) inherits the state
    of the identity it replaced. Everything else is dropped. Toggled hunks
    beyond the new hunk count are pruned.
    """
    live = list(identities)
    live_set = set(live)
    by_path: dict[str, FileExpansion] = {}
    for identity, value in state.files.items():
        if identity not in live_set:
            by_path.setdefault(identity[1], value)

    files: dict[tuple[str, str], FileExpansion] = {}
    for identity in live:
        value = state.files.get(identity)
        if value is None:
            value = by_path.get(identity[1])
        if value is None:
            continue
        if hunk_counts is not None and value.toggled_hunks:
            count = hunk_counts.get(identity, 0)
            value = replace(value, toggled_hunks=frozenset(h for h in value.toggled_hunks if h < count))
        files[identity] = value
    return replace(state, files=files)


__all__ = [
    "ExpansionMode",
    "ExpansionState",
    "FileExpansion",
    "MAX_LEVEL",
    "MIN_LEVEL",
    "MODE_COLLAPSED",
    "MODE_EXPANDED",
    "MODE_HEADERS",
    "cycle_file",
    "mode_for_level",
    "restore_expansion",
    "toggle_file",
    "toggle_hunk",
    "toggle_section",
    "with_level",
]
