"""Status tree: entries, expansion, cursor anchoring and the refresh machine."""

from __future__ import annotations

from .controller import StatusController, has_conflict_markers
from .cursor import CursorAnchor, capture_anchor, restore_cursor
from .expansion import ExpansionState, FileExpansion, restore_expansion
from .machine import IDLE, REFRESHING, RENDERED, STALE, RefreshMachine
from .tree import StatusEntry, StatusRow, StatusTree, build_status_tree, classify_entries

__all__ = [
    "CursorAnchor",
    "ExpansionState",
    "FileExpansion",
    "IDLE",
    "REFRESHING",
    "RENDERED",
    "RefreshMachine",
    "STALE",
    "StatusController",
    "StatusEntry",
    "StatusRow",
    "StatusTree",
    "build_status_tree",
    "capture_anchor",
    "classify_entries",
    "has_conflict_markers",
    "restore_cursor",
    "restore_expansion",
]
