"""Repository change watching: stat snapshots, ignore globs, debounced reactions."""

from __future__ import annotations

from .ignore import IgnoreGlobCache, clear_ignore_caches, get_ignore_cache
from .signature import diff_snapshots, git_control_snapshot, snapshot_signature, worktree_snapshot
from .watcher import ChangeWatcher, is_git_noise

__all__ = [
    "ChangeWatcher",
    "IgnoreGlobCache",
    "clear_ignore_caches",
    "diff_snapshots",
    "get_ignore_cache",
    "git_control_snapshot",
    "is_git_noise",
    "snapshot_signature",
    "worktree_snapshot",
]
