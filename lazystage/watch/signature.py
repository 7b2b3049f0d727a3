"""Stat snapshots of git control files and the working tree.

Poll-based change detection: each poll takes a ``{key: stat tuple}``
snapshot and compares it with the previous one. Keys are ``git:<relpath>``
for entries under the git dir and ``work:<relpath>`` for worktree files.
"""

from __future__ import annotations

import hashlib
import os
from pathlib import Path

from .ignore import IgnoreGlobCache

StatSignature = tuple[str, int, int, int]
Snapshot = dict[str, StatSignature]

GIT_PREFIX = "git:"
WORK_PREFIX = "work:"

# Top-level git dir subdirectories that never affect status.
_GIT_SKIP_DIRS = frozenset({"objects", "logs", "hooks", "info", "lfs", "modules", "worktrees"})
_GIT_WALK_DIRS = ("refs", "rebase-merge", "rebase-apply")


def _update_digest(digest, token: str) -> None:
    digest.update(token.encode("utf-8", errors="surrogateescape"))
    digest.update(b"\0")


def _entry_signature(entry: os.DirEntry) -> StatSignature:
    try:
        st = entry.stat(follow_symlinks=False)
    except OSError:
        return ("error", 0, 0, 0)
    return ("ok", st.st_mtime_ns, st.st_size, st.st_mode)


def _walk_files(directory: Path, prefix: str, snapshot: Snapshot) -> None:
    try:
        with os.scandir(directory) as entries:
            children = list(entries)
    except OSError:
        return
    for child in children:
        rel = f"{prefix}{child.name}"
        try:
            is_dir = child.is_dir(follow_symlinks=False)
        except OSError:
            is_dir = False
        if is_dir:
            _walk_files(Path(child.path), f"{rel}/", snapshot)
        else:
            snapshot[GIT_PREFIX + rel] = _entry_signature(child)


def git_control_snapshot(git_dir: Path) -> Snapshot:
    """Top-level git dir files (index, HEAD, MERGE_HEAD, ...) plus refs/**.

    Raises ``OSError`` when ``git_dir`` itself cannot be listed.
    """
    snapshot: Snapshot = {}
    with os.scandir(git_dir) as entries:
        children = list(entries)
    for child in children:
        try:
            is_dir = child.is_dir(follow_symlinks=False)
        except OSError:
            continue
        if is_dir:
            if child.name in _GIT_WALK_DIRS:
                _walk_files(Path(child.path), f"{child.name}/", snapshot)
            elif child.name not in _GIT_SKIP_DIRS:
                snapshot[GIT_PREFIX + child.name + "/"] = _entry_signature(child)
            continue
        snapshot[GIT_PREFIX + child.name] = _entry_signature(child)
    return snapshot


def worktree_snapshot(root: Path, ignore: IgnoreGlobCache) -> Snapshot:
    """Every non-ignored worktree file; ignored directories are not descended."""
    snapshot: Snapshot = {}
    stack: list[tuple[Path, str]] = [(root, "")]
    while stack:
        directory, prefix = stack.pop()
        try:
            with os.scandir(directory) as entries:
                children = list(entries)
        except OSError:
            continue
        for child in children:
            rel = f"{prefix}{child.name}"
            try:
                is_dir = child.is_dir(follow_symlinks=False)
            except OSError:
                is_dir = False
            if ignore.is_ignored(rel, is_dir=is_dir):
                continue
            if is_dir:
                stack.append((Path(child.path), f"{rel}/"))
            else:
                snapshot[WORK_PREFIX + rel] = _entry_signature(child)
    return snapshot


def diff_snapshots(old: Snapshot, new: Snapshot) -> list[str]:
    """Keys added, removed or changed between two snapshots, sorted."""
    changed = {key for key, value in new.items() if old.get(key) != value}
    changed.update(key for key in old if key not in new)
    return sorted(changed)


def snapshot_signature(snapshot: Snapshot) -> str:
    """Digest of a snapshot, for cheap equality checks between polls."""
    digest = hashlib.blake2b(digest_size=20)
    for key in sorted(snapshot):
        state, mtime_ns, size, mode = snapshot[key]
        _update_digest(digest, f"{key}:{state}:{mtime_ns}:{size}:{mode}")
    return digest.hexdigest()


__all__ = [
    "GIT_PREFIX",
    "Snapshot",
    "WORK_PREFIX",
    "diff_snapshots",
    "git_control_snapshot",
    "snapshot_signature",
    "worktree_snapshot",
]
