"""Ignore-glob cache for worktree watch filtering.

Patterns come from every ``.gitignore`` (scoped to its directory) and from
``$GIT_DIR/info/exclude``. Nothing is read until the first query; each
directory's patterns are loaded once and dropped by ``invalidate()`` when an
ignore file changes.
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
from pathlib import Path
import time

import pathspec
from pathspec.patterns.gitwildmatch import GitWildMatchPattern

IGNORE_CACHE_MAX = 64
IGNORE_CACHE_TTL_SECONDS = 2.0
IGNORE_FILENAME = ".gitignore"


def _read_patterns(path: Path) -> list[str]:
    try:
        text = path.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return []
    return text.splitlines()


class IgnoreGlobCache:
    """Answers "is this worktree path ignored?" from gitignore rules.

    The ``.git`` directory is always ignored. A path inside an ignored
    directory is ignored regardless of negations below it, as in git.
    """

    def __init__(self, root: Path, git_dir: Path | None = None) -> None:
        self.root = Path(root)
        self.git_dir = git_dir
        self._specs: dict[str, pathspec.PathSpec | None] = {}
        self._exclude: pathspec.PathSpec | None = None
        self._loaded_exclude = False
        self.loads = 0

    def invalidate(self) -> None:
        self._specs.clear()
        self._exclude = None
        self._loaded_exclude = False

    def _spec_for(self, directory: str) -> pathspec.PathSpec | None:
        if directory not in self._specs:
            source = self.root / directory / IGNORE_FILENAME if directory else self.root / IGNORE_FILENAME
            lines = _read_patterns(source)
            self._specs[directory] = pathspec.PathSpec.from_lines(GitWildMatchPattern, lines) if lines else None
            self.loads += 1
        return self._specs[directory]

    def _exclude_spec(self) -> pathspec.PathSpec | None:
        if not self._loaded_exclude:
            self._loaded_exclude = True
            if self.git_dir is not None:
                lines = _read_patterns(self.git_dir / "info" / "exclude")
                if lines:
                    self._exclude = pathspec.PathSpec.from_lines(GitWildMatchPattern, lines)
        return self._exclude

    @staticmethod
    def _last_match(spec: pathspec.PathSpec | None, rel: str) -> bool | None:
        if spec is None:
            return None
        result: bool | None = None
        for pattern in spec.patterns:
            if pattern.include is None:
                continue
            if pattern.match_file(rel) is not None:
                result = bool(pattern.include)
        return result

    def _matches(self, rel: str, is_dir: bool) -> bool:
        """Apply exclude, then each ``.gitignore`` from the root down."""
        candidate = f"{rel}/" if is_dir else rel
        ignored = self._last_match(self._exclude_spec(), candidate) or False
        parts = rel.split("/")
        for depth in range(len(parts)):
            directory = "/".join(parts[:depth])
            local = "/".join(parts[depth:])
            verdict = self._last_match(self._spec_for(directory), f"{local}/" if is_dir else local)
            if verdict is not None:
                ignored = verdict
        return ignored

    def is_ignored(self, rel_path: str, *, is_dir: bool = False) -> bool:
        rel = rel_path.strip("/")
        if not rel:
            return False
        parts = rel.split("/")
        if parts[0] == ".git":
            return True
        for depth in range(1, len(parts)):
            if self._matches("/".join(parts[:depth]), True):
                return True
        return self._matches(rel, is_dir)


@dataclass(frozen=True)
class _CacheEntry:
    cache: IgnoreGlobCache
    loaded_at: float


_IGNORE_CACHES: OrderedDict[str, _CacheEntry] = OrderedDict()


def clear_ignore_caches() -> None:
    _IGNORE_CACHES.clear()


def get_ignore_cache(root: Path, git_dir: Path | None = None) -> IgnoreGlobCache:
    """Return a shared cache for ``root`` with bounded staleness."""
    key = str(Path(root).resolve())
    now = time.monotonic()
    cached = _IGNORE_CACHES.get(key)
    if cached is not None and now - cached.loaded_at <= IGNORE_CACHE_TTL_SECONDS:
        _IGNORE_CACHES.move_to_end(key)
        return cached.cache

    cache = IgnoreGlobCache(Path(root), git_dir)
    _IGNORE_CACHES[key] = _CacheEntry(cache=cache, loaded_at=now)
    _IGNORE_CACHES.move_to_end(key)
    while len(_IGNORE_CACHES) > IGNORE_CACHE_MAX:
        _IGNORE_CACHES.popitem(last=False)
    return cache


__all__ = [
    "IGNORE_CACHE_TTL_SECONDS",
    "IGNORE_FILENAME",
    "IgnoreGlobCache",
    "clear_ignore_caches",
    "get_ignore_cache",
]
