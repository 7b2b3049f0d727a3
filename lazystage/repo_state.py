"""Explicit per-repository state with an open/close lifecycle.

A ``RepoState`` is created the first time a repository is opened and torn
down when its last user closes it. Every component receives it by reference
instead of reading any global.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
import logging
from pathlib import Path

from .config import AppConfig
from .errors import LazyStageError
from .git.executor import GitExecutor, resolve_git_paths
from .git.history import GitHistory
from .git.snapshot import RepoSnapshot

logger = logging.getLogger(__name__)

SnapshotListener = Callable[["RepoState"], None]


@dataclass
class RepoState:
    root: Path
    git_dir: Path | None
    executor: GitExecutor
    config: AppConfig = field(default_factory=AppConfig)
    snapshot: RepoSnapshot | None = None
    refcount: int = 0
    _listeners: list[SnapshotListener] = field(default_factory=list, repr=False)
    _teardown: list[Callable[[], None]] = field(default_factory=list, repr=False)

    @classmethod
    def for_root(cls, root: Path, git_dir: Path | None, config: AppConfig | None = None) -> RepoState:
        config = config or AppConfig()
        executor = GitExecutor(
            root,
            git_binary=config.git.git_binary,
            timeout_seconds=config.git.timeout_seconds,
            history=GitHistory(config.git.history_size),
        )
        return cls(root=root, git_dir=git_dir, executor=executor, config=config)

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def on_close(self, callback: Callable[[], None]) -> None:
        """Run ``callback`` when the last user closes this repository."""
        self._teardown.append(callback)

    def set_snapshot(self, snapshot: RepoSnapshot) -> None:
        self.snapshot = snapshot
        for listener in list(self._listeners):
            listener(self)

    def teardown(self) -> None:
        callbacks, self._teardown = self._teardown, []
        for callback in reversed(callbacks):
            callback()
        self._listeners.clear()
        self.snapshot = None


class RepoRegistry:
    """Reference-counted ``RepoState`` instances keyed by repository root."""

    def __init__(self, config: AppConfig | None = None) -> None:
        self.config = config
        self._states: dict[Path, RepoState] = {}

    def __len__(self) -> int:
        return len(self._states)

    def get(self, root: Path) -> RepoState | None:
        return self._states.get(Path(root).resolve())

    async def open(self, path: Path) -> tuple[RepoState | None, LazyStageError | None]:
        config = self.config or AppConfig.load()
        root, git_dir = await resolve_git_paths(Path(path), git_binary=config.git.git_binary)
        if root is None:
            return None, LazyStageError(f"{path} is not inside a git repository")
        return self.open_root(root, git_dir, config), None

    def open_root(self, root: Path, git_dir: Path | None, config: AppConfig | None = None) -> RepoState:
        key = Path(root).resolve()
        state = self._states.get(key)
        if state is None:
            state = RepoState.for_root(key, git_dir, config or self.config)
            self._states[key] = state
            logger.debug("opened repository %s", key)
        state.refcount += 1
        return state

    def close(self, state: RepoState) -> None:
        key = state.root.resolve()
        if self._states.get(key) is not state:
            return
        state.refcount -= 1
        if state.refcount > 0:
            return
        del self._states[key]
        state.teardown()
        logger.debug("closed repository %s", key)


__all__ = ["RepoRegistry", "RepoState"]
