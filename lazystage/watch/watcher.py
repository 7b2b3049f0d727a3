"""Poll-based change watcher feeding the stale indicator and auto-refresh.

Each poll snapshots git control files (and optionally the worktree),
drops noise, suppresses changes that follow our own git mutations, and
kicks two independent debouncers.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
import logging
import time

from ..async_utils import Debouncer
from ..config import WatcherConfig
from ..errors import WatcherError
from ..repo_state import RepoState
from .ignore import IGNORE_FILENAME, IgnoreGlobCache, get_ignore_cache
from .signature import (
    GIT_PREFIX,
    WORK_PREFIX,
    Snapshot,
    diff_snapshots,
    git_control_snapshot,
    snapshot_signature,
    worktree_snapshot,
)

logger = logging.getLogger(__name__)

GIT_NOISE_NAMES = frozenset({"ORIG_HEAD", "FETCH_HEAD", "COMMIT_EDITMSG"})


def is_git_noise(rel_path: str) -> bool:
    """Git dir churn that never changes what the status view shows."""
    name = rel_path.rstrip("/").rsplit("/", 1)[-1]
    return name in GIT_NOISE_NAMES or name.endswith(".lock") or name.endswith("~") or name.isdigit()


class ChangeWatcher:
    def __init__(
        self,
        repo: RepoState,
        *,
        on_stale: Callable[[], object] | None = None,
        on_refresh: Callable[[], object] | None = None,
        config: WatcherConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.repo = repo
        self.config = config or repo.config.watcher
        self.clock = clock
        self.error: WatcherError | None = None
        self._stale = Debouncer(self.config.stale_debounce_ms, on_stale or (lambda: None))
        self._refresh = Debouncer(self.config.auto_refresh_debounce_ms, on_refresh or (lambda: None))
        self._ignore: IgnoreGlobCache | None = None
        self._snapshot: Snapshot = {}
        self._digest = ""
        self._task: asyncio.Task | None = None
        self._close_registered = False

    @property
    def active(self) -> bool:
        return self._task is not None

    @property
    def ignore(self) -> IgnoreGlobCache:
        if self._ignore is None:
            self._ignore = get_ignore_cache(self.repo.root, self.repo.git_dir)
        return self._ignore

    def _take_snapshot(self) -> Snapshot:
        git_dir = self.repo.git_dir
        if git_dir is None:
            raise WatcherError(f"no git directory for {self.repo.root}")
        try:
            snapshot = git_control_snapshot(git_dir)
        except OSError as exc:
            raise WatcherError(f"cannot watch {git_dir}: {exc}") from exc
        if self.config.watch_worktree:
            snapshot.update(worktree_snapshot(self.repo.root, self.ignore))
        return snapshot

    def start(self) -> bool:
        """Take the baseline snapshot and start polling; idempotent.

        Returns ``False`` (and logs) if watching is disabled or setup fails.
        """
        if self._task is not None:
            return True
        if not self.config.enabled:
            return False
        try:
            self._snapshot = self._take_snapshot()
            self._digest = snapshot_signature(self._snapshot)
        except WatcherError as exc:
            self.error = exc
            logger.warning("change watching disabled: %s", exc)
            return False
        self.error = None
        self._task = asyncio.ensure_future(self._poll_loop())
        if not self._close_registered:
            self.repo.on_close(self.stop)
            self._close_registered = True
        return True

    def stop(self) -> None:
        """Stop polling and cancel pending debounced reactions; idempotent."""
        self._stale.cancel()
        self._refresh.cancel()
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def _poll_loop(self) -> None:
        interval = max(self.config.poll_interval_ms, 10) / 1000.0
        while True:
            await asyncio.sleep(interval)
            try:
                self.poll()
            except WatcherError as exc:
                self.error = exc
                logger.warning("change watching stopped: %s", exc)
                self._task = None
                return

    def poll(self) -> list[str]:
        """Compare against the previous snapshot and react to relevant changes."""
        current = self._take_snapshot()
        digest = snapshot_signature(current)
        if digest == self._digest:
            return []
        changed = diff_snapshots(self._snapshot, current)
        self._snapshot, self._digest = current, digest
        return self.handle_changes(changed)

    def in_cooldown(self) -> bool:
        last = self.repo.executor.last_operation_time
        if last is None:
            return False
        return (self.clock() - last) * 1000.0 < self.config.cooldown_ms

    def handle_changes(self, keys: list[str]) -> list[str]:
        relevant: list[str] = []
        for key in keys:
            if key.startswith(GIT_PREFIX):
                rel = key[len(GIT_PREFIX) :]
                if is_git_noise(rel):
                    logger.debug("watch: ignoring git noise %s", rel)
                    continue
                if rel == "info/exclude":
                    self.ignore.invalidate()
            elif key.startswith(WORK_PREFIX):
                rel = key[len(WORK_PREFIX) :]
                if rel.rsplit("/", 1)[-1] == IGNORE_FILENAME:
                    self.ignore.invalidate()
            relevant.append(key)

        if not relevant:
            return []
        if self.in_cooldown():
            logger.debug("watch: %d change(s) within cooldown of our own git call", len(relevant))
            return []

        logger.debug("watch: changes %s", ", ".join(relevant[:5]))
        if self.config.stale_indicator:
            self._stale.trigger()
        if self.config.auto_refresh:
            self._refresh.trigger()
        return relevant


__all__ = ["ChangeWatcher", "GIT_NOISE_NAMES", "is_git_noise"]
