"""Asynchronous git process runner.

Each call spawns one ``git`` child process (no shell) and resolves to a
``GitResult``. Index/worktree mutations are serialized per repository via
``RepoLock``; reads share the lock and queue behind mutations.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass
import logging
import os
from pathlib import Path
import time
from typing import Protocol

from ..errors import ProcessError
from .history import GitHistory, GitHistoryEntry

logger = logging.getLogger(__name__)

GIT_BASE_FLAGS = (
    "--no-pager",
    "--literal-pathspecs",
    "--no-optional-locks",
    "-c",
    "core.quotepath=false",
    "-c",
    "color.ui=never",
)
SPAWN_FAILED_EXIT_CODE = 127
TIMEOUT_EXIT_CODE = 124


@dataclass(frozen=True)
class GitResult:
    args: tuple[str, ...]
    stdout: str
    stderr: str
    exit_code: int

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    def error(self) -> ProcessError | None:
        """Return a ``ProcessError`` carrying stderr verbatim, or ``None`` on success."""
        if self.ok:
            return None
        return ProcessError(self.args, self.exit_code, self.stderr)


class GitRunner(Protocol):
    """Method set the core needs from a git executor.

    ``GitExecutor`` implements it; tests may pass any object with the same
    shape (usually a ``GitExecutor`` subclass overriding ``run``).
    """

    repo_root: Path

    @property
    def last_operation_time(self) -> float | None: ...

    async def run(
        self,
        args: Sequence[str],
        *,
        cwd: Path | None = None,
        stdin: str | None = None,
        timeout_seconds: float | None = None,
    ) -> GitResult: ...

    async def read(self, args: Sequence[str], *, stdin: str | None = None) -> GitResult: ...

    async def mutate(self, args: Sequence[str], *, stdin: str | None = None) -> GitResult: ...

    def mutation(self): ...


class RepoLock:
    """Shared/exclusive lock for one repository.

    Any number of readers run together. A mutation waits for running readers,
    blocks new readers while it waits or runs, and excludes other mutations.
    """

    def __init__(self) -> None:
        self._cond = asyncio.Condition()
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @property
    def mutation_in_flight(self) -> bool:
        return self._writer

    @asynccontextmanager
    async def reading(self) -> AsyncIterator[None]:
        async with self._cond:
            await self._cond.wait_for(lambda: not self._writer and self._writers_waiting == 0)
            self._readers += 1
        try:
            yield
        finally:
            async with self._cond:
                self._readers -= 1
                self._cond.notify_all()

    @asynccontextmanager
    async def writing(self) -> AsyncIterator[None]:
        async with self._cond:
            self._writers_waiting += 1
            try:
                await self._cond.wait_for(lambda: not self._writer and self._readers == 0)
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            async with self._cond:
                self._writer = False
                self._cond.notify_all()


def _git_environment() -> dict[str, str]:
    env = dict(os.environ)
    env["GIT_TERMINAL_PROMPT"] = "0"
    env["LC_ALL"] = "C"
    env["LANGUAGE"] = "C"
    env.pop("GIT_PAGER", None)
    return env


class GitExecutor:
    """Run git commands for one repository without blocking the event loop."""

    def __init__(
        self,
        repo_root: Path,
        *,
        git_binary: str = "git",
        timeout_seconds: float | None = None,
        history: GitHistory | None = None,
        lock: RepoLock | None = None,
    ) -> None:
        self.repo_root = Path(repo_root)
        self.git_binary = git_binary
        self.timeout_seconds = timeout_seconds
        self.history = history if history is not None else GitHistory()
        self.lock = lock if lock is not None else RepoLock()
        self._last_operation_time: float | None = None

    @property
    def last_operation_time(self) -> float | None:
        """Monotonic time of the most recent mutation start or finish."""
        return self._last_operation_time

    def touch(self) -> None:
        self._last_operation_time = time.monotonic()

    async def run(
        self,
        args: Sequence[str],
        *,
        cwd: Path | None = None,
        stdin: str | None = None,
        timeout_seconds: float | None = None,
    ) -> GitResult:
        """Spawn ``git <flags> <args>`` and wait for it.

        The child is shielded from task cancellation so it always runs to
        completion; only ``timeout_seconds`` (reads) kills it early.
        """
        argv = (self.git_binary, *GIT_BASE_FLAGS, *args)
        workdir = Path(cwd) if cwd is not None else self.repo_root
        started_at = time.time()
        started = time.monotonic()
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                cwd=str(workdir),
                stdin=asyncio.subprocess.PIPE if stdin is not None else asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=_git_environment(),
            )
        except OSError as exc:
            result = GitResult(tuple(args), "", str(exc), SPAWN_FAILED_EXIT_CODE)
            self._record(result, workdir, started_at, started)
            return result

        payload = stdin.encode("utf-8", errors="surrogateescape") if stdin is not None else None
        communicate = asyncio.ensure_future(proc.communicate(payload))
        try:
            if timeout_seconds is None:
                stdout_bytes, stderr_bytes = await asyncio.shield(communicate)
            else:
                stdout_bytes, stderr_bytes = await asyncio.wait_for(asyncio.shield(communicate), timeout_seconds)
        except asyncio.TimeoutError:
            proc.kill()
            await communicate
            result = GitResult(
                tuple(args),
                "",
                f"git {' '.join(args)} timed out after {timeout_seconds:.1f}s",
                TIMEOUT_EXIT_CODE,
            )
        else:
            result = GitResult(
                tuple(args),
                stdout_bytes.decode("utf-8", errors="surrogateescape"),
                stderr_bytes.decode("utf-8", errors="replace"),
                proc.returncode if proc.returncode is not None else -1,
            )
        self._record(result, workdir, started_at, started)
        return result

    async def read(self, args: Sequence[str], *, stdin: str | None = None) -> GitResult:
        """Run a read-only command; queues behind any in-flight mutation."""
        async with self.lock.reading():
            return await self.run(args, stdin=stdin, timeout_seconds=self.timeout_seconds)

    async def mutate(self, args: Sequence[str], *, stdin: str | None = None) -> GitResult:
        """Run one index/worktree-mutating command exclusively."""
        async with self.mutation():
            return await self.run(args, stdin=stdin)

    @asynccontextmanager
    async def mutation(self) -> AsyncIterator[GitExecutor]:
        """Hold the exclusive side of the lock across several ``run`` calls."""
        async with self.lock.writing():
            self.touch()
            try:
                yield self
            finally:
                self.touch()

    def _record(self, result: GitResult, workdir: Path, started_at: float, started: float) -> None:
        duration_ms = (time.monotonic() - started) * 1000.0
        logger.debug("git %s -> %d (%.1fms)", " ".join(result.args), result.exit_code, duration_ms)
        self.history.add(
            GitHistoryEntry(
                args=result.args,
                cwd=str(workdir),
                exit_code=result.exit_code,
                stdout=result.stdout,
                stderr=result.stderr,
                started_at=started_at,
                duration_ms=duration_ms,
            )
        )


async def resolve_git_paths(path: Path, *, git_binary: str = "git") -> tuple[Path | None, Path | None]:
    """Resolve repository root and git-dir for ``path``.

    Uses ``git rev-parse --show-toplevel --absolute-git-dir`` and returns
    ``(None, None)`` if git is unavailable or ``path`` is not in a repo.
    """
    start = Path(path)
    if start.is_file():
        start = start.parent
    probe = GitExecutor(start, git_binary=git_binary)
    result = await probe.run(["rev-parse", "--show-toplevel", "--absolute-git-dir"], timeout_seconds=5.0)
    if not result.ok:
        return None, None

    lines = [line.strip() for line in result.stdout.splitlines() if line.strip()]
    if len(lines) < 2:
        return None, None
    return Path(lines[0]).resolve(), Path(lines[1]).resolve()


__all__ = [
    "GIT_BASE_FLAGS",
    "GitExecutor",
    "GitResult",
    "GitRunner",
    "RepoLock",
    "resolve_git_paths",
]
