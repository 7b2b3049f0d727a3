"""Diff producers: which git command feeds which view.

Each ``DiffSource`` kind maps to one git diff invocation with unlimited
context, so every hunk spans the whole file. Unstaged and worktree sources
also synthesize untracked files as all-insertion diffs.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
import os
from pathlib import Path
import stat
from typing import Literal

from ..errors import ParseError, ProcessError
from ..git.executor import GitRunner
from .model import DiffSpec, FilePair
from .parser import parse_file_pairs, parse_untracked_content
from .three_way import ThreeWayFile, merge_file_lists

logger = logging.getLogger(__name__)

DiffKind = Literal["staged", "unstaged", "worktree", "commit", "range", "stash", "three_way", "merge"]

FULL_CONTEXT = 999999
DIFF_FLAGS = ("--no-color", "--no-ext-diff", "--src-prefix=a/", "--dst-prefix=b/", "-M")

REF_HEAD = "HEAD"
REF_INDEX = "INDEX"
REF_WORKTREE = "WORKTREE"
REF_OURS = "OURS"
REF_BASE = "BASE"
REF_THEIRS = "THEIRS"

_SIDE_REFS: dict[str, tuple[str, ...]] = {
    "staged": (REF_HEAD, REF_INDEX),
    "unstaged": (REF_INDEX, REF_WORKTREE),
    "worktree": (REF_HEAD, REF_WORKTREE),
    "three_way": (REF_HEAD, REF_INDEX, REF_WORKTREE),
    "merge": (REF_OURS, REF_BASE, REF_THEIRS),
}
THREE_COLUMN_KINDS = frozenset({"three_way", "merge"})


@dataclass(frozen=True)
class DiffSource:
    kind: DiffKind
    ref: str | None = None
    paths: tuple[str, ...] = ()
    include_untracked: bool = True

    @classmethod
    def staged(cls, *paths: str) -> DiffSource:
        return cls("staged", paths=tuple(paths))

    @classmethod
    def unstaged(cls, *paths: str) -> DiffSource:
        return cls("unstaged", paths=tuple(paths))

    @classmethod
    def worktree(cls, *paths: str) -> DiffSource:
        return cls("worktree", paths=tuple(paths))

    @classmethod
    def commit(cls, ref: str, *paths: str) -> DiffSource:
        return cls("commit", ref=ref, paths=tuple(paths))

    @classmethod
    def commit_range(cls, revisions: str, *paths: str) -> DiffSource:
        return cls("range", ref=revisions, paths=tuple(paths))

    @classmethod
    def stash(cls, ref: str = "stash@{0}") -> DiffSource:
        return cls("stash", ref=ref)

    @classmethod
    def three_way(cls, *paths: str) -> DiffSource:
        return cls("three_way", paths=tuple(paths))

    @classmethod
    def merge(cls, *paths: str) -> DiffSource:
        return cls("merge", paths=tuple(paths))

    @property
    def is_three_column(self) -> bool:
        return self.kind in THREE_COLUMN_KINDS

    @property
    def side_refs(self) -> tuple[str, ...]:
        """Content labels per column, e.g. ``("HEAD", "INDEX")`` for staged."""
        if self.kind in _SIDE_REFS:
            return _SIDE_REFS[self.kind]
        if self.kind == "range" and self.ref and ".." in self.ref:
            left, right = self.ref.replace("...", "..").split("..", 1)
            return (left or REF_HEAD, right or REF_HEAD)
        base = self.ref or REF_HEAD
        return (f"{base}^", base)

    @property
    def editable_ref(self) -> str | None:
        """Ref whose column may be edited and saved back, if any."""
        if self.kind == "staged":
            return REF_INDEX
        if self.kind in {"unstaged", "worktree", "three_way"}:
            return REF_WORKTREE
        return None

    def diff_args(self, context_lines: int = FULL_CONTEXT) -> list[str]:
        """Git argv (without global flags) producing this source's diff."""
        context = f"-U{context_lines}"
        pathspec = ["--", *self.paths] if self.paths else []
        if self.kind == "staged":
            return ["diff", "--cached", *DIFF_FLAGS, context, *pathspec]
        if self.kind == "unstaged":
            return ["diff", *DIFF_FLAGS, context, *pathspec]
        if self.kind == "worktree":
            return ["diff", "HEAD", *DIFF_FLAGS, context, *pathspec]
        if self.kind == "commit":
            return ["show", "--format=", *DIFF_FLAGS, context, self.ref or REF_HEAD, *pathspec]
        if self.kind == "range":
            return ["diff", *DIFF_FLAGS, context, self.ref or REF_HEAD, *pathspec]
        if self.kind == "stash":
            return ["stash", "show", "-p", *DIFF_FLAGS, context, self.ref or "stash@{0}"]
        raise ValueError(f"{self.kind} diffs are built from several commands")


def diff_title(source: DiffSource, file_count: int) -> str:
    """Buffer title such as ``Diff staged (3 files)`` or ``Diff HEAD~1 (empty)``."""
    if source.kind in {"commit", "range", "stash"}:
        label = source.ref or source.kind
    else:
        label = source.kind.replace("_", "-")
    if file_count == 0:
        suffix = " (empty)"
    elif file_count == 1:
        suffix = " (1 file)"
    else:
        suffix = f" ({file_count} files)"
    return f"Diff {label}{suffix}"


def _read_untracked(repo_root: Path, path: str) -> FilePair | None:
    target = repo_root / path
    try:
        st = target.lstat()
    except OSError as exc:
        logger.debug("untracked file vanished %s: %s", path, exc)
        return None
    if stat.S_ISLNK(st.st_mode):
        return parse_untracked_content(path, os.readlink(target), mode="120000")
    if not stat.S_ISREG(st.st_mode):
        return None
    mode = "100755" if st.st_mode & 0o111 else "100644"
    try:
        content = target.read_bytes().decode("utf-8", errors="surrogateescape")
    except OSError as exc:
        logger.debug("cannot read untracked file %s: %s", path, exc)
        return None
    return parse_untracked_content(path, content, mode=mode)


async def list_untracked(executor: GitRunner, paths: tuple[str, ...] = ()) -> tuple[list[str], ProcessError | None]:
    args = ["ls-files", "--others", "--exclude-standard", "-z"]
    if paths:
        args.extend(["--", *paths])
    result = await executor.read(args)
    if not result.ok:
        return [], result.error()
    return [item for item in result.stdout.split("\0") if item], None


def untracked_file_pairs(repo_root: Path, paths: list[str]) -> list[FilePair]:
    pairs: list[FilePair] = []
    for path in paths:
        pair = _read_untracked(repo_root, path)
        if pair is not None:
            pairs.append(pair)
    return pairs


async def fetch_diff_spec(
    executor: GitRunner,
    source: DiffSource,
    *,
    context_lines: int = FULL_CONTEXT,
) -> tuple[DiffSpec | None, ProcessError | None]:
    """Run the source's diff command and parse it into a ``DiffSpec``."""
    if source.is_three_column:
        raise ValueError("use fetch_three_way for three-column sources")

    result = await executor.read(source.diff_args(context_lines))
    if not result.ok:
        return None, result.error()
    pairs, errors = parse_file_pairs(result.stdout)

    if source.include_untracked and source.kind in {"unstaged", "worktree"}:
        untracked, error = await list_untracked(executor, source.paths)
        if error is not None:
            return None, error
        pairs.extend(untracked_file_pairs(executor.repo_root, untracked))

    spec = DiffSpec(repo_root=executor.repo_root, files=tuple(pairs), errors=tuple(errors), source=source)
    return spec, None


@dataclass(frozen=True)
class ThreeWayDiff:
    source: DiffSource
    files: tuple[ThreeWayFile, ...] = ()
    errors: tuple[ParseError, ...] = ()


async def _unmerged_paths(executor: GitRunner, paths: tuple[str, ...]) -> tuple[dict[str, set[int]], ProcessError | None]:
    args = ["ls-files", "-u", "-z"]
    if paths:
        args.extend(["--", *paths])
    result = await executor.read(args)
    if not result.ok:
        return {}, result.error()
    stages: dict[str, set[int]] = {}
    for record in result.stdout.split("\0"):
        # <mode> SP <object> SP <stage> TAB <path>
        meta, _, path = record.partition("\t")
        parts = meta.split(" ")
        if not path or len(parts) != 3 or not parts[2].isdigit():
            continue
        stages.setdefault(path, set()).add(int(parts[2]))
    return stages, None


async def _blob_diff(executor: GitRunner, old: str, new: str) -> tuple[FilePair | None, list[ParseError], ProcessError | None]:
    result = await executor.read(["diff", *DIFF_FLAGS, f"-U{FULL_CONTEXT}", old, new])
    if result.exit_code not in (0, 1):
        return None, [], result.error()
    pairs, errors = parse_file_pairs(result.stdout)
    return (pairs[0] if pairs else None), errors, None


async def fetch_three_way(executor: GitRunner, source: DiffSource) -> tuple[ThreeWayDiff | None, ProcessError | None]:
    """Fetch the two diffs behind a three-column view and join them.

    ``three_way``: staged (HEAD->INDEX) and unstaged (INDEX->WORKTREE).
    ``merge``: OURS->BASE and BASE->THEIRS for every unmerged path whose
    three stages all exist; other unmerged paths are listed without content.
    """
    if source.kind == "three_way":
        staged_source = DiffSource("staged", paths=source.paths)
        unstaged_source = DiffSource("unstaged", paths=source.paths, include_untracked=False)
        staged_result, unstaged_result = await asyncio.gather(
            executor.read(staged_source.diff_args()),
            executor.read(unstaged_source.diff_args()),
        )
        for result in (staged_result, unstaged_result):
            if not result.ok:
                return None, result.error()
        staged_pairs, staged_errors = parse_file_pairs(staged_result.stdout)
        unstaged_pairs, unstaged_errors = parse_file_pairs(unstaged_result.stdout)
        files = merge_file_lists(staged_pairs, unstaged_pairs)
        return ThreeWayDiff(source, tuple(files), tuple(staged_errors + unstaged_errors)), None

    if source.kind != "merge":
        raise ValueError(f"{source.kind} is not a three-column source")

    stages, error = await _unmerged_paths(executor, source.paths)
    if error is not None:
        return None, error

    files: list[ThreeWayFile] = []
    errors: list[ParseError] = []
    for path in sorted(stages):
        if not {1, 2, 3} <= stages[path]:
            logger.debug("merge view: %s lacks a stage (%s)", path, sorted(stages[path]))
            files.append(ThreeWayFile(path))
            continue
        (ours, ours_errors, ours_error), (theirs, theirs_errors, theirs_error) = await asyncio.gather(
            _blob_diff(executor, f":2:{path}", f":1:{path}"),
            _blob_diff(executor, f":1:{path}", f":3:{path}"),
        )
        if ours_error is not None:
            return None, ours_error
        if theirs_error is not None:
            return None, theirs_error
        errors.extend(ours_errors)
        errors.extend(theirs_errors)
        files.append(ThreeWayFile(path, first=ours, second=theirs))
    return ThreeWayDiff(source, tuple(files), tuple(errors)), None


__all__ = [
    "DIFF_FLAGS",
    "DiffKind",
    "DiffSource",
    "FULL_CONTEXT",
    "REF_BASE",
    "REF_HEAD",
    "REF_INDEX",
    "REF_OURS",
    "REF_THEIRS",
    "REF_WORKTREE",
    "ThreeWayDiff",
    "diff_title",
    "fetch_diff_spec",
    "fetch_three_way",
    "list_untracked",
    "untracked_file_pairs",
]
