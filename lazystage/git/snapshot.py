"""Full repository status snapshot for the status tree.

Combines porcelain v2 status, recent commits, ahead/behind commit lists and
in-progress operation markers read directly from the git directory.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from pathlib import Path

from ..errors import ProcessError
from .executor import GitResult, GitRunner
from .porcelain import STATUS_ARGS, PorcelainStatus, parse_porcelain_v2

RECENT_COMMIT_COUNT = 10
_LOG_FORMAT = "--format=%H%x1f%h%x1f%s"


@dataclass(frozen=True)
class CommitSummary:
    oid: str
    short: str
    subject: str


@dataclass(frozen=True)
class SequencerState:
    """Which multi-step git operation, if any, is in progress."""

    merging: bool = False
    rebasing: bool = False
    cherry_picking: bool = False
    reverting: bool = False
    bisecting: bool = False
    merge_head: str | None = None
    rebase_onto: str | None = None

    @property
    def label(self) -> str | None:
        if self.merging:
            return "Merging"
        if self.rebasing:
            return "Rebasing"
        if self.cherry_picking:
            return "Cherry-picking"
        if self.reverting:
            return "Reverting"
        if self.bisecting:
            return "Bisecting"
        return None


@dataclass(frozen=True)
class RepoSnapshot:
    status: PorcelainStatus
    head_subject: str | None = None
    recent: tuple[CommitSummary, ...] = ()
    unpushed: tuple[CommitSummary, ...] = ()
    unpulled: tuple[CommitSummary, ...] = ()
    sequencer: SequencerState = field(default_factory=SequencerState)


def _read_first_line(path: Path) -> str | None:
    try:
        text = path.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return None
    stripped = text.strip()
    return stripped.splitlines()[0] if stripped else None


def read_sequencer_state(git_dir: Path | None) -> SequencerState:
    """Inspect marker files under ``git_dir`` without running git."""
    if git_dir is None:
        return SequencerState()

    rebase_dir = None
    for name in ("rebase-merge", "rebase-apply"):
        candidate = git_dir / name
        if candidate.is_dir():
            rebase_dir = candidate
            break

    rebase_onto = None
    if rebase_dir is not None:
        rebase_onto = _read_first_line(rebase_dir / "onto")

    return SequencerState(
        merging=(git_dir / "MERGE_HEAD").exists(),
        rebasing=rebase_dir is not None,
        cherry_picking=(git_dir / "CHERRY_PICK_HEAD").exists(),
        reverting=(git_dir / "REVERT_HEAD").exists(),
        bisecting=(git_dir / "BISECT_LOG").exists(),
        merge_head=_read_first_line(git_dir / "MERGE_HEAD"),
        rebase_onto=rebase_onto,
    )


def parse_log_summaries(output: str) -> tuple[CommitSummary, ...]:
    commits: list[CommitSummary] = []
    for line in output.splitlines():
        parts = line.split("\x1f", 2)
        if len(parts) != 3 or not parts[0]:
            continue
        commits.append(CommitSummary(oid=parts[0], short=parts[1], subject=parts[2]))
    return tuple(commits)


async def _log(executor: GitRunner, revision: str, limit: int | None) -> GitResult:
    args = ["log", _LOG_FORMAT]
    if limit is not None:
        args.append(f"-n{limit}")
    args.extend([revision, "--"])
    return await executor.read(args)


async def fetch_snapshot(
    executor: GitRunner,
    git_dir: Path | None,
    *,
    recent_count: int = RECENT_COMMIT_COUNT,
) -> tuple[RepoSnapshot | None, ProcessError | None]:
    """Collect a full status snapshot.

    Status failure is fatal for the snapshot; log failures (for example an
    upstream that no longer exists) only leave the matching list empty.
    """
    status_result = await executor.read(list(STATUS_ARGS))
    error = status_result.error()
    if error is not None:
        return None, error
    status = parse_porcelain_v2(status_result.stdout)
    sequencer = read_sequencer_state(git_dir)

    if status.branch.unborn or status.branch.oid is None:
        return RepoSnapshot(status=status, sequencer=sequencer), None

    jobs = [_log(executor, "HEAD", recent_count)]
    if status.branch.upstream:
        jobs.append(_log(executor, "@{upstream}..HEAD", None))
        jobs.append(_log(executor, "HEAD..@{upstream}", None))
    results = await asyncio.gather(*jobs)

    recent = parse_log_summaries(results[0].stdout) if results[0].ok else ()
    unpushed: tuple[CommitSummary, ...] = ()
    unpulled: tuple[CommitSummary, ...] = ()
    if len(results) == 3:
        unpushed = parse_log_summaries(results[1].stdout) if results[1].ok else ()
        unpulled = parse_log_summaries(results[2].stdout) if results[2].ok else ()

    return (
        RepoSnapshot(
            status=status,
            head_subject=recent[0].subject if recent else None,
            recent=recent,
            unpushed=unpushed,
            unpulled=unpulled,
            sequencer=sequencer,
        ),
        None,
    )


__all__ = [
    "CommitSummary",
    "RECENT_COMMIT_COUNT",
    "RepoSnapshot",
    "SequencerState",
    "fetch_snapshot",
    "parse_log_summaries",
    "read_sequencer_state",
]
