"""Git process execution and status snapshot parsing.

Defines ``GitExecutor`` (async child-process runner with per-repo locking)
and the porcelain v2 / log parsers that feed the status tree.
"""

from __future__ import annotations

from .executor import GitExecutor, GitResult, GitRunner, RepoLock, resolve_git_paths
from .history import GitHistory, GitHistoryEntry
from .porcelain import BranchInfo, PorcelainStatus, StatusRecord, parse_porcelain_v2
from .snapshot import CommitSummary, RepoSnapshot, SequencerState, fetch_snapshot, read_sequencer_state

__all__ = [
    "BranchInfo",
    "CommitSummary",
    "GitExecutor",
    "GitHistory",
    "GitHistoryEntry",
    "GitResult",
    "GitRunner",
    "PorcelainStatus",
    "RepoLock",
    "RepoSnapshot",
    "SequencerState",
    "StatusRecord",
    "fetch_snapshot",
    "parse_porcelain_v2",
    "read_sequencer_state",
    "resolve_git_paths",
]
