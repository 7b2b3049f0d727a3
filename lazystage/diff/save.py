"""Write edited buffer content back to the worktree or the index.

Index writes go through ``hash-object -w --stdin`` and
``update-index --cacheinfo`` so no worktree file is touched.
"""

from __future__ import annotations

import logging

from ..errors import LazyStageError
from ..git.executor import GitRunner
from .model import LINE_ADD, LINE_CONTEXT, LINE_DELETE, FilePair
from .source import REF_INDEX, REF_WORKTREE

logger = logging.getLogger(__name__)

DEFAULT_INDEX_MODE = "100644"


def side_missing_newline(pair: FilePair, side: str) -> bool:
    """Whether the ``old``/``new`` image of ``pair`` lacks a final newline."""
    kinds = (LINE_CONTEXT, LINE_DELETE) if side == "old" else (LINE_CONTEXT, LINE_ADD)
    for hunk in reversed(pair.hunks):
        for line in reversed(hunk.lines):
            if line.kind in kinds:
                return line.no_newline
    return False


def join_content(lines: list[str], *, missing_newline: bool = False) -> str:
    if not lines:
        return ""
    text = "\n".join(lines)
    return text if missing_newline else text + "\n"


async def _index_mode(executor: GitRunner, path: str) -> str:
    result = await executor.run(["ls-files", "-s", "--", path])
    if result.ok and result.stdout.strip():
        mode = result.stdout.split(" ", 1)[0]
        if mode.isdigit():
            return mode
    return DEFAULT_INDEX_MODE


async def save_to_worktree(
    executor: GitRunner,
    path: str,
    lines: list[str],
    *,
    missing_newline: bool = False,
) -> tuple[bool, LazyStageError | None]:
    target = executor.repo_root / path
    content = join_content(lines, missing_newline=missing_newline)
    async with executor.mutation():
        try:
            target.write_bytes(content.encode("utf-8", errors="surrogateescape"))
        except OSError as exc:
            return False, LazyStageError(f"Failed to write {path}: {exc}")
    logger.info("saved %s to worktree (%d lines)", path, len(lines))
    return True, None


async def save_to_index(
    executor: GitRunner,
    path: str,
    lines: list[str],
    *,
    missing_newline: bool = False,
) -> tuple[bool, LazyStageError | None]:
    content = join_content(lines, missing_newline=missing_newline)
    async with executor.mutation():
        mode = await _index_mode(executor, path)
        hashed = await executor.run(["hash-object", "-w", "--stdin", f"--path={path}"], stdin=content)
        if not hashed.ok:
            return False, hashed.error()
        oid = hashed.stdout.strip()
        updated = await executor.run(["update-index", "--cacheinfo", f"{mode},{oid},{path}"])
        if not updated.ok:
            return False, updated.error()
    logger.info("saved %s to index as %s", path, oid[:12])
    return True, None


async def save_lines(
    executor: GitRunner,
    ref: str,
    path: str,
    lines: list[str],
    *,
    missing_newline: bool = False,
) -> tuple[bool, LazyStageError | None]:
    """Dispatch on the content ref of the edited column."""
    if ref == REF_WORKTREE:
        return await save_to_worktree(executor, path, lines, missing_newline=missing_newline)
    if ref == REF_INDEX:
        return await save_to_index(executor, path, lines, missing_newline=missing_newline)
    return False, LazyStageError(f"{ref} content cannot be edited")


__all__ = [
    "join_content",
    "save_lines",
    "save_to_index",
    "save_to_worktree",
    "side_missing_newline",
]
