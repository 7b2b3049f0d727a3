"""Apply partial patches and whole-path operations through git plumbing.

Every call here is a mutation and runs under the repository's exclusive
lock. Nothing is retried: a patch that no longer matches its target comes
back as ``ApplyConflict`` and the caller decides whether to refresh.
"""

from __future__ import annotations

from collections.abc import Sequence
import logging

from ..diff.line_map import LineMap
from ..diff.model import DiffSpec
from ..errors import ApplyConflict, LazyStageError
from ..git.executor import GitRunner
from .builder import PartialPatch, Selection, build_patch

logger = logging.getLogger(__name__)

APPLY_ARGS = ("apply", "--whitespace=nowarn")
STALE_APPLY_MESSAGES = (
    "patch does not apply",
    "does not match index",
    "does not exist in index",
    "already exists",
)


def is_stale_apply_error(stderr: str) -> bool:
    return any(message in stderr for message in STALE_APPLY_MESSAGES)


class PatchApplier:
    """Index/worktree mutations for one repository."""

    def __init__(self, executor: GitRunner) -> None:
        self.executor = executor

    async def apply(
        self,
        patch: PartialPatch | str,
        *,
        cached: bool = True,
        reverse: bool = False,
    ) -> tuple[bool, LazyStageError | None]:
        text = patch.text if isinstance(patch, PartialPatch) else patch
        args = list(APPLY_ARGS)
        if cached:
            args.append("--cached")
        if reverse:
            args.append("--reverse")
        args.append("-")

        result = await self.executor.mutate(args, stdin=text)
        if result.ok:
            target = "index" if cached else "worktree"
            label = patch.path if isinstance(patch, PartialPatch) else "patch"
            logger.info("applied %s to %s%s", label, target, " (reverse)" if reverse else "")
            return True, None
        if is_stale_apply_error(result.stderr):
            logger.debug("apply rejected as stale: %s", result.stderr.strip())
            return False, ApplyConflict(result.stderr)
        return False, result.error()

    async def stage_selection(
        self,
        spec: DiffSpec,
        line_map: LineMap | None,
        selection: Selection,
    ) -> tuple[bool, LazyStageError | None]:
        """Stage the selected unstaged lines: ``apply --cached``."""
        patch, error = build_patch(spec, line_map, selection)
        if error is not None:
            return False, error
        assert patch is not None
        return await self.apply(patch, cached=True)

    async def unstage_selection(
        self,
        spec: DiffSpec,
        line_map: LineMap | None,
        selection: Selection,
    ) -> tuple[bool, LazyStageError | None]:
        """Unstage the selected staged lines: ``apply --cached --reverse``."""
        patch, error = build_patch(spec, line_map, selection, reverse=True)
        if error is not None:
            return False, error
        assert patch is not None
        return await self.apply(patch, cached=True, reverse=True)

    async def discard_selection(
        self,
        spec: DiffSpec,
        line_map: LineMap | None,
        selection: Selection,
    ) -> tuple[bool, LazyStageError | None]:
        """Drop the selected worktree changes: ``apply --reverse``."""
        patch, error = build_patch(spec, line_map, selection, reverse=True)
        if error is not None:
            return False, error
        assert patch is not None
        return await self.apply(patch, cached=False, reverse=True)

    async def stage_paths(self, paths: Sequence[str]) -> tuple[bool, LazyStageError | None]:
        if not paths:
            return True, None
        result = await self.executor.mutate(["add", "-A", "--", *paths])
        if not result.ok:
            return False, result.error()
        logger.info("staged %s", ", ".join(paths))
        return True, None

    async def unstage_paths(self, paths: Sequence[str]) -> tuple[bool, LazyStageError | None]:
        """Reset paths to HEAD in the index, or drop them on an unborn branch."""
        if not paths:
            return True, None
        async with self.executor.mutation():
            head = await self.executor.run(["rev-parse", "--verify", "-q", "HEAD"])
            if head.ok:
                result = await self.executor.run(["reset", "-q", "HEAD", "--", *paths])
            else:
                result = await self.executor.run(["rm", "--cached", "-r", "-q", "--", *paths])
        if not result.ok:
            return False, result.error()
        logger.info("unstaged %s", ", ".join(paths))
        return True, None

    async def discard_paths(
        self,
        paths: Sequence[str],
        *,
        untracked: bool = False,
    ) -> tuple[bool, LazyStageError | None]:
        """Restore tracked paths from the index, or delete untracked ones."""
        if not paths:
            return True, None
        if untracked:
            args = ["clean", "-f", "-q", "--", *paths]
        else:
            args = ["checkout", "-q", "--", *paths]
        result = await self.executor.mutate(args)
        if not result.ok:
            return False, result.error()
        logger.info("discarded %s", ", ".join(paths))
        return True, None


__all__ = ["APPLY_ARGS", "PatchApplier", "STALE_APPLY_MESSAGES", "is_stale_apply_error"]
