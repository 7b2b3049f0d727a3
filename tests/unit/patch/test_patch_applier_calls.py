"""Tests for the git calls PatchApplier issues, using a recording executor."""

from __future__ import annotations

import unittest
from contextlib import asynccontextmanager
from pathlib import Path

from lazystage.diff.line_map import build_line_map
from lazystage.diff.parser import parse_unified_diff
from lazystage.errors import STALE_MESSAGE, ApplyConflict, ProcessError, SelectionError
from lazystage.git.executor import GitResult
from lazystage.patch.apply import PatchApplier, is_stale_apply_error
from lazystage.patch.builder import Selection

REPLACE = (
    "diff --git a/f.txt b/f.txt\n--- a/f.txt\n+++ b/f.txt\n"
    "@@ -1,3 +1,3 @@\n a\n-b\n+B\n c\n"
)


class RecordingExecutor:
    def __init__(self, results: dict[str, GitResult] | None = None) -> None:
        self.repo_root = Path("/repo")
        self.calls: list[tuple[tuple[str, ...], str | None]] = []
        self.results = results or {}
        self.mutations = 0

    @property
    def last_operation_time(self) -> float | None:
        return None

    async def run(self, args, *, cwd=None, stdin=None, timeout_seconds=None) -> GitResult:
        self.calls.append((tuple(args), stdin))
        return self.results.get(args[0], GitResult(tuple(args), "", "", 0))

    async def read(self, args, *, stdin=None) -> GitResult:
        return await self.run(args, stdin=stdin)

    async def mutate(self, args, *, stdin=None) -> GitResult:
        async with self.mutation():
            return await self.run(args, stdin=stdin)

    @asynccontextmanager
    async def mutation(self):
        self.mutations += 1
        yield self


class PatchApplierTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.spec = parse_unified_diff(REPLACE, Path("/repo"))
        self.line_map = build_line_map(self.spec)

    async def test_stage_selection_applies_to_index(self) -> None:
        executor = RecordingExecutor()
        ok, error = await PatchApplier(executor).stage_selection(self.spec, self.line_map, Selection.row(1))

        self.assertTrue(ok)
        self.assertIsNone(error)
        args, stdin = executor.calls[0]
        self.assertEqual(args, ("apply", "--whitespace=nowarn", "--cached", "-"))
        self.assertIn("-b\n+B\n", stdin)
        self.assertEqual(executor.mutations, 1)

    async def test_unstage_and_discard_apply_in_reverse(self) -> None:
        executor = RecordingExecutor()
        applier = PatchApplier(executor)
        await applier.unstage_selection(self.spec, self.line_map, Selection.row(1))
        await applier.discard_selection(self.spec, self.line_map, Selection.row(1))

        self.assertEqual(executor.calls[0][0], ("apply", "--whitespace=nowarn", "--cached", "--reverse", "-"))
        self.assertEqual(executor.calls[1][0], ("apply", "--whitespace=nowarn", "--reverse", "-"))

    async def test_nothing_selected_never_calls_git(self) -> None:
        executor = RecordingExecutor()
        ok, error = await PatchApplier(executor).stage_selection(self.spec, self.line_map, Selection.row(0))

        self.assertFalse(ok)
        self.assertIsInstance(error, SelectionError)
        self.assertEqual(executor.calls, [])

    async def test_stale_patch_maps_to_apply_conflict(self) -> None:
        stderr = "error: patch failed: f.txt:1\nerror: f.txt: patch does not apply\n"
        executor = RecordingExecutor({"apply": GitResult(("apply",), "", stderr, 1)})
        ok, error = await PatchApplier(executor).stage_selection(self.spec, self.line_map, Selection.row(1))

        self.assertFalse(ok)
        self.assertIsInstance(error, ApplyConflict)
        self.assertEqual(str(error), STALE_MESSAGE)
        self.assertEqual(error.detail, stderr)

    async def test_other_failures_carry_stderr_verbatim(self) -> None:
        executor = RecordingExecutor({"apply": GitResult(("apply",), "", "fatal: corrupt patch at line 4\n", 128)})
        _, error = await PatchApplier(executor).stage_selection(self.spec, self.line_map, Selection.row(1))

        self.assertIsInstance(error, ProcessError)
        self.assertEqual(error.message, "fatal: corrupt patch at line 4\n")
        self.assertEqual(error.exit_code, 128)

    async def test_unstage_paths_on_unborn_branch_uses_rm_cached(self) -> None:
        executor = RecordingExecutor({"rev-parse": GitResult(("rev-parse",), "", "", 1)})
        ok, _ = await PatchApplier(executor).unstage_paths(["a.txt"])

        self.assertTrue(ok)
        self.assertEqual(executor.calls[-1][0], ("rm", "--cached", "-r", "-q", "--", "a.txt"))

    async def test_path_operations(self) -> None:
        executor = RecordingExecutor()
        applier = PatchApplier(executor)
        await applier.stage_paths(["a.txt"])
        await applier.unstage_paths(["a.txt"])
        await applier.discard_paths(["a.txt"])
        await applier.discard_paths(["new.txt"], untracked=True)

        commands = [call[0] for call in executor.calls]
        self.assertEqual(commands[0], ("add", "-A", "--", "a.txt"))
        self.assertEqual(commands[2], ("reset", "-q", "HEAD", "--", "a.txt"))
        self.assertEqual(commands[3], ("checkout", "-q", "--", "a.txt"))
        self.assertEqual(commands[4], ("clean", "-f", "-q", "--", "new.txt"))

    def test_stale_error_detection(self) -> None:
        self.assertTrue(is_stale_apply_error("error: a.txt: does not match index"))
        self.assertFalse(is_stale_apply_error("fatal: not a git repository"))


if __name__ == "__main__":
    unittest.main()
