"""Status controller against real repositories.

Conflict-marker confirmation, external changes marking the view stale, and
entry/hunk/line mutations from status rows.
"""

from __future__ import annotations

import asyncio
import shutil
import subprocess
import tempfile
import unittest
from pathlib import Path

from lazystage.config import AppConfig, WatcherConfig
from lazystage.errors import SelectionError
from lazystage.repo_state import RepoState
from lazystage.status.controller import StatusController
from lazystage.status.machine import IDLE
from lazystage.watch.watcher import ChangeWatcher


def _git(root: Path, *args: str, check: bool = True) -> str:
    result = subprocess.run(["git", *args], cwd=root, check=check, capture_output=True, text=True)
    return result.stdout


def _init_repo(root: Path, files: dict[str, str]) -> None:
    _git(root, "init", "-q")
    _git(root, "config", "user.email", "tests@example.com")
    _git(root, "config", "user.name", "Tests")
    for name, text in files.items():
        (root / name).write_text(text, encoding="utf-8")
    _git(root, "add", "-A")
    _git(root, "commit", "-q", "-m", "init")


def _paths(controller: StatusController, section: str) -> list[str]:
    return [entry.path for entry in controller.entries([section])]


@unittest.skipIf(shutil.which("git") is None, "git is required")
class StatusControllerRepoTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        self.root = Path(self.tmp.name).resolve()
        self.repo = RepoState.for_root(self.root, self.root / ".git", AppConfig())

    def tearDown(self) -> None:
        self.tmp.cleanup()

    async def _controller(self, **kwargs) -> StatusController:
        controller = StatusController(self.repo, **kwargs)
        tree, error = await controller.refresh()
        self.assertIsNone(error)
        self.assertIsNotNone(tree)
        return controller

    async def test_conflict_markers_require_confirmation(self) -> None:
        _init_repo(self.root, {"c.txt": "base\n"})
        _git(self.root, "checkout", "-q", "-b", "other")
        (self.root / "c.txt").write_text("theirs\n", encoding="utf-8")
        _git(self.root, "commit", "-q", "-am", "theirs")
        _git(self.root, "checkout", "-q", "-")
        (self.root / "c.txt").write_text("ours\n", encoding="utf-8")
        _git(self.root, "commit", "-q", "-am", "ours")
        _git(self.root, "merge", "other", check=False)
        self.assertIn("<<<<<<<", (self.root / "c.txt").read_text(encoding="utf-8"))

        asked: list[str] = []
        answer = False

        async def confirm(path: str) -> bool:
            asked.append(path)
            return answer

        controller = await self._controller(confirm=confirm)
        self.assertEqual(_paths(controller, "conflicted"), ["c.txt"])
        self.assertIn("both modified: c.txt", [row.text for row in controller.tree.rows])
        sequencer = [row.text for row in controller.tree.rows if row.kind == "sequencer"]
        self.assertEqual(len(sequencer), 1)
        self.assertTrue(sequencer[0].startswith("Merging "))

        row = controller.tree.find_row(("entry", "conflicted", "c.txt", None, None, None))
        done, error = await controller.stage_rows(row, row)
        self.assertEqual((done, error), (0, None))
        self.assertEqual(asked, ["c.txt"])
        self.assertEqual(_paths(controller, "conflicted"), ["c.txt"])

        answer = True
        row = controller.tree.find_row(("entry", "conflicted", "c.txt", None, None, None))
        done, error = await controller.stage_rows(row, row)
        self.assertEqual((done, error), (1, None))
        self.assertEqual(_paths(controller, "conflicted"), [])
        self.assertEqual(_paths(controller, "staged"), ["c.txt"])

    async def test_external_branch_marks_stale_and_refresh_keeps_view(self) -> None:
        _init_repo(self.root, {"a.txt": "a\nb\n"})
        (self.root / "a.txt").write_text("a\nB\n", encoding="utf-8")
        controller = await self._controller()

        entry_row = controller.tree.find_row(("entry", "unstaged", "a.txt", None, None, None))
        await controller.toggle_expand(entry_row)
        line_key = ("line", "unstaged", "a.txt", 0, 1, None)
        controller.cursor_row = controller.tree.find_row(line_key)
        cursor_before = controller.cursor_row

        config = WatcherConfig(cooldown_ms=0, stale_debounce_ms=20, watch_worktree=False, poll_interval_ms=60_000)
        watcher = ChangeWatcher(self.repo, on_stale=controller.mark_stale, config=config)
        self.assertTrue(watcher.start())
        try:
            _git(self.root, "branch", "foo")
            self.assertIn("git:refs/heads/foo", watcher.poll())
            self.assertFalse(controller.is_stale)
            await asyncio.sleep(0.1)
            self.assertTrue(controller.is_stale)

            _, error = await controller.refresh()
            self.assertIsNone(error)
        finally:
            watcher.stop()

        self.assertEqual(controller.machine.state, IDLE)
        self.assertFalse(controller.is_stale)
        self.assertEqual(controller.cursor_row, cursor_before)
        self.assertEqual(controller.tree.rows[controller.cursor_row].key, line_key)
        self.assertIsNotNone(controller.tree.find_row(("hunk", "unstaged", "a.txt", 0, None, None)))

    async def test_line_rows_stage_only_those_lines(self) -> None:
        _init_repo(self.root, {"a.txt": "1\n2\n3\n4\n5\n6\n7\n8\n9\n"})
        (self.root / "a.txt").write_text("one\n2\n3\n4\n5\n6\n7\n8\nnine\n", encoding="utf-8")
        controller = await self._controller()
        await controller.set_visibility_level(4)

        first = controller.tree.find_row(("line", "unstaged", "a.txt", 0, 0, None))
        last = controller.tree.find_row(("line", "unstaged", "a.txt", 0, 1, None))
        self.assertEqual([controller.tree.rows[i].text for i in (first, last)], ["-1", "+one"])
        done, error = await controller.stage_rows(first, last)

        self.assertEqual((done, error), (1, None))
        self.assertEqual(_git(self.root, "show", ":a.txt"), "one\n2\n3\n4\n5\n6\n7\n8\n9\n")
        self.assertEqual(_paths(controller, "staged"), ["a.txt"])
        self.assertEqual(_paths(controller, "unstaged"), ["a.txt"])

    async def test_section_row_stages_every_entry_and_unstage_reverts(self) -> None:
        _init_repo(self.root, {"a.txt": "a\n", "b.txt": "b\n"})
        (self.root / "a.txt").write_text("A\n", encoding="utf-8")
        (self.root / "b.txt").write_text("B\n", encoding="utf-8")
        (self.root / "new.txt").write_text("new\n", encoding="utf-8")
        controller = await self._controller()

        header = controller.tree.find_row(("section", "unstaged", None, None, None, None))
        done, error = await controller.stage_rows(header, header)
        self.assertEqual((done, error), (2, None))
        self.assertEqual(_paths(controller, "staged"), ["a.txt", "b.txt"])
        self.assertEqual(_paths(controller, "untracked"), ["new.txt"])

        row = controller.tree.find_row(("entry", "staged", "b.txt", None, None, None))
        done, error = await controller.unstage_rows(row, row)
        self.assertEqual((done, error), (1, None))
        self.assertEqual(_paths(controller, "staged"), ["a.txt"])

    async def test_discard_rules(self) -> None:
        _init_repo(self.root, {"a.txt": "a\n"})
        (self.root / "a.txt").write_text("A\n", encoding="utf-8")
        (self.root / "junk.txt").write_text("junk\n", encoding="utf-8")
        controller = await self._controller()

        row = controller.tree.find_row(("entry", "untracked", "junk.txt", None, None, None))
        done, error = await controller.discard_rows(row, row)
        self.assertEqual((done, error), (1, None))
        self.assertFalse((self.root / "junk.txt").exists())

        _git(self.root, "add", "a.txt")
        await controller.refresh()
        row = controller.tree.find_row(("entry", "staged", "a.txt", None, None, None))
        done, error = await controller.discard_rows(row, row)
        self.assertEqual(done, 0)
        self.assertIsInstance(error, SelectionError)
        self.assertEqual((self.root / "a.txt").read_text(encoding="utf-8"), "A\n")

    async def test_concurrent_refreshes_share_one_pass(self) -> None:
        _init_repo(self.root, {"a.txt": "a\n"})
        controller = StatusController(self.repo)
        results = await asyncio.gather(controller.refresh(), controller.refresh(), controller.refresh())

        self.assertTrue(all(error is None for _, error in results))
        self.assertEqual(controller.render_count, 1)
        self.assertEqual(controller.machine.state, IDLE)


if __name__ == "__main__":
    unittest.main()
