"""End-to-end CLI commands against a real repository."""

from __future__ import annotations

import io
import shutil
import subprocess
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout
from pathlib import Path
from unittest import mock

from lazystage import cli

HELLO_BEFORE = "local M = {}\nreturn M\n"
HELLO_AFTER = "local M = {}\n\nfunction M.greet()\n  return 'hi'\nend\n\nreturn M\n"


def _git(root: Path, *args: str) -> str:
    return subprocess.run(["git", *args], cwd=root, check=True, capture_output=True, text=True).stdout


@unittest.skipIf(shutil.which("git") is None, "git is required")
class CliCommandTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        self.root = Path(self.tmp.name).resolve() / "repo"
        self.root.mkdir()
        _git(self.root, "init", "-q")
        _git(self.root, "config", "user.email", "tests@example.com")
        _git(self.root, "config", "user.name", "Tests")
        (self.root / "hello.lua").write_text(HELLO_BEFORE, encoding="utf-8")
        _git(self.root, "add", "hello.lua")
        _git(self.root, "commit", "-q", "-m", "init")
        (self.root / "hello.lua").write_text(HELLO_AFTER, encoding="utf-8")

        config_path = Path(self.tmp.name) / "config.json"
        patcher = mock.patch("lazystage.config.CONFIG_PATH", config_path)
        patcher.start()
        self.addCleanup(patcher.stop)

    def tearDown(self) -> None:
        self.tmp.cleanup()

    def _run(self, *argv: str) -> tuple[int, str, str]:
        out, err = io.StringIO(), io.StringIO()
        code = 0
        with redirect_stdout(out), redirect_stderr(err):
            try:
                cli.main(["-C", str(self.root), "--no-color", "--width", "100", *argv])
            except SystemExit as exc:
                code = int(exc.code or 0)
        return code, out.getvalue(), err.getvalue()

    def test_status_lists_unstaged_file(self) -> None:
        code, out, _ = self._run("status")
        self.assertEqual(code, 0)
        self.assertIn("Unstaged changes (1)", out)
        self.assertIn("M hello.lua", out)

    def test_status_level_four_shows_lines(self) -> None:
        code, out, _ = self._run("status", "--level", "4")
        self.assertEqual(code, 0)
        self.assertIn("+function M.greet()", out)

    def test_stage_line_range(self) -> None:
        code, _, err = self._run("stage", "hello.lua", "--lines", "3-5")
        self.assertEqual(code, 0, err)
        self.assertEqual(
            _git(self.root, "show", ":hello.lua"),
            "local M = {}\nfunction M.greet()\n  return 'hi'\nend\nreturn M\n",
        )

        code, out, _ = self._run("diff", "--staged")
        self.assertEqual(code, 0)
        self.assertTrue(out.startswith("Diff staged (1 file)"))

    def test_stage_then_unstage_whole_file(self) -> None:
        self.assertEqual(self._run("stage", "hello.lua")[0], 0)
        self.assertEqual(_git(self.root, "diff"), "")
        self.assertEqual(self._run("unstage", "hello.lua")[0], 0)
        self.assertEqual(_git(self.root, "diff", "--cached"), "")

    def test_nothing_to_stage_exits_non_zero(self) -> None:
        code, _, err = self._run("stage", "hello.lua", "--hunk", "9")
        self.assertEqual(code, 1)
        self.assertIn("Nothing to stage", err)

    def test_outside_repository(self) -> None:
        outside = Path(self.tmp.name) / "plain"
        outside.mkdir()
        out, err = io.StringIO(), io.StringIO()
        with redirect_stdout(out), redirect_stderr(err), self.assertRaises(SystemExit) as raised:
            cli.main(["-C", str(outside), "status"])
        self.assertEqual(raised.exception.code, 1)
        self.assertIn("not inside a git repository", err.getvalue())


if __name__ == "__main__":
    unittest.main()
