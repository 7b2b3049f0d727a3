"""Tests for CLI argument parsing and row selection helpers."""

from __future__ import annotations

import argparse
import unittest
from pathlib import Path

from lazystage import cli
from lazystage.diff.parser import parse_unified_diff
from lazystage.repo_state import RepoState
from lazystage.view import DiffView

TWO_CHANGES = (
    "diff --git a/f.txt b/f.txt\n--- a/f.txt\n+++ b/f.txt\n"
    "@@ -1,5 +1,4 @@\n a\n-b\n-c\n+X\n d\n-e\n+E\n"
)


class ArgumentTypeTests(unittest.TestCase):
    def test_line_range(self) -> None:
        self.assertEqual(cli._line_range("3-5"), (3, 5))
        self.assertEqual(cli._line_range("4"), (4, 4))
        for bad in ("5-3", "0-2", "a-b", "-3"):
            with self.assertRaises(argparse.ArgumentTypeError, msg=bad):
                cli._line_range(bad)

    def test_level_and_positive_int(self) -> None:
        self.assertEqual(cli._level("4"), 4)
        with self.assertRaises(argparse.ArgumentTypeError):
            cli._level("5")
        with self.assertRaises(argparse.ArgumentTypeError):
            cli._positive_int("0")


class ParserTests(unittest.TestCase):
    def test_diff_sources(self) -> None:
        parser = cli.build_parser()
        cases = {
            ("diff",): ("unstaged", None),
            ("diff", "--staged", "a.txt"): ("staged", None),
            ("diff", "--commit", "HEAD~1"): ("commit", "HEAD~1"),
            ("diff", "--range", "main..topic"): ("range", "main..topic"),
            ("diff", "--stash"): ("stash", "stash@{0}"),
            ("diff", "--three-way"): ("three_way", None),
            ("diff", "--merge"): ("merge", None),
        }
        for argv, (kind, ref) in cases.items():
            source = cli.source_from_args(parser.parse_args(list(argv)))
            self.assertEqual((source.kind, source.ref), (kind, ref), argv)

        staged = cli.source_from_args(parser.parse_args(["diff", "--staged", "a.txt"]))
        self.assertEqual(staged.paths, ("a.txt",))

    def test_stage_selectors_are_exclusive(self) -> None:
        parser = cli.build_parser()
        args = parser.parse_args(["stage", "hello.lua", "--lines", "3-5"])
        self.assertEqual((args.path, args.lines, args.hunk), ("hello.lua", (3, 5), None))
        with self.assertRaises(SystemExit):
            parser.parse_args(["stage", "a.txt", "--lines", "1", "--hunk", "1"])

    def test_status_accepts_repo_path(self) -> None:
        args = cli.build_parser().parse_args(["-C", "/tmp", "status", "--level", "3"])
        self.assertEqual((args.repo, args.level, args.repo_path), ("/tmp", 3, None))


class RowSelectionTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.view = DiffView(RepoState.for_root(Path("/repo"), None))
        await self.view.open(parse_unified_diff(TWO_CHANGES, Path("/repo")))

    def test_lines_pull_in_trailing_deletions(self) -> None:
        # rows: a | b/X | c/~ | d | e/E
        self.assertEqual(cli.rows_for_lines(self.view, 2, 2), (1, 2))
        self.assertEqual(cli.rows_for_lines(self.view, 4, 4), (4, 4))
        self.assertIsNone(cli.rows_for_lines(self.view, 40, 41))

    def test_hunk_numbers_follow_change_runs(self) -> None:
        self.assertEqual(cli.rows_for_hunk(self.view, 1), (1, 2))
        self.assertEqual(cli.rows_for_hunk(self.view, 2), (4, 4))
        self.assertIsNone(cli.rows_for_hunk(self.view, 3))


if __name__ == "__main__":
    unittest.main()
