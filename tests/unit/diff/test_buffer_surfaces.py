"""Tests for buffer surfaces: filler tracking, edits and handle reuse."""

from __future__ import annotations

import unittest
from pathlib import Path

from lazystage.diff.buffers import FILLER_DISPLAY, BufferPair, BufferTriple, TextSurface
from lazystage.diff.line_map import build_line_map
from lazystage.diff.parser import parse_unified_diff
from lazystage.diff.save import join_content, side_missing_newline
from lazystage.diff.three_way import ThreeWayFile, build_three_way_map

INSERT = "diff --git a/f.txt b/f.txt\n--- a/f.txt\n+++ b/f.txt\n@@ -1,2 +1,4 @@\n a\n+x\n+y\n b\n"


def _line_map(text: str = INSERT):
    return build_line_map(parse_unified_diff(text, Path("/repo")))


class BufferPairTests(unittest.TestCase):
    def test_real_lines_strip_filler_rows(self) -> None:
        buffers = BufferPair("INDEX", "WORKTREE", editable_ref="WORKTREE")
        buffers.load(_line_map())

        self.assertEqual(buffers.get_real_lines("left"), ["a", "b"])
        self.assertEqual(buffers.get_real_lines("right"), ["a", "x", "y", "b"])
        self.assertEqual(buffers.left.display_lines(), ["a", FILLER_DISPLAY, FILLER_DISPLAY, "b"])
        self.assertTrue(buffers.left.is_filler(1))
        self.assertFalse(buffers.right.is_filler(1))

    def test_only_the_editable_side_accepts_edits(self) -> None:
        buffers = BufferPair("INDEX", "WORKTREE", editable_ref="WORKTREE")
        buffers.load(_line_map())

        buffers.right.set_line(1, "X")
        self.assertEqual(buffers.get_real_lines("right"), ["a", "X", "y", "b"])
        self.assertTrue(buffers.modified)
        with self.assertRaises(ValueError):
            buffers.left.set_line(0, "nope")

    def test_typing_into_a_filler_row_makes_it_content(self) -> None:
        buffers = BufferPair("INDEX", "WORKTREE", editable_ref="INDEX")
        buffers.load(_line_map())

        buffers.left.set_line(2, "typed")
        self.assertEqual(buffers.get_real_lines("left"), ["a", "typed", "b"])

    def test_reload_keeps_handles_and_resets_modified(self) -> None:
        buffers = BufferPair("INDEX", "WORKTREE", editable_ref="WORKTREE")
        buffers.load(_line_map())
        handle = buffers.right
        lines = handle.lines
        handle.insert_lines(0, ["top"])
        handle.delete_lines(0, 1)
        generation = handle.generation

        buffers.load(_line_map())

        self.assertIs(buffers.right, handle)
        self.assertIs(handle.lines, lines)
        self.assertEqual(handle.generation, generation + 1)
        self.assertFalse(buffers.modified)

    def test_unknown_side_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            BufferPair("HEAD", "INDEX").surface("mid")

    def test_filler_flags_must_cover_every_row(self) -> None:
        with self.assertRaises(ValueError):
            TextSurface("x").set_content(["a", "b"], [False])


class BufferTripleTests(unittest.TestCase):
    def test_three_columns_load_from_three_way_map(self) -> None:
        pair = parse_unified_diff(INSERT, Path("/repo")).files[0]
        three_way = build_three_way_map([ThreeWayFile("f.txt", second=pair)])
        buffers = BufferTriple("HEAD", "INDEX", "WORKTREE", editable_refs=["WORKTREE"])
        buffers.load(three_way)

        self.assertEqual(buffers.get_real_lines("left"), ["a", "b"])
        self.assertEqual(buffers.get_real_lines("mid"), ["a", "b"])
        self.assertEqual(buffers.get_real_lines("right"), ["a", "x", "y", "b"])
        self.assertTrue(buffers.right.editable)
        self.assertFalse(buffers.mid.editable)


class SaveContentTests(unittest.TestCase):
    def test_join_content_honours_missing_newline(self) -> None:
        self.assertEqual(join_content(["a", "b"]), "a\nb\n")
        self.assertEqual(join_content(["a", "b"], missing_newline=True), "a\nb")
        self.assertEqual(join_content([]), "")

    def test_side_missing_newline_reads_the_right_image(self) -> None:
        text = (
            "diff --git a/f.txt b/f.txt\n--- a/f.txt\n+++ b/f.txt\n"
            "@@ -1 +1 @@\n-old\n+new\n\\ No newline at end of file\n"
        )
        pair = parse_unified_diff(text, Path("/repo")).files[0]

        self.assertFalse(side_missing_newline(pair, "old"))
        self.assertTrue(side_missing_newline(pair, "new"))


if __name__ == "__main__":
    unittest.main()
