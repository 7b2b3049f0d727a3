"""Tests for three-column alignment on the shared anchor side."""

from __future__ import annotations

import unittest
from pathlib import Path

from lazystage.diff.line_map import ROW_ADD, ROW_CONTEXT, ROW_DELETE, ROW_FILLER
from lazystage.diff.parser import parse_unified_diff
from lazystage.diff.three_way import ThreeWayFile, build_three_way_map, merge_file_lists

# HEAD: a b c   INDEX: a B c   WORKTREE: a B c d
STAGED = (
    "diff --git a/f.txt b/f.txt\n--- a/f.txt\n+++ b/f.txt\n"
    "@@ -1,3 +1,3 @@\n a\n-b\n+B\n c\n"
)
UNSTAGED = (
    "diff --git a/f.txt b/f.txt\n--- a/f.txt\n+++ b/f.txt\n"
    "@@ -1,3 +1,4 @@\n a\n B\n c\n+d\n"
)


def _pair(text: str):
    return parse_unified_diff(text, Path("/repo")).files[0]


class ThreeWayAlignmentTests(unittest.TestCase):
    def test_columns_join_on_index_line_numbers(self) -> None:
        files = merge_file_lists([_pair(STAGED)], [_pair(UNSTAGED)])
        three_way = build_three_way_map(files)

        self.assertEqual(three_way.column("left"), ["a", "b", "c", ""])
        self.assertEqual(three_way.column("mid"), ["a", "B", "c", ""])
        self.assertEqual(three_way.column("right"), ["a", "B", "c", "d"])
        self.assertEqual(
            [(e.left_type, e.mid_type, e.right_type) for e in three_way.entries],
            [
                (ROW_CONTEXT, ROW_CONTEXT, ROW_CONTEXT),
                (ROW_DELETE, ROW_ADD, ROW_CONTEXT),
                (ROW_CONTEXT, ROW_CONTEXT, ROW_CONTEXT),
                (ROW_FILLER, ROW_FILLER, ROW_ADD),
            ],
        )
        self.assertEqual(three_way.boundary_rows, (1, 3))
        self.assertEqual(three_way.next_hunk_row(1), 3)
        self.assertIsNone(three_way.prev_hunk_row(1))

    def test_side_without_diff_mirrors_anchor(self) -> None:
        files = merge_file_lists([], [_pair(UNSTAGED)])
        three_way = build_three_way_map(files)

        self.assertEqual(three_way.column("left"), ["a", "B", "c", ""])
        self.assertEqual(three_way.column("right"), ["a", "B", "c", "d"])
        self.assertEqual(three_way.boundary_rows, (3,))

    def test_merge_file_lists_keeps_first_order_then_second_only(self) -> None:
        first = _pair(STAGED)
        other = _pair(UNSTAGED.replace("f.txt", "g.txt"))
        files = merge_file_lists([first], [other, _pair(UNSTAGED)])

        self.assertEqual([item.path for item in files], ["f.txt", "g.txt"])
        self.assertIsNotNone(files[0].second)
        self.assertIsNone(files[1].first)

    def test_several_files_start_with_header_rows(self) -> None:
        files = [ThreeWayFile("x.txt", first=_pair(STAGED)), ThreeWayFile("y.txt", second=_pair(UNSTAGED))]
        three_way = build_three_way_map(files)

        headers = [entry.buffer_row for entry in three_way.entries if entry.is_header]
        self.assertEqual(headers, [0, 4])
        self.assertEqual(three_way[4].mid_text, "y.txt")


if __name__ == "__main__":
    unittest.main()
