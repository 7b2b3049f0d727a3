"""Tests for word-level emphasis ranges between paired lines."""

from __future__ import annotations

import unittest

from lazystage.diff.inline import inline_ranges, tokenize


class InlineRangeTests(unittest.TestCase):
    def test_changed_token_is_the_only_range(self) -> None:
        ranges = inline_ranges("foo = 1", "foo = 2")
        self.assertEqual(ranges.old_ranges, ((6, 7),))
        self.assertEqual(ranges.new_ranges, ((6, 7),))

    def test_insertion_marks_only_the_new_side(self) -> None:
        ranges = inline_ranges("call(a)", "call(a, b)")
        self.assertEqual(ranges.old_ranges, ())
        self.assertEqual(ranges.new_ranges, ((6, 9),))

    def test_identical_and_unrelated_lines_have_no_ranges(self) -> None:
        self.assertEqual(inline_ranges("same", "same").old_ranges, ())
        unrelated = inline_ranges("alpha", "omega")
        self.assertEqual((unrelated.old_ranges, unrelated.new_ranges), ((), ()))

    def test_tokenize_splits_words_space_and_punctuation(self) -> None:
        self.assertEqual(tokenize("a.b  c"), ["a", ".", "b", "  ", "c"])


if __name__ == "__main__":
    unittest.main()
