"""Tests for log summaries and in-progress operation markers."""

from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

from lazystage.git.snapshot import CommitSummary, parse_log_summaries, read_sequencer_state


class LogSummaryTests(unittest.TestCase):
    def test_fields_split_on_unit_separator(self) -> None:
        output = "aaaa\x1faa\x1ffirst\nbbbb\x1fbb\x1fsubject with \x1f inside\n\nbroken line\n"
        self.assertEqual(
            parse_log_summaries(output),
            (
                CommitSummary("aaaa", "aa", "first"),
                CommitSummary("bbbb", "bb", "subject with \x1f inside"),
            ),
        )


class SequencerStateTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        self.git_dir = Path(self.tmp.name)

    def tearDown(self) -> None:
        self.tmp.cleanup()

    def test_clean_git_dir(self) -> None:
        state = read_sequencer_state(self.git_dir)
        self.assertIsNone(state.label)
        self.assertIsNone(read_sequencer_state(None).label)

    def test_merge_head_is_read(self) -> None:
        (self.git_dir / "MERGE_HEAD").write_text("feedface\n", encoding="utf-8")
        state = read_sequencer_state(self.git_dir)
        self.assertEqual((state.label, state.merge_head), ("Merging", "feedface"))

    def test_rebase_directory_and_onto(self) -> None:
        (self.git_dir / "rebase-merge").mkdir()
        (self.git_dir / "rebase-merge" / "onto").write_text("cafe\n", encoding="utf-8")
        state = read_sequencer_state(self.git_dir)
        self.assertEqual((state.label, state.rebase_onto), ("Rebasing", "cafe"))

    def test_cherry_pick_revert_and_bisect(self) -> None:
        for marker, label in (("CHERRY_PICK_HEAD", "Cherry-picking"), ("REVERT_HEAD", "Reverting"), ("BISECT_LOG", "Bisecting")):
            path = self.git_dir / marker
            path.write_text("x\n", encoding="utf-8")
            self.assertEqual(read_sequencer_state(self.git_dir).label, label)
            path.unlink()


if __name__ == "__main__":
    unittest.main()
