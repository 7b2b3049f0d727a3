"""Tests for gitignore-driven worktree filtering."""

from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

from lazystage.watch.ignore import IgnoreGlobCache, clear_ignore_caches, get_ignore_cache


class IgnoreGlobCacheTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        self.root = Path(self.tmp.name)

    def tearDown(self) -> None:
        self.tmp.cleanup()
        clear_ignore_caches()

    def _write(self, rel: str, text: str) -> None:
        path = self.root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")

    def test_nothing_is_read_before_first_query(self) -> None:
        self._write(".gitignore", "*.log\n")
        cache = IgnoreGlobCache(self.root)
        self.assertEqual(cache.loads, 0)
        self.assertTrue(cache.is_ignored("debug.log"))
        self.assertEqual(cache.loads, 1)

    def test_negation_reincludes_a_file(self) -> None:
        self._write(".gitignore", "*.log\n!keep.log\n")
        cache = IgnoreGlobCache(self.root)
        self.assertTrue(cache.is_ignored("debug.log"))
        self.assertFalse(cache.is_ignored("keep.log"))

    def test_nested_gitignore_is_scoped_to_its_directory(self) -> None:
        self._write("sub/.gitignore", "*.tmp\n")
        cache = IgnoreGlobCache(self.root)
        self.assertTrue(cache.is_ignored("sub/a.tmp"))
        self.assertTrue(cache.is_ignored("sub/deeper/b.tmp"))
        self.assertFalse(cache.is_ignored("top.tmp"))

    def test_files_under_ignored_directory_stay_ignored(self) -> None:
        self._write(".gitignore", "build/\n!build/keep.txt\n")
        cache = IgnoreGlobCache(self.root)
        self.assertTrue(cache.is_ignored("build", is_dir=True))
        self.assertTrue(cache.is_ignored("build/keep.txt"))
        self.assertFalse(cache.is_ignored("build"))

    def test_info_exclude_and_git_dir(self) -> None:
        git_dir = self.root / ".git"
        (git_dir / "info").mkdir(parents=True)
        (git_dir / "info" / "exclude").write_text("secret.txt\n", encoding="utf-8")
        cache = IgnoreGlobCache(self.root, git_dir)

        self.assertTrue(cache.is_ignored("secret.txt"))
        self.assertTrue(cache.is_ignored(".git/index"))
        self.assertFalse(cache.is_ignored("public.txt"))

    def test_invalidate_rereads_patterns(self) -> None:
        self._write(".gitignore", "a.txt\n")
        cache = IgnoreGlobCache(self.root)
        self.assertTrue(cache.is_ignored("a.txt"))

        self._write(".gitignore", "b.txt\n")
        self.assertTrue(cache.is_ignored("a.txt"))
        cache.invalidate()
        self.assertFalse(cache.is_ignored("a.txt"))
        self.assertTrue(cache.is_ignored("b.txt"))

    def test_shared_cache_is_reused_per_root(self) -> None:
        first = get_ignore_cache(self.root)
        self.assertIs(get_ignore_cache(self.root), first)
        clear_ignore_caches()
        self.assertIsNot(get_ignore_cache(self.root), first)


if __name__ == "__main__":
    unittest.main()
