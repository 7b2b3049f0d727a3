"""Tests for config persistence and value coercion.

Malformed sections and wrongly-typed values fall back to defaults with a
warning instead of failing startup.
"""

from __future__ import annotations

import tempfile
import unittest
from pathlib import Path
from unittest import mock

from lazystage import config


class WatcherConfigTests(unittest.TestCase):
    def test_defaults(self) -> None:
        watcher = config.WatcherConfig.from_config({})
        self.assertEqual(watcher, config.WatcherConfig())
        self.assertTrue(watcher.stale_indicator)
        self.assertFalse(watcher.auto_refresh)

    def test_valid_values_are_kept(self) -> None:
        watcher = config.WatcherConfig.from_config(
            {"watcher": {"auto_refresh": True, "stale_debounce_ms": 50, "cooldown_ms": 0}}
        )
        self.assertTrue(watcher.auto_refresh)
        self.assertEqual((watcher.stale_debounce_ms, watcher.cooldown_ms), (50, 0))

    def test_wrong_types_fall_back_with_warning(self) -> None:
        with self.assertLogs("lazystage.config", level="WARNING") as logs:
            watcher = config.WatcherConfig.from_config(
                {"watcher": {"enabled": "yes", "stale_debounce_ms": True, "cooldown_ms": -5, "poll_interval_ms": 1.5}}
            )
        self.assertTrue(watcher.enabled)
        self.assertEqual(watcher.stale_debounce_ms, 200)
        self.assertEqual(watcher.cooldown_ms, 1000)
        self.assertEqual(watcher.poll_interval_ms, 500)
        self.assertEqual(len(logs.records), 4)

    def test_non_object_section_is_ignored(self) -> None:
        self.assertEqual(config.WatcherConfig.from_config({"watcher": [1, 2]}), config.WatcherConfig())


class GitConfigTests(unittest.TestCase):
    def test_visibility_level_is_clamped(self) -> None:
        self.assertEqual(config.GitConfig.from_config({"git": {"visibility_level": 9}}).visibility_level, 4)
        self.assertEqual(config.GitConfig.from_config({"git": {"visibility_level": 0}}).visibility_level, 1)

    def test_binary_and_timeout(self) -> None:
        git = config.GitConfig.from_config({"git": {"git_binary": " /usr/bin/git ", "timeout_ms": 0}})
        self.assertEqual(git.git_binary, "/usr/bin/git")
        self.assertIsNone(git.timeout_seconds)
        self.assertEqual(config.GitConfig().timeout_seconds, 30.0)

    def test_blank_binary_falls_back(self) -> None:
        with self.assertLogs("lazystage.config", level="WARNING"):
            git = config.GitConfig.from_config({"git": {"git_binary": "  "}})
        self.assertEqual(git.git_binary, "git")

    def test_history_size_is_at_least_one(self) -> None:
        self.assertEqual(config.GitConfig.from_config({"git": {"history_size": 0}}).history_size, 1)


class ConfigPersistenceTests(unittest.TestCase):
    def test_missing_or_malformed_file_loads_empty(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            config_path = Path(tmp) / "config.json"
            with mock.patch("lazystage.config.CONFIG_PATH", config_path):
                self.assertEqual(config.load_config(), {})
                config_path.write_text("[1, 2]", encoding="utf-8")
                self.assertEqual(config.load_config(), {})
                config_path.write_text("{not json", encoding="utf-8")
                self.assertEqual(config.load_config(), {})

    def test_save_visibility_level_round_trip(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            config_path = Path(tmp) / "nested" / "config.json"
            with mock.patch("lazystage.config.CONFIG_PATH", config_path):
                config.save_config({"watcher": {"auto_refresh": True}})
                config.save_visibility_level(7)

                loaded = config.AppConfig.load()
                self.assertEqual(loaded.git.visibility_level, 4)
                self.assertTrue(loaded.watcher.auto_refresh)


if __name__ == "__main__":
    unittest.main()
