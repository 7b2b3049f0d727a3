"""Persistent JSON config helpers.

Stores watcher timings, git invocation limits, and display preferences.
All access is defensive: malformed or missing config falls back safely.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, fields
from pathlib import Path

from platformdirs import user_config_dir

logger = logging.getLogger(__name__)

APP_NAME = "lazystage"
CONFIG_FILENAME = "config.json"
DEFAULT_CONFIG_PATH = Path(user_config_dir(APP_NAME, appauthor=False)) / CONFIG_FILENAME
CONFIG_PATH = DEFAULT_CONFIG_PATH

MIN_VISIBILITY_LEVEL = 1
MAX_VISIBILITY_LEVEL = 4


def load_config() -> dict[str, object]:
    """Load the persisted JSON config object.

    Returns an empty dict when the file is missing, unreadable, malformed, or
    does not decode to a top-level JSON object.
    """
    try:
        data = json.loads(CONFIG_PATH.read_text(encoding="utf-8"))
    except Exception:
        return {}
    return data if isinstance(data, dict) else {}


def save_config(data: dict[str, object]) -> None:
    """Persist config data as pretty-printed JSON.

    Any filesystem/serialization error is logged and otherwise ignored so a
    read-only config directory never breaks the caller.
    """
    try:
        CONFIG_PATH.parent.mkdir(parents=True, exist_ok=True)
        CONFIG_PATH.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
    except Exception as exc:
        logger.warning("could not write config %s: %s", CONFIG_PATH, exc)


def _coerce_bool(section: str, key: str, value: object, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    logger.warning("config %s.%s: expected boolean, got %r", section, key, value)
    return default


def _coerce_positive_int(section: str, key: str, value: object, default: int) -> int:
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        logger.warning("config %s.%s: expected non-negative integer, got %r", section, key, value)
        return default
    return value


def _section(data: dict[str, object], name: str) -> dict[str, object]:
    value = data.get(name)
    return value if isinstance(value, dict) else {}


@dataclass(frozen=True)
class WatcherConfig:
    """Change-watcher switches and debounce windows (milliseconds)."""

    enabled: bool = True
    stale_indicator: bool = True
    auto_refresh: bool = False
    watch_worktree: bool = True
    stale_debounce_ms: int = 200
    auto_refresh_debounce_ms: int = 500
    cooldown_ms: int = 1000
    poll_interval_ms: int = 500

    @classmethod
    def from_config(cls, data: dict[str, object] | None = None) -> WatcherConfig:
        raw = _section(load_config() if data is None else data, "watcher")
        defaults = cls()
        values: dict[str, object] = {}
        for item in fields(cls):
            default = getattr(defaults, item.name)
            if isinstance(default, bool):
                values[item.name] = _coerce_bool("watcher", item.name, raw.get(item.name), default)
            else:
                values[item.name] = _coerce_positive_int("watcher", item.name, raw.get(item.name), default)
        return cls(**values)


@dataclass(frozen=True)
class GitConfig:
    """Git invocation limits plus status/diff display preferences."""

    git_binary: str = "git"
    timeout_ms: int = 30_000
    history_size: int = 100
    status_context_lines: int = 3
    visibility_level: int = 2
    style: str = "monokai"

    @property
    def timeout_seconds(self) -> float | None:
        return self.timeout_ms / 1000.0 if self.timeout_ms > 0 else None

    @classmethod
    def from_config(cls, data: dict[str, object] | None = None) -> GitConfig:
        raw = _section(load_config() if data is None else data, "git")
        defaults = cls()

        git_binary = raw.get("git_binary", defaults.git_binary)
        if not isinstance(git_binary, str) or not git_binary.strip():
            logger.warning("config git.git_binary: expected non-empty string, got %r", git_binary)
            git_binary = defaults.git_binary

        style = raw.get("style", defaults.style)
        if not isinstance(style, str) or not style.strip():
            style = defaults.style

        level = _coerce_positive_int("git", "visibility_level", raw.get("visibility_level"), defaults.visibility_level)
        level = max(MIN_VISIBILITY_LEVEL, min(MAX_VISIBILITY_LEVEL, level))

        return cls(
            git_binary=git_binary.strip(),
            timeout_ms=_coerce_positive_int("git", "timeout_ms", raw.get("timeout_ms"), defaults.timeout_ms),
            history_size=max(
                1,
                _coerce_positive_int("git", "history_size", raw.get("history_size"), defaults.history_size),
            ),
            status_context_lines=_coerce_positive_int(
                "git",
                "status_context_lines",
                raw.get("status_context_lines"),
                defaults.status_context_lines,
            ),
            visibility_level=level,
            style=style.strip(),
        )


@dataclass(frozen=True)
class AppConfig:
    """Typed view over the whole config file."""

    watcher: WatcherConfig = field(default_factory=WatcherConfig)
    git: GitConfig = field(default_factory=GitConfig)

    @classmethod
    def load(cls) -> AppConfig:
        data = load_config()
        return cls(watcher=WatcherConfig.from_config(data), git=GitConfig.from_config(data))


def save_visibility_level(level: int) -> None:
    """Persist the default status visibility level, clamped to 1-4."""
    config = load_config()
    git_section = _section(config, "git")
    git_section["visibility_level"] = max(MIN_VISIBILITY_LEVEL, min(MAX_VISIBILITY_LEVEL, int(level)))
    config["git"] = git_section
    save_config(config)


__all__ = [
    "AppConfig",
    "CONFIG_PATH",
    "GitConfig",
    "WatcherConfig",
    "load_config",
    "save_config",
    "save_visibility_level",
]
