"""Ring buffer of recently executed git commands.

Kept per executor so a UI can show what was run and why it failed.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
import time

DEFAULT_HISTORY_SIZE = 100


@dataclass(frozen=True)
class GitHistoryEntry:
    args: tuple[str, ...]
    cwd: str
    exit_code: int
    stdout: str
    stderr: str
    started_at: float
    duration_ms: float

    @property
    def command(self) -> str:
        return self.args[0] if self.args else ""

    def summary(self) -> str:
        """One-line description: time, exit code, duration and argv."""
        stamp = time.strftime("%H:%M:%S", time.localtime(self.started_at))
        marker = "ok" if self.exit_code == 0 else f"exit {self.exit_code}"
        return f"{stamp} [{marker}, {self.duration_ms:.0f}ms] git {' '.join(self.args)}"


class GitHistory:
    """Bounded history; oldest entries fall off once ``max_size`` is reached."""

    def __init__(self, max_size: int = DEFAULT_HISTORY_SIZE) -> None:
        self.max_size = max(1, int(max_size))
        self._entries: deque[GitHistoryEntry] = deque(maxlen=self.max_size)

    def add(self, entry: GitHistoryEntry) -> None:
        self._entries.append(entry)

    def entries(self) -> list[GitHistoryEntry]:
        """Return entries newest first."""
        return list(reversed(self._entries))

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


__all__ = ["DEFAULT_HISTORY_SIZE", "GitHistory", "GitHistoryEntry"]
