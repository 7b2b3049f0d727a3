"""Error taxonomy shared by the diff/patch engine and status tree.

Core operations return ``(value, error)`` pairs carrying these instances
instead of raising them across the component boundary.
"""

from __future__ import annotations

from collections.abc import Sequence

STALE_MESSAGE = "Diff may be stale. Try refreshing."
NOTHING_TO_STAGE_MESSAGE = "Nothing to stage"

SELECTION_MULTIPLE_FILES = "multiple_files"
SELECTION_NOTHING_TO_STAGE = "nothing_to_stage"
SELECTION_INVALID_ROW = "invalid_row"
SELECTION_UNSUPPORTED = "unsupported"


class LazyStageError(Exception):
    """Base class for every error the core reports."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class ParseError(LazyStageError):
    """Malformed diff input for one file."""

    def __init__(self, message: str, *, path: str | None = None, line_number: int | None = None) -> None:
        super().__init__(message)
        self.path = path
        self.line_number = line_number

    def __str__(self) -> str:
        where = self.path or "<diff>"
        if self.line_number is not None:
            return f"{where}:{self.line_number}: {self.message}"
        return f"{where}: {self.message}"


class ApplyConflict(LazyStageError):
    """A constructed patch no longer matches the blob it targets."""

    def __init__(self, detail: str = "") -> None:
        super().__init__(STALE_MESSAGE)
        self.detail = detail


class SelectionError(LazyStageError):
    """A selection that cannot be turned into a patch."""

    def __init__(self, reason: str, message: str | None = None) -> None:
        if message is None:
            message = _SELECTION_MESSAGES.get(reason, reason)
        super().__init__(message)
        self.reason = reason

    @property
    def nothing_to_stage(self) -> bool:
        return self.reason == SELECTION_NOTHING_TO_STAGE


_SELECTION_MESSAGES = {
    SELECTION_MULTIPLE_FILES: "Selection spans more than one file",
    SELECTION_NOTHING_TO_STAGE: NOTHING_TO_STAGE_MESSAGE,
    SELECTION_INVALID_ROW: "Selection is outside the diff",
    SELECTION_UNSUPPORTED: "Selection is not supported in this view",
}


class ProcessError(LazyStageError):
    """A git invocation exited non-zero; ``message`` is git's stderr as-is."""

    def __init__(self, args: Sequence[str], exit_code: int, stderr: str) -> None:
        super().__init__(stderr)
        self.args_list = tuple(args)
        self.exit_code = exit_code
        self.stderr = stderr


class WatcherError(LazyStageError):
    """Filesystem watch setup failed; live staleness detection is off."""


__all__ = [
    "ApplyConflict",
    "LazyStageError",
    "NOTHING_TO_STAGE_MESSAGE",
    "ParseError",
    "ProcessError",
    "SELECTION_INVALID_ROW",
    "SELECTION_MULTIPLE_FILES",
    "SELECTION_NOTHING_TO_STAGE",
    "SELECTION_UNSUPPORTED",
    "STALE_MESSAGE",
    "SelectionError",
    "WatcherError",
]
