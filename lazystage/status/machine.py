"""Per-repository refresh state machine.

Replaces nested watch -> debounce -> refresh -> restore callbacks with an
explicit transition table. Events arriving while a refresh runs never
re-enter it: they set a single pending follow-up instead.
"""

from __future__ import annotations

from collections.abc import Callable
import logging

logger = logging.getLogger(__name__)

IDLE = "idle"
REFRESHING = "refreshing"
RENDERED = "rendered"
STALE = "stale"

REQUEST_REFRESH = "request_refresh"
EXTERNAL_CHANGE = "external_change"
REFRESH_DONE = "refresh_done"
REFRESH_FAILED = "refresh_failed"
RENDER_DONE = "rendered"

TRANSITIONS: dict[tuple[str, str], str] = {
    (IDLE, REQUEST_REFRESH): REFRESHING,
    (IDLE, EXTERNAL_CHANGE): STALE,
    (STALE, REQUEST_REFRESH): REFRESHING,
    (STALE, EXTERNAL_CHANGE): STALE,
    (REFRESHING, REQUEST_REFRESH): REFRESHING,
    (REFRESHING, EXTERNAL_CHANGE): REFRESHING,
    (REFRESHING, REFRESH_DONE): RENDERED,
    (REFRESHING, REFRESH_FAILED): IDLE,
    (RENDERED, RENDER_DONE): IDLE,
    (RENDERED, REQUEST_REFRESH): REFRESHING,
    (RENDERED, EXTERNAL_CHANGE): STALE,
}


class TransitionError(ValueError):
    """An event that has no transition from the current state."""


class RefreshMachine:
    """Idle -> Refreshing -> {Rendered, Stale} -> Idle.

    During REFRESHING, ``request_refresh`` and ``external_change`` record a
    follow-up; ``external_change`` additionally marks the in-flight result
    stale, so completion lands in STALE rather than RENDERED.
    """

    def __init__(self) -> None:
        self.state = IDLE
        self.follow_up = False
        self.stale_on_completion = False
        self._listeners: list[Callable[[str, str], None]] = []

    @property
    def is_stale(self) -> bool:
        return self.state == STALE

    @property
    def is_refreshing(self) -> bool:
        return self.state == REFRESHING

    def subscribe(self, listener: Callable[[str, str], None]) -> Callable[[], None]:
        """Register ``listener(old_state, new_state)``; returns an unsubscribe."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def can_dispatch(self, event: str) -> bool:
        return (self.state, event) in TRANSITIONS

    def dispatch(self, event: str) -> str:
        key = (self.state, event)
        if key not in TRANSITIONS:
            raise TransitionError(f"no transition for {event!r} in state {self.state!r}")
        target = TRANSITIONS[key]

        if self.state == REFRESHING:
            if event in (REQUEST_REFRESH, EXTERNAL_CHANGE):
                self.follow_up = True
            if event == EXTERNAL_CHANGE:
                self.stale_on_completion = True
            if event in (REFRESH_DONE, REFRESH_FAILED) and self.stale_on_completion:
                target = STALE
                self.stale_on_completion = False
        self._move(target, event)
        return self.state

    def take_follow_up(self) -> bool:
        """Consume the pending follow-up flag (at most one per refresh)."""
        pending = self.follow_up
        self.follow_up = False
        return pending

    def _move(self, target: str, event: str) -> None:
        previous = self.state
        self.state = target
        if previous != target:
            logger.debug("refresh machine %s --%s--> %s", previous, event, target)
            for listener in list(self._listeners):
                listener(previous, target)


__all__ = [
    "EXTERNAL_CHANGE",
    "IDLE",
    "REFRESHING",
    "REFRESH_DONE",
    "REFRESH_FAILED",
    "RENDERED",
    "RENDER_DONE",
    "REQUEST_REFRESH",
    "RefreshMachine",
    "STALE",
    "TRANSITIONS",
    "TransitionError",
]
