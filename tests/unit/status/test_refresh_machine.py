"""Tests for the refresh state machine transition table."""

from __future__ import annotations

import unittest

from lazystage.status.machine import (
    EXTERNAL_CHANGE,
    IDLE,
    REFRESH_DONE,
    REFRESH_FAILED,
    REFRESHING,
    RENDER_DONE,
    RENDERED,
    REQUEST_REFRESH,
    STALE,
    RefreshMachine,
    TransitionError,
)


class RefreshMachineTests(unittest.TestCase):
    def test_happy_path(self) -> None:
        machine = RefreshMachine()
        seen: list[tuple[str, str]] = []
        machine.subscribe(lambda old, new: seen.append((old, new)))

        machine.dispatch(REQUEST_REFRESH)
        machine.dispatch(REFRESH_DONE)
        machine.dispatch(RENDER_DONE)

        self.assertEqual(seen, [(IDLE, REFRESHING), (REFRESHING, RENDERED), (RENDERED, IDLE)])

    def test_external_change_marks_idle_view_stale(self) -> None:
        machine = RefreshMachine()
        machine.dispatch(EXTERNAL_CHANGE)
        self.assertTrue(machine.is_stale)
        machine.dispatch(EXTERNAL_CHANGE)
        self.assertEqual(machine.dispatch(REQUEST_REFRESH), REFRESHING)

    def test_events_during_refresh_fold_into_one_follow_up(self) -> None:
        machine = RefreshMachine()
        machine.dispatch(REQUEST_REFRESH)
        machine.dispatch(REQUEST_REFRESH)
        machine.dispatch(REQUEST_REFRESH)

        self.assertEqual(machine.state, REFRESHING)
        self.assertTrue(machine.take_follow_up())
        self.assertFalse(machine.take_follow_up())

    def test_external_change_during_refresh_lands_in_stale(self) -> None:
        machine = RefreshMachine()
        machine.dispatch(REQUEST_REFRESH)
        machine.dispatch(EXTERNAL_CHANGE)

        self.assertEqual(machine.dispatch(REFRESH_DONE), STALE)
        self.assertTrue(machine.follow_up)
        self.assertFalse(machine.stale_on_completion)

    def test_failure_returns_to_idle(self) -> None:
        machine = RefreshMachine()
        machine.dispatch(REQUEST_REFRESH)
        self.assertEqual(machine.dispatch(REFRESH_FAILED), IDLE)

    def test_undefined_transition_raises(self) -> None:
        machine = RefreshMachine()
        self.assertFalse(machine.can_dispatch(REFRESH_DONE))
        with self.assertRaises(TransitionError):
            machine.dispatch(REFRESH_DONE)

    def test_unsubscribe_stops_notifications(self) -> None:
        machine = RefreshMachine()
        seen: list[str] = []
        unsubscribe = machine.subscribe(lambda old, new: seen.append(new))
        unsubscribe()
        machine.dispatch(EXTERNAL_CHANGE)
        self.assertEqual(seen, [])


if __name__ == "__main__":
    unittest.main()
