"""Tests for latest-request-wins dispatch and debounce timers."""

from __future__ import annotations

import asyncio
import unittest

from lazystage.async_utils import Debouncer, LatestRequest


class LatestRequestTests(unittest.IsolatedAsyncioTestCase):
    async def test_superseded_result_is_discarded(self) -> None:
        gate = LatestRequest()
        release = asyncio.Event()

        async def slow() -> str:
            await release.wait()
            return "old"

        async def fast() -> str:
            return "new"

        first = asyncio.ensure_future(gate.run(slow))
        await asyncio.sleep(0)
        self.assertTrue(gate.is_pending)

        self.assertEqual(await gate.run(fast), (True, "new"))
        release.set()
        self.assertEqual(await first, (False, None))
        self.assertFalse(gate.is_pending)

    async def test_cancel_drops_in_flight_result(self) -> None:
        gate = LatestRequest()

        async def work() -> int:
            gate.cancel()
            return 1

        self.assertEqual(await gate.run(work), (False, None))


class DebouncerTests(unittest.IsolatedAsyncioTestCase):
    async def test_burst_fires_once(self) -> None:
        calls: list[int] = []
        debouncer = Debouncer(20, lambda: calls.append(1))
        for _ in range(4):
            debouncer.trigger()
        self.assertTrue(debouncer.pending)

        await asyncio.sleep(0.08)
        self.assertEqual(calls, [1])
        self.assertFalse(debouncer.pending)

    async def test_cancel_prevents_callback(self) -> None:
        calls: list[int] = []
        debouncer = Debouncer(10, lambda: calls.append(1))
        debouncer.trigger()
        debouncer.cancel()
        await asyncio.sleep(0.05)
        self.assertEqual(calls, [])

    async def test_coroutine_callback_runs_as_task(self) -> None:
        done = asyncio.Event()

        async def callback() -> None:
            done.set()

        Debouncer(5, callback).trigger()
        await asyncio.wait_for(done.wait(), timeout=1.0)

    async def test_failing_coroutine_is_logged(self) -> None:
        async def callback() -> None:
            raise RuntimeError("boom")

        with self.assertLogs("lazystage.async_utils", level="ERROR"):
            Debouncer(5, callback).trigger()
            await asyncio.sleep(0.05)


if __name__ == "__main__":
    unittest.main()
