"""
Tests for LoopLock.
"""

import asyncio

from rtgc.locks import LoopLock


class TestLoopLock:
    """Tests for per-loop asyncio locks."""

    def test_same_loop_shares_one_lock(self):
        lock = LoopLock()

        async def twice():
            return lock.for_running_loop(), lock.for_running_loop()

        first, second = asyncio.run(twice())
        assert first is second

    def test_each_loop_gets_its_own_lock(self):
        lock = LoopLock()

        async def grab():
            return lock.for_running_loop()

        assert asyncio.run(grab()) is not asyncio.run(grab())

    def test_contended_on_successive_loops(self):
        lock = LoopLock()
        order = []

        async def worker(name):
            async with lock:
                order.append(f"{name}+")
                await asyncio.sleep(0.001)
                order.append(f"{name}-")

        async def race(a, b):
            await asyncio.gather(worker(a), worker(b))

        asyncio.run(race("a", "b"))
        asyncio.run(race("c", "d"))

        assert order == ["a+", "a-", "b+", "b-", "c+", "c-", "d+", "d-"]
        assert not lock.locked()
