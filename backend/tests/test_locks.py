"""Tests for the per-key lock registry."""
import asyncio

import pytest

from nomadchat.chat.locks import KeyedLocks


class TestKeyedLocks:

    @pytest.mark.asyncio
    async def test_same_key_runs_one_at_a_time(self):
        locks = KeyedLocks()
        events = []

        async def work(name):
            async with locks.hold("alice-bob"):
                events.append(f"{name} in")
                await asyncio.sleep(0.01)
                events.append(f"{name} out")

        await asyncio.gather(work("a"), work("b"))
        assert events == ["a in", "a out", "b in", "b out"]

    @pytest.mark.asyncio
    async def test_different_keys_do_not_block(self):
        locks = KeyedLocks()
        async with locks.hold("alice-bob"):
            await asyncio.wait_for(self._enter(locks, "alice-carol"), timeout=1)

    @staticmethod
    async def _enter(locks, key):
        async with locks.hold(key):
            return True

    @pytest.mark.asyncio
    async def test_idle_locks_are_dropped(self):
        locks = KeyedLocks()
        async with locks.hold("alice-bob"):
            assert len(locks) == 1
        assert len(locks) == 0

        await asyncio.gather(*[self._enter(locks, f"room-{i % 3}") for i in range(9)])
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_lock_is_released_on_error(self):
        locks = KeyedLocks()
        with pytest.raises(RuntimeError):
            async with locks.hold("alice-bob"):
                raise RuntimeError("boom")
        assert len(locks) == 0
        assert await self._enter(locks, "alice-bob") is True
