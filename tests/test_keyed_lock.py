"""Tests for per-key asyncio locking."""

from __future__ import annotations

import asyncio

import pytest

from pumpguard.keyed_lock import KeyedLock


class TestKeyedLock:

    @pytest.mark.asyncio
    async def test_same_key_is_serialised(self):
        locks = KeyedLock()
        order = []

        async def worker(name: str) -> None:
            async with locks.hold("mint"):
                order.append(f"{name}-in")
                await asyncio.sleep(0.01)
                order.append(f"{name}-out")

        await asyncio.gather(worker("a"), worker("b"))
        assert order == ["a-in", "a-out", "b-in", "b-out"]

    @pytest.mark.asyncio
    async def test_different_keys_overlap(self):
        locks = KeyedLock()
        inside = asyncio.Event()
        release = asyncio.Event()

        async def holder() -> None:
            async with locks.hold("one"):
                inside.set()
                await release.wait()

        task = asyncio.create_task(holder())
        await inside.wait()
        async with locks.hold("two"):
            assert len(locks) == 2
        release.set()
        await task

    @pytest.mark.asyncio
    async def test_idle_locks_are_dropped(self):
        locks = KeyedLock()
        async with locks.hold("a"):
            assert len(locks) == 1
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_released_on_error(self):
        locks = KeyedLock()
        with pytest.raises(RuntimeError):
            async with locks.hold("a"):
                raise RuntimeError("boom")
        assert len(locks) == 0
        async with locks.hold("a"):
            pass
