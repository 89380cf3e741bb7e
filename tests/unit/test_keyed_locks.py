"""Unit tests for the per-record asyncio locks used by MasteryService."""

import asyncio

import pytest

from professorprep.engines.mastery.mastery_service import KeyedAsyncLocks


class TestKeyedAsyncLocks:
    """Locks live only while a task holds or waits on them."""

    @pytest.mark.asyncio
    async def test_lock_dropped_after_release(self):
        locks = KeyedAsyncLocks()
        async with locks.hold([("student-1", "obj-a"), ("student-1", "obj-b")]):
            assert len(locks) == 2
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_many_students_do_not_accumulate(self):
        locks = KeyedAsyncLocks()
        for i in range(100):
            async with locks.hold([(f"student-{i}", "obj-a")]):
                pass
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_lock_dropped_after_error(self):
        locks = KeyedAsyncLocks()
        with pytest.raises(RuntimeError):
            async with locks.hold([("student-1", "obj-a")]):
                raise RuntimeError("boom")
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_waiter_keeps_lock_alive(self):
        """A second task on the same key waits, then the key is dropped."""
        locks = KeyedAsyncLocks()
        key = ("student-1", "obj-a")
        order = []
        release = asyncio.Event()

        async def first():
            async with locks.hold([key]):
                order.append("first-in")
                await release.wait()
                order.append("first-out")

        async def second():
            async with locks.hold([key]):
                order.append("second-in")

        t1 = asyncio.create_task(first())
        await asyncio.sleep(0)
        t2 = asyncio.create_task(second())
        await asyncio.sleep(0)
        assert len(locks) == 1
        release.set()
        await asyncio.gather(t1, t2)

        assert order == ["first-in", "first-out", "second-in"]
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_duplicate_keys_held_once(self):
        locks = KeyedAsyncLocks()
        key = ("student-1", "obj-a")
        async with locks.hold([key, key]):
            assert len(locks) == 1
        assert len(locks) == 0
