"""
Reader-writer lock tests
"""
import asyncio

import pytest

from fleetwatch.utils.rwlock import ReadWriteLock


class TestReadWriteLock:

    @pytest.mark.asyncio
    async def test_readers_share(self):
        lock = ReadWriteLock()
        async with lock.read():
            async with lock.read():
                assert lock.readers == 2
        assert lock.readers == 0

    @pytest.mark.asyncio
    async def test_writer_waits_for_readers(self):
        lock = ReadWriteLock()
        acquired = asyncio.Event()

        async def writer():
            async with lock.write():
                acquired.set()

        async with lock.read():
            task = asyncio.create_task(writer())
            await asyncio.sleep(0)
            assert not acquired.is_set()

        await task
        assert acquired.is_set()
        assert not lock.locked

    @pytest.mark.asyncio
    async def test_waiting_writer_goes_before_new_readers(self):
        lock = ReadWriteLock()
        order = []

        async def writer():
            async with lock.write():
                order.append("write")

        async def reader():
            async with lock.read():
                order.append("read")

        async with lock.read():
            w = asyncio.create_task(writer())
            await asyncio.sleep(0)
            r = asyncio.create_task(reader())
            await asyncio.sleep(0)
            assert order == []

        await asyncio.gather(w, r)
        assert order == ["write", "read"]

    @pytest.mark.asyncio
    async def test_cancelled_writer_releases_readers(self):
        lock = ReadWriteLock()
        read_done = asyncio.Event()

        async def writer():
            async with lock.write():
                pass

        async def reader():
            async with lock.read():
                read_done.set()

        async with lock.read():
            w = asyncio.create_task(writer())
            await asyncio.sleep(0)
            r = asyncio.create_task(reader())
            await asyncio.sleep(0)
            w.cancel()
            await asyncio.sleep(0)
            await asyncio.wait_for(read_done.wait(), timeout=1)

        await r
        assert lock.readers == 0
