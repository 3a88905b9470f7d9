"""
Collector Server - Listener Tests

Drives the collector server over real TCP connections.
"""

import asyncio
import math
import uuid
from unittest.mock import AsyncMock

import aiosqlite
import pytest

from agent.transport import AgentTransport
from protocol import (
    Ack,
    NoWork,
    RequestWork,
    SubmitData,
    Task,
    TaskType,
    encode,
    read_response,
)


async def _connect(server):
    return await asyncio.open_connection("127.0.0.1", server.port)


async def _closed_by_peer(reader) -> bool:
    try:
        return await asyncio.wait_for(reader.read(), timeout=2.0) == b""
    except ConnectionResetError:
        return True


async def _call(reader, writer, command):
    writer.write(encode(command))
    await writer.drain()
    return await asyncio.wait_for(read_response(reader), timeout=2.0)


def _submit(collector_id: int, n: int = 0) -> SubmitData:
    return SubmitData(
        collector_id=collector_id,
        total_memory=16000000000 + n,
        used_memory=8000000000 + n,
        average_cpu_usage=37.5,
    )


class TestSubmitData:
    """Test metric submission."""

    @pytest.mark.asyncio
    async def test_submit_is_stored_and_acked(self, collector_server, store):
        reader, writer = await _connect(collector_server)
        frame = encode(_submit(42), timestamp=1700000000)

        writer.write(frame)
        await writer.drain()
        response = await asyncio.wait_for(read_response(reader), timeout=2.0)
        writer.close()

        assert response == Ack()
        rows = await store.all_rows()
        assert len(rows) == 1
        assert rows[0]["collector_id"] == str(uuid.UUID(int=42))
        assert rows[0]["received"] == 1700000000
        assert rows[0]["total_memory"] == 16000000000
        assert rows[0]["used_memory"] == 8000000000
        assert rows[0]["average_cpu"] == 37.5

    @pytest.mark.asyncio
    async def test_coalesced_frames(self, collector_server, store):
        """Two frames in one write each get their own Ack."""
        reader, writer = await _connect(collector_server)
        writer.write(encode(_submit(1, 0)) + encode(_submit(1, 1)))
        await writer.drain()

        first = await asyncio.wait_for(read_response(reader), timeout=2.0)
        second = await asyncio.wait_for(read_response(reader), timeout=2.0)
        writer.close()

        assert first == second == Ack()
        assert len(await store.rows_for(str(uuid.UUID(int=1)))) == 2

    @pytest.mark.asyncio
    async def test_persistence_failure_withholds_ack(self, collector_server, store):
        store.insert = AsyncMock(side_effect=aiosqlite.OperationalError("database is locked"))
        reader, writer = await _connect(collector_server)

        writer.write(encode(_submit(42)))
        await writer.drain()

        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(read_response(reader), timeout=0.3)

        # The connection stays usable for the retry
        store.insert = AsyncMock()
        assert await _call(reader, writer, _submit(42)) == Ack()
        writer.close()

    @pytest.mark.asyncio
    async def test_concurrent_collectors_do_not_mix(self, collector_server, store):
        first_id = uuid.uuid4().int
        second_id = uuid.uuid4().int

        async def submit_many(collector_id, offset):
            reader, writer = await _connect(collector_server)
            for n in range(10):
                command = SubmitData(
                    collector_id=collector_id,
                    total_memory=offset + n,
                    used_memory=offset,
                    average_cpu_usage=float(offset),
                )
                assert await _call(reader, writer, command) == Ack()
            writer.close()

        await asyncio.gather(submit_many(first_id, 1000), submit_many(second_id, 2000))

        first_rows = await store.rows_for(str(uuid.UUID(int=first_id)))
        second_rows = await store.rows_for(str(uuid.UUID(int=second_id)))

        assert len(first_rows) == len(second_rows) == 10
        assert {row["used_memory"] for row in first_rows} == {1000}
        assert {row["used_memory"] for row in second_rows} == {2000}
        assert [row["total_memory"] for row in first_rows] == list(range(1000, 1010))


class TestValueRange:
    """Test values at the edges of the wire types."""

    @pytest.mark.asyncio
    async def test_unsigned_64_bit_memory_is_stored(self, collector_server, store):
        reader, writer = await _connect(collector_server)
        command = SubmitData(
            collector_id=42,
            total_memory=2 ** 64 - 1,
            used_memory=2 ** 63,
            average_cpu_usage=50.0,
        )
        assert await _call(reader, writer, command) == Ack()
        writer.close()

        rows = await store.all_rows()
        assert rows[0]["total_memory"] == 2 ** 64 - 1
        assert rows[0]["used_memory"] == 2 ** 63

    @pytest.mark.asyncio
    async def test_nan_cpu_is_stored_as_null(self, collector_server, store):
        reader, writer = await _connect(collector_server)
        command = SubmitData(
            collector_id=42,
            total_memory=1000,
            used_memory=10,
            average_cpu_usage=math.nan,
        )
        assert await _call(reader, writer, command) == Ack()
        writer.close()

        rows = await store.all_rows()
        assert rows[0]["average_cpu"] is None

    @pytest.mark.asyncio
    async def test_extreme_frames_do_not_block_the_queue(self, collector_server, store):
        """Frames behind an extreme sample are delivered in the same cycle."""
        transport = AgentTransport(
            host="127.0.0.1",
            port=collector_server.port,
            collector_id=42,
            connect_timeout=2.0,
            read_timeout=2.0,
        )
        transport.enqueue(SubmitData(collector_id=42, total_memory=2 ** 63, used_memory=0, average_cpu_usage=1.0))
        transport.enqueue(SubmitData(collector_id=42, total_memory=1, used_memory=0, average_cpu_usage=math.nan))
        transport.enqueue(_submit(42))

        assert await transport.deliver() is None

        assert len(transport.queue) == 0
        rows = await store.all_rows()
        assert [row["total_memory"] for row in rows] == [2 ** 63, 1, 16000000000]


class TestRequestWork:
    """Test the command channel."""

    @pytest.mark.asyncio
    async def test_no_work(self, collector_server):
        reader, writer = await _connect(collector_server)
        assert await _call(reader, writer, RequestWork(42)) == NoWork()
        writer.close()

    @pytest.mark.asyncio
    async def test_task_delivered_once(self, collector_server, commands):
        commands.set(42, TaskType.SHUTDOWN)
        reader, writer = await _connect(collector_server)

        assert await _call(reader, writer, RequestWork(7)) == NoWork()
        assert await _call(reader, writer, RequestWork(42)) == Task(TaskType.SHUTDOWN)
        assert await _call(reader, writer, RequestWork(42)) == NoWork()
        writer.close()


class TestCorruptFrames:
    """Test that corrupt frames only drop their own connection."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("index", [0, 3, -1])
    async def test_corrupt_frame_closes_connection(self, collector_server, store, index):
        damaged = bytearray(encode(_submit(42)))
        damaged[index] ^= 0xFF

        reader, writer = await _connect(collector_server)
        writer.write(bytes(damaged))
        await writer.drain()

        assert await _closed_by_peer(reader)
        writer.close()

        assert await store.all_rows() == []
        assert collector_server.is_running

        reader, writer = await _connect(collector_server)
        assert await _call(reader, writer, _submit(42)) == Ack()
        writer.close()
