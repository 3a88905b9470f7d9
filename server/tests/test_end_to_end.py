"""
Collector Server - End-to-End Tests

Agent transport talking to a live collector server.
"""

import uuid

import pytest

from agent.transport import AgentTransport, UnableToReceiveData
from protocol import SubmitData, TaskType

COLLECTOR_ID = 42


def _transport(server) -> AgentTransport:
    return AgentTransport(
        host="127.0.0.1",
        port=server.port,
        collector_id=COLLECTOR_ID,
        connect_timeout=2.0,
        read_timeout=0.5,
    )


class TestAgentToServer:
    """Full delivery and command round trips."""

    @pytest.mark.asyncio
    async def test_submit_then_shutdown_scenario(self, collector_server, store, commands):
        transport = _transport(collector_server)
        transport.enqueue(SubmitData(
            collector_id=COLLECTOR_ID,
            total_memory=16000000000,
            used_memory=8000000000,
            average_cpu_usage=37.5,
        ))

        # Ack drains the queue, then RequestWork answers NoWork
        assert await transport.deliver() is None
        assert len(transport.queue) == 0

        rows = await store.rows_for(str(uuid.UUID(int=COLLECTOR_ID)))
        assert len(rows) == 1
        assert rows[0]["total_memory"] == 16000000000
        assert rows[0]["used_memory"] == 8000000000
        assert rows[0]["average_cpu"] == 37.5

        commands.set(COLLECTOR_ID, TaskType.SHUTDOWN)
        assert await transport.deliver() == TaskType.SHUTDOWN
        assert await transport.deliver() is None

    @pytest.mark.asyncio
    async def test_failed_store_is_retried(self, collector_server, store):
        """A withheld Ack keeps the frame queued until the store recovers."""
        real_insert = store.insert
        calls = {"count": 0}

        async def flaky_insert(**row):
            calls["count"] += 1
            if calls["count"] == 1:
                raise OSError("disk full")
            await real_insert(**row)

        store.insert = flaky_insert
        transport = _transport(collector_server)
        for n in range(2):
            transport.enqueue(SubmitData(collector_id=COLLECTOR_ID, total_memory=100 + n, used_memory=n, average_cpu_usage=0.0))

        with pytest.raises(UnableToReceiveData):
            await transport.deliver()
        assert len(transport.queue) == 2

        await transport.deliver()
        assert len(transport.queue) == 0

        rows = await store.rows_for(str(uuid.UUID(int=COLLECTOR_ID)))
        assert [row["total_memory"] for row in rows] == [100, 101]
