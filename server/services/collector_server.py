"""
Collector Server - Agent Listener

Accepts TCP connections from collector agents and serves each one in its
own task. Per connection the handler reads a frame, dispatches on the
command and writes a bare response:

- SubmitData: store the row, answer Ack. If storing fails nothing is sent
  and the agent retries the same frame later.
- RequestWork: answer Task(command) if one is pending, otherwise NoWork.

A corrupt frame closes that connection only.
"""

import asyncio
import uuid
from typing import Optional

import structlog

from protocol import (
    Ack,
    CorruptFrame,
    NoWork,
    RequestWork,
    SubmitData,
    Task,
    encode_response,
    read_frame,
)
from protocol.codec import DEFAULT_MAX_PAYLOAD_SIZE

from server.db import MetricsStore
from .commands import CommandStore

logger = structlog.get_logger(__name__)


class CollectorServer:
    """TCP server for agent telemetry frames."""

    def __init__(
        self,
        host: str,
        port: int,
        store: MetricsStore,
        commands: CommandStore,
        max_payload_size: int = DEFAULT_MAX_PAYLOAD_SIZE,
    ):
        self.host = host
        self.store = store
        self.commands = commands
        self.max_payload_size = max_payload_size

        self._port = port
        self._server: Optional[asyncio.Server] = None
        self._is_running = False

    @property
    def is_running(self) -> bool:
        return self._is_running

    @property
    def port(self) -> int:
        """Bound port (resolved after start when configured as 0)."""
        if self._server and self._server.sockets:
            return self._server.sockets[0].getsockname()[1]
        return self._port

    async def start(self) -> None:
        """Start accepting agent connections."""
        self._server = await asyncio.start_server(
            self._handle_client,
            host=self.host,
            port=self._port,
        )

        self._is_running = True
        logger.info("Collector server started", host=self.host, port=self.port)

    async def stop(self) -> None:
        """Stop accepting connections."""
        if self._server:
            self._server.close()
            await self._server.wait_closed()
            self._server = None

        self._is_running = False
        logger.info("Collector server stopped")

    async def serve_forever(self) -> None:
        if not self._server:
            await self.start()
        await self._server.serve_forever()

    async def _handle_client(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter
    ) -> None:
        """Handle one agent connection until it closes."""
        peer = writer.get_extra_info("peername") or "unknown"
        logger.debug("Agent connected", peer=peer)

        try:
            while True:
                frame = await read_frame(reader, self.max_payload_size)
                if frame is None:
                    logger.debug("No data received - connection closed", peer=peer)
                    break

                timestamp, command = frame
                response = await self._dispatch(timestamp, command)

                if response is not None:
                    writer.write(encode_response(response))
                    await writer.drain()

        except CorruptFrame as e:
            logger.warning("Corrupt frame, closing connection", peer=peer, reason=e.reason, details=e.details)
        except ConnectionError as e:
            logger.debug("Agent disconnected", peer=peer, error=str(e))
        except Exception as e:
            logger.exception("Client handler error", peer=peer, error=str(e))
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except ConnectionError:
                pass

    async def _dispatch(self, timestamp: int, command):
        """Run a command and return the response to send, if any."""
        if isinstance(command, SubmitData):
            collector_id = str(uuid.UUID(int=command.collector_id))
            try:
                await self.store.insert(
                    collector_id=collector_id,
                    received=timestamp,
                    total_memory=command.total_memory,
                    used_memory=command.used_memory,
                    average_cpu=command.average_cpu_usage,
                )
            except Exception as e:
                logger.exception("Error inserting data into the database", collector_id=collector_id, error=str(e))
                return None

            logger.debug("Data stored", collector_id=collector_id, received=timestamp)
            return Ack()

        if isinstance(command, RequestWork):
            task = self.commands.take(command.collector_id)
            if task is None:
                return NoWork()

            logger.info(
                "Task dispatched",
                collector_id=str(uuid.UUID(int=command.collector_id)),
                task=task.name,
            )
            return Task(task)

        logger.warning("Unhandled command", command=type(command).__name__)
        return None
