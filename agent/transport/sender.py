"""
Collector Agent - Transport

Drains the delivery queue over a TCP connection to the collector server,
one frame and one acknowledgment at a time, then polls for pending work.

Delivery is at-least-once: if an Ack is lost after the server stored the
data, the frame is sent again and the server stores a duplicate row.
"""

import asyncio
from typing import Optional

import structlog

from protocol import Ack, Command, ProtocolError, RequestWork, Task, TaskType, encode, read_response

from .errors import UnableToConnect, UnableToReceiveData, UnableToSendData, UnexpectedResponse
from .queue import DeliveryQueue

logger = structlog.get_logger(__name__)


class AgentTransport:
    """Delivers queued frames to the collector server."""

    def __init__(
        self,
        host: str,
        port: int,
        collector_id: int,
        queue: Optional[DeliveryQueue] = None,
        connect_timeout: Optional[float] = 5.0,
        read_timeout: Optional[float] = 10.0,
    ):
        self.host = host
        self.port = port
        self.collector_id = collector_id
        self.queue = queue if queue is not None else DeliveryQueue()
        self.connect_timeout = connect_timeout
        self.read_timeout = read_timeout

    def enqueue(self, command: Command) -> None:
        """Encode a command and queue it behind pending frames."""
        self.queue.push_back(encode(command))

    async def deliver(self) -> Optional[TaskType]:
        """Run one delivery cycle.

        Sends every queued frame in order, waiting for an Ack after each. On
        the first failure the in-flight frame is put back at the front and
        the cycle stops. Once the queue is empty the server is asked for
        work.

        Returns:
            The task the server handed out, or None.

        Raises:
            UnableToConnect, UnableToSendData, UnableToReceiveData
        """
        reader, writer = await self._connect()

        try:
            while self.queue:
                frame = self.queue.pop_front()
                acknowledged = False
                try:
                    await self._send_frame(reader, writer, frame)
                    acknowledged = True
                finally:
                    if not acknowledged:
                        self.queue.push_front(frame)

            logger.debug("Delivery queue drained")
            return await self._request_work(reader, writer)

        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except OSError:
                pass

    async def _connect(self):
        try:
            return await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port),
                timeout=self.connect_timeout,
            )
        except (OSError, asyncio.TimeoutError) as e:
            raise UnableToConnect(f"Unable to connect to {self.host}:{self.port}: {e}") from e

    async def _send_frame(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        frame: bytes,
    ) -> None:
        try:
            writer.write(frame)
            await writer.drain()
        except OSError as e:
            raise UnableToSendData(str(e)) from e

        response = await self._receive(reader)
        if not isinstance(response, Ack):
            raise UnexpectedResponse(response)

    async def _receive(self, reader: asyncio.StreamReader):
        try:
            return await asyncio.wait_for(read_response(reader), timeout=self.read_timeout)
        except asyncio.IncompleteReadError as e:
            raise UnableToReceiveData("Connection closed by server") from e
        except asyncio.TimeoutError as e:
            raise UnableToReceiveData(f"No response within {self.read_timeout}s") from e
        except (OSError, ProtocolError) as e:
            raise UnableToReceiveData(str(e)) from e

    async def _request_work(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> Optional[TaskType]:
        """Ask the server for a pending command. Failures are ignored."""
        try:
            writer.write(encode(RequestWork(collector_id=self.collector_id)))
            await writer.drain()
            response = await self._receive(reader)
        except (OSError, UnableToReceiveData) as e:
            logger.debug("Work request failed", error=str(e))
            return None

        if isinstance(response, Task):
            logger.info("Task received", task=response.task.name)
            return response.task

        return None
