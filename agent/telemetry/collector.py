"""
Collector Agent - Metric Sampler

Samples host memory and CPU usage at a fixed cadence and hands each sample
to the transport through an asyncio queue.
"""

import asyncio
import time
from typing import Optional

import psutil
import structlog

from protocol import SubmitData

logger = structlog.get_logger(__name__)


class MetricSampler:
    """Periodic producer of SubmitData messages."""

    def __init__(self, config: dict, collector_id: int, channel: asyncio.Queue):
        self.config = config.get("telemetry", {})
        self._interval = float(self.config.get("interval", 1.0))
        self._collector_id = collector_id
        self._channel = channel

        self._running = False
        self._collection_task: Optional[asyncio.Task] = None
        self._samples_sent = 0

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def samples_sent(self) -> int:
        return self._samples_sent

    async def start(self) -> None:
        """Start sampling."""
        self._running = True
        self._collection_task = asyncio.create_task(self._collection_loop())
        logger.info("Metric sampler started", interval=self._interval)

    async def stop(self) -> None:
        """Stop sampling."""
        self._running = False

        if self._collection_task:
            self._collection_task.cancel()
            try:
                await self._collection_task
            except asyncio.CancelledError:
                pass
            self._collection_task = None

        logger.info("Metric sampler stopped", samples=self._samples_sent)

    def collect_sample(self) -> SubmitData:
        """Take one reading of memory and average CPU usage."""
        mem = psutil.virtual_memory()
        cpu_percent = psutil.cpu_percent(interval=None, percpu=True)
        average_cpu = sum(cpu_percent) / len(cpu_percent) if cpu_percent else 0.0

        return SubmitData(
            collector_id=self._collector_id,
            total_memory=mem.total,
            used_memory=mem.used,
            average_cpu_usage=average_cpu,
        )

    def _emit(self, sample: SubmitData) -> None:
        try:
            self._channel.put_nowait(sample)
            self._samples_sent += 1
        except asyncio.QueueFull:
            logger.error("Error sending data, channel full", queued=self._channel.qsize())

    async def _collection_loop(self) -> None:
        """Main sampling loop."""
        # The first per-core reading only primes psutil's counters
        psutil.cpu_percent(interval=None, percpu=True)
        await asyncio.sleep(self._interval)

        while self._running:
            start_time = time.monotonic()

            try:
                self._emit(self.collect_sample())
            except Exception as e:
                logger.exception("Sampling error", error=str(e))

            elapsed = time.monotonic() - start_time
            if elapsed < self._interval:
                await asyncio.sleep(self._interval - elapsed)
            else:
                logger.warning("Sampler running behind", elapsed=round(elapsed, 3), interval=self._interval)
                await asyncio.sleep(self._interval)
