#!/usr/bin/env python3
"""
Collector Agent

Runs on each monitored host and:
- Samples memory and CPU usage once per interval
- Queues each sample as an encoded frame
- Delivers queued frames to the collector server in order
- Polls the server for control commands (e.g. shutdown)

Usage:
    python3 -m agent.main [--config CONFIG_PATH]
"""

import argparse
import asyncio
import copy
import logging
import signal
import sys
from pathlib import Path
from typing import Optional

import structlog
import yaml

from agent.identity import load_or_create_collector_id
from agent.telemetry import MetricSampler
from agent.transport import AgentTransport, CollectorError, DeliveryQueue
from protocol import TaskType

logger = structlog.get_logger(__name__)

DEFAULT_CONFIG = {
    "agent": {"name": "collector-agent", "version": "1.0.0"},
    "server": {
        "host": "127.0.0.1",
        "port": 9004,
        "connect_timeout": 5.0,
        "read_timeout": 10.0,
    },
    "telemetry": {"interval": 1.0},
    "queue": {"max_frames": 3600},
    "identity": {"path": "uuid"},
    "logging": {"level": "INFO"},
}


def configure_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging."""
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level.upper())

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer()
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def load_config(config_path: Optional[str]) -> dict:
    """Load YAML configuration merged over the defaults."""
    config = copy.deepcopy(DEFAULT_CONFIG)

    if not config_path:
        return config

    path = Path(config_path)
    if not path.exists():
        logger.warning("Config file not found, using defaults", path=config_path)
        return config

    with open(path, "r") as f:
        loaded = yaml.safe_load(f) or {}

    for section, values in loaded.items():
        # An empty section ("queue:") keeps its defaults
        if values is None:
            continue
        if isinstance(values, dict) and isinstance(config.get(section), dict):
            config[section].update(values)
        else:
            config[section] = values

    logger.info("Configuration loaded", path=config_path)
    return config


class CollectorAgent:
    """Main collector agent application."""

    def __init__(self, config: dict, collector_id: Optional[int] = None):
        self.config = config
        self.running = False
        self._shutdown_event = asyncio.Event()
        self._delivery_task: Optional[asyncio.Task] = None
        self._stop_task: Optional[asyncio.Task] = None

        if collector_id is None:
            collector_id = load_or_create_collector_id(self.config["identity"]["path"])
        self.collector_id = collector_id

        # Unbounded: every sample reaches the transport side
        self.channel: asyncio.Queue = asyncio.Queue()

        server_config = self.config["server"]
        self.sampler = MetricSampler(self.config, self.collector_id, self.channel)
        self.transport = AgentTransport(
            host=server_config["host"],
            port=server_config["port"],
            collector_id=self.collector_id,
            queue=DeliveryQueue((self.config.get("queue") or {}).get("max_frames")),
            connect_timeout=server_config.get("connect_timeout"),
            read_timeout=server_config.get("read_timeout"),
        )

    async def _delivery_loop(self) -> None:
        """Queue each sample and run a delivery cycle."""
        while self.running:
            command = await self.channel.get()
            self.transport.enqueue(command)

            try:
                task = await self.transport.deliver()
            except CollectorError as e:
                logger.warning(
                    "Delivery failed, will retry",
                    error_type=type(e).__name__,
                    error=str(e),
                    queued=len(self.transport.queue),
                )
                continue

            if task is not None:
                await self.handle_task(task)

    async def handle_task(self, task: TaskType) -> None:
        """Execute a control command from the server."""
        if task == TaskType.SHUTDOWN:
            logger.info("Shutdown requested by server")
            await self.stop()
        else:
            logger.warning("Unknown task ignored", task=task)

    async def start(self) -> None:
        """Start the agent and wait until it is stopped."""
        logger.info(
            "Starting collector agent",
            version=self.config["agent"]["version"],
            server=f"{self.transport.host}:{self.transport.port}",
        )
        self.running = True

        await self.sampler.start()
        self._delivery_task = asyncio.create_task(self._delivery_loop())

        logger.info("Collector agent started")

        await self._shutdown_event.wait()

    async def stop(self) -> None:
        """Stop the agent gracefully."""
        if not self.running:
            return

        logger.info("Stopping collector agent", queued=len(self.transport.queue))
        self.running = False

        await self.sampler.stop()

        current = asyncio.current_task()
        if self._delivery_task and self._delivery_task is not current:
            self._delivery_task.cancel()
            try:
                await self._delivery_task
            except asyncio.CancelledError:
                pass

        self._shutdown_event.set()
        logger.info("Collector agent stopped")

    def handle_signal(self, signum):
        """Handle shutdown signals from the event loop."""
        logger.info("Received signal", signal=signum)
        if self._stop_task is None:
            self._stop_task = asyncio.create_task(self.stop())


async def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Telemetry Collector Agent")
    parser.add_argument(
        "--config", "-c",
        default="config.yaml",
        help="Path to configuration file"
    )
    args = parser.parse_args()

    config = load_config(args.config)
    configure_logging(config["logging"]["level"])

    agent = CollectorAgent(config)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, agent.handle_signal, sig)

    try:
        await agent.start()
    except Exception as e:
        logger.exception("Agent failed", error=str(e))
        sys.exit(1)


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()
