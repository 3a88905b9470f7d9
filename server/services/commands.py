"""
Collector Server - Command Store

Pending control commands, one per collector. An administrative action sets
a command; the collector's next work request takes it.
"""

import threading
import uuid
from typing import Dict, Optional

import structlog

from protocol import TaskType

logger = structlog.get_logger(__name__)


class CommandStore:
    """Collector id -> pending TaskType, safe to share between handlers."""

    def __init__(self):
        self._commands: Dict[int, TaskType] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._commands)

    def set(self, collector_id: int, command: TaskType) -> None:
        """Store a command, replacing any command already pending."""
        with self._lock:
            replaced = self._commands.get(collector_id)
            self._commands[collector_id] = command

        logger.info(
            "Command queued",
            collector_id=str(uuid.UUID(int=collector_id)),
            command=command.name,
            replaced=replaced.name if replaced is not None else None,
        )

    def take(self, collector_id: int) -> Optional[TaskType]:
        """Remove and return the pending command, if any."""
        with self._lock:
            return self._commands.pop(collector_id, None)

    def pending(self) -> Dict[int, TaskType]:
        """Snapshot of all pending commands."""
        with self._lock:
            return dict(self._commands)
