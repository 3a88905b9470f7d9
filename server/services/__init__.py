"""
Collector Server - Services Package

Agent-facing TCP listener and the pending command store.
"""

from .collector_server import CollectorServer
from .commands import CommandStore

__all__ = ["CollectorServer", "CommandStore"]
