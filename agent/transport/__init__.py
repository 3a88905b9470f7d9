"""
Collector Agent - Transport Package

Ordered delivery of encoded frames to the collector server.
"""

from .errors import (
    CollectorError,
    UnableToConnect,
    UnableToReceiveData,
    UnableToSendData,
    UnexpectedResponse,
)
from .queue import DeliveryQueue
from .sender import AgentTransport

__all__ = [
    "AgentTransport",
    "DeliveryQueue",
    "CollectorError",
    "UnableToConnect",
    "UnableToSendData",
    "UnableToReceiveData",
    "UnexpectedResponse",
]
