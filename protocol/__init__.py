"""
Collector Protocol - Package

Wire format shared by the collector agent and the collector server.
"""

from .codec import (
    MAGIC_NUMBER,
    VERSION_NUMBER,
    decode,
    decode_response,
    encode,
    encode_response,
    read_frame,
    read_response,
)
from .errors import CorruptFrame, InvalidResponse, ProtocolError
from .messages import Ack, Command, NoWork, RequestWork, Response, SubmitData, Task, TaskType

__all__ = [
    "MAGIC_NUMBER",
    "VERSION_NUMBER",
    "encode",
    "decode",
    "encode_response",
    "decode_response",
    "read_frame",
    "read_response",
    "ProtocolError",
    "CorruptFrame",
    "InvalidResponse",
    "Command",
    "Response",
    "SubmitData",
    "RequestWork",
    "Ack",
    "NoWork",
    "Task",
    "TaskType",
]
