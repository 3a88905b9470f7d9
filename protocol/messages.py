"""
Collector Protocol - Messages

Commands travel agent -> server inside a checksummed frame, responses travel
server -> agent as a bare payload. Both use the same payload layout: a
little-endian u32 variant index followed by the variant's fields in order
(u128 as 16 bytes, u64, f32). This matches the payloads produced by the
existing agents, so both ends stay interchangeable.
"""

import struct
from dataclasses import dataclass
from enum import IntEnum
from typing import Union

U64_MAX = 2 ** 64 - 1
U128_MAX = 2 ** 128 - 1

_VARIANT = struct.Struct("<I")
_SUBMIT_FIELDS = struct.Struct("<QQf")
_F32 = struct.Struct("<f")

# Variant indexes
SUBMIT_DATA = 0
REQUEST_WORK = 1

ACK = 0
NO_WORK = 1
TASK = 2


def _to_f32(value: float) -> float:
    """Narrow a float to single precision."""
    return _F32.unpack(_F32.pack(value))[0]


def _check_range(name: str, value: int, maximum: int) -> None:
    if not isinstance(value, int) or isinstance(value, bool):
        raise TypeError(f"{name} must be an int, got {type(value).__name__}")
    if value < 0 or value > maximum:
        raise ValueError(f"{name} must be 0-{maximum}, got {value}")


class TaskType(IntEnum):
    """Control commands the server can push to an agent."""
    SHUTDOWN = 0


@dataclass
class SubmitData:
    """One metric snapshot from a collector."""
    collector_id: int
    total_memory: int
    used_memory: int
    average_cpu_usage: float

    def __post_init__(self):
        _check_range("collector_id", self.collector_id, U128_MAX)
        _check_range("total_memory", self.total_memory, U64_MAX)
        _check_range("used_memory", self.used_memory, U64_MAX)
        self.average_cpu_usage = _to_f32(float(self.average_cpu_usage))

    def to_bytes(self) -> bytes:
        return (
            _VARIANT.pack(SUBMIT_DATA)
            + self.collector_id.to_bytes(16, byteorder="little")
            + _SUBMIT_FIELDS.pack(self.total_memory, self.used_memory, self.average_cpu_usage)
        )


@dataclass
class RequestWork:
    """Poll for a pending control command."""
    collector_id: int

    def __post_init__(self):
        _check_range("collector_id", self.collector_id, U128_MAX)

    def to_bytes(self) -> bytes:
        return _VARIANT.pack(REQUEST_WORK) + self.collector_id.to_bytes(16, byteorder="little")


@dataclass
class Ack:
    """Submitted data was persisted."""

    def to_bytes(self) -> bytes:
        return _VARIANT.pack(ACK)


@dataclass
class NoWork:
    """No command is pending for the collector."""

    def to_bytes(self) -> bytes:
        return _VARIANT.pack(NO_WORK)


@dataclass
class Task:
    """A control command for the collector to execute."""
    task: TaskType

    def to_bytes(self) -> bytes:
        return _VARIANT.pack(TASK) + _VARIANT.pack(int(self.task))


Command = Union[SubmitData, RequestWork]
Response = Union[Ack, NoWork, Task]


def command_from_bytes(payload: bytes) -> Command:
    """Deserialize a command payload.

    Raises:
        ValueError: unknown variant, wrong length, or out-of-range fields.
    """
    if len(payload) < _VARIANT.size:
        raise ValueError("payload too short for variant index")

    (variant,) = _VARIANT.unpack_from(payload)
    body = payload[_VARIANT.size:]

    if variant == SUBMIT_DATA:
        if len(body) != 16 + _SUBMIT_FIELDS.size:
            raise ValueError(f"SubmitData body must be {16 + _SUBMIT_FIELDS.size} bytes, got {len(body)}")
        collector_id = int.from_bytes(body[:16], byteorder="little")
        total_memory, used_memory, average_cpu_usage = _SUBMIT_FIELDS.unpack(body[16:])
        return SubmitData(
            collector_id=collector_id,
            total_memory=total_memory,
            used_memory=used_memory,
            average_cpu_usage=average_cpu_usage,
        )

    if variant == REQUEST_WORK:
        if len(body) != 16:
            raise ValueError(f"RequestWork body must be 16 bytes, got {len(body)}")
        return RequestWork(collector_id=int.from_bytes(body, byteorder="little"))

    raise ValueError(f"Unknown command variant: {variant}")


def response_from_bytes(payload: bytes) -> Response:
    """Deserialize a response payload.

    Raises:
        ValueError: unknown variant or wrong length.
    """
    if len(payload) < _VARIANT.size:
        raise ValueError("payload too short for variant index")

    (variant,) = _VARIANT.unpack_from(payload)
    body = payload[_VARIANT.size:]

    if variant in (ACK, NO_WORK):
        if body:
            raise ValueError(f"Unexpected {len(body)} trailing bytes")
        return Ack() if variant == ACK else NoWork()

    if variant == TASK:
        if len(body) != _VARIANT.size:
            raise ValueError(f"Task body must be {_VARIANT.size} bytes, got {len(body)}")
        (task,) = _VARIANT.unpack(body)
        try:
            return Task(task=TaskType(task))
        except ValueError:
            raise ValueError(f"Unknown task type: {task}") from None

    raise ValueError(f"Unknown response variant: {variant}")
