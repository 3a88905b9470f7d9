"""
Collector Protocol - Frame Codec

Command frame layout (all integers big-endian):

| Offset | Size         | Field        |
|--------|--------------|--------------|
| 0      | 2 bytes      | magic (1234) |
| 2      | 2 bytes      | version (1)  |
| 4      | 4 bytes      | timestamp    |
| 8      | 4 bytes      | payload_size |
| 12     | payload_size | payload      |
| 12+N   | 4 bytes      | crc32        |

The CRC covers the payload only. Responses are sent without this envelope.
"""

import asyncio
import struct
import time
import zlib
from typing import Optional, Tuple

from .errors import CorruptFrame, InvalidResponse
from .messages import (
    TASK,
    Command,
    Response,
    command_from_bytes,
    response_from_bytes,
)

MAGIC_NUMBER = 1234
VERSION_NUMBER = 1

_HEADER = struct.Struct(">HHII")
_CRC = struct.Struct(">I")
_VARIANT_SIZE = 4

HEADER_SIZE = _HEADER.size
CRC_SIZE = _CRC.size

# Largest payload accepted from a stream (a SubmitData payload is 40 bytes)
DEFAULT_MAX_PAYLOAD_SIZE = 64 * 1024


def unix_now() -> int:
    return int(time.time()) & 0xFFFFFFFF


def _check_header(magic: int, version: int) -> None:
    if magic != MAGIC_NUMBER:
        raise CorruptFrame("Magic number mismatch", {"expected": MAGIC_NUMBER, "got": magic})
    if version != VERSION_NUMBER:
        raise CorruptFrame("Version mismatch", {"expected": VERSION_NUMBER, "got": version})


def encode(command: Command, timestamp: Optional[int] = None) -> bytes:
    """Wrap a command in a frame stamped with the current unix time."""
    payload = command.to_bytes()
    crc = zlib.crc32(payload)
    if timestamp is None:
        timestamp = unix_now()

    return (
        _HEADER.pack(MAGIC_NUMBER, VERSION_NUMBER, timestamp, len(payload))
        + payload
        + _CRC.pack(crc)
    )


def decode(data: bytes) -> Tuple[int, Command]:
    """Validate a frame and return ``(timestamp, command)``.

    Raises:
        CorruptFrame: bad magic/version, truncated or oversized buffer,
            checksum mismatch, or an undecodable payload.
    """
    if len(data) < HEADER_SIZE + CRC_SIZE:
        raise CorruptFrame("Frame truncated", {"length": len(data)})

    magic, version, timestamp, payload_size = _HEADER.unpack_from(data)
    _check_header(magic, version)

    expected = HEADER_SIZE + payload_size + CRC_SIZE
    if len(data) < expected:
        raise CorruptFrame("Payload size exceeds buffer", {"payload_size": payload_size, "length": len(data)})
    if len(data) > expected:
        raise CorruptFrame("Trailing bytes after frame", {"extra": len(data) - expected})

    payload = data[HEADER_SIZE:HEADER_SIZE + payload_size]
    (crc,) = _CRC.unpack_from(data, HEADER_SIZE + payload_size)
    computed = zlib.crc32(payload)
    if crc != computed:
        raise CorruptFrame("CRC mismatch", {"expected": crc, "computed": computed})

    try:
        command = command_from_bytes(payload)
    except ValueError as e:
        raise CorruptFrame(f"Invalid payload: {e}") from e

    return timestamp, command


def encode_response(response: Response) -> bytes:
    return response.to_bytes()


def decode_response(data: bytes) -> Response:
    try:
        return response_from_bytes(data)
    except ValueError as e:
        raise InvalidResponse(f"Invalid response: {e}") from e


async def read_frame(
    reader: asyncio.StreamReader,
    max_payload_size: int = DEFAULT_MAX_PAYLOAD_SIZE,
) -> Optional[Tuple[int, Command]]:
    """Read and decode exactly one frame from a stream.

    Returns None when the peer closed the connection at a frame boundary.
    """
    try:
        header = await reader.readexactly(HEADER_SIZE)
    except asyncio.IncompleteReadError as e:
        if not e.partial:
            return None
        raise CorruptFrame("Frame header truncated", {"length": len(e.partial)}) from e

    magic, version, _timestamp, payload_size = _HEADER.unpack(header)
    _check_header(magic, version)

    if payload_size > max_payload_size:
        raise CorruptFrame("Payload too large", {"payload_size": payload_size, "limit": max_payload_size})

    try:
        body = await reader.readexactly(payload_size + CRC_SIZE)
    except asyncio.IncompleteReadError as e:
        raise CorruptFrame("Frame body truncated", {"length": len(e.partial)}) from e

    return decode(header + body)


async def read_response(reader: asyncio.StreamReader) -> Response:
    """Read exactly one bare response from a stream.

    Raises:
        asyncio.IncompleteReadError: the peer closed before a full response.
        InvalidResponse: the response could not be decoded.
    """
    data = await reader.readexactly(_VARIANT_SIZE)
    (variant,) = struct.unpack("<I", data)
    if variant == TASK:
        data += await reader.readexactly(_VARIANT_SIZE)
    return decode_response(data)
