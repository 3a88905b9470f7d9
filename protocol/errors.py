"""
Collector Protocol - Errors
"""


class ProtocolError(Exception):
    """Base class for wire protocol failures."""

    def __init__(self, reason: str, details=None):
        self.reason = reason
        self.details = details
        super().__init__(reason)


class CorruptFrame(ProtocolError):
    """A command frame failed header, length or checksum validation."""
    pass


class InvalidResponse(ProtocolError):
    """A response payload could not be decoded."""
    pass
