"""
Collector Agent - Transport Errors

All transport errors are recoverable: the in-flight frame is requeued and
the delivery cycle is retried later.
"""


class CollectorError(Exception):
    """Base class for delivery failures."""
    pass


class UnableToConnect(CollectorError):
    """Unable to connect to the server."""
    pass


class UnableToSendData(CollectorError):
    """Unable to send data to the server."""
    pass


class UnableToReceiveData(CollectorError):
    """Unable to receive a response from the server."""
    pass


class UnexpectedResponse(UnableToReceiveData):
    """The server answered a frame with something other than Ack."""

    def __init__(self, response):
        self.response = response
        super().__init__(f"Expected Ack, got {response!r}")
