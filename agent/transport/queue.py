"""
Collector Agent - Delivery Queue

FIFO buffer of encoded frames awaiting acknowledgment.
"""

from collections import deque
from typing import Deque, Iterator, Optional

import structlog

logger = structlog.get_logger(__name__)


class DeliveryQueue:
    """Ordered outbound frame buffer.

    A frame leaves the queue only once the server acknowledged it; failed
    frames go back to the front so queue order is kept across retries.

    When ``max_frames`` is set, pushing onto a full queue drops the oldest
    frame. ``None`` or ``0`` means unbounded.
    """

    def __init__(self, max_frames: Optional[int] = None):
        self._frames: Deque[bytes] = deque()
        self._max_frames = max_frames or None
        self._dropped = 0

    def __len__(self) -> int:
        return len(self._frames)

    def __bool__(self) -> bool:
        return bool(self._frames)

    def __iter__(self) -> Iterator[bytes]:
        return iter(list(self._frames))

    @property
    def max_frames(self) -> Optional[int]:
        return self._max_frames

    @property
    def dropped(self) -> int:
        """Number of frames discarded because the queue was full."""
        return self._dropped

    def push_back(self, frame: bytes) -> None:
        """Queue a new frame behind everything already waiting."""
        if self._max_frames is not None and len(self._frames) >= self._max_frames:
            self._frames.popleft()
            self._dropped += 1
            logger.warning(
                "Delivery queue full, dropped oldest frame",
                max_frames=self._max_frames,
                dropped_total=self._dropped,
            )
        self._frames.append(frame)

    def pop_front(self) -> Optional[bytes]:
        if not self._frames:
            return None
        return self._frames.popleft()

    def push_front(self, frame: bytes) -> None:
        """Undo a pop after a failed delivery."""
        self._frames.appendleft(frame)
