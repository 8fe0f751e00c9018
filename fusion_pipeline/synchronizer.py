# fusion_pipeline/synchronizer.py
"""
Approximate-time synchronization of independently stamped streams.

Detections, images and point clouds arrive on their own schedules. The
synchronizer buffers a bounded number of messages per stream and emits one
tuple per stream once it can pick, for every stream, the message closest in
time to a common pivot.

Matching rule:
- The pivot is the newest of the oldest buffered messages across streams.
- A stream is settled once it holds a message at or after the pivot; later
  arrivals cannot be any closer, since each stream arrives in time order.
- When every stream is settled, each contributes its message closest to the
  pivot, and everything up to and including that message is discarded.
"""

import logging
import threading
from collections import deque
from typing import Any, Callable, List, Optional, Tuple

logger = logging.getLogger(__name__)


class MessageSynchronizer:
    """
    Thread-safe approximate-time matcher for N streams.

    Usage:
        sync = MessageSynchronizer(num_streams=3, queue_size=10)
        sync.register_callback(pipeline.process)
        sync.add(0, stamp, detections)
    """

    def __init__(self, num_streams: int = 3, queue_size: int = 10,
                 max_interval: Optional[float] = None):
        """
        Args:
            num_streams: Number of input streams
            queue_size: Pending messages kept per stream; the oldest is dropped when full
            max_interval: Largest allowed time spread within one match (seconds), or None
        """
        if num_streams < 1:
            raise ValueError("num_streams must be at least 1")
        if queue_size < 1:
            raise ValueError("queue_size must be at least 1")

        self.num_streams = num_streams
        self.queue_size = queue_size
        self.max_interval = max_interval

        self._queues: List[deque] = [deque(maxlen=queue_size) for _ in range(num_streams)]
        self._callbacks: List[Callable[..., Any]] = []
        self._lock = threading.Lock()

        self.matches_emitted = 0
        self.messages_dropped = 0

    def register_callback(self, callback: Callable[..., Any]) -> None:
        """Register a callback invoked with one positional argument per stream."""
        self._callbacks.append(callback)

    def add(self, stream_index: int, stamp: float, message: Any) -> Optional[Tuple[Any, ...]]:
        """
        Buffer a message and try to complete a match.

        Args:
            stream_index: Index of the stream the message belongs to
            stamp: Message timestamp (seconds)
            message: Payload handed to the callbacks

        Returns:
            Tuple of matched messages (one per stream) or None
        """
        if not 0 <= stream_index < self.num_streams:
            raise IndexError(f"stream_index {stream_index} out of range (0..{self.num_streams - 1})")

        with self._lock:
            queue = self._queues[stream_index]
            if queue and stamp < queue[-1][0]:
                logger.warning(
                    f"Out-of-order message on stream {stream_index} "
                    f"({stamp:.3f} < {queue[-1][0]:.3f}), dropping"
                )
                self.messages_dropped += 1
                return None
            if len(queue) == self.queue_size:
                self.messages_dropped += 1
            queue.append((stamp, message))

            match = self._try_match()
            if match is not None:
                self.matches_emitted += 1

        if match is not None:
            for callback in self._callbacks:
                callback(*match)
        return match

    def pending(self) -> List[int]:
        """Number of buffered messages per stream."""
        with self._lock:
            return [len(queue) for queue in self._queues]

    def clear(self) -> None:
        with self._lock:
            for queue in self._queues:
                queue.clear()

    def _try_match(self) -> Optional[Tuple[Any, ...]]:
        queues = self._queues
        while all(queues):
            pivot = max(queue[0][0] for queue in queues)
            if any(queue[-1][0] < pivot for queue in queues):
                return None

            chosen = [
                min(range(len(queue)), key=lambda i, q=queue: abs(q[i][0] - pivot))
                for queue in queues
            ]
            stamps = [queue[i][0] for queue, i in zip(queues, chosen)]

            if self.max_interval is not None and max(stamps) - min(stamps) > self.max_interval:
                oldest = min(range(len(queues)), key=lambda s: queues[s][0][0])
                queues[oldest].popleft()
                self.messages_dropped += 1
                continue

            match = tuple(queue[i][1] for queue, i in zip(queues, chosen))
            for queue, i in zip(queues, chosen):
                for _ in range(i + 1):
                    queue.popleft()

            logger.debug(f"Matched set with spread {max(stamps) - min(stamps):.4f}s")
            return match

        return None
