# backend/audio/queues.py
"""
Ordered capture hand-off queue.

Two producers (capture block delivery, key input) feed one consumer (the
recording session, which owns the clock correlator). Ordering guarantees:
- Items are consumed in exactly the order they were enqueued
- Checkpoint writes and timestamp conversions therefore never interleave
  out of order, even if producers run on another thread

Capacity:
- Depth measured in seconds of queued audio (key events are free)
- Overflow means the consumer stopped draining; it is raised, never dropped
  silently, because a lost block would desynchronize both clocks
"""

from __future__ import annotations
import threading
from collections import deque
from dataclasses import dataclass
from typing import Deque, Union

from audio.frames import AudioBlock, KeyEvent


CaptureItem = Union[AudioBlock, KeyEvent]


class CaptureQueueError(Exception):
    """Base class for capture queue errors."""


class CaptureQueueOverflow(CaptureQueueError):
    """
    Raised when enqueueing an audio block would exceed max_depth_s.

    The consumer is not draining; the session must be treated as failed.
    """


@dataclass
class QueueCounters:
    """
    Counters for observability.
    """
    blocks: int = 0
    key_events: int = 0
    overflow: int = 0


class CaptureQueue:
    """
    Bounded FIFO for AudioBlock and KeyEvent items.

    Thread-safe for any number of producers and a single consumer.
    """

    def __init__(self, *, max_depth_s: float, sample_rate: int) -> None:
        if max_depth_s <= 0:
            raise ValueError("max_depth_s must be > 0")
        if sample_rate <= 0:
            raise ValueError("sample_rate must be > 0")

        self._max_depth_s: float = max_depth_s
        self._sample_rate: int = sample_rate
        self._items: Deque[CaptureItem] = deque()
        self._queued_samples: int = 0
        self._lock = threading.Lock()
        self.counters: QueueCounters = QueueCounters()

    # -------------------------
    # Core queue operations
    # -------------------------

    def enqueue(self, item: CaptureItem) -> None:
        """
        Enqueue a capture item.

        Raises:
            CaptureQueueOverflow if an audio block would exceed max_depth_s.
        """
        with self._lock:
            if isinstance(item, AudioBlock):
                new_depth_s = (self._queued_samples + len(item)) / self._sample_rate
                if new_depth_s > self._max_depth_s:
                    self.counters.overflow += 1
                    raise CaptureQueueOverflow(
                        f"capture queue depth {new_depth_s:.3f}s > {self._max_depth_s}s"
                    )
                self._queued_samples += len(item)
                self.counters.blocks += 1
            else:
                self.counters.key_events += 1
            self._items.append(item)

    def drain(self) -> tuple[CaptureItem, ...]:
        """
        Atomically remove all queued items.

        Returns:
            A FIFO-ordered tuple. Empty if nothing is queued.
        """
        with self._lock:
            if not self._items:
                return ()
            out = tuple(self._items)
            self._items.clear()
            self._queued_samples = 0
            return out

    # -------------------------
    # Introspection helpers
    # -------------------------

    def __len__(self) -> int:
        return len(self._items)

    def is_empty(self) -> bool:
        """Check if the queue is empty."""
        return not self._items

    def depth_seconds(self) -> float:
        """
        Queue depth in seconds of audio.

        depth_s = queued samples / sample_rate
        """
        return self._queued_samples / self._sample_rate

    def snapshot(self) -> dict[str, float | int]:
        """
        Lightweight snapshot for logging / metrics.
        """
        return {
            "items": len(self._items),
            "depth_s": self.depth_seconds(),
            "blocks_total": self.counters.blocks,
            "key_events_total": self.counters.key_events,
            "overflow": self.counters.overflow,
        }
