"""
Event-clock to sample-clock correlation.

Responsibilities:
- Keep a bounded, time-ordered table of (cumulative samples, event-clock time)
  checkpoints, one per delivered capture block
- Convert event-clock timestamps into sample-domain milliseconds by linear
  interpolation between the bracketing checkpoints
- Hold timestamps that arrive before the first checkpoint and resolve them
  exactly once, in arrival order, when the first checkpoint lands

Non-responsibilities:
- No capture I/O
- No validation of checkpoint monotonicity (caller precondition)
- No locking (single consumer; see audio.queues)

Latency note:
    A block reported at event-clock time t already contains its samples, so
    checkpoint (block_size, t) places sample 0 one block duration before t.
    The capture latency is therefore removed by the table itself and needs no
    separate correction.
"""

from __future__ import annotations

import bisect
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Generic, TypeVar

from constants import CHECKPOINT_MIN_RETAINED, samples_to_ms
from observability.logger import log_event


T = TypeVar("T")


@dataclass(frozen=True)
class ClockCheckpoint:
    """
    cumulative_samples:
        Total samples delivered by capture at this checkpoint (>= 0).
    clock_time_s:
        Event-clock time (seconds) at which that total was reached.
    """
    cumulative_samples: int
    clock_time_s: float


@dataclass(frozen=True)
class PendingTimestamp(Generic[T]):
    """A timestamp waiting for the first checkpoint, with caller context."""
    clock_time_s: float
    tag: T


class ClockCorrelator(Generic[T]):
    """
    Maps event-clock seconds to sample-domain milliseconds.

    Invariants (caller-guaranteed, not re-validated):
    - Checkpoints are recorded in arrival order
    - Both checkpoint fields are non-decreasing

    Under those invariants the mapping is monotonic for monotonically
    increasing queries.
    """

    def __init__(
        self,
        *,
        sample_rate: int,
        max_checkpoints: int,
        session_id: str | None = None,
    ) -> None:
        if sample_rate <= 0:
            raise ValueError("sample_rate must be > 0")
        if max_checkpoints < CHECKPOINT_MIN_RETAINED:
            raise ValueError(
                f"max_checkpoints must be >= {CHECKPOINT_MIN_RETAINED}"
            )

        self._sample_rate = sample_rate
        self._max_checkpoints = max_checkpoints
        self._session_id = session_id
        self._checkpoints: Deque[ClockCheckpoint] = deque()
        # Parallel key list for bisect; kept in lockstep with _checkpoints
        self._times: Deque[float] = deque()
        self._pending: Deque[PendingTimestamp[T]] = deque()
        self._evicted: int = 0

    # -------------------------
    # Checkpoints
    # -------------------------

    def record_checkpoint(
        self,
        cumulative_samples: int,
        clock_time_s: float,
    ) -> list[tuple[T, float]]:
        """
        Append a checkpoint and evict the oldest beyond the retention bound.

        Returns:
            (tag, sample_domain_ms) for every timestamp that was waiting for
            the first checkpoint, in arrival order. Empty on every later call.
        """
        self._checkpoints.append(
            ClockCheckpoint(
                cumulative_samples=cumulative_samples,
                clock_time_s=clock_time_s,
            )
        )
        self._times.append(clock_time_s)
        self._evict()

        if not self._pending:
            return []
        return self._drain_pending()

    def set_max_checkpoints(self, max_checkpoints: int) -> None:
        """
        Change the retention bound (e.g. when the block cadence changes).
        Shrinking evicts the oldest checkpoints immediately.
        """
        if max_checkpoints < CHECKPOINT_MIN_RETAINED:
            raise ValueError(
                f"max_checkpoints must be >= {CHECKPOINT_MIN_RETAINED}"
            )
        self._max_checkpoints = max_checkpoints
        self._evict()

    def _evict(self) -> None:
        while len(self._checkpoints) > self._max_checkpoints:
            self._checkpoints.popleft()
            self._times.popleft()
            self._evicted += 1

    def _drain_pending(self) -> list[tuple[T, float]]:
        resolved: list[tuple[T, float]] = []
        while self._pending:
            item = self._pending.popleft()
            resolved.append((item.tag, self.to_sample_domain_ms(item.clock_time_s)))

        log_event({
            "event_type": "CLOCK_PENDING_RESOLVED",
            "session_id": self._session_id,
            "count": len(resolved),
        })
        return resolved

    # -------------------------
    # Queries
    # -------------------------

    def to_sample_domain_ms(self, clock_time_s: float) -> float:
        """
        Convert an event-clock time (seconds) to sample-domain milliseconds.

        - Inside the table: interpolate between the bracketing checkpoints
        - Before the first / after the last: extrapolate from the nearest
          checkpoint at the nominal sample rate
        - Empty table: treat event-clock zero as sample zero
        """
        prev, nxt = self._bracket(clock_time_s)
        if prev is None:
            return clock_time_s * 1000.0

        if nxt is None or nxt == prev or nxt.clock_time_s == prev.clock_time_s:
            samples = prev.cumulative_samples + (
                (clock_time_s - prev.clock_time_s) * self._sample_rate
            )
            return samples_to_ms(samples, self._sample_rate)

        fraction = (clock_time_s - prev.clock_time_s) / (
            nxt.clock_time_s - prev.clock_time_s
        )
        samples = prev.cumulative_samples + fraction * (
            nxt.cumulative_samples - prev.cumulative_samples
        )
        return samples_to_ms(samples, self._sample_rate)

    def _bracket(
        self,
        clock_time_s: float,
    ) -> tuple[ClockCheckpoint | None, ClockCheckpoint | None]:
        """
        Return (prev, next): last checkpoint with time <= query and first
        with time >= query. Outside the table both are the nearest end.
        """
        if not self._checkpoints:
            return None, None

        hi = bisect.bisect_left(self._times, clock_time_s)
        if hi >= len(self._checkpoints):
            last = self._checkpoints[-1]
            return last, last
        nxt = self._checkpoints[hi]
        if nxt.clock_time_s == clock_time_s or hi == 0:
            return nxt, nxt
        return self._checkpoints[hi - 1], nxt

    def submit(
        self,
        clock_time_s: float,
        tag: T,
        on_resolved: Callable[[T, float], None],
    ) -> bool:
        """
        Resolve a timestamp now, or hold it until the first checkpoint.

        Returns:
            True if resolved immediately (on_resolved already called)
            False if queued
        """
        if not self._checkpoints:
            self._pending.append(PendingTimestamp(clock_time_s=clock_time_s, tag=tag))
            return False

        on_resolved(tag, self.to_sample_domain_ms(clock_time_s))
        return True

    # -------------------------
    # Introspection helpers
    # -------------------------

    def __len__(self) -> int:
        return len(self._checkpoints)

    @property
    def sample_rate(self) -> int:
        """Sample rate used for conversions."""
        return self._sample_rate

    @property
    def max_checkpoints(self) -> int:
        """Retention bound."""
        return self._max_checkpoints

    def pending_count(self) -> int:
        """Timestamps waiting for the first checkpoint."""
        return len(self._pending)

    def checkpoints(self) -> tuple[ClockCheckpoint, ...]:
        """Snapshot of the retained checkpoints, oldest first."""
        return tuple(self._checkpoints)

    def snapshot(self) -> dict[str, float | int]:
        """
        Lightweight snapshot for logging / metrics.
        """
        first = self._checkpoints[0] if self._checkpoints else None
        last = self._checkpoints[-1] if self._checkpoints else None
        return {
            "checkpoints": len(self._checkpoints),
            "evicted": self._evicted,
            "pending": len(self._pending),
            "first_clock_s": first.clock_time_s if first else 0.0,
            "last_clock_s": last.clock_time_s if last else 0.0,
            "last_samples": last.cumulative_samples if last else 0,
        }
