"""
Recording session container.

- Owns the clock correlator (the only mutable engine state)
- Owns the capture hand-off queue and the captured blocks
- Owns the key timestamp lists, already converted to sample-domain ms
- Produces the finalized AudioBuffer
- Runs measurements against the finalized buffer (any number of times)

Not responsible for:
- Capture device I/O
- Averaging math (engine.pipeline)
- Export formats (export.*)
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Sequence
from uuid import uuid4

import numpy as np

from audio.frames import AudioBlock, KeyEvent, KeyEventKind
from audio.queues import CaptureQueue, CaptureQueueOverflow
from constants import (
    CAPTURE_BLOCK_SIZE,
    CAPTURE_QUEUE_MAX_S,
    DEFAULT_SAMPLE_RATE_HZ,
    checkpoint_capacity,
)
from engine.clock import ClockCorrelator
from engine.pipeline import measure
from engine.types import SAMPLE_DTYPE, AudioBuffer, AveragingConfig, Measurement
from observability.logger import log_event
from session.recording_status import RecordingStatus


class SessionStateError(Exception):
    """
    Raised when a session operation is invalid for its current status
    (posting after finalize, finalizing twice, measuring before finalize).
    """


# ---------------------------------------------------------------------
# RecordingSession
# ---------------------------------------------------------------------


@dataclass
class RecordingSession:
    """Mutable container for a single keystroke recording."""

    # ------------------------------------------------------------------
    # Identity / format
    # ------------------------------------------------------------------

    session_id: str = field(default_factory=lambda: uuid4().hex[:12])
    sample_rate: int = DEFAULT_SAMPLE_RATE_HZ
    block_size: int = CAPTURE_BLOCK_SIZE
    created_at: float = field(default_factory=time.time)

    # ------------------------------------------------------------------
    # Session-owned state
    # ------------------------------------------------------------------

    status: RecordingStatus = field(init=False, default=RecordingStatus.IDLE)
    correlator: ClockCorrelator[KeyEventKind] = field(init=False)
    capture_queue: CaptureQueue = field(init=False)
    audio: AudioBuffer | None = field(init=False, default=None)

    def __post_init__(self) -> None:
        self.correlator = ClockCorrelator(
            sample_rate=self.sample_rate,
            max_checkpoints=checkpoint_capacity(self.sample_rate, self.block_size),
            session_id=self.session_id,
        )
        self.capture_queue = CaptureQueue(
            max_depth_s=CAPTURE_QUEUE_MAX_S,
            sample_rate=self.sample_rate,
        )
        self._blocks: list[np.ndarray] = []
        self._cumulative_samples: int = 0
        # Samples per delivered block; starts at the nominal block_size
        self._cadence: int = self.block_size
        self._last_seq: int | None = None
        self._down_times_ms: list[float] = []
        self._up_times_ms: list[float] = []

    # ------------------------------------------------------------------
    # Producers (any thread)
    # ------------------------------------------------------------------

    def post_audio_block(self, block: AudioBlock) -> None:
        """
        Hand a delivered capture block to the session.

        Raises:
            SessionStateError if the session is finalized or failed.
            CaptureQueueOverflow if pump() is not keeping up.
        """
        self._require_accepting()
        self.status = RecordingStatus.RECORDING
        try:
            self.capture_queue.enqueue(block)
        except CaptureQueueOverflow:
            self.status = RecordingStatus.ERROR
            log_event({
                "event_type": "CAPTURE_QUEUE_OVERFLOW",
                **self.log_context(),
                "queue": self.capture_queue.snapshot(),
            })
            raise

    def post_key_event(self, event: KeyEvent) -> None:
        """
        Hand a key-down / key-up observation to the session.

        Raises:
            SessionStateError if the session is finalized or failed.
        """
        self._require_accepting()
        self.status = RecordingStatus.RECORDING
        self.capture_queue.enqueue(event)

    # ------------------------------------------------------------------
    # Consumer (single thread)
    # ------------------------------------------------------------------

    def pump(self) -> int:
        """
        Apply all queued items in arrival order.

        Blocks append samples and record one clock checkpoint each; key
        events are converted to sample-domain ms (or held by the correlator
        until the first checkpoint).

        Returns:
            Number of items applied.
        """
        items = self.capture_queue.drain()
        for item in items:
            if isinstance(item, AudioBlock):
                self._apply_block(item)
            else:
                self.correlator.submit(item.clock_time_s, item.kind, self._append_timestamp)
        return len(items)

    def _apply_block(self, block: AudioBlock) -> None:
        if self._last_seq is not None and block.sequence_num != self._last_seq + 1:
            log_event({
                "event_type": "CAPTURE_SEQUENCE_GAP",
                **self.log_context(),
                "expected": self._last_seq + 1,
                "actual": block.sequence_num,
            })
        self._last_seq = block.sequence_num

        if len(block) and len(block) != self._cadence:
            # Keep CHECKPOINT_RETENTION_S of history at the delivered cadence
            self._cadence = len(block)
            self.correlator.set_max_checkpoints(
                checkpoint_capacity(self.sample_rate, self._cadence)
            )

        self._blocks.append(np.asarray(block.samples, dtype=SAMPLE_DTYPE).reshape(-1))
        self._cumulative_samples += len(block)
        resolved = self.correlator.record_checkpoint(
            self._cumulative_samples,
            block.clock_time_s,
        )
        for kind, ms in resolved:
            self._append_timestamp(kind, ms)

    def _append_timestamp(self, kind: KeyEventKind, sample_domain_ms: float) -> None:
        if kind is KeyEventKind.DOWN:
            self._down_times_ms.append(sample_domain_ms)
        else:
            self._up_times_ms.append(sample_domain_ms)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def finalize(self) -> AudioBuffer:
        """
        Stop accepting input and build the immutable recording.

        Allowed after a capture overflow so the partial recording can be
        inspected; the session stays ERROR and cannot be measured.

        Returns:
            The finalized AudioBuffer (empty if nothing was captured, in
            which case status is ERROR).

        Raises:
            SessionStateError if already finalized.
        """
        self._require_open()
        self.pump()

        if self._blocks:
            samples = np.concatenate(self._blocks)
        else:
            samples = np.zeros(0, dtype=SAMPLE_DTYPE)
        self._blocks = []
        self.audio = AudioBuffer(samples=samples, sample_rate=self.sample_rate)

        # Only possible when no block ever arrived
        unresolved = self.correlator.pending_count()

        failed = self.status is RecordingStatus.ERROR or self.audio.is_empty()
        self.status = RecordingStatus.ERROR if failed else RecordingStatus.COMPLETED
        log_event({
            "event_type": "SESSION_FINALIZED",
            **self.log_context(),
            "samples": len(self.audio),
            "duration_ms": self.audio.duration_ms,
            "down_events": len(self._down_times_ms),
            "up_events": len(self._up_times_ms),
            "unresolved_events": unresolved,
            "clock": self.correlator.snapshot(),
            "queue": self.capture_queue.snapshot(),
        })
        return self.audio

    def measure(
        self,
        *,
        attack_config: AveragingConfig,
        release_config: AveragingConfig,
        peak_interval_ms: float,
    ) -> Measurement:
        """
        Compute attack, release and composite from the finalized recording.

        Safe to call repeatedly with different parameters; nothing in the
        session is mutated.

        Raises:
            SessionStateError unless the session is COMPLETED.
        """
        if self.status is not RecordingStatus.COMPLETED or self.audio is None:
            raise SessionStateError(
                f"cannot measure session in status {self.status.value}"
            )
        return measure(
            self.audio,
            self._down_times_ms,
            self._up_times_ms,
            attack_config=attack_config,
            release_config=release_config,
            peak_interval_ms=peak_interval_ms,
            session_id=self.session_id,
        )

    @classmethod
    def from_recording(
        cls,
        audio: AudioBuffer,
        down_times_ms: Sequence[float],
        up_times_ms: Sequence[float],
        *,
        session_id: str | None = None,
    ) -> RecordingSession:
        """
        Build a finalized session from already sample-domain data
        (e.g. an imported measurement archive).
        """
        session = cls(
            session_id=session_id or uuid4().hex[:12],
            sample_rate=audio.sample_rate,
        )
        session.audio = audio
        session._down_times_ms = list(down_times_ms)
        session._up_times_ms = list(up_times_ms)
        session.status = (
            RecordingStatus.ERROR if audio.is_empty() else RecordingStatus.COMPLETED
        )
        return session

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def down_times_ms(self) -> tuple[float, ...]:
        """Key-down timestamps in sample-domain ms, arrival order."""
        return tuple(self._down_times_ms)

    @property
    def up_times_ms(self) -> tuple[float, ...]:
        """Key-up timestamps in sample-domain ms, arrival order."""
        return tuple(self._up_times_ms)

    def is_finalized(self) -> bool:
        """True once finalize() ran (or the session was imported)."""
        return self.audio is not None

    def log_context(self) -> dict[str, Any]:
        """
        Return standard logging context for this session.
        """
        return {
            "session_id": self.session_id,
            "status": self.status.value,
        }

    def _require_open(self) -> None:
        if self.is_finalized():
            raise SessionStateError(f"session {self.session_id} is finalized")

    def _require_accepting(self) -> None:
        self._require_open()
        # A lost block desynchronizes both clocks; nothing later can be trusted
        if self.status is RecordingStatus.ERROR:
            raise SessionStateError(f"session {self.session_id} failed during capture")
