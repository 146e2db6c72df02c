"""
Engine data containers.

Pure data only:
- No averaging logic
- No logging
- Immutable after construction

All sample data is float32, one channel.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

import numpy as np

from constants import samples_to_ms


SAMPLE_DTYPE = np.float32


def as_samples(data: object) -> np.ndarray:
    """Return `data` as a contiguous 1D float32 array (no copy if already one)."""
    return np.ascontiguousarray(data, dtype=SAMPLE_DTYPE).reshape(-1)


# =============================================================================
# Audio
# =============================================================================

@dataclass(frozen=True)
class AudioBuffer:
    """
    Finalized mono recording.

    samples:
        Read-only float32 samples. The engine only ever reads slices and
        copies what it keeps.

    sample_rate:
        Rate actually used by capture (may differ from the nominal default).
    """
    samples: np.ndarray
    sample_rate: int

    def __post_init__(self) -> None:
        samples = np.array(self.samples, dtype=SAMPLE_DTYPE).reshape(-1)
        samples.flags.writeable = False
        object.__setattr__(self, "samples", samples)

    def __len__(self) -> int:
        return int(self.samples.shape[0])

    @property
    def duration_ms(self) -> float:
        """Return the recording duration in milliseconds."""
        return samples_to_ms(len(self), self.sample_rate)

    def is_empty(self) -> bool:
        """Check if the buffer holds no samples."""
        return len(self) == 0


# =============================================================================
# Configuration
# =============================================================================

class AlignmentMode(str, Enum):
    """
    Ensemble alignment strategy.

    POSITION_LOCKED:
        Windows are summed sample-for-sample from their start.

    PEAK_LOCKED:
        Each window is shifted so its own peak lands at a common offset.
    """
    POSITION_LOCKED = "position_locked"
    PEAK_LOCKED = "peak_locked"


@dataclass(frozen=True)
class AveragingConfig:
    """
    Explicit parameters for one averaging invocation.

    offset_ms:
        Pre-roll subtracted from each anchor to capture onset content.
    peak_align:
        True selects peak-locked mode, False position-locked mode.
    peak_position_ms:
        Where the aligned peak lands in the peak-locked output.
    sample_rate:
        Rate used for every millisecond/sample conversion.
    target_length_ms:
        Output length in position-locked mode.
    peak_search_ms:
        None searches each window's peak over the whole window; a number
        restricts the search to that many ms starting at the anchor.

    Raises:
        ValueError if offset_ms or peak_search_ms is negative.
    """
    offset_ms: float
    peak_align: bool
    peak_position_ms: float
    sample_rate: int
    target_length_ms: float
    peak_search_ms: float | None

    def __post_init__(self) -> None:
        if self.offset_ms < 0:
            raise ValueError(f"offset_ms must be >= 0, got {self.offset_ms}")
        if self.peak_search_ms is not None and self.peak_search_ms < 0:
            raise ValueError(f"peak_search_ms must be >= 0, got {self.peak_search_ms}")

    @property
    def mode(self) -> AlignmentMode:
        """Return the alignment mode selected by peak_align."""
        if self.peak_align:
            return AlignmentMode.PEAK_LOCKED
        return AlignmentMode.POSITION_LOCKED

    def with_overrides(
        self,
        *,
        offset_ms: float | None = None,
        peak_align: bool | None = None,
    ) -> AveragingConfig:
        """Return a copy with the interactive parameters replaced."""
        return AveragingConfig(
            offset_ms=self.offset_ms if offset_ms is None else offset_ms,
            peak_align=self.peak_align if peak_align is None else peak_align,
            peak_position_ms=self.peak_position_ms,
            sample_rate=self.sample_rate,
            target_length_ms=self.target_length_ms,
            peak_search_ms=self.peak_search_ms,
        )


# =============================================================================
# Results
# =============================================================================

@dataclass(frozen=True)
class WindowInfo:
    """
    One extracted window around an anchor timestamp.

    data:
        Owned copy of the audio slice (independent of the source buffer).
    peak_index:
        Index of maximum absolute amplitude within `data`.
    timestamp_ms:
        Anchor timestamp that produced this window.
    window_length_ms:
        Nominal real-world span: (end - anchor) + 2 * offset.
        Diagnostic only; independent of clipping.
    """
    data: np.ndarray
    peak_index: int
    timestamp_ms: float
    window_length_ms: float

    def __len__(self) -> int:
        return int(self.data.shape[0])


@dataclass(frozen=True)
class SyncAverageResult:
    """
    Outcome of one averaging invocation.

    waveform is None when there were not enough valid windows; this is a
    normal outcome, never an exception.
    """
    waveform: np.ndarray | None
    window_count: int
    windows: tuple[WindowInfo, ...] = ()
    output_length_ms: float = 0.0

    @classmethod
    def empty(cls) -> SyncAverageResult:
        """Return the canonical "no waveform" result."""
        return cls(waveform=None, window_count=0, windows=(), output_length_ms=0.0)

    @property
    def has_waveform(self) -> bool:
        """True when an averaged waveform was produced."""
        return self.waveform is not None


@dataclass(frozen=True)
class Measurement:
    """
    Attack and release averages plus their composite.

    combined is None unless both attack and release produced a waveform.
    """
    attack: SyncAverageResult
    release: SyncAverageResult
    combined: np.ndarray | None
    peak_interval_ms: float
    sample_rate: int
