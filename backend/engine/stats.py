"""Summary statistics for display and export of a waveform."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any

import numpy as np

from engine.peaks import find_peak
from engine.types import as_samples


@dataclass(frozen=True)
class WaveformStats:
    """Single-pass summary of a waveform."""
    length: int
    min: float
    max: float
    abs_max: float
    mean: float
    rms: float
    peak_index: int

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready representation."""
        return asdict(self)


def compute_waveform_stats(data: np.ndarray | None) -> WaveformStats | None:
    """
    Return stats for data, or None for a missing or empty waveform.

    Accumulation is float64 regardless of the input dtype.
    """
    if data is None:
        return None
    samples = as_samples(data)
    if samples.shape[0] == 0:
        return None

    wide = samples.astype(np.float64)
    peak_index = find_peak(samples)
    return WaveformStats(
        length=int(wide.shape[0]),
        min=float(wide.min()),
        max=float(wide.max()),
        abs_max=float(abs(wide[peak_index])),
        mean=float(wide.mean()),
        rms=float(np.sqrt(np.mean(np.square(wide)))),
        peak_index=peak_index,
    )
