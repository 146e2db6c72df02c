"""
Attack/release compositing.

The release waveform is positioned so its peak falls interval_ms after the
attack peak and is ADDED onto the attack waveform; overlapping resonances of
a real keystroke sum acoustically.
"""

from __future__ import annotations

import numpy as np

from constants import ms_to_samples
from engine.peaks import find_peak
from engine.types import SAMPLE_DTYPE, as_samples


def release_start_offset(
    attack: np.ndarray,
    release: np.ndarray,
    interval_ms: float,
    sample_rate: int,
) -> int:
    """
    Output index where release[0] lands.

    May be negative: leading release samples then fall before the output
    start and are dropped.
    """
    attack_peak = find_peak(attack)
    release_peak = find_peak(release)
    return attack_peak + ms_to_samples(interval_ms, sample_rate) - release_peak


def combine_waveforms(
    attack: np.ndarray,
    release: np.ndarray,
    interval_ms: float,
    sample_rate: int,
) -> np.ndarray:
    """
    Overlay release onto attack with peaks interval_ms apart.

    Output length = max(len(attack), offset + len(release)).
    Attack is copied verbatim from index 0; release samples are added at
    offset + i, skipping targets outside [0, output_length).
    """
    attack = as_samples(attack)
    release = as_samples(release)

    offset = release_start_offset(attack, release, interval_ms, sample_rate)
    output_length = max(attack.shape[0], offset + release.shape[0])

    combined = np.zeros(output_length, dtype=SAMPLE_DTYPE)
    combined[: attack.shape[0]] = attack

    src_start = max(0, -offset)
    src_end = min(release.shape[0], output_length - offset)
    if src_end > src_start:
        combined[offset + src_start : offset + src_end] += release[src_start:src_end]

    return combined
