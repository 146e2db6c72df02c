"""
Event-synchronized ensemble averaging.

Two mutually exclusive alignment modes:

POSITION_LOCKED:
    Windows are summed from their first sample. Output length is always the
    target length; output samples past every window are 0.0.

PEAK_LOCKED:
    Each window is shifted so its peak lands at peak_position_ms. Output
    length is limited to the post-peak extent that EVERY window covers, so
    the tail is never fabricated from a shrinking subset of windows.

In both modes each output sample is divided by its own contributor count,
not by the window count; heterogeneous window lengths would otherwise bias
the tail toward zero.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np

from constants import ms_to_samples, samples_to_ms
from engine.types import (
    SAMPLE_DTYPE,
    AlignmentMode,
    AudioBuffer,
    AveragingConfig,
    SyncAverageResult,
    WindowInfo,
)
from engine.windows import extract_windows
from observability.logger import log_event


# =============================================================================
# Accumulation primitives
# =============================================================================

def _normalize(sums: np.ndarray, counts: np.ndarray) -> np.ndarray:
    """Per-sample mean; samples without contributors are 0.0."""
    out = np.zeros(sums.shape[0], dtype=np.float64)
    np.divide(sums, counts, out=out, where=counts > 0)
    return out.astype(SAMPLE_DTYPE)


def position_locked_sum(
    windows: Sequence[WindowInfo],
    output_length: int,
) -> tuple[np.ndarray, np.ndarray]:
    """
    Accumulate windows aligned on their first sample.

    Returns:
        (sums, counts), both of length output_length.
    """
    sums = np.zeros(output_length, dtype=np.float64)
    counts = np.zeros(output_length, dtype=np.int64)
    for window in windows:
        n = min(len(window), output_length)
        sums[:n] += window.data[:n]
        counts[:n] += 1
    return sums, counts


def peak_locked_envelope(
    windows: Sequence[WindowInfo],
    target_peak: int,
) -> tuple[int, int]:
    """
    Compute the safe output envelope for peak alignment.

    Returns:
        (min_start_offset, min_end_offset)
        min_start_offset: leading output samples that at least one shifted
            window cannot reach, max(0, max(target_peak - peak_index))
        min_end_offset: post-peak samples covered by every window,
            min(len - peak_index - 1)
    """
    min_start_offset = max(0, max(target_peak - w.peak_index for w in windows))
    min_end_offset = min(len(w) - w.peak_index - 1 for w in windows)
    return min_start_offset, min_end_offset


def peak_locked_sum(
    windows: Sequence[WindowInfo],
    target_peak: int,
    output_length: int,
) -> tuple[np.ndarray, np.ndarray]:
    """
    Accumulate windows shifted so each peak lands at target_peak.

    Output index j reads window index j - shift, shift = target_peak - peak.
    Only indices that exist in the window contribute.

    Returns:
        (sums, counts), both of length output_length.
    """
    sums = np.zeros(output_length, dtype=np.float64)
    counts = np.zeros(output_length, dtype=np.int64)
    for window in windows:
        shift = target_peak - window.peak_index
        out_start = max(0, shift)
        out_end = min(output_length, len(window) + shift)
        if out_end <= out_start:
            continue
        sums[out_start:out_end] += window.data[out_start - shift : out_end - shift]
        counts[out_start:out_end] += 1
    return sums, counts


# =============================================================================
# Public API
# =============================================================================

def average_windows(
    windows: Sequence[WindowInfo],
    config: AveragingConfig,
    *,
    session_id: str | None = None,
    channel: str | None = None,
) -> SyncAverageResult:
    """
    Average already-extracted windows in the configured alignment mode.

    Returns SyncAverageResult.empty() when there is nothing to average.
    """
    if not windows:
        return SyncAverageResult.empty()

    details: dict[str, int] = {}
    if config.mode is AlignmentMode.PEAK_LOCKED:
        target_peak = max(0, ms_to_samples(config.peak_position_ms, config.sample_rate))
        min_start_offset, min_end_offset = peak_locked_envelope(windows, target_peak)
        output_length = target_peak + min_end_offset + 1
        sums, counts = peak_locked_sum(windows, target_peak, output_length)
        details = {
            "target_peak": target_peak,
            "min_start_offset": min_start_offset,
            "min_end_offset": min_end_offset,
        }
    else:
        output_length = ms_to_samples(config.target_length_ms, config.sample_rate)
        if output_length <= 0:
            log_event({
                "event_type": "AVERAGE_SKIPPED",
                "session_id": session_id,
                "channel": channel,
                "reason": "non_positive_target_length",
                "target_length_ms": config.target_length_ms,
            })
            return SyncAverageResult.empty()
        sums, counts = position_locked_sum(windows, output_length)

    waveform = _normalize(sums, counts)
    output_length_ms = samples_to_ms(output_length, config.sample_rate)

    log_event({
        "event_type": "AVERAGE_COMPLETED",
        "session_id": session_id,
        "channel": channel,
        "mode": config.mode.value,
        "window_count": len(windows),
        "output_samples": output_length,
        "output_length_ms": output_length_ms,
        "details": details,
    })

    return SyncAverageResult(
        waveform=waveform,
        window_count=len(windows),
        windows=tuple(windows),
        output_length_ms=output_length_ms,
    )


def calculate_sync_average(
    audio: AudioBuffer,
    anchors: Sequence[float],
    ends: Sequence[float],
    config: AveragingConfig,
    *,
    session_id: str | None = None,
    channel: str | None = None,
) -> SyncAverageResult:
    """
    Extract one window per anchor and average them.

    anchors/ends are sample-domain milliseconds (see engine.windows).
    Empty audio or no anchors short-circuits to an empty result; so does
    every window being skipped.
    """
    if audio.is_empty() or not anchors:
        log_event({
            "event_type": "AVERAGE_SKIPPED",
            "session_id": session_id,
            "channel": channel,
            "reason": "empty_audio" if audio.is_empty() else "no_anchors",
        })
        return SyncAverageResult.empty()

    windows = extract_windows(
        audio.samples,
        anchors,
        ends,
        offset_ms=config.offset_ms,
        sample_rate=config.sample_rate,
        peak_search_ms=config.peak_search_ms,
        session_id=session_id,
        channel=channel,
    )

    if not windows:
        log_event({
            "event_type": "AVERAGE_SKIPPED",
            "session_id": session_id,
            "channel": channel,
            "reason": "no_valid_windows",
            "anchor_count": len(anchors),
        })
        return SyncAverageResult.empty()

    return average_windows(windows, config, session_id=session_id, channel=channel)
