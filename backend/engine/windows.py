"""
Event-window resolution and extraction.

Pure functions only (no state, no I/O beyond logging).

Window policy:
- Each anchor's window ends at the earlier of the next same-kind event and
  the next alternate event, so closely spaced taps never bleed into each
  other's average
- With no later event of either kind, the window is WINDOW_END_FALLBACK_MS
- A pre-roll offset pulls the start earlier and pushes the end later
- Windows starting before sample 0 or ending at/before their start are
  skipped, never an error
"""

from __future__ import annotations

import math
from typing import Sequence

import numpy as np

from constants import WINDOW_END_FALLBACK_MS, ms_to_samples
from engine.peaks import find_peak
from engine.types import WindowInfo, as_samples
from observability.logger import log_event


def resolve_window_ends(
    anchors: Sequence[float],
    alternates: Sequence[float],
) -> list[float]:
    """
    Compute the end timestamp for every anchor.

    For anchor i:
        next_same = anchors[i + 1] if it exists, else +inf
        next_alt  = smallest alternate strictly greater than anchors[i], else +inf
        end       = min(next_same, next_alt)
    When both are infinite: anchors[i] + WINDOW_END_FALLBACK_MS.

    Returns:
        List of end timestamps, same length and order as anchors.
    """
    ends: list[float] = []
    for i, anchor in enumerate(anchors):
        next_same = anchors[i + 1] if i + 1 < len(anchors) else math.inf

        next_alt = math.inf
        for alt in alternates:
            if anchor < alt < next_alt:
                next_alt = alt

        end = min(next_same, next_alt)
        if math.isinf(end):
            end = anchor + WINDOW_END_FALLBACK_MS
        ends.append(end)
    return ends


def extract_windows(
    audio: np.ndarray,
    anchors: Sequence[float],
    ends: Sequence[float],
    *,
    offset_ms: float,
    sample_rate: int,
    peak_search_ms: float | None = None,
    session_id: str | None = None,
    channel: str | None = None,
) -> list[WindowInfo]:
    """
    Cut one owned slice per (anchor, end) pair.

    Args:
        audio:
            Full recording (1D float samples). Only read.
        anchors, ends:
            Sample-domain timestamps in ms; ends from resolve_window_ends().
        offset_ms:
            Pre-roll. Window = [anchor - offset, end + offset), clipped to
            the buffer end.
        sample_rate:
            Rate for ms -> sample conversion.
        peak_search_ms:
            None locates the peak over the whole window. Otherwise the search
            starts at the anchor (index offset_samples) and spans this many ms.

    Returns:
        WindowInfo per retained window, in anchor order.

    Raises:
        ValueError if anchors and ends differ in length (caller bug), or if
        offset_ms / peak_search_ms is negative.
    """
    if len(anchors) != len(ends):
        raise ValueError(
            f"anchors/ends length mismatch ({len(anchors)} != {len(ends)})"
        )
    if offset_ms < 0:
        raise ValueError(f"offset_ms must be >= 0, got {offset_ms}")
    if peak_search_ms is not None and peak_search_ms < 0:
        raise ValueError(f"peak_search_ms must be >= 0, got {peak_search_ms}")

    samples = as_samples(audio)
    total = int(samples.shape[0])
    offset_samples = ms_to_samples(offset_ms, sample_rate)
    search_samples = (
        None if peak_search_ms is None else ms_to_samples(peak_search_ms, sample_rate)
    )

    windows: list[WindowInfo] = []
    for anchor, end in zip(anchors, ends):
        window_start = ms_to_samples(anchor, sample_rate) - offset_samples
        window_end = min(ms_to_samples(end, sample_rate) + offset_samples, total)

        if window_start < 0 or window_end <= window_start:
            log_event({
                "event_type": "WINDOW_SKIPPED",
                "session_id": session_id,
                "channel": channel,
                "timestamp_ms": anchor,
                "window_start": window_start,
                "window_end": window_end,
                "reason": "negative_start" if window_start < 0 else "empty",
            })
            continue

        # Owned copy; must not alias the recording
        data = samples[window_start:window_end].copy()

        if search_samples is None:
            peak_index = find_peak(data)
        else:
            peak_index = find_peak(data, offset_samples, search_samples)
            # Anchor may lie past a clipped window end
            peak_index = min(peak_index, data.shape[0] - 1)

        windows.append(
            WindowInfo(
                data=data,
                peak_index=peak_index,
                timestamp_ms=anchor,
                window_length_ms=(end - anchor) + 2 * offset_ms,
            )
        )

    return windows
