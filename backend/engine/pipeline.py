"""
Attack / release measurement pipeline.

Caller-side contract around the averaging engine:
- Window ends are resolved over the FULL anchor list, then the first and
  last anchors are discarded (they lack a neighbour on one side)
- Attack needs at least MIN_DOWN_EVENTS key-downs, release at least
  MIN_UP_EVENTS key-ups; below that the channel is skipped
- Release windows end at the next event of either kind
- The composite exists only when both channels produced a waveform

Every call is a pure function of its inputs; recomputation with new
parameters simply calls again.
"""

from __future__ import annotations

import dataclasses
from typing import Sequence

from constants import MIN_DOWN_EVENTS, MIN_UP_EVENTS
from engine.averaging import calculate_sync_average
from engine.combine import combine_waveforms
from engine.types import AudioBuffer, AveragingConfig, Measurement, SyncAverageResult
from engine.windows import resolve_window_ends
from observability.logger import log_event
from observability.metrics import timed


CHANNEL_ATTACK = "attack"
CHANNEL_RELEASE = "release"


def _bind_sample_rate(audio: AudioBuffer, config: AveragingConfig) -> AveragingConfig:
    # The rate capture actually ran at wins over any nominal default
    if config.sample_rate == audio.sample_rate:
        return config
    return dataclasses.replace(config, sample_rate=audio.sample_rate)


def trim_release_anchors(count: int) -> slice:
    """
    Slice of key-up anchors used for release averaging.

    >= 3 events: drop first and last. Fewer: keep only the first.
    """
    if count >= 3:
        return slice(1, -1)
    return slice(0, 1)


def measure_attack(
    audio: AudioBuffer,
    down_times_ms: Sequence[float],
    up_times_ms: Sequence[float],
    config: AveragingConfig,
    *,
    session_id: str | None = None,
) -> SyncAverageResult:
    """
    Average the key-down (attack) sound.

    Anchors: key-downs. Alternates: key-ups.
    """
    if len(down_times_ms) < MIN_DOWN_EVENTS:
        log_event({
            "event_type": "AVERAGE_SKIPPED",
            "session_id": session_id,
            "channel": CHANNEL_ATTACK,
            "reason": "too_few_events",
            "event_count": len(down_times_ms),
            "required": MIN_DOWN_EVENTS,
        })
        return SyncAverageResult.empty()

    anchors = list(down_times_ms)
    ends = resolve_window_ends(anchors, list(up_times_ms))

    with timed("attack_average", session_id=session_id, channel=CHANNEL_ATTACK):
        return calculate_sync_average(
            audio,
            anchors[1:-1],
            ends[1:-1],
            _bind_sample_rate(audio, config),
            session_id=session_id,
            channel=CHANNEL_ATTACK,
        )


def measure_release(
    audio: AudioBuffer,
    down_times_ms: Sequence[float],
    up_times_ms: Sequence[float],
    config: AveragingConfig,
    *,
    session_id: str | None = None,
) -> SyncAverageResult:
    """
    Average the key-up (release) sound.

    Anchors: key-ups. Alternates: sorted union of key-downs and key-ups.
    """
    if len(up_times_ms) < MIN_UP_EVENTS:
        log_event({
            "event_type": "AVERAGE_SKIPPED",
            "session_id": session_id,
            "channel": CHANNEL_RELEASE,
            "reason": "too_few_events",
            "event_count": len(up_times_ms),
            "required": MIN_UP_EVENTS,
        })
        return SyncAverageResult.empty()

    anchors = list(up_times_ms)
    alternates = sorted([*down_times_ms, *up_times_ms])
    ends = resolve_window_ends(anchors, alternates)
    keep = trim_release_anchors(len(anchors))

    with timed("release_average", session_id=session_id, channel=CHANNEL_RELEASE):
        return calculate_sync_average(
            audio,
            anchors[keep],
            ends[keep],
            _bind_sample_rate(audio, config),
            session_id=session_id,
            channel=CHANNEL_RELEASE,
        )


def measure(
    audio: AudioBuffer,
    down_times_ms: Sequence[float],
    up_times_ms: Sequence[float],
    *,
    attack_config: AveragingConfig,
    release_config: AveragingConfig,
    peak_interval_ms: float,
    session_id: str | None = None,
) -> Measurement:
    """
    Compute attack and release independently, then composite them.
    """
    attack = measure_attack(
        audio, down_times_ms, up_times_ms, attack_config, session_id=session_id
    )
    release = measure_release(
        audio, down_times_ms, up_times_ms, release_config, session_id=session_id
    )

    combined = None
    if attack.waveform is not None and release.waveform is not None:
        combined = combine_waveforms(
            attack.waveform,
            release.waveform,
            peak_interval_ms,
            audio.sample_rate,
        )
        log_event({
            "event_type": "COMBINE_COMPLETED",
            "session_id": session_id,
            "peak_interval_ms": peak_interval_ms,
            "attack_samples": int(attack.waveform.shape[0]),
            "release_samples": int(release.waveform.shape[0]),
            "combined_samples": int(combined.shape[0]),
        })

    return Measurement(
        attack=attack,
        release=release,
        combined=combined,
        peak_interval_ms=peak_interval_ms,
        sample_rate=audio.sample_rate,
    )
