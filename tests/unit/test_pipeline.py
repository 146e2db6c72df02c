# pylint: disable=missing-module-docstring,missing-function-docstring

import json

import numpy as np
import pytest

from engine.pipeline import measure, measure_attack, measure_release, trim_release_anchors
from engine.types import AudioBuffer, AveragingConfig
from observability import logger


SR = 1000

DOWNS = [100.0, 400.0, 700.0, 1000.0, 1300.0]
UPS = [150.0, 450.0, 750.0, 1050.0, 1350.0]


def make_audio() -> AudioBuffer:
    samples = np.zeros(2000, dtype=np.float32)
    for t in DOWNS:
        samples[int(t) + 2] = -0.8
    for t in UPS:
        samples[int(t) + 1] = 0.4
    return AudioBuffer(samples=samples, sample_rate=SR)


def make_config(offset_ms: float, *, sample_rate: int = SR) -> AveragingConfig:
    return AveragingConfig(
        offset_ms=offset_ms,
        peak_align=True,
        peak_position_ms=10.0,
        sample_rate=sample_rate,
        target_length_ms=70.0,
        peak_search_ms=None,
    )


# ---------------------------------------------------------------------
# Event-count thresholds
# ---------------------------------------------------------------------

@pytest.mark.parametrize("downs", [[], [100.0], [100.0, 400.0]])
def test_attack_needs_three_down_events(downs: list[float]):
    result = measure_attack(make_audio(), downs, UPS, make_config(5.0))

    assert result.waveform is None
    assert result.window_count == 0


def test_too_few_events_is_logged(monkeypatch: pytest.MonkeyPatch):
    captured: list[str] = []
    monkeypatch.setattr(logger, "_print", captured.append)

    measure_attack(make_audio(), [100.0], UPS, make_config(5.0), session_id="s1")

    [event] = [json.loads(line) for line in captured]
    assert event["event_type"] == "AVERAGE_SKIPPED"
    assert event["reason"] == "too_few_events"
    assert event["channel"] == "attack"
    assert event["required"] == 3


def test_release_needs_two_up_events():
    result = measure_release(make_audio(), DOWNS, [150.0], make_config(30.0))

    assert result.waveform is None
    assert result.window_count == 0


# ---------------------------------------------------------------------
# Trimming
# ---------------------------------------------------------------------

def test_attack_drops_first_and_last_anchor():
    result = measure_attack(make_audio(), DOWNS, UPS, make_config(5.0))

    assert [w.timestamp_ms for w in result.windows] == [400.0, 700.0, 1000.0]


def test_attack_with_three_downs_keeps_middle_only():
    result = measure_attack(make_audio(), DOWNS[:3], UPS, make_config(5.0))

    assert result.window_count == 1
    assert result.windows[0].timestamp_ms == 400.0


def test_attack_window_ends_at_next_key_up():
    result = measure_attack(make_audio(), DOWNS, UPS, make_config(5.0))

    # [400 - 5, 450 + 5)
    assert len(result.windows[0]) == 60
    assert result.windows[0].window_length_ms == pytest.approx(60.0)


def test_release_drops_first_and_last_with_three_or_more():
    result = measure_release(make_audio(), DOWNS, UPS, make_config(30.0))

    assert [w.timestamp_ms for w in result.windows] == [450.0, 750.0, 1050.0]
    # Ends at the next key-down (700), not the next key-up (750)
    assert len(result.windows[0]) == (700 + 30) - (450 - 30)


def test_release_with_two_ups_keeps_first():
    result = measure_release(make_audio(), DOWNS, UPS[:2], make_config(30.0))

    assert [w.timestamp_ms for w in result.windows] == [150.0]


def test_trim_release_anchor_slices():
    events = [1, 2, 3, 4]
    assert events[trim_release_anchors(4)] == [2, 3]
    assert events[:2][trim_release_anchors(2)] == [1]


# ---------------------------------------------------------------------
# Full measurement
# ---------------------------------------------------------------------

def test_measure_combines_both_channels():
    m = measure(
        make_audio(),
        DOWNS,
        UPS,
        attack_config=make_config(5.0),
        release_config=make_config(30.0),
        peak_interval_ms=12.0,
    )

    assert m.attack.waveform is not None
    assert m.release.waveform is not None
    assert m.combined is not None
    assert m.sample_rate == SR
    assert m.combined.shape[0] >= m.attack.waveform.shape[0]


def test_measure_without_attack_has_no_composite():
    m = measure(
        make_audio(),
        DOWNS[:2],
        UPS,
        attack_config=make_config(5.0),
        release_config=make_config(30.0),
        peak_interval_ms=12.0,
    )

    assert m.attack.waveform is None
    assert m.release.waveform is not None
    assert m.combined is None


def test_buffer_sample_rate_overrides_config_rate():
    # Nominal 48 kHz in config; the recording is 1 kHz
    result = measure_attack(make_audio(), DOWNS, UPS, make_config(5.0, sample_rate=48_000))

    assert len(result.windows[0]) == 60
    assert result.output_length_ms > 0


def test_recompute_with_new_offset_does_not_mutate_inputs():
    audio = make_audio()
    before = audio.samples.copy()
    downs = list(DOWNS)

    first = measure_attack(audio, downs, UPS, make_config(5.0))
    second = measure_attack(audio, downs, UPS, make_config(20.0))

    assert len(second.windows[0]) == len(first.windows[0]) + 30
    np.testing.assert_array_equal(audio.samples, before)
    assert downs == DOWNS
