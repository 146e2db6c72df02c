# pylint: disable=missing-module-docstring,missing-function-docstring

import json

import numpy as np
import pytest

from engine.windows import extract_windows, resolve_window_ends
from observability import logger


SR = 1000  # 1 sample per ms


def make_audio(n: int = 100) -> np.ndarray:
    return np.zeros(n, dtype=np.float32)


# ---------------------------------------------------------------------
# Window-end policy
# ---------------------------------------------------------------------

def test_ends_interleaved_alternates():
    assert resolve_window_ends([100, 200, 300], [150, 250, 350]) == [150, 250, 350]


def test_ends_fallback_when_no_later_event():
    assert resolve_window_ends([100, 200], [150]) == [150, 300]


def test_ends_next_same_wins_when_earlier():
    assert resolve_window_ends([100, 120], [150]) == [120, 150]


def test_ends_alternate_must_be_strictly_later():
    assert resolve_window_ends([100], [100, 130]) == [130]


def test_ends_unsorted_alternates():
    assert resolve_window_ends([100], [400, 130, 90]) == [130]


def test_ends_empty_anchors():
    assert resolve_window_ends([], [1.0, 2.0]) == []


# ---------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------

def test_window_bounds_include_pre_roll_on_both_sides():
    audio = make_audio()
    audio[22] = 0.8

    [w] = extract_windows(audio, [20.0], [30.0], offset_ms=5.0, sample_rate=SR)

    # [20 - 5, 30 + 5)
    assert len(w) == 20
    assert w.peak_index == 7
    assert w.timestamp_ms == 20.0
    assert w.window_length_ms == pytest.approx(20.0)


def test_window_data_is_an_owned_copy():
    audio = make_audio()
    audio[22] = 0.8

    [w] = extract_windows(audio, [20.0], [30.0], offset_ms=5.0, sample_rate=SR)

    assert not np.shares_memory(w.data, audio)
    audio[22] = 0.0
    assert w.data[7] == pytest.approx(0.8)


def test_window_end_clamped_to_buffer():
    audio = make_audio()

    [w] = extract_windows(audio, [90.0], [120.0], offset_ms=5.0, sample_rate=SR)

    assert len(w) == 15
    # Nominal span ignores clamping
    assert w.window_length_ms == pytest.approx(40.0)


def test_negative_start_is_skipped(monkeypatch: pytest.MonkeyPatch):
    captured: list[str] = []
    monkeypatch.setattr(logger, "_print", captured.append)

    windows = extract_windows(
        make_audio(),
        [2.0, 50.0],
        [40.0, 60.0],
        offset_ms=5.0,
        sample_rate=SR,
        channel="attack",
    )

    assert [w.timestamp_ms for w in windows] == [50.0]
    skipped = json.loads(captured[0])
    assert skipped["event_type"] == "WINDOW_SKIPPED"
    assert skipped["reason"] == "negative_start"
    assert skipped["channel"] == "attack"


def test_window_past_buffer_end_is_skipped(monkeypatch: pytest.MonkeyPatch):
    captured: list[str] = []
    monkeypatch.setattr(logger, "_print", captured.append)

    windows = extract_windows(make_audio(), [110.0], [150.0], offset_ms=5.0, sample_rate=SR)

    assert windows == []
    assert json.loads(captured[0])["reason"] == "empty"


def test_all_zero_window_peak_defaults_to_start():
    [w] = extract_windows(make_audio(), [20.0], [30.0], offset_ms=5.0, sample_rate=SR)
    assert w.peak_index == 0


def test_peak_searched_over_whole_window_by_default():
    audio = make_audio()
    audio[16] = 1.0   # inside pre-roll
    audio[25] = 0.5   # after anchor

    [w] = extract_windows(audio, [20.0], [30.0], offset_ms=5.0, sample_rate=SR)
    assert w.peak_index == 1


def test_anchor_local_peak_search():
    audio = make_audio()
    audio[16] = 1.0
    audio[25] = 0.5

    [w] = extract_windows(
        audio, [20.0], [30.0], offset_ms=5.0, sample_rate=SR, peak_search_ms=10.0
    )
    # Search starts at the anchor (window index 5)
    assert w.peak_index == 10


def test_anchor_local_search_past_clamped_end():
    audio = make_audio()

    [w] = extract_windows(
        audio, [101.0], [120.0], offset_ms=5.0, sample_rate=SR, peak_search_ms=10.0
    )
    # Window [96, 100) ends before the anchor itself
    assert len(w) == 4
    assert w.peak_index == 3


def test_anchor_end_length_mismatch_raises():
    with pytest.raises(ValueError):
        extract_windows(make_audio(), [10.0, 20.0], [30.0], offset_ms=0.0, sample_rate=SR)


def test_negative_pre_roll_raises():
    audio = make_audio()
    audio[22] = 1.0

    with pytest.raises(ValueError, match="offset_ms"):
        extract_windows(
            audio, [20.0], [30.0], offset_ms=-5.0, sample_rate=SR, peak_search_ms=50.0
        )


def test_negative_peak_search_raises():
    with pytest.raises(ValueError, match="peak_search_ms"):
        extract_windows(
            make_audio(), [20.0], [30.0], offset_ms=5.0, sample_rate=SR, peak_search_ms=-1.0
        )
