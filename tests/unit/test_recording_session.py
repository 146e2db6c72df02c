# pylint: disable=missing-module-docstring,missing-function-docstring

import json
from typing import Any

import numpy as np
import pytest

from audio.frames import AudioBlock, KeyEvent, KeyEventKind
from audio.queues import CaptureQueueOverflow
from engine.types import AudioBuffer, AveragingConfig
from observability import logger
from session.recording_session import RecordingSession, SessionStateError
from session.recording_status import RecordingStatus


SR = 1000
BLOCK = 100


def make_session() -> RecordingSession:
    return RecordingSession(session_id="test", sample_rate=SR, block_size=BLOCK)


def make_block(seq: int, clock_time_s: float, n: int = BLOCK) -> AudioBlock:
    return AudioBlock(
        sequence_num=seq,
        samples=np.full(n, seq / 10, dtype=np.float32),
        clock_time_s=clock_time_s,
    )


def make_config(offset_ms: float) -> AveragingConfig:
    return AveragingConfig(
        offset_ms=offset_ms,
        peak_align=True,
        peak_position_ms=10.0,
        sample_rate=SR,
        target_length_ms=70.0,
        peak_search_ms=None,
    )


def capture_events(monkeypatch: pytest.MonkeyPatch) -> list[dict[str, Any]]:
    events: list[dict[str, Any]] = []
    monkeypatch.setattr(logger, "_print", lambda line: events.append(json.loads(line)))
    return events


# ---------------------------------------------------------------------
# Pump ordering / clock correlation
# ---------------------------------------------------------------------

def test_key_event_before_first_block_resolved_at_first_checkpoint():
    s = make_session()
    s.post_key_event(KeyEvent(kind=KeyEventKind.DOWN, clock_time_s=0.05))
    s.post_audio_block(make_block(1, 0.1))
    s.post_audio_block(make_block(2, 0.2))
    s.post_key_event(KeyEvent(kind=KeyEventKind.UP, clock_time_s=0.15))

    applied = s.pump()

    assert applied == 4
    assert s.down_times_ms == pytest.approx((50.0,))
    assert s.up_times_ms == pytest.approx((150.0,))
    assert s.correlator.pending_count() == 0


def test_pending_events_keep_arrival_order():
    s = make_session()
    for t in (0.02, 0.04, 0.06):
        s.post_key_event(KeyEvent(kind=KeyEventKind.DOWN, clock_time_s=t))
    s.post_audio_block(make_block(1, 0.1))

    s.pump()

    assert s.down_times_ms == pytest.approx((20.0, 40.0, 60.0))


def test_status_moves_to_recording_on_first_post():
    s = make_session()
    assert s.status is RecordingStatus.IDLE

    s.post_audio_block(make_block(1, 0.1))

    assert s.status is RecordingStatus.RECORDING


def test_sequence_gap_is_logged(monkeypatch: pytest.MonkeyPatch):
    events = capture_events(monkeypatch)
    s = make_session()
    s.post_audio_block(make_block(1, 0.1))
    s.post_audio_block(make_block(3, 0.2))

    s.pump()

    gaps = [e for e in events if e["event_type"] == "CAPTURE_SEQUENCE_GAP"]
    assert gaps == [
        {"event_type": "CAPTURE_SEQUENCE_GAP", "session_id": "test",
         "status": "RECORDING", "expected": 2, "actual": 3},
    ]


# ---------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------

def test_finalize_concatenates_blocks_in_order():
    s = make_session()
    s.post_audio_block(make_block(1, 0.1))
    s.post_audio_block(make_block(2, 0.2))

    audio = s.finalize()

    assert len(audio) == 2 * BLOCK
    assert audio.sample_rate == SR
    assert audio.samples[0] == pytest.approx(0.1)
    assert audio.samples[-1] == pytest.approx(0.2)
    assert s.status is RecordingStatus.COMPLETED
    assert s.capture_queue.is_empty()


def test_finalize_without_audio_is_error(monkeypatch: pytest.MonkeyPatch):
    events = capture_events(monkeypatch)
    s = make_session()
    s.post_key_event(KeyEvent(kind=KeyEventKind.DOWN, clock_time_s=0.05))

    audio = s.finalize()

    assert audio.is_empty()
    assert s.status is RecordingStatus.ERROR
    [final] = [e for e in events if e["event_type"] == "SESSION_FINALIZED"]
    assert final["unresolved_events"] == 1


def test_finalized_session_rejects_input():
    s = make_session()
    s.post_audio_block(make_block(1, 0.1))
    s.finalize()

    with pytest.raises(SessionStateError):
        s.post_audio_block(make_block(2, 0.2))
    with pytest.raises(SessionStateError):
        s.post_key_event(KeyEvent(kind=KeyEventKind.UP, clock_time_s=0.2))
    with pytest.raises(SessionStateError):
        s.finalize()


def test_measure_before_finalize_raises():
    s = make_session()
    s.post_audio_block(make_block(1, 0.1))

    with pytest.raises(SessionStateError):
        s.measure(
            attack_config=make_config(5.0),
            release_config=make_config(30.0),
            peak_interval_ms=12.0,
        )


def test_overflow_marks_session_failed(monkeypatch: pytest.MonkeyPatch):
    events = capture_events(monkeypatch)
    s = make_session()
    big = 1000  # 1 s per block against a 5 s queue

    for seq in range(5):
        s.post_audio_block(make_block(seq, seq + 1.0, n=big))
    with pytest.raises(CaptureQueueOverflow):
        s.post_audio_block(make_block(5, 6.0, n=big))

    assert s.status is RecordingStatus.ERROR
    assert any(e["event_type"] == "CAPTURE_QUEUE_OVERFLOW" for e in events)


def test_overflowed_session_stays_failed(monkeypatch: pytest.MonkeyPatch):
    capture_events(monkeypatch)
    s = make_session()
    big = 1000

    for seq in range(5):
        s.post_audio_block(make_block(seq, seq + 1.0, n=big))
    with pytest.raises(CaptureQueueOverflow):
        s.post_audio_block(make_block(5, 6.0, n=big))

    with pytest.raises(SessionStateError):
        s.post_key_event(KeyEvent(kind=KeyEventKind.DOWN, clock_time_s=6.5))
    with pytest.raises(SessionStateError):
        s.post_audio_block(make_block(6, 7.0))
    assert s.status is RecordingStatus.ERROR

    audio = s.finalize()

    assert len(audio) == 5 * big
    assert s.status is RecordingStatus.ERROR
    with pytest.raises(SessionStateError):
        s.measure(
            attack_config=make_config(5.0),
            release_config=make_config(30.0),
            peak_interval_ms=12.0,
        )


def test_checkpoint_retention_follows_delivered_block_length():
    s = make_session()
    assert s.correlator.max_checkpoints == 300  # 30 s of 100-sample blocks

    s.post_audio_block(make_block(1, 0.01, n=10))
    s.pump()

    assert s.correlator.max_checkpoints == 3000  # 30 s of 10-sample blocks

    s.post_audio_block(make_block(2, 1.01, n=1000))
    s.pump()

    assert s.correlator.max_checkpoints == 30


# ---------------------------------------------------------------------
# Measurement on a finalized recording
# ---------------------------------------------------------------------

def _keystroke_recording() -> tuple[AudioBuffer, list[float], list[float]]:
    downs = [100.0, 400.0, 700.0, 1000.0]
    ups = [160.0, 460.0, 760.0, 1060.0]
    samples = np.zeros(1500, dtype=np.float32)
    for t in downs:
        samples[int(t) + 3] = -0.9
    for t in ups:
        samples[int(t) + 2] = 0.5
    return AudioBuffer(samples=samples, sample_rate=SR), downs, ups


def test_imported_session_measures_repeatedly():
    audio, downs, ups = _keystroke_recording()
    s = RecordingSession.from_recording(audio, downs, ups, session_id="imported")

    assert s.status is RecordingStatus.COMPLETED
    assert s.is_finalized()

    first = s.measure(
        attack_config=make_config(5.0),
        release_config=make_config(30.0),
        peak_interval_ms=12.0,
    )
    second = s.measure(
        attack_config=make_config(10.0),
        release_config=make_config(30.0),
        peak_interval_ms=20.0,
    )

    assert first.attack.window_count == 2
    assert first.release.window_count == 2
    assert first.combined is not None
    assert second.combined is not None
    assert second.peak_interval_ms == 20.0
    assert s.down_times_ms == tuple(downs)
