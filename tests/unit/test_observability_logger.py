# pylint: disable=missing-module-docstring,missing-function-docstring

import json
from typing import Any

import pytest

from observability import logger


def test_log_event_emits_valid_jsonl(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """
    Logger contract:
    - log_event emits exactly one JSONL line
    - payload is serialized as-is
    - output sink is patchable
    """
    captured: list[str] = []

    def fake_print(line: str) -> None:
        captured.append(line)

    # Patch the explicit output sink used by logger
    monkeypatch.setattr(logger, "_print", fake_print)

    payload: dict[str, Any] = {
        "event_type": "TEST",
        "value": 123,
    }

    logger.log_event(payload)

    # Exactly one line emitted
    assert len(captured) == 1

    # Must be valid JSON
    decoded = json.loads(captured[0])

    # Payload must be preserved exactly
    assert decoded == payload


def test_unserializable_event_falls_back(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    captured: list[str] = []
    monkeypatch.setattr(logger, "_print", captured.append)

    logger.log_event({"event_type": "AVERAGE_COMPLETED", "bad": object()})

    assert len(captured) == 1
    decoded = json.loads(captured[0])
    assert decoded["event_type"] == "LOGGER_SERIALIZATION_ERROR"
    assert decoded["source_event_type"] == "AVERAGE_COMPLETED"


def test_nan_is_not_emitted_as_invalid_json(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    captured: list[str] = []
    monkeypatch.setattr(logger, "_print", captured.append)

    logger.log_event({"event_type": "METRIC_TIMER", "value_ms": float("nan")})

    assert json.loads(captured[0])["event_type"] == "LOGGER_SERIALIZATION_ERROR"
