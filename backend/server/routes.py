"""
Route registration for the averaging API.

Responsibilities:
- Define HTTP endpoints
- Decode uploaded measurement archives
- Resolve averaging parameters (query > archive metadata > app config)
- Pull dependencies from app.state
- Run decode and averaging in the threadpool, off the event loop
"""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI, Request, Response
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from config import AppConfig
from engine.stats import compute_waveform_stats
from engine.types import Measurement, SyncAverageResult
from export.archive import ArchiveError, read_measurement_archive
from export.wav import encode_wav
from observability.logger import log_event
from observability.metrics import timed
from session.recording_session import RecordingSession, SessionStateError


def register_routes(app: FastAPI) -> None:
    """Register all routes on the FastAPI app."""
    @app.get("/health")
    async def health() -> dict[str, str]: # pyright: ignore[reportUnusedFunction]
        return {"status": "ok"}

    @app.post("/measurements")
    async def measurements( # pyright: ignore[reportUnusedFunction]
        request: Request,
        attack_offset_ms: float | None = None,
        release_offset_ms: float | None = None,
        peak_interval_ms: float | None = None,
        peak_align: bool | None = None,
    ) -> Response:
        try:
            measurement = await run_in_threadpool(
                _run_measurement,
                app.state.config,
                await request.body(),
                attack_offset_ms=attack_offset_ms,
                release_offset_ms=release_offset_ms,
                peak_interval_ms=peak_interval_ms,
                peak_align=peak_align,
            )
        except (ArchiveError, SessionStateError, ValueError) as exc:
            return _bad_request("/measurements", exc)

        return JSONResponse(_measurement_summary(measurement))

    @app.post("/measurements/combined.wav")
    async def measurements_combined_wav( # pyright: ignore[reportUnusedFunction]
        request: Request,
        attack_offset_ms: float | None = None,
        release_offset_ms: float | None = None,
        peak_interval_ms: float | None = None,
        peak_align: bool | None = None,
    ) -> Response:
        try:
            measurement = await run_in_threadpool(
                _run_measurement,
                app.state.config,
                await request.body(),
                attack_offset_ms=attack_offset_ms,
                release_offset_ms=release_offset_ms,
                peak_interval_ms=peak_interval_ms,
                peak_align=peak_align,
            )
        except (ArchiveError, SessionStateError, ValueError) as exc:
            return _bad_request("/measurements/combined.wav", exc)

        if measurement.combined is None:
            return JSONResponse(
                {"error": "combined waveform not available"},
                status_code=404,
            )
        return Response(
            content=encode_wav(measurement.combined, measurement.sample_rate),
            media_type="audio/wav",
        )


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------


def _bad_request(route: str, exc: Exception) -> JSONResponse:
    log_event({
        "event_type": "HTTP_BAD_REQUEST",
        "route": route,
        "exception": type(exc).__name__,
        "message": str(exc),
    })
    return JSONResponse({"error": str(exc)}, status_code=400)


def _pick(override: Any, archived: Any) -> Any:
    return archived if override is None else override


def _run_measurement(
    config: AppConfig,
    archive: bytes,
    *,
    attack_offset_ms: float | None,
    release_offset_ms: float | None,
    peak_interval_ms: float | None,
    peak_align: bool | None,
) -> Measurement:
    """
    Decode an uploaded archive and measure it.

    Raises:
        ArchiveError if the upload is not a readable measurement archive.
        SessionStateError if the archived recording is empty.
        ValueError if an averaging parameter is out of range.
    """
    imported = read_measurement_archive(archive)
    meta = imported.metadata
    session = RecordingSession.from_recording(
        imported.audio,
        imported.down_times_ms,
        imported.up_times_ms,
    )
    align = _pick(peak_align, meta.peak_align)
    sample_rate = imported.audio.sample_rate

    with timed("http_measurement", session_id=session.session_id):
        return session.measure(
            attack_config=config.attack_config(sample_rate=sample_rate).with_overrides(
                offset_ms=_pick(attack_offset_ms, meta.attack_offset_ms),
                peak_align=align,
            ),
            release_config=config.release_config(sample_rate=sample_rate).with_overrides(
                offset_ms=_pick(release_offset_ms, meta.release_offset_ms),
                peak_align=align,
            ),
            peak_interval_ms=_pick(peak_interval_ms, meta.peak_interval_ms),
        )


def _channel_summary(result: SyncAverageResult) -> dict[str, Any]:
    stats = compute_waveform_stats(result.waveform)
    return {
        "window_count": result.window_count,
        "output_length_ms": result.output_length_ms,
        "stats": stats.to_dict() if stats is not None else None,
        "windows": [
            {
                "timestamp_ms": w.timestamp_ms,
                "peak_index": w.peak_index,
                "samples": len(w),
                "window_length_ms": w.window_length_ms,
            }
            for w in result.windows
        ],
    }


def _measurement_summary(measurement: Measurement) -> dict[str, Any]:
    combined_stats = compute_waveform_stats(measurement.combined)
    return {
        "sample_rate": measurement.sample_rate,
        "peak_interval_ms": measurement.peak_interval_ms,
        "attack": _channel_summary(measurement.attack),
        "release": _channel_summary(measurement.release),
        "combined": {
            "samples": 0 if measurement.combined is None else int(measurement.combined.shape[0]),
            "stats": combined_stats.to_dict() if combined_stats is not None else None,
        },
    }
