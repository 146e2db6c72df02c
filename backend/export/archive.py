"""
Measurement archive (PAX tar).

Members:
    metadata.json    - format version, measurement summary, parameters,
                       member names
    recording.wav    - full recording, 16-bit mono
    combined.wav     - composite waveform (omitted when none was produced)
    timestamps.csv   - key-down / key-up sample-domain ms

The archive is built and read fully in memory. Reading also accepts the
browser recorder's camelCase metadata.json.
"""

from __future__ import annotations

import io
import json
import tarfile
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Sequence
from uuid import uuid4

import numpy as np

from constants import (
    DEFAULT_ATTACK_OFFSET_MS,
    DEFAULT_PEAK_ALIGN,
    DEFAULT_PEAK_POSITION_MS,
    DEFAULT_RELEASE_OFFSET_MS,
    EXPORT_FORMAT_VERSION,
)
from engine.stats import compute_waveform_stats
from engine.types import AudioBuffer
from export.timestamps import format_timestamps_csv, parse_timestamps_csv
from export.wav import WavFormatError, decode_wav, encode_wav


METADATA_NAME = "metadata.json"
RECORDING_NAME = "recording.wav"
COMBINED_NAME = "combined.wav"
TIMESTAMPS_NAME = "timestamps.csv"


class ArchiveError(Exception):
    """
    Raised when archive bytes are not a readable measurement archive
    (not a tar, missing metadata or members, unsupported version).
    """


@dataclass(frozen=True)
class MeasurementMetadata:
    """Contents of metadata.json."""

    sample_rate: int
    attack_offset_ms: float
    release_offset_ms: float
    peak_interval_ms: float
    peak_align: bool
    peak_position_ms: float
    name: str = "measurement"
    measurement_id: str = field(default_factory=lambda: uuid4().hex[:12])
    down_count: int = 0
    up_count: int = 0
    recording_duration_ms: float = 0.0
    # WaveformStats.to_dict() of the composite, None when absent
    combined_stats: dict[str, Any] | None = None
    version: str = EXPORT_FORMAT_VERSION
    exported_at: float = field(default_factory=time.time)
    files: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "exported_at": self.exported_at,
            "measurement": {
                "name": self.name,
                "id": self.measurement_id,
                "down_count": self.down_count,
                "up_count": self.up_count,
                "peak_interval_ms": self.peak_interval_ms,
                "combined_stats": self.combined_stats,
            },
            "audio": {
                "sample_rate": self.sample_rate,
                "peak_position_ms": self.peak_position_ms,
                "recording_duration_ms": self.recording_duration_ms,
            },
            "parameters": {
                "attack_offset_ms": self.attack_offset_ms,
                "release_offset_ms": self.release_offset_ms,
                "peak_align": self.peak_align,
            },
            "files": dict(self.files),
        }

    @staticmethod
    def from_dict(raw: dict[str, Any]) -> MeasurementMetadata:
        """
        Accepts both this module's layout and the camelCase layout written by
        the browser recorder (see _from_camel_case).

        Raises:
            ArchiveError on missing or malformed fields.
        """
        if "parameters" not in raw:
            return MeasurementMetadata._from_camel_case(raw)
        try:
            measurement = raw["measurement"]
            audio = raw["audio"]
            params = raw["parameters"]
            return MeasurementMetadata(
                sample_rate=int(audio["sample_rate"]),
                attack_offset_ms=float(params["attack_offset_ms"]),
                release_offset_ms=float(params["release_offset_ms"]),
                peak_interval_ms=float(measurement["peak_interval_ms"]),
                peak_align=bool(params["peak_align"]),
                peak_position_ms=float(audio["peak_position_ms"]),
                name=str(measurement.get("name", "measurement")),
                measurement_id=str(measurement.get("id", "")),
                down_count=int(measurement.get("down_count", 0)),
                up_count=int(measurement.get("up_count", 0)),
                recording_duration_ms=float(audio.get("recording_duration_ms", 0.0)),
                combined_stats=measurement.get("combined_stats"),
                version=str(raw["version"]),
                exported_at=float(raw.get("exported_at", 0.0)),
                files={str(k): str(v) for k, v in raw.get("files", {}).items()},
            )
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise ArchiveError(f"invalid metadata: {exc}") from exc

    @staticmethod
    def _from_camel_case(raw: dict[str, Any]) -> MeasurementMetadata:
        """
        Browser recorder layout:
            measurement.{id, name, keyTapCount, keyUpCount, peakIntervalMs}
            audio.{sampleRate, peakPositionMs?, recordingDurationMs}
            files.{recording, combinedWaveform|null, timestamps}
            exportedAt as an ISO-8601 string

        It records no averaging parameters; the defaults fill them in.
        """
        try:
            measurement = raw["measurement"]
            audio = raw["audio"]
            raw_files = raw.get("files", {})
            files = {
                key: str(raw_files[src])
                for key, src in _CAMEL_CASE_FILES.items()
                if raw_files.get(src) is not None
            }
            exported_at = raw.get("exportedAt")
            return MeasurementMetadata(
                sample_rate=int(audio["sampleRate"]),
                attack_offset_ms=DEFAULT_ATTACK_OFFSET_MS,
                release_offset_ms=DEFAULT_RELEASE_OFFSET_MS,
                peak_interval_ms=float(measurement["peakIntervalMs"]),
                peak_align=DEFAULT_PEAK_ALIGN,
                peak_position_ms=float(audio.get("peakPositionMs", DEFAULT_PEAK_POSITION_MS)),
                name=str(measurement.get("name", "measurement")),
                measurement_id=str(measurement.get("id", "")),
                down_count=int(measurement.get("keyTapCount", 0)),
                up_count=int(measurement.get("keyUpCount", 0)),
                recording_duration_ms=float(audio.get("recordingDurationMs", 0.0)),
                version=str(raw["version"]),
                exported_at=_parse_iso_time(exported_at) if exported_at else 0.0,
                files=files,
            )
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise ArchiveError(f"invalid metadata: {exc}") from exc


# Our files key -> browser recorder files key
_CAMEL_CASE_FILES = {
    "recording": "recording",
    "combined": "combinedWaveform",
    "timestamps": "timestamps",
}


def _parse_iso_time(value: str) -> float:
    # fromisoformat only takes a trailing "Z" from 3.11 on
    return datetime.fromisoformat(str(value).replace("Z", "+00:00")).timestamp()


@dataclass(frozen=True)
class ImportedMeasurement:
    """A measurement archive decoded back into engine inputs."""

    metadata: MeasurementMetadata
    audio: AudioBuffer
    down_times_ms: tuple[float, ...]
    up_times_ms: tuple[float, ...]
    combined: np.ndarray | None = None


# ---------------------------------------------------------------------
# Build
# ---------------------------------------------------------------------


def _add_member(tar: tarfile.TarFile, name: str, payload: bytes, mtime: float) -> None:
    info = tarfile.TarInfo(name=name)
    info.size = len(payload)
    info.mtime = int(mtime)
    info.mode = 0o644
    tar.addfile(info, io.BytesIO(payload))


def build_measurement_archive(
    audio: AudioBuffer,
    down_times_ms: Sequence[float],
    up_times_ms: Sequence[float],
    *,
    attack_offset_ms: float,
    release_offset_ms: float,
    peak_interval_ms: float,
    peak_align: bool,
    peak_position_ms: float,
    combined: np.ndarray | None = None,
    name: str = "measurement",
) -> bytes:
    """Serialize a recording, its key timestamps and composite into a tar archive."""
    files = {"recording": RECORDING_NAME, "timestamps": TIMESTAMPS_NAME}
    if combined is not None:
        files["combined"] = COMBINED_NAME

    combined_stats = compute_waveform_stats(combined)
    metadata = MeasurementMetadata(
        sample_rate=audio.sample_rate,
        attack_offset_ms=attack_offset_ms,
        release_offset_ms=release_offset_ms,
        peak_interval_ms=peak_interval_ms,
        peak_align=peak_align,
        peak_position_ms=peak_position_ms,
        name=name,
        down_count=len(down_times_ms),
        up_count=len(up_times_ms),
        recording_duration_ms=audio.duration_ms,
        combined_stats=combined_stats.to_dict() if combined_stats is not None else None,
        files=files,
    )

    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w", format=tarfile.PAX_FORMAT) as tar:
        mtime = metadata.exported_at
        _add_member(tar, METADATA_NAME, json.dumps(metadata.to_dict(), indent=2).encode("utf-8"), mtime)
        _add_member(tar, RECORDING_NAME, encode_wav(audio.samples, audio.sample_rate), mtime)
        if combined is not None:
            _add_member(tar, COMBINED_NAME, encode_wav(combined, audio.sample_rate), mtime)
        _add_member(
            tar,
            TIMESTAMPS_NAME,
            format_timestamps_csv(down_times_ms, up_times_ms).encode("utf-8"),
            mtime,
        )
    return buf.getvalue()


# ---------------------------------------------------------------------
# Read
# ---------------------------------------------------------------------


def _read_members(data: bytes) -> dict[str, bytes]:
    try:
        with tarfile.open(fileobj=io.BytesIO(data), mode="r:*") as tar:
            members: dict[str, bytes] = {}
            for info in tar.getmembers():
                if not info.isfile():
                    continue
                extracted = tar.extractfile(info)
                if extracted is None:
                    continue
                # Flatten any directory prefix
                members[info.name.rsplit("/", 1)[-1]] = extracted.read()
            return members
    except tarfile.TarError as exc:
        raise ArchiveError(f"not a tar archive: {exc}") from exc


def read_measurement_archive(data: bytes) -> ImportedMeasurement:
    """
    Decode archive bytes produced by build_measurement_archive.

    Raises:
        ArchiveError if the archive or any required member is unreadable.
    """
    members = _read_members(data)

    if METADATA_NAME not in members:
        raise ArchiveError(f"archive has no {METADATA_NAME}")
    try:
        raw = json.loads(members[METADATA_NAME].decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ArchiveError(f"invalid {METADATA_NAME}: {exc}") from exc
    if not isinstance(raw, dict):
        raise ArchiveError(f"invalid {METADATA_NAME}: expected an object")

    metadata = MeasurementMetadata.from_dict(raw)
    if metadata.version.split(".")[0] != EXPORT_FORMAT_VERSION.split(".")[0]:
        raise ArchiveError(f"unsupported archive version {metadata.version}")

    recording_name = metadata.files.get("recording", RECORDING_NAME)
    timestamps_name = metadata.files.get("timestamps", TIMESTAMPS_NAME)
    combined_name = metadata.files.get("combined")

    for name in (recording_name, timestamps_name):
        if name not in members:
            raise ArchiveError(f"archive has no {name}")

    try:
        samples, sample_rate = decode_wav(members[recording_name])
        combined = None
        if combined_name is not None and combined_name in members:
            combined, _ = decode_wav(members[combined_name])
    except WavFormatError as exc:
        raise ArchiveError(str(exc)) from exc

    try:
        down, up = parse_timestamps_csv(members[timestamps_name].decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as exc:
        raise ArchiveError(f"invalid {timestamps_name}: {exc}") from exc

    return ImportedMeasurement(
        metadata=metadata,
        audio=AudioBuffer(samples=samples, sample_rate=sample_rate),
        down_times_ms=tuple(down),
        up_times_ms=tuple(up),
        combined=combined,
    )
