import sys
from pathlib import Path

from config import AppConfig
from engine.types import AudioBuffer
from export.archive import build_measurement_archive
from export.timestamps import parse_timestamps_csv
from export.wav import decode_wav
from session.recording_session import RecordingSession


def main(wav_path: str, csv_path: str, output_path: str) -> None:
    config = AppConfig.load_from_env()

    samples, sample_rate = decode_wav(Path(wav_path).read_bytes())
    down, up = parse_timestamps_csv(Path(csv_path).read_text(encoding="utf-8"))
    audio = AudioBuffer(samples=samples, sample_rate=sample_rate)

    session = RecordingSession.from_recording(audio, down, up)
    measurement = session.measure(
        attack_config=config.attack_config(sample_rate=sample_rate),
        release_config=config.release_config(sample_rate=sample_rate),
        peak_interval_ms=config.peak_interval_ms,
    )

    archive = build_measurement_archive(
        audio,
        down,
        up,
        attack_offset_ms=config.attack_offset_ms,
        release_offset_ms=config.release_offset_ms,
        peak_interval_ms=config.peak_interval_ms,
        peak_align=config.peak_align,
        peak_position_ms=config.peak_position_ms,
        combined=measurement.combined,
        name=Path(wav_path).stem,
    )
    Path(output_path).write_bytes(archive)

    print("sample_rate:", sample_rate)
    print("duration_ms:", round(audio.duration_ms, 1))
    print("key_down:", len(down), "key_up:", len(up))
    print("attack_windows:", measurement.attack.window_count)
    print("release_windows:", measurement.release.window_count)
    print("combined:", "yes" if measurement.combined is not None else "no")


if __name__ == "__main__":
    if len(sys.argv) != 4:
        print("Usage: python pack_measurement.py recording.wav timestamps.csv out.tar")
        sys.exit(1)

    main(sys.argv[1], sys.argv[2], sys.argv[3])
