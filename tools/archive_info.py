import json
import sys
from pathlib import Path

from engine.stats import compute_waveform_stats
from export.archive import read_measurement_archive


def main(archive_path: str) -> None:
    imported = read_measurement_archive(Path(archive_path).read_bytes())

    print(json.dumps(imported.metadata.to_dict(), indent=2))
    print("recording_samples:", len(imported.audio))
    print("key_down:", len(imported.down_times_ms), "key_up:", len(imported.up_times_ms))

    stats = compute_waveform_stats(imported.combined)
    if stats is not None:
        print("combined:", json.dumps(stats.to_dict()))


if __name__ == "__main__":
    if len(sys.argv) != 2:
        print("Usage: python archive_info.py measurement.tar")
        sys.exit(1)

    main(sys.argv[1])
