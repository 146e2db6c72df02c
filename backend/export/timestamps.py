"""
Key timestamp CSV.

Format:
    keydown_ms,keyup_ms
    812.500,901.250
    1204.000,

- One header row (skipped on parse)
- Row i holds the i-th key-down and i-th key-up; the shorter list leaves
  its cell empty
- Values are sample-domain milliseconds
"""

from __future__ import annotations

import csv
import io
from itertools import zip_longest
from typing import Sequence


CSV_HEADER = ("keydown_ms", "keyup_ms")


def _format_ms(value: float | None) -> str:
    return "" if value is None else f"{value:.3f}"


def format_timestamps_csv(
    down_times_ms: Sequence[float],
    up_times_ms: Sequence[float],
) -> str:
    """Render both timestamp lists as CSV text."""
    out = io.StringIO()
    writer = csv.writer(out, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for down, up in zip_longest(down_times_ms, up_times_ms):
        writer.writerow((_format_ms(down), _format_ms(up)))
    return out.getvalue()


def parse_timestamps_csv(text: str) -> tuple[list[float], list[float]]:
    """
    Parse CSV text into (down_times_ms, up_times_ms).

    Rows with fewer than two cells are ignored; empty cells are skipped.

    Raises:
        ValueError if a non-empty cell is not a number.
    """
    down: list[float] = []
    up: list[float] = []
    rows = csv.reader(io.StringIO(text.strip()))
    next(rows, None)  # header
    for row in rows:
        if len(row) < 2:
            continue
        keydown, keyup = row[0].strip(), row[1].strip()
        if keydown:
            down.append(float(keydown))
        if keyup:
            up.append(float(keyup))
    return down, up
