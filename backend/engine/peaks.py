"""Peak location in a sample range."""

from __future__ import annotations

import numpy as np


def find_peak(
    data: np.ndarray,
    start_index: int = 0,
    range_length: int | None = None,
) -> int:
    """
    Return the index of maximum absolute amplitude in
    [start_index, start_index + range_length).

    - range_length defaults to the rest of the array
    - The range is clipped to the array end
    - If every sample in range is exactly zero (or the range is empty),
      start_index is returned unchanged
    - Ties resolve to the earliest index
    """
    n = int(data.shape[0])
    if range_length is None:
        range_length = n - start_index
    end = min(start_index + range_length, n)
    if start_index < 0 or start_index >= end:
        return start_index

    magnitudes = np.abs(data[start_index:end])
    offset = int(np.argmax(magnitudes))
    if magnitudes[offset] == 0:
        return start_index
    return start_index + offset
