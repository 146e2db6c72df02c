# pylint: disable=missing-module-docstring,missing-function-docstring

import numpy as np

from engine.peaks import find_peak


# ---------------------------------------------------------------------
# Whole-array search
# ---------------------------------------------------------------------

def test_peak_is_max_absolute_value():
    data = np.array([0.1, -0.5, 0.3, -0.8, 0.2], dtype=np.float32)
    assert find_peak(data) == 3


def test_all_zero_returns_start():
    assert find_peak(np.zeros(4, dtype=np.float32)) == 0


def test_single_element():
    assert find_peak(np.array([0.7], dtype=np.float32)) == 0


def test_ties_resolve_to_earliest_index():
    data = np.array([0.0, 0.5, -0.5, 0.5], dtype=np.float32)
    assert find_peak(data) == 1


# ---------------------------------------------------------------------
# Sub-range search
# ---------------------------------------------------------------------

def test_range_excludes_larger_peak_outside():
    data = np.array([0.9, 0.0, 0.2, -0.4, 0.1, 1.0], dtype=np.float32)
    assert find_peak(data, 1, 3) == 3


def test_range_clipped_to_array_end():
    data = np.array([0.9, 0.0, 0.2, -0.4], dtype=np.float32)
    assert find_peak(data, 2, 100) == 3


def test_all_zero_range_returns_start_index():
    data = np.array([0.9, 0.0, 0.0, 0.0, 0.3], dtype=np.float32)
    assert find_peak(data, 1, 3) == 1


def test_start_past_end_returns_start_index():
    data = np.array([0.9, 0.1], dtype=np.float32)
    assert find_peak(data, 5) == 5
