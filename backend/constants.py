"""
BEHAVIOR-AS-CONSTANTS
---------------------
Single source of truth for all behavioral constants of the averaging engine.

Rules:
- If changing a value changes measurement results, it belongs here.
- No magic numbers elsewhere in the codebase.
- Other modules MUST import from this file.
"""

from __future__ import annotations

import math
from typing import Final

# =============================================================================
# Capture Format (float32 mono, periodic blocks)
# =============================================================================

DEFAULT_SAMPLE_RATE_HZ: Final[int] = 48_000
CAPTURE_BLOCK_SIZE: Final[int] = 4096

# Hard capacity of the capture hand-off queue (seconds of queued audio)
CAPTURE_QUEUE_MAX_S: Final[float] = 5.0

# =============================================================================
# Clock Correlation
# =============================================================================

# Checkpoints older than this (at the current block cadence) are evicted
CHECKPOINT_RETENTION_S: Final[float] = 30.0
CHECKPOINT_MIN_RETAINED: Final[int] = 2

# =============================================================================
# Window Extraction
# =============================================================================

# Assumed window length when no later event of either kind exists
WINDOW_END_FALLBACK_MS: Final[float] = 100.0

# =============================================================================
# Averaging Defaults
# =============================================================================

DEFAULT_ATTACK_OFFSET_MS: Final[float] = 5.0
# Release sound starts before the key-up event is reported
DEFAULT_RELEASE_OFFSET_MS: Final[float] = 30.0
DEFAULT_PEAK_INTERVAL_MS: Final[float] = 12.0
DEFAULT_TARGET_LENGTH_MS: Final[float] = 70.0
DEFAULT_PEAK_POSITION_MS: Final[float] = 10.0
DEFAULT_PEAK_ALIGN: Final[bool] = True

# Caller-side trimming policy: first and last anchors are always discarded
MIN_DOWN_EVENTS: Final[int] = 3
MIN_UP_EVENTS: Final[int] = 2

# =============================================================================
# Export
# =============================================================================

EXPORT_FORMAT_VERSION: Final[str] = "1.0"
WAV_SAMPLE_WIDTH_BYTES: Final[int] = 2

# =============================================================================
# Helper Functions
# =============================================================================

def ms_to_samples(duration_ms: float, sample_rate_hz: float) -> int:
    """
    Convert milliseconds to a whole sample count (floor).

    Negative durations floor toward -inf; callers that compute pre-roll
    starts rely on that to detect windows beginning before sample 0.
    """
    return math.floor(duration_ms * sample_rate_hz / 1000.0)


def samples_to_ms(num_samples: float, sample_rate_hz: float) -> float:
    """
    Convert a (possibly fractional) sample count to milliseconds.

    Edge cases:
    - Non-positive sample rate returns 0.0 instead of dividing by zero.
    """
    if sample_rate_hz <= 0:
        return 0.0
    return (num_samples / sample_rate_hz) * 1000.0


def checkpoint_capacity(sample_rate_hz: float, block_size: int) -> int:
    """
    Number of checkpoints covering CHECKPOINT_RETENTION_S at one checkpoint
    per delivered block.
    """
    if sample_rate_hz <= 0 or block_size <= 0:
        return CHECKPOINT_MIN_RETAINED
    blocks = math.ceil(CHECKPOINT_RETENTION_S * sample_rate_hz / block_size)
    return max(CHECKPOINT_MIN_RETAINED, blocks)
