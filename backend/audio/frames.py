"""
Capture primitives.

Pure data containers only.
No behavior, no queues, no timing logic.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum

import numpy as np


class KeyEventKind(str, Enum):
    """Which edge of a keystroke was observed."""
    DOWN = "down"
    UP = "up"


@dataclass(frozen=True)
class AudioBlock:
    """
    One block delivered by the capture front-end.

    sequence_num:
        Monotonic delivery counter. Used for gap detection and debugging only.

    samples:
        Mono float32 samples of this block.

    clock_time_s:
        Event-clock time (seconds) at which the block was delivered. The
        block's samples all precede this instant.
    """
    sequence_num: int
    samples: np.ndarray
    clock_time_s: float

    def __len__(self) -> int:
        return int(self.samples.shape[0])


@dataclass(frozen=True)
class KeyEvent:
    """
    A key-down or key-up observed by the input front-end.

    clock_time_s:
        Event-clock time (seconds), same clock as AudioBlock.clock_time_s.
    """
    kind: KeyEventKind
    clock_time_s: float
