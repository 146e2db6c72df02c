"""
Recording lifecycle status.

recording_status: IDLE | RECORDING | COMPLETED | ERROR

This is pure data owned by RecordingSession.
"""
from enum import Enum

class RecordingStatus(Enum):
    """
    Recording lifecycle status.

    Measurements can only be computed in COMPLETED.
    """
    IDLE = "IDLE"              # Created, nothing captured yet
    RECORDING = "RECORDING"    # At least one item posted, not finalized
    COMPLETED = "COMPLETED"    # Finalized with audio
    ERROR = "ERROR"            # Finalized without audio, or capture overflow
