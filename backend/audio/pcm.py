"""PCM conversion utilities."""
import numpy as np

def pcm16le_to_float32(pcm_bytes: bytes) -> np.ndarray:
    """
    Convert PCM16 little-endian mono bytes to float32 in [-1.0, 1.0].

    Asymmetric scaling mirrors float32_to_pcm16le so full scale survives a
    round trip: negative / 32768, positive / 32767.
    No resampling. No channel mixing.
    """
    if len(pcm_bytes) % 2 != 0:
        # Truncated sample; drop it
        pcm_bytes = pcm_bytes[: len(pcm_bytes) - 1]

    audio_i16 = np.frombuffer(pcm_bytes, dtype="<i2").astype(np.float32)
    return np.where(audio_i16 < 0, audio_i16 / 32768.0, audio_i16 / 32767.0).astype(
        np.float32
    )


def pcm8_to_float32(pcm_bytes: bytes) -> np.ndarray:
    """Convert unsigned 8-bit PCM bytes to float32 in [-1.0, 1.0)."""
    audio_u8 = np.frombuffer(pcm_bytes, dtype=np.uint8).astype(np.float32)
    return ((audio_u8 - 128.0) / 128.0).astype(np.float32)


def float32_to_pcm16le(samples: np.ndarray) -> bytes:
    """
    Convert float samples to PCM16 little-endian bytes.

    Samples are clipped to [-1, 1]; negative values scale by 32768,
    positive by 32767, then truncate toward zero.
    """
    clipped = np.clip(np.asarray(samples, dtype=np.float64), -1.0, 1.0)
    scaled = np.where(clipped < 0, clipped * 32768.0, clipped * 32767.0)
    return np.trunc(scaled).astype("<i2").tobytes()
