"""
WAV container helpers for mono float waveforms.

- Encode: 16-bit PCM mono, samples clipped to [-1, 1]
- Decode: 8-bit or 16-bit PCM; multi-channel files yield channel 0

Sample conversion lives in audio.pcm; this module only handles the RIFF
container via the standard wave module.
"""

from __future__ import annotations

import io
import wave

import numpy as np

from audio.pcm import float32_to_pcm16le, pcm8_to_float32, pcm16le_to_float32
from constants import WAV_SAMPLE_WIDTH_BYTES


class WavFormatError(Exception):
    """
    Raised when WAV bytes cannot be decoded: missing RIFF/WAVE header,
    missing data chunk, or an unsupported sample width / encoding.
    """


def encode_wav(samples: np.ndarray, sample_rate: int) -> bytes:
    """Encode mono float samples as a 16-bit PCM WAV file."""
    if sample_rate <= 0:
        raise ValueError("sample_rate must be > 0")

    buf = io.BytesIO()
    with wave.open(buf, "wb") as wf:
        wf.setnchannels(1)
        wf.setsampwidth(WAV_SAMPLE_WIDTH_BYTES)
        wf.setframerate(int(sample_rate))
        wf.writeframes(float32_to_pcm16le(samples))
    return buf.getvalue()


def decode_wav(data: bytes) -> tuple[np.ndarray, int]:
    """
    Decode WAV bytes.

    Returns:
        (float32 samples of channel 0, sample_rate)

    Raises:
        WavFormatError if the bytes are not a supported PCM WAV file.
    """
    try:
        with wave.open(io.BytesIO(data), "rb") as wf:
            channels = wf.getnchannels()
            sample_width = wf.getsampwidth()
            sample_rate = wf.getframerate()
            frames = wf.readframes(wf.getnframes())
    except (wave.Error, EOFError) as exc:
        raise WavFormatError(f"invalid WAV data: {exc}") from exc

    if sample_width == 2:
        interleaved = pcm16le_to_float32(frames)
    elif sample_width == 1:
        interleaved = pcm8_to_float32(frames)
    else:
        raise WavFormatError(f"unsupported sample width: {sample_width * 8} bits")

    usable = (interleaved.shape[0] // channels) * channels
    samples = interleaved[:usable].reshape(-1, channels)[:, 0]
    return np.ascontiguousarray(samples, dtype=np.float32), sample_rate
