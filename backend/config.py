"""
Application configuration.

Responsibilities:
- Load deployment-specific configuration
- Read environment variables
- Provide a typed, immutable config object
- Build the explicit per-channel AveragingConfig

Non-responsibilities:
- No averaging logic
- No behavioral constants (see constants.py)
- No runtime mutation
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from constants import (
    CAPTURE_BLOCK_SIZE,
    DEFAULT_ATTACK_OFFSET_MS,
    DEFAULT_PEAK_ALIGN,
    DEFAULT_PEAK_INTERVAL_MS,
    DEFAULT_PEAK_POSITION_MS,
    DEFAULT_RELEASE_OFFSET_MS,
    DEFAULT_SAMPLE_RATE_HZ,
    DEFAULT_TARGET_LENGTH_MS,
)
from engine.types import AveragingConfig


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc
    if value <= 0:
        raise ValueError(f"{name} must be > 0, got {value}")
    return value


def _env_optional_float(name: str) -> float | None:
    raw = os.environ.get(name)
    if raw is None or raw.strip().lower() in ("", "none", "whole"):
        return None
    return _env_float(name, 0.0)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class AppConfig:
    """
    Immutable application configuration.

    Constructed once at process startup.
    Passed downward to the HTTP layer and session bootstrap code.
    """

    # ------------------------------------------------------------------
    # Environment
    # ------------------------------------------------------------------

    env: str
    log_level: str

    # ------------------------------------------------------------------
    # Capture
    # ------------------------------------------------------------------

    sample_rate_hz: int
    block_size: int

    # ------------------------------------------------------------------
    # Averaging
    # ------------------------------------------------------------------

    attack_offset_ms: float
    release_offset_ms: float
    peak_interval_ms: float
    peak_position_ms: float
    target_length_ms: float
    peak_align: bool
    # None = search the whole window
    peak_search_ms: float | None

    def __post_init__(self) -> None:
        # Reject out-of-range averaging values at startup, not per request
        self.attack_config()
        self.release_config()

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @staticmethod
    def load_from_env() -> AppConfig:
        """
        Load configuration from environment variables.

        Raises:
            ValueError if a numeric variable is malformed.
        """
        return AppConfig(
            env=os.environ.get("ENV", "dev"),
            log_level=os.environ.get("LOG_LEVEL", "INFO"),

            sample_rate_hz=_env_int("KEYTAP_SAMPLE_RATE_HZ", DEFAULT_SAMPLE_RATE_HZ),
            block_size=_env_int("KEYTAP_BLOCK_SIZE", CAPTURE_BLOCK_SIZE),

            attack_offset_ms=_env_float("KEYTAP_ATTACK_OFFSET_MS", DEFAULT_ATTACK_OFFSET_MS),
            release_offset_ms=_env_float("KEYTAP_RELEASE_OFFSET_MS", DEFAULT_RELEASE_OFFSET_MS),
            peak_interval_ms=_env_float("KEYTAP_PEAK_INTERVAL_MS", DEFAULT_PEAK_INTERVAL_MS),
            peak_position_ms=_env_float("KEYTAP_PEAK_POSITION_MS", DEFAULT_PEAK_POSITION_MS),
            target_length_ms=_env_float("KEYTAP_TARGET_LENGTH_MS", DEFAULT_TARGET_LENGTH_MS),
            peak_align=_env_bool("KEYTAP_PEAK_ALIGN", DEFAULT_PEAK_ALIGN),
            peak_search_ms=_env_optional_float("KEYTAP_PEAK_SEARCH_MS"),
        )

    # ------------------------------------------------------------------
    # Engine parameter bundles
    # ------------------------------------------------------------------

    def attack_config(self, *, sample_rate: int | None = None) -> AveragingConfig:
        """AveragingConfig for key-down (attack) averaging."""
        return self._averaging_config(self.attack_offset_ms, sample_rate)

    def release_config(self, *, sample_rate: int | None = None) -> AveragingConfig:
        """AveragingConfig for key-up (release) averaging."""
        return self._averaging_config(self.release_offset_ms, sample_rate)

    def _averaging_config(self, offset_ms: float, sample_rate: int | None) -> AveragingConfig:
        return AveragingConfig(
            offset_ms=offset_ms,
            peak_align=self.peak_align,
            peak_position_ms=self.peak_position_ms,
            sample_rate=sample_rate or self.sample_rate_hz,
            target_length_ms=self.target_length_ms,
            peak_search_ms=self.peak_search_ms,
        )
