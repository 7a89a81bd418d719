"""Defaults for reconciliation passes."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from .errors import ConfigurationError

DEFAULT_CHUNK_SIZE = 20
MAX_CHUNK_SIZE = 100
DEFAULT_CHUNK_DELAY_SECONDS = 0.5
DEFAULT_SAMPLE_SIZE = 5
DEFAULT_RECENT_WINDOW = timedelta(days=180)


@dataclass(frozen=True, slots=True)
class PassConfig:
    chunk_size: int = DEFAULT_CHUNK_SIZE
    chunk_delay_seconds: float = DEFAULT_CHUNK_DELAY_SECONDS
    sample_size: int = DEFAULT_SAMPLE_SIZE
    recent_window: timedelta = DEFAULT_RECENT_WINDOW

    def __post_init__(self) -> None:
        if not 1 <= self.chunk_size <= MAX_CHUNK_SIZE:
            raise ConfigurationError(
                f"Chunk size must be between 1 and {MAX_CHUNK_SIZE}, got {self.chunk_size}"
            )
        if self.chunk_delay_seconds < 0:
            raise ConfigurationError("Chunk delay must be non-negative")
        if self.sample_size < 0:
            raise ConfigurationError("Sample size must be non-negative")


def get_pass_config(
    *,
    chunk_size: int | None = None,
    chunk_delay_seconds: float | None = None,
) -> PassConfig:
    return PassConfig(
        chunk_size=DEFAULT_CHUNK_SIZE if chunk_size is None else chunk_size,
        chunk_delay_seconds=(
            DEFAULT_CHUNK_DELAY_SECONDS if chunk_delay_seconds is None else chunk_delay_seconds
        ),
    )
