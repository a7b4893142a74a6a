from __future__ import annotations

from dataclasses import dataclass

from .constants import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_MAX_CHUNKS,
    DEFAULT_MAX_RETRIES,
    DEFAULT_TIMEOUT_MS,
)


@dataclass(frozen=True, slots=True)
class ProtocolConfig:
    chunk_size: int = DEFAULT_CHUNK_SIZE
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    max_retries: int = DEFAULT_MAX_RETRIES
    max_chunks: int = DEFAULT_MAX_CHUNKS

    def __post_init__(self) -> None:
        if self.chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {self.chunk_size}")
        if self.timeout_ms <= 0:
            raise ValueError(f"timeout_ms must be positive, got {self.timeout_ms}")
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.max_chunks <= 0:
            raise ValueError(f"max_chunks must be positive, got {self.max_chunks}")

    @property
    def timeout_s(self) -> float:
        return self.timeout_ms / 1000.0

    @property
    def max_message_size(self) -> int:
        return self.max_chunks * self.chunk_size
