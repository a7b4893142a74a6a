from __future__ import annotations

CHUNK_FORMAT = "!ii{size}s"  # seq, total, padded payload
ACK_FORMAT = "!i"  # seq

DEFAULT_CHUNK_SIZE = 32
DEFAULT_TIMEOUT_MS = 100
DEFAULT_MAX_RETRIES = 5
DEFAULT_MAX_CHUNKS = 100
DEFAULT_PORT = 8080

# receive-side wake-up interval; only bounds how long a blocked poll sleeps
RECV_POLL_S = 0.5

HANDSHAKE = b"\x00\x00\x00\x00"
