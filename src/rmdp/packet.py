from __future__ import annotations

import struct
from dataclasses import dataclass
from functools import lru_cache
from typing import Mapping, Union

from .constants import ACK_FORMAT, CHUNK_FORMAT, DEFAULT_CHUNK_SIZE


class FrameError(ValueError):
    pass


@lru_cache(maxsize=None)
def chunk_struct(chunk_size: int) -> struct.Struct:
    return struct.Struct(CHUNK_FORMAT.format(size=chunk_size))


ACK_STRUCT = struct.Struct(ACK_FORMAT)


@dataclass(frozen=True, slots=True)
class Chunk:
    seq: int
    total: int
    payload: bytes = b""

    def to_bytes(self, chunk_size: int = DEFAULT_CHUNK_SIZE) -> bytes:
        if len(self.payload) > chunk_size:
            raise FrameError(
                f"payload of {len(self.payload)} bytes exceeds chunk size {chunk_size}"
            )
        # struct pads the payload with NUL bytes up to chunk_size
        return chunk_struct(chunk_size).pack(self.seq, self.total, self.payload)

    @staticmethod
    def from_bytes(raw: bytes, chunk_size: int = DEFAULT_CHUNK_SIZE) -> "Chunk":
        s = chunk_struct(chunk_size)
        if len(raw) != s.size:
            raise FrameError(f"chunk datagram must be {s.size} bytes, got {len(raw)}")
        seq, total, payload = s.unpack(raw)
        if total <= 0:
            raise FrameError(f"invalid total chunk count {total}")
        if not 0 <= seq < total:
            raise FrameError(f"sequence number {seq} out of range for {total} chunks")
        return Chunk(seq=seq, total=total, payload=payload)


@dataclass(frozen=True, slots=True)
class Ack:
    seq: int

    def to_bytes(self) -> bytes:
        return ACK_STRUCT.pack(self.seq)

    @staticmethod
    def from_bytes(raw: bytes) -> "Ack":
        if len(raw) != ACK_STRUCT.size:
            raise FrameError(f"ack datagram must be {ACK_STRUCT.size} bytes, got {len(raw)}")
        (seq,) = ACK_STRUCT.unpack(raw)
        if seq < 0:
            raise FrameError(f"negative sequence number {seq} in ack")
        return Ack(seq=seq)


Datagram = Union[Chunk, Ack]


def decode_datagram(raw: bytes, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Datagram:
    """Decode a chunk or an ack.

    The wire format carries no type tag, so the two kinds are told apart by
    their size alone.
    """
    if len(raw) == ACK_STRUCT.size:
        return Ack.from_bytes(raw)
    if len(raw) == chunk_struct(chunk_size).size:
        return Chunk.from_bytes(raw, chunk_size)
    raise FrameError(f"unrecognised datagram of {len(raw)} bytes")


def chunk_count(length: int, chunk_size: int = DEFAULT_CHUNK_SIZE) -> int:
    return (length + chunk_size - 1) // chunk_size


def fragment(message: bytes, chunk_size: int = DEFAULT_CHUNK_SIZE) -> list[Chunk]:
    total = chunk_count(len(message), chunk_size)
    return [
        Chunk(seq=i, total=total, payload=message[i * chunk_size : (i + 1) * chunk_size])
        for i in range(total)
    ]


def reassemble(payloads: Mapping[int, bytes], total: int) -> bytes:
    """Join stored payloads in sequence order, skipping gaps.

    Only the final chunk can carry padding, so trailing NULs are stripped
    from it alone.
    """
    parts = []
    for seq in range(total):
        if seq not in payloads:
            continue
        data = payloads[seq]
        if seq == total - 1:
            data = data.rstrip(b"\x00")
        parts.append(data)
    return b"".join(parts)
