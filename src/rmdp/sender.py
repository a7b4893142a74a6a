from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass, field
from typing import Callable

from .config import ProtocolConfig
from .net import Address, Transport
from .packet import Ack, Chunk, FrameError, chunk_count, decode_datagram, fragment

logger = logging.getLogger(__name__)


class MessageTooLongError(ValueError):
    def __init__(self, size: int, limit: int):
        super().__init__(f"message of {size} bytes exceeds the {limit} byte limit")
        self.size = size
        self.limit = limit


class TransferStatus(enum.Enum):
    DELIVERED = "delivered"
    PARTIAL = "partial"


@dataclass(frozen=True, slots=True)
class TransferResult:
    total_chunks: int
    acknowledged: frozenset[int]
    abandoned: tuple[int, ...]
    transmissions: int = 0
    retransmits: int = 0
    timeouts: int = 0
    duration_s: float = 0.0

    @property
    def status(self) -> TransferStatus:
        return TransferStatus.PARTIAL if self.abandoned else TransferStatus.DELIVERED

    @property
    def delivered(self) -> bool:
        return self.status is TransferStatus.DELIVERED


@dataclass(slots=True)
class _Transfer:
    """State for one outbound message; discarded when send() returns."""

    chunks: list[Chunk]
    acked: dict[int, bool] = field(default_factory=dict)
    transmissions: int = 0
    retransmits: int = 0
    timeouts: int = 0

    def __post_init__(self) -> None:
        self.acked = {c.seq: False for c in self.chunks}


@dataclass(slots=True)
class MessageSender:
    transport: Transport
    peer: Address
    config: ProtocolConfig = field(default_factory=ProtocolConfig)
    clock: Callable[[], float] = time.monotonic
    # chunk datagrams stored by the receive phase just before this one
    previous: frozenset[bytes] = frozenset()
    # chunks of the peer's next message, held for the next receive phase
    deferred: list[tuple[bytes, Address]] = field(default_factory=list)

    def send(self, message: bytes) -> TransferResult:
        cfg = self.config
        if chunk_count(len(message), cfg.chunk_size) > cfg.max_chunks:
            raise MessageTooLongError(len(message), cfg.max_message_size)

        start = self.clock()
        transfer = _Transfer(fragment(message, cfg.chunk_size))
        logger.info("sending %d bytes as %d chunks to %s", len(message), len(transfer.chunks), self.peer)

        for chunk in transfer.chunks:
            self._transmit(transfer, chunk)

        abandoned = []
        for chunk in transfer.chunks:
            if not self._drive(transfer, chunk):
                abandoned.append(chunk.seq)

        result = TransferResult(
            total_chunks=len(transfer.chunks),
            acknowledged=frozenset(s for s, ok in transfer.acked.items() if ok),
            abandoned=tuple(abandoned),
            transmissions=transfer.transmissions,
            retransmits=transfer.retransmits,
            timeouts=transfer.timeouts,
            duration_s=max(0.0, self.clock() - start),
        )
        if result.delivered:
            logger.info("all %d chunks acknowledged", result.total_chunks)
        else:
            logger.warning("partial delivery; chunks %s were not acknowledged", list(result.abandoned))
        return result

    def _transmit(self, transfer: _Transfer, chunk: Chunk) -> None:
        self.transport.sendto(chunk.to_bytes(self.config.chunk_size), self.peer)
        transfer.transmissions += 1
        logger.debug("sent chunk %d/%d", chunk.seq, chunk.total)

    def _drive(self, transfer: _Transfer, chunk: Chunk) -> bool:
        """Wait for one chunk's ack, retransmitting on timeout.

        Returns False when the retry ceiling is reached without an ack.
        """
        cfg = self.config
        retries = 0
        deadline = self.clock() + cfg.timeout_s

        while not transfer.acked[chunk.seq]:
            remaining = deadline - self.clock()
            if remaining <= 0:
                transfer.timeouts += 1
                if retries >= cfg.max_retries:
                    logger.warning(
                        "max retries reached for chunk %d; giving up on it", chunk.seq
                    )
                    return False
                retries += 1
                transfer.retransmits += 1
                logger.info(
                    "timeout on chunk %d, resending (attempt %d of %d)",
                    chunk.seq,
                    retries,
                    cfg.max_retries,
                )
                self._transmit(transfer, chunk)
                deadline = self.clock() + cfg.timeout_s
                continue
            self._poll(transfer, remaining)
        return True

    def _poll(self, transfer: _Transfer, wait: float) -> None:
        got = self.transport.poll(wait)
        if got is None:
            return
        raw, addr = got
        if addr != self.peer:
            logger.debug("ignoring %d bytes from foreign address %s", len(raw), addr)
            return
        try:
            frame = decode_datagram(raw, self.config.chunk_size)
        except FrameError as exc:
            logger.debug("dropping malformed datagram: %s", exc)
            return

        if isinstance(frame, Chunk):
            self._hold(raw, addr, frame)
            return

        if frame.seq not in transfer.acked:
            logger.debug("ignoring ack %d outside this transfer", frame.seq)
            return
        transfer.acked[frame.seq] = True
        logger.debug("ACK received for chunk %d", frame.seq)

    def _hold(self, raw: bytes, addr: Address, chunk: Chunk) -> None:
        if raw in self.previous:
            # our ack for it was lost; the peer is still retrying its last message
            self.transport.sendto(Ack(chunk.seq).to_bytes(), addr)
            logger.debug("re-acked chunk %d of the previous message", chunk.seq)
        elif (raw, addr) not in self.deferred:
            # the peer has already moved on to its next message; leave it
            # unacknowledged so the peer keeps retrying until we listen
            self.deferred.append((raw, addr))
            logger.debug("holding chunk %d of the peer's next message", chunk.seq)
