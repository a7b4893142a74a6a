from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional, Tuple

from .config import ProtocolConfig
from .constants import RECV_POLL_S
from .net import Address, Transport
from .packet import Ack, Chunk, FrameError, decode_datagram, reassemble

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ReceivedMessage:
    payload: bytes
    total_chunks: int
    duplicates: int = 0
    ignored: int = 0
    duration_s: float = 0.0
    # wire form of every stored chunk, to recognise retransmissions later
    datagrams: frozenset[bytes] = frozenset()

    @property
    def text(self) -> str:
        return self.payload.decode("utf-8", errors="replace")


@dataclass(slots=True)
class MessageReceiver:
    transport: Transport
    peer: Optional[Address] = None
    config: ProtocolConfig = field(default_factory=ProtocolConfig)
    clock: Callable[[], float] = time.monotonic

    def receive(self, backlog: Iterable[Tuple[bytes, Address]] = ()) -> ReceivedMessage:
        """Block until one whole message has been reassembled.

        Every chunk is acknowledged, including repeats of chunks already
        stored; only the first copy of each sequence number is kept.
        Datagrams in ``backlog`` arrived earlier and are handled before
        anything new is read from the transport.
        """
        start = self.clock()
        total = -1
        stored: dict[int, bytes] = {}
        raw_stored: set[bytes] = set()
        pending = deque(backlog)
        duplicates = 0
        ignored = 0

        while total == -1 or len(stored) < total:
            got = pending.popleft() if pending else self.transport.poll(RECV_POLL_S)
            if got is None:
                continue
            raw, addr = got

            if self.peer is not None and addr != self.peer:
                logger.debug("ignoring %d bytes from foreign address %s", len(raw), addr)
                ignored += 1
                continue
            try:
                frame = decode_datagram(raw, self.config.chunk_size)
            except FrameError as exc:
                logger.debug("dropping malformed datagram: %s", exc)
                ignored += 1
                continue
            if not isinstance(frame, Chunk):
                # late ack from this endpoint's previous send phase
                logger.debug("ignoring stray ack %d", frame.seq)
                ignored += 1
                continue

            if total == -1:
                total = frame.total
                if self.peer is None:
                    self.peer = addr
                logger.info("receiving %d chunks from %s", total, addr)
            elif frame.total != total:
                logger.warning(
                    "chunk %d claims %d chunks, expected %d; dropping",
                    frame.seq,
                    frame.total,
                    total,
                )
                ignored += 1
                continue

            if frame.seq not in stored:
                stored[frame.seq] = frame.payload
                raw_stored.add(raw)
                logger.debug("received and stored chunk %d", frame.seq)
            else:
                duplicates += 1
                logger.debug("duplicate chunk %d, acknowledging again", frame.seq)

            self.transport.sendto(Ack(frame.seq).to_bytes(), addr)
            logger.debug("sent ACK for chunk %d", frame.seq)

        payload = reassemble(stored, total)
        logger.info("all %d chunks received (%d bytes)", total, len(payload))
        return ReceivedMessage(
            payload=payload,
            total_chunks=total,
            duplicates=duplicates,
            ignored=ignored,
            duration_s=max(0.0, self.clock() - start),
            datagrams=frozenset(raw_stored),
        )
