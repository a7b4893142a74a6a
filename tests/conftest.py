from __future__ import annotations

import queue
from collections import Counter, deque

import pytest

from rmdp.packet import Ack, Chunk, FrameError

PEER = ("127.0.0.1", 9999)


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedTransport:
    """In-memory transport that plays the peer.

    Every chunk sent to it is answered with an ack unless ``drop_acks``
    still holds a pending drop for that sequence number. An empty poll
    advances the fake clock by the full wait instead of sleeping.
    """

    def __init__(self, clock: FakeClock, peer=PEER, chunk_size: int = 32):
        self.clock = clock
        self.peer = peer
        self.chunk_size = chunk_size
        self.inbound: deque = deque()
        self.sent: list = []
        self.drop_acks: Counter = Counter()
        self.auto_ack = True
        self.last_peer = None

    def sendto(self, data: bytes, addr) -> None:
        self.sent.append((data, addr))
        if not self.auto_ack:
            return
        try:
            chunk = Chunk.from_bytes(data, self.chunk_size)
        except FrameError:
            return
        if self.drop_acks[chunk.seq] > 0:
            self.drop_acks[chunk.seq] -= 1
            return
        self.inbound.append((Ack(chunk.seq).to_bytes(), self.peer))

    def poll(self, timeout):
        if self.inbound:
            data, addr = self.inbound.popleft()
            self.last_peer = addr
            return data, addr
        if timeout is None:
            raise AssertionError("poll would block forever")
        # nudge past the deadline so float rounding cannot stall the sender
        self.clock.advance(timeout + 1e-9)
        return None

    def sent_chunks(self) -> list[Chunk]:
        out = []
        for data, _ in self.sent:
            try:
                out.append(Chunk.from_bytes(data, self.chunk_size))
            except FrameError:
                pass
        return out

    def sent_acks(self) -> list[int]:
        out = []
        for data, _ in self.sent:
            try:
                out.append(Ack.from_bytes(data).seq)
            except FrameError:
                pass
        return out


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def transport(clock: FakeClock) -> ScriptedTransport:
    return ScriptedTransport(clock)


class LinkedTransport:
    """One end of an in-memory datagram link, safe to drive from threads."""

    def __init__(self, address, drop=None):
        self.address = address
        self.queue: queue.Queue = queue.Queue()
        self.other = None
        self.drop = drop or (lambda data, addr: False)
        self.last_peer = None

    def sendto(self, data: bytes, addr) -> None:
        assert addr == self.other.address
        if self.drop(data, addr):
            return
        self.other.queue.put((data, self.address))

    def poll(self, timeout):
        try:
            data, addr = self.queue.get(timeout=timeout)
        except queue.Empty:
            return None
        self.last_peer = addr
        return data, addr


def linked_pair(drop_a=None, drop_b=None):
    a = LinkedTransport(("10.0.0.1", 4001), drop_a)
    b = LinkedTransport(("10.0.0.2", 4002), drop_b)
    a.other, b.other = b, a
    return a, b
