from __future__ import annotations

import logging
import random
import socket
import time
from dataclasses import dataclass, field
from typing import Optional, Protocol, Tuple

Address = Tuple[str, int]

logger = logging.getLogger(__name__)


class Transport(Protocol):
    last_peer: Optional[Address]

    def sendto(self, data: bytes, addr: Address) -> None: ...

    def poll(self, timeout: Optional[float]) -> Optional[Tuple[bytes, Address]]: ...


def resolve(addr: Address) -> Address:
    """Turn ``(host, port)`` into the numeric IPv4 form ``recvfrom`` reports."""
    host, port = addr
    info = socket.getaddrinfo(host, port, socket.AF_INET, socket.SOCK_DGRAM)
    ip, resolved_port = info[0][4][:2]
    return ip, resolved_port


@dataclass(frozen=True, slots=True)
class Impairment:
    """Simulated datagram loss and delay, applied in both directions.

    A fixed ``seed`` makes the drop pattern repeatable between runs.
    """

    loss_rate: float = 0.0
    delay_ms: int = 0
    seed: Optional[int] = None
    _rng: random.Random = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not 0.0 <= self.loss_rate <= 1.0:
            raise ValueError(f"loss_rate must be within [0, 1], got {self.loss_rate}")
        if self.delay_ms < 0:
            raise ValueError(f"delay_ms must be >= 0, got {self.delay_ms}")
        object.__setattr__(self, "_rng", random.Random(self.seed))

    def should_drop(self) -> bool:
        return self.loss_rate > 0 and self._rng.random() < self.loss_rate

    def sleep_if_needed(self) -> None:
        if self.delay_ms > 0:
            time.sleep(self.delay_ms / 1000.0)


class UdpEndpoint:
    def __init__(self, sock: socket.socket, impairment: Impairment | None = None):
        self.sock = sock
        self.impairment = impairment or Impairment()
        self.last_peer: Optional[Address] = None

    @classmethod
    def listening(
        cls,
        host: str,
        port: int,
        impairment: Impairment | None = None,
    ) -> "UdpEndpoint":
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        sock.bind((host, port))
        return cls(sock, impairment)

    @classmethod
    def sending(cls, impairment: Impairment | None = None) -> "UdpEndpoint":
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        return cls(sock, impairment)

    @property
    def address(self) -> Address:
        return self.sock.getsockname()

    def sendto(self, data: bytes, addr: Address) -> None:
        if self.impairment.should_drop():
            logger.debug("dropped outbound %d bytes to %s", len(data), addr)
            return
        self.impairment.sleep_if_needed()
        self.sock.sendto(data, addr)

    def poll(
        self, timeout: Optional[float], bufsize: int = 65535
    ) -> Optional[Tuple[bytes, Address]]:
        """Wait up to ``timeout`` seconds for one datagram.

        ``timeout=0`` never blocks and ``None`` blocks until something
        arrives. Returns ``None`` when the wait ends empty-handed.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            if deadline is None:
                self.sock.settimeout(None)
            else:
                remaining = deadline - time.monotonic()
                if remaining <= 0 and timeout != 0:
                    return None
                self.sock.settimeout(max(0.0, remaining))
            try:
                data, addr = self.sock.recvfrom(bufsize)
            except (TimeoutError, BlockingIOError):
                return None
            if self.impairment.should_drop():
                logger.debug("dropped inbound %d bytes from %s", len(data), addr)
                if timeout == 0:
                    return None
                continue
            self.impairment.sleep_if_needed()
            self.last_peer = addr
            return data, addr

    def close(self) -> None:
        self.sock.close()
