from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from .config import ProtocolConfig
from .constants import HANDSHAKE
from .net import Address, Transport, resolve
from .receiver import MessageReceiver, ReceivedMessage
from .sender import MessageSender, TransferResult

logger = logging.getLogger(__name__)


class SessionError(RuntimeError):
    pass


class Role(enum.Enum):
    RECEIVING = "receiving"
    SENDING = "sending"

    @property
    def other(self) -> "Role":
        return Role.SENDING if self is Role.RECEIVING else Role.RECEIVING


@dataclass(frozen=True, slots=True)
class PhaseOutcome:
    role: Role
    received: Optional[ReceivedMessage] = None
    result: Optional[TransferResult] = None


@dataclass(slots=True)
class Session:
    """Half-duplex exchange with a single peer.

    The endpoints take turns: a completed receive phase hands the turn to
    this side, a completed send phase hands it back to the peer. Traffic
    from any other address is ignored once the peer is known.
    """

    transport: Transport
    config: ProtocolConfig = field(default_factory=ProtocolConfig)
    clock: Callable[[], float] = time.monotonic
    peer: Optional[Address] = None
    role: Role = Role.RECEIVING
    phases_completed: int = 0
    _previous: frozenset[bytes] = field(default=frozenset(), init=False, repr=False)
    _backlog: list[tuple[bytes, Address]] = field(default_factory=list, init=False, repr=False)

    def accept(self) -> Address:
        got = None
        while got is None:
            got = self.transport.poll(None)
        _, self.peer = got
        self.role = Role.RECEIVING
        logger.info("handshake from %s", self.peer)
        return self.peer

    def connect(self, addr: Address) -> None:
        # acks come back from the numeric address, so compare against that
        addr = resolve(addr)
        self.transport.sendto(HANDSHAKE, addr)
        self.peer = addr
        self.role = Role.SENDING
        logger.info("handshake sent to %s", addr)

    def step(self, next_message: Callable[[], bytes]) -> PhaseOutcome:
        if self.peer is None:
            raise SessionError("no peer; call accept() or connect() first")

        if self.role is Role.RECEIVING:
            receiver = MessageReceiver(self.transport, self.peer, self.config, self.clock)
            received = receiver.receive(self._backlog)
            self._backlog = []
            self._previous = received.datagrams
            outcome = PhaseOutcome(Role.RECEIVING, received=received)
        else:
            message = next_message()
            while not message:
                logger.debug("empty message; nothing to send")
                message = next_message()
            sender = MessageSender(
                self.transport, self.peer, self.config, self.clock, previous=self._previous
            )
            outcome = PhaseOutcome(Role.SENDING, result=sender.send(message))
            self._backlog = sender.deferred

        self.role = self.role.other
        self.phases_completed += 1
        return outcome

    def run(
        self,
        next_message: Callable[[], bytes],
        on_outcome: Callable[[PhaseOutcome], None],
        phases: Optional[int] = None,
    ) -> None:
        done = 0
        while phases is None or done < phases:
            on_outcome(self.step(next_message))
            done += 1
