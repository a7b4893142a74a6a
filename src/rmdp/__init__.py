"""Reliable Message Delivery Protocol (RMDP)

Half-duplex text messaging over UDP:
- messages are cut into fixed-size chunks, each positively acknowledged
- lost chunks are retransmitted on a timeout, up to a per-chunk retry ceiling
- two endpoints take turns sending, one whole message per turn

Packet framing, the send/receive paths and the role state machine live in
separate modules so each can be driven by a scripted transport in tests.
"""

__all__ = []
