from __future__ import annotations

import argparse
import logging

from .config import ProtocolConfig
from .constants import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_MAX_CHUNKS,
    DEFAULT_MAX_RETRIES,
    DEFAULT_PORT,
    DEFAULT_TIMEOUT_MS,
)
from .net import Impairment, UdpEndpoint
from .sender import MessageTooLongError
from .session import PhaseOutcome, Session

logger = logging.getLogger(__name__)


def _config(args: argparse.Namespace) -> ProtocolConfig:
    return ProtocolConfig(
        chunk_size=args.chunk_size,
        timeout_ms=args.timeout_ms,
        max_retries=args.max_retries,
        max_chunks=args.max_chunks,
    )


def _read_message() -> bytes:
    return input("Enter message: ").encode("utf-8")


def _report(outcome: PhaseOutcome) -> None:
    if outcome.received is not None:
        print(outcome.received.text)
    elif outcome.result is not None:
        r = outcome.result
        logger.info(
            "%s: %d chunks, %d retransmits, abandoned=%s",
            r.status.value,
            r.total_chunks,
            r.retransmits,
            list(r.abandoned),
        )


def _converse(session: Session) -> int:
    while True:
        try:
            _report(session.step(_read_message))
        except MessageTooLongError as exc:
            logger.error("%s; try a shorter message", exc)
        except (EOFError, KeyboardInterrupt):
            return 0


def cmd_listen(args: argparse.Namespace) -> int:
    impair = Impairment(args.loss_rate, args.delay_ms, args.seed)
    udp = UdpEndpoint.listening(args.host, args.port, impairment=impair)
    logger.info("listening on %s:%d", args.host, args.port)
    session = Session(udp, _config(args))
    try:
        session.accept()
        return _converse(session)
    except KeyboardInterrupt:
        return 0
    finally:
        udp.close()


def cmd_connect(args: argparse.Namespace) -> int:
    impair = Impairment(args.loss_rate, args.delay_ms, args.seed)
    udp = UdpEndpoint.sending(impairment=impair)
    session = Session(udp, _config(args))
    try:
        session.connect((args.host, args.port))
        return _converse(session)
    finally:
        udp.close()


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(prog="rmdp", description="Half-duplex reliable messaging over UDP.")
    p.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
    sub = p.add_subparsers(dest="cmd", required=True)

    def add_common(x: argparse.ArgumentParser) -> None:
        x.add_argument("--port", type=int, default=DEFAULT_PORT)
        x.add_argument("--timeout-ms", type=int, default=DEFAULT_TIMEOUT_MS)
        x.add_argument("--max-retries", type=int, default=DEFAULT_MAX_RETRIES)
        x.add_argument("--chunk-size", type=int, default=DEFAULT_CHUNK_SIZE)
        x.add_argument("--max-chunks", type=int, default=DEFAULT_MAX_CHUNKS)
        x.add_argument("--loss-rate", type=float, default=0.0, help="simulate datagram loss")
        x.add_argument("--delay-ms", type=int, default=0, help="simulate per-datagram delay")
        x.add_argument("--seed", type=int, default=None, help="seed for the simulated loss pattern")

    listen = sub.add_parser("listen", help="wait for a peer, then receive first")
    add_common(listen)
    listen.add_argument("--host", default="0.0.0.0")
    listen.set_defaults(func=cmd_listen)

    connect = sub.add_parser("connect", help="contact a listening peer, then send first")
    add_common(connect)
    connect.add_argument("--host", required=True)
    connect.set_defaults(func=cmd_connect)

    args = p.parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(asctime)s [%(levelname)s] %(message)s")
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
