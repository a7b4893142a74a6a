from __future__ import annotations

import socket
import threading

import pytest

from rmdp import cli
from rmdp.config import ProtocolConfig
from rmdp.net import Impairment, UdpEndpoint
from rmdp.session import Role, Session


def _endpoint(listen: bool) -> UdpEndpoint:
    try:
        if listen:
            return UdpEndpoint.listening("127.0.0.1", 0)
        return UdpEndpoint.sending()
    except PermissionError as exc:
        pytest.skip(f"UDP socket not permitted: {exc}")


def test_poll_times_out_and_never_blocks():
    ep = _endpoint(listen=True)
    try:
        assert ep.poll(0) is None
        assert ep.poll(0.01) is None
    finally:
        ep.close()


def test_poll_records_last_peer():
    a = _endpoint(listen=True)
    b = _endpoint(listen=True)
    try:
        b.sendto(b"hello", a.address)
        got = a.poll(1.0)
        assert got is not None
        assert got[0] == b"hello"
        assert a.last_peer == b.address
    finally:
        a.close()
        b.close()


def test_total_inbound_loss_reads_nothing():
    a = _endpoint(listen=True)
    b = _endpoint(listen=True)
    a.impairment = Impairment(loss_rate=1.0)
    try:
        b.sendto(b"hello", a.address)
        assert a.poll(0.05) is None
        assert a.last_peer is None
    finally:
        a.close()
        b.close()


def test_exchange_over_loopback():
    cfg = ProtocolConfig(timeout_ms=200)
    listener_ep = _endpoint(listen=True)
    connector_ep = _endpoint(listen=False)
    listener = Session(listener_ep, cfg)
    connector = Session(connector_ep, cfg)
    heard = {}

    def listen_side():
        listener.accept()
        heard["request"] = listener.step(lambda: b"").received
        heard["reply"] = listener.step(lambda: b"pong " * 20).result

    t = threading.Thread(target=listen_side, daemon=True)
    t.start()
    try:
        connector.connect(listener_ep.address)
        sent = connector.step(lambda: b"ping " * 20).result
        reply = connector.step(lambda: b"").received
        t.join(timeout=10.0)
    finally:
        listener_ep.close()
        connector_ep.close()

    assert sent.delivered
    assert heard["request"].payload == b"ping " * 20
    assert heard["reply"].delivered
    assert reply.payload == b"pong " * 20
    assert listener.role is Role.RECEIVING
    assert connector.role is Role.SENDING


def test_cli_connect_exits_cleanly_on_eof(monkeypatch):
    target = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    target.bind(("127.0.0.1", 0))
    port = target.getsockname()[1]

    def no_input(prompt=""):
        raise EOFError

    monkeypatch.setattr("builtins.input", no_input)
    try:
        assert cli.main(["--log-level", "WARNING", "connect", "--host", "127.0.0.1", "--port", str(port)]) == 0
        target.settimeout(1.0)
        data, _ = target.recvfrom(64)
        assert len(data) == 4
    finally:
        target.close()


def test_connect_by_hostname():
    cfg = ProtocolConfig(timeout_ms=200)
    listener_ep = _endpoint(listen=True)
    connector_ep = _endpoint(listen=False)
    listener = Session(listener_ep, cfg)
    connector = Session(connector_ep, cfg)
    port = listener_ep.address[1]
    heard = {}

    def listen_side():
        listener.accept()
        heard["request"] = listener.step(lambda: b"").received

    t = threading.Thread(target=listen_side, daemon=True)
    t.start()
    try:
        connector.connect(("localhost", port))
        sent = connector.step(lambda: b"hello").result
        t.join(timeout=10.0)
    finally:
        listener_ep.close()
        connector_ep.close()

    assert connector.peer == ("127.0.0.1", port)
    assert sent.delivered
    assert sent.retransmits == 0
    assert heard["request"].payload == b"hello"


def test_seeded_impairment_repeats_its_drop_pattern():
    first = Impairment(loss_rate=0.5, seed=7)
    second = Impairment(loss_rate=0.5, seed=7)
    assert [first.should_drop() for _ in range(50)] == [second.should_drop() for _ in range(50)]
    assert not Impairment().should_drop()
    with pytest.raises(ValueError):
        Impairment(loss_rate=1.5)
