from __future__ import annotations

import socket
import threading

import pytest

from txf.errors import ConnectionFailure
from txf.net import Impairment, StreamEndpoint, dial, listen_and_accept, recv_exact, send_exact


class TrickleConn:
    """Moves at most `step` bytes per call, optionally failing after `limit`."""

    def __init__(self, data: bytes = b"", step: int = 3, limit: int | None = None):
        self.data = data
        self.step = step
        self.limit = limit
        self.sent = bytearray()
        self.calls = 0

    def send(self, data) -> int:
        self.calls += 1
        if self.limit is not None and len(self.sent) >= self.limit:
            raise BrokenPipeError("gone")
        chunk = bytes(data[: self.step])
        self.sent += chunk
        return len(chunk)

    def recv_into(self, buf, nbytes: int = 0) -> int:
        self.calls += 1
        n = min(nbytes or len(buf), self.step, len(self.data))
        buf[:n] = self.data[:n]
        self.data = self.data[n:]
        return n


def test_send_exact_loops_over_partial_sends():
    conn = TrickleConn(step=3)
    assert send_exact(conn, b"0123456789", 10) == 10
    assert bytes(conn.sent) == b"0123456789"
    assert conn.calls == 4


def test_send_exact_honours_n():
    conn = TrickleConn(step=100)
    assert send_exact(conn, b"0123456789", 4) == 4
    assert bytes(conn.sent) == b"0123"


def test_send_exact_reports_short_count_on_error():
    conn = TrickleConn(step=5, limit=5)
    assert send_exact(conn, b"x" * 20, 20) == 5


def test_recv_exact_loops_over_partial_reads():
    conn = TrickleConn(data=b"abcdefghij", step=4)
    buf = bytearray(10)
    assert recv_exact(conn, buf, 10) == 10
    assert bytes(buf) == b"abcdefghij"


def test_recv_exact_stops_when_peer_closes():
    conn = TrickleConn(data=b"abcdefghij", step=4)
    buf = bytearray(20)
    assert recv_exact(conn, buf, 20) == 10
    assert bytes(buf[:10]) == b"abcdefghij"


def test_recv_exact_stops_on_timeout():
    a, b = socket.socketpair()
    with a, b:
        b.settimeout(0.05)
        a.sendall(b"abc")
        buf = bytearray(8)
        assert recv_exact(b, buf, 8) == 3


def test_endpoint_max_chunk_still_moves_everything():
    a, b = socket.socketpair()
    tx = StreamEndpoint(a, Impairment(max_chunk=7))
    rx = StreamEndpoint(b, Impairment(max_chunk=5))
    with tx, rx:
        payload = bytes(range(100))
        assert tx.send_exact(payload) == 100
        buf = bytearray(100)
        assert rx.recv_exact(buf) == 100
        assert bytes(buf) == payload


def test_endpoint_cut_after_simulates_drop():
    a, b = socket.socketpair()
    tx = StreamEndpoint(a, Impairment(cut_after=10))
    with tx, b:
        assert tx.send_exact(b"x" * 32) == 10
        assert tx.send_exact(b"y") == 0


def test_endpoint_close_is_idempotent():
    a, b = socket.socketpair()
    ep = StreamEndpoint(a)
    ep.close()
    ep.close()
    assert ep.closed
    assert a.fileno() == -1
    b.close()


def _closed_port() -> int:
    s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    s.bind(("127.0.0.1", 0))
    port = s.getsockname()[1]
    s.close()
    return port


def test_dial_refused_is_connection_failure():
    with pytest.raises(ConnectionFailure):
        dial("127.0.0.1", _closed_port(), timeout_ms=1000)


def test_listen_accepts_one_connection():
    ready = threading.Event()
    bound = {}

    def on_listening(addr):
        bound["addr"] = addr
        ready.set()

    holder = {}
    t = threading.Thread(
        target=lambda: holder.setdefault("ep", listen_and_accept("127.0.0.1", 0, 5000, on_listening=on_listening))
    )
    t.start()
    assert ready.wait(5)
    with socket.create_connection(bound["addr"], timeout=5) as c:
        t.join(5)
        with holder["ep"] as ep:
            assert ep.peer == c.getsockname()[:2]
            c.sendall(b"ping")
            buf = bytearray(4)
            assert ep.recv_exact(buf) == 4
            assert bytes(buf) == b"ping"
    # the listener is gone after the single accept
    with pytest.raises(OSError):
        socket.create_connection(bound["addr"], timeout=1).close()


def test_listen_bind_failure():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as busy:
        busy.bind(("127.0.0.1", 0))
        busy.listen(1)
        port = busy.getsockname()[1]
        with pytest.raises(ConnectionFailure):
            listen_and_accept("127.0.0.1", port)


def test_dial_records_peer():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as server:
        server.bind(("127.0.0.1", 0))
        server.listen(1)
        port = server.getsockname()[1]
        with dial("127.0.0.1", port, timeout_ms=2000) as ep:
            assert ep.peer == ("127.0.0.1", port)


def test_socketpair_endpoint_has_no_peer():
    a, b = socket.socketpair()
    with StreamEndpoint(a) as ep, b:
        assert ep.peer is None


@pytest.mark.parametrize("port", [70000, -1])
def test_out_of_range_port_is_connection_failure(port):
    with pytest.raises(ConnectionFailure):
        dial("127.0.0.1", port)
    with pytest.raises(ConnectionFailure):
        listen_and_accept("127.0.0.1", port)
