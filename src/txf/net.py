from __future__ import annotations

import logging
import socket
import time
from dataclasses import dataclass
from typing import Callable, Tuple

from .constants import LISTEN_BACKLOG
from .errors import ConnectionFailure

log = logging.getLogger(__name__)

Address = Tuple[str, int]


def send_exact(conn, buf, n: int) -> int:
    """Send the first *n* bytes of *buf*, looping over partial sends.

    Returns the number of bytes actually sent; less than *n* means the
    transport failed and the caller must give up on the transfer.
    """
    view = memoryview(buf)
    pos = 0
    while pos < n:
        try:
            sent = conn.send(view[pos:n])
        except OSError as exc:
            log.debug("send failed after %d/%d bytes: %s", pos, n, exc)
            break
        if sent <= 0:
            break
        pos += sent
    return pos


def recv_exact(conn, buf, n: int) -> int:
    """Receive exactly *n* bytes into *buf*, looping over partial reads.

    Stops early when the peer closes the stream or the transport raises;
    the return value is the number of bytes actually stored.
    """
    view = memoryview(buf)
    pos = 0
    while pos < n:
        try:
            got = conn.recv_into(view[pos:n], n - pos)
        except OSError as exc:
            log.debug("recv failed after %d/%d bytes: %s", pos, n, exc)
            break
        if got == 0:
            log.debug("peer closed after %d/%d bytes", pos, n)
            break
        pos += got
    return pos


@dataclass(frozen=True, slots=True)
class Impairment:
    delay_ms: int = 0
    max_chunk: int = 0
    cut_after: int | None = None

    def clamp(self, n: int) -> int:
        if self.max_chunk > 0:
            return min(n, self.max_chunk)
        return n

    def sleep_if_needed(self) -> None:
        if self.delay_ms > 0:
            time.sleep(self.delay_ms / 1000.0)


class StreamEndpoint:
    """One connected stream socket, the only connection a session uses."""

    def __init__(
        self,
        sock: socket.socket,
        impairment: Impairment | None = None,
        peer: Address | None = None,
    ):
        self.sock = sock
        self.peer = peer
        self.impairment = impairment or Impairment()
        self.moved = 0
        self.closed = False

    def _budget(self, n: int) -> int:
        n = self.impairment.clamp(n)
        cut = self.impairment.cut_after
        if cut is not None:
            n = min(n, cut - self.moved)
        return n

    def send(self, data) -> int:
        n = self._budget(len(data))
        if n <= 0:
            raise BrokenPipeError("connection cut")
        self.impairment.sleep_if_needed()
        sent = self.sock.send(data[:n])
        self.moved += sent
        return sent

    def recv_into(self, buf, nbytes: int = 0) -> int:
        n = self._budget(nbytes or len(buf))
        if n <= 0:
            return 0
        self.impairment.sleep_if_needed()
        got = self.sock.recv_into(buf, n)
        self.moved += got
        return got

    def send_exact(self, buf, n: int | None = None) -> int:
        return send_exact(self, buf, len(buf) if n is None else n)

    def recv_exact(self, buf, n: int | None = None) -> int:
        return recv_exact(self, buf, len(buf) if n is None else n)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.sock.close()

    def __enter__(self) -> "StreamEndpoint":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


def _apply_timeout(sock: socket.socket, timeout_ms: int) -> None:
    if timeout_ms > 0:
        sock.settimeout(timeout_ms / 1000.0)


def dial(
    host: str,
    port: int,
    timeout_ms: int = 0,
    impairment: Impairment | None = None,
) -> StreamEndpoint:
    try:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    except OSError as exc:
        raise ConnectionFailure(f"socket: {exc}") from exc
    try:
        _apply_timeout(sock, timeout_ms)
        sock.connect((host, port))
    except (OSError, OverflowError) as exc:
        sock.close()
        raise ConnectionFailure(f"connect to {host} port {port}: {exc}") from exc
    log.info("connected to %s port %d", host, port)
    return StreamEndpoint(sock, impairment, peer=(host, port))


def listen_and_accept(
    host: str,
    port: int,
    timeout_ms: int = 0,
    impairment: Impairment | None = None,
    on_listening: Callable[[Address], None] | None = None,
) -> StreamEndpoint:
    """Accept exactly one connection on *host*:*port*.

    The listening socket is closed again before returning; a second peer is
    never served.
    """
    try:
        server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    except OSError as exc:
        raise ConnectionFailure(f"socket: {exc}") from exc

    with server:
        try:
            server.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            server.bind((host, port))
        except (OSError, OverflowError) as exc:
            raise ConnectionFailure(f"bind {host} port {port}: {exc}") from exc

        bound = server.getsockname()[:2]
        log.info("address %s port %d", bound[0], bound[1])

        try:
            server.listen(LISTEN_BACKLOG)
        except OSError as exc:
            raise ConnectionFailure(f"listen: {exc}") from exc

        if on_listening is not None:
            on_listening(bound)

        _apply_timeout(server, timeout_ms)
        try:
            conn, peer = server.accept()
        except OSError as exc:
            raise ConnectionFailure(f"accept: {exc}") from exc

    # accepted sockets start out blocking regardless of the listener timeout
    _apply_timeout(conn, timeout_ms)
    log.info("connected from %s port %d", peer[0], peer[1])
    return StreamEndpoint(conn, impairment, peer=peer[:2])
