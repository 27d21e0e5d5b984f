from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import BinaryIO

from .constants import BLOCK_SIZE, HEADER_SIZE, MAGIC_SEND
from .errors import LocalResourceError, ProtocolError, TransferError, TransportIOError
from .header import Header
from .net import StreamEndpoint
from .state import TransferReport, TransferState

log = logging.getLogger(__name__)


def check_local_name(name: str) -> str:
    """Refuse peer-supplied names that are not a plain file in one directory."""
    if name in ("", ".", "..") or any(c in name for c in "/\\\0"):
        raise ProtocolError(f"unusable file name from peer: {name!r}")
    return name


@dataclass(slots=True)
class Receiver:
    out_dir: str = "."
    overwrite: bool = False
    block_size: int = BLOCK_SIZE
    out: BinaryIO | None = field(default=None, init=False)

    def prepare(self) -> None:
        if not os.path.isdir(self.out_dir):
            raise LocalResourceError(f"not a directory: {self.out_dir}")

    def run(self, conn: StreamEndpoint) -> TransferReport:
        report = TransferReport(role="receiver")
        try:
            header = self._recv_header(conn)
            report.file_name = header.file_name
            report.file_size = header.file_size
            self._open_destination(header.file_name, report)
            report.enter(TransferState.RECEIVING)
            self._recv_blocks(conn, report)
            report.enter(TransferState.SEND_ACK)
            self._send_ack(conn)
        except TransferError as exc:
            log.error("receiver failed in %s: %s", report.state.value, exc)
            if report.destination is not None:
                log.warning("partial output left at %s", report.destination)
            report.fail(exc)
        else:
            report.finish()
        return report

    def _recv_header(self, conn: StreamEndpoint) -> Header:
        raw = bytearray(HEADER_SIZE)
        if conn.recv_exact(raw) < HEADER_SIZE:
            raise TransportIOError("recv_block (header)")
        header = Header.from_bytes(bytes(raw), expect=MAGIC_SEND)
        check_local_name(header.file_name)
        log.info("%s, %d byte", header.file_name, header.file_size)
        return header

    def _open_destination(self, name: str, report: TransferReport) -> None:
        path = os.path.join(self.out_dir, name)
        mode = "wb" if self.overwrite else "xb"
        try:
            self.out = open(path, mode)
        except OSError as exc:
            raise LocalResourceError(f"create {path}: {exc}") from exc
        report.destination = path

    def _recv_blocks(self, conn: StreamEndpoint, report: TransferReport) -> None:
        size = report.file_size
        buf = bytearray(self.block_size)
        view = memoryview(buf)

        for offset in range(0, size, self.block_size):
            remain = min(self.block_size, size - offset)
            if conn.recv_exact(view, remain) < remain:
                raise TransportIOError(f"recv_block (data) at offset {offset}")
            try:
                self.out.seek(offset)
                self.out.write(view[:remain])
            except OSError as exc:
                raise LocalResourceError(f"write at offset {offset}: {exc}") from exc
            report.blocks += 1
            report.bytes_transferred += remain

        try:
            self.out.flush()
        except OSError as exc:
            raise LocalResourceError(f"flush: {exc}") from exc

    def _send_ack(self, conn: StreamEndpoint) -> None:
        if conn.send_exact(Header.ack().to_bytes()) < HEADER_SIZE:
            raise TransportIOError("send_block (ack)")
        log.info("ack sent")

    def release(self) -> None:
        if self.out is not None:
            out, self.out = self.out, None
            out.close()
