from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import BinaryIO

from .constants import BLOCK_SIZE, HEADER_SIZE, MAGIC_RCVD, MAX_FILE_SIZE
from .errors import LocalResourceError, TransferError, TransportIOError
from .header import Header, extract_file_name
from .net import StreamEndpoint
from .state import TransferReport, TransferState

log = logging.getLogger(__name__)


@dataclass(slots=True)
class Sender:
    source_path: str
    block_size: int = BLOCK_SIZE
    f: BinaryIO | None = field(default=None, init=False)
    header: Header | None = field(default=None, init=False)

    def prepare(self) -> None:
        name = extract_file_name(os.fspath(self.source_path))
        if not name:
            raise LocalResourceError(f"invalid file name: {self.source_path!r}")

        try:
            self.f = open(self.source_path, "rb")
            size = os.fstat(self.f.fileno()).st_size
        except OSError as exc:
            self.release()
            raise LocalResourceError(f"open {self.source_path}: {exc}") from exc

        if size > MAX_FILE_SIZE:
            self.release()
            raise LocalResourceError(f"{self.source_path} is too large: {size} bytes")

        self.header = Header.send(size, name)
        log.info("%s, %d byte", name, size)

    def run(self, conn: StreamEndpoint) -> TransferReport:
        if self.f is None or self.header is None:
            raise RuntimeError("Sender.run() called before prepare()")

        report = TransferReport(
            role="sender",
            file_name=self.header.file_name,
            file_size=self.header.file_size,
        )
        try:
            self._send_header(conn)
            report.enter(TransferState.SENDING)
            self._send_blocks(conn, report)
            report.enter(TransferState.AWAIT_ACK)
            self._await_ack(conn)
        except TransferError as exc:
            log.error("sender failed in %s: %s", report.state.value, exc)
            report.fail(exc)
        else:
            report.finish()
        return report

    def _send_header(self, conn: StreamEndpoint) -> None:
        raw = self.header.to_bytes()
        if conn.send_exact(raw) < HEADER_SIZE:
            raise TransportIOError("send_block (header)")

    def _send_blocks(self, conn: StreamEndpoint, report: TransferReport) -> None:
        size = self.header.file_size
        buf = bytearray(self.block_size)
        view = memoryview(buf)

        for offset in range(0, size, self.block_size):
            remain = min(self.block_size, size - offset)
            try:
                got = self.f.readinto(view[:remain])
            except OSError as exc:
                raise LocalResourceError(f"read at offset {offset}: {exc}") from exc
            if got != remain:
                raise LocalResourceError(f"short read at offset {offset}: {got}/{remain} bytes")

            if conn.send_exact(view, remain) < remain:
                raise TransportIOError(f"send_block (data) at offset {offset}")
            report.blocks += 1
            report.bytes_transferred += remain

    def _await_ack(self, conn: StreamEndpoint) -> None:
        raw = bytearray(HEADER_SIZE)
        if conn.recv_exact(raw) < HEADER_SIZE:
            raise TransportIOError("recv_block (ack)")
        Header.from_bytes(bytes(raw), expect=MAGIC_RCVD)
        log.info("ack received")

    def release(self) -> None:
        if self.f is not None:
            f, self.f = self.f, None
            f.close()
