from __future__ import annotations

import struct
from dataclasses import dataclass

from .constants import (
    HEADER_FORMAT,
    HEADER_SIZE,
    MAGIC_RCVD,
    MAGIC_SEND,
    MAX_FILE_SIZE,
    MAX_NAME_CHARS,
    PATH_DELIMITER,
    PLACEHOLDER,
)
from .errors import ProtocolError

_TAG_NAMES = {MAGIC_SEND: "SEND", MAGIC_RCVD: "RCVD"}


def tag_name(magic: int) -> str:
    return _TAG_NAMES.get(magic, f"0x{magic:08x}")


def sanitize_name(name: str) -> str:
    """Reduce *name* to what fits the wire name field.

    Stops at the first NUL, keeps at most 19 characters and replaces the path
    delimiter and anything outside 7-bit ASCII with ``_``.
    """
    out = []
    for ch in name:
        if ch == "\0" or len(out) == MAX_NAME_CHARS:
            break
        if ch == PATH_DELIMITER or ord(ch) > 0x7F:
            ch = PLACEHOLDER
        out.append(ch)
    return "".join(out)


def extract_file_name(path: str) -> str:
    """Wire name for a local path: the last component, sanitized."""
    return sanitize_name(path.rsplit(PATH_DELIMITER, 1)[-1])


@dataclass(frozen=True, slots=True)
class Header:
    magic: int
    file_size: int = 0
    file_name: str = ""

    @property
    def is_send(self) -> bool:
        return self.magic == MAGIC_SEND

    def to_bytes(self) -> bytes:
        if not 0 <= self.file_size <= MAX_FILE_SIZE:
            raise ValueError(f"file size out of range: {self.file_size}")
        name = sanitize_name(self.file_name).encode("ascii")
        # struct pads the 20s field with NULs, so the name stays terminated
        return struct.pack(
            HEADER_FORMAT,
            self.magic,
            self.file_size,
            name,
            0,
            b"",
        )

    @staticmethod
    def from_bytes(raw: bytes, expect: int | None = None) -> "Header":
        if len(raw) != HEADER_SIZE:
            raise ValueError(f"header must be {HEADER_SIZE} bytes, got {len(raw)}")

        magic, file_size, name_field, _term, _reserved = struct.unpack(HEADER_FORMAT, raw)
        if magic not in _TAG_NAMES:
            raise ProtocolError(f"unknown header magic {tag_name(magic)}")
        if expect is not None and magic != expect:
            raise ProtocolError(f"expected {tag_name(expect)} header, got {tag_name(magic)}")

        if magic == MAGIC_RCVD:
            # ack fields beyond the tag carry nothing
            return Header.ack()

        if file_size > MAX_FILE_SIZE:
            raise ProtocolError(f"file size out of range: {file_size}")

        # the terminator byte is forced to zero instead of trusted
        name = (name_field + b"\0").split(b"\0", 1)[0].decode("latin-1")
        return Header(magic=magic, file_size=file_size, file_name=name)

    @staticmethod
    def send(file_size: int, file_name: str) -> "Header":
        return Header(magic=MAGIC_SEND, file_size=file_size, file_name=sanitize_name(file_name))

    @staticmethod
    def ack() -> "Header":
        return Header(magic=MAGIC_RCVD)
