from __future__ import annotations


class TransferError(Exception):
    kind = "transfer"


class ConnectionFailure(TransferError):
    kind = "connection"


class TransportIOError(TransferError):
    kind = "io"


class ProtocolError(TransferError, ValueError):
    kind = "protocol"


class LocalResourceError(TransferError):
    kind = "local"
