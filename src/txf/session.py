from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Callable, Union

from .constants import DEFAULT_TIMEOUT_MS
from .errors import TransferError
from .net import Address, Impairment, StreamEndpoint, dial, listen_and_accept
from .receiver import Receiver
from .sender import Sender
from .state import TransferReport, TransferState

log = logging.getLogger(__name__)


class Transport(str, enum.Enum):
    DIAL = "dial"
    LISTEN = "listen"


class Role(str, enum.Enum):
    SEND = "send"
    RECEIVE = "receive"


@dataclass(frozen=True, slots=True)
class SessionConfig:
    host: str
    port: int
    transport: Transport
    role: Role
    source: str | None = None
    out_dir: str = "."
    overwrite: bool = False
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    impairment: Impairment | None = None

    def __post_init__(self) -> None:
        if self.role is Role.SEND and not self.source:
            raise ValueError("sending requires a source file")


def build_role(config: SessionConfig) -> Union[Sender, Receiver]:
    if config.role is Role.SEND:
        return Sender(config.source)
    return Receiver(out_dir=config.out_dir, overwrite=config.overwrite)


def connect(
    config: SessionConfig,
    on_listening: Callable[[Address], None] | None = None,
) -> StreamEndpoint:
    if config.transport is Transport.DIAL:
        log.info("* client")
        return dial(config.host, config.port, config.timeout_ms, config.impairment)
    log.info("* server")
    return listen_and_accept(
        config.host,
        config.port,
        timeout_ms=config.timeout_ms,
        impairment=config.impairment,
        on_listening=on_listening,
    )


def run_session(
    config: SessionConfig,
    on_listening: Callable[[Address], None] | None = None,
) -> TransferReport:
    """Run exactly one transfer for *config* and return its report.

    The role is prepared before any connection is made, and both the
    connection and the role's local file are released on every path.
    """
    role = build_role(config)
    role_name = "sender" if config.role is Role.SEND else "receiver"

    try:
        try:
            role.prepare()
        except TransferError as exc:
            log.error("%s: init: %s", role_name, exc)
            return _failed(role_name, exc)

        try:
            endpoint = connect(config, on_listening)
        except TransferError as exc:
            log.error("%s: %s", config.transport.value, exc)
            return _failed(role_name, exc)

        with endpoint:
            report = role.run(endpoint)
    finally:
        role.release()

    if report.ok:
        log.info("%s: done, %d bytes in %d blocks", role_name, report.bytes_transferred, report.blocks)
    else:
        log.error("%s: process failed", role_name)
    return report


def _failed(role_name: str, error: TransferError) -> TransferReport:
    report = TransferReport(role=role_name, state=TransferState.SETUP)
    report.fail(error)
    return report
