from __future__ import annotations

import enum
import time
from dataclasses import dataclass, field

from .errors import TransferError


class TransferState(str, enum.Enum):
    SETUP = "setup"
    HEADER = "header"
    SENDING = "sending"
    RECEIVING = "receiving"
    AWAIT_ACK = "await_ack"
    SEND_ACK = "send_ack"
    DONE = "done"
    FAILED = "failed"


@dataclass(slots=True)
class TransferReport:
    role: str
    state: TransferState = TransferState.HEADER
    failed_in: TransferState | None = None
    error: TransferError | None = None
    file_name: str = ""
    file_size: int = 0
    blocks: int = 0
    bytes_transferred: int = 0
    destination: str | None = None
    start_ts: float = field(default_factory=time.monotonic)
    end_ts: float | None = None

    @property
    def ok(self) -> bool:
        return self.state is TransferState.DONE

    @property
    def duration_s(self) -> float:
        if self.end_ts is None:
            return 0.0
        return max(0.0, self.end_ts - self.start_ts)

    @property
    def throughput_mbps(self) -> float:
        if self.duration_s <= 0:
            return 0.0
        return (self.bytes_transferred * 8 / 1_000_000) / self.duration_s

    def enter(self, state: TransferState) -> None:
        self.state = state

    def finish(self) -> None:
        self.state = TransferState.DONE
        self.end_ts = time.monotonic()

    def fail(self, error: TransferError) -> None:
        self.failed_in = self.state
        self.state = TransferState.FAILED
        self.error = error
        self.end_ts = time.monotonic()

    def summary(self) -> dict:
        payload = {
            "role": self.role,
            "state": self.state.value,
            "file": self.file_name,
            "bytes": self.bytes_transferred,
            "blocks": self.blocks,
            "seconds": self.duration_s,
            "mbps": self.throughput_mbps,
        }
        if self.destination is not None:
            payload["destination"] = self.destination
        if self.error is not None:
            payload["failed_in"] = self.failed_in.value if self.failed_in else None
            payload["error"] = f"{self.error.kind}: {self.error}"
        return payload
