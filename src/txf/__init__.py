"""txf: one-shot point-to-point file transfer over TCP

The package keeps the same separation the protocol itself has:
- header framing (fixed 32-byte layout) vs. the block-transfer state machine
- sender and receiver roles with the same prepare / run / release shape
- one session, one connection, one file per process

Failures travel as `TransferReport` values, not exceptions, once a role is running.
"""

__all__ = []
