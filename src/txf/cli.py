from __future__ import annotations

import argparse
import json
import logging

from .constants import DEFAULT_TIMEOUT_MS
from .session import Role, SessionConfig, Transport, run_session


def parse_port(text: str) -> tuple[int, bool]:
    """Return (port, flipped); a leading '-' flips the dial/listen axis."""
    flipped = text.startswith("-")
    try:
        port = int(text[1:] if flipped else text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid port: {text!r}") from None
    if not 0 <= port <= 65535:
        raise argparse.ArgumentTypeError(f"port out of range: {text!r}")
    return port, flipped


def config_from_args(args: argparse.Namespace) -> SessionConfig:
    port, flipped = args.port
    sending = args.file is not None

    # default: tx-server / rx-client; a negative port gives rx-server / tx-client
    listening = sending != flipped
    return SessionConfig(
        host=args.addr,
        port=port,
        transport=Transport.LISTEN if listening else Transport.DIAL,
        role=Role.SEND if sending else Role.RECEIVE,
        source=args.file,
        out_dir=args.out_dir,
        overwrite=args.overwrite,
        timeout_ms=args.timeout_ms,
    )


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="txf",
        description="One-shot file transfer over TCP. A positive PORT listens when sending "
        "and dials when receiving; a negative PORT swaps that.",
    )
    p.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
    p.add_argument("--timeout-ms", type=int, default=DEFAULT_TIMEOUT_MS)
    p.add_argument("--out-dir", default=".", help="directory for received files")
    p.add_argument("--overwrite", action="store_true", help="replace an existing received file")
    p.add_argument("--json", action="store_true")
    p.add_argument("addr", help="ipv4 address to dial or bind")
    p.add_argument("port", type=parse_port, help="port; the sign selects the mode")
    p.add_argument("file", nargs="?", default=None, help="file to send")
    return p


def main(argv: list[str] | None = None) -> int:
    p = build_parser()
    args = p.parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(asctime)s [%(levelname)s] %(message)s")

    report = run_session(config_from_args(args))

    payload = report.summary()
    print(json.dumps(payload, indent=2) if args.json else payload)
    return 0 if report.ok else 1


if __name__ == "__main__":
    raise SystemExit(main())
