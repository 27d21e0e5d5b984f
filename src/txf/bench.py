from __future__ import annotations

import argparse
import json
import logging
import os
import queue
import tempfile
import threading
from dataclasses import asdict, dataclass

from .net import Impairment
from .session import Role, SessionConfig, Transport, run_session


@dataclass(frozen=True, slots=True)
class BenchmarkResult:
    bytes_transferred: int
    blocks: int
    duration_s: float
    throughput_mbps: float


def run_benchmark(
    *,
    size_bytes: int,
    delay_ms: int = 0,
    max_chunk: int = 0,
    timeout_ms: int = 10_000,
) -> BenchmarkResult:
    """Loopback transfer: a listening receiver thread against a dialing sender."""
    impair = Impairment(delay_ms=delay_ms, max_chunk=max_chunk)
    wait_s = timeout_ms / 1000.0 if timeout_ms > 0 else None

    with tempfile.TemporaryDirectory() as tmp:
        src_dir = os.path.join(tmp, "src")
        out_dir = os.path.join(tmp, "out")
        os.mkdir(src_dir)
        os.mkdir(out_dir)
        src = os.path.join(src_dir, "bench.bin")
        with open(src, "wb") as f:
            f.write(os.urandom(size_bytes))

        bound: queue.Queue = queue.Queue()
        recv_holder = {}

        def recv_runner():
            recv_holder["r"] = run_session(
                SessionConfig(
                    host="127.0.0.1",
                    port=0,
                    transport=Transport.LISTEN,
                    role=Role.RECEIVE,
                    out_dir=out_dir,
                    timeout_ms=timeout_ms,
                    impairment=impair,
                ),
                on_listening=bound.put,
            )

        t = threading.Thread(target=recv_runner, daemon=True)
        t.start()

        _, port = bound.get(timeout=wait_s)
        send_report = run_session(
            SessionConfig(
                host="127.0.0.1",
                port=port,
                transport=Transport.DIAL,
                role=Role.SEND,
                source=src,
                timeout_ms=timeout_ms,
                impairment=impair,
            )
        )
        t.join(timeout=wait_s)

        recv_report = recv_holder.get("r")
        if not send_report.ok or recv_report is None or not recv_report.ok:
            raise RuntimeError(f"benchmark transfer failed: {send_report.summary()}")
        if os.path.getsize(os.path.join(out_dir, "bench.bin")) != size_bytes:
            raise RuntimeError("received size mismatch")

    duration_s = max(0.001, send_report.duration_s)
    throughput_mbps = (size_bytes * 8 / 1_000_000) / duration_s

    return BenchmarkResult(
        bytes_transferred=size_bytes,
        blocks=send_report.blocks,
        duration_s=duration_s,
        throughput_mbps=throughput_mbps,
    )


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(prog="txf-bench", description="Loopback benchmark for txf.")
    p.add_argument("--size-bytes", type=int, default=5_000_000)
    p.add_argument("--delay-ms", type=int, default=0)
    p.add_argument("--max-chunk", type=int, default=0, help="cap each socket call at this many bytes")
    p.add_argument("--timeout-ms", type=int, default=10_000)
    p.add_argument("--log-level", default="WARNING", choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
    p.add_argument("--json", action="store_true")
    args = p.parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(asctime)s [%(levelname)s] %(message)s")

    r = run_benchmark(
        size_bytes=args.size_bytes,
        delay_ms=args.delay_ms,
        max_chunk=args.max_chunk,
        timeout_ms=args.timeout_ms,
    )
    payload = {"role": "bench", **asdict(r)}
    print(json.dumps(payload, indent=2) if args.json else payload)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
