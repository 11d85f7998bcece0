from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any

from . import __version__
from .fetch import DEFAULT_TIMEOUT_SECONDS
from .inspector import DEFAULT_WORKERS, inspect_many
from .models import DEFAULT_PORT


TIMEOUT_ENV = "TLS_INSPECTOR_TIMEOUT"


def _write_output(out_path: str | None, payload: Any) -> None:
    text = json.dumps(payload, indent=2, ensure_ascii=False)
    if out_path:
        Path(out_path).write_text(text + "\n", encoding="utf-8")
    else:
        print(text)


def _default_timeout() -> float:
    raw = os.environ.get(TIMEOUT_ENV)
    if not raw:
        return DEFAULT_TIMEOUT_SECONDS
    try:
        value = float(raw)
    except ValueError:
        return DEFAULT_TIMEOUT_SECONDS
    return value if value > 0 else DEFAULT_TIMEOUT_SECONDS


def parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        prog="tls-chain-inspector",
        description="Fetch and decode the TLS certificate chain a server presents (no trust checks).",
    )
    p.add_argument("hosts", nargs="*", metavar="host", help="Host name or IP address to inspect")
    p.add_argument("--port", "-p", type=int, default=DEFAULT_PORT, help=f"Port (default: {DEFAULT_PORT})")
    p.add_argument("--sni", help="Override SNI/server name (default: host)")
    p.add_argument(
        "--timeout",
        type=float,
        default=_default_timeout(),
        help=f"Connect + handshake timeout in seconds (default: {DEFAULT_TIMEOUT_SECONDS}, env {TIMEOUT_ENV})",
    )
    p.add_argument(
        "--workers",
        type=int,
        default=DEFAULT_WORKERS,
        help=f"Concurrent inspections when several hosts are given (default: {DEFAULT_WORKERS})",
    )
    p.add_argument("--out", "-o", help="Write JSON output to file (default: stdout)")
    p.add_argument("--verbose", "-v", action="store_true", help="Debug logging on stderr")
    p.add_argument("--version", action="store_true", help="Print version and exit")
    return p.parse_args(argv)


def _exit_code(docs: list[dict[str, Any]]) -> int:
    kinds = [d["error"]["kind"] for d in docs if "error" in d]
    if not kinds:
        return 0
    if all(k == "InvalidInput" for k in kinds):
        return 2
    return 3


def main(argv: list[str] | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)

    if args.version:
        print(__version__)
        return 0

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    if not args.hosts:
        print("Error: at least one host is required", file=sys.stderr)
        return 2
    if args.timeout <= 0:
        print("Error: timeout must be positive", file=sys.stderr)
        return 2

    payloads = [{"host": h, "port": args.port, "sni": args.sni} for h in args.hosts]
    docs = inspect_many(payloads, timeout_seconds=args.timeout, max_workers=args.workers)

    _write_output(args.out, docs[0] if len(docs) == 1 else docs)
    return _exit_code(docs)


if __name__ == "__main__":
    raise SystemExit(main())
