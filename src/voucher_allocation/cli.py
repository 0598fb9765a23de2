# -*- coding: utf-8 -*-
"""Command line interface for operating the voucher pool."""
from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Callable, Optional, Sequence

from .allocation import VoucherError
from .config import get_config
from .factories import Runtime, build_runtime
from .infrastructure.monitoring.logging_adapter import configure_json_logging
from .infrastructure.persistence.session import create_schema

RuntimeBuilder = Callable[[], Runtime]


def _run_init_db(runtime: Runtime, args: argparse.Namespace) -> int:
    create_schema(runtime.engine)
    print(json.dumps({"schema": "ok", "dsn": runtime.engine.url.render_as_string(hide_password=True)}))
    return 0


def _run_sweep(runtime: Runtime, args: argparse.Namespace) -> int:
    interval = args.interval if args.interval is not None else runtime.config.sweeper.interval_seconds
    if args.loop:
        reset = runtime.sweeper.run_loop(interval=interval, max_runs=args.max_runs)
    else:
        try:
            reset = runtime.sweeper.sweep()
        except VoucherError as exc:
            print(json.dumps(exc.to_payload(), ensure_ascii=False), file=sys.stderr)
            return 1
    print(json.dumps({"reset": reset}))
    return 0


def _run_stats(runtime: Runtime, args: argparse.Namespace) -> int:
    try:
        analytics = runtime.allocator.pool_analytics()
    except VoucherError as exc:
        print(json.dumps(exc.to_payload(), ensure_ascii=False), file=sys.stderr)
        return 1
    print(json.dumps(analytics.to_payload()))
    return 0


def _run_allocate(runtime: Runtime, args: argparse.Namespace) -> int:
    try:
        result = runtime.allocator.allocate(args.account)
    except VoucherError as exc:
        print(json.dumps(exc.to_payload(), ensure_ascii=False), file=sys.stderr)
        return 2 if exc.http_status == 400 else 1
    print(json.dumps(result.to_payload(), ensure_ascii=False))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="voucher-allocation", description="Voucher pool operations")
    parser.add_argument("--verbose", action="store_true", help="Emit JSON debug logs to stderr")
    sub = parser.add_subparsers(dest="command", required=True)

    init_db = sub.add_parser("init-db", help="Create the voucher schema")
    init_db.set_defaults(handler=_run_init_db)

    sweep = sub.add_parser("sweep", help="Return expired assignments to the pool")
    sweep.add_argument("--loop", action="store_true", help="Keep sweeping on an interval")
    sweep.add_argument("--interval", type=float, default=None, help="Seconds between sweeps")
    sweep.add_argument("--max-runs", type=int, default=None, help="Stop after this many sweeps")
    sweep.set_defaults(handler=_run_sweep)

    stats = sub.add_parser("stats", help="Print pool counts by status")
    stats.set_defaults(handler=_run_stats)

    allocate = sub.add_parser("allocate", help="Allocate a voucher to an account")
    allocate.add_argument("account", help="0x-prefixed account address")
    allocate.set_defaults(handler=_run_allocate)
    return parser


def main(argv: Optional[Sequence[str]] = None, *, runtime_builder: RuntimeBuilder | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.verbose or get_config().enable_debug_logs:
        configure_json_logging(logging.DEBUG)
    runtime = (runtime_builder or build_runtime)()
    try:
        return args.handler(runtime, args)
    finally:
        runtime.close()


if __name__ == "__main__":  # pragma: no cover - CLI entry
    sys.exit(main())
