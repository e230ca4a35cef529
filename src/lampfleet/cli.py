"""Command line entry point: ``lampfleet serve`` and ``lampfleet watch``."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from collections.abc import Sequence
from typing import Any

from lampfleet.client import FleetClient, build_ws_url
from lampfleet.config import FleetConfig
from lampfleet.exceptions import LampFleetError
from lampfleet.models.snapshot import FleetSnapshot
from lampfleet.reconcile.scene import SnapshotReconciler
from lampfleet.server import run_server

_logger = logging.getLogger(__name__)


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="lampfleet",
        description="Street lamp fleet simulator with a replacement drone.",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the fleet websocket server.")
    serve.add_argument("--host", default=None, help="Bind address (default: LAMPFLEET_HOST or 0.0.0.0).")
    serve.add_argument("--port", type=int, default=None, help="TCP port (default: LAMPFLEET_PORT or 3000).")
    serve.add_argument("--tick-interval", type=float, default=None, help="Seconds between temperature ticks.")
    serve.add_argument(
        "--reply-rejections",
        action="store_true",
        help="Answer malformed commands with a 'rejected' message.",
    )
    serve.add_argument("--seed", type=int, default=None, help="Random seed for temperature drift.")

    watch = sub.add_parser("watch", help="Connect as a viewer and print fleet counters.")
    watch.add_argument("--host", default="localhost")
    watch.add_argument("--port", type=int, default=3000)
    watch.add_argument("--replace", type=int, default=None, metavar="LAMP_ID", help="Request a replacement first.")
    watch.add_argument(
        "--fault",
        type=int,
        default=None,
        metavar="LAMP_ID",
        help="Mark a lamp as faulty first.",
    )
    return parser.parse_args(argv)


def _serve(args: argparse.Namespace) -> None:
    overrides: dict[str, Any] = {}
    if args.host is not None:
        overrides["host"] = args.host
    if args.port is not None:
        overrides["port"] = args.port
    if args.tick_interval is not None:
        overrides["tick_interval"] = args.tick_interval
    if args.reply_rejections:
        overrides["reply_rejections"] = True
    if args.seed is not None:
        overrides["random_seed"] = args.seed
    run_server(FleetConfig.from_env(**overrides))


def _print_snapshot(reconciler: SnapshotReconciler, snapshot: FleetSnapshot) -> None:
    view = reconciler.view
    target = f" -> lamp {snapshot.active_target_lamp_id}" if snapshot.active_target_lamp_id is not None else ""
    print(
        f"drone={snapshot.drone_status}{target} lamps={view.total} active={view.active} "
        f"fault={view.fault} tasks={len(snapshot.replacement_tasks)}"
    )


async def _watch(args: argparse.Namespace) -> None:
    url = build_ws_url(args.host, args.port)
    reconciler = SnapshotReconciler()
    client = FleetClient(
        url,
        reconciler=reconciler,
        on_snapshot=lambda snapshot: _print_snapshot(reconciler, snapshot),
    )
    async with client:
        if args.fault is not None:
            await client.set_lamp_fault(args.fault)
        if args.replace is not None:
            await client.start_replacement(args.replace)
        await client.listen()


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        if args.command == "serve":
            _serve(args)
        else:
            asyncio.run(_watch(args))
    except LampFleetError as exc:
        _logger.error("%s", exc)
        return 1
    except KeyboardInterrupt:
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())
