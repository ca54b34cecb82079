from __future__ import annotations

import argparse
import json
import logging
import signal
import threading
from dataclasses import asdict, replace

from opos.application.container import build_container
from opos.config import get_app_paths, load_settings
from opos.logging_config import setup_logging
from opos.services.background_service import SignalWakeSource


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="opos", description="Offline-first POS sale sync agent")
    parser.add_argument("--db", default=None, help="SQLite path (default: per-user app directory or OPOS_DB_PATH)")
    parser.add_argument("--api", default=None, help="Remote API base URL (default: OPOS_API_BASE_URL)")
    parser.add_argument("--verbose", action="store_true", help="Also log to the console")

    sub = parser.add_subparsers(dest="command")
    sub.add_parser("run", help="Run connectivity monitor and background sync until interrupted")
    sub.add_parser("sync", help="Probe the remote API and run one drain")
    sub.add_parser("status", help="Print connectivity and queue status")
    sub.add_parser("health", help="Print the health probe payload")
    export = sub.add_parser("export", help="Export the sales history to Excel")
    export.add_argument("path", help="Target .xlsx file")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = _parser().parse_args(argv)
    paths = get_app_paths()
    setup_logging(paths.logs_dir, level=logging.INFO, console=args.verbose)

    settings = load_settings()
    if args.api:
        settings = replace(settings, api_base_url=args.api)
    db_path = args.db or settings.db_path or paths.db_path

    command = args.command or "run"
    wake = SignalWakeSource() if command == "run" else None
    # One-shot commands probe explicitly; only `run` drains on reconnect.
    container = build_container(
        db_path,
        settings=settings,
        wake_source=wake,
        logs_dir=paths.logs_dir,
        drain_on_reconnect=command == "run",
    )

    if command == "health":
        print(json.dumps(container.operations.health()))
        return 0

    if command == "status":
        container.connectivity.probe()
        report = container.operations.run_health_check()
        print(json.dumps(asdict(report), indent=2))
        return 0

    if command == "sync":
        container.connectivity.probe()
        ran = container.reconciler.drain()
        print(json.dumps({"ran": ran, "pending": container.reconciler.pending_count()}))
        return 0 if ran else 1

    if command == "export":
        container.reporting.export_sales_history_excel(args.path)
        print(args.path)
        return 0

    stop = threading.Event()
    signal.signal(signal.SIGINT, lambda _s, _f: stop.set())
    signal.signal(signal.SIGTERM, lambda _s, _f: stop.set())

    container.start()
    print(f"POS sync agent running against {settings.api_base_url} (db: {db_path})")
    try:
        stop.wait()
    finally:
        container.stop()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
