"""Command-line interface for the sales ledger synchroniser."""

from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from pathlib import Path

from .app import create_app
from .config import load_config
from .excel_reader import extract_reps
from .model import Trigger
from .report import build_log_payload, build_report_payload, write_report_to_json
from .runner import SyncOrchestrator
from .store import SqliteStore, open_store

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def cmd_sync(source: str, output: str | None) -> int:
    config = load_config()
    trigger: Trigger = "scheduled" if source == "cron" else "manual"
    result = SyncOrchestrator(config, open_store(config)).run(trigger)
    if output:
        path = write_report_to_json(result, trigger, Path(output))
        print(f"Report written to {path}")
    else:
        print(json.dumps(build_report_payload(result, trigger), indent=2))
    return 0 if result.ok else 1


def cmd_daemon(interval: int) -> int:
    config = load_config()
    orchestrator = SyncOrchestrator(config, open_store(config))
    logger.info("Starting daemon loop (interval=%s seconds)", interval)
    try:
        while True:
            orchestrator.run("scheduled")  # Faults are converted and audited by run()
            time.sleep(interval)
    except KeyboardInterrupt:
        logger.info("Daemon stopped")
    return 0


def cmd_serve(host: str, port: int) -> int:
    create_app(load_config()).run(host=host, port=port)
    return 0


def cmd_seed_reps(workbook: str) -> int:
    config = load_config()
    store = open_store(config)
    if not isinstance(store, SqliteStore):
        print("seed-reps only writes to the local SQLite store", file=sys.stderr)
        return 1
    count = store.save_reps(extract_reps(Path(workbook)))
    print(f"Seeded {count} reps into {store.path}")
    return 0


def cmd_log(limit: int) -> int:
    config = load_config()
    entries = open_store(config).recent_log(limit)
    print(json.dumps(build_log_payload(entries), indent=2))
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Synchronise billing-platform estimates into the sales ledger"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command")

    sync_parser = subparsers.add_parser("sync", help="Run one full sweep")
    sync_parser.add_argument(
        "--source", choices=["manual", "cron"], default="manual", help="Audit label source"
    )
    sync_parser.add_argument("--output", help="Optional JSON report path")

    daemon_parser = subparsers.add_parser("daemon", help="Sweep on a fixed interval")
    daemon_parser.add_argument("--interval", type=int, default=86400, help="Seconds between sweeps")

    serve_parser = subparsers.add_parser("serve", help="Run the webhook and sync HTTP server")
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=8000)

    seed_parser = subparsers.add_parser("seed-reps", help="Load reps from an Excel workbook")
    seed_parser.add_argument("--workbook", required=True, help="Workbook with a 'reps' sheet")

    log_parser = subparsers.add_parser("log", help="Show recent audit entries")
    log_parser.add_argument("--limit", type=int, default=20)

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO, format=LOG_FORMAT
    )

    if args.command == "sync":
        return cmd_sync(args.source, args.output)
    if args.command == "daemon":
        return cmd_daemon(args.interval)
    if args.command == "serve":
        return cmd_serve(args.host, args.port)
    if args.command == "seed-reps":
        return cmd_seed_reps(args.workbook)
    if args.command == "log":
        return cmd_log(args.limit)
    parser.print_help()
    return 0


if __name__ == "__main__":  # pragma: no cover - manual invocation
    sys.exit(main())
