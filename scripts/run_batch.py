#!/usr/bin/env python3
"""
Run the payout batch once from the command line.

Prints the same JSON body the cron trigger returns.  The credential
check is skipped: whoever can run this script already has the database
URL.

Usage:
    python3 scripts/run_batch.py [--dry-run] [--db-url URL] [--config-dir DIR]

Examples:
    # Show what would be processed
    python3 scripts/run_batch.py --dry-run

    # Create tables on a fresh SQLite file and run
    python3 scripts/run_batch.py --db-url sqlite:///payouts.db --create-tables
"""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import replace

from payout_batch.domain.types import RunTrigger
from payout_batch.orchestrator import PayoutOrchestrator
from payout_batch.trigger import BatchTrigger, TriggerRequest
from payout_config.settings import load_runtime_settings
from payout_kernel.db.engine import create_tables
from payout_kernel.logging_config import configure_logging


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Approve pending payments older than the auto-approval window.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report the batch status only; no payment is touched.",
    )
    parser.add_argument(
        "--db-url",
        default=None,
        help="SQLAlchemy database URL (default: $DATABASE_URL or sqlite:///payouts.db).",
    )
    parser.add_argument(
        "--config-dir",
        default=None,
        help="Configuration set directory (default: $PAYOUT_CONFIG_DIR or the bundled set).",
    )
    parser.add_argument(
        "--create-tables",
        action="store_true",
        help="Create missing tables before running.",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Log level for the JSON log stream on stderr (default: INFO).",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    configure_logging(level=args.log_level.upper(), stream=sys.stderr)

    settings = load_runtime_settings()
    overrides = {}
    if args.db_url:
        overrides["database_url"] = args.db_url
    if args.config_dir:
        overrides["config_dir"] = args.config_dir
    # Local operator run: no shared-secret check.
    settings = replace(settings, environment="cli", **overrides)

    orchestrator = PayoutOrchestrator.from_settings(settings)
    if args.create_tables:
        create_tables()

    trigger = BatchTrigger(
        orchestrator.processor,
        settings,
        clock=orchestrator.clock,
        run_trigger=RunTrigger.CLI,
    )
    query = {"dry_run": "true"} if args.dry_run else {}
    response = trigger.handle(TriggerRequest(method="POST", query=query))

    print(json.dumps(response.body, indent=2))
    return 0 if response.status_code == 200 else 1


if __name__ == "__main__":
    sys.exit(main())
