import argparse
import json
import logging
import os
import sys
from dataclasses import asdict
from datetime import timedelta
from pathlib import Path
from typing import Any
from uuid import UUID

from src.adapters.clock import SystemClock
from src.adapters.dev_publisher import SimulatedPublishExecutor
from src.adapters.sqlite.migrator import SQLiteMigrator
from src.adapters.sqlite.queue_store import SQLitePublishingQueueRepo
from src.api.auth_utils import create_access_token
from src.app_shell.config import ConfigError, build_worker_config
from src.components.publishing_worker import (
    WorkerOptions,
    run_status,
    run_worker,
)
from src.core.entities import PLATFORMS
from src.rules.loader import load_rules
from src.rules.models import Rules

logger = logging.getLogger("cli")

DATA_DIR = os.environ.get("QUEUE_DATA_DIR", "./data")
DB_PATH = str(Path(DATA_DIR) / "queue.db")
RULES_PATH = os.environ.get("QUEUE_RULES_PATH", "rules.yaml")


def get_rules() -> Rules:
    if not Path(RULES_PATH).exists():
        logger.error("Rules file %s not found.", RULES_PATH)
        sys.exit(1)
    return load_rules(Path(RULES_PATH))


def _dump(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str))


def _options(args: argparse.Namespace) -> WorkerOptions:
    org_id = UUID(args.organization_id) if args.organization_id else None
    return WorkerOptions(
        platform=args.platform,
        organization_id=org_id,
        limit=getattr(args, "limit", None),
    )


def handle_migrate(args: argparse.Namespace) -> None:
    applied = SQLiteMigrator(DB_PATH).run_migrations()
    if applied:
        for name in applied:
            print(f"Applied {name}")
    else:
        print("Nothing to apply.")


def handle_run_worker(args: argparse.Namespace) -> None:
    rules = get_rules()
    try:
        config = build_worker_config(rules)
    except ConfigError as e:
        logger.error("%s", e)
        sys.exit(1)

    result = run_worker(
        _options(args),
        store=SQLitePublishingQueueRepo(DB_PATH),
        executor=SimulatedPublishExecutor(),
        time_port=SystemClock(),
        config=config,
    )
    _dump(asdict(result))
    if any(p.error for p in result.phases):
        sys.exit(2)


def handle_status(args: argparse.Namespace) -> None:
    rules = get_rules()
    status = run_status(
        _options(args),
        store=SQLitePublishingQueueRepo(DB_PATH),
        time_port=SystemClock(),
        config=build_worker_config(rules),
    )
    _dump(
        {
            lane: {"count": preview.count, "items": [str(i.id) for i in preview.items]}
            for lane, preview in (
                ("scheduled", status.scheduled),
                ("queued", status.queued),
                ("retry", status.retry),
            )
        }
    )


def handle_issue_token(args: argparse.Namespace) -> None:
    org_id = UUID(args.organization_id) if args.organization_id else None
    token = create_access_token(
        args.subject,
        organization_id=org_id,
        expires_delta=timedelta(minutes=args.minutes),
    )
    print(token)


def _add_filters(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--platform", choices=PLATFORMS, help="Only this platform")
    parser.add_argument("--organization-id", help="Only this organization (UUID)")


def main(argv: list[str] | None = None) -> None:
    logging.basicConfig(level=logging.INFO)

    parser = argparse.ArgumentParser(description="Publishing Queue Worker CLI")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # migrate
    subparsers.add_parser("migrate", help="Apply pending database migrations")

    # run-worker
    run_parser = subparsers.add_parser("run-worker", help="Run all worker phases once")
    _add_filters(run_parser)
    run_parser.add_argument("--limit", type=int, help="Max items to publish this run")

    # status
    status_parser = subparsers.add_parser("status", help="Show items ready for each phase")
    _add_filters(status_parser)

    # issue-token
    token_parser = subparsers.add_parser(
        "issue-token", help="Sign a bearer token for calling the API by hand"
    )
    token_parser.add_argument("subject", help="Value of the sub claim")
    token_parser.add_argument("--organization-id", help="Limit the token to one organization")
    token_parser.add_argument("--minutes", type=int, default=60, help="Token lifetime")

    args = parser.parse_args(argv)

    if args.command == "migrate":
        handle_migrate(args)
    elif args.command == "run-worker":
        handle_run_worker(args)
    elif args.command == "status":
        handle_status(args)
    elif args.command == "issue-token":
        handle_issue_token(args)


if __name__ == "__main__":
    main()
