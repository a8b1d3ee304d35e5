"""
Command-line entry point for the fritzlog service.

    python -m backend.main poll              # run the poll loop
    python -m backend.main session           # log in and print the session id
    python -m backend.main response --challenge '2$...'
    python -m backend.main replay responses/ # merge archived responses
    python -m backend.main show --limit 20
    python -m backend.main export logs.csv
    python -m backend.main disconnects --hours 24
"""

from __future__ import annotations

import argparse
import csv
import getpass
import logging
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from fritzlog.core.config import config
from fritzlog.core.exceptions import FritzLogError
from fritzlog.core.logging_config import setup_logging
from fritzlog.data.ingestion import SavedResponseSource
from fritzlog.data.messages import disconnects
from fritzlog.merge.engine import MergeEngine
from fritzlog.store.sqlite import SqliteLogStore

from backend.device.challenge import make_response
from backend.device.client import FritzClient
from backend.poller import merge_raw_batch, run_poller

logger = logging.getLogger("backend")

EXPORT_COLUMNS = [
    "datetime",
    "message",
    "message_id",
    "category_id",
    "repetition_datetime",
    "repetition_count",
]


def _open_store() -> SqliteLogStore:
    return SqliteLogStore(config.database_path, tz=config.tzinfo)


def cmd_poll(args: argparse.Namespace) -> int:
    with _open_store() as store:
        client = FritzClient(config, store=store)
        completed = run_poller(client, store, config, max_polls=args.max_polls)
    logger.info("Completed %d polls", completed)
    return 0


def cmd_session(args: argparse.Namespace) -> int:
    client = FritzClient(config)
    session = client.login()
    logger.info("session-id: %s", session)
    print(session)
    return 0


def cmd_response(args: argparse.Namespace) -> int:
    password = args.password if args.password is not None else getpass.getpass("Password: ")
    print(make_response(args.challenge, password))
    return 0


def cmd_replay(args: argparse.Namespace) -> int:
    source = SavedResponseSource(args.directory)
    total = 0
    with _open_store() as store:
        engine = MergeEngine(store)
        for path, entries in source.ingest():
            outcome = merge_raw_batch(store, entries, config, engine)
            logger.info("Replayed %s: %d incorporated", path.name, outcome.upserted)
            total += outcome.upserted
    print(f"incorporated {total} logs")
    return 0


def cmd_show(args: argparse.Namespace) -> int:
    with _open_store() as store:
        for record in store.select_logs(0, args.limit):
            print(f"{record}  {record.message}")
    return 0


def cmd_export(args: argparse.Namespace) -> int:
    output = Path(args.output)
    with _open_store() as store, open(output, "w", encoding="utf-8", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=EXPORT_COLUMNS)
        writer.writeheader()
        records = store.select_logs()
        # Oldest first, the way the history grew
        for record in reversed(records):
            writer.writerow(record.to_row())
    logger.info("Exported %d logs to %s", len(records), output)
    return 0


def cmd_disconnects(args: argparse.Namespace) -> int:
    since = datetime.now(timezone.utc) - timedelta(hours=args.hours)
    with _open_store() as store:
        found = disconnects(store.select_logs(), since)
    for record in found:
        print(f"{record}  {record.message}")
    print(f"Disconnects in the last {args.hours:g} hours: {len(found)}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Fetch FRITZ!Box logs and keep them in a database")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log at DEBUG level")
    sub = parser.add_subparsers(dest="command", required=True)

    poll = sub.add_parser("poll", help="Poll the device and merge new logs")
    poll.add_argument("--max-polls", type=int, default=None)
    poll.set_defaults(func=cmd_poll)

    session = sub.add_parser("session", help="Log in and print the session id")
    session.set_defaults(func=cmd_session)

    response = sub.add_parser("response", help="Answer a login challenge")
    response.add_argument("--challenge", required=True)
    response.add_argument("--password", default=None)
    response.set_defaults(func=cmd_response)

    replay = sub.add_parser("replay", help="Merge archived log responses")
    replay.add_argument("directory")
    replay.set_defaults(func=cmd_replay)

    show = sub.add_parser("show", help="Print the most recent stored logs")
    show.add_argument("--limit", type=int, default=20)
    show.set_defaults(func=cmd_show)

    export = sub.add_parser("export", help="Write all stored logs as CSV")
    export.add_argument("output")
    export.set_defaults(func=cmd_export)

    report = sub.add_parser("disconnects", help="List Internet disconnects in a recent window")
    report.add_argument("--hours", type=float, default=24)
    report.set_defaults(func=cmd_disconnects)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)

    level = "DEBUG" if args.verbose else None
    setup_logging("fritzlog", level)
    setup_logging("backend", level)

    try:
        return args.func(args)
    except FritzLogError as e:
        logger.error("%s failed: %s", args.command, e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
