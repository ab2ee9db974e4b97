"""
Command line entry point: ``python -m dbdump <command>``.
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

import httpx

from dbdump.core.config import configure_logging, get_data_dir, get_settings
from dbdump.core.errors import DumpError
from dbdump.data.loader import Loader
from dbdump.domain.tables import Table
from dbdump.services import reports
from dbdump.services.downloader import download_db_dump

logger = logging.getLogger(__name__)


def _parse_instant(text: str) -> datetime:
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        value = datetime.fromisoformat(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an RFC 3339 timestamp: {text}") from None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="dbdump", description="Read the crates.io database export.")
    parser.add_argument("--log-level", default=None, help="Override the configured log level")
    parser.add_argument("--strict", action="store_true", default=None, help="Fail on unrecognized table files")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("download", help="Download the latest export")

    def with_dump(name: str, help_text: str) -> argparse.ArgumentParser:
        p = sub.add_parser(name, help=help_text)
        p.add_argument("--dump", type=Path, default=None, help="Path to db-dump.tar.gz")
        return p

    with_dump("stats", "Count the rows of every table")
    with_dump("total-downloads", "Downloads across all crates, by day")
    p = with_dump("crate-downloads", "Downloads of one crate, by day")
    p.add_argument("crate")
    p = with_dump("top-crates", "Most depended-upon crates")
    p.add_argument("-n", "--limit", type=int, default=12)
    p = with_dump("user-dependencies", "Share of crates depending on a user's crates")
    p.add_argument("login")
    p = with_dump("user-downloads", "Share of daily downloads going to a user's crates")
    p.add_argument("login")
    p = with_dump("user-dependencies-graph", "Share of dependencies on a user's crates over time")
    p.add_argument("login")
    p = with_dump("industry-coefficient", "Weekday vs weekend download ratio per crate")
    p.add_argument("--cutoff", type=int, default=1_000_000, help="Minimum downloads in the window")
    p.add_argument(
        "--include", action="append", default=[], metavar="CRATE", help="Report this crate regardless of the cutoff"
    )
    p = with_dump("find-timestamp", "Which crate versions were published at the given instants")
    p.add_argument("instants", nargs="+", type=_parse_instant)
    return parser


def _count_rows(path: Path, strict: bool) -> dict:
    counts = {table.value: 0 for table in Table}
    loader = Loader(strict=strict)
    for table in Table:
        def bump(row, name=table.value):
            counts[name] += 1
        loader.register(table, bump)
    loader.load(path)
    return counts


def run(args: argparse.Namespace) -> int:
    settings = get_settings()
    strict = settings.strict_tables if args.strict is None else args.strict

    if args.command == "download":
        path = asyncio.run(
            download_db_dump(
                get_data_dir(),
                url=settings.dump_url,
                attempts=settings.download_attempts,
                timeout=settings.download_timeout,
            )
        )
        print(path)
        return 0

    dump = args.dump or settings.dump_path
    if args.command == "stats":
        for name, count in _count_rows(dump, strict).items():
            print(f"{name},{count}")
    elif args.command == "total-downloads":
        for day, count in reports.total_downloads_by_day(dump, strict=strict).items():
            print(f"{day},{count}")
    elif args.command == "crate-downloads":
        for day, count in reports.crate_downloads_by_day(dump, args.crate, strict=strict).items():
            print(f"{day},{count}")
    elif args.command == "top-crates":
        for name, count in reports.top_depended_crates(dump, args.limit, strict=strict):
            print(f"{name},{count}")
    elif args.command == "user-dependencies":
        dependents, total = reports.user_dependents(dump, args.login, strict=strict)
        percent = 100.0 * dependents / total if total else 0.0
        print(f"{dependents} / {total} = {percent:.1f}%")
    elif args.command == "user-downloads":
        for day, share in reports.user_download_share(dump, args.login, strict=strict).items():
            print(f"{day},{share}")
    elif args.command == "user-dependencies-graph":
        points, theirs, total = reports.user_dependency_share_over_time(dump, args.login, strict=strict)
        for instant, percent in points:
            print(f"{instant:%Y-%m-%d %H:%M:%S.%f},{percent:.3f}")
        percent = 100.0 * theirs / total if total else 0.0
        print(f"{theirs} / {total} ({percent:.2f}%)", file=sys.stderr)
    elif args.command == "industry-coefficient":
        for name, coefficient in reports.industry_coefficients(
            dump, cutoff=args.cutoff, include=args.include, strict=strict
        ):
            print(f"{name:>36}  {coefficient:+.4f}")
    elif args.command == "find-timestamp":
        for name, version in reports.find_published_at(dump, args.instants, strict=strict):
            print(f"{name} v{version}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        configure_logging(args.log_level)
        return run(args)
    except (DumpError, LookupError, httpx.HTTPError, ValueError) as e:
        logger.error(f"{args.command} failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
