#!/usr/bin/env python3
"""
Time-Indexed Record Mesh demo.

Seeds an in-memory store with example notes written at fixed times between
2021-10-20 and 2021-10-22 (UTC), then runs a point or range query and
prints the resolved records as JSON.

Usage:
    python -m chronomesh --start 2021-10-20T22 --end 2021-10-21T01
    python -m chronomesh --start 2021-10-21
    CHRONOMESH_LOG_LEVEL=DEBUG python -m chronomesh --start 2021-10-20 --end 2021-10-22
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Sequence

from chronomesh.chain.actions import CreateAction, UpdateAction
from chronomesh.core.config import ChronoMeshConfig
from chronomesh.core.types import Timestamp
from chronomesh.observability.logging import LogLevel, StructuredLogger, setup_logging
from chronomesh.observability.metrics import MetricsCollector
from chronomesh.query.facade import TimeQueryFacade
from chronomesh.storage.backends import InMemoryIndexStore
from chronomesh.timeindex.paths import PathIndexer
from chronomesh.timeindex.time import FetchEntriesTime

logger = StructuredLogger("chronomesh.demo")


@dataclass(frozen=True)
class Note:
    """Example record type used by the demo."""
    text: str
    number: int


# (day, hour, minute, text)
DEMO_WRITES: tuple[tuple[int, int, int, str], ...] = (
    (20, 9, 15, "morning standup"),
    (20, 22, 5, "late deploy"),
    (20, 23, 40, "rollback"),
    (21, 0, 10, "incident review"),
    (21, 1, 30, "postmortem draft"),
    (21, 14, 0, "afternoon sync"),
    (22, 1, 45, "night batch"),
)


async def seed_demo_store(store: InMemoryIndexStore, base: str) -> None:
    """Write the demo notes, then edit the second one an hour later."""
    moments = [
        datetime(2021, 10, day, hour, minute, tzinfo=timezone.utc)
        for day, hour, minute, _ in DEMO_WRITES
    ]
    moments.append(datetime(2021, 10, 21, 2, 0, tzinfo=timezone.utc))
    clock = iter([Timestamp.from_datetime(m) for m in moments]).__next__

    create = CreateAction(store, clock=clock)
    created = []
    for number, (_, _, _, text) in enumerate(DEMO_WRITES):
        result = await create.create(Note(text, number), index_base=base)
        created.append(result.unwrap())

    update = UpdateAction(store, clock=clock)
    edited = Note(created[1].payload.text + " (fixed)", created[1].payload.number)
    (await update.update(edited, created[1].record_identity)).unwrap()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="chronomesh",
        description="Query the demo record mesh by creation time.",
    )
    parser.add_argument("--start", required=True, help="YYYY-MM-DD or YYYY-MM-DDTHH")
    parser.add_argument("--end", default=None, help="range end; omit for a point query")
    parser.add_argument("--base", default=None, help="index base name")
    parser.add_argument("--log-level", default=None, help="override CHRONOMESH_LOG_LEVEL")
    parser.add_argument("--plain-logs", action="store_true", help="human-readable logs")
    return parser


async def run_query(args: argparse.Namespace, config: ChronoMeshConfig) -> int:
    start = FetchEntriesTime.parse(args.start)
    if start.is_err():
        print(f"Error: {start.error.message}", file=sys.stderr)
        return 2
    end = FetchEntriesTime.parse(args.end) if args.end else None
    if end is not None and end.is_err():
        print(f"Error: {end.error.message}", file=sys.stderr)
        return 2

    base = config.query.default_base if args.base is None else args.base
    checked = PathIndexer().check_base(base)
    if checked.is_err():
        print(f"Error: {checked.error.message}", file=sys.stderr)
        return 2
    store = InMemoryIndexStore()
    await seed_demo_store(store, base)

    collector = MetricsCollector()
    facade = TimeQueryFacade.from_store(store, config.query, collector)
    if end is None:
        result = await facade.fetch_by_time(start.value, Note, base)
    else:
        result = await facade.fetch_by_range(start.value, end.value, Note, base)

    if config.observability.metrics_enabled:
        logger.debug("Query metrics", prometheus=collector.export_prometheus())

    if result.is_err():
        print(f"Error: {result.error.message}", file=sys.stderr)
        return 1

    print(json.dumps([record.to_dict() for record in result.value], indent=2))
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    config_result = ChronoMeshConfig.from_env()
    if config_result.is_err():
        print(f"Configuration error: {config_result.error}", file=sys.stderr)
        return 2
    config = config_result.unwrap()

    validation = config.validate()
    if validation.is_err():
        print(f"Validation error: {validation.error}", file=sys.stderr)
        return 2

    level_name = (args.log_level or config.observability.log_level).upper()
    try:
        level = LogLevel.from_name(level_name)
    except KeyError:
        print(f"Unknown log level: {level_name}", file=sys.stderr)
        return 2
    setup_logging(level, json_output=config.observability.log_json and not args.plain_logs)

    return asyncio.run(run_query(args, config))


if __name__ == "__main__":
    sys.exit(main())
