#!/usr/bin/env python3
from __future__ import annotations

import argparse
import asyncio
import os
import sys
from datetime import date
from pathlib import Path

from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from uredno.domain.availability import grid
from uredno.domain.availability.service import local_now
from uredno.infra.logging import configure_logging
from uredno.settings import settings

SEED_TIMEOUT_SECONDS = 60.0


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create open availability cells for a date range.")
    parser.add_argument(
        "--database-url",
        default=None,
        help="Database URL to connect to. Defaults to DATABASE_URL or uredno.settings.",
    )
    parser.add_argument(
        "--start",
        default=None,
        help="First date to seed (YYYY-MM-DD). Defaults to today in the configured timezone.",
    )
    parser.add_argument(
        "--days",
        type=int,
        default=settings.availability_horizon_days,
        help="Number of calendar days to cover; Sundays are skipped.",
    )
    parser.add_argument(
        "--teams",
        type=int,
        default=settings.team_count,
        help="Number of teams per slot.",
    )
    return parser.parse_args()


def _resolve_database_url(cli_value: str | None) -> str:
    if cli_value:
        return cli_value
    env_value = os.getenv("DATABASE_URL")
    if env_value:
        return env_value
    return settings.database_url


async def _run() -> int:
    args = _parse_args()
    if args.days < 1:
        raise ValueError("--days must be at least 1")
    if args.teams < 1:
        raise ValueError("--teams must be at least 1")
    start = date.fromisoformat(args.start) if args.start else local_now().date()

    engine = create_async_engine(_resolve_database_url(args.database_url), pool_pre_ping=True)
    session_factory = async_sessionmaker(engine, expire_on_commit=False)
    try:
        async with session_factory() as session:
            created = await grid.seed_grid(
                session,
                start=start,
                days=args.days,
                team_numbers=list(range(1, args.teams + 1)),
                timeout=SEED_TIMEOUT_SECONDS,
            )
    finally:
        await engine.dispose()

    print(f"Seeded {created} availability cells from {start.isoformat()} for {args.days} days")
    return 0


def main() -> int:
    configure_logging()
    try:
        return asyncio.run(_run())
    except KeyboardInterrupt:
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
