#!/usr/bin/env python3
"""Load the service catalog from a JSON file.

The file holds a list of objects with the ``services`` table columns. Rows
are matched by ``slug``: existing services are updated, new ones inserted.
"""
from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
from pathlib import Path

from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from uredno.domain.catalog import service as catalog_service
from uredno.infra.logging import configure_logging
from uredno.settings import settings


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Insert or update catalog services from JSON.")
    parser.add_argument("path", help="JSON file with a list of services.")
    parser.add_argument(
        "--database-url",
        default=None,
        help="Database URL to connect to. Defaults to DATABASE_URL or uredno.settings.",
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
    with open(args.path, "r", encoding="utf-8") as handle:
        payload = json.load(handle)
    if not isinstance(payload, list):
        raise ValueError("expected a JSON list of services")

    engine = create_async_engine(_resolve_database_url(args.database_url), pool_pre_ping=True)
    session_factory = async_sessionmaker(engine, expire_on_commit=False)
    try:
        async with session_factory() as session:
            inserted, updated = await catalog_service.upsert_services(session, payload)
    finally:
        await engine.dispose()

    print(f"Services inserted: {inserted}, updated: {updated}")
    return 0


def main() -> int:
    configure_logging()
    try:
        return asyncio.run(_run())
    except KeyboardInterrupt:
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
