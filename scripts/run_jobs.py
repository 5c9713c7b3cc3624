#!/usr/bin/env python3
"""
run_jobs.py — Run one CarePulse batch operation from the command line.

This is what the scheduler (cron, a k8s CronJob, ...) invokes. Each call is
one discrete batch; nothing keeps running in between.

Usage (from the repo root):
    python scripts/run_jobs.py ingest [--limit 100]
    python scripts/run_jobs.py snapshot
    python scripts/run_jobs.py rising [--lookback 60]
    python scripts/run_jobs.py chi [--window 60] [--area Network]

Suggested crontab:
    */5  * * * *  python scripts/run_jobs.py ingest
    */15 * * * *  python scripts/run_jobs.py snapshot

Every subcommand prints its result as JSON on stdout. Exit status is 1 when
MongoDB is unreachable or reference data is missing.
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(ROOT))

from dotenv import load_dotenv
load_dotenv(ROOT / ".env")

from carepulse.core.config import settings
from carepulse.core.database import create_client
from carepulse.core.stores import ReferenceDataError
from carepulse.services.chi import calculate_chi, get_chi_trend
from carepulse.services.ingestion import run_ingestion
from carepulse.services.velocity import capture_snapshot, get_rising_issues

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger("run_jobs")


async def _ingest(db, args) -> dict:
    return (await run_ingestion(db, batch_limit=args.limit)).model_dump(mode="json")


async def _snapshot(db, args) -> dict:
    return (await capture_snapshot(db)).model_dump(mode="json")


async def _rising(db, args) -> dict:
    return (await get_rising_issues(db, lookback_minutes=args.lookback)).model_dump(mode="json")


async def _chi(db, args) -> dict:
    score = await calculate_chi(db, window_minutes=args.window, product_area=args.area, use_cache=False)
    trend = await get_chi_trend(db, window_minutes=args.window, product_area=args.area)
    return {"score": score, "trend": trend, "window_minutes": args.window, "product_area": args.area}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run a CarePulse batch operation")
    sub = parser.add_subparsers(dest="command", required=True)

    ingest = sub.add_parser("ingest", help="Process pending raw events into signals")
    ingest.add_argument("--limit", type=int, default=settings.ingestion_batch_limit)
    ingest.set_defaults(handler=_ingest)

    snapshot = sub.add_parser("snapshot", help="Capture intensity snapshots and prune old ones")
    snapshot.set_defaults(handler=_snapshot)

    rising = sub.add_parser("rising", help="Rank rising issues")
    rising.add_argument("--lookback", type=int, default=settings.early_warning_lookback_minutes)
    rising.set_defaults(handler=_rising)

    chi = sub.add_parser("chi", help="Compute the happiness index")
    chi.add_argument("--window", type=int, default=settings.chi_default_window_minutes)
    chi.add_argument("--area", default=None, help="Product area name (default: all areas)")
    chi.set_defaults(handler=_chi)

    return parser


async def run(args) -> int:
    client = create_client()
    db = client[settings.mongo_db_name]
    try:
        await client.admin.command("ping")
    except Exception as exc:
        logger.error("Cannot connect to MongoDB: %s", exc)
        client.close()
        return 1

    try:
        result = await args.handler(db, args)
    except ReferenceDataError as exc:
        logger.error("%s", exc)
        return 1
    finally:
        client.close()

    print(json.dumps(result, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(run(build_parser().parse_args())))
