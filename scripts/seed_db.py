#!/usr/bin/env python3
"""
seed_db.py — Populate MongoDB with reference data and sample raw events.

Inserts:
  - The default product areas (Network, Mobile App, Billing, Home Internet)
    with their keyword rules. Ingestion refuses to run without these.
  - A handful of unprocessed raw events, one per source, so a fresh
    environment has something for `run_jobs.py ingest` to chew on.
  - The indexes the processing queries rely on.

Usage:
    python scripts/seed_db.py              # areas + sample events + indexes
    python scripts/seed_db.py --no-events  # reference data + indexes only

Safe to re-run: product areas are upserted by id, sample events are
replaced (they are tagged with meta.seed = true).
"""

import argparse
import asyncio
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(ROOT))

from dotenv import load_dotenv
load_dotenv(ROOT / ".env")

from carepulse.core.config import settings
from carepulse.core.database import create_client
from carepulse.models.product_area import DEFAULT_PRODUCT_AREAS


def _sample_events(now: datetime) -> list[dict]:
    def event(source: str, payload, minutes_ago: int) -> dict:
        return {
            "source": source,
            "payload": payload,
            "fetched_at": now - timedelta(minutes=minutes_ago),
            "processed": False,
            "meta": {"seed": True},
        }

    return [
        event("downdetector", {"user_comments": [
            {"text": "Network outage in Dallas, 5G is completely down", "location": "Dallas, TX"},
            {"text": "No signal at all in Dallas since this morning", "location": "Dallas, TX"},
            {"text": "Network down in Dallas again, no service", "location": "Plano, TX"},
        ]}, 40),
        event("reddit", [
            {"title": "App keeps crashing on login", "selftext": "Every time I open the app it crashes."},
            {"title": "Love the new 5G speeds", "selftext": "Downloads are fast and reliable now."},
        ], 35),
        event("customer-feedback", {"comments": [
            {"comment": "I was overcharged on my bill this month", "city": "Seattle", "state": "WA"},
            {"comment": "Support fixed my billing issue quickly, excellent service", "city": "Austin", "state": "TX"},
        ]}, 30),
        event("google-news", [
            {"title": "Carrier reports widespread network outage", "description": "Customers across Texas report dropped calls."},
        ], 25),
        event("tmobile-community", [
            {"title": "Home internet gateway keeps rebooting", "excerpt": "My 5G home router drops wifi every hour."},
        ], 20),
        event("outage-report", {
            "events": [{"description": "Mobile data outage reported in Houston"}],
            "social_mentions": ["anyone else down in Houston?"],
        }, 15),
        event("istheservicedown", {
            "status_message": "Users are reporting problems with mobile internet",
            "social_mentions": [{"text": "no LTE in Chicago for an hour"}],
        }, 10),
    ]


async def seed(with_events: bool) -> None:
    print("Connecting to MongoDB...")
    client = create_client()
    db = client[settings.mongo_db_name]

    try:
        await client.admin.command("ping")
        print(f"Connected ({settings.mongo_db_name}).")

        # ─── Reference data ───────────────────────────────────────────────────
        for area in DEFAULT_PRODUCT_AREAS:
            await db.product_areas.update_one(
                {"_id": area.id},
                {"$set": area.model_dump(exclude={"id"})},
                upsert=True,
            )
        print(f"Upserted {len(DEFAULT_PRODUCT_AREAS)} product areas.")

        # ─── Sample raw events ────────────────────────────────────────────────
        if with_events:
            deleted = await db.raw_events.delete_many({"meta.seed": True})
            print(f"Removed {deleted.deleted_count} existing seed events.")
            result = await db.raw_events.insert_many(_sample_events(datetime.now(timezone.utc)))
            print(f"Inserted {len(result.inserted_ids)} raw events.")

        # ─── Indexes ──────────────────────────────────────────────────────────
        await db.signals.create_index([("detected_at", -1)])
        await db.signals.create_index([("product_area", 1), ("detected_at", -1)])
        await db.raw_events.create_index([("processed", 1), ("fetched_at", 1)])
        await db.signal_intensity_snapshots.create_index(
            [("topic", 1), ("product_area", 1), ("snapshot_at", 1)]
        )
        await db.product_areas.create_index([("name", 1)], unique=True)
        print("Indexes ensured.")

        print("\nSeed complete! Pending raw events by source:")
        pipeline = [
            {"$match": {"processed": False}},
            {"$group": {"_id": "$source", "count": {"$sum": 1}}},
        ]
        async for doc in db.raw_events.aggregate(pipeline):
            print(f"  {doc['_id']}: {doc['count']}")

    finally:
        client.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed CarePulse reference data")
    parser.add_argument("--no-events", action="store_true", help="Skip the sample raw events")
    asyncio.run(seed(with_events=not parser.parse_args().no_events))
