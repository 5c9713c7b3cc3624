"""
stores.py — Storage boundary over the MongoDB collections.

The processing engines never touch Motor directly; they go through these
thin repositories, which expose exactly the operations the pipeline needs
(insert / update / windowed query, bulk flag update, snapshot prune).
Anything that speaks the same subset of the Motor collection API works —
the tests pass an in-memory FakeDB.

Collections
───────────
  raw_events                   RawEvent documents (payload + processed flag)
  signals                      Signal documents
  signal_intensity_snapshots   IntensitySnapshot documents (append-only, pruned)
  product_areas                ProductArea reference data

Suggested indexes (scripts/seed_db.py creates them):
  signals:   detected_at, (product_area, detected_at)
  raw_events: (processed, fetched_at)
  signal_intensity_snapshots: (topic, product_area, snapshot_at)
"""

import logging
from datetime import datetime
from typing import Any, Iterable, NamedTuple, Optional

from bson import ObjectId

from carepulse.models.product_area import DEFAULT_PRODUCT_AREAS, ProductArea
from carepulse.models.raw_event import RawEvent
from carepulse.models.signal import Signal
from carepulse.models.snapshot import IntensitySnapshot

logger = logging.getLogger(__name__)


class ReferenceDataError(RuntimeError):
    """Required reference data (product areas) is missing. Fatal for the caller."""


def _oid(value: Any) -> Any:
    """Convert a string id back to ObjectId when it looks like one."""
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return value


def _with_id(doc: dict) -> dict:
    doc = dict(doc)
    if "_id" in doc:
        doc["id"] = str(doc.pop("_id"))
    return doc


def _range(since: Optional[datetime], until: Optional[datetime]) -> dict:
    cond: dict = {}
    if since is not None:
        cond["$gte"] = since
    if until is not None:
        cond["$lt"] = until
    return cond


# ── Raw events ────────────────────────────────────────────────────────────────

class UnprocessedBatch(NamedTuple):
    events: list[RawEvent]
    rejected_ids: list[str]   # docs that failed RawEvent validation


class RawEventStore:
    collection = "raw_events"

    def __init__(self, db):
        self._col = db[self.collection]

    async def insert(self, event: RawEvent) -> str:
        result = await self._col.insert_one(event.model_dump(exclude={"id"}))
        return str(result.inserted_id)

    async def fetch_unprocessed(self, limit: int) -> UnprocessedBatch:
        """
        Oldest-first batch of events that haven't been flagged yet.

        Documents that don't load as a RawEvent come back as `rejected_ids`
        so the caller can flag them with the rest of the batch.
        """
        cursor = self._col.find({"processed": False}).sort("fetched_at", 1).limit(limit)
        batch = UnprocessedBatch(events=[], rejected_ids=[])
        async for doc in cursor:
            try:
                batch.events.append(RawEvent(**_with_id(doc)))
            except Exception as exc:
                logger.warning("Skipping malformed raw event %s: %s", doc.get("_id"), exc)
                batch.rejected_ids.append(str(doc["_id"]))
        return batch

    async def mark_processed(self, event_ids: Iterable[str]) -> int:
        """Flag a whole batch in one write."""
        ids = [_oid(i) for i in event_ids]
        if not ids:
            return 0
        result = await self._col.update_many({"_id": {"$in": ids}}, {"$set": {"processed": True}})
        return result.modified_count

    async def count_unprocessed(self) -> int:
        return await self._col.count_documents({"processed": False})


# ── Signals ───────────────────────────────────────────────────────────────────

class SignalStore:
    collection = "signals"

    def __init__(self, db):
        self._col = db[self.collection]

    async def insert(self, signal: Signal) -> str:
        doc = signal.model_dump(exclude={"id"})
        result = await self._col.insert_one(doc)
        return str(result.inserted_id)

    async def update(self, signal_id: str, fields: dict) -> None:
        """Partial update of one stored signal."""
        await self._col.update_one({"_id": _oid(signal_id)}, {"$set": fields})

    async def query(
        self,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        product_area: Optional[str] = None,
        topic: Optional[str] = None,
    ) -> list[Signal]:
        """Signals with since <= detected_at < until, newest first."""
        query: dict = {}
        window = _range(since, until)
        if window:
            query["detected_at"] = window
        if product_area is not None:
            query["product_area"] = product_area
        if topic is not None:
            query["topic"] = topic

        signals = []
        async for doc in self._col.find(query).sort("detected_at", -1):
            try:
                signals.append(Signal(**_with_id(doc)))
            except Exception as exc:
                logger.warning("Skipping malformed signal doc %s: %s", doc.get("_id"), exc)
        return signals

    async def count(self, since: Optional[datetime] = None, until: Optional[datetime] = None) -> int:
        window = _range(since, until)
        return await self._col.count_documents({"detected_at": window} if window else {})


# ── Snapshots ─────────────────────────────────────────────────────────────────

class SnapshotStore:
    collection = "signal_intensity_snapshots"

    def __init__(self, db):
        self._col = db[self.collection]

    async def insert_many(self, snapshots: list[IntensitySnapshot]) -> int:
        if not snapshots:
            return 0
        await self._col.insert_many([s.model_dump(exclude={"id"}) for s in snapshots])
        return len(snapshots)

    async def delete_older_than(self, cutoff: datetime) -> int:
        result = await self._col.delete_many({"snapshot_at": {"$lt": cutoff}})
        return result.deleted_count

    async def query(
        self,
        topic: str,
        product_area: Optional[str],
        since: Optional[datetime] = None,
    ) -> list[IntensitySnapshot]:
        """Snapshots for one issue key, oldest first."""
        query: dict = {"topic": topic, "product_area": product_area}
        if since is not None:
            query["snapshot_at"] = {"$gte": since}
        return [
            IntensitySnapshot(**_with_id(doc))
            async for doc in self._col.find(query).sort("snapshot_at", 1)
        ]


# ── Reference data ────────────────────────────────────────────────────────────

class ProductAreaStore:
    collection = "product_areas"

    def __init__(self, db, allow_defaults: bool = False):
        self._col = db[self.collection]
        self._allow_defaults = allow_defaults

    async def list_all(self) -> list[ProductArea]:
        """
        All configured product areas.

        Raises ReferenceDataError when the collection is empty, unless the
        store was built with allow_defaults=True (read paths that only need
        colours and can live with the built-in rules).
        """
        areas = [ProductArea(**_with_id(doc)) async for doc in self._col.find({})]
        if areas:
            return areas
        if self._allow_defaults:
            return list(DEFAULT_PRODUCT_AREAS)
        raise ReferenceDataError(
            "No product areas configured — run scripts/seed_db.py or load reference data"
        )

    async def get_by_name(self, name: str) -> Optional[ProductArea]:
        for area in await self.list_all():
            if area.name == name:
                return area
        return None
