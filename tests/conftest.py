"""
pytest configuration and shared fixtures for the CarePulse tests.

Key concern: tests must not require a live MongoDB. We achieve this by:
  1. Patching connect_to_mongo / close_mongo_connection to no-ops so
     FastAPI's lifespan doesn't try to reach a real database.
  2. Setting db_client.client = None (disconnected) so the health check
     reports "disconnected" and DB routes answer 503 unless a test
     overrides get_db.
  3. An in-memory FakeDB implementing the slice of the Motor collection
     API the stores use.
"""

import os
from datetime import datetime, timedelta, timezone
from itertools import count
from unittest.mock import AsyncMock, patch

import pytest
from bson import ObjectId
from httpx import ASGITransport, AsyncClient

# Set env vars BEFORE importing the app so Settings picks them up correctly
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("CRON_SECRET", "test-cron-secret")

CRON_SECRET = os.environ["CRON_SECRET"]


# ── In-memory Motor stand-in ──────────────────────────────────────────────────

class _Result:
    def __init__(self, **fields):
        self.__dict__.update(fields)


def _matches(doc: dict, query: dict) -> bool:
    for key, cond in query.items():
        value = doc
        for part in key.split("."):
            value = value.get(part) if isinstance(value, dict) else None

        if isinstance(cond, dict) and any(k.startswith("$") for k in cond):
            for op, arg in cond.items():
                if op == "$gte" and not (value is not None and value >= arg):
                    return False
                if op == "$lt" and not (value is not None and value < arg):
                    return False
                if op == "$in" and value not in arg:
                    return False
        elif value != cond:
            return False
    return True


class FakeCursor:
    def __init__(self, docs: list[dict]):
        self._docs = docs

    def sort(self, key: str, direction: int = 1):
        self._docs = sorted(self._docs, key=lambda d: d.get(key), reverse=direction < 0)
        return self

    def limit(self, n: int):
        self._docs = self._docs[:n]
        return self

    def __aiter__(self):
        self._iter = iter(self._docs)
        return self

    async def __anext__(self):
        try:
            return next(self._iter)
        except StopIteration:
            raise StopAsyncIteration


class FakeCollection:
    def __init__(self):
        self.docs: list[dict] = []

    def find(self, query: dict | None = None, projection=None):
        return FakeCursor([dict(d) for d in self.docs if _matches(d, query or {})])

    async def find_one(self, query: dict):
        for doc in self.docs:
            if _matches(doc, query):
                return dict(doc)
        return None

    async def insert_one(self, doc: dict):
        doc = dict(doc)
        doc.setdefault("_id", ObjectId())
        self.docs.append(doc)
        return _Result(inserted_id=doc["_id"])

    async def insert_many(self, docs: list[dict]):
        ids = [(await self.insert_one(d)).inserted_id for d in docs]
        return _Result(inserted_ids=ids)

    async def update_one(self, query: dict, update: dict, upsert: bool = False):
        for doc in self.docs:
            if _matches(doc, query):
                doc.update(update.get("$set", {}))
                return _Result(matched_count=1, modified_count=1)
        if upsert:
            await self.insert_one({**query, **update.get("$set", {})})
        return _Result(matched_count=0, modified_count=0)

    async def update_many(self, query: dict, update: dict):
        modified = 0
        for doc in self.docs:
            if _matches(doc, query):
                doc.update(update.get("$set", {}))
                modified += 1
        return _Result(matched_count=modified, modified_count=modified)

    async def delete_many(self, query: dict):
        keep = [d for d in self.docs if not _matches(d, query)]
        deleted = len(self.docs) - len(keep)
        self.docs = keep
        return _Result(deleted_count=deleted)

    async def count_documents(self, query: dict):
        return sum(1 for d in self.docs if _matches(d, query))


class FakeDB:
    def __init__(self):
        self._collections: dict[str, FakeCollection] = {}

    def __getitem__(self, name: str) -> FakeCollection:
        return self._collections.setdefault(name, FakeCollection())

    def __getattr__(self, name: str) -> FakeCollection:
        if name.startswith("_"):
            raise AttributeError(name)
        return self[name]


class FixedClock:
    """Injectable clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta):
        self.now = self.now + timedelta(**delta)


_ids = count(1)


def make_signal(**overrides):
    from carepulse.models.signal import Signal

    fields = {
        "topic": "network outage dallas",
        "keywords": ["network", "outage", "dallas"],
        "sentiment": -0.5,
        "intensity": 1,
        "detected_at": datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc),
        "source": "downdetector",
        "product_area": "Network",
    }
    fields.update(overrides)
    fields.setdefault("id", f"sig-{next(_ids)}")
    return Signal(**fields)


# ── Fixtures ──────────────────────────────────────────────────────────────────

@pytest.fixture(autouse=True)
async def mock_db():
    """
    Patch the MongoDB lifecycle for every test.

    - connect_to_mongo → no-op AsyncMock (startup doesn't attempt a real connection)
    - close_mongo_connection → no-op AsyncMock
    - db_client.client / db_client.db → None
    """
    with (
        patch("carepulse.main.connect_to_mongo", new_callable=AsyncMock),
        patch("carepulse.main.close_mongo_connection", new_callable=AsyncMock),
    ):
        import carepulse.core.database as db_module

        original_client = db_module.db_client.client
        original_db = db_module.db_client.db

        db_module.db_client.client = None
        db_module.db_client.db = None

        yield

        db_module.db_client.client = original_client
        db_module.db_client.db = original_db


@pytest.fixture(autouse=True)
def reset_process_state():
    """CHI cache and rate-limit counters are process-wide; isolate every test."""
    from carepulse.core.rate_limit import limiter
    from carepulse.services.chi import clear_chi_cache

    clear_chi_cache()
    limiter.reset()
    yield
    clear_chi_cache()


@pytest.fixture()
def fake_db():
    return FakeDB()


@pytest.fixture()
def seeded_db(fake_db):
    """FakeDB with the default product areas loaded."""
    from carepulse.models.product_area import DEFAULT_PRODUCT_AREAS

    fake_db["product_areas"].docs.extend(
        {"_id": a.id, **a.model_dump(exclude={"id"})} for a in DEFAULT_PRODUCT_AREAS
    )
    return fake_db


@pytest.fixture()
async def client(mock_db):  # noqa: ARG001: mock_db must run first
    """HTTPX async client against the app, with no database (degraded mode)."""
    from carepulse.main import app

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture()
async def api_client(seeded_db):
    """HTTPX async client with get_db overridden to the seeded FakeDB."""
    from carepulse.core.database import get_db
    from carepulse.main import app

    app.dependency_overrides[get_db] = lambda: seeded_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
