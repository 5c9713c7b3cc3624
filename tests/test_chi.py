"""
test_chi.py — Customer Happiness Index scoring, TTL cache and trend.

Run:
    pytest tests/test_chi.py -v
"""

from datetime import datetime, timedelta, timezone

import pytest

from conftest import FixedClock, make_signal

from carepulse.core.cache import CHICacheKey, TTLCache
from carepulse.core.stores import SignalStore
from carepulse.services.chi import (
    CHIEngine,
    calculate_chi,
    compute_chi,
    sentiment_to_chi,
    weighted_sentiment,
)

NOW = datetime(2026, 10, 19, 15, 0, tzinfo=timezone.utc)


async def _store_signals(db, *signals):
    store = SignalStore(db)
    for signal in signals:
        await store.insert(signal)
    return store


# ── Pure scoring ─────────────────────────────────────────────────────────────

class TestScoring:

    def test_weighted_scenario_is_27(self):
        signals = [make_signal(sentiment=-0.8, intensity=10), make_signal(sentiment=0.2, intensity=5)]
        assert weighted_sentiment(signals) == pytest.approx(-7 / 15)
        assert compute_chi(signals) == 27

    def test_no_signals_is_none_not_zero(self):
        assert compute_chi([]) is None

    @pytest.mark.parametrize("avg,score", [(-1.0, 0), (1.0, 100), (0.0, 50), (0.5, 75), (-0.5, 25)])
    def test_mapping(self, avg, score):
        assert sentiment_to_chi(avg) == score

    def test_half_rounds_up(self):
        assert sentiment_to_chi(-0.25) == 38  # 37.5
        assert sentiment_to_chi(0.25) == 63   # 62.5

    def test_out_of_range_clamped(self):
        assert sentiment_to_chi(5.0) == 100
        assert sentiment_to_chi(-5.0) == 0

    def test_result_is_int_in_range(self):
        for s in (-1.0, -0.33, 0.0, 0.77, 1.0):
            score = compute_chi([make_signal(sentiment=s)])
            assert isinstance(score, int)
            assert 0 <= score <= 100


# ── TTL cache ─────────────────────────────────────────────────────────────────

class TestTTLCache:

    def test_hit_then_expire(self):
        clock = FixedClock(NOW)
        cache = TTLCache(300, clock=clock)
        key = CHICacheKey(60, "Network")

        cache.put(key, 42)
        clock.advance(seconds=299)
        assert cache.get(key) == 42
        clock.advance(seconds=1)
        assert cache.get(key) is None
        assert len(cache) == 0

    def test_keys_are_distinct_per_window_and_area(self):
        cache = TTLCache(300, clock=FixedClock(NOW))
        cache.put(CHICacheKey(60), 10)
        cache.put(CHICacheKey(60, "Billing"), 20)
        cache.put(CHICacheKey(30), 30)
        assert cache.get(CHICacheKey(60)) == 10
        assert cache.get(CHICacheKey(60, "Billing")) == 20
        assert cache.get(CHICacheKey(30)) == 30

    def test_stats_and_invalidate(self):
        cache = TTLCache(300, clock=FixedClock(NOW))
        cache.put("k", 1)
        cache.get("k")
        cache.get("missing")
        stats = cache.stats()
        assert (stats.entries, stats.hits, stats.misses) == (1, 1, 1)
        assert stats.hit_rate == 0.5

        cache.invalidate("k")
        assert cache.get("k") is None
        cache.clear()
        assert len(cache) == 0


# ── Engine over a store ───────────────────────────────────────────────────────

class TestCHIEngine:

    async def test_window_scenario(self, fake_db):
        store = await _store_signals(
            fake_db,
            make_signal(sentiment=-0.8, intensity=10, detected_at=NOW - timedelta(minutes=10)),
            make_signal(sentiment=0.2, intensity=5, detected_at=NOW - timedelta(minutes=50)),
            make_signal(sentiment=1.0, intensity=50, detected_at=NOW - timedelta(minutes=90)),
        )
        engine = CHIEngine(store, cache=TTLCache(300), clock=FixedClock(NOW))
        assert await engine.calculate(60) == 27

    async def test_empty_window_is_none(self, fake_db):
        engine = CHIEngine(SignalStore(fake_db), cache=TTLCache(300), clock=FixedClock(NOW))
        assert await engine.calculate(60) is None

    async def test_area_filter(self, fake_db):
        store = await _store_signals(
            fake_db,
            make_signal(sentiment=-1.0, detected_at=NOW - timedelta(minutes=5)),
            make_signal(sentiment=1.0, product_area="Billing", detected_at=NOW - timedelta(minutes=5)),
        )
        engine = CHIEngine(store, cache=TTLCache(300), clock=FixedClock(NOW))
        assert await engine.calculate(60, "Billing") == 100
        assert await engine.calculate(60, "Network") == 0
        assert await engine.calculate(60) == 50

    async def test_cached_until_ttl(self, fake_db):
        clock = FixedClock(NOW)
        store = await _store_signals(fake_db, make_signal(sentiment=-1.0, detected_at=NOW))
        engine = CHIEngine(store, cache=TTLCache(300, clock=clock), clock=clock)
        assert await engine.calculate(60) == 0

        await store.insert(make_signal(sentiment=1.0, detected_at=NOW))
        clock.advance(seconds=60)
        assert await engine.calculate(60) == 0                  # stale but within TTL
        assert await engine.calculate(60, use_cache=False) == 50

        clock.advance(seconds=300)
        assert await engine.calculate(60) == 50

    async def test_none_is_not_cached(self, fake_db):
        clock = FixedClock(NOW)
        store = SignalStore(fake_db)
        engine = CHIEngine(store, cache=TTLCache(300, clock=clock), clock=clock)
        assert await engine.calculate(60) is None

        await store.insert(make_signal(sentiment=0.0, detected_at=NOW))
        assert await engine.calculate(60) == 50

    async def test_trend(self, fake_db):
        store = await _store_signals(
            fake_db,
            make_signal(sentiment=0.6, detected_at=NOW - timedelta(minutes=20)),    # current → 80
            make_signal(sentiment=-0.2, detected_at=NOW - timedelta(minutes=80)),   # previous → 40
        )
        engine = CHIEngine(store, cache=TTLCache(300), clock=FixedClock(NOW))
        assert await engine.trend(60) == 40

    async def test_trend_zero_without_previous_data(self, fake_db):
        store = await _store_signals(fake_db, make_signal(sentiment=0.6, detected_at=NOW))
        engine = CHIEngine(store, cache=TTLCache(300), clock=FixedClock(NOW))
        assert await engine.trend(60) == 0

    async def test_trend_bypasses_cache(self, fake_db):
        cache = TTLCache(300)
        cache.put(CHICacheKey(60), 99)
        store = await _store_signals(
            fake_db,
            make_signal(sentiment=0.0, detected_at=NOW - timedelta(minutes=10)),
            make_signal(sentiment=0.0, detected_at=NOW - timedelta(minutes=70)),
        )
        engine = CHIEngine(store, cache=cache, clock=FixedClock(NOW))
        assert await engine.trend(60) == 0

    async def test_module_entry_point(self, fake_db):
        await _store_signals(fake_db, make_signal(sentiment=-0.2, detected_at=datetime.now(timezone.utc)))
        assert await calculate_chi(fake_db, window_minutes=60) == 40
