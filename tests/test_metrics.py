"""
test_metrics.py — Dashboard headline numbers over the in-memory FakeDB.

Run:
    pytest tests/test_metrics.py -v
"""

from datetime import datetime, timedelta, timezone

import pytest

from conftest import FixedClock, make_signal

from carepulse.core.stores import SignalStore
from carepulse.services.metrics import (
    format_minutes,
    get_dashboard_metrics,
    get_new_issues_count,
    get_positive_trends_count,
    get_signal_trend,
)

NOW = datetime(2026, 10, 19, 15, 0, tzinfo=timezone.utc)


async def _insert(db, *signals):
    store = SignalStore(db)
    for s in signals:
        await store.insert(s)


class TestSignalTrend:

    async def test_percentage_change(self, fake_db):
        await _insert(
            fake_db,
            make_signal(detected_at=NOW - timedelta(minutes=10)),
            make_signal(detected_at=NOW - timedelta(minutes=20)),
            make_signal(detected_at=NOW - timedelta(minutes=30)),
            make_signal(detected_at=NOW - timedelta(minutes=70)),
            make_signal(detected_at=NOW - timedelta(minutes=80)),
        )
        trend = await get_signal_trend(fake_db, hours=1, clock=FixedClock(NOW))
        assert (trend.current, trend.previous, trend.percentage_change) == (3, 2, 50)

    async def test_no_previous_is_zero_change(self, fake_db):
        await _insert(fake_db, make_signal(detected_at=NOW - timedelta(minutes=10)))
        trend = await get_signal_trend(fake_db, clock=FixedClock(NOW))
        assert trend.percentage_change == 0

    async def test_storage_error_falls_back_to_zeros(self, fake_db, monkeypatch):
        async def broken(*args, **kwargs):
            raise RuntimeError("connection reset")

        monkeypatch.setattr(SignalStore, "count", broken)
        trend = await get_signal_trend(fake_db, clock=FixedClock(NOW))
        assert (trend.current, trend.previous, trend.percentage_change) == (0, 0, 0)


class TestNewIssues:

    async def test_keys_missing_from_previous_window(self, fake_db):
        await _insert(
            fake_db,
            make_signal(topic="sim swap", detected_at=NOW - timedelta(minutes=5)),
            make_signal(detected_at=NOW - timedelta(minutes=15)),
            make_signal(product_area="Billing", detected_at=NOW - timedelta(minutes=25)),
            make_signal(detected_at=NOW - timedelta(minutes=75)),
        )
        issues = await get_new_issues_count(fake_db, clock=FixedClock(NOW))
        assert issues.new_issues_count == 2
        assert issues.total_issues == 3


class TestPositiveTrends:

    async def test_counts_improving_areas(self, seeded_db):
        await _insert(
            seeded_db,
            make_signal(product_area="Billing", sentiment=0.5, detected_at=NOW - timedelta(minutes=10)),
            make_signal(product_area="Billing", sentiment=-0.5, detected_at=NOW - timedelta(minutes=70)),
            make_signal(sentiment=-0.5, detected_at=NOW - timedelta(minutes=10)),
            make_signal(sentiment=0.5, detected_at=NOW - timedelta(minutes=70)),
        )
        assert await get_positive_trends_count(seeded_db, 60, clock=FixedClock(NOW)) == 1

    async def test_empty_store(self, fake_db):
        assert await get_positive_trends_count(fake_db, clock=FixedClock(NOW)) == 0


async def test_dashboard_metrics_bundle(fake_db):
    await _insert(fake_db, make_signal(detected_at=NOW - timedelta(minutes=10)))
    metrics = await get_dashboard_metrics(fake_db, hours=1, clock=FixedClock(NOW))
    assert metrics.signal_trend.current == 1
    assert metrics.new_issues.new_issues_count == 1
    assert metrics.positive_trends == 0


@pytest.mark.parametrize("minutes,expected", [
    (45, "45m"),
    (60, "1h"),
    (125, "2h 5m"),
    (1440, "1d"),
    (1620, "1d 3h"),
])
def test_format_minutes(minutes, expected):
    assert format_minutes(minutes) == expected
