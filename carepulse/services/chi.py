"""
chi.py — Customer Happiness Index (CHI).

CHI is the intensity-weighted mean sentiment of the signals detected in a
time window, rescaled from [-1, 1] to an integer in [0, 100]:

    avg   = Σ(sentiment × intensity) / Σ(intensity)
    score = round(((avg + 1) / 2) × 100), clamped to [0, 100]

No signals in the window → None ("no data"), never 0.

Results are cached per (window, area) for settings.chi_cache_ttl_seconds.
Writes do not invalidate the cache; a reading can be up to one TTL stale.
The trend computation always bypasses the cache.

USAGE
─────
    from carepulse.services.chi import calculate_chi, get_chi_trend

    score = await calculate_chi(db, window_minutes=60)              # all areas
    trend = await get_chi_trend(db, window_minutes=60, product_area="Network")
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional

from carepulse.core.cache import CHICacheKey, TTLCache, utc_now
from carepulse.core.config import settings
from carepulse.core.stores import SignalStore
from carepulse.models.signal import Signal

logger = logging.getLogger(__name__)


# ── Pure scoring functions ────────────────────────────────────────────────────

def weighted_sentiment(signals: Iterable[Signal]) -> Optional[float]:
    """Intensity-weighted mean sentiment, or None if there is nothing to weigh."""
    total_weighted = 0.0
    total_intensity = 0
    for signal in signals:
        intensity = signal.intensity or 1
        total_weighted += signal.sentiment * intensity
        total_intensity += intensity

    if total_intensity == 0:
        return None
    return total_weighted / total_intensity


def sentiment_to_chi(avg_sentiment: float) -> int:
    """Map [-1, 1] → [0, 100]."""
    # Half-up rounding, so a score sitting exactly on .5 goes up.
    return max(0, min(100, math.floor(((avg_sentiment + 1) / 2) * 100 + 0.5)))


def compute_chi(signals: Iterable[Signal]) -> Optional[int]:
    avg = weighted_sentiment(signals)
    return None if avg is None else sentiment_to_chi(avg)


# ── Engine ────────────────────────────────────────────────────────────────────

class CHIEngine:
    """Windowed CHI over a SignalStore, with a TTL cache and an injected clock."""

    def __init__(
        self,
        store: SignalStore,
        cache: Optional[TTLCache[int]] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._store = store
        self._clock = clock
        self._cache = cache if cache is not None else default_cache

    async def calculate(
        self,
        window_minutes: Optional[int] = None,
        product_area: Optional[str] = None,
        use_cache: bool = True,
    ) -> Optional[int]:
        window_minutes = window_minutes or settings.chi_default_window_minutes
        key = CHICacheKey(window_minutes, product_area)

        if use_cache:
            cached = self._cache.get(key)
            if cached is not None:
                return cached

        since = self._clock() - timedelta(minutes=window_minutes)
        signals = await self._store.query(since=since, product_area=product_area)
        score = compute_chi(signals)

        if score is not None:
            self._cache.put(key, score)
        return score

    async def trend(
        self,
        window_minutes: Optional[int] = None,
        product_area: Optional[str] = None,
    ) -> int:
        """
        Current CHI minus the CHI of the preceding window of equal length.

        0 when either window has no data.
        """
        window_minutes = window_minutes or settings.chi_default_window_minutes
        current = await self.calculate(window_minutes, product_area, use_cache=False)
        if current is None:
            return 0

        window = timedelta(minutes=window_minutes)
        current_start = self._clock() - window
        previous_signals = await self._store.query(
            since=current_start - window,
            until=current_start,
            product_area=product_area,
        )
        previous = compute_chi(previous_signals)
        if previous is None:
            return 0
        return current - previous


# Process-local cache shared by every engine built without an explicit one.
default_cache: TTLCache[int] = TTLCache(settings.chi_cache_ttl_seconds)


# ── Public entry points ───────────────────────────────────────────────────────

async def calculate_chi(
    db,
    window_minutes: Optional[int] = None,
    product_area: Optional[str] = None,
    use_cache: bool = True,
) -> Optional[int]:
    return await CHIEngine(SignalStore(db)).calculate(window_minutes, product_area, use_cache)


async def get_chi_trend(
    db,
    window_minutes: Optional[int] = None,
    product_area: Optional[str] = None,
) -> int:
    return await CHIEngine(SignalStore(db)).trend(window_minutes, product_area)


def clear_chi_cache() -> None:
    default_cache.clear()
