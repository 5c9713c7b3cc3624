"""
ingestion.py — "Process pending raw events": raw_events → signals.

One run:
  1. Load product-area rules (missing reference data is fatal → ReferenceDataError).
  2. Fetch up to `batch_limit` unprocessed raw events, oldest first.
  3. For every event, sequentially, for every extracted item, sequentially:
       score sentiment → classify topic → look for a stored duplicate in the
       same area within the dedup window → merge into it, or insert new.
     A failure on one item is logged and counted; the batch carries on.
  4. Flag every fetched event processed in ONE bulk write.

Delivery is at-least-once: a crash before step 4 leaves events unflagged and
the next run re-derives their items. Re-derived items usually fold back into
the signal they created the first time, but only while it is still inside
the dedup window.

Two concurrent runs can both miss each other's fresh signal and insert
duplicates; runs are expected to be scheduled one at a time.

USAGE
─────
    from carepulse.services.ingestion import run_ingestion

    report = await run_ingestion(db, batch_limit=100)
    print(report.signals_created, report.signals_merged, report.failed)
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Optional, Sequence

from carepulse.core.config import settings
from carepulse.core.stores import ProductAreaStore, RawEventStore, SignalStore
from carepulse.models.metrics import IngestionReport, ProcessingStatus
from carepulse.models.product_area import ProductArea
from carepulse.models.raw_event import RawEvent
from carepulse.models.signal import Signal, SignalMeta
from carepulse.services.deduplicator import find_existing_duplicate, merge_signals
from carepulse.services.extractor import ExtractedItem, extract_items
from carepulse.services.sentiment import analyze_sentiment
from carepulse.services.topic_detector import detect_topic

logger = logging.getLogger(__name__)

_ORIGINAL_TEXT_LIMIT = 1000


def build_signal(item: ExtractedItem, event: RawEvent, areas: Sequence[ProductArea]) -> Signal:
    """Score and classify one extracted item. Not persisted."""
    sentiment = analyze_sentiment(item.text)
    topic = detect_topic(item.text, areas)

    return Signal(
        topic=topic.topic,
        keywords=topic.keywords,
        sentiment=sentiment.score,
        intensity=1,
        detected_at=event.fetched_at,
        source=event.source,
        product_area=topic.product_area,
        geo=item.geo,
        meta=SignalMeta(
            confidence=topic.confidence,
            sentiment_confidence=sentiment.confidence,
            raw_event_id=event.id,
            original_text=item.text[:_ORIGINAL_TEXT_LIMIT],
            keywords=topic.keywords,
        ),
    )


async def ingest_item(
    item: ExtractedItem,
    event: RawEvent,
    areas: Sequence[ProductArea],
    signals: SignalStore,
    window: Optional[timedelta] = None,
) -> bool:
    """
    Store one item as a signal, folding it into a recent duplicate if any.

    Returns True when it was merged, False when a new signal was inserted.
    Storage errors propagate to the caller.
    """
    window = window if window is not None else timedelta(minutes=settings.dedup_window_minutes)
    candidate = build_signal(item, event, areas)

    recent = await signals.query(
        since=candidate.detected_at - window,
        product_area=candidate.product_area,
    )
    existing = find_existing_duplicate(candidate, recent, window=window)

    if existing is None:
        await signals.insert(candidate)
        return False

    merged = merge_signals(existing, candidate)
    await signals.update(existing.id, {
        "sentiment": merged.sentiment,
        "intensity": merged.intensity,
        "detected_at": merged.detected_at,
        "meta": merged.meta.model_dump(),
    })
    logger.debug("Merged item from event %s into signal %s", event.id, existing.id)
    return True


async def run_ingestion(db, batch_limit: Optional[int] = None) -> IngestionReport:
    """
    Process one batch of pending raw events.

    Raises ReferenceDataError if no product areas are configured. Every other
    per-item failure is absorbed into the report's `failed` count.
    """
    batch_limit = batch_limit or settings.ingestion_batch_limit
    raw_events = RawEventStore(db)
    signals = SignalStore(db)

    areas = await ProductAreaStore(db).list_all()
    events, rejected_ids = await raw_events.fetch_unprocessed(batch_limit)
    if not events and not rejected_ids:
        return IngestionReport(message="No unprocessed events found")

    logger.info("Processing %d unprocessed events...", len(events) + len(rejected_ids))
    report = IngestionReport(total=len(events) + len(rejected_ids), rejected=len(rejected_ids))

    for event in events:
        for item in extract_items(event.source, event.payload):
            report.items_attempted += 1
            try:
                if await ingest_item(item, event, areas, signals):
                    report.signals_merged += 1
                else:
                    report.signals_created += 1
            except Exception as exc:
                report.failed += 1
                logger.warning("Failed to process item from event %s: %s", event.id, exc)

    event_ids = [e.id for e in events if e.id is not None] + rejected_ids
    try:
        await raw_events.mark_processed(event_ids)
        report.processed = len(event_ids)
    except Exception as exc:
        logger.error("Error marking events as processed: %s", exc)

    logger.info(
        "Ingestion done: %d events, %d items, %d created, %d merged, %d failed",
        report.total, report.items_attempted, report.signals_created,
        report.signals_merged, report.failed,
    )
    return report


async def get_processing_status(db) -> ProcessingStatus:
    """Backlog summary for the processing status endpoint."""
    unprocessed = await RawEventStore(db).count_unprocessed()
    total_signals = await SignalStore(db).count()
    return ProcessingStatus(
        unprocessed_events=unprocessed,
        total_signals=total_signals,
        status="ready" if unprocessed > 0 else "idle",
    )
