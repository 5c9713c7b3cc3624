"""
extractor.py — Turn a raw event payload into individual text items.

Each known source has its own payload shape (see models/raw_event.py) and
its own pure extraction function. Most sources produce one item per post,
article, comment or outage event; istheservicedown produces a single item
combining the status banner with the social mentions.

Extraction never raises:
  - an unknown source tag yields nothing (logged as a warning)
  - a payload of the wrong overall shape yields nothing
  - an individual malformed entry is skipped, the rest still come through
  - entries with no text are skipped

USAGE
─────
    from carepulse.services.extractor import extract_items

    for item in extract_items("downdetector", payload):
        print(item.text, item.geo)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterator, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from carepulse.models.raw_event import (
    CommunityDiscussion,
    CustomerComment,
    CustomerFeedbackPayload,
    DownDetectorComment,
    DownDetectorPayload,
    GeoLocation,
    NewsArticle,
    OutageEvent,
    OutageReportPayload,
    RedditPost,
    ServiceStatusPayload,
    SocialMention,
    SourceType,
)

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


@dataclass(frozen=True)
class ExtractedItem:
    """One unit of customer text pulled out of a raw event."""
    text: str
    geo: Optional[GeoLocation] = None


Extractor = Callable[[Any], Iterator[ExtractedItem]]


# ── Helpers ───────────────────────────────────────────────────────────────────

def _join(*parts: Optional[str], sep: str = " ") -> str:
    return sep.join(p.strip() for p in parts if p and p.strip())


def _as_list(payload: Any, key: str) -> list:
    """Accept either a bare list or a wrapper dict holding the list under *key*."""
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict) and isinstance(payload.get(key), list):
        return payload[key]
    return []


def _validated(model: Type[M], entries: list) -> Iterator[M]:
    """Yield each entry parsed as *model*, skipping the ones that don't fit."""
    for i, entry in enumerate(entries):
        if isinstance(entry, str) and "text" in model.model_fields:
            entry = {"text": entry}
        try:
            yield model.model_validate(entry)
        except ValidationError as exc:
            logger.debug("Skipping malformed %s entry #%d: %s", model.__name__, i, exc)


def _payload(model: Type[M], payload: Any) -> Optional[M]:
    if not isinstance(payload, dict):
        return None
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        logger.debug("Payload does not match %s: %s", model.__name__, exc)
        return None


def _item(text: str, geo: Optional[GeoLocation] = None) -> Optional[ExtractedItem]:
    text = text.strip()
    return ExtractedItem(text=text, geo=geo) if text else None


# ── Per-source extraction rules ───────────────────────────────────────────────

def _extract_reddit(payload: Any) -> Iterator[ExtractedItem]:
    for post in _validated(RedditPost, _as_list(payload, "posts")):
        if item := _item(_join(post.title, post.selftext)):
            yield item


def _extract_news(payload: Any) -> Iterator[ExtractedItem]:
    for article in _validated(NewsArticle, _as_list(payload, "articles")):
        if item := _item(_join(article.title, article.description)):
            yield item


def _extract_community(payload: Any) -> Iterator[ExtractedItem]:
    for discussion in _validated(CommunityDiscussion, _as_list(payload, "discussions")):
        if item := _item(_join(discussion.title, discussion.excerpt)):
            yield item


def _extract_outage_report(payload: Any) -> Iterator[ExtractedItem]:
    report = _payload(OutageReportPayload, payload)
    if report is None:
        return
    for event in _validated(OutageEvent, report.events):
        if item := _item(event.description or ""):
            yield item


def _extract_downdetector(payload: Any) -> Iterator[ExtractedItem]:
    report = _payload(DownDetectorPayload, payload)
    if report is None:
        return
    for comment in _validated(DownDetectorComment, report.user_comments):
        geo = GeoLocation(location=comment.location) if comment.location else None
        if item := _item(comment.text or "", geo):
            yield item


def _extract_customer_feedback(payload: Any) -> Iterator[ExtractedItem]:
    feedback = _payload(CustomerFeedbackPayload, payload)
    if feedback is None:
        return
    for comment in _validated(CustomerComment, feedback.comments):
        geo = None
        if comment.city and comment.state:
            geo = GeoLocation(city=comment.city, state=comment.state)
        if item := _item(comment.comment or "", geo):
            yield item


def _extract_service_status(payload: Any) -> Iterator[ExtractedItem]:
    status = _payload(ServiceStatusPayload, payload)
    if status is None:
        return
    mentions = _join(*(m.text for m in _validated(SocialMention, status.social_mentions)), sep="\n\n")
    if item := _item(_join(status.status_message, mentions, sep="\n\n")):
        yield item


def _extract_unknown(payload: Any) -> Iterator[ExtractedItem]:
    return iter(())


_EXTRACTORS: dict[SourceType, Extractor] = {
    SourceType.REDDIT:            _extract_reddit,
    SourceType.GOOGLE_NEWS:       _extract_news,
    SourceType.COMMUNITY:         _extract_community,
    SourceType.OUTAGE_REPORT:     _extract_outage_report,
    SourceType.DOWNDETECTOR:      _extract_downdetector,
    SourceType.CUSTOMER_FEEDBACK: _extract_customer_feedback,
    SourceType.ISTHESERVICEDOWN:  _extract_service_status,
}


# ── Public entry points ───────────────────────────────────────────────────────

def resolve_source(source: str) -> Optional[SourceType]:
    """Map a source tag to its SourceType, or None if we don't know it."""
    try:
        return SourceType(source)
    except ValueError:
        return None


def extractor_for(source: str) -> Extractor:
    source_type = resolve_source(source)
    if source_type is None:
        logger.warning("Unknown source type: %s", source)
        return _extract_unknown
    return _EXTRACTORS[source_type]


def extract_items(source: str, payload: Any) -> Iterator[ExtractedItem]:
    """
    Lazily yield the text items contained in one raw event payload.

    Anything unexpected while walking the payload ends the sequence early
    (items already yielded stand); it is logged, never raised.
    """
    extractor = extractor_for(source)
    try:
        yield from extractor(payload)
    except Exception as exc:
        logger.warning("Error extracting items from %s: %s", source, exc)
