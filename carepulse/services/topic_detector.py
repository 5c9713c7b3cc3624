"""
topic_detector.py — Keyword extraction and product-area classification.

Keywords are the lowercase, de-duplicated, non-stopword tokens of the text
in order of first appearance (digits kept, so "5g" / "4g" survive). The
product area is the one whose keyword rules match the most keywords, where
a keyword matches a rule on equality or substring in either direction.

    confidence = matched keywords / extracted keywords   (capped at 1)

Below 0.2 the text is filed under "General" with confidence 0.

USAGE
─────
    from carepulse.services.topic_detector import detect_topic

    result = detect_topic("Network outage in Dallas, 5G is completely down")
    # result.product_area → "Network"
    # result.topic        → "network outage dallas"
    # result.keywords     → ["network", "outage", "dallas", "5g", "down"]
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Optional, Sequence

from carepulse.models.product_area import DEFAULT_PRODUCT_AREAS, GENERAL_AREA, ProductArea

logger = logging.getLogger(__name__)

MIN_AREA_CONFIDENCE = 0.2
_TOPIC_KEYWORDS = 3
_FALLBACK_TOPIC_WORDS = 5

_WORD_RE = re.compile(r"[a-z0-9]+(?:[-'’][a-z0-9]+)*")

_STOPWORDS = frozenset({
    "a", "about", "above", "absolutely", "actually", "after", "again", "against",
    "ago", "all", "almost", "along", "already", "also", "although", "always", "am",
    "among", "an", "and", "another", "any", "anyone", "anything", "anyway", "are",
    "aren't", "around", "as", "at", "away", "back", "be", "because", "been",
    "before", "being", "below", "between", "both", "but", "by", "can", "can't",
    "cannot", "could", "couldn't", "completely", "did", "didn't", "do", "does",
    "doesn't", "doing", "don't", "during", "each", "either", "else", "enough",
    "even", "ever", "every", "everyone", "everything", "few", "for", "from",
    "further", "get", "gets", "getting", "got", "gotten", "had", "hadn't", "has",
    "hasn't", "have", "haven't", "having", "he", "her", "here", "hers", "herself",
    "him", "himself", "his", "how", "however", "i", "i'd", "i'll", "i'm", "i've",
    "if", "im", "in", "into", "is", "isn't", "it", "it's", "its", "itself", "ive",
    "just", "keep", "keeps", "kind", "know", "last", "least", "less", "let", "let's",
    "like", "literally", "lot", "made", "make", "many", "may", "maybe", "me",
    "might", "mine", "more", "most", "much", "must", "my", "myself", "never",
    "no", "nor", "not", "nothing", "now", "of", "off", "often", "oh", "ok", "okay",
    "on", "once", "one", "only", "or", "other", "others", "our", "ours",
    "ourselves", "out", "over", "own", "please", "pretty", "quite", "rather",
    "really", "right", "said", "same", "say", "says", "see", "seem", "seems",
    "several", "shall", "she", "should", "shouldn't", "since", "so", "some",
    "someone", "something", "sometimes", "still", "such", "sure", "than", "that",
    "that's", "the", "their", "theirs", "them", "themselves", "then", "there",
    "there's", "these", "they", "they're", "thing", "things", "this", "those",
    "though", "through", "thru", "to", "today", "too", "totally", "toward",
    "under", "until", "upon", "us", "use", "used", "using", "very", "via", "was",
    "wasn't", "way", "we", "we're", "we've", "well", "were", "weren't", "what",
    "what's", "whatever", "when", "where", "whether", "which", "while", "who",
    "whole", "whom", "whose", "why", "will", "with", "within", "without", "won't",
    "would", "wouldn't", "yes", "yet", "you", "you're", "you've", "your", "yours",
    "yourself", "yourselves",
})


@dataclass
class TopicResult:
    topic: str = ""
    keywords: list[str] = field(default_factory=list)
    product_area: str = GENERAL_AREA
    confidence: float = 0.0


def extract_keywords(text: str) -> list[str]:
    """Lowercase, stopword-free, de-duplicated tokens in order of appearance."""
    if not text or not isinstance(text, str):
        return []

    seen: dict[str, None] = {}
    for word in _WORD_RE.findall(text.lower()):
        word = word.replace("’", "'")
        if len(word) < 2 or word in _STOPWORDS:
            continue
        seen.setdefault(word, None)
    return list(seen)


def _keyword_matches(keyword: str, rules: Sequence[str]) -> bool:
    return any(keyword == rule or rule in keyword or keyword in rule for rule in rules)


def match_product_area(
    keywords: Sequence[str],
    areas: Optional[Sequence[ProductArea]] = None,
    min_confidence: float = MIN_AREA_CONFIDENCE,
) -> tuple[str, float]:
    """
    Pick the product area with the most matching keywords.

    Ties go to the area listed first. Returns (area name, confidence), or
    ("General", 0.0) when nothing clears *min_confidence*.
    """
    if not keywords:
        return GENERAL_AREA, 0.0
    if not areas:
        areas = DEFAULT_PRODUCT_AREAS

    best_area, best_score = GENERAL_AREA, 0
    for area in areas:
        rules = [r.lower() for r in area.keyword_rules]
        score = sum(1 for kw in keywords if _keyword_matches(kw, rules))
        if score > best_score:
            best_area, best_score = area.name, score

    confidence = min(1.0, best_score / len(keywords)) if best_score else 0.0
    if confidence < min_confidence:
        return GENERAL_AREA, 0.0
    return best_area, confidence


def build_topic(keywords: Sequence[str], text: str) -> str:
    """Top keywords joined, or the opening words of the text if there are none."""
    if not keywords:
        return " ".join(text.split()[:_FALLBACK_TOPIC_WORDS]).lower()
    return " ".join(keywords[:_TOPIC_KEYWORDS])


def detect_topic(text: str, areas: Optional[Sequence[ProductArea]] = None) -> TopicResult:
    """Classify one piece of feedback. Never raises."""
    if not text or not isinstance(text, str) or not text.strip():
        return TopicResult()

    try:
        keywords = extract_keywords(text)
        area, confidence = match_product_area(keywords, areas)
        return TopicResult(
            topic=build_topic(keywords, text),
            keywords=keywords,
            product_area=area,
            confidence=confidence,
        )
    except Exception as exc:
        logger.warning("Topic detection failed (%s: %s)", type(exc).__name__, exc)
        return TopicResult()


def detect_topic_batch(
    texts: list[str], areas: Optional[Sequence[ProductArea]] = None
) -> list[TopicResult]:
    return [detect_topic(t, areas) for t in texts]
