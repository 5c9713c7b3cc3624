"""
sentiment.py — Sentiment scoring for customer feedback text.

Pipeline
────────
1. Preprocess: collapse whitespace, cap runs of !?. at two, and turn
   shouted ALL-CAPS words (> 3 letters) into Capitalised words.
2. Lexical pass: every token is looked up in the VADER lexicon
   (vaderSentiment). A token preceded within three words by a negator
   ("not", "never", "don't", ...) has its weight flipped and damped, the
   same scalar VADER itself uses.
3. raw_score = sum of token weights; normalized_score = raw / 4 (the
   largest magnitude in the lexicon), clamped to [-1, 1].
4. Telecom boosters: every matching phrase in _TELECOM_BOOSTERS adds its
   weight; the average weight is blended in at 20% and the result clamped.
5. Confidence from text quality + number of scored tokens, penalised for
   very short text.

Never raises. Empty input → score 0, confidence 0. Any internal failure
→ score 0, confidence 0.1.

USAGE
─────
    from carepulse.services.sentiment import analyze_sentiment

    result = analyze_sentiment("Terrible network outage in NYC! Been down for 3 hours.")
    # result.score       → negative, in [-1, 1]
    # result.confidence  → in [0, 1]
    # result.details.negation_detected → False

TESTING
────────
    pytest tests/test_sentiment.py -v
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Literal

from vaderSentiment.vaderSentiment import N_SCALAR, SentimentIntensityAnalyzer, negated

logger = logging.getLogger(__name__)

TextQuality = Literal["high", "medium", "low"]

# ── Tuning ────────────────────────────────────────────────────────────────────

_MAX_TOKEN_WEIGHT = 4.0      # VADER lexicon valences lie in [-4, 4]
_BOOST_BLEND      = 0.2
_NEGATION_SPAN    = 3        # how many preceding tokens a negator reaches

# Domain phrases → signed weight. Matched on word boundaries, case-insensitive.
_TELECOM_BOOSTERS: dict[str, float] = {
    "outage":        -0.3,
    "down":          -0.25,
    "dropped":       -0.25,
    "disconnected":  -0.25,
    "no signal":     -0.3,
    "no service":    -0.3,
    "slow":          -0.2,
    "lagging":       -0.2,
    "buffering":     -0.2,
    "throttled":     -0.25,
    "congested":     -0.2,
    "terrible":      -0.25,
    "worst":         -0.25,
    "unusable":      -0.3,
    "pathetic":      -0.25,
    "garbage":       -0.25,
    "fixed":          0.3,
    "resolved":       0.3,
    "restored":       0.3,
    "working again":  0.3,
    "working":        0.2,
    "better":         0.2,
    "improved":       0.25,
    "excellent":      0.25,
    "amazing":        0.25,
    "fantastic":      0.25,
    "reliable":       0.2,
    "fast":           0.2,
}

_BOOSTER_PATTERNS = [
    (re.compile(rf"\b{re.escape(phrase)}\b"), weight)
    for phrase, weight in _TELECOM_BOOSTERS.items()
]

_WS_RE       = re.compile(r"\s+")
_PUNCT_RUN   = re.compile(r"([!?.]){3,}")
_SHOUT_RE    = re.compile(r"^[A-Z]+$")
_TOKEN_RE    = re.compile(r"[a-z0-9]+(?:['’][a-z]+)?")
_EXCLAIM_RE  = re.compile(r"[!?]")


@dataclass
class SentimentDetails:
    total_tokens: int = 0
    scored_tokens: int = 0
    negation_detected: bool = False
    dominant_tokens: list[str] = field(default_factory=list)
    text_quality: TextQuality = "low"


@dataclass
class SentimentResult:
    score: float = 0.0              # -1 (very negative) → 1 (very positive)
    confidence: float = 0.0         # 0 → 1
    raw_score: float = 0.0          # summed token weights
    normalized_score: float = 0.0   # raw / max weight, clamped, before boosters
    details: SentimentDetails = field(default_factory=SentimentDetails)


@dataclass
class _Token:
    value: str
    weight: float
    negation: bool


@lru_cache(maxsize=1)
def _analyzer() -> SentimentIntensityAnalyzer:
    # Loads the lexicon file once per process.
    return SentimentIntensityAnalyzer()


def _clamp(value: float, lo: float = -1.0, hi: float = 1.0) -> float:
    return max(lo, min(hi, value))


# ── Steps ─────────────────────────────────────────────────────────────────────

def preprocess_text(text: str) -> str:
    """Normalise whitespace, runaway punctuation and shouting."""
    if not text or not isinstance(text, str):
        return ""

    cleaned = _WS_RE.sub(" ", text.strip())
    cleaned = _PUNCT_RUN.sub(r"\1\1", cleaned)

    words = []
    for word in cleaned.split(" "):
        if len(word) > 3 and _SHOUT_RE.match(word):
            word = word[0] + word[1:].lower()
        words.append(word)
    return " ".join(words)


def assess_text_quality(text: str) -> TextQuality:
    words = text.split()
    word_count = len(words)
    if word_count == 0:
        return "low"

    unique_ratio = len({w.lower() for w in words}) / word_count
    excessive_punctuation = len(_EXCLAIM_RE.findall(text)) > word_count * 0.3
    excessive_repetition = unique_ratio < 0.3

    if word_count < 3 or excessive_punctuation or excessive_repetition:
        return "low"
    if word_count >= 10 and len(text) >= 50 and unique_ratio > 0.6:
        return "high"
    return "medium"


def tokenize_and_score(text: str) -> list[_Token]:
    """Lexicon weight for every token, with negation applied."""
    lexicon = _analyzer().lexicon
    values = _TOKEN_RE.findall(text.lower())

    tokens = []
    for i, value in enumerate(values):
        weight = float(lexicon.get(value, 0.0))
        is_negated = False
        if weight:
            window = values[max(0, i - _NEGATION_SPAN):i]
            if window and negated(window):
                weight *= N_SCALAR
                is_negated = True
        tokens.append(_Token(value=value, weight=weight, negation=is_negated))
    return tokens


def apply_telecom_boosters(text: str, base_score: float) -> float:
    """Blend the mean weight of matched domain phrases into *base_score*."""
    lowered = text.lower()
    matched = [weight for pattern, weight in _BOOSTER_PATTERNS if pattern.search(lowered)]
    if not matched:
        return base_score
    avg_boost = sum(matched) / len(matched)
    return _clamp(base_score + avg_boost * _BOOST_BLEND)


def calculate_confidence(scored_tokens: int, quality: TextQuality, text_length: int) -> float:
    confidence = {"high": 0.8, "medium": 0.6, "low": 0.3}[quality]

    if scored_tokens > 5:
        confidence = min(0.95, confidence + 0.1)
    elif scored_tokens > 2:
        confidence = min(0.9, confidence + 0.05)
    elif scored_tokens == 0:
        confidence = max(0.2, confidence - 0.2)

    if text_length < 10:
        confidence *= 0.5
    elif text_length < 20:
        confidence *= 0.7

    return _clamp(confidence, 0.1, 0.95)


# ── Public entry points ───────────────────────────────────────────────────────

def analyze_sentiment(text: str) -> SentimentResult:
    """Score one piece of feedback. See module docstring for the contract."""
    if not text or not isinstance(text, str) or not text.strip():
        return SentimentResult()

    try:
        cleaned = preprocess_text(text)
        quality = assess_text_quality(cleaned)
        tokens = tokenize_and_score(cleaned)

        raw_score = sum(t.weight for t in tokens)
        normalized = _clamp(raw_score / _MAX_TOKEN_WEIGHT)
        score = _clamp(apply_telecom_boosters(cleaned, normalized))

        scored = [t for t in tokens if t.weight != 0]
        details = SentimentDetails(
            total_tokens=len(tokens),
            scored_tokens=len(scored),
            negation_detected=any(t.negation for t in tokens),
            dominant_tokens=[t.value for t in scored if abs(t.weight) >= 1][:5],
            text_quality=quality,
        )
        return SentimentResult(
            score=score,
            confidence=calculate_confidence(len(scored), quality, len(cleaned)),
            raw_score=raw_score,
            normalized_score=normalized,
            details=details,
        )
    except Exception as exc:
        logger.warning("Sentiment analysis failed (%s: %s)", type(exc).__name__, exc)
        return SentimentResult(confidence=0.1)


def analyze_sentiment_batch(texts: list[str]) -> list[SentimentResult]:
    if not isinstance(texts, list):
        return []
    return [analyze_sentiment(t) for t in texts]


def get_sentiment_label(score: float) -> str:
    """'positive' | 'neutral' | 'negative'"""
    if score > 0.15:
        return "positive"
    if score < -0.15:
        return "negative"
    return "neutral"


def get_confidence_label(confidence: float) -> str:
    if confidence >= 0.7:
        return "high"
    if confidence >= 0.4:
        return "medium"
    return "low"


def is_reliable_result(result: SentimentResult) -> bool:
    return (
        result.confidence >= 0.3
        and result.details.text_quality != "low"
        and result.details.total_tokens >= 2
    )
