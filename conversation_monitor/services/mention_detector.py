"""
Brand Mention Detection Service

Scans assistant responses for a brand's name and monitored keywords and
scores every whole-word hit:

- mention_type: recommendation / comparison / indirect / direct (rule table)
- sentiment: lexicon score over the surrounding window, clamped to [-1, 1]
- relevance: how densely the term's words recur in the window
- confidence: fixed default unless an estimator is injected

Keywords come from user-managed brand configuration, so matching is a plain
linear substring scan. Nothing user-supplied is ever compiled as a pattern.
"""

import logging
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional

from conversation_monitor.config import (
    DEFAULT_MENTION_CONFIDENCE,
    MAX_MATCHES_PER_TERM,
    MENTION_CONTEXT_RADIUS,
)
from conversation_monitor.services.analysis_config import AnalysisConfig, get_analysis_config

logger = logging.getLogger(__name__)

POSITIVE_THRESHOLD = 0.1
NEGATIVE_THRESHOLD = -0.1
BASE_RELEVANCE = 0.5
RELEVANCE_STEP = 0.1

ConfidenceEstimator = Callable[[str, str], float]


@dataclass(frozen=True)
class DetectedMention:
    """A scored, classified occurrence of a search term."""
    term: str
    mention_text: str
    context: str
    position: int
    mention_type: str
    sentiment_score: float
    sentiment_label: str
    relevance_score: float
    confidence: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ---------------------------------------------------------------------------
# Scoring helpers
# ---------------------------------------------------------------------------

def fold_case(text: str) -> str:
    """Lowercase ``text`` one character at a time without changing its length.

    ``str.lower`` can expand some characters (e.g. 'İ'), which would shift
    every offset after it; such characters are left untouched.
    """
    folded = text.lower()
    if len(folded) == len(text):
        return folded
    return "".join(ch.lower() if len(ch.lower()) == 1 else ch for ch in text)


def is_word_char(ch: str) -> bool:
    return bool(ch) and (ch.isalnum() or ch == "_")


def clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(upper, value))


def sentiment_label_for(score: float) -> str:
    if score > POSITIVE_THRESHOLD:
        return "positive"
    if score < NEGATIVE_THRESHOLD:
        return "negative"
    return "neutral"


def score_sentiment(text: str, weights: Dict[str, float]) -> float:
    """Sum lexicon weights per occurrence, clamp to [-1, 1]. Matching ignores case on both sides."""
    lowered = fold_case(text)
    score = sum(weight * lowered.count(fold_case(word)) for word, weight in weights.items())
    return round(clamp(score, -1.0, 1.0), 2)


def score_relevance(context: str, term: str) -> float:
    """0.5 plus 0.1 per window word containing one of the term's words."""
    context_words = fold_case(context).split()
    term_words = fold_case(term).split()

    occurrences = sum(
        1
        for term_word in term_words
        for word in context_words
        if term_word in word
    )
    return round(min(1.0, BASE_RELEVANCE + occurrences * RELEVANCE_STEP), 2)


def search_terms(name: Optional[str], keywords: Optional[Iterable[Any]]) -> List[str]:
    """Ordered term list: brand name first, then keywords.

    Blank and non-string entries are skipped, as are case-insensitive
    duplicates (first occurrence wins).
    """
    terms: List[str] = []
    seen = set()
    for candidate in [name, *(keywords or [])]:
        if not isinstance(candidate, str):
            continue
        term = candidate.strip()
        if not term:
            continue
        key = fold_case(term)
        if key in seen:
            continue
        seen.add(key)
        terms.append(term)
    return terms


class MentionDetector:
    """Pure detector: same text and terms always yield the same ordered mentions"""

    def __init__(
        self,
        config: Optional[AnalysisConfig] = None,
        context_radius: int = MENTION_CONTEXT_RADIUS,
        max_matches_per_term: int = MAX_MATCHES_PER_TERM,
        default_confidence: float = DEFAULT_MENTION_CONFIDENCE,
        confidence_estimator: Optional[ConfidenceEstimator] = None,
    ):
        self.config = config or get_analysis_config()
        self.context_radius = context_radius
        self.max_matches_per_term = max_matches_per_term
        self.default_confidence = default_confidence
        self.confidence_estimator = confidence_estimator

    def detect(self, text: str, terms: Iterable[Any]) -> List[DetectedMention]:
        """
        Find whole-word occurrences of each term in ``text``.

        Args:
            text: Assistant response to scan
            terms: Search terms in priority order (brand name first)

        Returns:
            Mentions grouped by term in the order supplied, left to right
            within each term
        """
        if not text:
            return []

        folded_text = fold_case(text)
        mentions: List[DetectedMention] = []

        for raw_term in terms:
            if not isinstance(raw_term, str) or not raw_term.strip():
                continue
            term = raw_term.strip()
            mentions.extend(self._scan_term(text, folded_text, term))

        return mentions

    def classify_mention_type(self, before: str, after: str) -> str:
        window_text = fold_case(before) + " " + fold_case(after)
        for rule in self.config.mention_type_rules:
            if rule.matches(window_text):
                return rule.mention_type
        return self.config.default_mention_type

    def estimate_confidence(self, context: str, term: str) -> float:
        if self.confidence_estimator is None:
            return self.default_confidence
        return clamp(float(self.confidence_estimator(context, term)), 0.0, 1.0)

    def _scan_term(self, text: str, folded_text: str, term: str) -> List[DetectedMention]:
        folded_term = fold_case(term)
        term_length = len(term)
        text_length = len(text)

        found: List[DetectedMention] = []
        from_index = 0
        candidates = 0

        while True:
            idx = folded_text.find(folded_term, from_index)
            if idx == -1:
                break
            candidates += 1
            if candidates > self.max_matches_per_term:
                logger.warning(
                    "Mention scan for %r stopped after %s candidates", term, self.max_matches_per_term
                )
                break

            end = idx + term_length
            before_char = text[idx - 1] if idx > 0 else ""
            after_char = text[end] if end < text_length else ""
            if is_word_char(before_char) or is_word_char(after_char):
                # Part of a longer word; retry one character further on
                from_index = idx + 1
                continue

            window_start = max(0, idx - self.context_radius)
            window_end = min(text_length, end + self.context_radius)
            context = text[window_start:window_end]

            sentiment = score_sentiment(context, self.config.sentiment_weights)
            found.append(
                DetectedMention(
                    term=term,
                    mention_text=text[idx:end],
                    context=context,
                    position=idx,
                    mention_type=self.classify_mention_type(text[window_start:idx], text[end:window_end]),
                    sentiment_score=sentiment,
                    sentiment_label=sentiment_label_for(sentiment),
                    relevance_score=score_relevance(context, term),
                    confidence=self.estimate_confidence(context, term),
                )
            )
            from_index = end

        return found
