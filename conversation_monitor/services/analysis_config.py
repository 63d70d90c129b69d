"""
Analysis Configuration

Heuristic tables used by mention detection and topic extraction:

- Sentiment lexicon: word -> weight added per occurrence
- Mention type rules: ordered (mention_type, cue phrases), first match wins
- Topic taxonomy: ordered (topic, category, relevance, trigger substrings)

The tables are data, not control flow. Defaults live here; a JSON file named
by ``ANALYSIS_CONFIG_PATH`` can replace any section without code changes.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from conversation_monitor.config import ANALYSIS_CONFIG_PATH

logger = logging.getLogger(__name__)

POSITIVE_WORD_WEIGHT = 0.1
NEGATIVE_WORD_WEIGHT = -0.1

DEFAULT_POSITIVE_WORDS = (
    "good", "great", "excellent", "amazing", "wonderful",
    "fantastic", "best", "love", "perfect",
)
DEFAULT_NEGATIVE_WORDS = (
    "bad", "terrible", "awful", "horrible", "worst",
    "hate", "disappointing", "poor",
)


@dataclass(frozen=True)
class MentionTypeRule:
    """Classify a mention as ``mention_type`` when any cue occurs nearby."""
    mention_type: str
    cues: Tuple[str, ...]

    def matches(self, window_text: str) -> bool:
        return any(cue in window_text for cue in self.cues)


@dataclass(frozen=True)
class TopicRule:
    """Emit (name, category, relevance) when any trigger substring occurs."""
    name: str
    category: str
    relevance: float
    triggers: Tuple[str, ...]

    def matches(self, lowered_text: str) -> bool:
        return any(trigger in lowered_text for trigger in self.triggers)


DEFAULT_MENTION_TYPE_RULES = (
    MentionTypeRule("recommendation", ("recommend", "suggest", "should consider")),
    MentionTypeRule("comparison", ("compare", "versus", "vs", "better than")),
    MentionTypeRule("indirect", ("similar to", "like", "such as")),
)
DEFAULT_MENTION_TYPE = "direct"

DEFAULT_TOPIC_RULES = (
    TopicRule("Artificial Intelligence", "Technology", 0.9, ("ai", "artificial intelligence")),
    TopicRule("Software", "Technology", 0.8, ("software", "app")),
    TopicRule("Marketing", "Business", 0.8, ("marketing", "advertising")),
    TopicRule("Sales", "Business", 0.8, ("sales", "revenue")),
)


def _default_sentiment_weights() -> Dict[str, float]:
    weights = {word: POSITIVE_WORD_WEIGHT for word in DEFAULT_POSITIVE_WORDS}
    weights.update({word: NEGATIVE_WORD_WEIGHT for word in DEFAULT_NEGATIVE_WORDS})
    return weights


@dataclass(frozen=True)
class AnalysisConfig:
    sentiment_weights: Dict[str, float] = field(default_factory=_default_sentiment_weights)
    mention_type_rules: Tuple[MentionTypeRule, ...] = DEFAULT_MENTION_TYPE_RULES
    default_mention_type: str = DEFAULT_MENTION_TYPE
    topic_rules: Tuple[TopicRule, ...] = DEFAULT_TOPIC_RULES


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def _lowered_strings(values: Any, section: str) -> Tuple[str, ...]:
    if not isinstance(values, (list, tuple)):
        raise ValueError(f"'{section}' must be a list of strings")
    cleaned = []
    for value in values:
        if not isinstance(value, str) or not value.strip():
            raise ValueError(f"'{section}' contains an empty or non-string entry: {value!r}")
        cleaned.append(value.strip().lower())
    return tuple(cleaned)


def _parse_word_weights(values: Any, default_weight: float, section: str) -> Dict[str, float]:
    if isinstance(values, dict):
        return {word.strip().lower(): float(weight) for word, weight in values.items()}
    return {word: default_weight for word in _lowered_strings(values, section)}


def parse_sentiment_section(section: Dict[str, Any]) -> Dict[str, float]:
    """Build a word -> weight map from ``{"positive": [...], "negative": [...]}``.

    Either side may also be a ``{word: weight}`` mapping.
    """
    weights = _parse_word_weights(section.get("positive", []), POSITIVE_WORD_WEIGHT, "sentiment.positive")
    weights.update(_parse_word_weights(section.get("negative", []), NEGATIVE_WORD_WEIGHT, "sentiment.negative"))
    return weights


def parse_mention_type_rules(rules: List[Dict[str, Any]]) -> Tuple[MentionTypeRule, ...]:
    return tuple(
        MentionTypeRule(
            mention_type=rule["mention_type"],
            cues=_lowered_strings(rule["cues"], f"mention_type_rules.{rule['mention_type']}"),
        )
        for rule in rules
    )


def parse_topic_rules(rules: List[Dict[str, Any]]) -> Tuple[TopicRule, ...]:
    parsed = []
    for rule in rules:
        relevance = float(rule["relevance"])
        if not 0.0 <= relevance <= 1.0:
            raise ValueError(f"Topic '{rule['name']}' relevance must be within [0, 1], got {relevance}")
        parsed.append(
            TopicRule(
                name=rule["name"],
                category=rule["category"],
                relevance=relevance,
                triggers=_lowered_strings(rule["triggers"], f"topics.{rule['name']}"),
            )
        )
    return tuple(parsed)


def merge_analysis_config(overrides: Optional[Dict[str, Any]]) -> AnalysisConfig:
    """Replace each default section that ``overrides`` provides."""
    config = AnalysisConfig()
    if not overrides:
        return config

    return AnalysisConfig(
        sentiment_weights=(
            parse_sentiment_section(overrides["sentiment"])
            if "sentiment" in overrides else config.sentiment_weights
        ),
        mention_type_rules=(
            parse_mention_type_rules(overrides["mention_type_rules"])
            if "mention_type_rules" in overrides else config.mention_type_rules
        ),
        default_mention_type=overrides.get("default_mention_type", config.default_mention_type),
        topic_rules=(
            parse_topic_rules(overrides["topics"])
            if "topics" in overrides else config.topic_rules
        ),
    )


def load_analysis_config(path: Optional[str] = None) -> AnalysisConfig:
    """Load tables from a JSON file, falling back to the built-in defaults."""
    if not path:
        return AnalysisConfig()

    config_file = Path(path)
    if not config_file.exists():
        raise FileNotFoundError(f"Analysis config file not found: {config_file}")

    with open(config_file, "r") as f:
        overrides = json.load(f)

    logger.info("Loaded analysis config overrides from %s: %s", config_file, sorted(overrides))
    return merge_analysis_config(overrides)


_analysis_config_instance: Optional[AnalysisConfig] = None


def get_analysis_config() -> AnalysisConfig:
    """Process-wide analysis config, loaded once from ``ANALYSIS_CONFIG_PATH``."""
    global _analysis_config_instance

    if _analysis_config_instance is None:
        _analysis_config_instance = load_analysis_config(ANALYSIS_CONFIG_PATH)

    return _analysis_config_instance
