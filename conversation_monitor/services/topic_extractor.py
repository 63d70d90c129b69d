"""Topic extraction from a single turn's text via a fixed taxonomy."""

from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional

from conversation_monitor.services.analysis_config import AnalysisConfig, get_analysis_config


@dataclass(frozen=True)
class ExtractedTopic:
    name: str
    category: str
    relevance: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class TopicExtractor:
    """Maps turn text onto (topic, category, relevance) triples"""

    def __init__(self, config: Optional[AnalysisConfig] = None):
        self.config = config or get_analysis_config()

    def extract(self, user_input: str, ai_response: str) -> List[ExtractedTopic]:
        """Check each taxonomy rule independently against the combined turn text."""
        return self.extract_from_text(f"{user_input or ''} {ai_response or ''}")

    def extract_from_text(self, text: str) -> List[ExtractedTopic]:
        lowered = (text or "").lower()
        return [
            ExtractedTopic(name=rule.name, category=rule.category, relevance=rule.relevance)
            for rule in self.config.topic_rules
            if rule.matches(lowered)
        ]
