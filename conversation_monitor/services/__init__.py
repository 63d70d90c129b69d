"""Services for conversation monitoring."""

from .conversation_monitoring import ConversationMonitoringService
from .conversation_store import ConversationStore
from .mention_detector import MentionDetector
from .relationship_linker import RelationshipLinker
from .topic_extractor import TopicExtractor

__all__ = [
    'ConversationMonitoringService',
    'ConversationStore',
    'MentionDetector',
    'RelationshipLinker',
    'TopicExtractor',
]
