"""
SQLAlchemy models for conversation monitoring.

Column types are portable (generic Uuid, JSON with a JSONB variant) so the
same schema runs on PostgreSQL in production and SQLite in tests.
"""

from datetime import datetime, timezone
import uuid

from sqlalchemy import (
    Column, String, Integer, Float, Boolean, Text, DateTime, JSON, Uuid,
    ForeignKey, Index, CheckConstraint, UniqueConstraint
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base

Base = declarative_base()

JSONType = JSON().with_variant(JSONB(), "postgresql")

CONVERSATION_TYPES = ("query_response", "follow_up", "multi_turn", "comparison")
TURN_TYPES = ("initial", "follow_up", "clarification", "comparison")
MENTION_TYPES = ("direct", "indirect", "comparison", "recommendation")
SENTIMENT_LABELS = ("positive", "negative", "neutral")
RELATIONSHIP_TYPES = ("follow_up", "related_topic", "comparison", "clarification")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _in_clause(column: str, values) -> str:
    quoted = ", ".join(f"'{value}'" for value in values)
    return f"{column} IN ({quoted})"


class Brand(Base):
    """Monitored brand (read model owned by brand management)"""
    __tablename__ = "brands"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(Text, nullable=False)
    monitoring_keywords = Column(JSONType, default=list)  # List of keyword strings

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class Conversation(Base):
    """A tracked user <-> AI assistant exchange about a brand"""
    __tablename__ = "conversations"

    # Identity
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    brand_id = Column(Uuid, ForeignKey('brands.id', ondelete='CASCADE'), nullable=False)
    ai_model_id = Column(Uuid, nullable=False)
    conversation_thread_id = Column(String(255))  # External thread ID if applicable

    # Classification
    conversation_type = Column(String(50), nullable=False)  # 'query_response', 'follow_up', 'multi_turn', 'comparison'
    initial_query = Column(Text, nullable=False)
    conversation_context = Column(JSONType)

    # Lifecycle
    total_turns = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)

    # Temporal
    started_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    last_activity_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint(
            _in_clause("conversation_type", CONVERSATION_TYPES),
            name='valid_conversation_type'
        ),
        CheckConstraint("total_turns >= 0", name='valid_total_turns'),
        Index('idx_conversations_brand_id', 'brand_id'),
        Index('idx_conversations_ai_model_id', 'ai_model_id'),
        Index('idx_conversations_type', 'conversation_type'),
        Index('idx_conversations_active', 'is_active'),
        Index('idx_conversations_started_at', 'started_at'),
        Index('idx_conversations_last_activity', 'last_activity_at'),
    )


class ConversationTurn(Base):
    """One user input / assistant response pair"""
    __tablename__ = "conversation_turns"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    conversation_id = Column(Uuid, ForeignKey('conversations.id', ondelete='CASCADE'), nullable=False)

    # Sequencing
    turn_number = Column(Integer, nullable=False)
    turn_type = Column(String(50), nullable=False)  # 'initial', 'follow_up', 'clarification', 'comparison'

    # Content
    user_input = Column(Text, nullable=False)
    ai_response = Column(Text, nullable=False)

    # Processing metrics
    processing_time_ms = Column(Integer)
    tokens_used = Column(Integer)
    cost = Column(Float)

    created_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        UniqueConstraint('conversation_id', 'turn_number', name='uq_conversation_turn_number'),
        CheckConstraint("turn_number >= 1", name='valid_turn_number'),
        CheckConstraint(_in_clause("turn_type", TURN_TYPES), name='valid_turn_type'),
        Index('idx_conversation_turns_conversation_id', 'conversation_id'),
        Index('idx_conversation_turns_type', 'turn_type'),
    )


class ConversationMention(Base):
    """Brand mention detected inside an assistant response"""
    __tablename__ = "conversation_mentions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    conversation_id = Column(Uuid, ForeignKey('conversations.id', ondelete='CASCADE'), nullable=False)
    conversation_turn_id = Column(Uuid, ForeignKey('conversation_turns.id', ondelete='CASCADE'))
    brand_id = Column(Uuid, ForeignKey('brands.id', ondelete='CASCADE'), nullable=False)

    # Match
    mention_text = Column(Text, nullable=False)
    mention_context = Column(Text, nullable=False)
    position_in_conversation = Column(Integer, nullable=False)

    # Classification & scores
    mention_type = Column(String(50), nullable=False)
    sentiment_score = Column(Float)  # -1.0 to 1.0
    sentiment_label = Column(String(20))
    relevance_score = Column(Float)  # 0.0-1.0
    confidence = Column(Float)  # 0.0-1.0

    created_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        CheckConstraint(_in_clause("mention_type", MENTION_TYPES), name='valid_mention_type'),
        CheckConstraint(
            "sentiment_label IS NULL OR " + _in_clause("sentiment_label", SENTIMENT_LABELS),
            name='valid_sentiment_label'
        ),
        CheckConstraint('sentiment_score >= -1.0 AND sentiment_score <= 1.0', name='check_mention_sentiment'),
        CheckConstraint('relevance_score >= 0.0 AND relevance_score <= 1.0', name='check_mention_relevance'),
        CheckConstraint('confidence >= 0.0 AND confidence <= 1.0', name='check_mention_confidence'),
        Index('idx_conversation_mentions_conversation_id', 'conversation_id'),
        Index('idx_conversation_mentions_brand_id', 'brand_id'),
        Index('idx_conversation_mentions_turn_id', 'conversation_turn_id'),
        Index('idx_conversation_mentions_type', 'mention_type'),
        Index('idx_conversation_mentions_sentiment', 'sentiment_label'),
        Index('idx_conversation_mentions_position', 'position_in_conversation'),
    )


class ConversationTopic(Base):
    """Coarse subject tag aggregated per conversation"""
    __tablename__ = "conversation_topics"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    conversation_id = Column(Uuid, ForeignKey('conversations.id', ondelete='CASCADE'), nullable=False)

    topic_name = Column(String(255), nullable=False)
    topic_category = Column(String(100), nullable=False)
    relevance_score = Column(Float, nullable=False)

    first_mentioned_turn = Column(Integer, nullable=False)
    last_mentioned_turn = Column(Integer, nullable=False)
    mention_count = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        UniqueConstraint('conversation_id', 'topic_name', name='uq_conversation_topic'),
        CheckConstraint('relevance_score >= 0.0 AND relevance_score <= 1.0', name='check_topic_relevance'),
        CheckConstraint('mention_count >= 1', name='check_topic_mention_count'),
        Index('idx_conversation_topics_conversation_id', 'conversation_id'),
        Index('idx_conversation_topics_category', 'topic_category'),
        Index('idx_conversation_topics_relevance', 'relevance_score'),
    )


class ConversationRelationship(Base):
    """Directed, weighted edge between two conversations"""
    __tablename__ = "conversation_relationships"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    # Endpoints
    parent_conversation_id = Column(Uuid, ForeignKey('conversations.id', ondelete='CASCADE'), nullable=False)
    child_conversation_id = Column(Uuid, ForeignKey('conversations.id', ondelete='CASCADE'), nullable=False)

    relationship_type = Column(String(50), nullable=False)
    relationship_strength = Column(Float, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        UniqueConstraint('parent_conversation_id', 'child_conversation_id', name='uq_conversation_relationship'),
        CheckConstraint("parent_conversation_id != child_conversation_id", name='no_self_reference'),
        CheckConstraint(_in_clause("relationship_type", RELATIONSHIP_TYPES), name='valid_relationship_type'),
        CheckConstraint("relationship_strength BETWEEN 0 AND 1", name='valid_strength'),
        Index('idx_conversation_relationships_parent', 'parent_conversation_id'),
        Index('idx_conversation_relationships_child', 'child_conversation_id'),
        Index('idx_conversation_relationships_type', 'relationship_type'),
    )
