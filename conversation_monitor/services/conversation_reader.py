"""Conversation read and serialization helpers."""

from typing import Any, Dict, List, Optional


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def _str_or_none(value) -> Optional[str]:
    return str(value) if value is not None else None


def serialize_conversation(conversation) -> Dict[str, Any]:
    return {
        "id": str(conversation.id),
        "brand_id": str(conversation.brand_id),
        "ai_model_id": str(conversation.ai_model_id),
        "conversation_thread_id": conversation.conversation_thread_id,
        "conversation_type": conversation.conversation_type,
        "initial_query": conversation.initial_query,
        "conversation_context": conversation.conversation_context,
        "total_turns": conversation.total_turns,
        "is_active": conversation.is_active,
        "started_at": _iso(conversation.started_at),
        "last_activity_at": _iso(conversation.last_activity_at),
    }


def serialize_turn(turn) -> Dict[str, Any]:
    return {
        "id": str(turn.id),
        "conversation_id": str(turn.conversation_id),
        "turn_number": turn.turn_number,
        "turn_type": turn.turn_type,
        "user_input": turn.user_input,
        "ai_response": turn.ai_response,
        "processing_time_ms": turn.processing_time_ms,
        "tokens_used": turn.tokens_used,
        "cost": turn.cost,
        "created_at": _iso(turn.created_at),
    }


def serialize_mention(mention) -> Dict[str, Any]:
    return {
        "id": str(mention.id),
        "conversation_id": str(mention.conversation_id),
        "conversation_turn_id": _str_or_none(mention.conversation_turn_id),
        "brand_id": str(mention.brand_id),
        "mention_text": mention.mention_text,
        "mention_context": mention.mention_context,
        "position_in_conversation": mention.position_in_conversation,
        "mention_type": mention.mention_type,
        "sentiment_score": mention.sentiment_score,
        "sentiment_label": mention.sentiment_label,
        "relevance_score": mention.relevance_score,
        "confidence": mention.confidence,
    }


def serialize_topic(topic) -> Dict[str, Any]:
    return {
        "topic_name": topic.topic_name,
        "topic_category": topic.topic_category,
        "relevance_score": topic.relevance_score,
        "first_mentioned_turn": topic.first_mentioned_turn,
        "last_mentioned_turn": topic.last_mentioned_turn,
        "mention_count": topic.mention_count,
    }


def serialize_relationship(relationship, other_conversation=None) -> Dict[str, Any]:
    """Serialize an edge; ``other_conversation`` is the endpoint opposite the one being viewed."""
    data = {
        "id": str(relationship.id),
        "parent_conversation_id": str(relationship.parent_conversation_id),
        "child_conversation_id": str(relationship.child_conversation_id),
        "relationship_type": relationship.relationship_type,
        "relationship_strength": relationship.relationship_strength,
    }
    if other_conversation is not None:
        data["related_query"] = other_conversation.initial_query
        data["related_type"] = other_conversation.conversation_type
    return data


def serialize_related(related: Dict[str, List[tuple]]) -> Dict[str, List[Dict[str, Any]]]:
    """Serialize the ``{"parents": [...], "children": [...]}`` edge bundle from the store."""
    return {
        direction: [serialize_relationship(edge, other) for edge, other in pairs]
        for direction, pairs in related.items()
    }
