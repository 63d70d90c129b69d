"""
Stored-data invariant assertions for the conversation monitor

Reusable checks over what the store actually persisted for one conversation.
Use them at the end of integration tests so every scenario also proves the
data it left behind is consistent.

Usage:
    from conversation_monitor.tests.invariants import check_all_invariants

    async def test_full_flow(db_session):
        conversation_id = await run_some_flow()
        await check_all_invariants(db_session, conversation_id)
"""

from sqlalchemy import or_, select

from conversation_monitor.models import (
    Conversation,
    ConversationMention,
    ConversationRelationship,
    ConversationTopic,
    ConversationTurn,
)
from conversation_monitor.services.mention_detector import sentiment_label_for


class InvariantViolation(Exception):
    """Raised when a stored-data invariant is violated."""

    def __init__(self, invariant_id: str, message: str, context: dict = None):
        self.invariant_id = invariant_id
        self.message = message
        self.context = context or {}
        super().__init__(f"[{invariant_id}] {message}\nContext: {context}")


# ============================================================================
# Turn Invariants
# ============================================================================

async def assert_contiguous_turns(db, conversation_id):
    """
    turn-sequence: turn numbers are exactly 1..N and N equals total_turns.
    """
    conversation = (await db.execute(
        select(Conversation).where(Conversation.id == conversation_id)
    )).scalar_one()
    numbers = (await db.execute(
        select(ConversationTurn.turn_number)
        .where(ConversationTurn.conversation_id == conversation_id)
        .order_by(ConversationTurn.turn_number)
    )).scalars().all()

    expected = list(range(1, conversation.total_turns + 1))
    if list(numbers) != expected:
        raise InvariantViolation(
            "turn-sequence",
            f"Turn numbers {list(numbers)[:20]} are not 1..{conversation.total_turns}",
            {"conversation_id": str(conversation_id), "total_turns": conversation.total_turns},
        )


# ============================================================================
# Mention Invariants
# ============================================================================

async def assert_mention_scores_in_range(db, conversation_id):
    """
    mention-scores: sentiment in [-1, 1], relevance and confidence in [0, 1],
    and the stored label agrees with the stored score.
    """
    mentions = (await db.execute(
        select(ConversationMention).where(ConversationMention.conversation_id == conversation_id)
    )).scalars().all()

    for mention in mentions:
        problems = []
        if not -1.0 <= mention.sentiment_score <= 1.0:
            problems.append("sentiment_score out of range")
        if not 0.0 <= mention.relevance_score <= 1.0:
            problems.append("relevance_score out of range")
        if not 0.0 <= mention.confidence <= 1.0:
            problems.append("confidence out of range")
        if mention.sentiment_label != sentiment_label_for(mention.sentiment_score):
            problems.append("sentiment_label disagrees with sentiment_score")

        if problems:
            raise InvariantViolation(
                "mention-scores",
                "; ".join(problems),
                {
                    "mention_id": str(mention.id),
                    "sentiment_score": mention.sentiment_score,
                    "sentiment_label": mention.sentiment_label,
                    "relevance_score": mention.relevance_score,
                    "confidence": mention.confidence,
                },
            )


# ============================================================================
# Topic Invariants
# ============================================================================

async def assert_topic_bounds(db, conversation_id):
    """
    topic-bounds: first <= last <= total_turns and mention_count >= 1.
    """
    total_turns = (await db.execute(
        select(Conversation.total_turns).where(Conversation.id == conversation_id)
    )).scalar_one()
    topics = (await db.execute(
        select(ConversationTopic).where(ConversationTopic.conversation_id == conversation_id)
    )).scalars().all()

    for topic in topics:
        if not (1 <= topic.first_mentioned_turn <= topic.last_mentioned_turn <= total_turns):
            raise InvariantViolation(
                "topic-bounds",
                f"Topic '{topic.topic_name}' spans turns {topic.first_mentioned_turn}..{topic.last_mentioned_turn}",
                {"conversation_id": str(conversation_id), "total_turns": total_turns},
            )
        if topic.mention_count < 1:
            raise InvariantViolation(
                "topic-bounds",
                f"Topic '{topic.topic_name}' has mention_count {topic.mention_count}",
                {"conversation_id": str(conversation_id)},
            )


# ============================================================================
# Relationship Invariants
# ============================================================================

async def assert_relationship_edges(db, conversation_id, threshold: float = 0.7):
    """
    relationship-edges: no self loops and every strength clears the threshold.
    """
    edges = (await db.execute(
        select(ConversationRelationship).where(
            or_(
                ConversationRelationship.parent_conversation_id == conversation_id,
                ConversationRelationship.child_conversation_id == conversation_id,
            )
        )
    )).scalars().all()

    for edge in edges:
        if edge.parent_conversation_id == edge.child_conversation_id:
            raise InvariantViolation(
                "relationship-edges",
                "Conversation is related to itself",
                {"relationship_id": str(edge.id)},
            )
        if not threshold < edge.relationship_strength <= 1.0:
            raise InvariantViolation(
                "relationship-edges",
                f"Edge strength {edge.relationship_strength} is not above {threshold}",
                {"relationship_id": str(edge.id)},
            )


# ============================================================================
# Convenience Functions
# ============================================================================

async def check_all_invariants(db, conversation_id):
    """Run every stored-data invariant check for a conversation."""
    await assert_contiguous_turns(db, conversation_id)
    await assert_mention_scores_in_range(db, conversation_id)
    await assert_topic_bounds(db, conversation_id)
    await assert_relationship_edges(db, conversation_id)
