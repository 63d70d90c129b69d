"""
Conversation persistence and query operations.

Service layer for the conversation tables. Methods stage work on the session
(add / flush / execute) and leave commit and rollback to the caller, so the
orchestrator decides which writes form one unit of work.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple, Union

from sqlalchemy import case, exists, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from conversation_monitor.models import (
    CONVERSATION_TYPES,
    Brand,
    Conversation,
    ConversationMention,
    ConversationRelationship,
    ConversationTopic,
    ConversationTurn,
    utcnow,
)
from conversation_monitor.services.conversation_errors import (
    ConversationInactiveError,
    ConversationNotFoundError,
    ConversationValidationError,
)

logger = logging.getLogger(__name__)

UUIDLike = Union[str, uuid.UUID]

DEFAULT_PAGE_SIZE = 50
LIKE_ESCAPE = "\\"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def parse_uuid(value: UUIDLike, field_name: str = "id") -> uuid.UUID:
    """Parse a string to UUID, raising ``ConversationValidationError`` with a clear message."""
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (ValueError, AttributeError, TypeError) as exc:
        raise ConversationValidationError(f"Invalid UUID for {field_name}: {value}") from exc


def escape_like(term: str) -> str:
    """Escape LIKE wildcards so the search term is matched literally."""
    return (
        term.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )


def window_start(days: int) -> datetime:
    return utcnow() - timedelta(days=days)


@dataclass
class ConversationFilter:
    """Filters for paged conversation listing; ``None`` means unfiltered."""
    brand_id: Optional[UUIDLike] = None
    ai_model_id: Optional[UUIDLike] = None
    conversation_type: Optional[str] = None
    is_active: Optional[bool] = None
    has_mentions: Optional[bool] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    limit: int = DEFAULT_PAGE_SIZE
    offset: int = 0

    def validate(self) -> None:
        if self.conversation_type is not None and self.conversation_type not in CONVERSATION_TYPES:
            raise ConversationValidationError(f"Unknown conversation_type: {self.conversation_type}")
        if self.limit < 1:
            raise ConversationValidationError(f"limit must be positive, got {self.limit}")
        if self.offset < 0:
            raise ConversationValidationError(f"offset must not be negative, got {self.offset}")
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ConversationValidationError("end_date must not be before start_date")


class ConversationStore:
    """Durable record keeper for conversations, turns, mentions, topics and edges"""

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    # ------------------------------------------------------------------
    # Brands & conversations
    # ------------------------------------------------------------------

    async def get_brand(self, brand_id: UUIDLike) -> Optional[Brand]:
        result = await self.db.execute(select(Brand).where(Brand.id == parse_uuid(brand_id, "brand_id")))
        return result.scalar_one_or_none()

    async def create_conversation(self, *, brand_id: UUIDLike, ai_model_id: UUIDLike,
                                  conversation_type: str, initial_query: str,
                                  conversation_thread_id: Optional[str] = None,
                                  conversation_context: Optional[Dict[str, Any]] = None) -> Conversation:
        """Stage a new active conversation with zero turns."""
        now = utcnow()
        conversation = Conversation(
            id=uuid.uuid4(),
            brand_id=parse_uuid(brand_id, "brand_id"),
            ai_model_id=parse_uuid(ai_model_id, "ai_model_id"),
            conversation_type=conversation_type,
            initial_query=initial_query,
            conversation_thread_id=conversation_thread_id,
            conversation_context=conversation_context,
            total_turns=0,
            is_active=True,
            started_at=now,
            last_activity_at=now,
        )
        self.db.add(conversation)
        await self.db.flush()
        return conversation

    async def get_conversation(self, conversation_id: UUIDLike) -> Optional[Conversation]:
        query = select(Conversation).where(Conversation.id == parse_uuid(conversation_id, "conversation_id"))
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def update_activity(self, conversation_id: UUIDLike) -> Conversation:
        """
        Resync ``total_turns`` with the stored turn rows and bump last activity.

        The count is recomputed, never supplied, so the turn sequence stays
        gap-free. Raises ``ConversationNotFoundError``.
        """
        conversation = await self._require_conversation(conversation_id)
        turn_count = await self.db.execute(
            select(func.count(ConversationTurn.id)).where(ConversationTurn.conversation_id == conversation.id)
        )
        now = utcnow()
        conversation.total_turns = turn_count.scalar_one()
        conversation.last_activity_at = now
        conversation.updated_at = now
        await self.db.flush()
        return conversation

    async def mark_inactive(self, conversation_id: UUIDLike) -> Conversation:
        """Deactivate a conversation (one-way). Raises ``ConversationNotFoundError``."""
        conversation = await self._require_conversation(conversation_id)
        if conversation.is_active:
            conversation.is_active = False
            conversation.updated_at = utcnow()
            await self.db.flush()
        return conversation

    async def list_conversations(self, conversation_filter: ConversationFilter) -> Tuple[List[Conversation], int]:
        """Return one page of conversations (most recently active first) and the total match count."""
        conversation_filter.validate()
        conditions = []

        if conversation_filter.brand_id is not None:
            conditions.append(Conversation.brand_id == parse_uuid(conversation_filter.brand_id, "brand_id"))
        if conversation_filter.ai_model_id is not None:
            conditions.append(Conversation.ai_model_id == parse_uuid(conversation_filter.ai_model_id, "ai_model_id"))
        if conversation_filter.conversation_type is not None:
            conditions.append(Conversation.conversation_type == conversation_filter.conversation_type)
        if conversation_filter.is_active is not None:
            conditions.append(Conversation.is_active.is_(conversation_filter.is_active))
        if conversation_filter.start_date is not None:
            conditions.append(Conversation.started_at >= conversation_filter.start_date)
        if conversation_filter.end_date is not None:
            conditions.append(Conversation.started_at <= conversation_filter.end_date)
        if conversation_filter.has_mentions:
            conditions.append(
                exists().where(ConversationMention.conversation_id == Conversation.id)
            )

        page_query = (
            select(Conversation)
            .where(*conditions)
            .order_by(Conversation.last_activity_at.desc(), Conversation.started_at.desc())
            .limit(conversation_filter.limit)
            .offset(conversation_filter.offset)
        )
        count_query = select(func.count(Conversation.id)).where(*conditions)

        rows = (await self.db.execute(page_query)).scalars().all()
        total = (await self.db.execute(count_query)).scalar_one()
        return list(rows), int(total or 0)

    async def search_conversations(self, brand_id: UUIDLike, term: str, limit: int = 20,
                                   exclude_conversation_id: Optional[UUIDLike] = None) -> List[Conversation]:
        """Case-insensitive literal search over initial queries and turn text for one brand."""
        pattern = f"%{escape_like(term)}%"
        matching_turns = select(ConversationTurn.conversation_id).where(
            or_(
                ConversationTurn.user_input.ilike(pattern, escape=LIKE_ESCAPE),
                ConversationTurn.ai_response.ilike(pattern, escape=LIKE_ESCAPE),
            )
        )
        query = select(Conversation).where(
            Conversation.brand_id == parse_uuid(brand_id, "brand_id"),
            or_(
                Conversation.initial_query.ilike(pattern, escape=LIKE_ESCAPE),
                Conversation.id.in_(matching_turns),
            ),
        )
        if exclude_conversation_id is not None:
            query = query.where(Conversation.id != parse_uuid(exclude_conversation_id, "conversation_id"))

        query = query.order_by(Conversation.last_activity_at.desc(), Conversation.started_at.desc()).limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Turns
    # ------------------------------------------------------------------

    async def append_turn(self, conversation_id: UUIDLike, *, user_input: str, ai_response: str,
                          turn_type: str, processing_time_ms: Optional[int] = None,
                          tokens_used: Optional[int] = None, cost: Optional[float] = None,
                          require_active: bool = False) -> ConversationTurn:
        """
        Claim the next turn number and stage the turn row.

        The number comes from an atomic ``total_turns = total_turns + 1 ...
        RETURNING`` on the conversation row, so two writers never read the same
        count; the (conversation_id, turn_number) unique constraint backs it up.

        Raises:
            ConversationNotFoundError: unknown conversation
            ConversationInactiveError: ``require_active`` and the conversation is inactive
        """
        conversation_uuid = parse_uuid(conversation_id, "conversation_id")
        now = utcnow()

        claim = (
            update(Conversation)
            .where(Conversation.id == conversation_uuid)
            .values(total_turns=Conversation.total_turns + 1, last_activity_at=now, updated_at=now)
            .returning(Conversation.total_turns)
        )
        if require_active:
            claim = claim.where(Conversation.is_active.is_(True))

        turn_number = (await self.db.execute(claim)).scalar_one_or_none()
        if turn_number is None:
            if await self.get_conversation(conversation_uuid) is None:
                raise ConversationNotFoundError(f"Conversation {conversation_id} not found")
            raise ConversationInactiveError(f"Conversation {conversation_id} is inactive")

        turn = ConversationTurn(
            id=uuid.uuid4(),
            conversation_id=conversation_uuid,
            turn_number=turn_number,
            user_input=user_input,
            ai_response=ai_response,
            turn_type=turn_type,
            processing_time_ms=processing_time_ms,
            tokens_used=tokens_used,
            cost=cost,
            created_at=now,
        )
        self.db.add(turn)
        await self.db.flush()
        return turn

    async def list_turns(self, conversation_id: UUIDLike) -> List[ConversationTurn]:
        query = (
            select(ConversationTurn)
            .where(ConversationTurn.conversation_id == parse_uuid(conversation_id, "conversation_id"))
            .order_by(ConversationTurn.turn_number)
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Mentions
    # ------------------------------------------------------------------

    async def add_mention(self, *, conversation_id: UUIDLike, brand_id: UUIDLike,
                          mention_text: str, mention_context: str, position_in_conversation: int,
                          mention_type: str, conversation_turn_id: Optional[UUIDLike] = None,
                          sentiment_score: Optional[float] = None, sentiment_label: Optional[str] = None,
                          relevance_score: Optional[float] = None,
                          confidence: Optional[float] = None) -> ConversationMention:
        mention = ConversationMention(
            id=uuid.uuid4(),
            conversation_id=parse_uuid(conversation_id, "conversation_id"),
            conversation_turn_id=(
                parse_uuid(conversation_turn_id, "conversation_turn_id") if conversation_turn_id else None
            ),
            brand_id=parse_uuid(brand_id, "brand_id"),
            mention_text=mention_text,
            mention_context=mention_context,
            position_in_conversation=position_in_conversation,
            mention_type=mention_type,
            sentiment_score=sentiment_score,
            sentiment_label=sentiment_label,
            relevance_score=relevance_score,
            confidence=confidence,
        )
        self.db.add(mention)
        await self.db.flush()
        return mention

    async def list_mentions(self, conversation_id: UUIDLike) -> List[ConversationMention]:
        query = (
            select(ConversationMention)
            .where(ConversationMention.conversation_id == parse_uuid(conversation_id, "conversation_id"))
            .order_by(ConversationMention.position_in_conversation, ConversationMention.created_at)
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Topics
    # ------------------------------------------------------------------

    async def upsert_topic(self, conversation_id: UUIDLike, topic_name: str, topic_category: str,
                           relevance_score: float, turn_number: int) -> ConversationTopic:
        """
        Insert a topic or merge a repeat sighting into the existing row.

        Merge: mention_count + 1, last_mentioned_turn advances (never moves
        back), relevance_score keeps the maximum seen.
        """
        if turn_number < 1:
            raise ConversationValidationError(f"turn_number must be >= 1, got {turn_number}")

        conversation_uuid = parse_uuid(conversation_id, "conversation_id")
        query = select(ConversationTopic).where(
            ConversationTopic.conversation_id == conversation_uuid,
            ConversationTopic.topic_name == topic_name,
        )
        topic = (await self.db.execute(query)).scalar_one_or_none()

        if topic is None:
            topic = ConversationTopic(
                id=uuid.uuid4(),
                conversation_id=conversation_uuid,
                topic_name=topic_name,
                topic_category=topic_category,
                relevance_score=relevance_score,
                first_mentioned_turn=turn_number,
                last_mentioned_turn=turn_number,
                mention_count=1,
            )
            self.db.add(topic)
        else:
            topic.mention_count = topic.mention_count + 1
            topic.last_mentioned_turn = max(topic.last_mentioned_turn, turn_number)
            topic.relevance_score = max(topic.relevance_score, relevance_score)

        await self.db.flush()
        return topic

    async def list_topics(self, conversation_id: UUIDLike) -> List[ConversationTopic]:
        query = (
            select(ConversationTopic)
            .where(ConversationTopic.conversation_id == parse_uuid(conversation_id, "conversation_id"))
            .order_by(ConversationTopic.relevance_score.desc(), ConversationTopic.mention_count.desc())
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Relationships
    # ------------------------------------------------------------------

    async def create_relationship(self, parent_conversation_id: UUIDLike, child_conversation_id: UUIDLike,
                                  relationship_type: str, relationship_strength: float) -> ConversationRelationship:
        """Create a directed edge, or return the existing one for the same pair."""
        parent_uuid = parse_uuid(parent_conversation_id, "parent_conversation_id")
        child_uuid = parse_uuid(child_conversation_id, "child_conversation_id")
        if parent_uuid == child_uuid:
            raise ConversationValidationError("A conversation cannot be related to itself")

        query = select(ConversationRelationship).where(
            ConversationRelationship.parent_conversation_id == parent_uuid,
            ConversationRelationship.child_conversation_id == child_uuid,
        )
        existing = (await self.db.execute(query)).scalar_one_or_none()
        if existing is not None:
            logger.warning("Relationship %s -> %s already exists, skipping", parent_uuid, child_uuid)
            return existing

        relationship = ConversationRelationship(
            id=uuid.uuid4(),
            parent_conversation_id=parent_uuid,
            child_conversation_id=child_uuid,
            relationship_type=relationship_type,
            relationship_strength=relationship_strength,
        )
        self.db.add(relationship)
        await self.db.flush()
        return relationship

    async def get_related_conversations(self, conversation_id: UUIDLike) -> Dict[str, List[Tuple[ConversationRelationship, Conversation]]]:
        """Edges pointing at (parents) and away from (children) a conversation, strongest first."""
        conversation_uuid = parse_uuid(conversation_id, "conversation_id")

        parents_query = (
            select(ConversationRelationship, Conversation)
            .join(Conversation, ConversationRelationship.parent_conversation_id == Conversation.id)
            .where(ConversationRelationship.child_conversation_id == conversation_uuid)
            .order_by(ConversationRelationship.relationship_strength.desc())
        )
        children_query = (
            select(ConversationRelationship, Conversation)
            .join(Conversation, ConversationRelationship.child_conversation_id == Conversation.id)
            .where(ConversationRelationship.parent_conversation_id == conversation_uuid)
            .order_by(ConversationRelationship.relationship_strength.desc())
        )

        parents = [tuple(row) for row in (await self.db.execute(parents_query)).all()]
        children = [tuple(row) for row in (await self.db.execute(children_query)).all()]
        return {"parents": parents, "children": children}

    # ------------------------------------------------------------------
    # Aggregates
    # ------------------------------------------------------------------

    async def get_statistics(self, brand_id: UUIDLike, days: int = 30) -> Dict[str, Any]:
        """Conversation, mention and topic aggregates for conversations started in the last ``days``."""
        brand_uuid = parse_uuid(brand_id, "brand_id")
        cutoff = window_start(days)
        in_window = (Conversation.brand_id == brand_uuid, Conversation.started_at >= cutoff)

        conversation_row = (await self.db.execute(
            select(
                func.count(Conversation.id),
                func.sum(case((Conversation.is_active.is_(True), 1), else_=0)),
                func.avg(Conversation.total_turns),
            ).where(*in_window)
        )).one()

        mention_row = (await self.db.execute(
            select(func.count(ConversationMention.id), func.avg(ConversationMention.sentiment_score))
            .join(Conversation, ConversationMention.conversation_id == Conversation.id)
            .where(*in_window)
        )).one()

        type_count = func.count(Conversation.id).label("count")
        type_rows = (await self.db.execute(
            select(Conversation.conversation_type, type_count)
            .where(*in_window)
            .group_by(Conversation.conversation_type)
            .order_by(type_count.desc(), Conversation.conversation_type)
        )).all()

        return {
            "total_conversations": int(conversation_row[0] or 0),
            "active_conversations": int(conversation_row[1] or 0),
            "avg_turns_per_conversation": float(conversation_row[2] or 0),
            "total_mentions": int(mention_row[0] or 0),
            "avg_sentiment": float(mention_row[1] or 0),
            "conversations_by_type": [
                {"type": conversation_type, "count": int(count)} for conversation_type, count in type_rows
            ],
            "top_topics": await self.get_trending_topics(brand_uuid, days, limit=10),
        }

    async def get_trending_topics(self, brand_id: UUIDLike, days: int = 30, limit: int = 10) -> List[Dict[str, Any]]:
        """Topics summed across the brand's conversations in the window, most mentioned first."""
        total_mentions = func.sum(ConversationTopic.mention_count).label("count")
        query = (
            select(ConversationTopic.topic_name, ConversationTopic.topic_category, total_mentions)
            .join(Conversation, ConversationTopic.conversation_id == Conversation.id)
            .where(
                Conversation.brand_id == parse_uuid(brand_id, "brand_id"),
                Conversation.started_at >= window_start(days),
            )
            .group_by(ConversationTopic.topic_name, ConversationTopic.topic_category)
            .order_by(total_mentions.desc(), ConversationTopic.topic_name)
            .limit(limit)
        )
        rows = (await self.db.execute(query)).all()
        return [
            {"topic": topic, "category": category, "count": int(count)}
            for topic, category, count in rows
        ]

    async def get_top_mentions(self, brand_id: UUIDLike, days: int = 30, limit: int = 10) -> List[ConversationMention]:
        """Most relevant (then most positive) mentions in the window."""
        query = (
            select(ConversationMention)
            .join(Conversation, ConversationMention.conversation_id == Conversation.id)
            .where(
                Conversation.brand_id == parse_uuid(brand_id, "brand_id"),
                Conversation.started_at >= window_start(days),
            )
            .order_by(
                ConversationMention.relevance_score.desc(),
                ConversationMention.sentiment_score.desc(),
                ConversationMention.created_at.desc(),
            )
            .limit(limit)
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def _require_conversation(self, conversation_id: UUIDLike) -> Conversation:
        conversation = await self.get_conversation(conversation_id)
        if conversation is None:
            raise ConversationNotFoundError(f"Conversation {conversation_id} not found")
        return conversation
