"""
Conversation Monitoring Service

Owns the conversation lifecycle and wires analysis results into the store:

    start / continue -> persist turn -> detect mentions -> extract topics
                     -> (start only) link related conversations -> result

The turn write is the only step that must succeed. Mentions, topics and
relationships are derived data: each is committed separately, and a failure
there is logged and reported in ``enrichment_errors`` without touching the
already-committed turn.
"""

import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from conversation_monitor.config import INACTIVE_TURN_POLICY, TURN_WRITE_RETRIES
from conversation_monitor.models import (
    Brand,
    ConversationMention,
    ConversationTopic,
    ConversationTurn,
)
from conversation_monitor.services.conversation_errors import (
    ConversationError,
    ConversationInactiveError,
    ConversationNotFoundError,
    ConversationStoreError,
    ConversationValidationError,
)
from conversation_monitor.services.conversation_store import (
    ConversationFilter,
    ConversationStore,
    UUIDLike,
    parse_uuid,
)
from conversation_monitor.services.mention_detector import MentionDetector, search_terms
from conversation_monitor.services.relationship_linker import RelationshipLinker
from conversation_monitor.services.topic_extractor import TopicExtractor
from conversation_monitor.services.turn_sequencer import TurnSequencer, get_turn_sequencer

logger = logging.getLogger(__name__)

MAX_QUERY_LENGTH = 2000
MAX_RESPONSE_LENGTH = 50000
MAX_THREAD_ID_LENGTH = 255
MAX_DETECTION_CONTEXT_LENGTH = 2000
DASHBOARD_RECENT_LIMIT = 10

CONTINUATION_TURN_TYPES = ("follow_up", "clarification", "comparison")
INACTIVE_POLICIES = ("allow", "reject")
COMPARISON_CUES = ("compare", "vs", "versus")


# ---------------------------------------------------------------------------
# Validation & classification
# ---------------------------------------------------------------------------

def require_text(value: Any, field_name: str, max_length: int) -> str:
    """Reject non-string, blank or over-long text; returns the text unchanged."""
    if not isinstance(value, str) or not value.strip():
        raise ConversationValidationError(f"{field_name} must be a non-empty string")
    if len(value) > max_length:
        raise ConversationValidationError(
            f"{field_name} exceeds {max_length} characters (got {len(value)})"
        )
    return value


def require_positive(value: int, field_name: str) -> int:
    if not isinstance(value, int) or isinstance(value, bool) or value < 1:
        raise ConversationValidationError(f"{field_name} must be a positive integer, got {value!r}")
    return value


def validate_turn_metrics(processing_time_ms: Optional[int], tokens_used: Optional[int],
                          cost: Optional[float]) -> None:
    for field_name, value in (
        ("processing_time_ms", processing_time_ms),
        ("tokens_used", tokens_used),
        ("cost", cost),
    ):
        if value is not None and value < 0:
            raise ConversationValidationError(f"{field_name} must not be negative, got {value}")


def classify_conversation_type(query: str, context: Optional[Dict[str, Any]] = None) -> str:
    """
    Decide the conversation type from the opening query and caller context.

    Priority: comparison cue in the query, then a previous conversation
    reference, then an explicit multi-turn flag, else a plain query/response.
    """
    lowered = query.lower()
    if any(cue in lowered for cue in COMPARISON_CUES):
        return "comparison"

    context = context or {}
    if context.get("previousConversationId") or context.get("previous_conversation_id"):
        return "follow_up"
    if context.get("isMultiTurn") or context.get("is_multi_turn"):
        return "multi_turn"
    return "query_response"


class ConversationMonitoringService:
    """Coordinates conversation writes with mention, topic and relationship analysis"""

    def __init__(
        self,
        db_session: AsyncSession,
        detector: Optional[MentionDetector] = None,
        topic_extractor: Optional[TopicExtractor] = None,
        linker: Optional[RelationshipLinker] = None,
        sequencer: Optional[TurnSequencer] = None,
        inactive_policy: str = INACTIVE_TURN_POLICY,
        turn_write_retries: int = TURN_WRITE_RETRIES,
    ):
        if inactive_policy not in INACTIVE_POLICIES:
            raise ValueError(f"inactive_policy must be one of {INACTIVE_POLICIES}, got {inactive_policy!r}")

        self.db = db_session
        self.store = ConversationStore(db_session)
        self.detector = detector or MentionDetector()
        self.topic_extractor = topic_extractor or TopicExtractor()
        self.linker = linker or RelationshipLinker()
        self.sequencer = sequencer or get_turn_sequencer()
        self.inactive_policy = inactive_policy
        self.turn_write_retries = max(1, turn_write_retries)

    # ------------------------------------------------------------------
    # Write paths
    # ------------------------------------------------------------------

    async def start_conversation(
        self,
        brand_id: UUIDLike,
        ai_model_id: UUIDLike,
        initial_query: str,
        ai_response: str,
        conversation_thread_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        *,
        processing_time_ms: Optional[int] = None,
        tokens_used: Optional[int] = None,
        cost: Optional[float] = None,
    ) -> Dict[str, Any]:
        """
        Start tracking a conversation from its first query/response pair.

        Returns:
            {
                "conversation": Conversation,
                "turn": ConversationTurn (turn 1, type 'initial'),
                "mentions": [ConversationMention...],
                "topics": [ConversationTopic...],
                "relationships": [ConversationRelationship...],
                "enrichment_errors": [{"step": str, "error": str}]
            }
        """
        initial_query = require_text(initial_query, "initial_query", MAX_QUERY_LENGTH)
        ai_response = require_text(ai_response, "ai_response", MAX_RESPONSE_LENGTH)
        if conversation_thread_id is not None and len(conversation_thread_id) > MAX_THREAD_ID_LENGTH:
            raise ConversationValidationError(
                f"conversation_thread_id exceeds {MAX_THREAD_ID_LENGTH} characters"
            )
        if context is not None and not isinstance(context, dict):
            raise ConversationValidationError("context must be an object")
        validate_turn_metrics(processing_time_ms, tokens_used, cost)
        ai_model_uuid = parse_uuid(ai_model_id, "ai_model_id")

        brand = await self._require_brand(brand_id)
        terms = search_terms(brand.name, brand.monitoring_keywords)
        conversation_type = classify_conversation_type(initial_query, context)

        try:
            conversation = await self.store.create_conversation(
                brand_id=brand.id,
                ai_model_id=ai_model_uuid,
                conversation_type=conversation_type,
                initial_query=initial_query,
                conversation_thread_id=conversation_thread_id,
                conversation_context=context,
            )
            turn = await self.store.append_turn(
                conversation.id,
                user_input=initial_query,
                ai_response=ai_response,
                turn_type="initial",
                processing_time_ms=processing_time_ms,
                tokens_used=tokens_used,
                cost=cost,
            )
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            logger.exception("Failed to persist new conversation for brand %s", brand_id)
            raise ConversationStoreError(f"Failed to persist conversation: {exc}") from exc

        conversation_id = conversation.id
        brand_uuid = brand.id
        logger.info(
            "Started %s conversation %s for brand %s", conversation_type, conversation_id, brand_uuid
        )

        errors: List[Dict[str, str]] = []
        tracked: List[Any] = [conversation, turn]

        mentions = await self._enrich(
            "mentions", conversation_id, tracked, errors,
            lambda: self._record_mentions(conversation_id, turn, brand_uuid, terms, ai_response),
            default=[],
        )
        tracked.extend(mentions)

        topics = await self._enrich(
            "topics", conversation_id, tracked, errors,
            lambda: self._record_topics(conversation_id, initial_query, ai_response, turn.turn_number),
            default=[],
        )
        tracked.extend(topics)

        relationships = await self._enrich(
            "relationships", conversation_id, tracked, errors,
            lambda: self.linker.link(self.store, conversation),
            default=[],
        )

        return {
            "conversation": conversation,
            "turn": turn,
            "mentions": mentions,
            "topics": topics,
            "relationships": relationships,
            "enrichment_errors": errors,
        }

    async def continue_conversation(
        self,
        conversation_id: UUIDLike,
        user_input: str,
        ai_response: str,
        turn_type: str = "follow_up",
        *,
        processing_time_ms: Optional[int] = None,
        tokens_used: Optional[int] = None,
        cost: Optional[float] = None,
    ) -> Dict[str, Any]:
        """
        Append the next turn to an existing conversation.

        Turn numbers are claimed atomically by the store, and writers on the
        same conversation are queued by the sequencer, so concurrent calls get
        distinct, gap-free numbers.

        Raises:
            ConversationNotFoundError: unknown conversation (nothing written)
            ConversationInactiveError: inactive conversation under the 'reject' policy
            ConversationValidationError: blank/over-long text or bad turn_type
        """
        user_input = require_text(user_input, "user_input", MAX_QUERY_LENGTH)
        ai_response = require_text(ai_response, "ai_response", MAX_RESPONSE_LENGTH)
        if turn_type not in CONTINUATION_TURN_TYPES:
            raise ConversationValidationError(
                f"turn_type must be one of {CONTINUATION_TURN_TYPES}, got {turn_type!r}"
            )
        validate_turn_metrics(processing_time_ms, tokens_used, cost)
        conversation_uuid = parse_uuid(conversation_id, "conversation_id")

        async with self.sequencer.hold(conversation_uuid):
            conversation = await self.store.get_conversation(conversation_uuid)
            if conversation is None:
                raise ConversationNotFoundError(f"Conversation {conversation_id} not found")
            if not conversation.is_active and self.inactive_policy == "reject":
                raise ConversationInactiveError(f"Conversation {conversation_id} is inactive")

            brand = await self.store.get_brand(conversation.brand_id)
            brand_id = conversation.brand_id
            terms = search_terms(brand.name, brand.monitoring_keywords) if brand else []

            turn = await self._write_turn(
                conversation_uuid,
                user_input=user_input,
                ai_response=ai_response,
                turn_type=turn_type,
                processing_time_ms=processing_time_ms,
                tokens_used=tokens_used,
                cost=cost,
            )
            logger.info("Conversation %s advanced to turn %s", conversation_uuid, turn.turn_number)

            errors: List[Dict[str, str]] = []
            tracked: List[Any] = [turn]

            mentions = await self._enrich(
                "mentions", conversation_uuid, tracked, errors,
                lambda: self._record_mentions(conversation_uuid, turn, brand_id, terms, ai_response),
                default=[],
            )
            tracked.extend(mentions)

            topics = await self._enrich(
                "topics", conversation_uuid, tracked, errors,
                lambda: self._record_topics(conversation_uuid, user_input, ai_response, turn.turn_number),
                default=[],
            )

        return {
            "turn": turn,
            "mentions": mentions,
            "topics": topics,
            "enrichment_errors": errors,
        }

    async def deactivate_conversation(self, conversation_id: UUIDLike):
        """Mark a conversation inactive (one-way). Raises ``ConversationNotFoundError``."""
        conversation_uuid = parse_uuid(conversation_id, "conversation_id")
        async with self.sequencer.hold(conversation_uuid):
            try:
                conversation = await self.store.mark_inactive(conversation_uuid)
                await self.db.commit()
            except ConversationError:
                await self.db.rollback()
                raise
            except SQLAlchemyError as exc:
                await self.db.rollback()
                logger.exception("Failed to deactivate conversation %s", conversation_uuid)
                raise ConversationStoreError(f"Failed to deactivate conversation: {exc}") from exc

        logger.info("Conversation %s marked inactive", conversation_uuid)
        return conversation

    # ------------------------------------------------------------------
    # Side-effect free detection
    # ------------------------------------------------------------------

    async def detect_mentions(self, brand_id: UUIDLike, text: str,
                              context: Optional[str] = None) -> Dict[str, Any]:
        """Scan ad hoc text for a brand's mentions without persisting anything."""
        text = require_text(text, "text", MAX_RESPONSE_LENGTH)
        if context is not None and len(context) > MAX_DETECTION_CONTEXT_LENGTH:
            raise ConversationValidationError(
                f"context exceeds {MAX_DETECTION_CONTEXT_LENGTH} characters"
            )

        brand = await self._require_brand(brand_id)
        detected = self.detector.detect(text, search_terms(brand.name, brand.monitoring_keywords))
        return {
            "brand_id": str(brand.id),
            "brand_name": brand.name,
            "context": context,
            "mentions": [mention.to_dict() for mention in detected],
        }

    # ------------------------------------------------------------------
    # Read paths
    # ------------------------------------------------------------------

    async def get_conversations(self, conversation_filter: Union[ConversationFilter, Dict[str, Any], None] = None) -> Dict[str, Any]:
        if conversation_filter is None:
            conversation_filter = ConversationFilter()
        elif isinstance(conversation_filter, dict):
            conversation_filter = ConversationFilter(**conversation_filter)
        conversations, total = await self.store.list_conversations(conversation_filter)
        return {"conversations": conversations, "total": total}

    async def get_conversation_details(self, conversation_id: UUIDLike) -> Dict[str, Any]:
        """Conversation with its turns, mentions, topics and relationship edges."""
        conversation = await self._require_conversation(conversation_id)
        return {
            "conversation": conversation,
            "turns": await self.store.list_turns(conversation.id),
            "mentions": await self.store.list_mentions(conversation.id),
            "topics": await self.store.list_topics(conversation.id),
            "relationships": await self.store.get_related_conversations(conversation.id),
        }

    async def get_turns(self, conversation_id: UUIDLike) -> List[ConversationTurn]:
        conversation = await self._require_conversation(conversation_id)
        return await self.store.list_turns(conversation.id)

    async def get_mentions(self, conversation_id: UUIDLike) -> List[ConversationMention]:
        conversation = await self._require_conversation(conversation_id)
        return await self.store.list_mentions(conversation.id)

    async def get_topics(self, conversation_id: UUIDLike) -> List[ConversationTopic]:
        conversation = await self._require_conversation(conversation_id)
        return await self.store.list_topics(conversation.id)

    async def get_statistics(self, brand_id: UUIDLike, days: int = 30) -> Dict[str, Any]:
        require_positive(days, "days")
        return await self.store.get_statistics(brand_id, days)

    async def get_dashboard_data(self, brand_id: UUIDLike, days: int = 30) -> Dict[str, Any]:
        """Statistics, recent conversations, top mentions and trending topics for one brand."""
        require_positive(days, "days")
        recent = await self.store.list_conversations(
            ConversationFilter(brand_id=brand_id, limit=DASHBOARD_RECENT_LIMIT)
        )
        return {
            "statistics": await self.store.get_statistics(brand_id, days),
            "recent_conversations": recent[0],
            "top_mentions": await self.store.get_top_mentions(brand_id, days),
            "trending_topics": await self.store.get_trending_topics(brand_id, days),
        }

    async def search_conversations(self, brand_id: UUIDLike, term: str, limit: int = 20):
        term = require_text(term, "term", MAX_QUERY_LENGTH)
        require_positive(limit, "limit")
        return await self.store.search_conversations(brand_id, term.strip(), limit=limit)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _require_brand(self, brand_id: UUIDLike) -> Brand:
        brand = await self.store.get_brand(brand_id)
        if brand is None:
            raise ConversationNotFoundError(f"Brand {brand_id} not found")
        return brand

    async def _require_conversation(self, conversation_id: UUIDLike):
        conversation = await self.store.get_conversation(conversation_id)
        if conversation is None:
            raise ConversationNotFoundError(f"Conversation {conversation_id} not found")
        return conversation

    async def _write_turn(self, conversation_id, **turn_fields) -> ConversationTurn:
        """Append and commit a turn, retrying when another writer took the same number."""
        require_active = self.inactive_policy == "reject"
        for attempt in range(1, self.turn_write_retries + 1):
            try:
                turn = await self.store.append_turn(
                    conversation_id, require_active=require_active, **turn_fields
                )
                await self.db.commit()
                return turn
            except ConversationError:
                await self.db.rollback()
                raise
            except IntegrityError as exc:
                await self.db.rollback()
                if attempt == self.turn_write_retries:
                    logger.exception("Turn number conflict on %s persisted after %s attempts", conversation_id, attempt)
                    raise ConversationStoreError(f"Could not assign a turn number: {exc}") from exc
                logger.warning(
                    "Turn number conflict on %s, retrying (%s/%s)",
                    conversation_id, attempt, self.turn_write_retries,
                )
            except SQLAlchemyError as exc:
                await self.db.rollback()
                logger.exception("Failed to persist turn for conversation %s", conversation_id)
                raise ConversationStoreError(f"Failed to persist turn: {exc}") from exc

    async def _enrich(self, step: str, conversation_id, tracked: List[Any],
                      errors: List[Dict[str, str]], operation: Callable[[], Awaitable[Any]],
                      default: Any) -> Any:
        """Run and commit one enrichment step; on failure roll back only that step."""
        try:
            result = await operation()
            await self.db.commit()
            return result
        except Exception as exc:
            await self.db.rollback()
            logger.exception("Enrichment step '%s' failed for conversation %s", step, conversation_id)
            errors.append({"step": step, "error": str(exc)})
            try:
                # Rollback expires every loaded instance; reload what the caller still returns
                for instance in tracked:
                    await self.db.refresh(instance)
            except SQLAlchemyError as refresh_exc:
                raise ConversationStoreError(
                    f"Store unavailable after failed '{step}' enrichment: {refresh_exc}"
                ) from refresh_exc
            return default

    async def _record_mentions(self, conversation_id, turn: ConversationTurn, brand_id,
                               terms: List[str], response_text: str) -> List[ConversationMention]:
        mentions = []
        for detected in self.detector.detect(response_text, terms):
            mention = await self.store.add_mention(
                conversation_id=conversation_id,
                conversation_turn_id=turn.id,
                brand_id=brand_id,
                mention_text=detected.mention_text,
                mention_context=detected.context,
                position_in_conversation=detected.position,
                mention_type=detected.mention_type,
                sentiment_score=detected.sentiment_score,
                sentiment_label=detected.sentiment_label,
                relevance_score=detected.relevance_score,
                confidence=detected.confidence,
            )
            mentions.append(mention)
        return mentions

    async def _record_topics(self, conversation_id, user_input: str, ai_response: str,
                             turn_number: int) -> List[ConversationTopic]:
        topics = []
        for topic in self.topic_extractor.extract(user_input, ai_response):
            topics.append(
                await self.store.upsert_topic(
                    conversation_id, topic.name, topic.category, topic.relevance, turn_number
                )
            )
        return topics
