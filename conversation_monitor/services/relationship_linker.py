"""
Relationship Linker

Links a newly created conversation to lexically similar earlier
conversations of the same brand. Runs once, at creation; later turns never
re-trigger it and no reciprocal edge is created.
"""

import logging
from typing import List

from conversation_monitor.config import (
    RELATIONSHIP_CANDIDATE_LIMIT,
    RELATIONSHIP_SIMILARITY_THRESHOLD,
)
from conversation_monitor.models import Conversation, ConversationRelationship
from conversation_monitor.services.conversation_store import ConversationStore

logger = logging.getLogger(__name__)

RELATED_TOPIC = "related_topic"


def jaccard_similarity(text1: str, text2: str) -> float:
    """Jaccard index of the lowercased, whitespace-tokenized word sets."""
    words1 = set((text1 or "").lower().split())
    words2 = set((text2 or "").lower().split())
    union = words1 | words2
    if not union:
        return 0.0
    return len(words1 & words2) / len(union)


class RelationshipLinker:
    """Creates candidate -> new ``related_topic`` edges above a similarity threshold"""

    def __init__(self, threshold: float = RELATIONSHIP_SIMILARITY_THRESHOLD,
                 candidate_limit: int = RELATIONSHIP_CANDIDATE_LIMIT):
        self.threshold = threshold
        self.candidate_limit = candidate_limit

    async def link(self, store: ConversationStore, conversation: Conversation) -> List[ConversationRelationship]:
        """
        Search the brand's conversations for the new initial query and link the similar ones.

        Candidates come from a substring search for the whole new query, so
        only earlier conversations whose query (or turn text) contains it are
        scored. A shorter or reordered earlier query is never considered,
        even when its Jaccard score would clear the threshold.

        Args:
            store: Store bound to the caller's session (caller commits)
            conversation: The conversation just created

        Returns:
            Edges created (or already present) for this conversation
        """
        candidates = await store.search_conversations(
            conversation.brand_id,
            conversation.initial_query,
            limit=self.candidate_limit,
            exclude_conversation_id=conversation.id,
        )

        edges = []
        for candidate in candidates:
            if candidate.id == conversation.id:
                continue

            similarity = jaccard_similarity(conversation.initial_query, candidate.initial_query)
            if similarity <= self.threshold:
                continue

            edge = await store.create_relationship(
                candidate.id,
                conversation.id,
                RELATED_TOPIC,
                similarity,
            )
            edges.append(edge)

        logger.info(
            "Linked conversation %s to %s of %s candidates",
            conversation.id, len(edges), len(candidates),
        )
        return edges
