"""
Tests for RelationshipLinker similarity linking

Run with: pytest conversation_monitor/tests/test_relationship_linker.py -v
"""

import uuid

import pytest

from conversation_monitor.services.conversation_store import ConversationStore
from conversation_monitor.services.relationship_linker import (
    RELATED_TOPIC,
    RelationshipLinker,
    jaccard_similarity,
)


async def _conversation(store, brand, query):
    conversation = await store.create_conversation(
        brand_id=brand.id,
        ai_model_id=uuid.uuid4(),
        conversation_type="query_response",
        initial_query=query,
    )
    await store.db.commit()
    return conversation


def test_jaccard_similarity():
    assert jaccard_similarity("best crm software", "Best CRM software") == pytest.approx(1.0)
    assert jaccard_similarity("best crm software for startups", "best crm software for startups today") == pytest.approx(5 / 6)
    assert jaccard_similarity("alpha beta", "gamma delta") == pytest.approx(0.0)


def test_jaccard_similarity_of_empty_texts_is_zero():
    assert jaccard_similarity("", "") == 0.0
    assert jaccard_similarity("   ", None) == 0.0


@pytest.mark.asyncio
async def test_links_similar_prior_conversations_to_the_new_one(db_session, brand_factory):
    brand = await brand_factory()
    store = ConversationStore(db_session)
    prior_a = await _conversation(store, brand, "best crm software for startups today")
    prior_b = await _conversation(store, brand, "the best crm software for startups")
    await _conversation(store, brand, "is the best crm software for startups worth paying for in the long run")
    new = await _conversation(store, brand, "best crm software for startups")

    edges = await RelationshipLinker().link(store, new)
    await db_session.commit()

    assert len(edges) == 2
    assert {edge.parent_conversation_id for edge in edges} == {prior_a.id, prior_b.id}
    for edge in edges:
        assert edge.child_conversation_id == new.id
        assert edge.relationship_type == RELATED_TOPIC
        assert edge.relationship_strength == pytest.approx(5 / 6)

    related = await store.get_related_conversations(new.id)
    assert len(related["parents"]) == 2
    assert related["children"] == []


@pytest.mark.asyncio
async def test_threshold_is_strict(db_session, brand_factory):
    brand = await brand_factory()
    store = ConversationStore(db_session)
    await _conversation(store, brand, "a b c d e f g h i j")
    new = await _conversation(store, brand, "a b c d e f g")

    # 7 shared of 10 distinct words is exactly 0.7, which does not link
    assert await RelationshipLinker(threshold=0.7).link(store, new) == []


@pytest.mark.asyncio
async def test_only_queries_containing_the_new_query_are_candidates(db_session, brand_factory):
    brand = await brand_factory()
    store = ConversationStore(db_session)
    shorter = await _conversation(store, brand, "best crm software for startups")
    reordered = await _conversation(store, brand, "crm software best for startups today")
    new = await _conversation(store, brand, "best crm software for startups today")

    assert jaccard_similarity(new.initial_query, shorter.initial_query) > 0.7
    assert jaccard_similarity(new.initial_query, reordered.initial_query) == pytest.approx(1.0)
    assert await RelationshipLinker().link(store, new) == []


@pytest.mark.asyncio
async def test_other_brands_are_never_linked(db_session, brand_factory):
    brand = await brand_factory()
    other_brand = await brand_factory(name="OtherCo")
    store = ConversationStore(db_session)
    await _conversation(store, other_brand, "best crm software for startups")
    new = await _conversation(store, brand, "best crm software for startups")

    assert await RelationshipLinker().link(store, new) == []


@pytest.mark.asyncio
async def test_relinking_does_not_duplicate_edges(db_session, brand_factory):
    brand = await brand_factory()
    store = ConversationStore(db_session)
    prior = await _conversation(store, brand, "best crm software for startups today")
    new = await _conversation(store, brand, "best crm software for startups")

    first = await RelationshipLinker().link(store, new)
    second = await RelationshipLinker().link(store, new)
    await db_session.commit()

    assert [edge.id for edge in first] == [edge.id for edge in second]
    assert [rel.parent_conversation_id for rel, _ in (await store.get_related_conversations(new.id))["parents"]] == [prior.id]


@pytest.mark.asyncio
async def test_candidate_limit_caps_the_search(db_session, brand_factory):
    brand = await brand_factory()
    store = ConversationStore(db_session)
    for suffix in ("one", "two", "three"):
        await _conversation(store, brand, f"best crm software for startups {suffix}")
    new = await _conversation(store, brand, "best crm software for startups")

    edges = await RelationshipLinker(candidate_limit=2).link(store, new)

    assert len(edges) == 2
