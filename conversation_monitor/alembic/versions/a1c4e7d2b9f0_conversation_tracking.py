"""Add conversation tracking tables

Revision ID: a1c4e7d2b9f0
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = 'a1c4e7d2b9f0'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa.inspect(bind)
    existing_tables = set(inspector.get_table_names())

    # brands is normally owned by brand management; create it only on a fresh database
    if 'brands' not in existing_tables:
        op.create_table(
            'brands',
            sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
            sa.Column('name', sa.Text, nullable=False),
            sa.Column('monitoring_keywords', postgresql.JSONB),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
            sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        )

    op.create_table(
        'conversations',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('brand_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('brands.id', ondelete='CASCADE'), nullable=False),
        sa.Column('ai_model_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('conversation_thread_id', sa.String(255)),
        sa.Column('conversation_type', sa.String(50), nullable=False),
        sa.Column('initial_query', sa.Text, nullable=False),
        sa.Column('conversation_context', postgresql.JSONB),
        sa.Column('total_turns', sa.Integer, nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('last_activity_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint(
            "conversation_type IN ('query_response', 'follow_up', 'multi_turn', 'comparison')",
            name='valid_conversation_type'
        ),
        sa.CheckConstraint('total_turns >= 0', name='valid_total_turns'),
    )
    op.create_index('idx_conversations_brand_id', 'conversations', ['brand_id'])
    op.create_index('idx_conversations_ai_model_id', 'conversations', ['ai_model_id'])
    op.create_index('idx_conversations_type', 'conversations', ['conversation_type'])
    op.create_index('idx_conversations_active', 'conversations', ['is_active'])
    op.create_index('idx_conversations_started_at', 'conversations', ['started_at'])
    op.create_index('idx_conversations_last_activity', 'conversations', ['last_activity_at'])

    op.create_table(
        'conversation_turns',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('conversation_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('conversations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('turn_number', sa.Integer, nullable=False),
        sa.Column('turn_type', sa.String(50), nullable=False),
        sa.Column('user_input', sa.Text, nullable=False),
        sa.Column('ai_response', sa.Text, nullable=False),
        sa.Column('processing_time_ms', sa.Integer),
        sa.Column('tokens_used', sa.Integer),
        sa.Column('cost', sa.Float),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint('conversation_id', 'turn_number', name='uq_conversation_turn_number'),
        sa.CheckConstraint('turn_number >= 1', name='valid_turn_number'),
        sa.CheckConstraint(
            "turn_type IN ('initial', 'follow_up', 'clarification', 'comparison')",
            name='valid_turn_type'
        ),
    )
    op.create_index('idx_conversation_turns_conversation_id', 'conversation_turns', ['conversation_id'])
    op.create_index('idx_conversation_turns_type', 'conversation_turns', ['turn_type'])

    op.create_table(
        'conversation_mentions',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('conversation_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('conversations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('conversation_turn_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('conversation_turns.id', ondelete='CASCADE')),
        sa.Column('brand_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('brands.id', ondelete='CASCADE'), nullable=False),
        sa.Column('mention_text', sa.Text, nullable=False),
        sa.Column('mention_context', sa.Text, nullable=False),
        sa.Column('position_in_conversation', sa.Integer, nullable=False),
        sa.Column('mention_type', sa.String(50), nullable=False),
        sa.Column('sentiment_score', sa.Float),
        sa.Column('sentiment_label', sa.String(20)),
        sa.Column('relevance_score', sa.Float),
        sa.Column('confidence', sa.Float),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint(
            "mention_type IN ('direct', 'indirect', 'comparison', 'recommendation')",
            name='valid_mention_type'
        ),
        sa.CheckConstraint(
            "sentiment_label IS NULL OR sentiment_label IN ('positive', 'negative', 'neutral')",
            name='valid_sentiment_label'
        ),
        sa.CheckConstraint('sentiment_score >= -1.0 AND sentiment_score <= 1.0', name='check_mention_sentiment'),
        sa.CheckConstraint('relevance_score >= 0.0 AND relevance_score <= 1.0', name='check_mention_relevance'),
        sa.CheckConstraint('confidence >= 0.0 AND confidence <= 1.0', name='check_mention_confidence'),
    )
    op.create_index('idx_conversation_mentions_conversation_id', 'conversation_mentions', ['conversation_id'])
    op.create_index('idx_conversation_mentions_brand_id', 'conversation_mentions', ['brand_id'])
    op.create_index('idx_conversation_mentions_turn_id', 'conversation_mentions', ['conversation_turn_id'])
    op.create_index('idx_conversation_mentions_type', 'conversation_mentions', ['mention_type'])
    op.create_index('idx_conversation_mentions_sentiment', 'conversation_mentions', ['sentiment_label'])
    op.create_index('idx_conversation_mentions_position', 'conversation_mentions', ['position_in_conversation'])

    op.create_table(
        'conversation_topics',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('conversation_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('conversations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('topic_name', sa.String(255), nullable=False),
        sa.Column('topic_category', sa.String(100), nullable=False),
        sa.Column('relevance_score', sa.Float, nullable=False),
        sa.Column('first_mentioned_turn', sa.Integer, nullable=False),
        sa.Column('last_mentioned_turn', sa.Integer, nullable=False),
        sa.Column('mention_count', sa.Integer, nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint('conversation_id', 'topic_name', name='uq_conversation_topic'),
        sa.CheckConstraint('relevance_score >= 0.0 AND relevance_score <= 1.0', name='check_topic_relevance'),
        sa.CheckConstraint('mention_count >= 1', name='check_topic_mention_count'),
    )
    op.create_index('idx_conversation_topics_conversation_id', 'conversation_topics', ['conversation_id'])
    op.create_index('idx_conversation_topics_category', 'conversation_topics', ['topic_category'])
    op.create_index('idx_conversation_topics_relevance', 'conversation_topics', ['relevance_score'])

    op.create_table(
        'conversation_relationships',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('parent_conversation_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('conversations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('child_conversation_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('conversations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('relationship_type', sa.String(50), nullable=False),
        sa.Column('relationship_strength', sa.Float, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint('parent_conversation_id', 'child_conversation_id', name='uq_conversation_relationship'),
        sa.CheckConstraint('parent_conversation_id != child_conversation_id', name='no_self_reference'),
        sa.CheckConstraint(
            "relationship_type IN ('follow_up', 'related_topic', 'comparison', 'clarification')",
            name='valid_relationship_type'
        ),
        sa.CheckConstraint('relationship_strength BETWEEN 0 AND 1', name='valid_strength'),
    )
    op.create_index('idx_conversation_relationships_parent', 'conversation_relationships', ['parent_conversation_id'])
    op.create_index('idx_conversation_relationships_child', 'conversation_relationships', ['child_conversation_id'])
    op.create_index('idx_conversation_relationships_type', 'conversation_relationships', ['relationship_type'])


def downgrade():
    op.drop_table('conversation_relationships')
    op.drop_table('conversation_topics')
    op.drop_table('conversation_mentions')
    op.drop_table('conversation_turns')
    op.drop_table('conversations')
