"""create_indexing_tables

Revision ID: a1c4e2f9b7d3
Revises:
Create Date: 2026-10-01 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from pgvector.sqlalchemy import Vector

# revision identifiers, used by Alembic.
revision: str = 'a1c4e2f9b7d3'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# Must match EMBEDDING_DIMENSION (google/embeddinggemma-300m)
EMBEDDING_DIMENSION = 768


def _timestamps() -> list:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, comment='Timestamp when record was created (UTC)'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, comment='Timestamp when record was last updated (UTC)'),
    ]


def upgrade() -> None:
    """
    Create the indexing tables.

    1. content_items - items registered by the metadata layer
    2. content_text - acquired text and index status, one row per item
    3. content_chunks - chunks with embeddings
    4. index_jobs - durable job queue

    Search indexes:
    - GIN on to_tsvector('english', chunk_text) for keyword search
    - HNSW (vector_cosine_ops) on embedding for vector search
    """
    op.execute('CREATE EXTENSION IF NOT EXISTS vector')

    # ================================
    # content_items
    # ================================
    op.create_table(
        'content_items',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False, comment='Auto-incrementing primary key'),
        *_timestamps(),
        sa.Column('title', sa.String(length=255), nullable=False, comment='Display title'),
        sa.Column('current_url', sa.String(length=2048), nullable=False, comment='Canonical URL of the item'),
        sa.Column('previous_urls', sa.JSON(), nullable=False, comment='URLs this item was previously known under'),
        sa.Column('source_type', sa.String(length=20), nullable=False),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_content_items')),
        sa.UniqueConstraint('current_url', name=op.f('uq_content_items_current_url')),
    )

    # ================================
    # content_text
    # ================================
    op.create_table(
        'content_text',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False, comment='Auto-incrementing primary key'),
        *_timestamps(),
        sa.Column('content_item_id', sa.Integer(), nullable=False, comment='Owning content item (one-to-one)'),
        sa.Column('full_text', sa.Text(), nullable=False, comment='Raw acquired document (HTML or transcript)'),
        sa.Column('plain_text', sa.Text(), nullable=False, comment='Normalized plain text used for chunking'),
        sa.Column('word_count', sa.Integer(), nullable=False),
        sa.Column('token_count', sa.Integer(), nullable=False),
        sa.Column('content_hash', sa.String(length=64), nullable=False, comment='SHA-256 hex digest of plain_text'),
        sa.Column('crawled_at', sa.DateTime(timezone=True), nullable=True, comment='When the text was last acquired'),
        sa.Column('crawl_duration_ms', sa.Integer(), nullable=True, comment='How long acquisition took'),
        sa.Column('index_status', sa.String(length=20), nullable=False),
        sa.Column('index_error', sa.Text(), nullable=True),
        sa.Column('indexed_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(
            ['content_item_id'], ['content_items.id'],
            name=op.f('fk_content_text_content_item_id_content_items'),
            ondelete='CASCADE',
        ),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_content_text')),
        sa.UniqueConstraint('content_item_id', name=op.f('uq_content_text_content_item_id')),
    )
    op.create_index(op.f('ix_content_text_index_status'), 'content_text', ['index_status'])

    # ================================
    # content_chunks
    # ================================
    op.create_table(
        'content_chunks',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False, comment='Auto-incrementing primary key'),
        *_timestamps(),
        sa.Column('content_text_id', sa.Integer(), nullable=False),
        sa.Column('chunk_text', sa.Text(), nullable=False),
        sa.Column('chunk_index', sa.Integer(), nullable=False, comment='Position of this chunk within its text (0-indexed)'),
        sa.Column('chunk_token_count', sa.Integer(), nullable=False),
        sa.Column('embedding', Vector(EMBEDDING_DIMENSION), nullable=True, comment='Embedding vector, NULL if generation failed'),
        sa.ForeignKeyConstraint(
            ['content_text_id'], ['content_text.id'],
            name=op.f('fk_content_chunks_content_text_id_content_text'),
            ondelete='CASCADE',
        ),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_content_chunks')),
        sa.UniqueConstraint('content_text_id', 'chunk_index', name='uq_content_chunks_text_chunk_index'),
    )
    op.create_index(op.f('ix_content_chunks_content_text_id'), 'content_chunks', ['content_text_id'])

    # Keyword search: the expression must match the one used in queries
    op.execute("""
        CREATE INDEX ix_content_chunks_chunk_text_fts
        ON content_chunks
        USING gin (to_tsvector('english'::regconfig, chunk_text))
    """)

    # Vector search (cosine distance)
    # m=16 (max connections per layer), ef_construction=64 (quality during build)
    op.execute("""
        CREATE INDEX ix_content_chunks_embedding_hnsw
        ON content_chunks
        USING hnsw (embedding vector_cosine_ops)
        WITH (m = 16, ef_construction = 64)
    """)

    # ================================
    # index_jobs
    # ================================
    op.create_table(
        'index_jobs',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False, comment='Auto-incrementing primary key'),
        *_timestamps(),
        sa.Column('name', sa.String(length=100), nullable=False, comment='Queue name (index-content)'),
        sa.Column('payload', sa.JSON(), nullable=False, comment='Job data: content_item_id and url'),
        sa.Column('singleton_key', sa.String(length=255), nullable=True, comment='Deduplication key (content item id)'),
        sa.Column('state', sa.String(length=20), nullable=False),
        sa.Column('attempt', sa.Integer(), nullable=False, comment='Number of times the job has been started'),
        sa.Column('retry_limit', sa.Integer(), nullable=False),
        sa.Column('scheduled_at', sa.DateTime(timezone=True), nullable=False, comment='Earliest time the job may be fetched'),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_index_jobs')),
    )
    op.create_index(
        'ix_index_jobs_name_state_scheduled_at',
        'index_jobs',
        ['name', 'state', 'scheduled_at'],
    )
    op.create_index(
        'uq_index_jobs_outstanding_singleton',
        'index_jobs',
        ['name', 'singleton_key'],
        unique=True,
        postgresql_where=sa.text("state IN ('created', 'retry', 'active')"),
    )


def downgrade() -> None:
    """Drop the indexing tables (the vector extension is left installed)."""
    op.drop_index('uq_index_jobs_outstanding_singleton', table_name='index_jobs')
    op.drop_index('ix_index_jobs_name_state_scheduled_at', table_name='index_jobs')
    op.drop_table('index_jobs')

    op.execute('DROP INDEX IF EXISTS ix_content_chunks_embedding_hnsw')
    op.execute('DROP INDEX IF EXISTS ix_content_chunks_chunk_text_fts')
    op.drop_index(op.f('ix_content_chunks_content_text_id'), table_name='content_chunks')
    op.drop_table('content_chunks')

    op.drop_index(op.f('ix_content_text_index_status'), table_name='content_text')
    op.drop_table('content_text')

    op.drop_table('content_items')
