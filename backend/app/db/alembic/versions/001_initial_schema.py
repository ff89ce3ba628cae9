"""Initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-16

Creates:
- documents (standalone documents, chunk-family parents and chunks), with a
  pgvector embedding column and HNSW cosine index on PostgreSQL
- chat_sessions, chat_messages
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from pgvector.sqlalchemy import Vector
from sqlalchemy.dialects import postgresql

from backend.app.config import get_settings

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

JSON_TYPE = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")

settings = get_settings()
EMBEDDING_TYPE = sa.JSON(none_as_null=True).with_variant(
    Vector(settings.embedding_dimensions), "postgresql"
)


def upgrade() -> None:
    """Create all tables."""
    is_postgres = op.get_bind().dialect.name == "postgresql"
    if is_postgres:
        op.execute("CREATE EXTENSION IF NOT EXISTS vector")

    # documents table
    op.create_table(
        "documents",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("category", sa.Text(), nullable=False, server_default="other"),
        sa.Column("embedding", EMBEDDING_TYPE, nullable=True),
        sa.Column("uploaded_by", sa.Uuid(), nullable=False),
        sa.Column("is_public", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("tags", JSON_TYPE, nullable=False),
        sa.Column("view_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("metadata", JSON_TYPE, nullable=True),
        sa.Column("file_name", sa.Text(), nullable=True),
        sa.Column("file_type", sa.Text(), nullable=True),
        sa.Column("file_size", sa.Integer(), nullable=True),
        sa.Column("is_chunk", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "parent_document_id",
            sa.Uuid(),
            sa.ForeignKey("documents.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("chunk_index", sa.Integer(), nullable=True),
        sa.Column("chunk_count", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("idx_documents_category_public", "documents", ["category", "is_public"])
    op.create_index("idx_documents_parent", "documents", ["parent_document_id"])
    op.create_index("idx_documents_created", "documents", ["created_at"])
    if is_postgres:
        op.create_index(
            settings.vector_index_name,
            "documents",
            ["embedding"],
            postgresql_using="hnsw",
            postgresql_with={"m": 16, "ef_construction": 64},
            postgresql_ops={"embedding": "vector_cosine_ops"},
        )

    # chat_sessions table
    op.create_table(
        "chat_sessions",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("session_id", sa.Text(), nullable=False),
        sa.Column("language", sa.Text(), nullable=False, server_default="en"),
        sa.Column("mode", sa.Text(), nullable=False, server_default="general"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index(
        "idx_chat_session_user_session", "chat_sessions", ["user_id", "session_id", "is_active"]
    )
    op.create_index("idx_chat_session_user_updated", "chat_sessions", ["user_id", "updated_at"])

    # chat_messages table
    op.create_table(
        "chat_messages",
        sa.Column("message_id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "session_pk",
            sa.Uuid(),
            sa.ForeignKey("chat_sessions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("role", sa.Text(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("sources", JSON_TYPE, nullable=False),
    )
    op.create_index("idx_chat_message_session", "chat_messages", ["session_pk", "message_id"])


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table("chat_messages")
    op.drop_table("chat_sessions")
    op.drop_table("documents")
