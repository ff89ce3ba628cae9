"""Repository protocol interfaces for data access."""

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol
from uuid import UUID

from backend.app.models.chat import ChatMessage, ChatMode, ChatSession, ChatSessionPage, Language
from backend.app.models.documents import (
    DocumentCategory,
    DocumentMetadata,
    DocumentPage,
    KnowledgeDocument,
    ScoredDocument,
)


@dataclass
class NewDocument:
    """Document data record for insertion."""

    title: str
    content: str
    uploaded_by: UUID
    category: DocumentCategory = DocumentCategory.other
    embedding: list[float] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    metadata: DocumentMetadata = field(default_factory=DocumentMetadata)
    is_public: bool = True
    is_chunk: bool = False
    parent_document_id: UUID | None = None
    chunk_index: int | None = None
    chunk_count: int | None = None
    file_name: str | None = None
    file_type: str | None = None
    file_size: int | None = None


@dataclass(frozen=True)
class RateLimitRetry:
    """Retry-after hint returned when a rate limit is exceeded."""

    seconds: int


class DocumentStore(Protocol):
    """Repository for documents and their search operations."""

    async def create(self, doc: NewDocument) -> KnowledgeDocument:
        """Persist one document.

        Returns:
            Stored document with id and timestamps
        """
        ...

    async def create_many(self, docs: list[NewDocument]) -> list[KnowledgeDocument]:
        """Persist several independent documents (e.g. a chunk family)."""
        ...

    async def get(self, document_id: UUID) -> KnowledgeDocument | None:
        """Get document by ID, or None if not found."""
        ...

    async def increment_view_count(self, document_id: UUID) -> None:
        """Add one to a document's view count."""
        ...

    async def list_documents(
        self,
        *,
        category: DocumentCategory | None = None,
        search: str | None = None,
        include_chunks: bool = False,
        page: int = 1,
        limit: int = 20,
    ) -> DocumentPage:
        """List public documents, newest first.

        Args:
            category: Optional category filter
            search: Optional case-insensitive substring over title and content
            include_chunks: Include chunk documents (excluded by default)
            page: 1-based page number
            limit: Page size
        """
        ...

    async def delete(self, document_id: UUID) -> int:
        """Delete a document and, for a parent, all of its chunks.

        Returns:
            Number of documents removed

        Raises:
            NotFoundError: If the document does not exist
        """
        ...

    async def vector_search(
        self, query_vector: list[float], *, num_candidates: int, limit: int
    ) -> list[ScoredDocument]:
        """Nearest documents to the query vector, best first."""
        ...

    async def lexical_search(self, query: str, *, limit: int) -> list[ScoredDocument]:
        """Documents ranked by term relevance over title, content and tags."""
        ...


class ChatHistoryStore(Protocol):
    """Repository for chat sessions."""

    async def append_exchange(
        self,
        *,
        user_id: UUID,
        session_id: str,
        language: Language,
        mode: ChatMode,
        messages: list[ChatMessage],
    ) -> ChatSession:
        """Append messages to the user's active session, creating it if absent."""
        ...

    async def get_session(self, user_id: UUID, session_id: str) -> ChatSession | None:
        """Get an active session, or None."""
        ...

    async def list_sessions(
        self,
        user_id: UUID,
        *,
        session_id: str | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> ChatSessionPage:
        """List active sessions, most recently updated first."""
        ...

    async def deactivate(self, user_id: UUID, session_id: str) -> bool:
        """Soft-delete an active session.

        Returns:
            True if a session was deactivated, False if none was active
        """
        ...


class RateLimiter(Protocol):
    """Rate limiter interface."""

    def check_quota(self, key: str, now: datetime) -> RateLimitRetry | None:
        """Check if quota is available.

        Returns:
            RateLimitRetry if over quota, None if allowed
        """
        ...


# Lexical scoring shared by every store implementation

_WORD = re.compile(r"\w+", re.UNICODE)

_STOPWORDS = frozenset(
    {
        "a", "an", "and", "are", "at", "be", "can", "do", "does", "for", "from", "how",
        "i", "in", "is", "it", "me", "my", "of", "on", "or", "should", "the", "to",
        "what", "when", "where", "which", "who", "why", "with",
    }
)


def tokenize_query(query: str) -> list[str]:
    """Lowercase, de-duplicated query terms without stopwords."""
    seen: dict[str, None] = {}
    for token in _WORD.findall(query.lower()):
        if token not in _STOPWORDS:
            seen.setdefault(token)
    return list(seen)


def lexical_score(
    query_tokens: list[str], *, title: str, content: str, tags: list[str]
) -> float:
    """Count query terms present in the document; title and tag hits count double."""
    if not query_tokens:
        return 0.0

    title_words = set(_WORD.findall(title.lower()))
    tag_words = set(_WORD.findall(" ".join(tags).lower()))
    content_words = set(_WORD.findall(content.lower()))

    score = 0.0
    for token in query_tokens:
        if token in title_words or token in tag_words:
            score += 2.0
        elif token in content_words:
            score += 1.0
    return score


def page_count(total: int, limit: int) -> int:
    """Number of pages needed for ``total`` items."""
    return -(-total // limit) if limit > 0 else 0
