"""In-memory implementations of repository interfaces."""

import uuid
from datetime import datetime, timedelta, timezone

from backend.app.db.repositories import (
    NewDocument,
    RateLimitRetry,
    lexical_score,
    page_count,
    tokenize_query,
)
from backend.app.docs.vectors import top_k_similar
from backend.app.errors import NotFoundError
from backend.app.models.chat import ChatMessage, ChatMode, ChatSession, ChatSessionPage, Language
from backend.app.models.documents import (
    DocumentCategory,
    DocumentPage,
    KnowledgeDocument,
    ScoredDocument,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryDocumentStore:
    """In-memory implementation of DocumentStore."""

    def __init__(self) -> None:
        # Insertion order doubles as creation order
        self._docs: dict[uuid.UUID, KnowledgeDocument] = {}

    async def create(self, doc: NewDocument) -> KnowledgeDocument:
        """Persist one document."""
        now = _utcnow()
        stored = KnowledgeDocument(
            id=uuid.uuid4(),
            title=doc.title,
            content=doc.content,
            category=doc.category,
            embedding=list(doc.embedding),
            uploaded_by=doc.uploaded_by,
            is_public=doc.is_public,
            tags=list(doc.tags),
            metadata=doc.metadata,
            file_name=doc.file_name,
            file_type=doc.file_type,
            file_size=doc.file_size,
            is_chunk=doc.is_chunk,
            parent_document_id=doc.parent_document_id,
            chunk_index=doc.chunk_index,
            chunk_count=doc.chunk_count,
            created_at=now,
            updated_at=now,
        )
        self._docs[stored.id] = stored
        return stored

    async def create_many(self, docs: list[NewDocument]) -> list[KnowledgeDocument]:
        """Persist several documents."""
        return [await self.create(doc) for doc in docs]

    async def get(self, document_id: uuid.UUID) -> KnowledgeDocument | None:
        """Get document by ID."""
        return self._docs.get(document_id)

    async def increment_view_count(self, document_id: uuid.UUID) -> None:
        """Add one to a document's view count."""
        doc = self._docs.get(document_id)
        if doc is not None:
            self._docs[document_id] = doc.model_copy(update={"view_count": doc.view_count + 1})

    async def list_documents(
        self,
        *,
        category: DocumentCategory | None = None,
        search: str | None = None,
        include_chunks: bool = False,
        page: int = 1,
        limit: int = 20,
    ) -> DocumentPage:
        """List public documents, newest first."""
        needle = search.lower() if search else None
        matches = [
            doc
            for doc in self._docs.values()
            if doc.is_public
            and (include_chunks or not doc.is_chunk)
            and (category is None or doc.category == category)
            and (needle is None or needle in doc.title.lower() or needle in doc.content.lower())
        ]
        matches.reverse()

        offset = (page - 1) * limit
        return DocumentPage(
            documents=matches[offset : offset + limit],
            total=len(matches),
            page=page,
            pages=page_count(len(matches), limit),
        )

    async def delete(self, document_id: uuid.UUID) -> int:
        """Delete a document and cascade to its chunks."""
        doc = self._docs.get(document_id)
        if doc is None:
            raise NotFoundError(f"Document {document_id} not found")

        doomed = [document_id]
        if not doc.is_chunk and doc.chunk_count:
            doomed.extend(
                child.id
                for child in self._docs.values()
                if child.parent_document_id == document_id
            )

        for doc_id in doomed:
            del self._docs[doc_id]
        return len(doomed)

    async def vector_search(
        self, query_vector: list[float], *, num_candidates: int, limit: int
    ) -> list[ScoredDocument]:
        """Exact cosine search over public documents with embeddings.

        Documents with no positive similarity are not returned.
        """
        candidates = [doc for doc in self._docs.values() if doc.is_public and doc.embedding]
        ranked = top_k_similar(query_vector, candidates, min(limit, num_candidates))
        return [
            ScoredDocument(document=doc, score=score, score_kind="cosine")
            for doc, score in ranked
            if score > 0
        ]

    async def lexical_search(self, query: str, *, limit: int) -> list[ScoredDocument]:
        """Term-match search over public documents."""
        tokens = tokenize_query(query)
        scored: list[tuple[KnowledgeDocument, float]] = []
        for doc in self._docs.values():
            if not doc.is_public:
                continue
            score = lexical_score(tokens, title=doc.title, content=doc.content, tags=doc.tags)
            if score > 0:
                scored.append((doc, score))

        scored.sort(key=lambda pair: pair[1], reverse=True)
        return [
            ScoredDocument(document=doc, score=score, score_kind="lexical")
            for doc, score in scored[:limit]
        ]


class InMemoryChatHistoryStore:
    """In-memory implementation of ChatHistoryStore."""

    def __init__(self) -> None:
        # Every session ever created, including soft-deleted ones
        self._sessions: list[ChatSession] = []

    def _find_active(self, user_id: uuid.UUID, session_id: str) -> ChatSession | None:
        for session in self._sessions:
            if session.user_id == user_id and session.session_id == session_id and session.is_active:
                return session
        return None

    async def append_exchange(
        self,
        *,
        user_id: uuid.UUID,
        session_id: str,
        language: Language,
        mode: ChatMode,
        messages: list[ChatMessage],
    ) -> ChatSession:
        """Append messages, creating the active session on first use."""
        now = _utcnow()
        session = self._find_active(user_id, session_id)
        if session is None:
            session = ChatSession(
                user_id=user_id,
                session_id=session_id,
                language=language,
                mode=mode,
                created_at=now,
                updated_at=now,
            )
            self._sessions.append(session)

        session.messages.extend(messages)
        session.updated_at = now
        return session.model_copy(deep=True)

    async def get_session(self, user_id: uuid.UUID, session_id: str) -> ChatSession | None:
        """Get an active session."""
        session = self._find_active(user_id, session_id)
        return session.model_copy(deep=True) if session else None

    async def list_sessions(
        self,
        user_id: uuid.UUID,
        *,
        session_id: str | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> ChatSessionPage:
        """List active sessions, most recently updated first."""
        ranked = [
            (position, s)
            for position, s in enumerate(self._sessions)
            if s.user_id == user_id
            and s.is_active
            and (session_id is None or s.session_id == session_id)
        ]
        # Equal timestamps: later-created session first
        ranked.sort(key=lambda pair: (pair[1].updated_at, pair[0]), reverse=True)
        matches = [s for _, s in ranked]

        offset = (page - 1) * limit
        return ChatSessionPage(
            sessions=[s.model_copy(deep=True) for s in matches[offset : offset + limit]],
            total=len(matches),
            page=page,
            pages=page_count(len(matches), limit),
        )

    async def deactivate(self, user_id: uuid.UUID, session_id: str) -> bool:
        """Soft-delete an active session."""
        session = self._find_active(user_id, session_id)
        if session is None:
            return False
        session.is_active = False
        session.updated_at = _utcnow()
        return True

    def all_sessions(self) -> list[ChatSession]:
        """Every stored session including inactive ones (for inspection)."""
        return [s.model_copy(deep=True) for s in self._sessions]


class InMemoryRateLimiter:
    """In-memory fixed-window implementation of RateLimiter."""

    def __init__(self, max_requests: int, window_seconds: int = 60) -> None:
        self._max_requests = max_requests
        self._window_seconds = window_seconds
        self._counters: dict[str, tuple[int, int]] = {}

    def check_quota(self, key: str, now: datetime) -> RateLimitRetry | None:
        """Check if quota is available in the current window."""
        window_start = int(now.timestamp() / self._window_seconds) * self._window_seconds
        start, count = self._counters.get(key, (window_start, 0))
        if start != window_start:
            start, count = window_start, 0

        count += 1
        self._counters[key] = (start, count)

        if count > self._max_requests:
            window_end = datetime.fromtimestamp(start, tz=timezone.utc) + timedelta(
                seconds=self._window_seconds
            )
            remaining = int((window_end - now.astimezone(timezone.utc)).total_seconds())
            return RateLimitRetry(seconds=max(1, remaining))

        return None
