"""SQL implementations of repository interfaces."""

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from pgvector.sqlalchemy import Vector
from sqlalchemy import Select, Text, cast, delete, func, or_, select, text, type_coerce, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from backend.app.db.models import ChatMessage as ChatMessageDB
from backend.app.db.models import ChatSession as ChatSessionDB
from backend.app.db.models import Document as DocumentDB
from backend.app.db.repositories import (
    NewDocument,
    lexical_score,
    page_count,
    tokenize_query,
)
from backend.app.docs.vectors import top_k_similar
from backend.app.errors import NotFoundError
from backend.app.models.chat import (
    ChatMessage,
    ChatMode,
    ChatSession,
    ChatSessionPage,
    Language,
    SourceCitation,
)
from backend.app.models.documents import (
    DocumentCategory,
    DocumentMetadata,
    DocumentPage,
    KnowledgeDocument,
    ScoredDocument,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_domain(row: DocumentDB) -> KnowledgeDocument:
    """Convert ORM row to domain model."""
    return KnowledgeDocument(
        id=row.id,
        title=row.title,
        content=row.content,
        category=DocumentCategory(row.category),
        embedding=[float(x) for x in row.embedding] if row.embedding is not None else [],
        uploaded_by=row.uploaded_by,
        is_public=row.is_public,
        tags=list(row.tags or []),
        view_count=row.view_count,
        metadata=DocumentMetadata.model_validate(row.metadata_ or {}),
        file_name=row.file_name,
        file_type=row.file_type,
        file_size=row.file_size,
        is_chunk=row.is_chunk,
        parent_document_id=row.parent_document_id,
        chunk_index=row.chunk_index,
        chunk_count=row.chunk_count,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _to_row(doc: NewDocument, now: datetime) -> DocumentDB:
    """Convert insertion record to ORM row."""
    metadata = doc.metadata.model_dump(mode="json", exclude_defaults=True)
    return DocumentDB(
        id=uuid.uuid4(),
        title=doc.title,
        content=doc.content,
        category=doc.category.value,
        embedding=list(doc.embedding) or None,
        uploaded_by=doc.uploaded_by,
        is_public=doc.is_public,
        tags=list(doc.tags),
        view_count=0,
        metadata_=metadata or None,
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


@dataclass(frozen=True)
class _EmbeddingCandidate:
    """Lightweight (id, embedding) pair scored before full rows are loaded."""

    id: uuid.UUID
    embedding: list[float]


class SqlDocumentStore:
    """SQL implementation of DocumentStore.

    Vector search runs in pgvector on PostgreSQL and in Python elsewhere.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, doc: NewDocument) -> KnowledgeDocument:
        """Persist one document."""
        (stored,) = await self.create_many([doc])
        return stored

    async def create_many(self, docs: list[NewDocument]) -> list[KnowledgeDocument]:
        """Persist several documents in one commit."""
        now = _utcnow()
        rows = [_to_row(doc, now) for doc in docs]
        self._session.add_all(rows)
        try:
            await self._session.flush()
        except Exception:
            await self._session.rollback()
            raise
        stored = [_to_domain(row) for row in rows]
        await self._session.commit()
        return stored

    async def get(self, document_id: uuid.UUID) -> KnowledgeDocument | None:
        """Get document by ID."""
        row = await self._session.get(DocumentDB, document_id)
        return _to_domain(row) if row is not None else None

    async def increment_view_count(self, document_id: uuid.UUID) -> None:
        """Add one to a document's view count."""
        await self._session.execute(
            update(DocumentDB)
            .where(DocumentDB.id == document_id)
            .values(view_count=DocumentDB.view_count + 1)
        )
        await self._session.commit()

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
        query: Select[Any] = select(DocumentDB).where(DocumentDB.is_public.is_(True))

        if not include_chunks:
            query = query.where(DocumentDB.is_chunk.is_(False))
        if category is not None:
            query = query.where(DocumentDB.category == category.value)
        if search:
            pattern = f"%{search}%"
            query = query.where(
                or_(DocumentDB.title.ilike(pattern), DocumentDB.content.ilike(pattern))
            )

        total_result = await self._session.execute(
            select(func.count()).select_from(query.subquery())
        )
        total = int(total_result.scalar_one())

        result = await self._session.execute(
            query.order_by(DocumentDB.created_at.desc(), DocumentDB.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        documents = [_to_domain(row) for row in result.scalars().all()]

        return DocumentPage(
            documents=documents, total=total, page=page, pages=page_count(total, limit)
        )

    async def delete(self, document_id: uuid.UUID) -> int:
        """Delete a document and cascade to its chunks."""
        row = await self._session.get(DocumentDB, document_id)
        if row is None:
            raise NotFoundError(f"Document {document_id} not found")

        removed = 0
        if not row.is_chunk and row.chunk_count:
            result = await self._session.execute(
                delete(DocumentDB).where(DocumentDB.parent_document_id == document_id)
            )
            removed += result.rowcount or 0

        await self._session.delete(row)
        await self._session.commit()
        return removed + 1

    def _is_postgres(self) -> bool:
        return self._session.get_bind().dialect.name == "postgresql"

    async def vector_search(
        self, query_vector: list[float], *, num_candidates: int, limit: int
    ) -> list[ScoredDocument]:
        """Nearest public documents by cosine similarity.

        PostgreSQL ranks inside the HNSW candidate pool and reports the
        engine score; other backends score every stored embedding in Python.
        Documents with no positive similarity are not returned.
        """
        if self._is_postgres():
            return await self._engine_vector_search(
                query_vector, num_candidates=num_candidates, limit=limit
            )
        return await self._exact_vector_search(query_vector, limit=limit)

    async def _engine_vector_search(
        self, query_vector: list[float], *, num_candidates: int, limit: int
    ) -> list[ScoredDocument]:
        # SET does not take bind parameters
        await self._session.execute(
            text(f"SET LOCAL hnsw.ef_search = {max(int(num_candidates), limit)}")
        )

        distance = type_coerce(DocumentDB.embedding, Vector(len(query_vector))).cosine_distance(
            query_vector
        )
        pool = (
            select(DocumentDB.id, distance.label("distance"))
            .where(DocumentDB.is_public.is_(True), DocumentDB.embedding.is_not(None))
            .order_by(distance)
            .limit(num_candidates)
            .subquery()
        )
        result = await self._session.execute(
            select(DocumentDB, pool.c.distance)
            .join(pool, DocumentDB.id == pool.c.id)
            .where(pool.c.distance < 1)
            .order_by(pool.c.distance, DocumentDB.created_at.asc(), DocumentDB.id.asc())
            .limit(limit)
        )

        return [
            ScoredDocument(document=_to_domain(row), score=1 - float(dist), score_kind="engine")
            for row, dist in result.all()
        ]

    async def _exact_vector_search(
        self, query_vector: list[float], *, limit: int
    ) -> list[ScoredDocument]:
        result = await self._session.execute(
            select(DocumentDB.id, DocumentDB.embedding)
            .where(DocumentDB.is_public.is_(True), DocumentDB.embedding.is_not(None))
            .order_by(DocumentDB.created_at.asc(), DocumentDB.id.asc())
        )
        candidates = [
            _EmbeddingCandidate(id=doc_id, embedding=list(embedding))
            for doc_id, embedding in result.all()
            if embedding
        ]

        ranked = [
            (candidate, score)
            for candidate, score in top_k_similar(query_vector, candidates, len(candidates))
            if score > 0
        ][:limit]
        if not ranked:
            return []

        rows_result = await self._session.execute(
            select(DocumentDB).where(DocumentDB.id.in_([c.id for c, _ in ranked]))
        )
        rows = {row.id: row for row in rows_result.scalars().all()}

        return [
            ScoredDocument(document=_to_domain(rows[c.id]), score=score, score_kind="cosine")
            for c, score in ranked
            if c.id in rows
        ]

    async def lexical_search(self, query: str, *, limit: int) -> list[ScoredDocument]:
        """Term-match search over public documents."""
        tokens = tokenize_query(query)
        if not tokens:
            return []

        # Coarse SQL prefilter; exact scoring happens in Python
        clauses = []
        for token in tokens:
            pattern = f"%{token}%"
            clauses.extend(
                [
                    DocumentDB.title.ilike(pattern),
                    DocumentDB.content.ilike(pattern),
                    cast(DocumentDB.tags, Text).ilike(pattern),
                ]
            )

        result = await self._session.execute(
            select(DocumentDB)
            .where(DocumentDB.is_public.is_(True), or_(*clauses))
            .order_by(DocumentDB.created_at.asc(), DocumentDB.id.asc())
        )

        scored: list[tuple[DocumentDB, float]] = []
        for row in result.scalars().all():
            score = lexical_score(
                tokens, title=row.title, content=row.content, tags=list(row.tags or [])
            )
            if score > 0:
                scored.append((row, score))

        scored.sort(key=lambda pair: pair[1], reverse=True)
        return [
            ScoredDocument(document=_to_domain(row), score=score, score_kind="lexical")
            for row, score in scored[:limit]
        ]


def _session_to_domain(row: ChatSessionDB) -> ChatSession:
    """Convert ORM session (with messages loaded) to domain model."""
    return ChatSession(
        user_id=row.user_id,
        session_id=row.session_id,
        messages=[
            ChatMessage(
                role=message.role,  # type: ignore[arg-type]
                content=message.content,
                timestamp=message.timestamp,
                sources=[SourceCitation.model_validate(s) for s in message.sources or []],
            )
            for message in row.messages
        ],
        language=Language(row.language),
        mode=ChatMode(row.mode),
        is_active=row.is_active,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class SqlChatHistoryStore:
    """SQL implementation of ChatHistoryStore."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def _find_active(self, user_id: uuid.UUID, session_id: str) -> ChatSessionDB | None:
        result = await self._session.execute(
            select(ChatSessionDB)
            .options(selectinload(ChatSessionDB.messages))
            .where(
                ChatSessionDB.user_id == user_id,
                ChatSessionDB.session_id == session_id,
                ChatSessionDB.is_active.is_(True),
            )
        )
        return result.scalars().first()

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
        row = await self._find_active(user_id, session_id)
        if row is None:
            row = ChatSessionDB(
                id=uuid.uuid4(),
                user_id=user_id,
                session_id=session_id,
                language=language.value,
                mode=mode.value,
                is_active=True,
                created_at=now,
                updated_at=now,
                messages=[],
            )
            self._session.add(row)

        for message in messages:
            row.messages.append(
                ChatMessageDB(
                    role=message.role,
                    content=message.content,
                    timestamp=message.timestamp,
                    sources=[s.model_dump(mode="json") for s in message.sources],
                )
            )
        row.updated_at = now

        await self._session.flush()
        stored = _session_to_domain(row)
        await self._session.commit()
        return stored

    async def get_session(self, user_id: uuid.UUID, session_id: str) -> ChatSession | None:
        """Get an active session."""
        row = await self._find_active(user_id, session_id)
        return _session_to_domain(row) if row is not None else None

    async def list_sessions(
        self,
        user_id: uuid.UUID,
        *,
        session_id: str | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> ChatSessionPage:
        """List active sessions, most recently updated first."""
        query: Select[Any] = select(ChatSessionDB).where(
            ChatSessionDB.user_id == user_id, ChatSessionDB.is_active.is_(True)
        )
        if session_id is not None:
            query = query.where(ChatSessionDB.session_id == session_id)

        total_result = await self._session.execute(
            select(func.count()).select_from(query.subquery())
        )
        total = int(total_result.scalar_one())

        result = await self._session.execute(
            query.options(selectinload(ChatSessionDB.messages))
            .order_by(
                ChatSessionDB.updated_at.desc(),
                ChatSessionDB.created_at.desc(),
                ChatSessionDB.id.desc(),
            )
            .offset((page - 1) * limit)
            .limit(limit)
        )
        sessions = [_session_to_domain(row) for row in result.scalars().all()]

        return ChatSessionPage(
            sessions=sessions, total=total, page=page, pages=page_count(total, limit)
        )

    async def deactivate(self, user_id: uuid.UUID, session_id: str) -> bool:
        """Soft-delete an active session."""
        result = await self._session.execute(
            update(ChatSessionDB)
            .where(
                ChatSessionDB.user_id == user_id,
                ChatSessionDB.session_id == session_id,
                ChatSessionDB.is_active.is_(True),
            )
            .values(is_active=False, updated_at=_utcnow())
        )
        await self._session.commit()
        return bool(result.rowcount)
