"""Document ingestion - normalize, chunk, embed and persist."""

import asyncio
import logging
from uuid import UUID

from backend.app.db.repositories import DocumentStore, NewDocument
from backend.app.docs.chunker import chunk_text, normalize_text
from backend.app.errors import ConfigError, InputValidationError, RAGError
from backend.app.llm.embeddings import EmbeddingClient
from backend.app.models.documents import DocumentCategory, DocumentMetadata, IngestResult
from backend.app.utils.metrics import documents_ingested_total

logger = logging.getLogger(__name__)


class IngestionPipeline:
    """Turns uploaded text into stored, searchable documents.

    Content longer than the chunk threshold becomes a parent document (kept
    for listing, never embedded) plus one embedded chunk document per piece.
    Shorter content is stored as a single embedded document.
    """

    def __init__(
        self,
        store: DocumentStore,
        embedder: EmbeddingClient,
        *,
        chunk_size: int = 1000,
        chunk_overlap: int = 200,
        chunk_threshold: int = 2000,
        max_content_chars: int = 50_000,
    ) -> None:
        self._store = store
        self._embedder = embedder
        self._chunk_size = chunk_size
        self._chunk_overlap = chunk_overlap
        self._chunk_threshold = chunk_threshold
        self._max_content_chars = max_content_chars

    async def ingest(
        self,
        title: str,
        raw_content: str,
        uploader_id: UUID,
        category: DocumentCategory = DocumentCategory.other,
        tags: list[str] | None = None,
        metadata: DocumentMetadata | None = None,
        *,
        file_name: str | None = None,
        file_type: str | None = None,
        file_size: int | None = None,
    ) -> IngestResult:
        """Ingest one document.

        Args:
            title: Document title (chunk titles are derived from it)
            raw_content: Unnormalized document text
            uploader_id: Uploading user's ID
            category: Knowledge category
            tags: Free-form tags
            metadata: Optional structured metadata
            file_name: Original file name for file uploads
            file_type: Original MIME type for file uploads
            file_size: Original size in bytes for file uploads

        Returns:
            IngestResult for the standalone or parent document

        Raises:
            InputValidationError: If title or content is empty after normalization,
                or the normalized content is longer than the content limit
        """
        title = title.strip()
        content = normalize_text(raw_content)
        if not title or not content:
            raise InputValidationError("Title and content are required")
        if len(content) > self._max_content_chars:
            raise InputValidationError(
                f"Content must be at most {self._max_content_chars} characters"
            )

        base = NewDocument(
            title=title,
            content=content,
            uploaded_by=uploader_id,
            category=category,
            tags=list(tags or []),
            metadata=metadata or DocumentMetadata(),
            file_name=file_name,
            file_type=file_type,
            file_size=file_size,
        )

        if len(content) > self._chunk_threshold:
            return await self._ingest_chunked(base)

        base.embedding = await self._safe_embed(content, label=title)
        stored = await self._store.create(base)
        documents_ingested_total.labels(kind="standalone").inc()
        logger.info(f"Ingested document {stored.id} ({title!r}, {len(content)} chars)")

        return IngestResult(
            id=stored.id,
            title=stored.title,
            category=stored.category,
            chunk_count=None,
            created_at=stored.created_at,
        )

    async def _ingest_chunked(self, base: NewDocument) -> IngestResult:
        chunks = chunk_text(
            base.content, max_chunk_size=self._chunk_size, overlap=self._chunk_overlap
        )
        total = len(chunks)
        logger.info(f"Document {base.title!r} split into {total} chunks")

        # Embed before writing anything so a failed fan-out stores nothing
        embeddings = await asyncio.gather(
            *(
                self._safe_embed(chunk.text, label=f"{base.title} chunk {chunk.index + 1}/{total}")
                for chunk in chunks
            )
        )

        base.chunk_count = total
        parent = await self._store.create(base)

        children = [
            NewDocument(
                title=f"{base.title} (Chunk {chunk.index + 1}/{total})",
                content=chunk.text,
                uploaded_by=base.uploaded_by,
                category=base.category,
                embedding=embedding,
                tags=list(base.tags),
                metadata=base.metadata,
                is_chunk=True,
                parent_document_id=parent.id,
                chunk_index=chunk.index,
                chunk_count=total,
            )
            for chunk, embedding in zip(chunks, embeddings)
        ]
        try:
            await self._store.create_many(children)
        except Exception:
            logger.error(f"Storing chunks of {parent.id} failed, removing parent document")
            await self._discard(parent.id)
            raise

        documents_ingested_total.labels(kind="parent").inc()
        documents_ingested_total.labels(kind="chunk").inc(len(children))

        missing = sum(1 for embedding in embeddings if not embedding)
        if missing:
            logger.warning(f"{missing}/{total} chunks of {parent.id} stored without embeddings")

        return IngestResult(
            id=parent.id,
            title=parent.title,
            category=parent.category,
            chunk_count=total,
            created_at=parent.created_at,
        )

    async def _discard(self, document_id: UUID) -> None:
        """Best-effort removal of a parent whose chunks were not stored."""
        try:
            await self._store.delete(document_id)
        except Exception as e:
            logger.error(f"Could not remove orphaned parent {document_id}: {type(e).__name__}: {e}")

    async def _safe_embed(self, text: str, *, label: str) -> list[float]:
        """Embed text, returning an empty vector when the upstream fails."""
        try:
            return await self._embedder.embed(text)
        except ConfigError as e:
            logger.error(f"Embedding unavailable for {label!r}: {e}")
        except RAGError as e:
            logger.warning(f"Embedding failed for {label!r}: {type(e).__name__}: {e}")
        return []
