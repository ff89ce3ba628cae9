"""Document retriever - vector search with lexical fallback."""

import logging
from dataclasses import dataclass, field
from typing import Literal

from backend.app.db.repositories import DocumentStore
from backend.app.errors import ConfigError, RAGError
from backend.app.llm.embeddings import EmbeddingClient
from backend.app.models.documents import ScoredDocument
from backend.app.utils.metrics import retrieval_mode_total

logger = logging.getLogger(__name__)

RetrievalMode = Literal["vector", "lexical", "none"]

# Candidate pool size relative to the requested result count
CANDIDATE_MULTIPLIER = 10


@dataclass
class RetrievalResult:
    """Retrieved documents and the path that produced them."""

    documents: list[ScoredDocument] = field(default_factory=list)
    mode: RetrievalMode = "none"


class Retriever:
    """Finds context documents for a question.

    Never raises for upstream or store failures: an unusable embedding sends
    retrieval to lexical search, and a failing lexical search yields an empty
    result.
    """

    def __init__(self, store: DocumentStore, embedder: EmbeddingClient) -> None:
        self._store = store
        self._embedder = embedder

    async def retrieve(self, question: str, k: int = 3) -> RetrievalResult:
        """Retrieve up to k scored documents, best first."""
        query_embedding: list[float] | None = None
        try:
            query_embedding = await self._embedder.embed(question)
        except ConfigError as e:
            logger.warning(f"Embedding not configured, using text search: {e}")
        except RAGError as e:
            logger.warning(f"Embedding generation failed, using text search fallback: {e}")

        if query_embedding:
            docs = await self._vector_search(query_embedding, k)
            if docs:
                return self._result(docs, "vector")
            logger.info("Vector search returned no results, trying text search")

        docs = await self._lexical_search(question, k)
        if docs:
            return self._result(docs, "lexical")

        logger.warning("No relevant documents found for question")
        return self._result([], "none")

    async def _vector_search(self, query_embedding: list[float], k: int) -> list[ScoredDocument]:
        try:
            docs = await self._store.vector_search(
                query_embedding, num_candidates=k * CANDIDATE_MULTIPLIER, limit=k
            )
        except Exception as e:
            logger.error(f"Vector search failed: {type(e).__name__}: {e}")
            return []

        for idx, scored in enumerate(docs, start=1):
            logger.debug(f"   {idx}. {scored.document.title!r} (score: {scored.score:.3f})")
        return [scored for scored in docs if scored.score > 0]

    async def _lexical_search(self, question: str, k: int) -> list[ScoredDocument]:
        try:
            return await self._store.lexical_search(question, limit=k)
        except Exception as e:
            logger.error(f"Text search failed: {type(e).__name__}: {e}")
            return []

    @staticmethod
    def _result(docs: list[ScoredDocument], mode: RetrievalMode) -> RetrievalResult:
        retrieval_mode_total.labels(mode=mode).inc()
        logger.info(f"Retrieved {len(docs)} documents via {mode} search")
        return RetrievalResult(documents=docs, mode=mode)
