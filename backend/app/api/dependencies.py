"""FastAPI dependencies wiring settings, clients, stores and pipelines."""

from datetime import datetime, timezone
from functools import lru_cache
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.api.auth import get_current_context
from backend.app.config import Settings, get_settings
from backend.app.db.context import RequestContext
from backend.app.db.engine import get_session
from backend.app.db.repositories import ChatHistoryStore, DocumentStore, RateLimiter
from backend.app.db.sql_repositories import SqlChatHistoryStore, SqlDocumentStore
from backend.app.docs.ingest import IngestionPipeline
from backend.app.docs.retriever import Retriever
from backend.app.llm.client import GenerationClient, build_generation_client
from backend.app.llm.embeddings import EmbeddingClient, build_embedding_client
from backend.app.middleware.ratelimit import RateLimitMiddleware, create_default_bucket_map
from backend.app.orchestration.answer import AnswerPipeline, SessionLocks
from backend.app.ratelimit import build_rate_limiter
from backend.app.utils.metrics import PrometheusUpstreamMetrics


@lru_cache
def get_embedding_client() -> EmbeddingClient:
    """Process-wide embedding client."""
    return build_embedding_client(get_settings(), metrics=PrometheusUpstreamMetrics())


@lru_cache
def get_generation_client() -> GenerationClient:
    """Process-wide generation client."""
    return build_generation_client(get_settings(), metrics=PrometheusUpstreamMetrics())


@lru_cache
def get_session_locks() -> SessionLocks:
    """Process-wide history write locks."""
    return SessionLocks()


@lru_cache
def get_rate_limiter() -> RateLimiter:
    """Process-wide rate limiter."""
    return build_rate_limiter(get_settings())


def get_document_store(
    session: Annotated[AsyncSession, Depends(get_session)],
) -> DocumentStore:
    return SqlDocumentStore(session)


def get_history_store(
    session: Annotated[AsyncSession, Depends(get_session)],
) -> ChatHistoryStore:
    return SqlChatHistoryStore(session)


def get_ingestion_pipeline(
    settings: Annotated[Settings, Depends(get_settings)],
    store: Annotated[DocumentStore, Depends(get_document_store)],
    embedder: Annotated[EmbeddingClient, Depends(get_embedding_client)],
) -> IngestionPipeline:
    return IngestionPipeline(
        store,
        embedder,
        chunk_size=settings.chunk_size,
        chunk_overlap=settings.chunk_overlap,
        chunk_threshold=settings.chunk_threshold,
        max_content_chars=settings.max_content_chars,
    )


def get_answer_pipeline(
    settings: Annotated[Settings, Depends(get_settings)],
    store: Annotated[DocumentStore, Depends(get_document_store)],
    history: Annotated[ChatHistoryStore, Depends(get_history_store)],
    embedder: Annotated[EmbeddingClient, Depends(get_embedding_client)],
    generator: Annotated[GenerationClient, Depends(get_generation_client)],
    locks: Annotated[SessionLocks, Depends(get_session_locks)],
) -> AnswerPipeline:
    return AnswerPipeline(
        Retriever(store, embedder),
        generator,
        history,
        top_k=settings.retrieval_top_k,
        max_question_chars=settings.max_question_chars,
        excerpt_chars=settings.context_excerpt_chars,
        session_locks=locks,
    )


async def enforce_rate_limit(
    request: Request,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    limiter: Annotated[RateLimiter, Depends(get_rate_limiter)],
) -> None:
    """Reject the request with 429 when the caller's bucket is exhausted."""
    middleware = RateLimitMiddleware(limiter, create_default_bucket_map())
    allowed, retry_after = middleware.check_rate_limit(
        request.url.path, ctx, now=datetime.now(timezone.utc)
    )
    if not allowed:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many questions. Please wait a moment and try again.",
            headers={"Retry-After": str(retry_after)},
        )
