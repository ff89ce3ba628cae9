"""FastAPI application - SmartDesk RAG API."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from backend.app.api.dependencies import get_embedding_client
from backend.app.api.routes.chat import router as chat_router
from backend.app.api.routes.documents import router as documents_router
from backend.app.api.routes.health import router as health_router
from backend.app.api.routes.metrics import router as metrics_router
from backend.app.config import get_settings
from backend.app.errors import (
    ConfigError,
    InputValidationError,
    NotFoundError,
    RAGError,
    UpstreamError,
)
from backend.app.llm.embeddings import VoyageEmbeddingClient
from backend.app.utils.logging import configure_logging

logger = logging.getLogger(__name__)

settings = get_settings()
configure_logging(settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    # Only close a client that was actually built
    if get_embedding_client.cache_info().currsize:
        client = get_embedding_client()
        if isinstance(client, VoyageEmbeddingClient):
            await client.aclose()


app = FastAPI(title="SmartDesk RAG API", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.frontend_origin],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routes
app.include_router(health_router, tags=["health"])
app.include_router(metrics_router, tags=["metrics"])
app.include_router(chat_router)
app.include_router(documents_router)


def _error_response(status_code: int, message: str, error: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"detail": {"success": False, "message": message, "error": error}},
    )


@app.exception_handler(RAGError)
async def rag_error_handler(request: Request, exc: RAGError) -> JSONResponse:
    """Map pipeline errors to HTTP responses."""
    if isinstance(exc, InputValidationError):
        return _error_response(status.HTTP_400_BAD_REQUEST, str(exc), type(exc).__name__)
    if isinstance(exc, NotFoundError):
        return _error_response(status.HTTP_404_NOT_FOUND, str(exc), type(exc).__name__)
    if isinstance(exc, ConfigError):
        logger.error(f"Service misconfigured on {request.url.path}: {exc}")
        return _error_response(
            status.HTTP_503_SERVICE_UNAVAILABLE, "Service is not configured", str(exc)
        )
    if isinstance(exc, UpstreamError):
        logger.error(f"Upstream failure on {request.url.path}: {exc.service}/{exc.reason}: {exc}")
    else:
        logger.error(f"Unhandled pipeline error on {request.url.path}: {type(exc).__name__}: {exc}")
    return _error_response(status.HTTP_502_BAD_GATEWAY, "Error processing your question", str(exc))


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {"message": "SmartDesk RAG API", "version": "0.1.0"}


@app.get("/api/status")
async def api_status() -> dict[str, str]:
    """API status with the current server time."""
    return {
        "status": "online",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
