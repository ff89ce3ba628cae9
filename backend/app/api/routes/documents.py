"""Knowledge document endpoints - upload, list, view and delete."""

import logging
from datetime import datetime
from pathlib import PurePath
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from pydantic import BaseModel, Field
from starlette.concurrency import run_in_threadpool

from backend.app.api.auth import require_roles
from backend.app.api.dependencies import get_document_store, get_ingestion_pipeline
from backend.app.config import Settings, get_settings
from backend.app.db.context import RequestContext
from backend.app.db.repositories import DocumentStore
from backend.app.docs.extractor import extract_text
from backend.app.docs.ingest import IngestionPipeline
from backend.app.errors import InputValidationError
from backend.app.models.documents import (
    DocumentCategory,
    DocumentMetadata,
    IngestResult,
    KnowledgeDocument,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/chat", tags=["documents"])

require_staff = require_roles("admin", "staff")


class UploadTextRequest(BaseModel):
    """Request body for POST /api/chat/upload/text."""

    title: str = Field(..., min_length=1, max_length=200, description="Document title")
    content: str = Field(..., min_length=1, max_length=50_000, description="Raw document text")
    category: DocumentCategory = DocumentCategory.other
    tags: list[str] = Field(default_factory=list)
    metadata: DocumentMetadata | None = None


class DocumentView(BaseModel):
    """Document as returned by the API (embedding omitted)."""

    id: UUID
    title: str
    content: str
    category: DocumentCategory
    uploaded_by: UUID
    tags: list[str]
    view_count: int
    metadata: DocumentMetadata
    file_name: str | None = None
    file_type: str | None = None
    file_size: int | None = None
    is_chunk: bool
    parent_document_id: UUID | None = None
    chunk_index: int | None = None
    chunk_count: int | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_document(cls, doc: KnowledgeDocument) -> "DocumentView":
        return cls.model_validate(doc.model_dump(exclude={"embedding", "is_public"}))


class DocumentListResponse(BaseModel):
    """Response for GET /api/chat/documents."""

    documents: list[DocumentView]
    total: int
    page: int
    pages: int


class DeleteDocumentResponse(BaseModel):
    """Response for DELETE /api/chat/documents/{id}."""

    id: UUID
    deleted: int
    message: str


def _parse_tags(raw: str | None) -> list[str]:
    if not raw:
        return []
    return [tag.strip() for tag in raw.split(",") if tag.strip()]


@router.post("/upload/text", response_model=IngestResult, status_code=status.HTTP_201_CREATED)
async def upload_text(
    request: UploadTextRequest,
    ctx: Annotated[RequestContext, Depends(require_staff)],
    pipeline: Annotated[IngestionPipeline, Depends(get_ingestion_pipeline)],
) -> IngestResult:
    """Add a text document to the knowledge base (admin/staff only).

    Long content is split into chunks; the response carries the parent id
    and the chunk count.
    """
    return await pipeline.ingest(
        request.title,
        request.content,
        ctx.user_id,
        request.category,
        request.tags,
        request.metadata,
    )


@router.post("/upload/file", response_model=IngestResult, status_code=status.HTTP_201_CREATED)
async def upload_file(
    ctx: Annotated[RequestContext, Depends(require_staff)],
    pipeline: Annotated[IngestionPipeline, Depends(get_ingestion_pipeline)],
    settings: Annotated[Settings, Depends(get_settings)],
    file: Annotated[UploadFile, File(description="PDF or TXT file")],
    title: Annotated[str | None, Form(max_length=200)] = None,
    category: Annotated[DocumentCategory, Form()] = DocumentCategory.other,
    tags: Annotated[str | None, Form(description="Comma-separated tags")] = None,
) -> IngestResult:
    """Add a PDF or TXT file to the knowledge base (admin/staff only)."""
    data = await file.read()
    if len(data) > settings.max_upload_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File exceeds the {settings.max_upload_bytes // (1024 * 1024)}MB limit",
        )

    file_type = file.content_type or ""
    text = await run_in_threadpool(extract_text, data, file_type, file.filename)
    if not text.strip():
        raise InputValidationError("No text could be extracted from the file")

    file_name = file.filename or "upload"
    logger.info(f"Extracted {len(text)} chars from {file_name} ({file_type}, {len(data)} bytes)")

    return await pipeline.ingest(
        title or PurePath(file_name).stem[:200],
        text,
        ctx.user_id,
        category,
        _parse_tags(tags),
        file_name=file_name,
        file_type=file_type,
        file_size=len(data),
    )


@router.get("/documents", response_model=DocumentListResponse)
async def list_documents(
    store: Annotated[DocumentStore, Depends(get_document_store)],
    category: DocumentCategory | None = None,
    search: Annotated[str | None, Query(max_length=200)] = None,
    include_chunks: bool = False,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
) -> DocumentListResponse:
    """List public knowledge documents, newest first."""
    result = await store.list_documents(
        category=category,
        search=search,
        include_chunks=include_chunks,
        page=page,
        limit=limit,
    )
    return DocumentListResponse(
        documents=[DocumentView.from_document(doc) for doc in result.documents],
        total=result.total,
        page=result.page,
        pages=result.pages,
    )


@router.get("/documents/{document_id}", response_model=DocumentView)
async def get_document(
    document_id: UUID,
    store: Annotated[DocumentStore, Depends(get_document_store)],
) -> DocumentView:
    """Get one document and count the view."""
    doc = await store.get(document_id)
    if doc is None or not doc.is_public:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document not found")

    await store.increment_view_count(document_id)
    return DocumentView.from_document(doc.model_copy(update={"view_count": doc.view_count + 1}))


@router.delete("/documents/{document_id}", response_model=DeleteDocumentResponse)
async def delete_document(
    document_id: UUID,
    ctx: Annotated[RequestContext, Depends(require_staff)],
    store: Annotated[DocumentStore, Depends(get_document_store)],
) -> DeleteDocumentResponse:
    """Delete a document and, for a chunked document, all of its chunks."""
    deleted = await store.delete(document_id)
    logger.info(f"User {ctx.user_id} deleted document {document_id} ({deleted} rows)")
    return DeleteDocumentResponse(
        id=document_id, deleted=deleted, message="Document deleted successfully"
    )
