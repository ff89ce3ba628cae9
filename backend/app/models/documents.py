"""Document domain models."""

from datetime import date, datetime
from enum import Enum
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field


class DocumentCategory(str, Enum):
    """Closed set of knowledge categories."""

    registrar = "registrar"
    academic = "academic"
    department = "department"
    fees = "fees"
    deadline = "deadline"
    lab = "lab"
    internship = "internship"
    service = "service"
    policy = "policy"
    other = "other"


class ContactInfo(BaseModel):
    """Contact details for the office responsible for a document."""

    phone: str | None = None
    email: str | None = None
    office: str | None = None


class DocumentMetadata(BaseModel):
    """Optional structured metadata attached at upload time."""

    office_location: str | None = None
    required_documents: list[str] = Field(default_factory=list)
    process_steps: list[str] = Field(default_factory=list)
    deadline_date: date | None = None
    contact_info: ContactInfo | None = None


class KnowledgeDocument(BaseModel):
    """A stored document: standalone, parent of a chunk family, or a chunk."""

    id: UUID
    title: str
    content: str
    category: DocumentCategory = DocumentCategory.other
    embedding: list[float] = Field(default_factory=list)
    uploaded_by: UUID
    is_public: bool = True
    tags: list[str] = Field(default_factory=list)
    view_count: int = 0
    metadata: DocumentMetadata = Field(default_factory=DocumentMetadata)
    file_name: str | None = None
    file_type: str | None = None
    file_size: int | None = None
    is_chunk: bool = False
    parent_document_id: UUID | None = None
    chunk_index: int | None = None
    chunk_count: int | None = None
    created_at: datetime
    updated_at: datetime


ScoreKind = Literal["engine", "cosine", "lexical"]


class ScoredDocument(BaseModel):
    """Document with a relevance score; higher is better within one score kind."""

    document: KnowledgeDocument
    score: float
    score_kind: ScoreKind


class DocumentPage(BaseModel):
    """One page of a document listing."""

    documents: list[KnowledgeDocument]
    total: int
    page: int
    pages: int


class IngestResult(BaseModel):
    """Confirmation returned after a document has been stored."""

    id: UUID
    title: str
    category: DocumentCategory
    chunk_count: int | None = None
    created_at: datetime
