"""Chat history and answer models."""

from datetime import datetime
from enum import Enum
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field

from backend.app.models.documents import DocumentCategory, DocumentMetadata, ScoreKind


class Language(str, Enum):
    """Response language."""

    en = "en"
    am = "am"


class ChatMode(str, Enum):
    """Interaction mode selecting an extra instruction block."""

    general = "general"
    where_to_go = "where-to-go"
    deadline = "deadline"


class SourceCitation(BaseModel):
    """Document reference stored on an assistant message."""

    document_id: UUID
    title: str
    category: DocumentCategory


class ChatMessage(BaseModel):
    """Single message in a chat session."""

    role: Literal["user", "assistant"]
    content: str
    timestamp: datetime
    sources: list[SourceCitation] = Field(default_factory=list)


class ChatSession(BaseModel):
    """Conversation thread for one user."""

    user_id: UUID
    session_id: str
    messages: list[ChatMessage] = Field(default_factory=list)
    language: Language = Language.en
    mode: ChatMode = ChatMode.general
    is_active: bool = True
    created_at: datetime
    updated_at: datetime


class ChatSessionPage(BaseModel):
    """One page of chat sessions."""

    sessions: list[ChatSession]
    total: int
    page: int
    pages: int


class SourceDetail(BaseModel):
    """Source returned alongside an answer."""

    id: UUID
    title: str
    category: DocumentCategory
    score: float
    score_kind: ScoreKind
    metadata: DocumentMetadata
    is_chunk: bool
    chunk_index: int | None = None


class AnswerResult(BaseModel):
    """Outcome of one question."""

    question: str
    answer: str
    language: Language
    mode: ChatMode
    session_id: str
    sources: list[SourceDetail] = Field(default_factory=list)
    retrieval_mode: Literal["vector", "lexical", "none"]
    timestamp: datetime
