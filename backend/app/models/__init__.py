"""Models package - re-exports for convenience."""

from backend.app.models.chat import (
    AnswerResult,
    ChatMessage,
    ChatMode,
    ChatSession,
    ChatSessionPage,
    Language,
    SourceCitation,
    SourceDetail,
)
from backend.app.models.documents import (
    ContactInfo,
    DocumentCategory,
    DocumentMetadata,
    DocumentPage,
    IngestResult,
    KnowledgeDocument,
    ScoredDocument,
    ScoreKind,
)

__all__ = [
    "AnswerResult",
    "ChatMessage",
    "ChatMode",
    "ChatSession",
    "ChatSessionPage",
    "ContactInfo",
    "DocumentCategory",
    "DocumentMetadata",
    "DocumentPage",
    "IngestResult",
    "KnowledgeDocument",
    "Language",
    "ScoreKind",
    "ScoredDocument",
    "SourceCitation",
    "SourceDetail",
]
