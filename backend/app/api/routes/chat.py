"""Chat endpoints - ask a question, browse and delete history."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from backend.app.api.auth import get_current_context
from backend.app.api.dependencies import enforce_rate_limit, get_answer_pipeline, get_history_store
from backend.app.db.context import RequestContext
from backend.app.db.repositories import ChatHistoryStore
from backend.app.models.chat import AnswerResult, ChatMode, ChatSession, ChatSessionPage, Language
from backend.app.orchestration.answer import AnswerPipeline

router = APIRouter(prefix="/api/chat", tags=["chat"])


class AskRequest(BaseModel):
    """Request body for POST /api/chat/ask."""

    question: str = Field(..., min_length=3, max_length=1000, description="Student question")
    language: Language = Language.en
    mode: ChatMode = ChatMode.general
    session_id: str | None = Field(None, max_length=200, description="Existing session id")


class DeleteSessionResponse(BaseModel):
    """Response for DELETE /api/chat/history/{session_id}."""

    session_id: str
    message: str


@router.post(
    "/ask",
    response_model=AnswerResult,
    dependencies=[Depends(enforce_rate_limit)],
)
async def ask_question(
    request: AskRequest,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    pipeline: Annotated[AnswerPipeline, Depends(get_answer_pipeline)],
) -> AnswerResult:
    """Answer a student question using retrieved knowledge documents.

    Args:
        request: Question, language, mode and optional session id
        ctx: Request context (user_id, role)
        pipeline: Answer pipeline

    Returns:
        Generated answer with sources and the session id to continue with
    """
    return await pipeline.answer(
        request.question,
        user_id=ctx.user_id,
        language=request.language,
        mode=request.mode,
        session_id=request.session_id,
    )


@router.get("/history", response_model=ChatSessionPage)
async def list_history(
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    history: Annotated[ChatHistoryStore, Depends(get_history_store)],
    session_id: Annotated[str | None, Query(max_length=200)] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
) -> ChatSessionPage:
    """List the caller's active chat sessions, most recently updated first."""
    return await history.list_sessions(ctx.user_id, session_id=session_id, page=page, limit=limit)


@router.get("/history/{session_id}", response_model=ChatSession)
async def get_history(
    session_id: str,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    history: Annotated[ChatHistoryStore, Depends(get_history_store)],
) -> ChatSession:
    """Get one active chat session with all of its messages."""
    session = await history.get_session(ctx.user_id, session_id)
    if session is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Chat session not found")
    return session


@router.delete("/history/{session_id}", response_model=DeleteSessionResponse)
async def delete_history(
    session_id: str,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    history: Annotated[ChatHistoryStore, Depends(get_history_store)],
) -> DeleteSessionResponse:
    """Soft-delete a chat session; it disappears from history listings."""
    if not await history.deactivate(ctx.user_id, session_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Chat session not found")
    return DeleteSessionResponse(session_id=session_id, message="Chat session deleted successfully")
