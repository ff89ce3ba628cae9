"""Answer pipeline - retrieve, prompt, generate, record history."""

import asyncio
import logging
import time
from collections import defaultdict
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from uuid import UUID

from backend.app.db.repositories import ChatHistoryStore
from backend.app.docs.retriever import RetrievalResult, Retriever
from backend.app.errors import InputValidationError
from backend.app.llm.client import GenerationClient
from backend.app.llm.prompts import build_prompt
from backend.app.models.chat import (
    AnswerResult,
    ChatMessage,
    ChatMode,
    Language,
    SourceCitation,
    SourceDetail,
)

logger = logging.getLogger(__name__)


def default_session_id(user_id: UUID) -> str:
    """Session id used when the caller does not supply one."""
    return f"session_{user_id}_{int(time.time() * 1000)}"


class SessionLocks:
    """Per-(user, session) asyncio locks.

    Keeps each user/assistant pair contiguous in a session's history when
    several answers for the same session run concurrently in one process.
    A lock is dropped once nobody holds or awaits it.
    """

    def __init__(self) -> None:
        self._locks: dict[tuple[UUID, str], asyncio.Lock] = {}
        self._users: defaultdict[tuple[UUID, str], int] = defaultdict(int)

    @asynccontextmanager
    async def hold(self, user_id: UUID, session_id: str) -> AsyncIterator[None]:
        key = (user_id, session_id)
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] += 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


class AnswerPipeline:
    """Answers one student question with retrieved context.

    Retrieval problems degrade to an answer without context, generation
    errors propagate, and history persistence problems are only logged.
    """

    def __init__(
        self,
        retriever: Retriever,
        generator: GenerationClient,
        history: ChatHistoryStore,
        *,
        top_k: int = 3,
        max_question_chars: int = 1000,
        excerpt_chars: int = 500,
        session_locks: SessionLocks | None = None,
    ) -> None:
        self._retriever = retriever
        self._generator = generator
        self._history = history
        self._top_k = top_k
        self._max_question_chars = max_question_chars
        self._excerpt_chars = excerpt_chars
        self._session_locks = session_locks if session_locks is not None else SessionLocks()

    async def answer(
        self,
        question: str,
        *,
        user_id: UUID,
        language: Language = Language.en,
        mode: ChatMode = ChatMode.general,
        session_id: str | None = None,
    ) -> AnswerResult:
        """Answer a question and record the exchange.

        Args:
            question: Student question
            user_id: Asking user's ID
            language: Response language
            mode: Interaction mode
            session_id: Existing session id, or None to start a new one

        Returns:
            AnswerResult with generated text and the sources used

        Raises:
            InputValidationError: If the question is empty or too long
            RAGError: Generation failures (auth, quota, timeout, empty response, ...)
        """
        question = question.strip()
        if not question:
            raise InputValidationError("Question is required")
        if len(question) > self._max_question_chars:
            raise InputValidationError(
                f"Question must be at most {self._max_question_chars} characters"
            )

        session_id = session_id or default_session_id(user_id)
        logger.info(f"Answering question for session {session_id} ({language.value}, {mode.value})")

        retrieval = await self._retrieve(question)
        prompt = build_prompt(
            question,
            retrieval.documents,
            language,
            mode,
            excerpt_chars=self._excerpt_chars,
        )
        answer_text = await self._generator.generate(prompt)

        timestamp = datetime.now(timezone.utc)
        sources = [
            SourceDetail(
                id=scored.document.id,
                title=scored.document.title,
                category=scored.document.category,
                score=scored.score,
                score_kind=scored.score_kind,
                metadata=scored.document.metadata,
                is_chunk=scored.document.is_chunk,
                chunk_index=scored.document.chunk_index,
            )
            for scored in retrieval.documents
        ]

        await self._record_exchange(
            user_id=user_id,
            session_id=session_id,
            language=language,
            mode=mode,
            question=question,
            answer_text=answer_text,
            sources=sources,
            timestamp=timestamp,
        )

        return AnswerResult(
            question=question,
            answer=answer_text,
            language=language,
            mode=mode,
            session_id=session_id,
            sources=sources,
            retrieval_mode=retrieval.mode,
            timestamp=timestamp,
        )

    async def _retrieve(self, question: str) -> RetrievalResult:
        try:
            return await self._retriever.retrieve(question, k=self._top_k)
        except Exception as e:
            logger.error(f"Retrieval failed, answering without context: {type(e).__name__}: {e}")
            return RetrievalResult()

    async def _record_exchange(
        self,
        *,
        user_id: UUID,
        session_id: str,
        language: Language,
        mode: ChatMode,
        question: str,
        answer_text: str,
        sources: list[SourceDetail],
        timestamp: datetime,
    ) -> None:
        messages = [
            ChatMessage(role="user", content=question, timestamp=timestamp),
            ChatMessage(
                role="assistant",
                content=answer_text,
                timestamp=timestamp,
                sources=[
                    SourceCitation(document_id=s.id, title=s.title, category=s.category)
                    for s in sources
                ],
            ),
        ]
        async with self._session_locks.hold(user_id, session_id):
            try:
                await self._history.append_exchange(
                    user_id=user_id,
                    session_id=session_id,
                    language=language,
                    mode=mode,
                    messages=messages,
                )
            except Exception as e:
                logger.error(f"Failed to save chat history for {session_id}: {type(e).__name__}: {e}")
