"""Integration tests for the SQLAlchemy stores (SQLite via aiosqlite)."""

import uuid
from datetime import date, datetime, timezone
from unittest.mock import patch

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.config import get_settings
from backend.app.db.models import Document as DocumentDB
from backend.app.db.repositories import NewDocument
from backend.app.db.sql_repositories import SqlChatHistoryStore, SqlDocumentStore
from backend.app.errors import NotFoundError
from backend.app.models.chat import ChatMessage, ChatMode, Language, SourceCitation
from backend.app.models.documents import ContactInfo, DocumentCategory, DocumentMetadata

UPLOADER = uuid.UUID("00000000-0000-0000-0000-0000000000ee")
NOW = datetime(2026, 9, 1, tzinfo=timezone.utc)


def _doc(title: str, content: str = "body", **kwargs: object) -> NewDocument:
    return NewDocument(title=title, content=content, uploaded_by=UPLOADER, **kwargs)  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_create_and_get_roundtrip_metadata(sqlite_session: AsyncSession) -> None:
    """Test stored documents keep embedding, tags and structured metadata."""
    store = SqlDocumentStore(sqlite_session)
    metadata = DocumentMetadata(
        office_location="Block 12",
        required_documents=["ID card"],
        process_steps=["Fill form", "Submit"],
        deadline_date=date(2026, 10, 30),
        contact_info=ContactInfo(email="registrar@astu.edu.et"),
    )

    created = await store.create(
        _doc(
            "Registration Guide",
            category=DocumentCategory.registrar,
            embedding=[0.1, 0.2, 0.3],
            tags=["registration"],
            metadata=metadata,
        )
    )
    fetched = await store.get(created.id)

    assert fetched is not None
    assert fetched.title == "Registration Guide"
    assert fetched.category == DocumentCategory.registrar
    assert fetched.embedding == pytest.approx([0.1, 0.2, 0.3])
    assert fetched.tags == ["registration"]
    assert fetched.metadata == metadata
    assert await store.get(uuid.uuid4()) is None


@pytest.mark.asyncio
async def test_list_filters_and_pagination(sqlite_session: AsyncSession) -> None:
    """Test chunk exclusion, category and search filters and page totals."""
    store = SqlDocumentStore(sqlite_session)
    await store.create(_doc("Fee Schedule", content="Tuition is due", category=DocumentCategory.fees))
    await store.create(_doc("Lab Rules", content="Wear goggles", category=DocumentCategory.lab))
    await store.create(_doc("Fees (Chunk 1/1)", is_chunk=True, category=DocumentCategory.fees))
    await store.create(_doc("Private", is_public=False))

    listed = await store.list_documents()
    assert {d.title for d in listed.documents} == {"Fee Schedule", "Lab Rules"}
    assert listed.total == 2

    fees = await store.list_documents(category=DocumentCategory.fees, include_chunks=True)
    assert {d.title for d in fees.documents} == {"Fee Schedule", "Fees (Chunk 1/1)"}

    searched = await store.list_documents(search="goggles")
    assert [d.title for d in searched.documents] == ["Lab Rules"]

    paged = await store.list_documents(page=2, limit=1)
    assert len(paged.documents) == 1
    assert (paged.total, paged.page, paged.pages) == (2, 2, 2)


@pytest.mark.asyncio
async def test_delete_cascades_chunks(sqlite_session: AsyncSession) -> None:
    """Test deleting a parent removes its chunks."""
    store = SqlDocumentStore(sqlite_session)
    parent = await store.create(_doc("Handbook", chunk_count=2))
    await store.create_many(
        [
            _doc("Handbook (Chunk 1/2)", is_chunk=True, parent_document_id=parent.id, chunk_index=0),
            _doc("Handbook (Chunk 2/2)", is_chunk=True, parent_document_id=parent.id, chunk_index=1),
        ]
    )
    keep = await store.create(_doc("Other"))

    assert await store.delete(parent.id) == 3

    remaining = await store.list_documents(include_chunks=True)
    assert [d.id for d in remaining.documents] == [keep.id]
    with pytest.raises(NotFoundError):
        await store.delete(parent.id)


@pytest.mark.asyncio
async def test_increment_view_count(sqlite_session: AsyncSession) -> None:
    """Test view counts persist."""
    store = SqlDocumentStore(sqlite_session)
    doc = await store.create(_doc("Doc"))

    await store.increment_view_count(doc.id)

    fetched = await store.get(doc.id)
    assert fetched is not None
    assert fetched.view_count == 1


@pytest.mark.asyncio
async def test_vector_search_ranks_by_cosine(sqlite_session: AsyncSession) -> None:
    """Test exact cosine ranking over public, positively similar documents."""
    store = SqlDocumentStore(sqlite_session)
    await store.create(_doc("Far", embedding=[0.3, 1.0]))
    await store.create(_doc("Orthogonal", embedding=[0.0, 1.0]))
    await store.create(_doc("Opposite", embedding=[-1.0, -0.1]))
    await store.create(_doc("Near", embedding=[1.0, 0.2]))
    await store.create(_doc("Private", embedding=[1.0, 0.0], is_public=False))
    await store.create(_doc("Unembedded"))

    results = await store.vector_search([1.0, 0.0], num_candidates=30, limit=3)

    assert [r.document.title for r in results] == ["Near", "Far"]
    assert all(r.score_kind == "cosine" for r in results)
    assert results[0].score > results[1].score
    assert all(0 < r.score <= 1 for r in results)


@pytest.mark.asyncio
async def test_lexical_search_scores_title_tags_and_content(sqlite_session: AsyncSession) -> None:
    """Test term matching over title, tags and content."""
    store = SqlDocumentStore(sqlite_session)
    await store.create(_doc("Library Hours", content="Open at eight"))
    await store.create(_doc("Study Tips", content="Use the library quietly"))
    await store.create(_doc("Misc", content="unrelated", tags=["library"]))
    await store.create(_doc("Cafeteria", content="Lunch menu"))

    results = await store.lexical_search("Where is the library?", limit=5)

    assert [r.document.title for r in results] == ["Library Hours", "Misc", "Study Tips"]
    assert [r.score for r in results] == [2.0, 2.0, 1.0]


@pytest.mark.asyncio
async def test_lexical_search_stopwords_only_is_empty(sqlite_session: AsyncSession) -> None:
    """Test a query of only stopwords matches nothing."""
    store = SqlDocumentStore(sqlite_session)
    await store.create(_doc("The Doc", content="what is it"))

    assert await store.lexical_search("what is the", limit=5) == []


def _pair(text: str, doc_id: uuid.UUID | None = None) -> list[ChatMessage]:
    sources = (
        [SourceCitation(document_id=doc_id, title="Guide", category=DocumentCategory.registrar)]
        if doc_id
        else []
    )
    return [
        ChatMessage(role="user", content=text, timestamp=NOW),
        ChatMessage(role="assistant", content=f"re: {text}", timestamp=NOW, sources=sources),
    ]


@pytest.mark.asyncio
async def test_history_append_get_and_sources(sqlite_session: AsyncSession) -> None:
    """Test find-or-create appends in order and keeps source citations."""
    store = SqlChatHistoryStore(sqlite_session)
    user = uuid.uuid4()
    doc_id = uuid.uuid4()

    await store.append_exchange(
        user_id=user, session_id="s1", language=Language.am, mode=ChatMode.deadline, messages=_pair("one", doc_id)
    )
    await store.append_exchange(
        user_id=user, session_id="s1", language=Language.am, mode=ChatMode.deadline, messages=_pair("two")
    )

    session = await store.get_session(user, "s1")
    assert session is not None
    assert [m.content for m in session.messages] == ["one", "re: one", "two", "re: two"]
    assert session.messages[1].sources[0].document_id == doc_id
    assert session.language == Language.am
    assert session.mode == ChatMode.deadline
    assert await store.get_session(uuid.uuid4(), "s1") is None


@pytest.mark.asyncio
async def test_history_deactivate_and_fresh_session(sqlite_session: AsyncSession) -> None:
    """Test soft delete hides a session and the same id starts a new one."""
    store = SqlChatHistoryStore(sqlite_session)
    user = uuid.uuid4()

    await store.append_exchange(
        user_id=user, session_id="s", language=Language.en, mode=ChatMode.general, messages=_pair("old")
    )
    assert await store.deactivate(user, "s") is True
    assert await store.deactivate(user, "s") is False
    assert await store.get_session(user, "s") is None

    await store.append_exchange(
        user_id=user, session_id="s", language=Language.en, mode=ChatMode.general, messages=_pair("new")
    )
    session = await store.get_session(user, "s")
    assert session is not None
    assert [m.content for m in session.messages] == ["new", "re: new"]


@pytest.mark.asyncio
async def test_history_list_paginates(sqlite_session: AsyncSession) -> None:
    """Test listing returns only active sessions with page totals."""
    store = SqlChatHistoryStore(sqlite_session)
    user = uuid.uuid4()
    for session_id in ("a", "b", "c"):
        await store.append_exchange(
            user_id=user, session_id=session_id, language=Language.en, mode=ChatMode.general, messages=_pair(session_id)
        )
    await store.deactivate(user, "b")

    page = await store.list_sessions(user, limit=1)
    assert (page.total, page.pages, len(page.sessions)) == (2, 2, 1)

    everything = await store.list_sessions(user)
    assert {s.session_id for s in everything.sessions} == {"a", "c"}

    only_a = await store.list_sessions(user, session_id="a")
    assert [s.session_id for s in only_a.sessions] == ["a"]
    assert len(only_a.sessions[0].messages) == 2


@pytest.mark.asyncio
async def test_history_list_ties_put_newer_session_first(sqlite_session: AsyncSession) -> None:
    """Test sessions updated at the same instant list the later-created one first."""
    store = SqlChatHistoryStore(sqlite_session)
    user = uuid.uuid4()
    earlier = datetime(2026, 10, 1, 9, 0, tzinfo=timezone.utc)
    later = datetime(2026, 10, 1, 9, 5, tzinfo=timezone.utc)

    with patch("backend.app.db.sql_repositories._utcnow", side_effect=[earlier, later, later]):
        for session_id in ("older", "newer", "older"):
            await store.append_exchange(
                user_id=user, session_id=session_id, language=Language.en, mode=ChatMode.general, messages=_pair(session_id)
            )

    page = await store.list_sessions(user)

    assert [s.session_id for s in page.sessions] == ["newer", "older"]


@pytest.mark.asyncio
async def test_missing_embedding_stored_as_null(sqlite_session: AsyncSession) -> None:
    """Test documents without a vector keep a NULL column and read back empty."""
    store = SqlDocumentStore(sqlite_session)
    created = await store.create(_doc("Parent", chunk_count=3))

    raw = await sqlite_session.scalar(select(DocumentDB.embedding).where(DocumentDB.id == created.id))
    fetched = await store.get(created.id)

    assert raw is None
    assert fetched is not None
    assert fetched.embedding == []


def test_embedding_index_uses_configured_name() -> None:
    """Test the HNSW embedding index is named from settings."""
    index_names = {index.name for index in DocumentDB.__table__.indexes}

    assert get_settings().vector_index_name in index_names
