"""Tests for the in-memory document and chat history stores."""

import uuid
from datetime import datetime, timezone

import pytest

from backend.app.db.inmemory import InMemoryChatHistoryStore, InMemoryDocumentStore
from backend.app.db.repositories import NewDocument, lexical_score, page_count, tokenize_query
from backend.app.errors import NotFoundError
from backend.app.models.chat import ChatMessage, ChatMode, Language
from backend.app.models.documents import DocumentCategory

UPLOADER = uuid.UUID("00000000-0000-0000-0000-0000000000dd")
NOW = datetime(2026, 9, 1, tzinfo=timezone.utc)


def _doc(title: str, content: str = "body", **kwargs: object) -> NewDocument:
    return NewDocument(title=title, content=content, uploaded_by=UPLOADER, **kwargs)  # type: ignore[arg-type]


def test_tokenize_drops_stopwords_and_duplicates() -> None:
    """Test query terms are lowercased, unique and without stopwords."""
    assert tokenize_query("Where is the Registrar? The REGISTRAR office!") == ["registrar", "office"]


def test_lexical_score_weights_title_and_tags() -> None:
    """Test title/tag hits count double compared with content hits."""
    tokens = ["fees", "office"]

    assert lexical_score(tokens, title="Fees", content="nothing", tags=[]) == 2.0
    assert lexical_score(tokens, title="x", content="the office", tags=["fees"]) == 3.0
    assert lexical_score(tokens, title="x", content="y", tags=[]) == 0.0


@pytest.mark.parametrize(("total", "limit", "pages"), [(0, 10, 0), (1, 10, 1), (10, 10, 1), (11, 10, 2)])
def test_page_count(total: int, limit: int, pages: int) -> None:
    """Test page counts round up."""
    assert page_count(total, limit) == pages


@pytest.mark.asyncio
async def test_list_newest_first_with_filters() -> None:
    """Test listing order, category filter, search and chunk exclusion."""
    store = InMemoryDocumentStore()
    await store.create(_doc("Old fees", category=DocumentCategory.fees))
    await store.create(_doc("Lab rules", content="Wear goggles", category=DocumentCategory.lab))
    await store.create(_doc("New fees", category=DocumentCategory.fees))
    await store.create(_doc("Chunk", is_chunk=True, category=DocumentCategory.fees))
    await store.create(_doc("Hidden", is_public=False, category=DocumentCategory.fees))

    everything = await store.list_documents()
    assert [d.title for d in everything.documents] == ["New fees", "Lab rules", "Old fees"]

    fees = await store.list_documents(category=DocumentCategory.fees, include_chunks=True)
    assert [d.title for d in fees.documents] == ["Chunk", "New fees", "Old fees"]

    searched = await store.list_documents(search="GOGGLES")
    assert [d.title for d in searched.documents] == ["Lab rules"]


@pytest.mark.asyncio
async def test_list_pagination() -> None:
    """Test page slicing and totals."""
    store = InMemoryDocumentStore()
    for i in range(5):
        await store.create(_doc(f"Doc {i}"))

    page = await store.list_documents(page=2, limit=2)

    assert [d.title for d in page.documents] == ["Doc 2", "Doc 1"]
    assert (page.total, page.page, page.pages) == (5, 2, 3)


@pytest.mark.asyncio
async def test_delete_parent_cascades_to_chunks() -> None:
    """Test deleting a parent removes its chunks; unrelated docs stay."""
    store = InMemoryDocumentStore()
    parent = await store.create(_doc("Parent", chunk_count=2))
    await store.create_many(
        [
            _doc("Parent (Chunk 1/2)", is_chunk=True, parent_document_id=parent.id, chunk_index=0),
            _doc("Parent (Chunk 2/2)", is_chunk=True, parent_document_id=parent.id, chunk_index=1),
        ]
    )
    other = await store.create(_doc("Other"))

    removed = await store.delete(parent.id)

    assert removed == 3
    remaining = await store.list_documents(include_chunks=True)
    assert [d.id for d in remaining.documents] == [other.id]


@pytest.mark.asyncio
async def test_delete_missing_raises() -> None:
    """Test deleting an unknown id raises NotFoundError."""
    with pytest.raises(NotFoundError):
        await InMemoryDocumentStore().delete(uuid.uuid4())


@pytest.mark.asyncio
async def test_view_count_increments() -> None:
    """Test view counts go up by one per call."""
    store = InMemoryDocumentStore()
    doc = await store.create(_doc("Doc"))

    await store.increment_view_count(doc.id)
    await store.increment_view_count(doc.id)

    stored = await store.get(doc.id)
    assert stored is not None
    assert stored.view_count == 2


@pytest.mark.asyncio
async def test_vector_search_skips_private_and_unembedded() -> None:
    """Test only public documents with embeddings are vector candidates."""
    store = InMemoryDocumentStore()
    await store.create(_doc("Private", embedding=[1.0, 0.0], is_public=False))
    await store.create(_doc("No vector"))
    await store.create(_doc("Match", embedding=[1.0, 0.0]))

    results = await store.vector_search([1.0, 0.0], num_candidates=10, limit=3)

    assert [r.document.title for r in results] == ["Match"]
    assert results[0].score == pytest.approx(1.0)


@pytest.mark.asyncio
async def test_lexical_ties_keep_creation_order() -> None:
    """Test equal term scores are ordered oldest first."""
    store = InMemoryDocumentStore()
    await store.create(_doc("First", content="library"))
    await store.create(_doc("Second", content="library"))

    results = await store.lexical_search("library", limit=5)

    assert [r.document.title for r in results] == ["First", "Second"]
    assert all(r.score_kind == "lexical" for r in results)


def _pair(text: str) -> list[ChatMessage]:
    return [
        ChatMessage(role="user", content=text, timestamp=NOW),
        ChatMessage(role="assistant", content=f"re: {text}", timestamp=NOW),
    ]


@pytest.mark.asyncio
async def test_history_find_or_create_and_isolation() -> None:
    """Test sessions are per user and appended in order."""
    store = InMemoryChatHistoryStore()
    user_a, user_b = uuid.uuid4(), uuid.uuid4()

    await store.append_exchange(
        user_id=user_a, session_id="s", language=Language.am, mode=ChatMode.deadline, messages=_pair("one")
    )
    await store.append_exchange(
        user_id=user_a, session_id="s", language=Language.am, mode=ChatMode.deadline, messages=_pair("two")
    )

    session = await store.get_session(user_a, "s")
    assert session is not None
    assert [m.content for m in session.messages] == ["one", "re: one", "two", "re: two"]
    assert session.language == Language.am
    assert await store.get_session(user_b, "s") is None


@pytest.mark.asyncio
async def test_history_list_and_deactivate() -> None:
    """Test listing order, filtering and soft deletion."""
    store = InMemoryChatHistoryStore()
    user = uuid.uuid4()
    for session_id in ("a", "b", "c"):
        await store.append_exchange(
            user_id=user, session_id=session_id, language=Language.en, mode=ChatMode.general, messages=_pair(session_id)
        )

    page = await store.list_sessions(user, limit=2)
    assert [s.session_id for s in page.sessions] == ["c", "b"]
    assert (page.total, page.pages) == (3, 2)

    filtered = await store.list_sessions(user, session_id="a")
    assert [s.session_id for s in filtered.sessions] == ["a"]

    assert await store.deactivate(user, "b") is True
    assert await store.deactivate(user, "b") is False
    remaining = await store.list_sessions(user)
    assert [s.session_id for s in remaining.sessions] == ["c", "a"]


@pytest.mark.asyncio
async def test_vector_search_drops_non_positive_similarity() -> None:
    """Test orthogonal and opposite embeddings are not returned."""
    store = InMemoryDocumentStore()
    await store.create(_doc("Opposite", embedding=[-1.0, 0.0]))
    await store.create(_doc("Orthogonal", embedding=[0.0, 1.0]))
    await store.create(_doc("Close", embedding=[0.9, 0.1]))

    results = await store.vector_search([1.0, 0.0], num_candidates=10, limit=3)

    assert [r.document.title for r in results] == ["Close"]
    assert 0 < results[0].score <= 1
