import json
from unittest.mock import AsyncMock

import httpx
import pytest
import pytest_asyncio

from confluence_rag.core.errors import (
    AnswerGenerationError,
    EmbeddingTransportError,
    StoreError,
)
from confluence_rag.db.memory_store import InMemoryVectorStore
from confluence_rag.db.vector_store import RetrievedSection
from confluence_rag.embeddings.batcher import EmbeddingBatcher
from confluence_rag.embeddings.models import EmbeddedSection
from confluence_rag.llm.client import ChatClient, build_context, clean_answer
from confluence_rag.search.service import SearchService, NO_MATCH_ANSWER


@pytest.fixture
def batcher():
    mock = AsyncMock(spec=EmbeddingBatcher)
    mock.embed_query.return_value = [1.0, 0.0]
    return mock


@pytest_asyncio.fixture
async def store():
    store = InMemoryVectorStore(dimension=2)
    await store.upsert("p1", "Guide", 1, [
        EmbeddedSection(page_id="p1", version=1, header="Setup", text="install it", embedding=[1.0, 0.1]),
        EmbeddedSection(page_id="p1", version=1, header="Usage", text="run it", embedding=[0.0, 1.0]),
    ])
    return store


# ---------------------------------------------------------------------
# search
# ---------------------------------------------------------------------

@pytest.mark.asyncio
async def test_search_ok(batcher, store):
    outcome = await SearchService(batcher, store).search("how to install", k=1)

    assert outcome.status == "ok"
    assert [p.section for p in outcome.passages] == ["Setup"]
    batcher.embed_query.assert_awaited_once_with("how to install")


@pytest.mark.asyncio
async def test_search_uses_default_top_k(batcher, store):
    outcome = await SearchService(batcher, store, default_top_k=10).search("q")

    assert len(outcome.passages) == 2


@pytest.mark.asyncio
async def test_search_empty_store_is_empty_not_unavailable(batcher):
    outcome = await SearchService(batcher, InMemoryVectorStore(dimension=2)).search("q")

    assert outcome.status == "empty"
    assert outcome.error is None


@pytest.mark.asyncio
async def test_embedding_failure_is_unavailable(batcher, store):
    batcher.embed_query.side_effect = EmbeddingTransportError("down")

    outcome = await SearchService(batcher, store).search("q")

    assert outcome.status == "unavailable"
    assert outcome.error.startswith("embedding_error")


@pytest.mark.asyncio
async def test_store_failure_is_unavailable(batcher):
    store = AsyncMock(spec=InMemoryVectorStore)
    store.search.side_effect = StoreError("db down")

    outcome = await SearchService(batcher, store).search("q")

    assert outcome.status == "unavailable"
    assert outcome.error.startswith("store_error")


@pytest.mark.asyncio
async def test_blank_query_is_empty(batcher, store):
    outcome = await SearchService(batcher, store).search("   ")

    assert outcome.status == "empty"
    batcher.embed_query.assert_not_awaited()


# ---------------------------------------------------------------------
# ask
# ---------------------------------------------------------------------

@pytest.mark.asyncio
async def test_ask_passes_passages_to_generator(batcher, store):
    generator = AsyncMock()
    generator.answer.return_value = "Run the installer."

    outcome = await SearchService(batcher, store, generator).ask("how to install")

    assert outcome.status == "ok"
    assert outcome.answer == "Run the installer."
    query, passages = generator.answer.await_args.args
    assert query == "how to install"
    assert passages[0].section == "Setup"


@pytest.mark.asyncio
async def test_ask_without_matches_skips_generator(batcher):
    generator = AsyncMock()

    outcome = await SearchService(batcher, InMemoryVectorStore(dimension=2), generator).ask("q")

    assert outcome.status == "empty"
    assert outcome.answer == NO_MATCH_ANSWER
    generator.answer.assert_not_awaited()


@pytest.mark.asyncio
async def test_ask_generation_failure_is_unavailable(batcher, store):
    generator = AsyncMock()
    generator.answer.side_effect = AnswerGenerationError("model crashed")

    outcome = await SearchService(batcher, store, generator).ask("q")

    assert outcome.status == "unavailable"
    assert outcome.error.startswith("answer_error")
    assert outcome.passages


# ---------------------------------------------------------------------
# Chat client
# ---------------------------------------------------------------------

def passage(section, content):
    return RetrievedSection(section=section, content=content, page_id="p1", title="T", distance=0.1)


def test_build_context_truncates_long_passages():
    context = build_context([passage("A", "x" * 600), passage("B", "short")])

    assert context == f"## A\n{'x' * 500}...\n\n## B\nshort"


def test_clean_answer_strips_fences():
    assert clean_answer("```plaintext\nkubectl get pods\n```") == "kubectl get pods"
    assert clean_answer("Use ```this```") == "Use this"


@pytest.mark.asyncio
async def test_chat_client_request_and_answer():
    seen = {}

    def handler(request):
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={
            "message": {"role": "assistant", "content": "```\nDo X.\n```"},
            "done": True,
        })

    client = ChatClient(base_url="http://ollama.test/api/chat", model="phi3:mini",
                        transport=httpx.MockTransport(handler))

    answer = await client.answer("what?", [passage("A", "Do X.")])

    assert answer == "Do X."
    body = seen["body"]
    assert body["model"] == "phi3:mini"
    assert body["stream"] is False
    assert body["options"] == {"temperature": 0.2, "top_p": 0.95, "num_predict": 1024}
    assert body["messages"][0]["role"] == "system"
    assert "## A\nDo X." in body["messages"][1]["content"]
    assert "Question: what?" in body["messages"][1]["content"]


@pytest.mark.asyncio
async def test_chat_client_blank_answer_falls_back():
    client = ChatClient(transport=httpx.MockTransport(
        lambda request: httpx.Response(200, json={"message": {"content": "```\n```"}})
    ))

    assert await client.answer("q", [passage("A", "a")]) == "Sorry, I couldn't find that information."


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(503, text="busy"),
        httpx.Response(200, json={"error": "model not found"}),
    ],
)
async def test_chat_client_failures(response):
    client = ChatClient(transport=httpx.MockTransport(lambda request: response))

    with pytest.raises(AnswerGenerationError):
        await client.answer("q", [passage("A", "a")])
