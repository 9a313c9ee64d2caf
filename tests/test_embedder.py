import json

import httpx
import pytest

from confluence_rag.core.errors import (
    EmbeddingDimensionError,
    EmbeddingError,
    EmbeddingResponseError,
    EmbeddingTransportError,
)
from confluence_rag.embeddings.embedder import Embedder

URL = "http://ollama.test/api/embeddings"


def make_embedder(handler, dimension=4):
    return Embedder(
        base_url=URL,
        model="nomic-embed-text",
        dimension=dimension,
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_embed_posts_model_and_prompt():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"embedding": [0.1, 0.2, 0.3, 1]})

    vector = await make_embedder(handler).embed("hello")

    assert seen["url"] == URL
    assert seen["body"] == {"model": "nomic-embed-text", "prompt": "hello"}
    assert vector == [0.1, 0.2, 0.3, 1.0]
    assert all(isinstance(x, float) for x in vector)


@pytest.mark.asyncio
async def test_wrong_dimension_is_rejected():
    def handler(request):
        return httpx.Response(200, json={"embedding": [0.1, 0.2]})

    with pytest.raises(EmbeddingDimensionError):
        await make_embedder(handler).embed("hello")


@pytest.mark.asyncio
async def test_http_error_is_transport_error():
    def handler(request):
        return httpx.Response(500, text="model not loaded")

    with pytest.raises(EmbeddingTransportError):
        await make_embedder(handler).embed("hello")


@pytest.mark.asyncio
async def test_connection_failure_is_transport_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(EmbeddingTransportError) as exc_info:
        await make_embedder(handler).embed("hello")

    assert isinstance(exc_info.value.__cause__, httpx.ConnectError)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, text="not json"),
        httpx.Response(200, json={"data": []}),
        httpx.Response(200, json={"embedding": ["a", "b", "c", "d"]}),
        httpx.Response(200, json={"embedding": [True, 0.1, 0.2, 0.3]}),
    ],
)
async def test_malformed_responses_are_response_errors(response):
    with pytest.raises(EmbeddingResponseError):
        await make_embedder(lambda request: response).embed("hello")


def test_error_hierarchy():
    assert issubclass(EmbeddingDimensionError, EmbeddingResponseError)
    assert issubclass(EmbeddingTransportError, EmbeddingError)
