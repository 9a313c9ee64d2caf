import httpx
import pytest

from confluence_rag.confluence.client import ConfluenceClient
from confluence_rag.confluence.models import Document
from confluence_rag.core.errors import FetchError

BASE = "https://wiki.example.com/wiki"


def entity(page_id, version, body="<p>x</p>", title=None):
    return {
        "id": page_id,
        "type": "page",
        "title": title or f"Page {page_id}",
        "body": {"storage": {"value": body, "representation": "storage"}},
        "version": {"number": version, "when": "2024-03-01T10:00:00.000Z"},
    }


def make_client(handler, page_size=2):
    return ConfluenceClient(
        base_url=BASE + "/",
        username="bot@example.com",
        api_token="secret-token",
        page_size=page_size,
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_fetch_all_paginates_until_short_page():
    pages = [entity("1", 1), entity("2", 4), entity("3", 2)]
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        start = int(request.url.params["start"])
        limit = int(request.url.params["limit"])
        return httpx.Response(200, json={"results": pages[start : start + limit], "size": 0})

    docs = await make_client(handler).fetch_all("SB1")

    assert [d.id for d in docs] == ["1", "2", "3"]
    assert [r.url.params["start"] for r in requests] == ["0", "2"]
    first = requests[0]
    assert first.url.path == "/wiki/rest/api/content"
    assert first.url.params["spaceKey"] == "SB1"
    assert first.url.params["type"] == "page"
    assert first.url.params["expand"] == "body.storage,version"
    assert first.headers["Authorization"].startswith("Basic ")


@pytest.mark.asyncio
async def test_fetch_all_exact_multiple_needs_one_empty_page():
    pages = [entity("1", 1), entity("2", 1)]
    calls = []

    def handler(request):
        start = int(request.url.params["start"])
        calls.append(start)
        return httpx.Response(200, json={"results": pages[start : start + 2]})

    docs = await make_client(handler).fetch_all("SB1")

    assert len(docs) == 2
    assert calls == [0, 2]


@pytest.mark.asyncio
async def test_fetch_all_follows_server_capped_limit():
    pages = [entity(str(i), 1) for i in range(5)]
    calls = []

    def handler(request):
        start = int(request.url.params["start"])
        calls.append(start)
        results = pages[start : start + 2]
        return httpx.Response(200, json={"results": results, "start": start, "limit": 2, "size": len(results)})

    docs = await make_client(handler, page_size=3).fetch_all("SB1")

    assert [d.id for d in docs] == ["0", "1", "2", "3", "4"]
    assert calls == [0, 2, 4]


@pytest.mark.asyncio
async def test_fetch_all_follows_next_link():
    pages = [entity(str(i), 1) for i in range(5)]
    calls = []

    def handler(request):
        start = int(request.url.params["start"])
        calls.append(start)
        results = pages[start : start + 2]
        links = {"base": BASE, "context": "/wiki"}
        if start + 2 < len(pages):
            links["next"] = f"/rest/api/content?start={start + 2}"
        return httpx.Response(200, json={"results": results, "_links": links})

    docs = await make_client(handler, page_size=3).fetch_all("SB1")

    assert len(docs) == 5
    assert calls == [0, 2, 4]


@pytest.mark.asyncio
async def test_fetch_all_keeps_highest_version_of_duplicates():
    def handler(request):
        return httpx.Response(200, json={"results": [
            entity("7", 2, body="<p>old</p>"),
            entity("7", 5, body="<p>new</p>"),
            entity("7", 3, body="<p>mid</p>"),
        ]})

    docs = await make_client(handler, page_size=10).fetch_all("SB1")

    assert len(docs) == 1
    assert docs[0].version == 5
    assert docs[0].body == "<p>new</p>"


@pytest.mark.asyncio
async def test_fetch_page_parses_entity():
    def handler(request):
        assert request.url.path == "/wiki/rest/api/content/42"
        return httpx.Response(200, json=entity("42", 9, body="<h2>T</h2>", title="Runbook"))

    doc = await make_client(handler).fetch_page("42")

    assert doc == Document(
        id="42",
        title="Runbook",
        version=9,
        body="<h2>T</h2>",
        last_modified=doc.last_modified,
    )
    assert doc.last_modified.year == 2024


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(401, json={"message": "unauthorized"}),
        httpx.Response(200, text="<html>login</html>"),
        httpx.Response(200, json={"unexpected": True}),
        httpx.Response(200, json={"results": [{"title": "no id"}]}),
    ],
)
async def test_failures_raise_fetch_error(response):
    with pytest.raises(FetchError):
        await make_client(lambda request: response).fetch_all("SB1")


@pytest.mark.asyncio
async def test_transport_failure_raises_fetch_error():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(FetchError):
        await make_client(handler).fetch_page("1")


def test_missing_body_defaults_to_empty():
    doc = Document.from_content({"id": 5, "title": "Bare", "version": {"number": 1}})

    assert doc.id == "5"
    assert doc.body == ""
    assert doc.last_modified is None
