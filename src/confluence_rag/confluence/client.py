"""
Confluence REST Client

Read-only access to the pages of one Confluence space through
`/rest/api/content`. Every transport, HTTP-status or payload problem is
surfaced as a FetchError; nothing is retried here.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from ..core.errors import FetchError
from .models import Document

logger = logging.getLogger("rag.confluence")

_EXPAND = "body.storage,version"


class ConfluenceClient:
    """
    Corpus source backed by the Confluence Cloud/Server REST API.
    """

    def __init__(
        self,
        base_url: str,
        username: str,
        api_token: str,
        page_size: int = 50,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Parameters
        ----------
        base_url : str
            Site root, e.g. ``https://example.atlassian.net/wiki``.

        username, api_token : str
            Basic-auth credentials.

        page_size : int
            `limit` used for each listing request.

        transport : Optional[httpx.AsyncBaseTransport]
            Optional transport override (used by tests).
        """
        if page_size < 1:
            raise ValueError("page_size must be >= 1")
        self.base_url = base_url.rstrip("/")
        self.page_size = page_size
        self.timeout = timeout
        self._auth = httpx.BasicAuth(username, api_token)
        self._transport = transport

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def fetch_all(self, space_key: str) -> List[Document]:
        """
        Return every page of `space_key` with body and version.

        Listing pages are requested until the server reports no next page.
        The server may cap `limit` below `page_size`, so a short page alone
        does not end the listing. If the same id appears more than once only
        its highest version is kept.

        Raises
        ------
        FetchError
            On any transport, status or payload error.
        """
        by_id: Dict[str, Document] = {}
        start = 0

        async with self._client() as client:
            while True:
                params = {
                    "spaceKey": space_key,
                    "type": "page",
                    "expand": _EXPAND,
                    "start": start,
                    "limit": self.page_size,
                }
                data = await self._get_json(client, "/rest/api/content", params)

                results = data.get("results") if isinstance(data, dict) else None
                if not isinstance(results, list):
                    raise FetchError("Confluence listing response has no 'results' list")

                for item in results:
                    doc = self._parse(item)
                    current = by_id.get(doc.id)
                    if current is None or doc.version > current.version:
                        by_id[doc.id] = doc

                if not self._has_more(data, results):
                    break
                start += len(results)

        logger.info("Fetched %d pages from space %s", len(by_id), space_key)
        return list(by_id.values())

    async def fetch_page(self, page_id: str) -> Document:
        """Fetch one page by id."""
        if not page_id:
            raise ValueError("page_id cannot be empty")

        async with self._client() as client:
            data = await self._get_json(
                client,
                f"/rest/api/content/{page_id}",
                {"expand": _EXPAND},
            )
        return self._parse(data)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            auth=self._auth,
            timeout=self.timeout,
            transport=self._transport,
            headers={"Accept": "application/json"},
        )

    async def _get_json(
        self,
        client: httpx.AsyncClient,
        path: str,
        params: Dict[str, Any],
    ) -> Any:
        try:
            resp = await client.get(path, params=params)
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("Confluence request %s failed: %s", path, exc)
            raise FetchError(f"Confluence request failed: {type(exc).__name__}: {exc}") from exc

        try:
            return resp.json()
        except ValueError as exc:
            raise FetchError(f"Confluence response for {path} is not JSON") from exc

    def _has_more(self, data: Dict[str, Any], results: List[Any]) -> bool:
        if not results:
            return False

        links = data.get("_links")
        if isinstance(links, dict):
            return "next" in links

        # No links: compare against the limit the server actually applied.
        applied = data.get("limit")
        if not isinstance(applied, int) or applied < 1:
            applied = self.page_size
        return len(results) >= applied

    @staticmethod
    def _parse(item: Any) -> Document:
        if not isinstance(item, dict):
            raise FetchError("Confluence content entity is not an object")
        try:
            return Document.from_content(item)
        except (KeyError, TypeError, ValueError) as exc:
            raise FetchError(f"Malformed Confluence content entity: {exc}") from exc
