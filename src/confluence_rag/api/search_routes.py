"""
Search Routes

This module defines the read-path endpoints: vector search over the indexed
Confluence sections, and question answering grounded in those sections.

Collaborator failures do not raise here. They come back as
`status="unavailable"` with HTTP 503, which clients can tell apart from an
empty result (`status="empty"`, HTTP 200).
"""

from fastapi import APIRouter, Depends, Query, Response, status
from typing import Annotated, List, Optional

from .models import SearchResponse, AskResponse, SearchPassage
from .dependencies import get_search_service
from ..db.vector_store import RetrievedSection
from ..search.service import SearchService

router = APIRouter(tags=["search"])


def _to_passages(passages: List[RetrievedSection]) -> List[SearchPassage]:
    return [
        SearchPassage(
            page_id=p.page_id,
            title=p.title,
            section=p.section,
            content=p.content,
            distance=p.distance,
        )
        for p in passages
    ]


@router.get(
    "/search",
    response_model=SearchResponse,
    summary="Vector-based semantic search",
)
async def search(
    response: Response,
    service: Annotated[SearchService, Depends(get_search_service)],
    query: Annotated[str, Query(min_length=1)],
    k: Annotated[Optional[int], Query(ge=1, le=100)] = None,
) -> SearchResponse:
    """
    Return the `k` sections closest to `query`, best first.

    Parameters
    ----------
    query : str
        Free-text search query.
    k : Optional[int]
        Number of results; defaults to the configured top-k.
    """
    outcome = await service.search(query, k)

    if outcome.status == "unavailable":
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return SearchResponse(
        status=outcome.status,
        query=query,
        passages=_to_passages(outcome.passages),
        error=outcome.error,
    )


@router.get(
    "/ask",
    response_model=AskResponse,
    summary="Answer a question from the indexed pages",
)
async def ask(
    response: Response,
    service: Annotated[SearchService, Depends(get_search_service)],
    query: Annotated[str, Query(min_length=1)],
) -> AskResponse:
    outcome = await service.ask(query)

    if outcome.status == "unavailable":
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return AskResponse(
        status=outcome.status,
        query=query,
        answer=outcome.answer,
        passages=_to_passages(outcome.passages),
        error=outcome.error,
    )
