"""
Page Routes

Manual ingestion of a single Confluence page, outside the periodic sync.
Collaborator failures propagate as SyncError and are mapped to 502 by the
application's exception handler.
"""

from fastapi import APIRouter, Depends, Path
from typing import Annotated

from .models import IndexPageResponse
from .dependencies import get_indexer
from ..sync.indexer import PageIndexer

router = APIRouter(prefix="/pages", tags=["pages"])


@router.post(
    "/{page_id}/index",
    response_model=IndexPageResponse,
    summary="Fetch and index one page",
)
async def index_page(
    page_id: Annotated[str, Path(min_length=1)],
    indexer: Annotated[PageIndexer, Depends(get_indexer)],
) -> IndexPageResponse:
    """
    Fetch `page_id` from Confluence and index it unless the stored version
    is already current.
    """
    result = await indexer.process_and_index(page_id)

    return IndexPageResponse(
        page_id=result.page_id,
        version=result.version,
        status=result.status,
        sections_written=result.sections_written,
        sections_failed=result.sections_failed,
        rows_deleted=result.rows_deleted,
    )
