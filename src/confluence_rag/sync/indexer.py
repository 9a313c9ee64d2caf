"""
Page Indexer

The per-page write path shared by the reconciler and manual ingestion:

    normalize -> embed_sections -> partial-failure policy -> upsert
              -> delete_versions_before

`upsert` of the new version always completes before older versions are
deleted, so a page is never observed with zero rows mid-update.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal, Optional

from ..confluence.models import Document
from ..content.normalizer import ContentNormalizer
from ..core.errors import IncompleteEmbeddingError
from ..core.protocols import CorpusSource
from ..db.vector_store import VectorStore
from ..embeddings.batcher import EmbeddingBatcher

logger = logging.getLogger("rag.indexer")

PartialFailurePolicy = Literal["defer", "accept"]
IndexStatus = Literal["indexed", "up_to_date", "empty"]


@dataclass(frozen=True)
class IndexResult:
    """Outcome of indexing one page version."""

    page_id: str
    version: int
    status: IndexStatus
    sections_written: int = 0
    sections_failed: int = 0
    rows_deleted: int = 0


class PageIndexer:
    """
    Runs one Document through the write path.

    Parameters
    ----------
    source : CorpusSource
        Used only by `process_and_index` to fetch a single page.
    partial_failure_policy : "defer" | "accept"
        What to do when some, but not all, sections fail to embed.
        "defer" writes nothing and raises IncompleteEmbeddingError so the page
        stays stale; "accept" stores the survivors.
    """

    def __init__(
        self,
        source: CorpusSource,
        normalizer: ContentNormalizer,
        batcher: EmbeddingBatcher,
        store: VectorStore,
        partial_failure_policy: PartialFailurePolicy = "defer",
    ) -> None:
        if partial_failure_policy not in ("defer", "accept"):
            raise ValueError(f"Unknown partial failure policy: {partial_failure_policy!r}")
        self._source = source
        self._normalizer = normalizer
        self._batcher = batcher
        self._store = store
        self.partial_failure_policy = partial_failure_policy

    async def index_document(
        self,
        doc: Document,
        indexed_version: Optional[int] = None,
    ) -> IndexResult:
        """
        Index `doc` at its current version.

        Parameters
        ----------
        doc : Document
            The page to index.
        indexed_version : Optional[int]
            Version stored for the page when the caller last looked, or None.
            Used for logging only; older versions are always cleaned up.

        Raises
        ------
        SyncError
            Any collaborator failure. Nothing is deleted if the upsert did
            not succeed.
        """
        sections = self._normalizer.normalize(doc.body)

        if not sections:
            removed = await self._store.delete_pages([doc.id])
            logger.info("Page %s v%d has no content; removed %d rows", doc.id, doc.version, removed)
            return IndexResult(doc.id, doc.version, "empty", rows_deleted=removed)

        outcomes = await self._batcher.embed_sections(doc.id, doc.version, sections)
        embedded = [outcome.embedded for outcome in outcomes if outcome.embedded is not None]
        failed = len(outcomes) - len(embedded)

        if failed and (self.partial_failure_policy == "defer" or not embedded):
            raise IncompleteEmbeddingError(doc.id, doc.version, failed, len(outcomes))

        written = await self._store.upsert(doc.id, doc.title, doc.version, embedded)

        # Always runs: another writer may have stored an older version after
        # `indexed_version` was read.
        removed = await self._store.delete_versions_before(doc.id, doc.version)

        logger.info(
            "Indexed page %s v%d (previously %s): %d sections written, %d failed, %d old rows removed",
            doc.id,
            doc.version,
            indexed_version,
            written,
            failed,
            removed,
        )
        return IndexResult(
            doc.id,
            doc.version,
            "indexed",
            sections_written=written,
            sections_failed=failed,
            rows_deleted=removed,
        )

    async def process_and_index(self, page_id: str) -> IndexResult:
        """
        Fetch one page and index it unless the stored version is current.
        """
        doc = await self._source.fetch_page(page_id)
        stored = await self._store.page_version(page_id)

        if stored is not None and stored >= doc.version:
            logger.info("Page %s already indexed at v%d", page_id, stored)
            return IndexResult(page_id, stored, "up_to_date")

        return await self.index_document(doc, stored)
