"""
Embedding Batcher

Converts Sections into EmbeddedSections with bounded concurrency:

- input is cut into fixed-size batches, order preserved across batches
- calls within a batch run concurrently and are all awaited
- batches run one after another, capping in-flight provider calls at the
  batch size
- a failing call becomes a per-item error and never fails its batch
"""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional, Sequence

from ..core.errors import EmbeddingError
from .embedder import Embedder
from .models import Section, EmbeddedSection, EmbeddingOutcome

logger = logging.getLogger("rag.batcher")

DEFAULT_BATCH_SIZE = 5


class EmbeddingBatcher:
    """Fan-out/fan-in wrapper around an Embedder."""

    def __init__(self, embedder: Embedder, batch_size: int = DEFAULT_BATCH_SIZE) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self._embedder = embedder
        self.batch_size = batch_size

    async def embed_sections(
        self,
        page_id: str,
        version: int,
        sections: Sequence[Section],
        batch_size: Optional[int] = None,
    ) -> List[EmbeddingOutcome]:
        """
        Embed every section of one page version.

        Returns one outcome per input section, in input order.
        """
        size = batch_size or self.batch_size
        outcomes: List[EmbeddingOutcome] = []

        for start in range(0, len(sections), size):
            batch = sections[start : start + size]
            results = await asyncio.gather(
                *(self._embed_one(page_id, version, section) for section in batch)
            )
            outcomes.extend(results)

        failed = sum(1 for outcome in outcomes if not outcome.ok)
        if failed:
            logger.warning(
                "Page %s v%d: %d/%d sections failed to embed",
                page_id,
                version,
                failed,
                len(outcomes),
            )

        return outcomes

    async def embed_query(self, text: str) -> List[float]:
        """Embed a single query string. Raises EmbeddingError on failure."""
        return await self._embedder.embed(text)

    async def _embed_one(
        self,
        page_id: str,
        version: int,
        section: Section,
    ) -> EmbeddingOutcome:
        try:
            vector = await self._embedder.embed(section.text)
        except EmbeddingError as exc:
            logger.debug("Section %r of page %s failed: %s", section.header, page_id, exc)
            return EmbeddingOutcome(section=section, error=exc)

        return EmbeddingOutcome(
            section=section,
            embedded=EmbeddedSection(
                page_id=page_id,
                version=version,
                header=section.header,
                text=section.text,
                embedding=vector,
            ),
        )
