"""
In-memory vector store for development/testing.

Implements the same interface as PgVectorStore but doesn't require Postgres.
Rows live in a dict keyed by (page_id, section, version); each new row gets a
monotonically increasing id, so tie-breaking matches the database's surrogate
key order.
"""

from __future__ import annotations

import asyncio
import itertools
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from .models import EMBEDDING_DIMENSION
from .vector_store import (
    RetrievedSection,
    check_query_vector,
    normalize_content,
    prepare_rows,
)
from ..embeddings.models import EmbeddedSection


@dataclass
class _Row:
    id: int
    page_id: str
    title: str
    section: str
    content: str
    version: int
    embedding: np.ndarray


_Key = Tuple[str, str, int]


class InMemoryVectorStore:
    """Dict-backed store using numpy cosine distance."""

    def __init__(self, dimension: int = EMBEDDING_DIMENSION) -> None:
        self.dimension = dimension
        self._rows: Dict[_Key, _Row] = {}
        self._ids = itertools.count(1)
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def upsert(
        self,
        page_id: str,
        title: str,
        version: int,
        sections: Sequence[EmbeddedSection],
    ) -> int:
        rows = prepare_rows(page_id, version, sections, self.dimension)

        async with self._lock:
            for header, item in rows.items():
                key = (page_id, header, version)
                vector = np.asarray(item.embedding, dtype=np.float64)
                existing = self._rows.get(key)
                if existing is not None:
                    existing.title = title
                    existing.content = item.text
                    existing.embedding = vector
                    continue
                self._rows[key] = _Row(
                    id=next(self._ids),
                    page_id=page_id,
                    title=title,
                    section=header,
                    content=item.text,
                    version=version,
                    embedding=vector,
                )

        return len(rows)

    async def delete_versions_before(self, page_id: str, current_version: int) -> int:
        async with self._lock:
            doomed = [
                key for key, row in self._rows.items()
                if row.page_id == page_id and row.version < current_version
            ]
            for key in doomed:
                del self._rows[key]
        return len(doomed)

    async def delete_pages(self, page_ids: Iterable[str]) -> int:
        ids = set(page_ids)
        if not ids:
            return 0

        async with self._lock:
            doomed = [key for key, row in self._rows.items() if row.page_id in ids]
            for key in doomed:
                del self._rows[key]
        return len(doomed)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def latest_versions(self) -> Dict[str, int]:
        versions: Dict[str, int] = {}
        for row in self._rows.values():
            if row.version > versions.get(row.page_id, -1):
                versions[row.page_id] = row.version
        return versions

    async def page_version(self, page_id: str) -> Optional[int]:
        return (await self.latest_versions()).get(page_id)

    def _cosine_distance(self, a: np.ndarray, b: np.ndarray) -> float:
        """Calculate cosine distance (1 - similarity) between two vectors."""
        denom = np.linalg.norm(a) * np.linalg.norm(b)
        if denom == 0:
            return 1.0
        return float(1.0 - np.dot(a, b) / denom)

    async def search(
        self,
        query_vector: Sequence[float],
        top_k: int,
    ) -> List[RetrievedSection]:
        check_query_vector(query_vector, self.dimension)
        if top_k < 1:
            return []

        query = np.asarray(query_vector, dtype=np.float64)
        scored = [
            (self._cosine_distance(query, row.embedding), row.id, row)
            for row in self._rows.values()
        ]
        scored.sort(key=lambda item: (item[0], item[1]))

        return [
            RetrievedSection(
                section=row.section,
                content=normalize_content(row.content),
                page_id=row.page_id,
                title=row.title,
                distance=distance,
            )
            for distance, _, row in scored[:top_k]
        ]

    async def stats(self) -> dict:
        versions = await self.latest_versions()
        return {
            "total_vectors": len(self._rows),
            "total_pages": len(versions),
            "page_versions": versions,
        }
