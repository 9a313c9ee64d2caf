"""
Vector Store

PostgreSQL + pgvector based storage and similarity search for versioned page
sections.

Rows are keyed by (page_id, section, version). A newer version of a page does
not collide with the older version's rows; old rows are removed explicitly
with `delete_versions_before` once the new rows are committed.

Each operation runs in its own session and transaction, so the store is safe
to share between the reconciler loop and request handlers. Concurrent writers
are reconciled by PostgreSQL's ON CONFLICT, not by application locks.
"""

from __future__ import annotations

import logging
import re
from contextlib import asynccontextmanager
from typing import (
    AsyncIterator,
    Dict,
    Iterable,
    List,
    NamedTuple,
    Optional,
    Protocol,
    Sequence,
    runtime_checkable,
)

from sqlalchemy import select, delete, func
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .models import PageSection, EMBEDDING_DIMENSION, UNIQUE_KEY_NAME
from ..core.errors import StoreError
from ..embeddings.models import EmbeddedSection

logger = logging.getLogger("rag.store")

_WHITESPACE_RE = re.compile(r"\s{2,}")

# Rows per INSERT statement; keeps bind parameters well under asyncpg's limit.
UPSERT_CHUNK_SIZE = 500


class RetrievedSection(NamedTuple):
    """One search hit, best match first."""
    section: str
    content: str
    page_id: str
    title: str
    distance: float


@runtime_checkable
class VectorStore(Protocol):
    """
    Contract for the versioned section store.

    Implementations:
    - PgVectorStore (production with PostgreSQL)
    - InMemoryVectorStore (testing/development)
    """

    async def upsert(
        self,
        page_id: str,
        title: str,
        version: int,
        sections: Sequence[EmbeddedSection],
    ) -> int: ...

    async def delete_versions_before(self, page_id: str, current_version: int) -> int: ...

    async def delete_pages(self, page_ids: Iterable[str]) -> int: ...

    async def latest_versions(self) -> Dict[str, int]: ...

    async def page_version(self, page_id: str) -> Optional[int]: ...

    async def search(self, query_vector: Sequence[float], top_k: int) -> List[RetrievedSection]: ...

    async def stats(self) -> dict: ...


# ---------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------

def normalize_content(text: str) -> str:
    """Collapse repeated whitespace in returned content."""
    return _WHITESPACE_RE.sub(" ", text).strip()


def prepare_rows(
    page_id: str,
    version: int,
    sections: Sequence[EmbeddedSection],
    dimension: int,
) -> Dict[str, EmbeddedSection]:
    """
    Validate an upsert batch and collapse duplicate keys (last one wins).

    Raises
    ------
    StoreError
        If any section belongs to another page/version or has a vector of the
        wrong dimension. Nothing from the batch may be persisted then.
    """
    rows: Dict[str, EmbeddedSection] = {}

    for item in sections:
        if item.page_id != page_id or item.version != version:
            raise StoreError(
                f"Section {item.header!r} belongs to page {item.page_id} v{item.version}, "
                f"not {page_id} v{version}"
            )
        if len(item.embedding) != dimension:
            raise StoreError(
                f"Section {item.header!r} of page {page_id} has dimension "
                f"{len(item.embedding)}, expected {dimension}"
            )
        rows[item.header] = item

    return rows


def check_query_vector(query_vector: Sequence[float], dimension: int) -> None:
    if len(query_vector) != dimension:
        raise StoreError(
            f"Query vector has dimension {len(query_vector)}, expected {dimension}"
        )


# ---------------------------------------------------------------------
# PostgreSQL implementation
# ---------------------------------------------------------------------

class PgVectorStore:
    """
    PostgreSQL-backed vector store using pgvector cosine distance.

    The `<=>` operator used by `search` matches the ivfflat
    `vector_cosine_ops` index declared on the model.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        dimension: int = EMBEDDING_DIMENSION,
    ) -> None:
        """
        Parameters
        ----------
        session_factory : async_sessionmaker[AsyncSession]
            Factory bound to the shared engine/pool.
        dimension : int
            Vector dimension of the `embedding` column.
        """
        self._session_factory = session_factory
        self.dimension = dimension

    @asynccontextmanager
    async def _transaction(self, operation: str) -> AsyncIterator[AsyncSession]:
        """Run a unit of work in its own transaction, mapping DB errors."""
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    yield session
        except (SQLAlchemyError, OSError) as exc:
            logger.error("%s failed: %s", operation, exc)
            raise StoreError(f"{operation} failed: {type(exc).__name__}: {exc}") from exc

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
        """
        Insert or replace the rows of one page version.

        On key collision `content`, `embedding` and `title` are overwritten;
        the key columns never change. The whole batch lands in one
        transaction, so repeated calls with the same input are idempotent.

        Returns
        -------
        int
            Number of rows written.
        """
        rows = prepare_rows(page_id, version, sections, self.dimension)
        if not rows:
            return 0

        values = [
            {
                "page_id": page_id,
                "title": title,
                "section": item.header,
                "content": item.text,
                "version": version,
                "embedding": list(item.embedding),
            }
            for item in rows.values()
        ]

        async with self._transaction(f"upsert({page_id} v{version})") as session:
            for start in range(0, len(values), UPSERT_CHUNK_SIZE):
                stmt = pg_insert(PageSection).values(values[start : start + UPSERT_CHUNK_SIZE])
                stmt = stmt.on_conflict_do_update(
                    constraint=UNIQUE_KEY_NAME,
                    set_={
                        "content": stmt.excluded.content,
                        "embedding": stmt.excluded.embedding,
                        "title": stmt.excluded.title,
                    },
                )
                await session.execute(stmt)

        logger.debug("Upserted %d rows for page %s v%d", len(values), page_id, version)
        return len(values)

    async def delete_versions_before(self, page_id: str, current_version: int) -> int:
        """
        Remove every row of `page_id` older than `current_version`.

        Callers must only invoke this after the current version's rows are
        committed, so the page never has zero indexed rows.
        """
        stmt = delete(PageSection).where(
            PageSection.page_id == page_id,
            PageSection.version < current_version,
        )
        async with self._transaction(f"delete_versions_before({page_id})") as session:
            result = await session.execute(stmt)
        return result.rowcount or 0

    async def delete_pages(self, page_ids: Iterable[str]) -> int:
        """Remove all rows, any version, of the given pages."""
        ids = sorted(set(page_ids))
        if not ids:
            return 0

        stmt = delete(PageSection).where(PageSection.page_id.in_(ids))
        async with self._transaction(f"delete_pages({len(ids)} pages)") as session:
            result = await session.execute(stmt)
        return result.rowcount or 0

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def latest_versions(self) -> Dict[str, int]:
        """Return {page_id: max(version)} for every indexed page."""
        stmt = (
            select(PageSection.page_id, func.max(PageSection.version))
            .group_by(PageSection.page_id)
        )
        async with self._transaction("latest_versions") as session:
            result = await session.execute(stmt)
            rows = result.all()
        return {page_id: int(version) for page_id, version in rows}

    async def page_version(self, page_id: str) -> Optional[int]:
        """Return the newest stored version of one page, or None."""
        stmt = select(func.max(PageSection.version)).where(PageSection.page_id == page_id)
        async with self._transaction(f"page_version({page_id})") as session:
            result = await session.execute(stmt)
            version = result.scalar()
        return int(version) if version is not None else None

    async def search(
        self,
        query_vector: Sequence[float],
        top_k: int,
    ) -> List[RetrievedSection]:
        """
        Return the `top_k` rows closest to `query_vector`, ascending by cosine
        distance. Ties fall back to row id order.
        """
        check_query_vector(query_vector, self.dimension)
        if top_k < 1:
            return []

        distance = PageSection.embedding.cosine_distance(list(query_vector))
        stmt = (
            select(
                PageSection.section,
                PageSection.content,
                PageSection.page_id,
                PageSection.title,
                distance.label("distance"),
            )
            .order_by(distance, PageSection.id)
            .limit(top_k)
        )

        async with self._transaction("search") as session:
            result = await session.execute(stmt)
            rows = result.all()

        return [
            RetrievedSection(
                section=row.section,
                content=normalize_content(row.content),
                page_id=row.page_id,
                title=row.title,
                distance=float(row.distance),
            )
            for row in rows
        ]

    async def stats(self) -> dict:
        """
        Return statistics about the store for diagnostics.
        """
        async with self._transaction("stats") as session:
            total = await session.execute(select(func.count()).select_from(PageSection))
            total_vectors = total.scalar() or 0

        versions = await self.latest_versions()
        return {
            "total_vectors": total_vectors,
            "total_pages": len(versions),
            "page_versions": versions,
        }
