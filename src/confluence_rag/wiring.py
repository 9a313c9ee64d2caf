"""
Component wiring shared by the FastAPI lifespan and the CLI script.

This is the only place (besides those two entry points) that reads the
settings object; every component below receives explicit values.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncEngine

from .config import Settings
from .confluence.client import ConfluenceClient
from .content.normalizer import ContentNormalizer
from .db.models import EMBEDDING_DIMENSION
from .db.session import create_session_factory
from .db.vector_store import PgVectorStore
from .embeddings.batcher import EmbeddingBatcher
from .embeddings.embedder import Embedder
from .llm.client import ChatClient
from .search.service import SearchService
from .sync.indexer import PageIndexer
from .sync.reconciler import SyncReconciler


@dataclass
class Components:
    engine: AsyncEngine
    store: PgVectorStore
    source: ConfluenceClient
    batcher: EmbeddingBatcher
    indexer: PageIndexer
    reconciler: SyncReconciler
    search_service: SearchService


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def build_components(settings: Settings) -> Components:
    """Construct the full object graph from settings. Performs no I/O."""
    if settings.embedding_dimension != EMBEDDING_DIMENSION:
        # The vector column is declared with a fixed width.
        raise ValueError(
            f"embedding_dimension={settings.embedding_dimension} does not match "
            f"the confluence_embeddings column width {EMBEDDING_DIMENSION}"
        )

    engine, session_factory = create_session_factory(
        settings.database_url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
    )
    store = PgVectorStore(session_factory, dimension=settings.embedding_dimension)

    source = ConfluenceClient(
        base_url=settings.confluence_base_url,
        username=settings.confluence_username,
        api_token=settings.confluence_api_token.get_secret_value(),
        page_size=settings.confluence_page_size,
        timeout=settings.confluence_timeout,
    )

    embedder = Embedder(
        base_url=settings.embedding_base_url,
        model=settings.embedding_model,
        dimension=settings.embedding_dimension,
        timeout=settings.embedding_timeout,
    )
    batcher = EmbeddingBatcher(embedder, batch_size=settings.embedding_batch_size)

    indexer = PageIndexer(
        source=source,
        normalizer=ContentNormalizer(max_section_chars=settings.max_section_chars),
        batcher=batcher,
        store=store,
        partial_failure_policy=settings.sync_partial_failure_policy,
    )

    reconciler = SyncReconciler(
        source=source,
        indexer=indexer,
        store=store,
        space_key=settings.confluence_space_key,
        interval_seconds=settings.sync_interval_seconds,
    )

    chat = ChatClient(
        base_url=settings.chat_base_url,
        model=settings.chat_model,
        timeout=settings.chat_timeout,
    )
    search_service = SearchService(
        batcher=batcher,
        store=store,
        generator=chat,
        default_top_k=settings.search_top_k,
    )

    return Components(
        engine=engine,
        store=store,
        source=source,
        batcher=batcher,
        indexer=indexer,
        reconciler=reconciler,
        search_service=search_service,
    )
