"""
Database Package

Provides SQLAlchemy async session management, model definitions and the
versioned section store for PostgreSQL with pgvector.
"""

from .session import create_session_factory, init_db
from .models import Base, PageSection, EMBEDDING_DIMENSION
from .vector_store import VectorStore, PgVectorStore, RetrievedSection
from .memory_store import InMemoryVectorStore

__all__ = [
    "create_session_factory",
    "init_db",
    "Base",
    "PageSection",
    "EMBEDDING_DIMENSION",
    "VectorStore",
    "PgVectorStore",
    "RetrievedSection",
    "InMemoryVectorStore",
]
