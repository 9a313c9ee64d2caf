"""
SQLAlchemy Models

Defines the database schema for the versioned section store:
one row per (page_id, section, version), with a pgvector embedding.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    Column,
    Integer,
    Text,
    DateTime,
    Index,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from pgvector.sqlalchemy import Vector


# Must match the embedding provider's output (nomic-embed-text).
EMBEDDING_DIMENSION = 768

UNIQUE_KEY_NAME = "uq_embedding_page_section_version"


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


# ---------------------------------------------------------------------
# Page Section Model
# ---------------------------------------------------------------------

class PageSection(Base):
    """
    Embedded section of one Confluence page version.

    Uses pgvector for similarity search. Rows are never mutated in place
    beyond the upsert overwrite of title/content/embedding.
    """
    __tablename__ = "confluence_embeddings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    page_id: Mapped[str] = mapped_column(Text, nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False, default="")
    section: Mapped[str] = mapped_column(Text, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        server_default=func.now(),
    )

    embedding = Column(Vector(EMBEDDING_DIMENSION), nullable=False)

    __table_args__ = (
        UniqueConstraint("page_id", "section", "version", name=UNIQUE_KEY_NAME),
        Index("idx_confluence_embeddings_page_version", "page_id", "version"),
        Index(
            "idx_confluence_embeddings_vector",
            "embedding",
            postgresql_using="ivfflat",
            postgresql_with={"lists": 100},
            postgresql_ops={"embedding": "vector_cosine_ops"},
        ),
    )
