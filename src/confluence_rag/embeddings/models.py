"""
Embedding Data Models

This module defines the transient units that flow through one processing
pass of the write path:

- Section: a header-addressed chunk of a normalized page
- EmbeddedSection: a Section plus its vector, bound to a page version
- EmbeddingOutcome: the per-item result of a batched embedding call

Each EmbeddedSection corresponds to ONE embedding vector and ONE chunk of
text, and becomes one row of the vector store.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from pydantic import BaseModel, Field, ConfigDict

from ..core.errors import EmbeddingError


class Section(BaseModel):
    """
    A chunk of normalized page text.

    The header is unique within the page it was derived from.
    """

    header: str = Field(
        ...,
        min_length=1,
        description="Nearest heading, a truncated text prefix, or the sentinel label.",
    )

    text: str = Field(
        ...,
        min_length=1,
        description="Cleaned section text, code blocks fenced.",
    )

    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
    )


class EmbeddedSection(BaseModel):
    """
    A Section with its vector, computed for one page version.

    This is the unit of storage: it maps to exactly one row keyed by
    (page_id, header, version).
    """

    page_id: str = Field(..., min_length=1)
    version: int = Field(..., ge=0)
    header: str = Field(..., min_length=1)
    text: str = Field(..., min_length=1)
    embedding: List[float] = Field(..., min_length=1)

    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
    )


@dataclass(frozen=True)
class EmbeddingOutcome:
    """Result of embedding one section: either a vector or an error."""

    section: Section
    embedded: Optional[EmbeddedSection] = None
    error: Optional[EmbeddingError] = None

    @property
    def ok(self) -> bool:
        return self.embedded is not None
