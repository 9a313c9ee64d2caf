"""
Collaborator contracts consumed by the sync engine and the read path.

Anything satisfying these Protocols can be injected, which is how tests swap
in fakes without touching the network.
"""

from __future__ import annotations

from typing import List, Protocol, Sequence, runtime_checkable

from ..confluence.models import Document
from ..db.vector_store import RetrievedSection


@runtime_checkable
class CorpusSource(Protocol):
    """Yields versioned documents. Raises FetchError on failure."""

    async def fetch_all(self, space_key: str) -> List[Document]: ...

    async def fetch_page(self, page_id: str) -> Document: ...


@runtime_checkable
class AnswerGenerator(Protocol):
    """Turns retrieved passages into an answer. Raises AnswerGenerationError."""

    async def answer(self, query: str, passages: Sequence[RetrievedSection]) -> str: ...
