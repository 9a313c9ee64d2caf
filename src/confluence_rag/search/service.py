"""
Search Service

The read path: embed the query, rank stored sections, and optionally hand
them to the answer generator.

Neither `search` nor `ask` raises for collaborator failures. Callers get an
explicit status instead:

- ok: at least one passage was found
- empty: the search ran and matched nothing
- unavailable: a collaborator failed; `error` says which
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Literal, Optional

from ..core.errors import SyncError
from ..core.protocols import AnswerGenerator
from ..db.vector_store import RetrievedSection, VectorStore
from ..embeddings.batcher import EmbeddingBatcher

logger = logging.getLogger("rag.search")

SearchStatus = Literal["ok", "empty", "unavailable"]

NO_MATCH_ANSWER = "Sorry, I couldn't find any matching information in the documents."


@dataclass(frozen=True)
class SearchOutcome:
    status: SearchStatus
    passages: List[RetrievedSection] = field(default_factory=list)
    error: Optional[str] = None


@dataclass(frozen=True)
class AnswerOutcome:
    status: SearchStatus
    answer: Optional[str] = None
    passages: List[RetrievedSection] = field(default_factory=list)
    error: Optional[str] = None


class SearchService:
    def __init__(
        self,
        batcher: EmbeddingBatcher,
        store: VectorStore,
        generator: Optional[AnswerGenerator] = None,
        default_top_k: int = 10,
    ) -> None:
        self._batcher = batcher
        self._store = store
        self._generator = generator
        self.default_top_k = default_top_k

    async def search(self, query: str, k: Optional[int] = None) -> SearchOutcome:
        """Return the `k` nearest sections for `query`."""
        if not query or not query.strip():
            return SearchOutcome(status="empty")

        top_k = k if k is not None else self.default_top_k

        try:
            vector = await self._batcher.embed_query(query)
            passages = await self._store.search(vector, top_k)
        except SyncError as exc:
            logger.warning("Search unavailable: %s", exc)
            return SearchOutcome(status="unavailable", error=f"{exc.kind}: {exc}")

        if not passages:
            return SearchOutcome(status="empty")
        return SearchOutcome(status="ok", passages=passages)

    async def ask(self, query: str, k: Optional[int] = None) -> AnswerOutcome:
        """Search, then generate an answer grounded in the results."""
        outcome = await self.search(query, k)

        if outcome.status == "unavailable":
            return AnswerOutcome(status="unavailable", error=outcome.error)
        if outcome.status == "empty":
            return AnswerOutcome(status="empty", answer=NO_MATCH_ANSWER)
        if self._generator is None:
            return AnswerOutcome(
                status="unavailable",
                passages=outcome.passages,
                error="answer_error: no answer generator configured",
            )

        try:
            answer = await self._generator.answer(query, outcome.passages)
        except SyncError as exc:
            logger.warning("Answer generation failed: %s", exc)
            return AnswerOutcome(
                status="unavailable",
                passages=outcome.passages,
                error=f"{exc.kind}: {exc}",
            )

        return AnswerOutcome(status="ok", answer=answer, passages=outcome.passages)
