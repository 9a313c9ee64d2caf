"""
Embedding Client

This module implements the embedding provider client used by both the write
path (section embedding) and the read path (query embedding). It talks to an
Ollama-compatible `/api/embeddings` endpoint and is responsible for:

- Transport error isolation
- Strict response validation, including vector dimensionality
- Deterministic output semantics for the vector store

The class is stateless and safe to reuse across concurrent requests.
"""

from __future__ import annotations

from typing import List, Optional
import logging
import httpx

from ..core.errors import (
    EmbeddingTransportError,
    EmbeddingResponseError,
    EmbeddingDimensionError,
)

logger = logging.getLogger("rag.embedder")


class Embedder:
    """
    Asynchronous single-text embedding generator.

    This class performs no caching and no retries; the reconciler's periodic
    re-scan is the retry policy.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:11434/api/embeddings",
        model: str = "nomic-embed-text",
        dimension: int = 768,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize an Embedder.

        Parameters
        ----------
        base_url : str
            Full URL of the embeddings endpoint.

        model : str
            Embedding model name understood by the provider.

        dimension : int
            Expected vector length. Any other length is rejected.

        timeout : float
            HTTP timeout for each request.

        transport : Optional[httpx.AsyncBaseTransport]
            Optional transport override (used by tests).
        """
        self.base_url = base_url
        self.model = model
        self.dimension = dimension
        self.timeout = timeout
        self._transport = transport

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def embed(self, text: str) -> List[float]:
        """
        Generate the embedding for one input text.

        Returns
        -------
        List[float]
            A vector of exactly `self.dimension` floats.

        Raises
        ------
        EmbeddingTransportError
            If the request fails or the provider returns an HTTP error.
        EmbeddingResponseError
            If the response is malformed.
        EmbeddingDimensionError
            If the vector has the wrong length.
        """
        payload = {
            "model": self.model,
            "prompt": text,
        }

        async with httpx.AsyncClient(
            timeout=self.timeout,
            transport=self._transport,
        ) as client:
            try:
                response = await client.post(self.base_url, json=payload)
                response.raise_for_status()
            except httpx.HTTPError as exc:
                logger.error(
                    "Embedding request failed (%s): chars=%d, error=%s",
                    type(exc).__name__,
                    len(text),
                    str(exc),
                )
                raise EmbeddingTransportError(
                    f"Embedding generation failed: {type(exc).__name__}"
                ) from exc

        try:
            data = response.json()
        except ValueError as exc:
            raise EmbeddingResponseError("Embedding response is not JSON.") from exc

        return self._extract_embedding(data)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _extract_embedding(self, data: object) -> List[float]:
        """
        Parse and validate embedding output format.

        The provider returns:
            { "embedding": [0.1, 0.2, ...] }
        """
        if not isinstance(data, dict) or "embedding" not in data:
            raise EmbeddingResponseError("Embedding response missing 'embedding' field.")

        emb = data["embedding"]
        if not isinstance(emb, list) or not all(
            isinstance(x, (float, int)) and not isinstance(x, bool) for x in emb
        ):
            raise EmbeddingResponseError(
                "Invalid embedding vector: must be float list."
            )

        if len(emb) != self.dimension:
            raise EmbeddingDimensionError(
                f"Embedding has dimension {len(emb)}, expected {self.dimension}."
            )

        return [float(x) for x in emb]
