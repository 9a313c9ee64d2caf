"""
Error Taxonomy and Global Error Handling

This module defines the exception hierarchy shared by the sync engine and the
read path, plus the application-wide exception handlers for the HTTP layer.

Taxonomy
--------
- FetchError: corpus source unreachable or returned malformed data
- EmbeddingError: embedding provider transport/response failures
- StoreError: vector store connectivity or constraint failures
- NormalizationError: unsupported input handed to the normalizer
- AnswerGenerationError: chat model failures on the answer path

Design Goals
------------
- Never leak internal exception details to clients
- Always return deterministic, machine-readable error responses
- Log full stack traces internally for debugging
"""

from __future__ import annotations

import logging
from typing import Dict, Any

from fastapi import Request
from fastapi.responses import JSONResponse

logger = logging.getLogger("rag.errors")


# ---------------------------------------------------------------------
# Exception Hierarchy
# ---------------------------------------------------------------------

class SyncError(RuntimeError):
    """Base class for every collaborator failure the core knows about."""

    kind = "sync_error"


class FetchError(SyncError):
    """Raised when the corpus source cannot be read."""

    kind = "fetch_error"


class EmbeddingError(SyncError):
    """Raised when embedding generation fails."""

    kind = "embedding_error"


class EmbeddingTransportError(EmbeddingError):
    """The provider could not be reached or answered with an HTTP error."""


class EmbeddingResponseError(EmbeddingError):
    """The provider answered, but the payload is unusable."""


class EmbeddingDimensionError(EmbeddingResponseError):
    """The provider returned a vector of the wrong dimension."""


class IncompleteEmbeddingError(EmbeddingError):
    """Some sections of a page version failed to embed."""

    def __init__(self, page_id: str, version: int, failed: int, total: int) -> None:
        super().__init__(
            f"{failed}/{total} sections of page {page_id} v{version} failed to embed"
        )
        self.page_id = page_id
        self.version = version
        self.failed = failed
        self.total = total


class StoreError(SyncError):
    """Raised when the vector store rejects or fails an operation."""

    kind = "store_error"


class NormalizationError(SyncError):
    """Raised when the normalizer is handed something that is not markup."""

    kind = "normalization_error"


class AnswerGenerationError(SyncError):
    """Raised when the chat model cannot produce an answer."""

    kind = "answer_error"


# ---------------------------------------------------------------------
# Public Exception Handlers
# ---------------------------------------------------------------------

async def sync_error_handler(
    request: Request,
    exc: SyncError,
) -> JSONResponse:
    """
    Map collaborator failures to a 502 response.

    The message is safe to expose: every SyncError is constructed by this
    package with a human-readable cause and no credentials.
    """
    logger.warning(
        "Collaborator failure during request %s %s: %s",
        request.method,
        request.url.path,
        exc,
    )

    payload: Dict[str, Any] = {
        "error": exc.kind,
        "detail": str(exc),
    }

    return JSONResponse(
        status_code=502,
        content=payload,
    )


async def unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """
    Catch-all handler for uncaught exceptions.

    Behavior
    --------
    - Logs the full exception stack trace for internal diagnostics.
    - Returns a generic 500 error to the client with no internal details.

    Parameters
    ----------
    request : Request
        The incoming HTTP request that triggered the exception.

    exc : Exception
        The uncaught exception instance.

    Returns
    -------
    JSONResponse
        A JSON 500 response with a minimal error payload.
    """

    # Log full traceback internally (never returned to client)
    logger.exception(
        "Unhandled exception during request: %s %s",
        request.method,
        request.url.path,
        exc_info=exc,
    )

    payload: Dict[str, Any] = {
        "error": "internal_server_error",
        "detail": "Internal server error",
    }

    return JSONResponse(
        status_code=500,
        content=payload,
    )
