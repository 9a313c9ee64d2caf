"""
Confluence Data Models

A Document is an immutable snapshot of one Confluence page as returned by a
single fetch. Identity is the page id; two fetches of the same id are the
same logical page at possibly different versions.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, ConfigDict


class Document(BaseModel):
    """A versioned Confluence page in storage format."""

    id: str = Field(..., min_length=1)
    title: str = ""
    version: int = Field(..., ge=0)
    body: str = ""
    last_modified: Optional[datetime] = None

    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
    )

    @classmethod
    def from_content(cls, data: Dict[str, Any]) -> "Document":
        """
        Build a Document from a `/rest/api/content` entity.

        Expected shape (with `expand=body.storage,version`):
            {
                "id": "123",
                "title": "...",
                "body": {"storage": {"value": "<p>...</p>"}},
                "version": {"number": 7, "when": "2024-01-01T00:00:00.000Z"}
            }
        """
        version = data.get("version") or {}
        storage = (data.get("body") or {}).get("storage") or {}

        return cls(
            id=str(data["id"]),
            title=data.get("title") or "",
            version=int(version.get("number", 0)),
            body=storage.get("value") or "",
            last_modified=version.get("when"),
        )
