"""
API Models

This module defines the Pydantic models used for response validation across
the page ingestion, search, answer and sync endpoints.

Design Goals
------------
- Strong typing
- Safe defaults (no shared mutable state)
- Clear schema documentation
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Dict, Literal
from pydantic import BaseModel, Field, ConfigDict


# ---------------------------------------------------------------------
# Search Models
# ---------------------------------------------------------------------

class SearchPassage(BaseModel):
    """
    Individual search match, best first.
    """
    page_id: str = Field(..., min_length=1)
    title: str
    section: str = Field(..., min_length=1)
    content: str
    distance: float

    model_config = ConfigDict(extra="forbid")


class SearchResponse(BaseModel):
    """
    Ranked passages for a query.

    `unavailable` means a collaborator failed; it is never used for an
    empty result.
    """
    status: Literal["ok", "empty", "unavailable"]
    query: str
    passages: List[SearchPassage] = Field(default_factory=list)
    error: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class AskResponse(BaseModel):
    """
    Generated answer plus the passages it was grounded on.
    """
    status: Literal["ok", "empty", "unavailable"]
    query: str
    answer: Optional[str] = None
    passages: List[SearchPassage] = Field(default_factory=list)
    error: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


# ---------------------------------------------------------------------
# Page Ingestion Models
# ---------------------------------------------------------------------

class IndexPageResponse(BaseModel):
    """
    Result of manually (re)indexing one page.
    """
    page_id: str
    version: int = Field(..., ge=0)
    status: Literal["indexed", "up_to_date", "empty"]
    sections_written: int = Field(default=0, ge=0)
    sections_failed: int = Field(default=0, ge=0)
    rows_deleted: int = Field(default=0, ge=0)

    model_config = ConfigDict(extra="forbid")


# ---------------------------------------------------------------------
# Sync Models
# ---------------------------------------------------------------------

class CycleReportModel(BaseModel):
    started_at: datetime
    finished_at: Optional[datetime] = None
    fetched: int = 0
    stale: int = 0
    current: int = 0
    updated: List[str] = Field(default_factory=list)
    failed: Dict[str, str] = Field(default_factory=dict)
    deleted: List[str] = Field(default_factory=list)
    error: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class StoreStatsModel(BaseModel):
    """
    Statistics for the section store.
    """
    total_vectors: int = Field(..., ge=0)
    total_pages: int = Field(..., ge=0)
    page_versions: Dict[str, int] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid")


class SyncStatusResponse(BaseModel):
    state: str
    running: bool
    space_key: str
    interval_seconds: float
    cycles_completed: int = Field(..., ge=0)
    last_report: Optional[CycleReportModel] = None
    store: StoreStatsModel

    model_config = ConfigDict(extra="forbid")


class SyncRunResponse(BaseModel):
    """
    `scheduled` when the background loop was woken up, `completed` when the
    cycle ran inline because no loop is running.
    """
    status: Literal["scheduled", "completed"]
    report: Optional[CycleReportModel] = None

    model_config = ConfigDict(extra="forbid")
