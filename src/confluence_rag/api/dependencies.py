from fastapi import Request

from ..db.vector_store import VectorStore
from ..search.service import SearchService
from ..sync.indexer import PageIndexer
from ..sync.reconciler import SyncReconciler

# Components are built once in the application lifespan and parked on
# app.state; these accessors are what routes depend on (and what tests
# override).


def get_store(request: Request) -> VectorStore:
    return request.app.state.store


def get_indexer(request: Request) -> PageIndexer:
    return request.app.state.indexer


def get_search_service(request: Request) -> SearchService:
    return request.app.state.search_service


def get_reconciler(request: Request) -> SyncReconciler:
    return request.app.state.reconciler
