"""
Route definitions for the catalogue API.

Endpoints under /api/catalog:
- GET  /books        : main list (search results, or the whole shelf with
                       random picks and facet roll-ups when q is empty)
- GET  /suggestions  : autocomplete suggestions grouped by facet
- GET  /explore      : "explore by" author/publisher counts
- GET  /recent       : recent searches
- POST /recent       : record a recent search
"""

from __future__ import annotations

import logging
import random
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request

from ..errors import CatalogError, RelayError
from ..storage import RecentSearchStore
from .browse import RANDOM_PICKS, explore_entries, facet_rollups, shuffle_sample
from .schemas import (
    Book,
    BookList,
    ExploreEntries,
    GroupMode,
    RecentSearches,
    RecentSearchRequest,
    SuggestionList,
)
from .store import (
    BROWSE_LIMIT,
    RESULT_FIELDS,
    RESULT_LIMIT,
    SUGGEST_FIELDS,
    SUGGEST_LIMIT,
    CatalogGateway,
    sort_books,
)
from .suggestions import build_suggestions

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/catalog", tags=["catalog"])


def get_gateway(request: Request) -> CatalogGateway:
    return request.app.state.gateway


def get_recent_store(request: Request) -> RecentSearchStore:
    return request.app.state.recent_store


def get_rng() -> random.Random:
    return random.Random()


def _catalog_failure(exc: CatalogError) -> RelayError:
    return RelayError(500, "Catalog request failed", exc.message)


async def _search(gateway: CatalogGateway, q: str) -> List[Book]:
    rows = await gateway.fetch_for_search(q, RESULT_FIELDS, RESULT_LIMIT)
    return sort_books(rows)[:BROWSE_LIMIT]


@router.get("/books", response_model=BookList)
async def list_books(
    q: Optional[str] = Query(default=None, description="Free-text search (title, author, series, publisher, notes)"),
    gateway: CatalogGateway = Depends(get_gateway),
    rng: random.Random = Depends(get_rng),
) -> BookList:
    """
    Returns the main book list.

    - With a query: field, author and publisher matches merged by id,
      ordered by sort title and capped at 600 rows.
    - Without a query: the unfiltered shelf (600 rows), a random sample of
      12 picks and the author/publisher roll-ups.
    """
    query = (q or "").strip()
    try:
        if query:
            books = await _search(gateway, query)
            return BookList(query=query, total=len(books), items=books)
        books = await gateway.fetch_all(BROWSE_LIMIT)
    except CatalogError as exc:
        raise _catalog_failure(exc) from exc

    return BookList(
        query="",
        total=len(books),
        items=books,
        random_picks=shuffle_sample(books, RANDOM_PICKS, rng),
        groups=facet_rollups(books),
    )


@router.get("/suggestions", response_model=SuggestionList)
async def suggestions(
    q: str = Query(default="", description="Text typed so far"),
    gateway: CatalogGateway = Depends(get_gateway),
) -> SuggestionList:
    query = q.strip()
    if not query:
        return SuggestionList(query="", items=[])
    try:
        rows = await gateway.fetch_for_search(query, SUGGEST_FIELDS, SUGGEST_LIMIT)
    except CatalogError as exc:
        raise _catalog_failure(exc) from exc
    return SuggestionList(query=query, items=build_suggestions(rows, query))


@router.get("/explore", response_model=ExploreEntries)
async def explore(
    mode: GroupMode = Query(default="author", description="Group by author or publisher"),
    gateway: CatalogGateway = Depends(get_gateway),
) -> ExploreEntries:
    try:
        books = await gateway.fetch_all(BROWSE_LIMIT)
    except CatalogError as exc:
        raise _catalog_failure(exc) from exc
    return ExploreEntries(mode=mode, items=explore_entries(books, mode))


@router.get("/recent", response_model=RecentSearches)
def list_recent(store: RecentSearchStore = Depends(get_recent_store)) -> RecentSearches:
    return RecentSearches(items=store.load())


@router.post("/recent", response_model=RecentSearches)
def add_recent(
    req: RecentSearchRequest,
    store: RecentSearchStore = Depends(get_recent_store),
) -> RecentSearches:
    if not req.term.strip():
        raise RelayError(400, "Missing search term")
    return RecentSearches(items=store.remember(req.term))
