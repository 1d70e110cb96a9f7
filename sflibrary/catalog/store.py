"""
Gateway to the hosted catalog.

The collection lives in a hosted Postgres database exposed through a
PostgREST interface (Supabase). That interface has no full-text or
multi-column OR search we can rely on, so a free-text lookup is emulated
by fanning out one ``ILIKE '%q%'`` request per searchable field plus two
relation lookups (authors and publishers), all issued concurrently and
merged by book id.

Failure policy is fail-fast: if any sub-query fails, the whole call
raises ``CatalogError`` and partial results are discarded, so callers
never display a silently incomplete result set.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

import httpx
from pydantic import ValidationError

from ..config import Settings
from ..errors import CatalogError
from .schemas import Book

logger = logging.getLogger(__name__)

# Columns requested for every book, including the embedded relations.
BOOK_SELECT = (
    "id,title,sort_title,pub_year,series,work_type,tier,signed,notes,created_at,"
    "publishers(name),book_contributors(role,credit_order,authors(display_name,sort_name))"
)
AUTHOR_LINK_SELECT = "book_id,authors!inner(display_name,sort_name)"
ORDER_BY = "sort_title.asc"

BROWSE_LIMIT = 600
SUGGEST_FIELDS = ("title", "series")
SUGGEST_LIMIT = 30
RESULT_FIELDS = ("title", "series", "notes")
RESULT_LIMIT = 250


def make_ilike_pattern(q: str) -> str:
    """Wrap ``q`` for a case-insensitive substring match."""
    return f"ilike.%{q.strip()}%"


def search_table(fields: Iterable[str], limit: int) -> Dict[str, int]:
    """Build the ``{field: cap}`` table consumed by ``fetch_by_fields``."""
    return {field: limit for field in fields}


def dedupe_by_id(rows: Iterable[Book]) -> List[Book]:
    """Merge rows by book id.

    The last copy of a duplicated id wins, but it keeps the position at
    which the id was first seen.
    """
    merged: Dict[int, Book] = {}
    for row in rows:
        merged[row.id] = row
    return list(merged.values())


def sort_books(books: Iterable[Book]) -> List[Book]:
    """Order books by sort title (falling back to title), case-insensitive."""
    return sorted(books, key=lambda b: b.ordering_key())


def _in_filter(ids: Sequence[Any]) -> str:
    return "in.(" + ",".join(str(i) for i in ids) + ")"


class CatalogGateway:
    """Asynchronous, read-only client for the hosted ``books`` catalog.

    Parameters
    ----------
    settings : Settings
        Provides the store URL, the anon key and the HTTP timeout.
    client : Optional[httpx.AsyncClient]
        Injected client (tests pass one built on ``httpx.MockTransport``).
        When omitted, a client is created and owned by the gateway.
    """

    def __init__(self, settings: Settings, client: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self._owns_client = client is None
        if client is None:
            client = httpx.AsyncClient(
                base_url=settings.store_rest_url,
                timeout=settings.http_timeout,
            )
        self.client = client

    @property
    def ready(self) -> bool:
        return self.settings.store_ready

    def _headers(self) -> Dict[str, str]:
        key = self.settings.supabase_anon_key or ""
        return {
            "apikey": key,
            "Authorization": f"Bearer {key}",
            "Accept": "application/json",
        }

    async def _select(self, table: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Run one GET against ``table`` and return the decoded rows.

        Raises
        ------
        CatalogError
            When the store is not configured, unreachable, answers with a
            non-2xx status or returns something other than a JSON list.
        """
        if not self.ready:
            raise CatalogError("Missing Supabase env vars")
        try:
            response = await self.client.get(f"/{table}", params=params, headers=self._headers())
        except httpx.HTTPError as exc:
            logger.error("Catalog request to %s failed: %s", table, exc)
            raise CatalogError(f"Catalog request failed: {exc}") from exc

        if response.status_code >= 400:
            message = _error_message(response)
            logger.error(
                "Catalog request to %s returned status %s: %s",
                table, response.status_code, message,
            )
            raise CatalogError(message)

        try:
            data = response.json()
        except ValueError as exc:
            raise CatalogError(f"Malformed response from catalog table {table}") from exc
        if not isinstance(data, list):
            raise CatalogError(f"Unexpected response shape from catalog table {table}")
        return data

    async def _select_books(self, params: Dict[str, Any]) -> List[Book]:
        query = {"select": BOOK_SELECT, "order": ORDER_BY}
        query.update(params)
        rows = await self._select("books", query)
        try:
            return [Book.model_validate(row) for row in rows]
        except ValidationError as exc:
            logger.error("Catalog table books returned an invalid row: %s", exc)
            raise CatalogError(
                f"Malformed row from catalog table books: {exc.errors()[0]['msg']}"
            ) from exc

    # ------------------------------------------------------------------
    # Fan-out lookups

    async def fetch_by_fields(self, q: str, fields: Mapping[str, int]) -> List[Book]:
        """One substring query per field of ``fields``, run concurrently.

        ``fields`` maps a column of ``books`` to the row cap of its query,
        so adding a searchable column is a change to that table only.
        """
        pattern = make_ilike_pattern(q)
        requests = [
            self._select_books({field: pattern, "limit": cap})
            for field, cap in fields.items()
        ]
        results = await asyncio.gather(*requests)
        return dedupe_by_id(book for rows in results for book in rows)

    async def fetch_by_author(self, q: str, limit: int) -> List[Book]:
        """Books whose author display name or sort name matches ``q``."""
        pattern = make_ilike_pattern(q)
        lookups = [
            self._select(
                "book_contributors",
                {
                    "select": AUTHOR_LINK_SELECT,
                    "role": "eq.author",
                    f"authors.{column}": pattern,
                    "limit": limit,
                },
            )
            for column in ("display_name", "sort_name")
        ]
        results = await asyncio.gather(*lookups)

        ids: List[int] = []
        for rows in results:
            for row in rows:
                book_id = row.get("book_id")
                if book_id is not None and book_id not in ids:
                    ids.append(book_id)
        if not ids:
            return []
        return await self._select_books({"id": _in_filter(ids)})

    async def fetch_by_publisher(self, q: str, limit: int) -> List[Book]:
        """Books published by any publisher whose name matches ``q``."""
        publishers = await self._select(
            "publishers",
            {"select": "id,name", "name": make_ilike_pattern(q), "limit": limit},
        )
        publisher_ids = [p["id"] for p in publishers if p.get("id") is not None]
        if not publisher_ids:
            return []
        return await self._select_books({"publisher_id": _in_filter(publisher_ids)})

    async def fetch_for_search(self, q: str, fields: Iterable[str], limit: int) -> List[Book]:
        """Full free-text lookup: field queries plus author and publisher joins.

        Parameters
        ----------
        q : str
            Raw search text; it is trimmed and wrapped in ``%...%``.
        fields : Iterable[str]
            Columns of ``books`` to match directly.
        limit : int
            Row cap applied to each individual sub-query.

        Returns
        -------
        List[Book]
            Deduplicated rows in no particular order.

        Raises
        ------
        CatalogError
            As soon as any sub-query fails.
        """
        by_fields, by_author, by_publisher = await asyncio.gather(
            self.fetch_by_fields(q, search_table(fields, limit)),
            self.fetch_by_author(q, limit),
            self.fetch_by_publisher(q, limit),
        )
        return dedupe_by_id([*by_fields, *by_author, *by_publisher])

    async def fetch_all(self, limit: int = BROWSE_LIMIT) -> List[Book]:
        """Unfiltered catalog, ordered by sort title."""
        return await self._select_books({"limit": limit})

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()


def _error_message(response: httpx.Response) -> str:
    """Extract the store's error message from a failed response."""
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        for key in ("message", "error_description", "error", "hint"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
    text = response.text.strip()
    return text or f"Catalog request failed with status {response.status_code}"
