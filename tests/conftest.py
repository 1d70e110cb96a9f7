"""Shared helpers for the test suite."""
from typing import Any, Dict, List, Optional, Sequence

import pytest

from sflibrary.catalog.schemas import Book
from sflibrary.config import Settings
from sflibrary.errors import CatalogError


def make_settings(**overrides) -> Settings:
    """Settings built from explicit values (keys are the env aliases).

    Passing aliases keeps real environment variables from leaking in.
    """
    values: Dict[str, Any] = {
        "SUPABASE_URL": "https://catalog.example.test",
        "SUPABASE_ANON_KEY": "anon-key",
        "OPENAI_API_KEY": "sk-test",
        "OPENAI_BASE_URL": "https://llm.example.test/v1",
        "OPENAI_MODEL": "gpt-4.1-mini",
        "AI_TEMPERATURE": 0.3,
        "AI_MAX_OUTPUT_TOKENS": 500,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def contributor(
    display: Optional[str],
    sort: Optional[str] = None,
    order: Optional[int] = None,
    role: str = "author",
) -> Dict[str, Any]:
    return {
        "role": role,
        "credit_order": order,
        "authors": {"display_name": display, "sort_name": sort},
    }


def book_row(
    id: int,
    title: str,
    authors: Sequence[Dict[str, Any]] = (),
    publisher: Optional[str] = None,
    **fields: Any,
) -> Dict[str, Any]:
    row: Dict[str, Any] = {
        "id": id,
        "title": title,
        "sort_title": None,
        "pub_year": None,
        "series": None,
        "work_type": None,
        "tier": None,
        "signed": False,
        "notes": None,
        "created_at": "2024-03-01T12:00:00+00:00",
        "publishers": {"name": publisher} if publisher else None,
        "book_contributors": list(authors),
    }
    row.update(fields)
    return row


def make_book(id: int, title: str, authors: Sequence[Dict[str, Any]] = (), publisher: Optional[str] = None, **fields: Any) -> Book:
    return Book.model_validate(book_row(id, title, authors, publisher, **fields))


class FakeGateway:
    """Stands in for ``CatalogGateway`` and records every call."""

    def __init__(
        self,
        search: Optional[Dict[str, List[Book]]] = None,
        shelf: Optional[List[Book]] = None,
        error: Optional[str] = None,
    ):
        self.search = search or {}
        self.shelf = shelf or []
        self.error = error
        self.calls: List[tuple] = []

    async def fetch_for_search(self, q, fields, limit):
        self.calls.append(("search", q, tuple(fields), limit))
        if self.error:
            raise CatalogError(self.error)
        return list(self.search.get(q.strip(), []))

    async def fetch_all(self, limit=600):
        self.calls.append(("all", limit))
        if self.error:
            raise CatalogError(self.error)
        return list(self.shelf)[:limit]


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def asimov_books() -> List[Book]:
    asimov = contributor("Isaac Asimov", "Asimov, Isaac", 1)
    return [
        make_book(1, "Foundation", [asimov], "Gnome Press", pub_year=1951, series="Foundation"),
        make_book(2, "I, Robot", [asimov], "Gnome Press", pub_year=1950, series="Robot"),
        make_book(3, "The Caves of Steel", [asimov], "Doubleday", pub_year=1954, series="Robot"),
    ]
