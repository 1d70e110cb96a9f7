"""
Pydantic schema definitions for the catalog module.

The ``Book`` model mirrors one row of the hosted ``books`` table together
with the embedded ``publishers`` and ``book_contributors`` relations, as
returned by the REST interface of the store. Records are only ever read:
nothing in this service writes them back.

Suggestions are a discriminated union on ``kind`` so that each facet
carries only the fields that make sense for it (an author has an
alternate name, a title has a back-reference to its book, series and
publishers carry an occurrence count).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator
from typing_extensions import Annotated

# Large sentinel so that contributors without a credit order sort last.
_LAST = 2**53 - 1


class Person(BaseModel):
    """A contributor as stored in the ``authors`` table."""

    display_name: Optional[str] = None
    sort_name: Optional[str] = None

    def preferred_name(self) -> Optional[str]:
        return self.display_name or self.sort_name or None


class Contributor(BaseModel):
    """Association between a book and a person.

    ``role`` is normally ``"author"`` or ``"editor"``; ``credit_order``
    sequences several authors of the same work, missing values last.
    """

    role: str
    credit_order: Optional[int] = None
    authors: Optional[Person] = None


class Publisher(BaseModel):
    name: str


class Book(BaseModel):
    """One bibliographic item of the collection."""

    id: int
    title: str
    sort_title: Optional[str] = None
    pub_year: Optional[int] = None
    series: Optional[str] = None
    work_type: Optional[str] = None
    tier: Optional[str] = None
    signed: bool = False
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    publishers: Optional[Publisher] = None
    book_contributors: List[Contributor] = Field(default_factory=list)

    @field_validator("book_contributors", mode="before")
    @classmethod
    def _null_contributors(cls, v: Any) -> Any:
        return [] if v is None else v

    @field_validator("signed", mode="before")
    @classmethod
    def _null_signed(cls, v: Any) -> Any:
        return False if v is None else v

    def author_contributors(self) -> List[Contributor]:
        """Author contributors ordered by credit order, missing orders last."""
        authors = [c for c in self.book_contributors if c.role == "author"]
        return sorted(
            authors,
            key=lambda c: c.credit_order if c.credit_order is not None else _LAST,
        )

    def author_names(self) -> List[str]:
        names: List[str] = []
        for contributor in self.author_contributors():
            name = contributor.authors.preferred_name() if contributor.authors else None
            if name:
                names.append(name)
        return names

    def publisher_name(self) -> Optional[str]:
        return self.publishers.name if self.publishers else None

    def ordering_key(self) -> str:
        return (self.sort_title or self.title).casefold()


class BookSummary(BaseModel):
    """Compact echo of a catalog record (used by the AI endpoint)."""

    id: int
    title: str
    authors: List[str] = Field(default_factory=list)
    pub_year: Optional[int] = None

    @classmethod
    def from_book(cls, book: Book) -> "BookSummary":
        return cls(
            id=book.id,
            title=book.title,
            authors=book.author_names(),
            pub_year=book.pub_year,
        )


# ---------------------------------------------------------------------------
# Suggestions


class AuthorSuggestion(BaseModel):
    kind: Literal["author"] = "author"
    value: str
    display: str
    alt: Optional[str] = None
    count: int = 0


class TitleSuggestion(BaseModel):
    kind: Literal["title"] = "title"
    value: str
    display: str
    meta: str = ""
    book_id: Optional[int] = None


class SeriesSuggestion(BaseModel):
    kind: Literal["series"] = "series"
    value: str
    display: str
    count: int = 0


class PublisherSuggestion(BaseModel):
    kind: Literal["publisher"] = "publisher"
    value: str
    display: str
    count: int = 0


Suggestion = Annotated[
    Union[AuthorSuggestion, TitleSuggestion, SeriesSuggestion, PublisherSuggestion],
    Field(discriminator="kind"),
]


# ---------------------------------------------------------------------------
# Route payloads


class FacetCount(BaseModel):
    name: str
    count: int


class FacetRollups(BaseModel):
    """Occurrence counts used by the "explore by" panel."""

    author: List[FacetCount] = Field(default_factory=list)
    publisher: List[FacetCount] = Field(default_factory=list)


class BookList(BaseModel):
    """Response of ``GET /api/catalog/books``.

    When the query is empty the list is the unfiltered catalog and
    ``random_picks`` / ``groups`` are filled for discovery browsing.
    """

    query: str
    total: int
    items: List[Book]
    random_picks: List[Book] = Field(default_factory=list)
    groups: Optional[FacetRollups] = None


class SuggestionList(BaseModel):
    query: str
    items: List[Suggestion] = Field(default_factory=list)


class ExploreEntries(BaseModel):
    mode: Literal["author", "publisher"]
    items: List[FacetCount] = Field(default_factory=list)


class RecentSearches(BaseModel):
    items: List[str] = Field(default_factory=list)


class RecentSearchRequest(BaseModel):
    term: str


GroupMode = Literal["author", "publisher"]

FACET_LABELS: Dict[str, str] = {
    "author": "Authors",
    "title": "Titles",
    "series": "Series",
    "publisher": "Publishers",
}
