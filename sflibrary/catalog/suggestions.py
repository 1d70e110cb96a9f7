"""
Autocomplete suggestion aggregation.

``build_suggestions`` turns the deduplicated candidate rows of a search
into four ranked facet blocks (authors, titles, series, publishers) and
concatenates them in that fixed order. The block order, not a global
sort by score, decides how suggestions are grouped on screen.
"""

from __future__ import annotations

from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, Type

from .schemas import (
    FACET_LABELS,
    AuthorSuggestion,
    Book,
    PublisherSuggestion,
    SeriesSuggestion,
    Suggestion,
    TitleSuggestion,
)
from .scoring import score

MAX_AUTHORS = 6
MAX_TITLES = 8
MAX_SERIES = 4
MAX_PUBLISHERS = 4

TITLE_WEIGHT = 1.2
META_SEPARATOR = " • "


def _author_suggestions(rows: Sequence[Book], query: str) -> List[AuthorSuggestion]:
    counts: Dict[str, int] = {}
    alternates: Dict[str, str] = {}

    for book in rows:
        for name in book.author_names():
            counts[name] = counts.get(name, 0) + 1

        for contributor in book.author_contributors():
            person = contributor.authors
            if person is None:
                continue
            display = person.preferred_name()
            sort_name = person.sort_name
            if display and sort_name and display != sort_name and display not in alternates:
                alternates[display] = sort_name

    scored: List[Tuple[int, AuthorSuggestion]] = []
    for name, count in counts.items():
        alt = alternates.get(name)
        name_score = score(query, name)
        alt_score = score(query, alt) if alt else 0
        best = max(name_score, alt_score)
        if best <= 0:
            continue
        scored.append((
            best,
            AuthorSuggestion(
                value=name,
                display=alt if alt and alt_score > name_score else name,
                alt=alt,
                count=count,
            ),
        ))

    scored.sort(key=lambda item: (item[0], item[1].count), reverse=True)
    return [s for _, s in scored[:MAX_AUTHORS]]


def title_meta(book: Book) -> str:
    """``"A. Author, B. Author • 1957"``, leaving out whatever is missing."""
    authors = book.author_names()
    parts = []
    if authors:
        parts.append(", ".join(authors))
    if book.pub_year:
        parts.append(str(book.pub_year))
    return META_SEPARATOR.join(parts)


def _title_suggestions(rows: Sequence[Book], query: str) -> List[TitleSuggestion]:
    scored: List[Tuple[float, TitleSuggestion]] = []
    for book in rows:
        authors = book.author_names()
        combined = score(query, book.title) * TITLE_WEIGHT + (
            score(query, authors[0]) if authors else 0
        )
        if combined <= 0:
            continue
        scored.append((
            combined,
            TitleSuggestion(
                value=book.title,
                display=book.title,
                meta=title_meta(book),
                book_id=book.id,
            ),
        ))
    scored.sort(key=lambda item: item[0], reverse=True)
    return [s for _, s in scored[:MAX_TITLES]]


def _counted_suggestions(
    values: Iterable[Optional[str]],
    query: str,
    model: Type,
    limit: int,
) -> list:
    """Shared ranking for series and publishers.

    The occurrence count only nudges ties: ``score + count / 10``. Since
    every value occurs at least once, a value of a matched book is kept
    even when its own text does not match, ranked after those that do.
    """
    counts: Dict[str, int] = {}
    for value in values:
        if value:
            counts[value] = counts.get(value, 0) + 1

    scored = []
    for value, count in counts.items():
        total = score(query, value) + count / 10
        if total <= 0:
            continue
        scored.append((total, model(value=value, display=value, count=count)))
    scored.sort(key=lambda item: item[0], reverse=True)
    return [s for _, s in scored[:limit]]


def build_suggestions(rows: Sequence[Book], query: str) -> List[Suggestion]:
    """Rank the candidate rows into facet-grouped suggestions.

    Parameters
    ----------
    rows : Sequence[Book]
        Deduplicated candidates returned by the catalog gateway.
    query : str
        The search text the candidates were fetched for.

    Returns
    -------
    List[Suggestion]
        At most 6 authors, then 8 titles, then 4 series, then 4
        publishers. Blocks may be empty but never change order.
    """
    authors = _author_suggestions(rows, query)
    titles = _title_suggestions(rows, query)
    series = _counted_suggestions((b.series for b in rows), query, SeriesSuggestion, MAX_SERIES)
    publishers = _counted_suggestions(
        (b.publisher_name() for b in rows), query, PublisherSuggestion, MAX_PUBLISHERS
    )
    return [*authors, *titles, *series, *publishers]


def suggestion_label(suggestion: Suggestion) -> str:
    """Header label of the facet block a suggestion belongs to."""
    if isinstance(suggestion, AuthorSuggestion):
        return FACET_LABELS["author"]
    if isinstance(suggestion, TitleSuggestion):
        return FACET_LABELS["title"]
    if isinstance(suggestion, SeriesSuggestion):
        return FACET_LABELS["series"]
    if isinstance(suggestion, PublisherSuggestion):
        return FACET_LABELS["publisher"]
    raise TypeError(f"Unknown suggestion type: {type(suggestion).__name__}")


def group_suggestions(suggestions: Iterable[Suggestion]) -> Iterator[Tuple[str, List[Suggestion]]]:
    """Yield ``(label, items)`` for each consecutive facet block."""
    label: Optional[str] = None
    block: List[Suggestion] = []
    for suggestion in suggestions:
        current = suggestion_label(suggestion)
        if current != label and block:
            yield label, block  # type: ignore[misc]
            block = []
        label = current
        block.append(suggestion)
    if block:
        yield label, block  # type: ignore[misc]
