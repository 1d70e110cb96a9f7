"""
Search/browse controller.

All of the browsing UI state lives in one ``BrowseState`` value. Every
input (keystroke, timer, network response, selection) is an event fed to
the pure ``reduce`` function, which returns the next state plus a list of
effects to perform. ``BrowseController`` performs those effects on the
asyncio loop and feeds the outcome back in as new events.

Staleness is handled with a generation counter: each accepted query
change increments ``state.generation``, every scheduled timer and fetch
carries the generation it was started for, and results whose generation
is no longer current are dropped. In-flight requests are never aborted.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Set, TypeVar, Union

from pydantic import BaseModel, Field

from ..errors import CatalogError
from ..storage import RecentSearchStore, push_recent
from .schemas import Book, FacetCount, FacetRollups, GroupMode, Suggestion
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

DEBOUNCE_SECONDS = 0.12
RECENT_SAVE_SECONDS = 0.7
RANDOM_PICKS = 12
EXPLORE_LIMIT = 12

T = TypeVar("T")


class Phase(str, Enum):
    IDLE = "idle"
    DEBOUNCING = "debouncing"
    FETCHING = "fetching"
    SETTLED = "settled"


class BrowseState(BaseModel):
    query: str = ""
    phase: Phase = Phase.IDLE
    generation: int = 0

    books: List[Book] = Field(default_factory=list)
    random_picks: List[Book] = Field(default_factory=list)
    loading: bool = False
    error: Optional[str] = None

    suggestions: List[Suggestion] = Field(default_factory=list)
    suggest_open: bool = False
    suggest_loading: bool = False
    suppress_suggestions: bool = False
    active_index: int = 0

    recent_searches: List[str] = Field(default_factory=list)
    group_mode: GroupMode = "author"

    @property
    def trimmed(self) -> str:
        return self.query.strip()


# ---------------------------------------------------------------------------
# Events


@dataclass(frozen=True)
class Started:
    recent_searches: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class TextChanged:
    text: str


@dataclass(frozen=True)
class DebounceElapsed:
    generation: int


@dataclass(frozen=True)
class RecentSaveElapsed:
    generation: int


@dataclass(frozen=True)
class SuggestionsLoaded:
    generation: int
    suggestions: List[Suggestion]


@dataclass(frozen=True)
class ResultsLoaded:
    generation: int
    books: List[Book]


@dataclass(frozen=True)
class BrowseLoaded:
    generation: int
    books: List[Book]
    random_picks: List[Book]


@dataclass(frozen=True)
class LoadFailed:
    generation: int
    message: str
    source: str = "results"  # or "suggestions"


@dataclass(frozen=True)
class SuggestionSelected:
    suggestion: Suggestion


@dataclass(frozen=True)
class QuickSearch:
    value: str


@dataclass(frozen=True)
class MoveActive:
    delta: int


@dataclass(frozen=True)
class OpenPanel:
    pass


@dataclass(frozen=True)
class ClosePanel:
    pass


@dataclass(frozen=True)
class SetGroupMode:
    mode: GroupMode


Event = Union[
    Started, TextChanged, DebounceElapsed, RecentSaveElapsed, SuggestionsLoaded,
    ResultsLoaded, BrowseLoaded, LoadFailed, SuggestionSelected, QuickSearch,
    MoveActive, OpenPanel, ClosePanel, SetGroupMode,
]


# ---------------------------------------------------------------------------
# Effects


@dataclass(frozen=True)
class ScheduleDebounce:
    generation: int
    delay: float = DEBOUNCE_SECONDS


@dataclass(frozen=True)
class ScheduleRecentSave:
    generation: int
    delay: float = RECENT_SAVE_SECONDS


@dataclass(frozen=True)
class FetchSuggestions:
    generation: int
    query: str


@dataclass(frozen=True)
class FetchResults:
    generation: int
    query: str


@dataclass(frozen=True)
class FetchBrowse:
    generation: int


@dataclass(frozen=True)
class SaveRecent:
    term: str


Effect = Union[ScheduleDebounce, ScheduleRecentSave, FetchSuggestions, FetchResults, FetchBrowse, SaveRecent]


@dataclass
class Transition:
    state: BrowseState
    effects: List[Effect] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Reducer


def _apply_query(state: BrowseState, text: str, *, suppress: bool) -> Transition:
    """Move to a new query text, starting a new generation."""
    generation = state.generation + 1
    trimmed = text.strip()
    if not trimmed:
        next_state = state.model_copy(update={
            "query": text,
            "generation": generation,
            "phase": Phase.IDLE,
            "suggestions": [],
            "suggest_open": False,
            "suggest_loading": False,
            "suppress_suggestions": suppress,
            "active_index": 0,
            "loading": True,
            "error": None,
        })
        return Transition(next_state, [FetchBrowse(generation)])

    next_state = state.model_copy(update={
        "query": text,
        "generation": generation,
        "phase": Phase.DEBOUNCING,
        "suppress_suggestions": suppress,
        "active_index": 0,
    })
    if suppress:
        next_state = next_state.model_copy(update={"suggest_open": False, "suggest_loading": False})
    return Transition(next_state, [ScheduleDebounce(generation), ScheduleRecentSave(generation)])


def reduce(state: BrowseState, event: Event) -> Transition:
    """Return the state following ``event`` and the effects it requires."""
    if isinstance(event, Started):
        next_state = state.model_copy(update={
            "recent_searches": list(event.recent_searches),
            "loading": True,
        })
        if state.trimmed:
            return Transition(next_state, [ScheduleDebounce(state.generation)])
        return Transition(next_state, [FetchBrowse(state.generation)])

    if isinstance(event, TextChanged):
        if event.text.strip() == state.trimmed:
            # Whitespace-only edits keep the current generation.
            return Transition(state.model_copy(update={
                "query": event.text,
                "suppress_suggestions": False,
            }))
        return _apply_query(state, event.text, suppress=False)

    if isinstance(event, (SuggestionSelected, QuickSearch)):
        value = event.suggestion.value if isinstance(event, SuggestionSelected) else event.value
        transition = _apply_query(state, value, suppress=True)
        transition.state = transition.state.model_copy(update={"suggest_open": False})
        return transition

    if isinstance(event, DebounceElapsed):
        if event.generation != state.generation or not state.trimmed:
            return Transition(state)
        effects: List[Effect] = []
        updates = {"phase": Phase.FETCHING, "loading": True, "error": None}
        if not state.suppress_suggestions:
            effects.append(FetchSuggestions(state.generation, state.trimmed))
            updates["suggest_loading"] = True
        effects.append(FetchResults(state.generation, state.trimmed))
        return Transition(state.model_copy(update=updates), effects)

    if isinstance(event, RecentSaveElapsed):
        if event.generation != state.generation or not state.trimmed:
            return Transition(state)
        term = state.trimmed
        next_state = state.model_copy(update={
            "recent_searches": push_recent(state.recent_searches, term),
        })
        return Transition(next_state, [SaveRecent(term)])

    if isinstance(event, SuggestionsLoaded):
        if event.generation != state.generation:
            return Transition(state)
        return Transition(state.model_copy(update={
            "suggestions": list(event.suggestions),
            "suggest_loading": False,
            "suggest_open": not state.suppress_suggestions,
            "active_index": 0,
        }))

    if isinstance(event, ResultsLoaded):
        if event.generation != state.generation:
            return Transition(state)
        books = sort_books(event.books)[:BROWSE_LIMIT]
        return Transition(state.model_copy(update={
            "books": books,
            "phase": Phase.SETTLED,
            "loading": False,
        }))

    if isinstance(event, BrowseLoaded):
        if event.generation != state.generation:
            return Transition(state)
        return Transition(state.model_copy(update={
            "books": list(event.books),
            "random_picks": list(event.random_picks),
            "loading": False,
        }))

    if isinstance(event, LoadFailed):
        if event.generation != state.generation:
            return Transition(state)
        if event.source == "suggestions":
            return Transition(state.model_copy(update={
                "suggestions": [],
                "suggest_open": False,
                "suggest_loading": False,
                "error": event.message,
            }))
        # Previously displayed books stay on screen.
        return Transition(state.model_copy(update={
            "error": event.message,
            "loading": False,
            "phase": Phase.SETTLED if state.trimmed else Phase.IDLE,
        }))

    if isinstance(event, MoveActive):
        if not state.suggestions:
            return Transition(state)
        if not state.suggest_open:
            return Transition(state.model_copy(update={"suggest_open": True}))
        index = max(0, min(state.active_index + event.delta, len(state.suggestions) - 1))
        return Transition(state.model_copy(update={"active_index": index}))

    if isinstance(event, OpenPanel):
        return Transition(state.model_copy(update={"suggest_open": bool(state.suggestions)}))

    if isinstance(event, ClosePanel):
        return Transition(state.model_copy(update={"suggest_open": False}))

    if isinstance(event, SetGroupMode):
        return Transition(state.model_copy(update={"group_mode": event.mode}))

    raise TypeError(f"Unhandled browse event: {type(event).__name__}")


# ---------------------------------------------------------------------------
# Discovery helpers


def shuffle_sample(rows: Sequence[T], count: int, rng: Optional[random.Random] = None) -> List[T]:
    """Fisher-Yates shuffle of a copy of ``rows``, keeping the first ``count``."""
    rng = rng or random.Random()
    items = list(rows)
    for i in range(len(items) - 1, 0, -1):
        j = rng.randint(0, i)
        items[i], items[j] = items[j], items[i]
    return items[:count]


def _rank_counts(counts: Dict[str, int]) -> List[FacetCount]:
    entries = [(name, n) for name, n in counts.items() if name.strip()]
    entries.sort(key=lambda e: (-e[1], e[0]))
    return [FacetCount(name=name, count=n) for name, n in entries]


def facet_rollups(books: Iterable[Book]) -> FacetRollups:
    """Count titles per author and per publisher over ``books``."""
    authors: Dict[str, int] = {}
    publishers: Dict[str, int] = {}
    for book in books:
        for name in book.author_names():
            authors[name] = authors.get(name, 0) + 1
        publisher = book.publisher_name()
        if publisher:
            publishers[publisher] = publishers.get(publisher, 0) + 1
    return FacetRollups(author=_rank_counts(authors), publisher=_rank_counts(publishers))


def explore_entries(books: Iterable[Book], mode: GroupMode, limit: int = EXPLORE_LIMIT) -> List[FacetCount]:
    rollups = facet_rollups(books)
    return getattr(rollups, mode)[:limit]


# ---------------------------------------------------------------------------
# Driver


class BrowseController:
    """Runs the reducer on the current asyncio loop.

    Timers are sleeping tasks; scheduling a timer of a given kind cancels
    the pending one of the same kind. ``settle()`` waits until no timer or
    fetch is left, which is what tests and one-shot callers need.
    """

    def __init__(
        self,
        gateway: CatalogGateway,
        recent_store: Optional[RecentSearchStore] = None,
        rng: Optional[random.Random] = None,
        debounce_delay: float = DEBOUNCE_SECONDS,
        recent_delay: float = RECENT_SAVE_SECONDS,
    ):
        self.gateway = gateway
        self.recent_store = recent_store
        self.rng = rng or random.Random()
        self.debounce_delay = debounce_delay
        self.recent_delay = recent_delay
        self.state = BrowseState()
        self._timers: Dict[str, asyncio.Task] = {}
        self._tasks: Set[asyncio.Task] = set()

    def start(self) -> None:
        recent = self.recent_store.load() if self.recent_store else []
        self.dispatch(Started(recent))

    def type_text(self, text: str) -> None:
        self.dispatch(TextChanged(text))

    def select(self, suggestion: Suggestion) -> None:
        self.dispatch(SuggestionSelected(suggestion))

    def dispatch(self, event: Event) -> BrowseState:
        transition = reduce(self.state, event)
        self.state = transition.state
        for effect in transition.effects:
            self._perform(effect)
        return self.state

    async def settle(self) -> BrowseState:
        while True:
            pending = [t for t in self._tasks if not t.done()]
            if not pending:
                return self.state
            await asyncio.gather(*pending, return_exceptions=True)

    def explore(self) -> List[FacetCount]:
        return explore_entries(self.state.books, self.state.group_mode)

    # ------------------------------------------------------------------

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _schedule(self, kind: str, delay: float, event: Event) -> None:
        previous = self._timers.pop(kind, None)
        if previous is not None and not previous.done():
            previous.cancel()
        self._timers[kind] = self._spawn(self._fire_after(delay, event))

    async def _fire_after(self, delay: float, event: Event) -> None:
        await asyncio.sleep(delay)
        self.dispatch(event)

    def _perform(self, effect: Effect) -> None:
        if isinstance(effect, ScheduleDebounce):
            self._schedule("debounce", self.debounce_delay, DebounceElapsed(effect.generation))
        elif isinstance(effect, ScheduleRecentSave):
            self._schedule("recent", self.recent_delay, RecentSaveElapsed(effect.generation))
        elif isinstance(effect, FetchSuggestions):
            self._spawn(self._load_suggestions(effect))
        elif isinstance(effect, FetchResults):
            self._spawn(self._load_results(effect))
        elif isinstance(effect, FetchBrowse):
            self._spawn(self._load_browse(effect))
        elif isinstance(effect, SaveRecent):
            if self.recent_store is not None:
                self._spawn(asyncio.to_thread(self.recent_store.remember, effect.term))
        else:
            raise TypeError(f"Unhandled browse effect: {type(effect).__name__}")

    async def _load_suggestions(self, effect: FetchSuggestions) -> None:
        try:
            rows = await self.gateway.fetch_for_search(effect.query, SUGGEST_FIELDS, SUGGEST_LIMIT)
        except CatalogError as exc:
            logger.error("Suggestion lookup for %r failed: %s", effect.query, exc.message)
            self.dispatch(LoadFailed(effect.generation, exc.message, "suggestions"))
            return
        self.dispatch(SuggestionsLoaded(effect.generation, build_suggestions(rows, effect.query)))

    async def _load_results(self, effect: FetchResults) -> None:
        try:
            rows = await self.gateway.fetch_for_search(effect.query, RESULT_FIELDS, RESULT_LIMIT)
        except CatalogError as exc:
            logger.error("Catalog search for %r failed: %s", effect.query, exc.message)
            self.dispatch(LoadFailed(effect.generation, exc.message, "results"))
            return
        self.dispatch(ResultsLoaded(effect.generation, rows))

    async def _load_browse(self, effect: FetchBrowse) -> None:
        try:
            rows = await self.gateway.fetch_all(BROWSE_LIMIT)
        except CatalogError as exc:
            logger.error("Catalog browse failed: %s", exc.message)
            self.dispatch(LoadFailed(effect.generation, exc.message, "results"))
            return
        picks = shuffle_sample(rows, RANDOM_PICKS, self.rng)
        self.dispatch(BrowseLoaded(effect.generation, rows, picks))
