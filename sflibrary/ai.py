# sflibrary/ai.py
import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx

from .catalog.schemas import Book, BookSummary
from .catalog.store import CatalogGateway, sort_books
from .config import Settings
from .errors import CatalogError, CompletionError, RelayError
from .models import AIQueryAnswer


logger = logging.getLogger(__name__)

CONTEXT_FIELDS = ("title", "notes")
CONTEXT_LIMIT = 30

MISSING_QUESTION = "Missing question"
MISSING_KEY = "Server misconfigured: OPENAI_API_KEY is missing."
NO_MATCHES_CONTEXT = "No matching books were found in the catalog."
FALLBACK_ANSWER = "I couldn't generate an answer for that."

SYSTEM_PROMPT = (
    "You are the librarian of a private collection of vintage science fiction. "
    "Answer only from the catalog records supplied in the user's message. "
    "If the records do not contain the answer, say that the catalog does not "
    "show it instead of guessing. Keep answers short and mention titles exactly "
    "as they appear in the records."
)


def parse_question(payload: Any) -> str:
    """Extract a usable question from the request body or raise a 400."""
    question = payload.get("question") if isinstance(payload, dict) else None
    if not isinstance(question, str) or not question.strip():
        raise RelayError(400, MISSING_QUESTION)
    return question.strip()


def describe_book(book: Book) -> str:
    """One-line fact about a record, leaving out missing parts."""
    line = f'"{book.title}"'
    authors = book.author_names()
    if authors:
        line += f" by {', '.join(authors)}"
    if book.pub_year:
        line += f" ({book.pub_year})"
    publisher = book.publisher_name()
    if publisher:
        line += f", {publisher}"
    if book.notes:
        line += f" — Notes: {book.notes.strip()}"
    return line


def build_context(books: Sequence[Book]) -> str:
    if not books:
        return NO_MATCHES_CONTEXT
    return "\n".join(describe_book(b) for b in books)


def build_messages(question: str, context: str) -> List[Dict[str, str]]:
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {
            "role": "user",
            "content": (
                f"Question: {question}\n\n"
                f"Catalog records:\n{context}"
            ),
        },
    ]


class CompletionClient:
    """Minimal client for an OpenAI-compatible ``/chat/completions`` endpoint."""

    def __init__(self, settings: Settings, client: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            base_url=settings.openai_base_url,
            timeout=settings.http_timeout,
        )

    async def complete(self, messages: List[Dict[str, str]]) -> str:
        payload = {
            "model": self.settings.openai_model,
            "messages": messages,
            "temperature": self.settings.ai_temperature,
            "max_tokens": self.settings.ai_max_output_tokens,
        }
        headers = {"Authorization": f"Bearer {self.settings.openai_api_key or ''}"}
        try:
            response = await self.client.post("/chat/completions", json=payload, headers=headers)
        except httpx.HTTPError as exc:
            raise CompletionError(f"Completion request failed: {exc}") from exc

        if response.status_code >= 400:
            raise CompletionError(_upstream_message(response), response.status_code)

        try:
            data = response.json()
        except ValueError as exc:
            raise CompletionError("Completion API returned malformed JSON") from exc

        choices = data.get("choices") if isinstance(data, dict) else None
        if not choices:
            return ""
        message = choices[0].get("message") or {}
        return (message.get("content") or "").strip()

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()


def _upstream_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str) and error:
            return error
    return response.text.strip() or f"Completion API returned status {response.status_code}"


async def find_context_books(gateway: CatalogGateway, question: str) -> List[Book]:
    rows = await gateway.fetch_for_search(question, CONTEXT_FIELDS, CONTEXT_LIMIT)
    return sort_books(rows)[:CONTEXT_LIMIT]


async def answer_question(
    payload: Any,
    settings: Settings,
    gateway: CatalogGateway,
    completion: CompletionClient,
) -> AIQueryAnswer:
    """Validate the request, ground it in the catalog and ask the model.

    Raises ``RelayError`` for every failure so the route can render a
    ``{error, details?}`` body with the right status.
    """
    if not settings.openai_api_key:
        raise RelayError(500, MISSING_KEY)

    question = parse_question(payload)

    try:
        books = await find_context_books(gateway, question)
    except CatalogError as exc:
        logger.error("Catalog lookup for AI question failed: %s", exc.message)
        raise RelayError(500, "Catalog lookup failed", exc.message) from exc

    context = build_context(books)
    logger.info("AI question with %d catalog records in context", len(books))

    try:
        text = await completion.complete(build_messages(question, context))
    except CompletionError as exc:
        logger.error("AI route error: %s", exc.message)
        raise RelayError(500, "AI request failed", exc.message) from exc

    return AIQueryAnswer(
        answer=text or FALLBACK_ANSWER,
        matches=[BookSummary.from_book(b) for b in books],
    )
