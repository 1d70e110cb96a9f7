# sflibrary/models.py
from typing import List, Optional

from pydantic import BaseModel, Field

from .catalog.schemas import BookSummary


class AIQueryRequest(BaseModel):
    """Documented shape of ``POST /api/ai-query``.

    The route reads the raw body itself so that a malformed question is
    answered with a 400 ``{error}`` body rather than a validation error.
    """

    question: str


class AIQueryAnswer(BaseModel):
    answer: str
    matches: List[BookSummary] = Field(
        default_factory=list,
        description="Catalog records that were supplied to the model as context.",
    )


class ErrorResponse(BaseModel):
    error: str
    details: Optional[str] = None
