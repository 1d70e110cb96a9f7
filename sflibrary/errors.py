# sflibrary/errors.py
"""Exceptions shared by the catalog gateway, the AI relay and the routes."""

from typing import Any, Dict, Optional


class CatalogError(Exception):
    """The hosted catalog could not be queried (or is not configured)."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class CompletionError(Exception):
    """The completion API rejected the request or could not be reached."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class RelayError(Exception):
    """An error that the HTTP layer renders as ``{error, details?}``."""

    def __init__(self, status_code: int, error: str, details: Optional[str] = None):
        super().__init__(error)
        self.status_code = status_code
        self.error = error
        self.details = details

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.error}
        if self.details:
            payload["details"] = self.details
        return payload
