"""SF Library: catalog browser and AI librarian for a personal book collection."""

__version__ = "1.0.0"
