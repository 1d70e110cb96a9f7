"""
Catalog package for the SF library service.

Contains the record schemas, the gateway to the hosted catalog, the
relevance scorer and suggestion aggregator used by autocomplete, the
search/browse controller and the routes exposed under ``/api/catalog``.
"""

from .router import router as catalog_router  # noqa: F401
