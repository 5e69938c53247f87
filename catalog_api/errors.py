"""
Error taxonomy of the catalog service.

Store operations wrap the client exception they hit in one of these types,
with a short context string naming the step that failed. The HTTP layer maps
each type to a status code and renders ``str(error)`` as the detail.
"""

from typing import Optional


class CatalogError(Exception):
    """Base class; ``context`` names the failing step, ``cause`` the reason."""

    status_code = 500

    def __init__(self, context: str, cause: Optional[str] = None):
        self.context = context
        self.cause = cause
        super().__init__(context)

    def __str__(self) -> str:
        if self.cause:
            return f"{self.context}: {self.cause}"
        return self.context


class StoreConnectionError(CatalogError):
    """The document store or key-value store could not be reached in time."""

    status_code = 503


class NotFoundError(CatalogError):
    status_code = 404


class AggregationUnavailableError(CatalogError):
    """Statistics were requested but the engine returned no cardinality value."""

    status_code = 404


class InvalidInputError(CatalogError):
    status_code = 400


class StoreError(CatalogError):
    """The store answered with an error other than not-found."""

    status_code = 502


class UnsupportedOperationError(CatalogError):
    status_code = 405
