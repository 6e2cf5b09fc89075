"""Service layer - use cases behind the HTTP routes.

Functions take the engine explicitly and return plain result dicts, so
they can be called from tests or other transports without Starlette.
"""

from .services import (
    InvalidQuery,
    build_list_filter,
    build_search_filter,
    create_document,
    explain_search,
    get_document,
    list_documents,
    search_documents,
)


__all__ = [
    "InvalidQuery",
    "build_list_filter",
    "build_search_filter",
    "create_document",
    "explain_search",
    "get_document",
    "list_documents",
    "search_documents",
]
