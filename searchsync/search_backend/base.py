"""Base search backend interface.

Defines the index-management contract the indexables depend on, independent
of the backing implementation (OpenSearch, Elasticsearch, etc.).

All methods are synchronous: a sync step blocks on its backend calls and
timeouts are the client's responsibility.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence, Tuple

# Bulk responses follow the ``_bulk`` API shape:
# ``{"errors": bool, "items": [{"index": {"_id": ..., "error": {...}}}, ...]}``
BulkResponse = Dict[str, Any]


class SearchBackend(ABC):
    """Abstract base class for search backends.

    Implementations return ``False`` for recoverable failures of boolean
    operations and raise ``SearchBackendError`` when a whole request fails.
    """

    @abstractmethod
    def delete_index(self, index_name: str) -> bool:
        """Delete an index.

        Returns ``True`` if the index was deleted or did not exist.
        """
        pass

    @abstractmethod
    def create_index(self, index_name: str, body: Dict[str, Any]) -> bool:
        """Create an index with the given settings and mappings."""
        pass

    @abstractmethod
    def bulk_index(
        self,
        index_name: str,
        documents: Sequence[Tuple[str, Dict[str, Any]]]
    ) -> BulkResponse:
        """Index ``(document_id, source)`` pairs in one bulk request.

        Returns
        - A bulk response whose ``errors`` flag is set when individual
          documents were rejected; only failed items are listed.

        Raises
        - ``SearchBackendError`` when the request as a whole failed
        """
        pass

    @abstractmethod
    def put_alias(self, alias_name: str, index_names: List[str]) -> bool:
        """Create or replace an alias spanning ``index_names``."""
        pass

    @abstractmethod
    def health_check(self) -> bool:
        """Check if the backend is reachable."""
        pass


class SearchBackendError(Exception):
    """Base exception for search backend operations.

    Carries every error message the backend reported so callers can surface
    them together.
    """

    def __init__(self, message: str, messages: Optional[List[str]] = None):
        super().__init__(message)
        self.messages = list(messages) if messages else [message]


class SearchBackendConnectionError(SearchBackendError):
    """Connection error to the search backend."""
    pass


class SearchBackendRequestError(SearchBackendError):
    """A request was rejected by the search backend."""
    pass
