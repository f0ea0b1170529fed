"""Indexable contract.

An indexable is a named content type with a backend schema. It can page
through its domain objects and bulk-write them as documents. Global
indexables keep a single index spanning all tenants; per-tenant indexables
keep one index per tenant and resolve it from the active tenant.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import structlog

from ..common.tenancy import TenantDirectory
from ..search_backend.base import BulkResponse, SearchBackend

logger = structlog.get_logger("indexables")


class IndexableNotFoundError(LookupError):
    """Raised when a registry lookup names an unknown indexable."""
    pass


@dataclass(frozen=True)
class Labels:
    """Human readable names of an indexable."""
    singular: str
    plural: str


@dataclass(frozen=True)
class QueryArgs:
    """Arguments for fetching one page of content."""
    per_page: int
    offset: int
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass
class QueryResult:
    """One page of content plus the total number of matching objects."""
    total_objects: int
    objects: List[Any] = field(default_factory=list)


class Indexable(ABC):
    """Abstract base class for indexables.

    Subclasses set ``slug`` and ``labels`` and, for cross-tenant content,
    ``global_ = True``.
    """

    slug: str = ""
    labels: Labels = Labels(singular="Object", plural="Objects")
    global_: bool = False

    def object_id(self, obj: Any) -> Any:
        """Return the identifier of a queried object."""
        if isinstance(obj, dict):
            return obj["id"]
        return getattr(obj, "id")

    @abstractmethod
    def delete_index(self) -> bool:
        """Delete the index of the active tenant (or the global index)."""
        pass

    @abstractmethod
    def put_mapping(self) -> bool:
        """Create the index with this indexable's schema."""
        pass

    @abstractmethod
    def query_content(self, args: QueryArgs) -> QueryResult:
        """Fetch the page ``[offset, offset + per_page)`` of objects to index."""
        pass

    @abstractmethod
    def bulk_index(self, object_ids: Sequence[Any]) -> BulkResponse:
        """Index the given objects.

        Raises ``SearchBackendError`` when the whole request failed.
        """
        pass

    @abstractmethod
    def get_index_name(self) -> str:
        """Return the concrete index name for the active tenant."""
        pass

    @abstractmethod
    def create_alias(self, index_names: List[str]) -> bool:
        """Create or replace the alias spanning ``index_names``."""
        pass


class BackendIndexable(Indexable):
    """Indexable whose index operations go to a ``SearchBackend``.

    Subclasses provide the schema, the content query, and the document for a
    single object; index naming, mapping replacement, bulk writes, and alias
    creation are handled here.

    Index names
    - global: ``{prefix}{slug}-global``
    - per-tenant: ``{prefix}{slug}-{tenant_id}``
    - network alias: ``{prefix}{slug}-network-alias``
    """

    def __init__(
        self,
        backend: SearchBackend,
        tenants: Optional[TenantDirectory] = None,
        index_prefix: str = ""
    ):
        if not self.slug:
            raise ValueError(f"{type(self).__name__} must define a slug")
        self.backend = backend
        self.tenants = tenants
        self.index_prefix = index_prefix

    @abstractmethod
    def mapping(self) -> Dict[str, Any]:
        """Return the index body (settings and mappings)."""
        pass

    @abstractmethod
    def prepare_document(self, object_id: Any) -> Optional[Dict[str, Any]]:
        """Build the document for one object, or ``None`` if it no longer exists."""
        pass

    def get_index_name(self) -> str:
        if self.global_:
            return f"{self.index_prefix}{self.slug}-global"
        if self.tenants is None:
            return f"{self.index_prefix}{self.slug}"
        return f"{self.index_prefix}{self.slug}-{self.tenants.current_tenant().id}"

    def get_network_alias(self) -> str:
        """Return the alias spanning every tenant's index."""
        return f"{self.index_prefix}{self.slug}-network-alias"

    def delete_index(self) -> bool:
        return self.backend.delete_index(self.get_index_name())

    def put_mapping(self) -> bool:
        return self.backend.create_index(self.get_index_name(), self.mapping())

    def bulk_index(self, object_ids: Sequence[Any]) -> BulkResponse:
        documents = []
        for object_id in object_ids:
            document = self.prepare_document(object_id)
            if document is None:
                logger.debug("Object vanished before indexing", indexable=self.slug, object_id=object_id)
                continue
            documents.append((str(object_id), document))

        return self.backend.bulk_index(self.get_index_name(), documents)

    def create_alias(self, index_names: List[str]) -> bool:
        return self.backend.put_alias(self.get_network_alias(), index_names)
