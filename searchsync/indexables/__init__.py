"""Indexables: the content types a full sync walks through.

Primary components:
- ``base``: the ``Indexable`` contract, paging types, and ``BackendIndexable``.
- ``registry``: ``IndexableRegistry`` splitting global and per-tenant types.
"""

from .base import BackendIndexable, Indexable, IndexableNotFoundError, Labels, QueryArgs, QueryResult
from .registry import IndexableRegistry

__all__ = [
    "BackendIndexable",
    "Indexable",
    "IndexableNotFoundError",
    "IndexableRegistry",
    "Labels",
    "QueryArgs",
    "QueryResult",
]
