"""Registry of indexables, keyed by slug."""

from typing import Dict, Iterable, List, Optional

import structlog

from .base import Indexable, IndexableNotFoundError

logger = structlog.get_logger("indexables.registry")


class IndexableRegistry:
    """Holds the indexables of a deployment in registration order."""

    def __init__(self, indexables: Optional[Iterable[Indexable]] = None):
        self._indexables: Dict[str, Indexable] = {}
        for indexable in indexables or []:
            self.register(indexable)

    def register(self, indexable: Indexable) -> None:
        """Register an indexable, replacing any previous one with the same slug."""
        if indexable.slug in self._indexables:
            logger.warning("Replacing registered indexable", indexable=indexable.slug)
        self._indexables[indexable.slug] = indexable

    def get(self, slug: str) -> Indexable:
        """Return the indexable registered as ``slug``."""
        try:
            return self._indexables[slug]
        except KeyError:
            raise IndexableNotFoundError(f"Unknown indexable: {slug}") from None

    def get_all(self, global_: Optional[bool] = None) -> List[str]:
        """Return registered slugs, optionally filtered to global or per-tenant ones."""
        return [
            slug
            for slug, indexable in self._indexables.items()
            if global_ is None or bool(indexable.global_) == global_
        ]

    def __contains__(self, slug: str) -> bool:
        return slug in self._indexables

    def __len__(self) -> int:
        return len(self._indexables)
