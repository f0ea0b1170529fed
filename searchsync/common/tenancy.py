"""Tenant directory and scoped tenant switching.

A tenant (or "site") is an isolated content scope. Per-tenant indexables keep
one index per tenant and read the active tenant from the directory when they
resolve index names or query content, so the active tenant is ambient state
shared with unrelated readers in the same process.

Design
- ``TenantDirectory`` is the contract the orchestrator depends on
- Switching is only ever done through ``switched_to()``, which restores the
  previous tenant on every exit path
- ``StaticTenantDirectory`` is an in-memory implementation for single
  deployments, scripts, and tests
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, List, Optional, Sequence

import structlog

logger = structlog.get_logger("tenancy")


class UnknownTenantError(LookupError):
    """Raised when activating a tenant the directory does not know."""
    pass


@dataclass(frozen=True)
class Tenant:
    """A single tenant of the deployment."""
    id: int
    base_url: str = ""
    is_indexable: bool = True

    @property
    def url(self) -> str:
        """Base URL without a trailing slash."""
        return self.base_url.rstrip("/")


class TenantDirectory(ABC):
    """Enumerates tenants and owns the active-tenant context."""

    @property
    @abstractmethod
    def is_multi_tenant(self) -> bool:
        """Whether the deployment indexes more than one tenant."""
        pass

    @abstractmethod
    def list_tenants(self) -> List[Tenant]:
        """Return every tenant, indexable or not, in a stable order."""
        pass

    @abstractmethod
    def current_tenant(self) -> Tenant:
        """Return the currently active tenant."""
        pass

    @abstractmethod
    def activate(self, tenant_id: int) -> None:
        """Make ``tenant_id`` the active tenant. Must be paired with ``restore``."""
        pass

    @abstractmethod
    def restore(self) -> None:
        """Restore the tenant that was active before the matching ``activate``."""
        pass

    @contextmanager
    def switched_to(self, tenant_id: int) -> Iterator[Tenant]:
        """Activate ``tenant_id`` for the duration of the ``with`` block."""
        self.activate(tenant_id)
        try:
            yield self.current_tenant()
        finally:
            self.restore()


class StaticTenantDirectory(TenantDirectory):
    """In-memory tenant directory.

    The first tenant is active by default. Activations nest: each
    ``activate`` pushes onto a stack that ``restore`` pops.
    """

    def __init__(self, tenants: Sequence[Tenant], multi_tenant: Optional[bool] = None):
        if not tenants:
            raise ValueError("StaticTenantDirectory requires at least one tenant")
        self._tenants = list(tenants)
        self._by_id = {tenant.id: tenant for tenant in self._tenants}
        self._stack: List[Tenant] = [self._tenants[0]]
        self._multi_tenant = len(self._tenants) > 1 if multi_tenant is None else multi_tenant

    @classmethod
    def single(cls, tenant_id: int = 1, base_url: str = "") -> "StaticTenantDirectory":
        """Build a single-tenant directory."""
        return cls([Tenant(id=tenant_id, base_url=base_url)], multi_tenant=False)

    @property
    def is_multi_tenant(self) -> bool:
        return self._multi_tenant

    def list_tenants(self) -> List[Tenant]:
        return list(self._tenants)

    def current_tenant(self) -> Tenant:
        return self._stack[-1]

    def activate(self, tenant_id: int) -> None:
        tenant = self._by_id.get(tenant_id)
        if tenant is None:
            raise UnknownTenantError(f"Unknown tenant: {tenant_id}")
        self._stack.append(tenant)
        logger.debug("Tenant activated", tenant_id=tenant_id, depth=len(self._stack) - 1)

    def restore(self) -> None:
        if len(self._stack) == 1:
            logger.warning("Tenant restore without matching activate")
            return
        previous = self._stack.pop()
        logger.debug("Tenant restored", tenant_id=self._stack[-1].id, previous_tenant_id=previous.id)
