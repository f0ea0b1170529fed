"""Shared fixtures for searchsync tests."""

import pytest

from searchsync.common.tenancy import StaticTenantDirectory, Tenant
from searchsync.indexables.registry import IndexableRegistry
from searchsync.sync.checkpoint import MemoryCheckpointStore
from searchsync.sync.orchestrator import SyncArgs, SyncOrchestrator

from .fakes import FakeIndexable, RecordingSink, make_objects


@pytest.fixture
def store():
    """Empty in-memory checkpoint store."""
    return MemoryCheckpointStore()


@pytest.fixture
def single_tenant():
    """Single-tenant directory."""
    return StaticTenantDirectory.single(tenant_id=1, base_url="https://example.com/")


@pytest.fixture
def multi_tenant():
    """Two indexable tenants."""
    return StaticTenantDirectory(
        [
            Tenant(id=1, base_url="https://one.example.com"),
            Tenant(id=2, base_url="https://two.example.com"),
        ],
        multi_tenant=True,
    )


@pytest.fixture
def sink():
    """Recording progress sink."""
    return RecordingSink()


@pytest.fixture
def args(sink):
    """Default sync arguments writing to the recording sink."""
    return SyncArgs(output=sink)


@pytest.fixture
def posts(single_tenant):
    """Per-tenant indexable with three objects."""
    return FakeIndexable("post", make_objects(3), tenants=single_tenant)


@pytest.fixture
def orchestrator(posts, store, single_tenant):
    """Single-tenant orchestrator over ``posts`` with two objects per page."""
    return SyncOrchestrator(
        registry=IndexableRegistry([posts]),
        store=store,
        tenants=single_tenant,
        per_page=2,
    )
