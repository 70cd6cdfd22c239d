"""Shared test fixtures for skcluster."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from skcluster.models import LoadBalancer, Page, PoolReference
from skcluster.providers.base import VPCClient
from skcluster.providers.secrets import InMemorySecretStore


@pytest.fixture
def tmp_cluster_home(tmp_path: Path) -> Path:
    """Provide a temporary cluster home directory for testing."""
    home = tmp_path / ".skcluster"
    home.mkdir()
    return home


@pytest.fixture
def mock_vpc() -> MagicMock:
    """A VPC client mock with empty listings by default."""
    client = MagicMock(spec=VPCClient)
    client.list_instances.return_value = Page(items=[])
    client.list_images.return_value = Page(items=[])
    client.list_keys.return_value = Page(items=[])
    client.list_load_balancer_pool_members.return_value = []
    return client


@pytest.fixture
def secrets() -> InMemorySecretStore:
    """Secret store holding a bootstrap secret for 'foo-machine'."""
    store = InMemorySecretStore()
    store.put("default", "foo-machine-bootstrap", {"value": b"#cloud-config\n"})
    return store


@pytest.fixture
def active_lb() -> LoadBalancer:
    """An active load balancer with one pool."""
    return LoadBalancer(
        id="foo-load-balancer-id",
        provisioning_status="active",
        pools=[PoolReference(id="foo-load-balancer-pool-id")],
    )
