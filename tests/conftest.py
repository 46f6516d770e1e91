"""
Pytest configuration and fixtures for CloudRecon tests.

This module provides common fixtures used across unit and integration tests.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Generator

import pytest

from cloudrecon.config import PerformanceConfig
from cloudrecon.models import Resource, ResourceCollection
from cloudrecon.storage import InMemoryResourceStore, LocalResourceStore


def make_resource(
    resource_id: str,
    provider: str = "aws",
    service: str = "ec2",
    resource_type: str = "instance",
    configuration: dict[str, Any] | str | None = None,
    **kwargs: Any,
) -> Resource:
    """Build a Resource with sensible defaults for tests."""
    if isinstance(configuration, dict):
        configuration = json.dumps(configuration)
    return Resource(
        id=resource_id,
        provider=provider,
        service=service,
        type=resource_type,
        address=kwargs.pop("address", f"arn:{provider}:{service}:{resource_id}"),
        region=kwargs.pop("region", "us-east-1"),
        name=kwargs.pop("name", resource_id),
        configuration=configuration or "",
        **kwargs,
    )


@pytest.fixture
def resource_factory() -> Callable[..., Resource]:
    """Return the make_resource helper."""
    return make_resource


@pytest.fixture(autouse=True)
def restore_cloudrecon_logger() -> Generator[None, None, None]:
    """Undo handlers and levels installed by configure_logging during a test."""
    logger = logging.getLogger("cloudrecon")
    handlers = list(logger.handlers)
    level = logger.level
    yield
    logger.handlers[:] = handlers
    logger.setLevel(level)


# Sample data fixtures


@pytest.fixture
def sample_ec2_instance() -> Resource:
    """Return an EC2 instance referencing a VPC and a security group."""
    return make_resource(
        "i-0abc123",
        name="web-server",
        tags={"Environment": "prod", "Project": "shop"},
        configuration={
            "InstanceType": "t3.medium",
            "VpcId": "vpc-111",
            "SecurityGroupIds": ["sg-222"],
        },
        encrypted=True,
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


@pytest.fixture
def sample_vpc() -> Resource:
    """Return a VPC."""
    return make_resource("vpc-111", resource_type="vpc", name="main-vpc", encrypted=True)


@pytest.fixture
def sample_security_group() -> Resource:
    """Return a security group."""
    return make_resource(
        "sg-222", resource_type="security-group", name="web-sg", encrypted=True
    )


@pytest.fixture
def sample_public_bucket() -> Resource:
    """Return a public, unencrypted S3 bucket."""
    return make_resource(
        "assets-bucket",
        service="s3",
        resource_type="bucket",
        public_access=True,
        encrypted=False,
    )


@pytest.fixture
def sample_azure_vm() -> Resource:
    """Return an Azure VM with a network profile."""
    return make_resource(
        "/subscriptions/sub-1/resourceGroups/rg/providers/Microsoft.Compute/virtualMachines/vm1",
        provider="azure",
        service="compute",
        resource_type="virtual-machine",
        name="vm1",
        region="eastus",
        configuration={
            "hardwareProfile": {"vmSize": "Standard_B2s"},
            "networkProfile": {"networkInterfaces": [{"id": "nic-1"}]},
        },
        encrypted=True,
    )


@pytest.fixture
def sample_snapshot(
    sample_ec2_instance: Resource,
    sample_vpc: Resource,
    sample_security_group: Resource,
    sample_public_bucket: Resource,
    sample_azure_vm: Resource,
) -> ResourceCollection:
    """Return a mixed AWS and Azure snapshot."""
    return ResourceCollection(
        [
            sample_ec2_instance,
            sample_vpc,
            sample_security_group,
            sample_public_bucket,
            sample_azure_vm,
        ]
    )


# Configuration fixtures


@pytest.fixture
def sequential_config() -> PerformanceConfig:
    """Return a configuration that runs partitions sequentially."""
    return PerformanceConfig(max_workers=1, batch_size=2, enable_parallel=False)


@pytest.fixture
def parallel_config() -> PerformanceConfig:
    """Return a configuration that runs partitions on a pool."""
    return PerformanceConfig(max_workers=4, batch_size=2, enable_parallel=True)


# Storage fixtures


@pytest.fixture
def memory_store(sample_snapshot: ResourceCollection) -> InMemoryResourceStore:
    """Return an in-memory store holding the sample snapshot."""
    return InMemoryResourceStore(sample_snapshot)


@pytest.fixture
def local_store(tmp_path) -> Generator[LocalResourceStore, None, None]:
    """Return an empty SQLite store in a temporary directory."""
    yield LocalResourceStore(db_path=str(tmp_path / "cloudrecon.db"))


@pytest.fixture
def populated_local_store(
    local_store: LocalResourceStore, sample_snapshot: ResourceCollection
) -> LocalResourceStore:
    """Return a SQLite store holding the sample snapshot."""
    local_store.store_resources(sample_snapshot)
    return local_store
