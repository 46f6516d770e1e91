"""
Resource stores for CloudRecon.

This package provides the stores the analysis engine reads its snapshot
from:

- LocalResourceStore: SQLite-based store for development and single-user use
- InMemoryResourceStore: Dict-backed store for resource files and tests
- S3ResourceStore: JSON Lines snapshot object in Amazon S3

Use the get_store() factory function to get the appropriate backend.
"""

from cloudrecon.storage.base import ResourceStore, StorageError
from cloudrecon.storage.local import LocalResourceStore
from cloudrecon.storage.memory import InMemoryResourceStore
from cloudrecon.storage.s3 import S3ResourceStore


def get_store(backend: str = "local", **kwargs) -> ResourceStore:
    """
    Factory function to get the appropriate resource store.

    Args:
        backend: Store type. Supported values:
            - "local": SQLite-based store
            - "memory": In-memory store
            - "s3": JSON Lines object in S3
        **kwargs: Backend-specific configuration options

    Returns:
        Configured ResourceStore instance

    Raises:
        ValueError: If backend type is unknown

    Examples:
        store = get_store("local", db_path="/tmp/cloudrecon.db")
        store = get_store("s3", bucket="inventory", key="cloudrecon/resources.jsonl")
    """
    backend = backend.lower()

    if backend == "local":
        return LocalResourceStore(**kwargs)
    elif backend == "memory":
        return InMemoryResourceStore(**kwargs)
    elif backend == "s3":
        return S3ResourceStore(**kwargs)

    raise ValueError(
        f"Unknown storage backend: {backend}. "
        "Supported backends: 'local', 'memory', 's3'"
    )


__all__ = [
    "ResourceStore",
    "StorageError",
    "LocalResourceStore",
    "InMemoryResourceStore",
    "S3ResourceStore",
    "get_store",
]
