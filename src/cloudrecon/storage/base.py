"""
Abstract base class for resource stores.

This module defines the ResourceStore interface the analysis engine reads
its snapshot from. Stores are populated by the discovery connectors; the
engine only ever calls get_resources().
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, Iterable

from cloudrecon.models import Resource, ResourceCollection

ResourcePredicate = Callable[[Resource], bool]


class StorageError(Exception):
    """A resource store could not be read or written."""
    pass


class ResourceStore(ABC):
    """
    Abstract base class for resource store implementations.

    All stores must implement these methods to provide consistent
    storage and retrieval of discovered resources.
    """

    @abstractmethod
    def get_resources(
        self, predicate: ResourcePredicate | None = None
    ) -> ResourceCollection:
        """
        Fetch all resources matching a predicate.

        Args:
            predicate: Optional filter; None returns every resource

        Returns:
            Collection of matching resources in storage order

        Raises:
            StorageError: If the store cannot be read
        """
        pass

    @abstractmethod
    def store_resources(self, resources: Iterable[Resource]) -> int:
        """
        Insert or replace resources.

        Args:
            resources: Resources to store, keyed by id

        Returns:
            Number of resources written

        Raises:
            StorageError: If the store cannot be written
        """
        pass

    def count(self) -> int:
        """Return the number of stored resources."""
        return len(self.get_resources())


def apply_predicate(
    resources: Iterable[Resource], predicate: ResourcePredicate | None
) -> ResourceCollection:
    """Filter resources with an optional predicate."""
    if predicate is None:
        return ResourceCollection(list(resources))
    return ResourceCollection([r for r in resources if predicate(r)])
