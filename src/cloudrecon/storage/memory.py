"""
In-memory resource store.

Used for ad hoc analysis of resource files and in tests.
"""

from __future__ import annotations

import json
import threading
from typing import Iterable

from cloudrecon.models import Resource, ResourceCollection
from cloudrecon.storage.base import ResourcePredicate, ResourceStore, apply_predicate


class InMemoryResourceStore(ResourceStore):
    """Resource store backed by an insertion-ordered dict."""

    def __init__(self, resources: Iterable[Resource] | None = None) -> None:
        self._resources: dict[str, Resource] = {}
        self._lock = threading.Lock()
        if resources is not None:
            self.store_resources(resources)

    def store_resources(self, resources: Iterable[Resource]) -> int:
        written = 0
        with self._lock:
            for resource in resources:
                self._resources[resource.id] = resource
                written += 1
        return written

    def get_resources(
        self, predicate: ResourcePredicate | None = None
    ) -> ResourceCollection:
        with self._lock:
            resources = list(self._resources.values())
        return apply_predicate(resources, predicate)

    @classmethod
    def from_file(cls, path: str) -> InMemoryResourceStore:
        """
        Load resources from a JSON array or JSON Lines file.

        Args:
            path: Path to the resources file

        Returns:
            Store holding the file's resources
        """
        with open(path, "r", encoding="utf-8") as f:
            content = f.read()

        stripped = content.lstrip()
        if stripped.startswith("["):
            items = json.loads(stripped)
        else:
            items = [json.loads(line) for line in content.splitlines() if line.strip()]

        return cls(ResourceCollection.from_list(items))
