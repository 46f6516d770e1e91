"""
Base class for CloudRecon analyzers.

Every analyzer reads a resource snapshot, partitions it by provider and
runs its per-partition work through a PartitionRunner configured from
PerformanceConfig.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from typing import Any

from cloudrecon.analysis.cache import SnapshotCache, fetch_snapshot
from cloudrecon.analysis.concurrency import ConcurrencyStrategy, PartitionRunner
from cloudrecon.config import PerformanceConfig
from cloudrecon.models import ResourceCollection
from cloudrecon.storage.base import ResourceStore

logger = logging.getLogger(__name__)


class BaseAnalyzer(ABC):
    """
    Abstract base class for snapshot analyzers.

    Analyzers hold no state between runs: every call to analyze() starts
    from a fresh snapshot and fresh accumulators.
    """

    name = "base"

    def __init__(
        self,
        store: ResourceStore,
        config: PerformanceConfig | None = None,
    ) -> None:
        """
        Initialize the analyzer.

        Args:
            store: Resource store read when no snapshot is supplied
            config: Worker pool configuration
        """
        self._store = store
        self._config = config if config is not None else PerformanceConfig()

    @property
    def config(self) -> PerformanceConfig:
        """Get the performance configuration."""
        return self._config

    @property
    def strategy(self) -> ConcurrencyStrategy:
        """Scheduling strategy selected by the configuration."""
        if self._config.enable_parallel:
            return ConcurrencyStrategy.POOL
        return ConcurrencyStrategy.SEQUENTIAL

    def _runner(self, cancel_event: threading.Event | None) -> PartitionRunner:
        return PartitionRunner(
            strategy=self.strategy,
            max_workers=self._config.max_workers,
            batch_size=self._config.batch_size,
            cancel_event=cancel_event,
        )

    def _resolve_snapshot(
        self,
        snapshot: ResourceCollection | None,
        cache: SnapshotCache | None = None,
    ) -> ResourceCollection:
        if snapshot is not None:
            return snapshot
        if cache is not None:
            return cache.get_snapshot()
        return fetch_snapshot(self._store)

    @abstractmethod
    def analyze(
        self,
        snapshot: ResourceCollection | None = None,
        cancel_event: threading.Event | None = None,
        cache: SnapshotCache | None = None,
    ) -> Any:
        """
        Analyze a resource snapshot.

        Args:
            snapshot: Snapshot to analyze; read through cache or the store when None
            cancel_event: Checked between partitions
            cache: Snapshot cache shared with the other analyzers of a call

        Returns:
            Analyzer-specific report

        Raises:
            SnapshotFetchError: If no snapshot was given and the read fails
        """
        pass
