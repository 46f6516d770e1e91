"""
Partitioned execution for CloudRecon analyzers.

Every analyzer splits its snapshot into partitions (one per cloud
provider), runs one unit of work per partition and collects the results in
a shared, lock-protected accumulator. A failing partition is logged and
contributes nothing; it never aborts the run.
"""

from __future__ import annotations

import logging
import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Generic, Iterable, TypeVar

from cloudrecon.analysis.errors import PartitionAnalysisError
from cloudrecon.models import Resource

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ConcurrencyStrategy(Enum):
    """How partitions are scheduled."""

    SEQUENTIAL = "sequential"
    POOL = "pool"


class PartitionStatus(Enum):
    """Outcome of one partition."""

    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class PartitionOutcome:
    """
    Result of running one partition.

    Attributes:
        key: Partition key (provider name or provider pair)
        status: Completed, failed, or skipped after cancellation
        item_count: Number of results the partition produced
        error: Error message if the partition failed
        duration_seconds: Wall time spent on the partition
    """

    key: str
    status: PartitionStatus
    item_count: int = 0
    error: str = ""
    duration_seconds: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "status": self.status.value,
            "item_count": self.item_count,
            "error": self.error,
            "duration_seconds": self.duration_seconds,
        }


class ResultAccumulator(Generic[T]):
    """
    Thread-safe result list shared by partition workers.

    The lock is held only while appending.
    """

    def __init__(self) -> None:
        self._items: list[T] = []
        self._lock = threading.Lock()

    def extend(self, items: Iterable[T]) -> None:
        batch = list(items)
        if not batch:
            return
        with self._lock:
            self._items.extend(batch)

    def items(self) -> list[T]:
        """Return a copy of the accumulated items."""
        with self._lock:
            return list(self._items)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


def default_max_workers() -> int:
    """Number of workers matching the available parallelism."""
    return os.cpu_count() or 1


def partition_by_provider(resources: Iterable[Resource]) -> dict[str, list[Resource]]:
    """
    Split resources into per-provider partitions.

    Args:
        resources: Resources to partition

    Returns:
        Ordered mapping of provider to resources, in order of first appearance
    """
    partitions: dict[str, list[Resource]] = {}
    for resource in resources:
        partitions.setdefault(resource.provider, []).append(resource)
    return partitions


class PartitionRunner:
    """
    Runs one unit of work per partition.

    With the POOL strategy partitions run on a ThreadPoolExecutor bounded
    at max_workers; with SEQUENTIAL they run in order on the caller's
    thread. Either way run() returns only after every partition finished.
    """

    def __init__(
        self,
        strategy: ConcurrencyStrategy = ConcurrencyStrategy.POOL,
        max_workers: int | None = None,
        batch_size: int = 100,
        cancel_event: threading.Event | None = None,
    ) -> None:
        """
        Initialize the runner.

        Args:
            strategy: Sequential or bounded pool scheduling
            max_workers: Upper bound on concurrent partitions
            batch_size: Results appended to the accumulator per lock hold
            cancel_event: Checked before each partition starts
        """
        self.strategy = strategy
        self.max_workers = max_workers if max_workers and max_workers > 0 else default_max_workers()
        self.batch_size = batch_size if batch_size > 0 else 100
        self.cancel_event = cancel_event

    def is_cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    def run(
        self,
        partitions: dict[str, Any],
        work: Callable[[str, Any], list[T]],
        accumulator: ResultAccumulator[T],
        label: str,
    ) -> list[PartitionOutcome]:
        """
        Run work over every partition.

        Args:
            partitions: Mapping of partition key to its payload
            work: Function producing results for one partition
            accumulator: Shared result list
            label: Analyzer name used in logs and errors

        Returns:
            One outcome per partition, in partition order
        """
        if not partitions:
            return []

        if self.strategy == ConcurrencyStrategy.SEQUENTIAL:
            return [
                self._run_partition(key, payload, work, accumulator, label)
                for key, payload in partitions.items()
            ]

        outcomes: dict[str, PartitionOutcome] = {}
        workers = min(self.max_workers, len(partitions))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = {
                executor.submit(
                    self._run_partition, key, payload, work, accumulator, label
                ): key
                for key, payload in partitions.items()
            }
            for future in as_completed(futures):
                outcome = future.result()
                outcomes[outcome.key] = outcome

        return [outcomes[key] for key in partitions]

    def _run_partition(
        self,
        key: str,
        payload: Any,
        work: Callable[[str, Any], list[T]],
        accumulator: ResultAccumulator[T],
        label: str,
    ) -> PartitionOutcome:
        if self.is_cancelled():
            logger.info(f"{label} analysis cancelled before partition {key}")
            return PartitionOutcome(key=key, status=PartitionStatus.SKIPPED)

        start = time.monotonic()
        try:
            results = work(key, payload)
        except Exception as e:
            error = PartitionAnalysisError(label, key, str(e))
            logger.error(str(error), exc_info=True)
            return PartitionOutcome(
                key=key,
                status=PartitionStatus.FAILED,
                error=str(error),
                duration_seconds=time.monotonic() - start,
            )

        for i in range(0, len(results), self.batch_size):
            accumulator.extend(results[i:i + self.batch_size])

        return PartitionOutcome(
            key=key,
            status=PartitionStatus.COMPLETED,
            item_count=len(results),
            duration_seconds=time.monotonic() - start,
        )
