"""
Dependency analysis for CloudRecon.

Builds a directed relationship graph over a resource snapshot:

- Per-provider extraction reads each resource's configuration for
  references to security groups, VPCs, subnet and parameter groups, IAM
  roles and network interfaces.
- Cross-provider extraction relates resources that share a group key and
  detects configurations that literally reference a resource of another
  provider.
- Graph statistics summarize the result (islands, max depth, cycles).
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable

from cloudrecon.analysis.base import BaseAnalyzer
from cloudrecon.analysis.cache import SnapshotCache
from cloudrecon.analysis.concurrency import (
    PartitionOutcome,
    ResultAccumulator,
    partition_by_provider,
)
from cloudrecon.analysis.schema import ConfigView
from cloudrecon.models import Resource, ResourceCollection

logger = logging.getLogger(__name__)

RELATED_CONFIDENCE = 0.6
REFERENCE_CONFIDENCE = 0.7

# Length of the substrings the cross-provider reference index is keyed on
REFERENCE_GRAM_SIZE = 4


class Direction(Enum):
    """Direction of a dependency edge."""

    OUTBOUND = "outbound"
    INBOUND = "inbound"
    BIDIRECTIONAL = "bidirectional"


@dataclass(frozen=True)
class Dependency:
    """
    A relationship asserted between two resources.

    Attributes:
        source_id: Id of the depending resource
        target_id: Id of the resource depended on
        relationship: Relationship label (e.g., "runs_in_vpc")
        direction: Edge direction
        confidence: Certainty of the inferred edge, in [0, 1]
        source_address: Address of the source resource
        target_address: Address of the target resource
        metadata: Extra context about how the edge was inferred
    """

    source_id: str
    target_id: str
    relationship: str
    direction: Direction
    confidence: float
    source_address: str = ""
    target_address: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be within [0, 1], got {self.confidence}")

    def key(self) -> tuple[str, str, str, str, float]:
        """Identity of the edge, used for set comparison."""
        return (
            self.source_id,
            self.target_id,
            self.relationship,
            self.direction.value,
            self.confidence,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_id": self.source_id,
            "target_id": self.target_id,
            "source_address": self.source_address,
            "target_address": self.target_address,
            "relationship": self.relationship,
            "direction": self.direction.value,
            "confidence": self.confidence,
            "metadata": self.metadata,
        }


@dataclass
class GraphStats:
    """
    Derived statistics of a dependency graph.

    max_depth and cycles are approximations, see compute_graph_stats().
    """

    total_resources: int = 0
    total_dependencies: int = 0
    max_depth: int = 0
    cycles: int = 0
    islands: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_resources": self.total_resources,
            "total_dependencies": self.total_dependencies,
            "max_depth": self.max_depth,
            "cycles": self.cycles,
            "islands": self.islands,
        }


@dataclass
class DependencyGraph:
    """
    Result of a dependency analysis run.

    Attributes:
        resources: Snapshot the graph was built from
        dependencies: Every inferred edge
        stats: Derived graph statistics
        partitions: Outcome of each analyzed partition
    """

    resources: ResourceCollection = field(default_factory=ResourceCollection)
    dependencies: list[Dependency] = field(default_factory=list)
    stats: GraphStats = field(default_factory=GraphStats)
    partitions: list[PartitionOutcome] = field(default_factory=list)

    def edge_set(self) -> set[tuple[str, str, str, str, float]]:
        """Edges as a set of identity tuples."""
        return {d.key() for d in self.dependencies}

    def dependencies_of(self, resource_id: str) -> list[Dependency]:
        """Edges whose source is the given resource."""
        return [d for d in self.dependencies if d.source_id == resource_id]

    def dependents_of(self, resource_id: str) -> list[Dependency]:
        """Edges whose target is the given resource."""
        return [d for d in self.dependencies if d.target_id == resource_id]

    def count_by_relationship(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for dependency in self.dependencies:
            counts[dependency.relationship] = counts.get(dependency.relationship, 0) + 1
        return counts

    def to_dict(self) -> dict[str, Any]:
        return {
            "resource_ids": self.resources.ids(),
            "dependencies": [d.to_dict() for d in self.dependencies],
            "stats": self.stats.to_dict(),
            "partitions": [p.to_dict() for p in self.partitions],
        }


@dataclass(frozen=True)
class ReferenceRule:
    """
    How one kind of resource refers to another through its configuration.

    Attributes:
        provider: Provider of the referring resource
        service: Service of the referring resource
        config_key: Top-level key whose presence triggers the rule; None
            means the rule always applies
        reference_path: Key path holding the referenced identifiers
        category: Token matched against target type or name as fallback
        target_service: Service of referenced resources
        relationship: Edge label
        confidence: Edge confidence
        kind: Referenced kind recorded in edge metadata
    """

    provider: str
    service: str
    config_key: str | None
    reference_path: tuple[str, ...]
    category: str
    target_service: str
    relationship: str
    confidence: float
    kind: str


REFERENCE_RULES: tuple[ReferenceRule, ...] = (
    ReferenceRule("aws", "ec2", "SecurityGroupIds", ("SecurityGroupIds",),
                  "security-group", "ec2", "uses_security_group", 0.9, "security_group"),
    ReferenceRule("aws", "ec2", "VpcId", ("VpcId",),
                  "vpc", "ec2", "runs_in_vpc", 0.95, "vpc"),
    ReferenceRule("aws", "ec2", "IamInstanceProfile", ("IamInstanceProfile",),
                  "instance-profile", "iam", "assumes_role", 0.8, "instance_profile"),
    ReferenceRule("aws", "rds", "DBSubnetGroupName", ("DBSubnetGroupName",),
                  "subnet-group", "rds", "uses_subnet_group", 0.9, "subnet_group"),
    ReferenceRule("aws", "rds", "DBParameterGroupName", ("DBParameterGroupName",),
                  "parameter-group", "rds", "uses_parameter_group", 0.9, "parameter_group"),
    ReferenceRule("aws", "lambda", "VpcConfig", ("VpcConfig", "VpcId"),
                  "vpc", "ec2", "runs_in_vpc", 0.8, "vpc"),
    ReferenceRule("aws", "lambda", "Role", ("Role",),
                  "role", "iam", "assumes_role", 0.95, "role"),
    ReferenceRule("azure", "compute", None, ("networkProfile",),
                  "network-interface", "network", "uses_network_interface", 0.9,
                  "network_interface"),
    ReferenceRule("gcp", "compute", None, ("networkInterfaces",),
                  "network", "compute", "runs_in_network", 0.9, "network"),
)


class SnapshotIndex:
    """Lookup tables over a snapshot, built once per analysis run."""

    def __init__(self, resources: Iterable[Resource]) -> None:
        self.resources = list(resources)
        self.by_service: dict[str, list[Resource]] = {}
        self._by_identifier: dict[tuple[str, str], list[Resource]] = {}

        for resource in self.resources:
            self.by_service.setdefault(resource.service, []).append(resource)
            for identifier in {resource.id, resource.address, resource.name}:
                if identifier:
                    bucket = self._by_identifier.setdefault(
                        (resource.service, identifier), []
                    )
                    bucket.append(resource)

    def resolve(self, service: str, identifiers: Iterable[str]) -> list[Resource]:
        """
        Find resources of a service named by any of the identifiers.

        Identifiers that are paths or URLs also match on their last segment.
        """
        found: dict[str, Resource] = {}
        for identifier in identifiers:
            candidates = [identifier]
            tail = identifier.rstrip("/").rsplit("/", 1)[-1]
            if tail != identifier:
                candidates.append(tail)
            for candidate in candidates:
                for resource in self._by_identifier.get((service, candidate), []):
                    found.setdefault(resource.id, resource)
        return list(found.values())

    def match_category(self, service: str, category: str) -> list[Resource]:
        """Resources of a service whose type or name contains the category token."""
        return [
            r
            for r in self.by_service.get(service, [])
            if category in r.type.lower() or category in r.name.lower()
        ]


def reference_grams(raw: str, size: int = REFERENCE_GRAM_SIZE) -> set[str]:
    """
    Return every substring of the given length found in a payload.

    Any identifier of at least that length occurring in the payload has
    its trailing substring of that length in the result.
    """
    return {raw[i:i + size] for i in range(len(raw) - size + 1)}


def compute_graph_stats(
    resources: ResourceCollection, dependencies: list[Dependency]
) -> GraphStats:
    """
    Compute statistics over an assembled edge list.

    The adjacency list follows source -> target for every edge, whatever
    its direction. max_depth and cycles are approximate:

    - max_depth runs a level-counting BFS from every resource not yet
      visited, in snapshot order, with one visited set shared by all roots.
      A resource reached from an earlier root is never a root itself, so
      the value can underestimate the true longest chain.
    - cycles runs a DFS with a recursion stack from every resource not yet
      visited and counts at most one cycle per root. It is a lower bound on
      the number of cyclic structures, not a count of cycles.

    Args:
        resources: Snapshot the edges were built from
        dependencies: Edge list

    Returns:
        GraphStats for the graph
    """
    stats = GraphStats(
        total_resources=len(resources),
        total_dependencies=len(dependencies),
    )

    if not dependencies:
        stats.islands = len(resources)
        return stats

    graph: dict[str, list[str]] = {}
    incoming: dict[str, int] = {}
    for dependency in dependencies:
        graph.setdefault(dependency.source_id, []).append(dependency.target_id)
        incoming[dependency.target_id] = incoming.get(dependency.target_id, 0) + 1

    stats.islands = sum(
        1 for r in resources if not graph.get(r.id) and not incoming.get(r.id)
    )
    stats.max_depth = _max_depth(graph, resources.ids())
    stats.cycles = _count_cycles(graph, resources.ids())
    return stats


def _max_depth(graph: dict[str, list[str]], roots: list[str]) -> int:
    max_depth = 0
    visited: set[str] = set()

    for root in roots:
        if root in visited:
            continue
        queue: deque[str] = deque([root])
        depth = 0
        while queue:
            depth += 1
            for _ in range(len(queue)):
                node = queue.popleft()
                if node in visited:
                    continue
                visited.add(node)
                for neighbor in graph.get(node, []):
                    if neighbor not in visited:
                        queue.append(neighbor)
        max_depth = max(max_depth, depth)

    return max_depth


def _count_cycles(graph: dict[str, list[str]], roots: list[str]) -> int:
    cycles = 0
    visited: set[str] = set()

    for root in roots:
        if root in visited:
            continue
        if _has_back_edge(graph, root, visited):
            cycles += 1

    return cycles


def _has_back_edge(graph: dict[str, list[str]], root: str, visited: set[str]) -> bool:
    # Iterative DFS; on_stack mirrors the recursion stack
    on_stack: set[str] = {root}
    visited.add(root)
    stack: list[tuple[str, Iterable[str]]] = [(root, iter(graph.get(root, [])))]

    while stack:
        node, neighbors = stack[-1]
        advanced = False
        for neighbor in neighbors:
            if neighbor in on_stack:
                return True
            if neighbor not in visited:
                visited.add(neighbor)
                on_stack.add(neighbor)
                stack.append((neighbor, iter(graph.get(neighbor, []))))
                advanced = True
                break
        if not advanced:
            stack.pop()
            on_stack.discard(node)

    return False


class DependencyAnalyzer(BaseAnalyzer):
    """
    Infers structural dependencies between resources.

    Per-provider partitions and cross-provider provider pairs are analyzed
    through the configured PartitionRunner. A failing partition contributes
    no edges and does not abort the run.
    """

    name = "dependency"

    def __init__(
        self,
        store,
        config=None,
        rules: Iterable[ReferenceRule] = REFERENCE_RULES,
    ) -> None:
        super().__init__(store, config)
        self._rules: dict[tuple[str, str], list[ReferenceRule]] = {}
        for rule in rules:
            self._rules.setdefault((rule.provider, rule.service), []).append(rule)

    def analyze(
        self,
        snapshot: ResourceCollection | None = None,
        cancel_event: threading.Event | None = None,
        cache: SnapshotCache | None = None,
    ) -> DependencyGraph:
        """
        Build the dependency graph of a snapshot.

        Args:
            snapshot: Snapshot to analyze; read through cache or the store when None
            cancel_event: Checked between partitions
            cache: Snapshot cache shared with the other analyzers of a call

        Returns:
            DependencyGraph with edges and statistics
        """
        start = time.monotonic()
        snapshot = self._resolve_snapshot(snapshot, cache)
        logger.info(f"Starting dependency analysis of {len(snapshot)} resources")

        if len(snapshot) == 0:
            return DependencyGraph(resources=snapshot)

        index = SnapshotIndex(snapshot)
        runner = self._runner(cancel_event)
        accumulator: ResultAccumulator[Dependency] = ResultAccumulator()
        partitions = partition_by_provider(snapshot)

        outcomes = runner.run(
            partitions,
            lambda provider, resources: self.analyze_partition(resources, index),
            accumulator,
            self.name,
        )

        outcomes.extend(
            runner.run(
                {"cross_provider:groups": snapshot},
                lambda _key, resources: self.related_by_group(resources),
                accumulator,
                self.name,
            )
        )

        pairs = {
            f"{source}->{target}": (partitions[source], partitions[target])
            for source in partitions
            for target in partitions
            if source != target
        }
        if pairs:
            target_index = _ReferenceTargetIndex(snapshot)
            outcomes.extend(
                runner.run(
                    pairs,
                    lambda _key, pair: self.cross_provider_references(
                        pair[0], pair[1], target_index
                    ),
                    accumulator,
                    self.name,
                )
            )

        dependencies = accumulator.items()
        stats = compute_graph_stats(snapshot, dependencies)

        logger.info(
            f"Dependency analysis completed: {stats.total_resources} resources, "
            f"{stats.total_dependencies} dependencies in "
            f"{time.monotonic() - start:.2f}s"
        )

        return DependencyGraph(
            resources=snapshot,
            dependencies=dependencies,
            stats=stats,
            partitions=outcomes,
        )

    def analyze_partition(
        self, resources: list[Resource], index: SnapshotIndex
    ) -> list[Dependency]:
        """
        Extract configuration-based edges for one provider's resources.

        Args:
            resources: Resources of one provider
            index: Index over the whole snapshot

        Returns:
            Edges whose source is in the partition
        """
        dependencies: list[Dependency] = []

        for resource in resources:
            rules = self._rules.get((resource.provider, resource.service))
            if not rules:
                continue

            view = ConfigView.of(resource)
            for rule in rules:
                if rule.config_key is not None and not view.has_key(rule.config_key):
                    continue

                targets, match = self._resolve_targets(resource, view, rule, index)
                for target in targets:
                    dependencies.append(
                        Dependency(
                            source_id=resource.id,
                            target_id=target.id,
                            source_address=resource.address,
                            target_address=target.address,
                            relationship=rule.relationship,
                            direction=Direction.OUTBOUND,
                            confidence=rule.confidence,
                            metadata={
                                "service": resource.service,
                                "type": rule.kind,
                                "match": match,
                            },
                        )
                    )

        return dependencies

    def _resolve_targets(
        self,
        resource: Resource,
        view: ConfigView,
        rule: ReferenceRule,
        index: SnapshotIndex,
    ) -> tuple[list[Resource], str]:
        identifiers = view.strings_at(*rule.reference_path)
        if identifiers:
            targets = [
                t for t in index.resolve(rule.target_service, identifiers)
                if t.id != resource.id
            ]
            if targets:
                return targets, "reference"

        targets = [
            t for t in index.match_category(rule.target_service, rule.category)
            if t.id != resource.id
        ]
        return targets, "pattern"

    def related_by_group(self, resources: ResourceCollection) -> list[Dependency]:
        """
        Relate resources that share a group key.

        Every pair within a group of more than one member gets one
        bidirectional edge.
        """
        dependencies: list[Dependency] = []

        for group in resources.group_by_key().values():
            if len(group) < 2:
                continue
            for i in range(len(group)):
                for j in range(i + 1, len(group)):
                    dependencies.append(
                        Dependency(
                            source_id=group[i].id,
                            target_id=group[j].id,
                            source_address=group[i].address,
                            target_address=group[j].address,
                            relationship="cross_cloud_related",
                            direction=Direction.BIDIRECTIONAL,
                            confidence=RELATED_CONFIDENCE,
                            metadata={"reason": "similar_naming_or_tags"},
                        )
                    )

        return dependencies

    def cross_provider_references(
        self,
        sources: list[Resource],
        targets: list[Resource],
        target_index: _ReferenceTargetIndex,
    ) -> list[Dependency]:
        """
        Find source configurations that reference a target by id or address.

        Args:
            sources: Resources of one provider
            targets: Resources of another provider
            target_index: Token index over the snapshot

        Returns:
            One outbound edge per referencing (source, target) pair
        """
        if not targets:
            return []
        target_provider = targets[0].provider
        dependencies: list[Dependency] = []

        for source in sources:
            if not source.configuration:
                continue
            for target in target_index.referenced_by(source, target_provider):
                dependencies.append(
                    Dependency(
                        source_id=source.id,
                        target_id=target.id,
                        source_address=source.address,
                        target_address=target.address,
                        relationship="cross_provider_reference",
                        direction=Direction.OUTBOUND,
                        confidence=REFERENCE_CONFIDENCE,
                        metadata={
                            "source_provider": source.provider,
                            "target_provider": target.provider,
                        },
                    )
                )

        return dependencies


class _ReferenceTargetIndex:
    """
    Maps the trailing substring of every id and address to the resources
    they name, per provider.

    The index only narrows the candidates; a target is reported when its id
    or address occurs literally in the source payload. Identifiers shorter
    than REFERENCE_GRAM_SIZE are always candidates.
    """

    def __init__(self, resources: Iterable[Resource]) -> None:
        self._by_gram: dict[tuple[str, str], list[tuple[str, Resource]]] = {}
        self._short: dict[str, list[tuple[str, Resource]]] = {}
        self._order: dict[str, int] = {}

        for resource in resources:
            self._order.setdefault(resource.id, len(self._order))
            for identifier in {resource.id, resource.address}:
                if not identifier:
                    continue
                if len(identifier) < REFERENCE_GRAM_SIZE:
                    self._short.setdefault(resource.provider, []).append(
                        (identifier, resource)
                    )
                else:
                    key = (resource.provider, identifier[-REFERENCE_GRAM_SIZE:])
                    self._by_gram.setdefault(key, []).append((identifier, resource))

    def candidates(self, raw: str, provider: str) -> list[tuple[str, Resource]]:
        """(identifier, resource) pairs of a provider that raw may reference."""
        found = list(self._short.get(provider, []))
        for gram in reference_grams(raw):
            found.extend(self._by_gram.get((provider, gram), []))
        return found

    def referenced_by(self, source: Resource, provider: str) -> list[Resource]:
        found: dict[str, Resource] = {}
        raw = source.configuration

        for identifier, target in self.candidates(raw, provider):
            if target.id != source.id and identifier in raw:
                found.setdefault(target.id, target)

        return sorted(found.values(), key=lambda t: self._order[t.id])
