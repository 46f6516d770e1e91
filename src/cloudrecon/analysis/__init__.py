"""
Analysis engine for CloudRecon.

This package analyzes a snapshot of discovered cloud resources:

- DependencyAnalyzer: Relationship graph between resources
- SecurityAnalyzer: Rule-based security findings and scores
- CostAnalyzer: Monthly cost estimates and optimizations
- AnalysisOrchestrator: Runs all three over one snapshot
"""

from cloudrecon.analysis.base import BaseAnalyzer
from cloudrecon.analysis.cache import CachePolicy, ReadWriteLock, SnapshotCache
from cloudrecon.analysis.concurrency import (
    ConcurrencyStrategy,
    PartitionOutcome,
    PartitionRunner,
    PartitionStatus,
    ResultAccumulator,
)
from cloudrecon.analysis.cost import (
    CostAnalyzer,
    CostEstimate,
    CostOptimization,
    CostReport,
    CostSummary,
    OptimizationCategory,
    Priority,
)
from cloudrecon.analysis.dependency import (
    Dependency,
    DependencyAnalyzer,
    DependencyGraph,
    Direction,
    GraphStats,
    compute_graph_stats,
)
from cloudrecon.analysis.errors import (
    AnalysisError,
    PartitionAnalysisError,
    SnapshotFetchError,
    UnknownProviderCostError,
)
from cloudrecon.analysis.orchestrator import (
    AnalysisInsights,
    AnalysisOrchestrator,
    AnalysisReport,
    AnalysisSummary,
)
from cloudrecon.analysis.security import (
    SecurityAnalyzer,
    SecurityFinding,
    SecurityReport,
    SecuritySummary,
    compliance_score,
    risk_score,
)

__all__ = [
    "BaseAnalyzer",
    "CachePolicy",
    "ReadWriteLock",
    "SnapshotCache",
    "ConcurrencyStrategy",
    "PartitionOutcome",
    "PartitionRunner",
    "PartitionStatus",
    "ResultAccumulator",
    "CostAnalyzer",
    "CostEstimate",
    "CostOptimization",
    "CostReport",
    "CostSummary",
    "OptimizationCategory",
    "Priority",
    "Dependency",
    "DependencyAnalyzer",
    "DependencyGraph",
    "Direction",
    "GraphStats",
    "compute_graph_stats",
    "AnalysisError",
    "PartitionAnalysisError",
    "SnapshotFetchError",
    "UnknownProviderCostError",
    "AnalysisInsights",
    "AnalysisOrchestrator",
    "AnalysisReport",
    "AnalysisSummary",
    "SecurityAnalyzer",
    "SecurityFinding",
    "SecurityReport",
    "SecuritySummary",
    "compliance_score",
    "risk_score",
]
