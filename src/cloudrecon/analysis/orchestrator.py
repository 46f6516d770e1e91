"""
Analysis orchestration for CloudRecon.

AnalysisOrchestrator runs the dependency, security and cost analyzers
over one resource snapshot and composes their results.

A composite run is best effort: an analyzer that fails leaves its section
empty and records the error, while the other sections are still
returned. Only a failure to read the snapshot fails the whole call.
"""

from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterator

from cloudrecon.analysis.cache import CachePolicy, SnapshotCache
from cloudrecon.analysis.concurrency import PartitionStatus
from cloudrecon.analysis.cost import CostAnalyzer, CostReport, Priority
from cloudrecon.analysis.dependency import DependencyAnalyzer, DependencyGraph
from cloudrecon.analysis.errors import SnapshotFetchError
from cloudrecon.analysis.security import SecurityAnalyzer, SecurityReport
from cloudrecon.config import PerformanceConfig
from cloudrecon.models import ResourceCollection, Severity
from cloudrecon.observability.logging import get_logger
from cloudrecon.storage.base import ResourceStore

logger = logging.getLogger(__name__)
events = get_logger(__name__)

LOW_COMPLIANCE_THRESHOLD = 80.0
HIGH_COST_THRESHOLD = 1000.0
VERY_HIGH_COST_THRESHOLD = 5000.0
HIGH_RISK_THRESHOLD = 70.0
MEDIUM_RISK_THRESHOLD = 40.0
RISK_TREND_THRESHOLD = 50.0


@dataclass
class AnalysisSummary:
    """Headline numbers of a composite analysis."""

    total_resources: int = 0
    total_dependencies: int = 0
    security_findings: int = 0
    critical_findings: int = 0
    total_monthly_cost: float = 0.0
    potential_savings: float = 0.0
    compliance_score: float = 100.0
    risk_score: float = 0.0
    analysis_duration: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_resources": self.total_resources,
            "total_dependencies": self.total_dependencies,
            "security_findings": self.security_findings,
            "critical_findings": self.critical_findings,
            "total_monthly_cost": self.total_monthly_cost,
            "potential_savings": self.potential_savings,
            "compliance_score": self.compliance_score,
            "risk_score": self.risk_score,
            "analysis_duration": self.analysis_duration,
        }


@dataclass
class AnalysisReport:
    """
    Composite result of the three analyzers.

    Attributes:
        timestamp: When the analysis finished
        dependency_graph: Dependency section
        security_report: Security section
        cost_report: Cost section
        summary: Headline numbers derived from the sections
        errors: Error message per analyzer that failed
    """

    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    dependency_graph: DependencyGraph = field(default_factory=DependencyGraph)
    security_report: SecurityReport = field(default_factory=SecurityReport)
    cost_report: CostReport = field(default_factory=CostReport)
    summary: AnalysisSummary = field(default_factory=AnalysisSummary)
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def complete(self) -> bool:
        """True when every analyzer succeeded."""
        return not self.errors

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "dependency_graph": self.dependency_graph.to_dict(),
            "security_report": self.security_report.to_dict(),
            "cost_report": self.cost_report.to_dict(),
            "summary": self.summary.to_dict(),
            "errors": self.errors,
        }


@dataclass
class RiskAssessment:
    overall_risk: str = "low"
    risk_factors: list[str] = field(default_factory=list)
    mitigation_steps: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "overall_risk": self.overall_risk,
            "risk_factors": self.risk_factors,
            "mitigation_steps": self.mitigation_steps,
        }


@dataclass
class CostOptimizationInsights:
    total_potential_savings: float = 0.0
    top_optimizations: list[str] = field(default_factory=list)
    cost_trends: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_potential_savings": self.total_potential_savings,
            "top_optimizations": self.top_optimizations,
            "cost_trends": self.cost_trends,
        }


@dataclass
class SecurityPostureInsights:
    compliance_score: float = 100.0
    risk_score: float = 0.0
    top_threats: list[str] = field(default_factory=list)
    security_trends: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "compliance_score": self.compliance_score,
            "risk_score": self.risk_score,
            "top_threats": self.top_threats,
            "security_trends": self.security_trends,
        }


@dataclass
class AnalysisInsights:
    """Structured insights derived from a composite report."""

    summary: AnalysisSummary = field(default_factory=AnalysisSummary)
    key_findings: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    risk_assessment: RiskAssessment = field(default_factory=RiskAssessment)
    cost_optimization: CostOptimizationInsights = field(
        default_factory=CostOptimizationInsights
    )
    security_posture: SecurityPostureInsights = field(
        default_factory=SecurityPostureInsights
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "summary": self.summary.to_dict(),
            "key_findings": self.key_findings,
            "recommendations": self.recommendations,
            "risk_assessment": self.risk_assessment.to_dict(),
            "cost_optimization": self.cost_optimization.to_dict(),
            "security_posture": self.security_posture.to_dict(),
        }


class AnalysisOrchestrator:
    """
    Runs the analyzers and composes their reports.

    Example:
        >>> orchestrator = AnalysisOrchestrator(store, PerformanceConfig())
        >>> report = orchestrator.analyze_all()
        >>> report.summary.total_resources
    """

    def __init__(
        self,
        store: ResourceStore,
        config: PerformanceConfig | None = None,
    ) -> None:
        """
        Initialize the orchestrator.

        Args:
            store: Resource store the snapshot is read from
            config: Worker pool and cache configuration
        """
        self._store = store
        self._config = config if config is not None else PerformanceConfig()
        self._cache_policy = CachePolicy(self._config.cache_policy)
        self._cache: SnapshotCache | None = None
        self._cache_lock = threading.Lock()

        self.dependency_analyzer = DependencyAnalyzer(store, self._config)
        self.security_analyzer = SecurityAnalyzer(store, self._config)
        self.cost_analyzer = CostAnalyzer(store, self._config)

    @property
    def config(self) -> PerformanceConfig:
        return self._config

    @contextmanager
    def _call_cache(self) -> Iterator[SnapshotCache | None]:
        """
        Provide the snapshot cache shared by the analyzers of one call.

        Yields None under the "none" policy, in which case every analyzer
        reads the store itself. The cache is visible to clear_cache() and
        get_cache_stats() while the call runs and is discarded afterwards.
        """
        if self._cache_policy == CachePolicy.NONE:
            yield None
            return

        cache = SnapshotCache(self._store, self._config.cache_timeout_seconds)
        with self._cache_lock:
            self._cache = cache
        try:
            yield cache
        finally:
            cache.clear()
            with self._cache_lock:
                if self._cache is cache:
                    self._cache = None

    def analyze_all(self, cancel_event: threading.Event | None = None) -> AnalysisReport:
        """
        Run all three analyzers concurrently over one snapshot.

        Args:
            cancel_event: Forwarded to every analyzer

        Returns:
            AnalysisReport; failed sections are empty and listed in errors

        Raises:
            SnapshotFetchError: If the snapshot cannot be read
        """
        start = time.monotonic()
        report = AnalysisReport()
        analyzers = {
            "dependency": self.dependency_analyzer,
            "security": self.security_analyzer,
            "cost": self.cost_analyzer,
        }

        with self._call_cache() as cache:
            snapshot = cache.get_snapshot() if cache is not None else None
            events.analysis_started(
                list(analyzers), len(snapshot) if snapshot is not None else 0
            )

            with ThreadPoolExecutor(max_workers=len(analyzers)) as executor:
                futures: dict[str, Future] = {
                    name: executor.submit(analyzer.analyze, None, cancel_event, cache)
                    for name, analyzer in analyzers.items()
                }

        for name, future in futures.items():
            try:
                result = future.result()
            except SnapshotFetchError:
                raise
            except Exception as e:
                logger.error(f"{name} analysis failed: {e}", exc_info=True)
                report.errors[name] = str(e)
                continue

            if name == "dependency":
                report.dependency_graph = result
            elif name == "security":
                report.security_report = result
            else:
                report.cost_report = result

        report.summary = self._summarize(report, snapshot)
        report.summary.analysis_duration = time.monotonic() - start
        report.timestamp = datetime.now(timezone.utc)

        for name, partitions in (
            ("dependency", report.dependency_graph.partitions),
            ("security", report.security_report.partitions),
            ("cost", report.cost_report.partitions),
        ):
            for outcome in partitions:
                if outcome.status == PartitionStatus.FAILED:
                    events.partition_failed(name, outcome.key, outcome.error)

        events.analysis_completed(
            resource_count=report.summary.total_resources,
            dependency_count=report.summary.total_dependencies,
            finding_count=report.summary.security_findings,
            duration_seconds=report.summary.analysis_duration,
            failed_analyzers=sorted(report.errors),
        )
        return report

    def _summarize(
        self, report: AnalysisReport, snapshot: ResourceCollection | None
    ) -> AnalysisSummary:
        graph = report.dependency_graph
        security = report.security_report
        cost = report.cost_report

        if snapshot is not None:
            total_resources = len(snapshot)
        else:
            total_resources = max(
                graph.stats.total_resources, cost.summary.total_resources
            )

        return AnalysisSummary(
            total_resources=total_resources,
            total_dependencies=graph.stats.total_dependencies,
            security_findings=security.summary.total_findings,
            critical_findings=security.summary.critical_findings,
            total_monthly_cost=cost.total_monthly_cost,
            potential_savings=cost.potential_savings,
            compliance_score=security.compliance_score,
            risk_score=security.risk_score,
        )

    def analyze_dependencies(
        self, cancel_event: threading.Event | None = None
    ) -> DependencyGraph:
        """Run dependency analysis only."""
        with self._call_cache() as cache:
            return self.dependency_analyzer.analyze(cancel_event=cancel_event, cache=cache)

    def analyze_security(
        self, cancel_event: threading.Event | None = None
    ) -> SecurityReport:
        """Run security analysis only."""
        with self._call_cache() as cache:
            return self.security_analyzer.analyze(cancel_event=cancel_event, cache=cache)

    def analyze_cost(self, cancel_event: threading.Event | None = None) -> CostReport:
        """Run cost analysis only."""
        with self._call_cache() as cache:
            return self.cost_analyzer.analyze(cancel_event=cancel_event, cache=cache)

    def get_analysis_insights(self) -> list[str]:
        """
        Run a composite analysis and describe it in short sentences.

        Returns:
            Insight messages in a fixed order

        Raises:
            SnapshotFetchError: If the snapshot cannot be read
        """
        return render_insights(self.analyze_all())

    def get_detailed_insights(self) -> AnalysisInsights:
        """
        Run a composite analysis and derive structured insights.

        Raises:
            SnapshotFetchError: If the snapshot cannot be read
        """
        return build_detailed_insights(self.analyze_all())

    def export_report(self, fmt: str = "json", report: AnalysisReport | None = None) -> str:
        """
        Serialize a composite report.

        Args:
            fmt: "json", "yaml" or "csv"
            report: Report to export; a fresh analysis runs when None

        Returns:
            Serialized report
        """
        from cloudrecon.export import export_report

        if report is None:
            report = self.analyze_all()
        return export_report(report, fmt)

    def clear_cache(self) -> None:
        """Drop any snapshot held by an in-flight call."""
        with self._cache_lock:
            if self._cache is not None:
                self._cache.clear()
        logger.info("Analysis cache cleared")

    def get_cache_stats(self) -> dict[str, Any]:
        """Return cache and worker pool settings."""
        with self._cache_lock:
            cache_size = len(self._cache) if self._cache is not None else 0
        return {
            "cache_size": cache_size,
            "max_workers": self._config.max_workers,
            "batch_size": self._config.batch_size,
            "parallel_enabled": self._config.enable_parallel,
            "cache_policy": self._cache_policy.value,
        }


def render_insights(report: AnalysisReport) -> list[str]:
    """
    Describe a composite report in short sentences.

    Sections of failed analyzers are skipped.
    """
    insights: list[str] = []
    summary = report.summary

    if summary.total_resources > 0:
        insights.append(
            f"Discovered {summary.total_resources} resources across your cloud infrastructure"
        )

    if "dependency" not in report.errors:
        stats = report.dependency_graph.stats
        if stats.total_dependencies > 0:
            insights.append(
                f"Found {stats.total_dependencies} resource dependencies "
                f"with {stats.cycles} potential cycles"
            )
        if stats.islands > 0:
            insights.append(
                f"{stats.islands} resources appear to be isolated with no dependencies"
            )

    if "security" not in report.errors:
        security = report.security_report
        if security.summary.critical_findings > 0:
            insights.append(
                f"{security.summary.critical_findings} critical security findings "
                "require immediate attention"
            )
        if security.summary.total_findings > 0:
            insights.append(
                f"Security analysis found {security.summary.total_findings} total issues "
                f"with {security.compliance_score:.1f}% compliance score"
            )

    if "cost" not in report.errors:
        cost = report.cost_report
        insights.append(
            f"Total monthly cost: ${cost.total_monthly_cost:.2f} "
            f"with potential savings of ${cost.potential_savings:.2f}"
        )
        high_priority = len(cost.optimizations_by_priority(Priority.HIGH))
        if high_priority > 0:
            insights.append(
                f"{high_priority} high-priority cost optimization opportunities identified"
            )

    insights.append(f"Analysis completed in {summary.analysis_duration:.2f}s")
    return insights


def build_detailed_insights(report: AnalysisReport) -> AnalysisInsights:
    """Derive key findings, recommendations, risk, cost and security insights."""
    insights = AnalysisInsights(summary=report.summary)
    stats = report.dependency_graph.stats
    security = report.security_report
    cost = report.cost_report

    if stats.cycles > 0:
        insights.key_findings.append("Circular dependencies detected in infrastructure")
    if stats.islands > 0:
        insights.key_findings.append("Isolated resources found that may be unused")

    if security.summary.total_findings > 0:
        insights.key_findings.append("Security issues detected requiring attention")
    if security.compliance_score < LOW_COMPLIANCE_THRESHOLD:
        insights.key_findings.append("Low compliance score indicates security gaps")
    if cost.total_monthly_cost > HIGH_COST_THRESHOLD:
        insights.key_findings.append(
            "High monthly costs detected - optimization opportunities available"
        )
    if cost.optimizations:
        insights.key_findings.append("Cost optimization recommendations available")

    if security.summary.total_findings > 0:
        insights.recommendations.append(
            "Address security findings to improve compliance score"
        )
        insights.recommendations.append(
            "Implement security best practices for cloud resources"
        )
    if cost.optimizations:
        insights.recommendations.append("Implement cost optimization recommendations")
        insights.recommendations.append(
            "Consider reserved instances for predictable workloads"
        )
    if stats.cycles > 0:
        insights.recommendations.append(
            "Resolve circular dependencies to improve infrastructure stability"
        )

    risk = insights.risk_assessment
    if security.risk_score > HIGH_RISK_THRESHOLD:
        risk.overall_risk = "high"
        risk.risk_factors.append("High security risk score")
        risk.mitigation_steps.append("Implement security hardening measures")
    elif security.risk_score > MEDIUM_RISK_THRESHOLD:
        risk.overall_risk = "medium"
        risk.risk_factors.append("Medium security risk score")
        risk.mitigation_steps.append("Review and address security findings")
    if cost.total_monthly_cost > VERY_HIGH_COST_THRESHOLD:
        risk.risk_factors.append("High monthly costs")
        risk.mitigation_steps.append("Implement cost optimization strategies")

    cost_insights = insights.cost_optimization
    cost_insights.total_potential_savings = cost.potential_savings
    cost_insights.top_optimizations = [
        o.description for o in cost.optimizations_by_priority(Priority.HIGH)
    ]
    if cost.total_monthly_cost > HIGH_COST_THRESHOLD:
        cost_insights.cost_trends.append("High monthly costs detected")
    if cost.optimizations:
        cost_insights.cost_trends.append("Optimization opportunities available")

    posture = insights.security_posture
    posture.compliance_score = security.compliance_score
    posture.risk_score = security.risk_score
    posture.top_threats = [
        f.title
        for f in security.findings
        if f.severity in (Severity.CRITICAL, Severity.HIGH)
    ]
    if security.compliance_score < LOW_COMPLIANCE_THRESHOLD:
        posture.security_trends.append("Low compliance score")
    if security.risk_score > RISK_TREND_THRESHOLD:
        posture.security_trends.append("High risk score")

    return insights
