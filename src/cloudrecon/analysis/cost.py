"""
Cost analysis for CloudRecon.

Estimates the monthly cost of every resource, proposes optimizations and
summarizes spend per provider and service.

A resource's cost comes from its discovered monthly_cost when one is
known, otherwise from the provider's static pricing table. Prices are
list-price approximations in USD and are not fetched from any billing API.
"""

from __future__ import annotations

import logging
import threading
import time
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
from cloudrecon.analysis.errors import UnknownProviderCostError
from cloudrecon.analysis.schema import InstanceSizing
from cloudrecon.models import Resource, ResourceCollection

logger = logging.getLogger(__name__)

CURRENCY = "USD"
DAYS_PER_MONTH = 30
HOURS_PER_MONTH = 720

EXISTING_DATA_CONFIDENCE = 0.8
ESTIMATED_CONFIDENCE = 0.6
FALLBACK_CONFIDENCE = 0.3

RIGHTSIZING_THRESHOLD = 50.0
RIGHTSIZING_SAVINGS = 0.30
RESERVED_THRESHOLD = 100.0
RESERVED_SAVINGS = 0.40

PROVIDER_RESERVED_THRESHOLD = 1000.0
PROVIDER_RESERVED_SAVINGS = 0.40
PROVIDER_RIGHTSIZING_THRESHOLD = 500.0
PROVIDER_RIGHTSIZING_SAVINGS = 0.20


class Priority(Enum):
    """Priority of a cost optimization."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class OptimizationCategory(Enum):
    """Kind of cost optimization."""

    RIGHTSIZING = "rightsizing"
    RESERVED = "reserved"
    SPOT = "spot"
    UNUSED = "unused"


@dataclass
class CostEstimate:
    """
    Monthly cost estimate of one resource.

    Attributes:
        resource_id: Estimated resource
        provider: Provider of the resource
        service: Service of the resource
        resource_type: Type of the resource
        region: Region of the resource
        monthly_cost: Estimated monthly cost
        daily_cost: monthly_cost / 30
        hourly_cost: monthly_cost / 720
        currency: Always "USD"
        pricing_model: Always "on-demand"
        confidence: 0.8 for discovered costs, 0.6 for table prices,
            0.3 for provider fallback prices
        metadata: How the estimate was produced
    """

    resource_id: str
    provider: str
    service: str
    resource_type: str
    monthly_cost: float
    region: str = ""
    daily_cost: float = 0.0
    hourly_cost: float = 0.0
    currency: str = CURRENCY
    pricing_model: str = "on-demand"
    confidence: float = ESTIMATED_CONFIDENCE
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.daily_cost = self.monthly_cost / DAYS_PER_MONTH
        self.hourly_cost = self.monthly_cost / HOURS_PER_MONTH

    def to_dict(self) -> dict[str, Any]:
        return {
            "resource_id": self.resource_id,
            "provider": self.provider,
            "service": self.service,
            "resource_type": self.resource_type,
            "region": self.region,
            "monthly_cost": self.monthly_cost,
            "daily_cost": self.daily_cost,
            "hourly_cost": self.hourly_cost,
            "currency": self.currency,
            "pricing_model": self.pricing_model,
            "confidence": self.confidence,
            "metadata": self.metadata,
        }


@dataclass
class CostOptimization:
    """
    A proposed cost saving.

    Provider-wide optimizations use "all" as resource_id and service.
    """

    id: str
    resource_id: str
    provider: str
    service: str
    category: OptimizationCategory
    title: str
    description: str
    current_cost: float
    optimized_cost: float
    potential_savings: float
    savings_percent: float
    priority: Priority
    recommendation: str
    implementation: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "resource_id": self.resource_id,
            "provider": self.provider,
            "service": self.service,
            "category": self.category.value,
            "title": self.title,
            "description": self.description,
            "current_cost": self.current_cost,
            "optimized_cost": self.optimized_cost,
            "potential_savings": self.potential_savings,
            "savings_percent": self.savings_percent,
            "priority": self.priority.value,
            "recommendation": self.recommendation,
            "implementation": self.implementation,
            "metadata": self.metadata,
        }


@dataclass
class CostSummary:
    """Aggregates over the cost estimates of a run."""

    total_resources: int = 0
    resources_with_cost: int = 0
    average_cost: float = 0.0
    highest_cost: CostEstimate | None = None
    lowest_cost: CostEstimate | None = None
    cost_by_provider: dict[str, float] = field(default_factory=dict)
    cost_by_service: dict[str, float] = field(default_factory=dict)

    @classmethod
    def from_estimates(
        cls, estimates: list[CostEstimate], total_resources: int
    ) -> CostSummary:
        """
        Summarize estimates.

        Highest and lowest ties go to the lexicographically smallest
        resource id so repeated runs agree.
        """
        summary = cls(
            total_resources=total_resources,
            resources_with_cost=len(estimates),
        )
        if not estimates:
            return summary

        for estimate in estimates:
            summary.cost_by_provider[estimate.provider] = (
                summary.cost_by_provider.get(estimate.provider, 0.0) + estimate.monthly_cost
            )
            summary.cost_by_service[estimate.service] = (
                summary.cost_by_service.get(estimate.service, 0.0) + estimate.monthly_cost
            )

        summary.average_cost = sum(e.monthly_cost for e in estimates) / len(estimates)
        summary.highest_cost = min(estimates, key=lambda e: (-e.monthly_cost, e.resource_id))
        summary.lowest_cost = min(estimates, key=lambda e: (e.monthly_cost, e.resource_id))
        return summary

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_resources": self.total_resources,
            "resources_with_cost": self.resources_with_cost,
            "average_cost": self.average_cost,
            "highest_cost": self.highest_cost.to_dict() if self.highest_cost else None,
            "lowest_cost": self.lowest_cost.to_dict() if self.lowest_cost else None,
            "cost_by_provider": self.cost_by_provider,
            "cost_by_service": self.cost_by_service,
        }


@dataclass
class CostReport:
    """Result of a cost analysis run."""

    total_monthly_cost: float = 0.0
    total_daily_cost: float = 0.0
    total_hourly_cost: float = 0.0
    currency: str = CURRENCY
    estimates: list[CostEstimate] = field(default_factory=list)
    optimizations: list[CostOptimization] = field(default_factory=list)
    summary: CostSummary = field(default_factory=CostSummary)
    potential_savings: float = 0.0
    partitions: list[PartitionOutcome] = field(default_factory=list)

    def optimizations_by_priority(self, priority: Priority) -> list[CostOptimization]:
        return [o for o in self.optimizations if o.priority == priority]

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_monthly_cost": self.total_monthly_cost,
            "total_daily_cost": self.total_daily_cost,
            "total_hourly_cost": self.total_hourly_cost,
            "currency": self.currency,
            "estimates": [e.to_dict() for e in self.estimates],
            "optimizations": [o.to_dict() for o in self.optimizations],
            "summary": self.summary.to_dict(),
            "potential_savings": self.potential_savings,
            "partitions": [p.to_dict() for p in self.partitions],
        }


@dataclass(frozen=True)
class ServicePricing:
    """
    Price list of one service.

    Either a flat monthly price, or a table keyed by instance type or class.

    Attributes:
        flat: Flat monthly price, when the service is not sized
        sizes: Monthly price per instance identifier
        default_size: Identifier assumed when the resource reports none
        unknown_size_cost: Price for identifiers missing from the table
    """

    flat: float | None = None
    sizes: dict[str, float] = field(default_factory=dict)
    default_size: str = ""
    unknown_size_cost: float = 0.0

    def price(self, resource: Resource) -> tuple[float, str]:
        """Return (monthly price, pricing key) for a resource."""
        if self.flat is not None:
            return self.flat, "flat"

        identifier = InstanceSizing.from_resource(resource).identifier or self.default_size
        if identifier in self.sizes:
            return self.sizes[identifier], identifier
        return self.unknown_size_cost, identifier


@dataclass(frozen=True)
class ProviderPricing:
    """
    Price lists of one provider.

    Attributes:
        provider: Provider name
        services: Pricing per service
        fallback_cost: Price for services with no pricing entry
    """

    provider: str
    services: dict[str, ServicePricing]
    fallback_cost: float


PROVIDER_PRICING: dict[str, ProviderPricing] = {
    "aws": ProviderPricing(
        provider="aws",
        services={
            "ec2": ServicePricing(
                sizes={
                    "t3.micro": 8.0,
                    "t3.small": 15.0,
                    "t3.medium": 30.0,
                    "t3.large": 60.0,
                    "m5.large": 70.0,
                    "m5.xlarge": 140.0,
                },
                default_size="t3.micro",
                unknown_size_cost=20.0,
            ),
            "rds": ServicePricing(
                sizes={
                    "db.t3.micro": 15.0,
                    "db.t3.small": 25.0,
                    "db.t3.medium": 50.0,
                    "db.m5.large": 120.0,
                },
                default_size="db.t3.micro",
                unknown_size_cost=30.0,
            ),
            "s3": ServicePricing(flat=5.0),
            "lambda": ServicePricing(flat=2.0),
        },
        fallback_cost=10.0,
    ),
    "azure": ProviderPricing(
        provider="azure",
        services={
            "compute": ServicePricing(flat=25.0),
            "storage": ServicePricing(flat=8.0),
        },
        fallback_cost=15.0,
    ),
    "gcp": ProviderPricing(
        provider="gcp",
        services={
            "compute": ServicePricing(flat=20.0),
            "storage": ServicePricing(flat=6.0),
        },
        fallback_cost=12.0,
    ),
}


class CostAnalyzer(BaseAnalyzer):
    """
    Estimates resource costs and proposes optimizations.

    Each provider partition estimates and optimizes its own resources;
    provider-wide optimizations are computed once all partitions are done.
    """

    name = "cost"

    def __init__(
        self,
        store,
        config=None,
        pricing: dict[str, ProviderPricing] | None = None,
    ) -> None:
        super().__init__(store, config)
        self._pricing = pricing if pricing is not None else PROVIDER_PRICING

    def estimate(self, resource: Resource) -> CostEstimate:
        """
        Estimate the monthly cost of one resource.

        Args:
            resource: Resource to price

        Returns:
            CostEstimate for the resource

        Raises:
            UnknownProviderCostError: If the resource needs a table price and
                no pricing exists for its provider
        """
        if resource.monthly_cost > 0:
            return CostEstimate(
                resource_id=resource.id,
                provider=resource.provider,
                service=resource.service,
                resource_type=resource.type,
                region=resource.region,
                monthly_cost=resource.monthly_cost,
                confidence=EXISTING_DATA_CONFIDENCE,
                metadata={"source": "existing_data"},
            )

        pricing = self._pricing.get(resource.provider)
        if pricing is None:
            raise UnknownProviderCostError(resource.provider, resource.id)

        service_pricing = pricing.services.get(resource.service)
        if service_pricing is None:
            monthly, pricing_key = pricing.fallback_cost, "default"
            confidence = FALLBACK_CONFIDENCE
        else:
            monthly, pricing_key = service_pricing.price(resource)
            confidence = ESTIMATED_CONFIDENCE

        return CostEstimate(
            resource_id=resource.id,
            provider=resource.provider,
            service=resource.service,
            resource_type=resource.type,
            region=resource.region,
            monthly_cost=monthly,
            confidence=confidence,
            metadata={
                "source": "estimated",
                "region": resource.region,
                "pricing_key": pricing_key,
            },
        )

    def analyze(
        self,
        snapshot: ResourceCollection | None = None,
        cancel_event: threading.Event | None = None,
        cache: SnapshotCache | None = None,
    ) -> CostReport:
        """
        Analyze the cost of a snapshot.

        Args:
            snapshot: Snapshot to analyze; read through cache or the store when None
            cancel_event: Checked between partitions
            cache: Snapshot cache shared with the other analyzers of a call

        Returns:
            CostReport with estimates, optimizations and summary
        """
        start = time.monotonic()
        snapshot = self._resolve_snapshot(snapshot, cache)
        logger.info(f"Starting cost analysis of {len(snapshot)} resources")

        runner = self._runner(cancel_event)
        estimates: ResultAccumulator[CostEstimate] = ResultAccumulator()
        optimizations: ResultAccumulator[CostOptimization] = ResultAccumulator()

        def work(provider: str, resources: list[Resource]) -> list[CostEstimate]:
            partition_estimates, partition_optimizations = self.analyze_partition(resources)
            optimizations.extend(partition_optimizations)
            return partition_estimates

        outcomes = runner.run(
            partition_by_provider(snapshot), work, estimates, self.name
        )

        estimate_list = estimates.items()
        optimization_list = optimizations.items()
        optimization_list.extend(provider_optimizations(estimate_list))

        report = CostReport(
            total_monthly_cost=sum(e.monthly_cost for e in estimate_list),
            total_daily_cost=sum(e.daily_cost for e in estimate_list),
            total_hourly_cost=sum(e.hourly_cost for e in estimate_list),
            estimates=estimate_list,
            optimizations=optimization_list,
            summary=CostSummary.from_estimates(estimate_list, len(snapshot)),
            potential_savings=sum(o.potential_savings for o in optimization_list),
            partitions=outcomes,
        )

        logger.info(
            f"Cost analysis completed: ${report.total_monthly_cost:.2f}/month, "
            f"{len(report.optimizations)} optimizations in "
            f"{time.monotonic() - start:.2f}s"
        )
        return report

    def analyze_partition(
        self, resources: list[Resource]
    ) -> tuple[list[CostEstimate], list[CostOptimization]]:
        """
        Estimate and optimize the resources of one provider.

        Resources that cannot be priced are logged and left out.
        """
        estimates: list[CostEstimate] = []
        optimizations: list[CostOptimization] = []

        for resource in resources:
            try:
                estimate = self.estimate(resource)
            except UnknownProviderCostError as e:
                logger.warning(str(e))
                continue
            estimates.append(estimate)
            optimizations.extend(resource_optimizations(resource, estimate))

        return estimates, optimizations


def is_unused(resource: Resource) -> bool:
    """
    Whether a resource looks unused.

    No utilization data is collected yet, so nothing is reported unused.
    """
    return False


def resource_optimizations(
    resource: Resource, estimate: CostEstimate
) -> list[CostOptimization]:
    """
    Optimizations applicable to a single resource.

    Args:
        resource: Priced resource
        estimate: Its cost estimate

    Returns:
        Zero or more optimizations
    """
    optimizations: list[CostOptimization] = []
    cost = estimate.monthly_cost
    display_name = resource.name or resource.id
    metadata = {"resource_name": resource.name, "region": resource.region}

    if is_unused(resource):
        optimizations.append(
            CostOptimization(
                id=f"unused-{resource.id}",
                resource_id=resource.id,
                provider=resource.provider,
                service=resource.service,
                category=OptimizationCategory.UNUSED,
                title="Unused Resource",
                description=f"Resource {display_name} appears to be unused",
                current_cost=cost,
                optimized_cost=0.0,
                potential_savings=cost,
                savings_percent=100.0,
                priority=Priority.HIGH,
                recommendation="Consider deleting this resource if it's no longer needed",
                implementation="Delete the resource through the cloud console or API",
                metadata=dict(metadata),
            )
        )

    if resource.service == "ec2" and cost > RIGHTSIZING_THRESHOLD:
        savings = cost * RIGHTSIZING_SAVINGS
        optimizations.append(
            CostOptimization(
                id=f"rightsize-{resource.id}",
                resource_id=resource.id,
                provider=resource.provider,
                service=resource.service,
                category=OptimizationCategory.RIGHTSIZING,
                title="Right-sizing Opportunity",
                description=f"Resource {display_name} may be oversized for its workload",
                current_cost=cost,
                optimized_cost=cost - savings,
                potential_savings=savings,
                savings_percent=RIGHTSIZING_SAVINGS * 100,
                priority=Priority.MEDIUM,
                recommendation="Consider downsizing to a smaller instance type",
                implementation="Monitor resource utilization and resize accordingly",
                metadata=dict(metadata),
            )
        )

    if resource.service == "ec2" and cost > RESERVED_THRESHOLD:
        savings = cost * RESERVED_SAVINGS
        optimizations.append(
            CostOptimization(
                id=f"reserved-instance-{resource.id}",
                resource_id=resource.id,
                provider=resource.provider,
                service=resource.service,
                category=OptimizationCategory.RESERVED,
                title="Reserved Instance Opportunity",
                description=f"Resource {display_name} could benefit from reserved instance pricing",
                current_cost=cost,
                optimized_cost=cost - savings,
                potential_savings=savings,
                savings_percent=RESERVED_SAVINGS * 100,
                priority=Priority.MEDIUM,
                recommendation="Purchase reserved instances for predictable workloads",
                implementation="Buy reserved instances through the cloud console",
                metadata=dict(metadata),
            )
        )

    return optimizations


def provider_optimizations(estimates: Iterable[CostEstimate]) -> list[CostOptimization]:
    """
    Optimizations over each provider's total spend.

    Args:
        estimates: Every estimate of the run

    Returns:
        Reserved-instance and right-sizing proposals per provider, in order
        of first appearance
    """
    totals: dict[str, float] = {}
    for estimate in estimates:
        totals[estimate.provider] = totals.get(estimate.provider, 0.0) + estimate.monthly_cost

    optimizations: list[CostOptimization] = []
    for provider, total in totals.items():
        if total > PROVIDER_RESERVED_THRESHOLD:
            savings = total * PROVIDER_RESERVED_SAVINGS
            optimizations.append(
                CostOptimization(
                    id=f"reserved-instances-{provider}",
                    resource_id="all",
                    provider=provider,
                    service="all",
                    category=OptimizationCategory.RESERVED,
                    title="Reserved Instances",
                    description="Consider purchasing reserved instances for 30-60% cost savings",
                    current_cost=total,
                    optimized_cost=total - savings,
                    potential_savings=savings,
                    savings_percent=PROVIDER_RESERVED_SAVINGS * 100,
                    priority=Priority.HIGH,
                    recommendation="Purchase reserved instances for predictable workloads",
                    implementation=(
                        "Use AWS Cost Explorer or Azure Cost Management to identify candidates"
                    ),
                )
            )

        if total > PROVIDER_RIGHTSIZING_THRESHOLD:
            savings = total * PROVIDER_RIGHTSIZING_SAVINGS
            optimizations.append(
                CostOptimization(
                    id=f"right-sizing-{provider}",
                    resource_id="all",
                    provider=provider,
                    service="all",
                    category=OptimizationCategory.RIGHTSIZING,
                    title="Right Sizing",
                    description="Review resource sizes - may be oversized",
                    current_cost=total,
                    optimized_cost=total - savings,
                    potential_savings=savings,
                    savings_percent=PROVIDER_RIGHTSIZING_SAVINGS * 100,
                    priority=Priority.MEDIUM,
                    recommendation="Review and adjust resource sizes based on actual usage",
                    implementation=(
                        "Use cloud provider monitoring tools to identify oversized resources"
                    ),
                )
            )

    return optimizations
