"""
Security analysis for CloudRecon.

Evaluates a declarative rule catalog against every resource of a snapshot,
runs a consistency pass over related resources and scores the result.

Scoring uses one canonical formula:

- compliance_score = max(0, 100 - mean(compliance weight)), 100 when clean
- risk_score = clamp(mean(risk weight), 0, 100), 0 when clean
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Iterable

from cloudrecon.analysis.base import BaseAnalyzer
from cloudrecon.analysis.cache import SnapshotCache
from cloudrecon.analysis.concurrency import (
    PartitionOutcome,
    ResultAccumulator,
    partition_by_provider,
)
from cloudrecon.analysis.schema import IAMPolicyConfig, LambdaFunctionConfig
from cloudrecon.models import Resource, ResourceCollection, Severity

logger = logging.getLogger(__name__)

COMPLIANCE_WEIGHTS: dict[Severity, float] = {
    Severity.CRITICAL: 10.0,
    Severity.HIGH: 5.0,
    Severity.MEDIUM: 2.0,
    Severity.LOW: 1.0,
    Severity.INFO: 0.5,
}

RISK_WEIGHTS: dict[Severity, float] = {
    Severity.CRITICAL: 10.0,
    Severity.HIGH: 7.0,
    Severity.MEDIUM: 4.0,
    Severity.LOW: 1.0,
    Severity.INFO: 0.0,
}


@dataclass
class SecurityFinding:
    """
    A security issue detected on a resource.

    Attributes:
        id: Finding id, "<rule id>-<resource id>"
        resource_id: Affected resource
        resource_address: Address of the affected resource
        provider: Provider of the affected resource
        service: Service of the affected resource
        resource_type: Type of the affected resource
        severity: Finding severity
        finding_type: Category (e.g., "public_access", "encryption")
        title: Short title
        description: What was detected
        recommendation: How to remediate
        compliance: Compliance framework controls the finding maps to
        metadata: Extra context
        created_at: When the finding was produced
    """

    id: str
    resource_id: str
    provider: str
    service: str
    resource_type: str
    severity: Severity
    finding_type: str
    title: str
    description: str
    recommendation: str
    resource_address: str = ""
    compliance: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "resource_id": self.resource_id,
            "resource_address": self.resource_address,
            "provider": self.provider,
            "service": self.service,
            "resource_type": self.resource_type,
            "severity": self.severity.value,
            "finding_type": self.finding_type,
            "title": self.title,
            "description": self.description,
            "recommendation": self.recommendation,
            "compliance": list(self.compliance),
            "metadata": self.metadata,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class SecuritySummary:
    """Finding counts of a security analysis run."""

    total_findings: int = 0
    critical_findings: int = 0
    high_findings: int = 0
    medium_findings: int = 0
    low_findings: int = 0
    info_findings: int = 0
    compliance_pass: int = 0
    compliance_fail: int = 0

    @classmethod
    def from_findings(cls, findings: list[SecurityFinding]) -> SecuritySummary:
        summary = cls(total_findings=len(findings))
        for finding in findings:
            if finding.severity == Severity.CRITICAL:
                summary.critical_findings += 1
            elif finding.severity == Severity.HIGH:
                summary.high_findings += 1
            elif finding.severity == Severity.MEDIUM:
                summary.medium_findings += 1
            elif finding.severity == Severity.LOW:
                summary.low_findings += 1
            else:
                summary.info_findings += 1
        # Every finding is a failed control; passes are not tracked
        summary.compliance_fail = len(findings)
        return summary

    def by_severity(self) -> dict[str, int]:
        return {
            Severity.CRITICAL.value: self.critical_findings,
            Severity.HIGH.value: self.high_findings,
            Severity.MEDIUM.value: self.medium_findings,
            Severity.LOW.value: self.low_findings,
            Severity.INFO.value: self.info_findings,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_findings": self.total_findings,
            "by_severity": self.by_severity(),
            "compliance_pass": self.compliance_pass,
            "compliance_fail": self.compliance_fail,
        }


@dataclass
class SecurityReport:
    """Result of a security analysis run."""

    findings: list[SecurityFinding] = field(default_factory=list)
    summary: SecuritySummary = field(default_factory=SecuritySummary)
    compliance_score: float = 100.0
    risk_score: float = 0.0
    partitions: list[PartitionOutcome] = field(default_factory=list)

    def findings_by_severity(self, severity: Severity) -> list[SecurityFinding]:
        return [f for f in self.findings if f.severity == severity]

    def to_dict(self) -> dict[str, Any]:
        return {
            "findings": [f.to_dict() for f in self.findings],
            "summary": self.summary.to_dict(),
            "compliance_score": self.compliance_score,
            "risk_score": self.risk_score,
            "partitions": [p.to_dict() for p in self.partitions],
        }


def compliance_score(findings: Iterable[SecurityFinding]) -> float:
    """
    Compliance score of a finding set, in [0, 100].

    Args:
        findings: Findings to score

    Returns:
        100 minus the mean compliance weight, floored at 0
    """
    weights = [COMPLIANCE_WEIGHTS[f.severity] for f in findings]
    if not weights:
        return 100.0
    return max(0.0, 100.0 - sum(weights) / len(weights))


def risk_score(findings: Iterable[SecurityFinding]) -> float:
    """
    Risk score of a finding set, in [0, 100].

    Args:
        findings: Findings to score

    Returns:
        Mean risk weight clamped to [0, 100]
    """
    weights = [RISK_WEIGHTS[f.severity] for f in findings]
    if not weights:
        return 0.0
    return min(100.0, max(0.0, sum(weights) / len(weights)))


@dataclass(frozen=True)
class SecurityRule:
    """
    One check of the security rule catalog.

    Attributes:
        id: Rule id, prefix of finding ids
        provider: Provider the rule applies to
        service: Service the rule applies to
        finding_type: Category of produced findings
        severity: Severity of produced findings
        title: Finding title
        description: Finding description
        recommendation: Finding recommendation
        compliance: Compliance controls of produced findings
        check: Predicate returning True when the resource violates the rule
        compliance_flag: Discovery compliance flag the rule reports, if any
        detail: Renders resource specifics appended to the description
    """

    id: str
    provider: str
    service: str
    finding_type: str
    severity: Severity
    title: str
    description: str
    recommendation: str
    compliance: tuple[str, ...]
    check: Callable[[Resource], bool]
    compliance_flag: str | None = None
    detail: Callable[[Resource], str] | None = None

    def evaluate(self, resource: Resource) -> SecurityFinding | None:
        """Produce a finding when the resource violates the rule."""
        if not self.check(resource):
            return None

        metadata: dict[str, Any] = {
            "resource_type": resource.type,
            "region": resource.region,
        }
        if self.compliance_flag:
            metadata["compliance_flag"] = self.compliance_flag

        description = self.description
        if self.detail is not None:
            description = f"{description} ({self.detail(resource)})"

        return SecurityFinding(
            id=f"{self.id}-{resource.id}",
            resource_id=resource.id,
            resource_address=resource.address,
            provider=resource.provider,
            service=resource.service,
            resource_type=resource.type,
            severity=self.severity,
            finding_type=self.finding_type,
            title=self.title,
            description=description,
            recommendation=self.recommendation,
            compliance=list(self.compliance),
            metadata=metadata,
        )


def _is_public(resource: Resource) -> bool:
    return resource.public_access


def _is_unencrypted(resource: Resource) -> bool:
    return not resource.encrypted


def _has_flag(flag: str) -> Callable[[Resource], bool]:
    def check(resource: Resource) -> bool:
        return flag in resource.compliance
    return check


def _allows_all_resources(resource: Resource) -> bool:
    return IAMPolicyConfig.from_resource(resource).allows_all_resources


def _lambda_outside_vpc(resource: Resource) -> bool:
    return not LambdaFunctionConfig.from_resource(resource).in_vpc


def _lambda_sensitive_env(resource: Resource) -> bool:
    return bool(LambdaFunctionConfig.from_resource(resource).sensitive_variables())


def _lambda_sensitive_names(resource: Resource) -> str:
    return ", ".join(LambdaFunctionConfig.from_resource(resource).sensitive_variables())


SECURITY_RULES: tuple[SecurityRule, ...] = (
    SecurityRule(
        id="ec2-public-access",
        provider="aws",
        service="ec2",
        finding_type="public_access",
        severity=Severity.HIGH,
        title="EC2 Instance has public IP address",
        description="EC2 instance is accessible from the internet",
        recommendation="Remove public IP or use NAT gateway for outbound access",
        compliance=("CIS-2.1", "SOC2-CC6.1"),
        check=_is_public,
    ),
    SecurityRule(
        id="ec2-unencrypted",
        provider="aws",
        service="ec2",
        finding_type="encryption",
        severity=Severity.MEDIUM,
        title="EC2 Instance storage is not encrypted",
        description="EC2 instance EBS volumes are not encrypted",
        recommendation="Enable EBS encryption for all volumes",
        compliance=("CIS-2.2", "PCI-DSS-3.4"),
        check=_is_unencrypted,
    ),
    SecurityRule(
        id="ec2-compliance-public",
        provider="aws",
        service="ec2",
        finding_type="compliance",
        severity=Severity.HIGH,
        title="EC2 Instance violates public access policy",
        description="Instance has public access which violates security policy",
        recommendation="Review and restrict public access",
        compliance=("CIS-2.1",),
        check=_has_flag("public-access"),
        compliance_flag="public-access",
    ),
    SecurityRule(
        id="ec2-compliance-encryption",
        provider="aws",
        service="ec2",
        finding_type="compliance",
        severity=Severity.MEDIUM,
        title="EC2 Instance violates encryption policy",
        description="Instance storage is not encrypted",
        recommendation="Enable encryption for all storage",
        compliance=("CIS-2.2",),
        check=_has_flag("unencrypted"),
        compliance_flag="unencrypted",
    ),
    SecurityRule(
        id="s3-public-access",
        provider="aws",
        service="s3",
        finding_type="public_access",
        severity=Severity.CRITICAL,
        title="S3 Bucket allows public access",
        description="S3 bucket is publicly accessible",
        recommendation="Remove public access policies and block public access",
        compliance=("CIS-2.1", "SOC2-CC6.1", "PCI-DSS-1.2"),
        check=_is_public,
    ),
    SecurityRule(
        id="s3-unencrypted",
        provider="aws",
        service="s3",
        finding_type="encryption",
        severity=Severity.HIGH,
        title="S3 Bucket is not encrypted",
        description="S3 bucket does not have encryption enabled",
        recommendation="Enable server-side encryption for the bucket",
        compliance=("CIS-2.2", "SOC2-CC6.1", "PCI-DSS-3.4"),
        check=_is_unencrypted,
    ),
    SecurityRule(
        id="rds-unencrypted",
        provider="aws",
        service="rds",
        finding_type="encryption",
        severity=Severity.HIGH,
        title="RDS Instance is not encrypted",
        description="RDS instance storage is not encrypted",
        recommendation="Enable encryption for RDS instance",
        compliance=("CIS-2.2", "SOC2-CC6.1", "PCI-DSS-3.4"),
        check=_is_unencrypted,
    ),
    SecurityRule(
        id="rds-public-access",
        provider="aws",
        service="rds",
        finding_type="public_access",
        severity=Severity.CRITICAL,
        title="RDS instance with public access",
        description="RDS instance is publicly accessible",
        recommendation="Remove public access and use VPC security groups",
        compliance=("CIS-2.1", "SOC2-CC6.1"),
        check=_is_public,
    ),
    SecurityRule(
        id="iam-overly-permissive",
        provider="aws",
        service="iam",
        finding_type="permissions",
        severity=Severity.HIGH,
        title="IAM policy is overly permissive",
        description="IAM policy allows access to all resources",
        recommendation="Apply principle of least privilege",
        compliance=("CIS-1.16", "SOC2-CC6.1"),
        check=_allows_all_resources,
    ),
    SecurityRule(
        id="lambda-no-vpc",
        provider="aws",
        service="lambda",
        finding_type="network",
        severity=Severity.MEDIUM,
        title="Lambda function not in VPC",
        description="Lambda function is not configured to run in a VPC",
        recommendation="Consider running Lambda in VPC for better network isolation",
        compliance=("CIS-2.3",),
        check=_lambda_outside_vpc,
    ),
    SecurityRule(
        id="lambda-sensitive-env",
        provider="aws",
        service="lambda",
        finding_type="secrets",
        severity=Severity.MEDIUM,
        title="Lambda with sensitive environment variables",
        description="Lambda function environment variables may contain sensitive data",
        recommendation="Use AWS Secrets Manager or Parameter Store for sensitive data",
        compliance=("CIS-1.4",),
        check=_lambda_sensitive_env,
        detail=_lambda_sensitive_names,
    ),
    SecurityRule(
        id="azure-vm-public-access",
        provider="azure",
        service="compute",
        finding_type="public_access",
        severity=Severity.HIGH,
        title="Azure VM has public IP address",
        description="Azure VM is accessible from the internet",
        recommendation="Remove public IP or use NAT gateway",
        compliance=("CIS-2.1", "SOC2-CC6.1"),
        check=_is_public,
    ),
    SecurityRule(
        id="azure-storage-public-access",
        provider="azure",
        service="storage",
        finding_type="public_access",
        severity=Severity.CRITICAL,
        title="Azure Storage allows public access",
        description="Azure Storage account is publicly accessible",
        recommendation="Restrict public access to storage account",
        compliance=("CIS-2.1", "SOC2-CC6.1", "PCI-DSS-1.2"),
        check=_is_public,
    ),
    SecurityRule(
        id="gcp-vm-public-access",
        provider="gcp",
        service="compute",
        finding_type="public_access",
        severity=Severity.HIGH,
        title="GCP VM has external IP address",
        description="GCP VM is accessible from the internet",
        recommendation="Remove external IP or use Cloud NAT",
        compliance=("CIS-2.1", "SOC2-CC6.1"),
        check=_is_public,
    ),
    SecurityRule(
        id="gcp-storage-public-access",
        provider="gcp",
        service="storage",
        finding_type="public_access",
        severity=Severity.CRITICAL,
        title="GCP Storage allows public access",
        description="GCP Storage bucket is publicly accessible",
        recommendation="Restrict public access to storage bucket",
        compliance=("CIS-2.1", "SOC2-CC6.1", "PCI-DSS-1.2"),
        check=_is_public,
    ),
)


def consistency_findings(resources: Iterable[Resource]) -> list[SecurityFinding]:
    """
    Flag groups of related resources with mixed encryption.

    Resources are grouped by Resource.group_key(). A group where some but
    not all members are encrypted yields one finding on its first member.

    Args:
        resources: Snapshot in order

    Returns:
        One finding per inconsistent group
    """
    findings: list[SecurityFinding] = []

    for group in ResourceCollection(list(resources)).group_by_key().values():
        encrypted_count = sum(1 for r in group if r.encrypted)
        if encrypted_count == 0 or encrypted_count == len(group):
            continue

        first = group[0]
        findings.append(
            SecurityFinding(
                id=f"inconsistent-encryption-{first.id}",
                resource_id=first.id,
                resource_address=first.address,
                provider=first.provider,
                service=first.service,
                resource_type=first.type,
                severity=Severity.MEDIUM,
                finding_type="consistency",
                title="Inconsistent encryption across related resources",
                description="Some resources in the group are encrypted while others are not",
                recommendation="Apply consistent encryption policy across all related resources",
                compliance=["CIS-2.2"],
                metadata={
                    "group_size": len(group),
                    "encrypted_count": encrypted_count,
                    "unencrypted_count": len(group) - encrypted_count,
                },
            )
        )

    return findings


class SecurityAnalyzer(BaseAnalyzer):
    """
    Evaluates the security rule catalog over a snapshot.

    Rules are indexed by (provider, service); resources with no matching
    rules produce no findings. Each provider partition runs through the
    PartitionRunner, the consistency pass runs as one extra partition.
    """

    name = "security"

    def __init__(
        self,
        store,
        config=None,
        rules: Iterable[SecurityRule] = SECURITY_RULES,
    ) -> None:
        super().__init__(store, config)
        self._rules: dict[tuple[str, str], list[SecurityRule]] = {}
        for rule in rules:
            self._rules.setdefault((rule.provider, rule.service), []).append(rule)

    def rules_for(self, resource: Resource) -> list[SecurityRule]:
        return self._rules.get((resource.provider, resource.service), [])

    def analyze(
        self,
        snapshot: ResourceCollection | None = None,
        cancel_event: threading.Event | None = None,
        cache: SnapshotCache | None = None,
    ) -> SecurityReport:
        """
        Analyze the security posture of a snapshot.

        Args:
            snapshot: Snapshot to analyze; read through cache or the store when None
            cancel_event: Checked between partitions
            cache: Snapshot cache shared with the other analyzers of a call

        Returns:
            SecurityReport with findings, summary and scores
        """
        start = time.monotonic()
        snapshot = self._resolve_snapshot(snapshot, cache)
        logger.info(f"Starting security analysis of {len(snapshot)} resources")

        runner = self._runner(cancel_event)
        accumulator: ResultAccumulator[SecurityFinding] = ResultAccumulator()

        outcomes = runner.run(
            partition_by_provider(snapshot),
            lambda provider, resources: self.analyze_partition(resources),
            accumulator,
            self.name,
        )
        outcomes.extend(
            runner.run(
                {"consistency": list(snapshot)},
                lambda _key, resources: consistency_findings(resources),
                accumulator,
                self.name,
            )
        )

        findings = accumulator.items()
        report = SecurityReport(
            findings=findings,
            summary=SecuritySummary.from_findings(findings),
            compliance_score=compliance_score(findings),
            risk_score=risk_score(findings),
            partitions=outcomes,
        )

        logger.info(
            f"Security analysis completed: {report.summary.total_findings} findings, "
            f"compliance {report.compliance_score:.1f}, risk {report.risk_score:.1f} "
            f"in {time.monotonic() - start:.2f}s"
        )
        return report

    def analyze_partition(self, resources: list[Resource]) -> list[SecurityFinding]:
        """Evaluate every applicable rule for the resources of one provider."""
        findings: list[SecurityFinding] = []
        for resource in resources:
            for rule in self.rules_for(resource):
                finding = rule.evaluate(resource)
                if finding is not None:
                    findings.append(finding)
        return findings
