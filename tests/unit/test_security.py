"""
Tests for security analysis.

Tests cover:
- Rule catalog evaluation per provider and service
- Finding ids, texts and metadata
- Consistency findings across related resources
- Compliance and risk scoring
- Summary counts
"""

from __future__ import annotations

from unittest.mock import patch

import pytest

from cloudrecon.analysis.concurrency import PartitionStatus
from cloudrecon.analysis.security import (
    SECURITY_RULES,
    SecurityAnalyzer,
    SecurityFinding,
    SecuritySummary,
    compliance_score,
    consistency_findings,
    risk_score,
)
from cloudrecon.models import Severity
from cloudrecon.storage import InMemoryResourceStore


def _finding(severity: Severity, index: int = 0) -> SecurityFinding:
    return SecurityFinding(
        id=f"rule-{index}",
        resource_id=f"r-{index}",
        provider="aws",
        service="ec2",
        resource_type="instance",
        severity=severity,
        finding_type="test",
        title="Test finding",
        description="",
        recommendation="",
    )


def _analyze(resources, config):
    return SecurityAnalyzer(InMemoryResourceStore(resources), config).analyze()


class TestSecurityAnalyzer:
    """Tests for SecurityAnalyzer."""

    def test_public_instance_and_public_unencrypted_bucket(
        self, resource_factory, sequential_config
    ):
        """Test a public encrypted instance next to a public unencrypted bucket."""
        instance = resource_factory("i-1", public_access=True, encrypted=True)
        bucket = resource_factory(
            "b-1", service="s3", resource_type="bucket",
            public_access=True, encrypted=False,
        )

        report = _analyze([instance, bucket], sequential_config)

        assert {(f.resource_id, f.finding_type, f.severity) for f in report.findings} == {
            ("i-1", "public_access", Severity.HIGH),
            ("b-1", "public_access", Severity.CRITICAL),
            ("b-1", "encryption", Severity.HIGH),
        }
        assert report.summary.critical_findings == 1
        assert report.summary.high_findings == 2

    def test_unencrypted_instance(self, resource_factory, sequential_config):
        """Test an unencrypted instance yields a medium encryption finding."""
        report = _analyze([resource_factory("i-1", encrypted=False)], sequential_config)

        assert len(report.findings) == 1
        finding = report.findings[0]
        assert finding.id == "ec2-unencrypted-i-1"
        assert finding.severity == Severity.MEDIUM
        assert finding.title == "EC2 Instance storage is not encrypted"
        assert finding.compliance == ["CIS-2.2", "PCI-DSS-3.4"]

    def test_sample_snapshot(self, memory_store, sequential_config):
        """Test findings and scores for the sample snapshot."""
        report = SecurityAnalyzer(memory_store, sequential_config).analyze()

        assert sorted(f.id for f in report.findings) == [
            "s3-public-access-assets-bucket",
            "s3-unencrypted-assets-bucket",
        ]
        assert report.compliance_score == pytest.approx(92.5)
        assert report.risk_score == pytest.approx(8.5)

    def test_finding_metadata(self, resource_factory, sequential_config):
        """Test findings carry resource context."""
        bucket = resource_factory(
            "b-1", service="s3", resource_type="bucket", region="eu-west-1",
            public_access=True, encrypted=True,
        )

        finding = _analyze([bucket], sequential_config).findings[0]

        assert finding.resource_address == "arn:aws:s3:b-1"
        assert finding.metadata == {"resource_type": "bucket", "region": "eu-west-1"}
        assert finding.to_dict()["severity"] == "critical"

    def test_compliance_flags(self, resource_factory, sequential_config):
        """Test discovery compliance flags produce compliance findings."""
        instance = resource_factory(
            "i-1", encrypted=True, compliance=["public-access", "unencrypted"]
        )

        report = _analyze([instance], sequential_config)
        by_id = {f.id: f for f in report.findings}

        assert set(by_id) == {
            "ec2-compliance-public-i-1",
            "ec2-compliance-encryption-i-1",
        }
        assert by_id["ec2-compliance-public-i-1"].severity == Severity.HIGH
        assert by_id["ec2-compliance-public-i-1"].metadata["compliance_flag"] == "public-access"
        assert by_id["ec2-compliance-encryption-i-1"].severity == Severity.MEDIUM

    def test_rds_rules(self, resource_factory, sequential_config):
        """Test RDS public access and encryption rules."""
        database = resource_factory(
            "db-1", service="rds", resource_type="db-instance",
            public_access=True, encrypted=False,
        )

        report = _analyze([database], sequential_config)

        assert {f.id: f.severity for f in report.findings} == {
            "rds-unencrypted-db-1": Severity.HIGH,
            "rds-public-access-db-1": Severity.CRITICAL,
        }

    def test_iam_wildcard_policy(self, resource_factory, sequential_config):
        """Test an IAM policy granting every resource."""
        policy = resource_factory(
            "admin-policy", service="iam", resource_type="policy", encrypted=True,
            configuration={"Statement": [{"Effect": "Allow", "Action": "*", "Resource": "*"}]},
        )

        report = _analyze([policy], sequential_config)

        assert [f.id for f in report.findings] == ["iam-overly-permissive-admin-policy"]
        assert report.findings[0].finding_type == "permissions"

    def test_lambda_findings(self, resource_factory, sequential_config):
        """Test Lambda VPC and environment variable rules."""
        function = resource_factory(
            "fn-1", service="lambda", resource_type="function", encrypted=True,
            configuration={
                "Environment": {"Variables": {"API_KEY": "x", "DB_PASSWORD": "y", "STAGE": "prod"}}
            },
        )

        report = _analyze([function], sequential_config)
        by_id = {f.id: f for f in report.findings}

        assert set(by_id) == {"lambda-no-vpc-fn-1", "lambda-sensitive-env-fn-1"}
        sensitive = by_id["lambda-sensitive-env-fn-1"]
        assert sensitive.description.endswith("(API_KEY, DB_PASSWORD)")
        assert sensitive.finding_type == "secrets"

    def test_lambda_in_vpc_without_secrets(self, resource_factory, sequential_config):
        """Test a VPC-attached Lambda without secrets is clean."""
        function = resource_factory(
            "fn-1", service="lambda", encrypted=True,
            configuration={"VpcConfig": {"VpcId": "vpc-1"}},
        )
        assert _analyze([function], sequential_config).findings == []

    @pytest.mark.parametrize(
        "provider,service,rule_id,severity",
        [
            ("azure", "compute", "azure-vm-public-access", Severity.HIGH),
            ("azure", "storage", "azure-storage-public-access", Severity.CRITICAL),
            ("gcp", "compute", "gcp-vm-public-access", Severity.HIGH),
            ("gcp", "storage", "gcp-storage-public-access", Severity.CRITICAL),
        ],
    )
    def test_azure_and_gcp_public_access(
        self, resource_factory, sequential_config, provider, service, rule_id, severity
    ):
        """Test public access rules for Azure and GCP."""
        resource = resource_factory(
            "r-1", provider=provider, service=service, public_access=True, encrypted=False
        )

        report = _analyze([resource], sequential_config)

        assert [(f.id, f.severity) for f in report.findings] == [(f"{rule_id}-r-1", severity)]

    def test_unknown_provider_has_no_findings(self, resource_factory, sequential_config):
        """Test resources without matching rules are skipped."""
        resource = resource_factory(
            "r-1", provider="oracle", service="compute", public_access=True
        )
        assert _analyze([resource], sequential_config).findings == []

    def test_empty_snapshot_scores(self, sequential_config):
        """Test a clean snapshot scores 100 compliance and 0 risk."""
        report = SecurityAnalyzer(InMemoryResourceStore(), sequential_config).analyze()

        assert report.findings == []
        assert report.compliance_score == 100.0
        assert report.risk_score == 0.0

    def test_sequential_and_parallel_agree(
        self, memory_store, sequential_config, parallel_config
    ):
        """Test scheduling does not change findings."""
        sequential = SecurityAnalyzer(memory_store, sequential_config).analyze()
        parallel = SecurityAnalyzer(memory_store, parallel_config).analyze()

        assert sorted(f.id for f in sequential.findings) == sorted(
            f.id for f in parallel.findings
        )
        assert sequential.compliance_score == parallel.compliance_score

    def test_partition_failure_is_isolated(self, memory_store, sequential_config):
        """Test a failing provider partition does not abort the run."""
        analyzer = SecurityAnalyzer(memory_store, sequential_config)

        with patch.object(
            SecurityAnalyzer, "analyze_partition", side_effect=RuntimeError("rule error")
        ):
            report = analyzer.analyze()

        statuses = {p.key: p.status for p in report.partitions}
        assert statuses["aws"] == PartitionStatus.FAILED
        assert statuses["consistency"] == PartitionStatus.COMPLETED
        assert report.findings == []

    def test_custom_rules(self, resource_factory, sequential_config):
        """Test the rule catalog can be replaced."""
        only_s3 = [r for r in SECURITY_RULES if r.service == "s3"]
        analyzer = SecurityAnalyzer(
            InMemoryResourceStore([resource_factory("i-1", public_access=True)]),
            sequential_config,
            rules=only_s3,
        )
        assert analyzer.analyze().findings == []


class TestConsistencyFindings:
    """Tests for consistency_findings."""

    def test_mixed_encryption_group(self, resource_factory):
        """Test a group with mixed encryption yields one finding on its first member."""
        resources = [
            resource_factory("b-1", service="s3", encrypted=True, tags={"Environment": "prod"}),
            resource_factory("b-2", service="s3", encrypted=False, tags={"Environment": "prod"}),
            resource_factory("b-3", service="s3", encrypted=False, tags={"Environment": "prod"}),
        ]

        findings = consistency_findings(resources)

        assert len(findings) == 1
        assert findings[0].id == "inconsistent-encryption-b-1"
        assert findings[0].severity == Severity.MEDIUM
        assert findings[0].metadata == {
            "group_size": 3,
            "encrypted_count": 1,
            "unencrypted_count": 2,
        }

    def test_uniform_groups(self, resource_factory):
        """Test uniformly encrypted or unencrypted groups are consistent."""
        resources = [
            resource_factory("b-1", service="s3", encrypted=True),
            resource_factory("b-2", service="s3", encrypted=True),
            resource_factory("d-1", service="rds", encrypted=False),
            resource_factory("d-2", service="rds", encrypted=False),
        ]
        assert consistency_findings(resources) == []

    def test_different_groups_are_not_compared(self, resource_factory):
        """Test resources with different group keys are independent."""
        resources = [
            resource_factory("b-1", service="s3", encrypted=True, tags={"Environment": "prod"}),
            resource_factory("b-2", service="s3", encrypted=False, tags={"Environment": "dev"}),
        ]
        assert consistency_findings(resources) == []


class TestScoring:
    """Tests for compliance_score and risk_score."""

    def test_empty(self):
        """Test scores of an empty finding set."""
        assert compliance_score([]) == 100.0
        assert risk_score([]) == 0.0

    def test_mixed_severities(self):
        """Test the mean-weight formula for a mixed finding set."""
        findings = [
            _finding(Severity.CRITICAL, 0),
            _finding(Severity.HIGH, 1),
            _finding(Severity.MEDIUM, 2),
        ]

        assert compliance_score(findings) == pytest.approx(100 - 17 / 3)
        assert risk_score(findings) == pytest.approx(7.0)

    def test_all_critical(self):
        """Test the worst case stays within bounds."""
        findings = [_finding(Severity.CRITICAL, i) for i in range(50)]

        assert compliance_score(findings) == pytest.approx(90.0)
        assert risk_score(findings) == pytest.approx(10.0)

    def test_info_only(self):
        """Test informational findings carry no risk."""
        findings = [_finding(Severity.INFO)]

        assert compliance_score(findings) == pytest.approx(99.5)
        assert risk_score(findings) == 0.0


class TestSecuritySummary:
    """Tests for SecuritySummary."""

    def test_counts_every_severity(self):
        """Test one finding of each severity."""
        findings = [_finding(severity, i) for i, severity in enumerate(Severity)]

        summary = SecuritySummary.from_findings(findings)

        assert summary.total_findings == 5
        assert summary.by_severity() == {
            "critical": 1, "high": 1, "medium": 1, "low": 1, "info": 1,
        }
        assert summary.compliance_fail == 5
        assert summary.compliance_pass == 0

    def test_to_dict(self):
        """Test dictionary conversion."""
        data = SecuritySummary.from_findings([_finding(Severity.HIGH)]).to_dict()
        assert data["total_findings"] == 1
        assert data["by_severity"]["high"] == 1
