"""
Integration tests for CloudRecon end-to-end workflows.

Tests cover:
- Composite analysis over a SQLite store
- Exporting the composite report to files
- The CLI against a SQLite database
- A mixed multi-cloud inventory with cross-provider references
"""

from __future__ import annotations

import csv
import json

import pytest
import yaml

from cloudrecon.analysis import AnalysisOrchestrator, PartitionStatus
from cloudrecon.cli import main
from cloudrecon.config import PerformanceConfig
from cloudrecon.export import export_report
from cloudrecon.models import Resource

pytestmark = pytest.mark.integration


@pytest.fixture
def multi_cloud_inventory():
    """Return a larger inventory spanning AWS, Azure and GCP."""
    return [
        Resource(
            id="i-web-1",
            provider="aws",
            service="ec2",
            type="instance",
            address="arn:aws:ec2:us-east-1:123456789012:instance/i-web-1",
            region="us-east-1",
            name="web-1",
            tags={"Environment": "prod", "Project": "shop"},
            configuration=json.dumps({
                "InstanceType": "m5.xlarge",
                "VpcId": "vpc-main",
                "SecurityGroupIds": ["sg-web"],
                "IamInstanceProfile": {"Arn": "arn:aws:iam::123456789012:instance-profile/web"},
            }),
            public_access=True,
            encrypted=True,
        ),
        Resource(
            id="vpc-main", provider="aws", service="ec2", type="vpc",
            region="us-east-1", name="main", encrypted=True,
        ),
        Resource(
            id="sg-web", provider="aws", service="ec2", type="security-group",
            region="us-east-1", name="web", encrypted=True,
        ),
        Resource(
            id="web", provider="aws", service="iam", type="instance-profile",
            address="arn:aws:iam::123456789012:instance-profile/web",
            name="web", encrypted=True,
        ),
        Resource(
            id="db-orders", provider="aws", service="rds", type="db-instance",
            region="us-east-1", name="orders",
            tags={"Environment": "prod", "Project": "shop"},
            configuration=json.dumps({
                "DBInstanceClass": "db.m5.large",
                "DBSubnetGroupName": "orders-subnets",
            }),
            encrypted=False,
        ),
        Resource(
            id="orders-subnets", provider="aws", service="rds", type="subnet-group",
            name="orders-subnets", encrypted=True,
        ),
        Resource(
            id="fn-export", provider="aws", service="lambda", type="function",
            name="export",
            configuration=json.dumps({
                "Role": "arn:aws:iam::123456789012:role/exporter",
                "Environment": {"Variables": {"EXPORT_TOKEN": "x"}},
            }),
            encrypted=True,
        ),
        Resource(
            id="exports", provider="gcp", service="storage", type="bucket",
            region="us-central1", name="exports",
            configuration=json.dumps({"replicationSource": "arn:aws:ec2:us-east-1:123456789012:instance/i-web-1"}),
            public_access=True, encrypted=True,
        ),
        Resource(
            id="vm-analytics", provider="azure", service="compute", type="virtual-machine",
            region="westeurope", name="analytics", encrypted=True,
            configuration=json.dumps({"hardwareProfile": {"vmSize": "Standard_D4s_v3"}}),
        ),
    ]


class TestSQLiteWorkflow:
    """Tests for the store-to-report workflow."""

    def test_full_analysis(self, populated_local_store, parallel_config):
        """Test a composite analysis read from SQLite."""
        report = AnalysisOrchestrator(populated_local_store, parallel_config).analyze_all()

        assert report.complete
        assert report.summary.total_resources == 5
        assert report.summary.total_dependencies == 3
        assert report.summary.security_findings == 2
        assert report.summary.total_monthly_cost == pytest.approx(76.0)

    def test_export_all_formats(self, populated_local_store, sequential_config, tmp_path):
        """Test writing the composite report in every format."""
        report = AnalysisOrchestrator(populated_local_store, sequential_config).analyze_all()

        json_text = export_report(report, "json", tmp_path / "report.json")
        yaml_text = export_report(report, "yaml", tmp_path / "report.yaml")
        csv_text = export_report(report, "csv", tmp_path / "report.csv")

        assert json.loads(json_text)["summary"] == yaml.safe_load(yaml_text)["summary"]
        rows = list(csv.DictReader((tmp_path / "report.csv").open(encoding="utf-8")))
        assert len(rows) == 10
        assert csv_text.startswith("record_type,")

    def test_cli_with_database(self, populated_local_store, tmp_path):
        """Test the CLI writes a YAML report from a database."""
        output = tmp_path / "out" / "report.yaml"

        exit_code = main([
            "analyze",
            "--db", populated_local_store.db_path,
            "--format", "yaml",
            "--output", str(output),
        ])

        assert exit_code == 0
        data = yaml.safe_load(output.read_text(encoding="utf-8"))
        assert data["summary"]["critical_findings"] == 1


class TestMultiCloudInventory:
    """Tests over a mixed AWS, Azure and GCP inventory."""

    @pytest.fixture
    def orchestrator(self, local_store, multi_cloud_inventory):
        local_store.store_resources(multi_cloud_inventory)
        config = PerformanceConfig(max_workers=4, batch_size=3, enable_parallel=True)
        return AnalysisOrchestrator(local_store, config)

    def test_dependencies(self, orchestrator):
        """Test configuration, group and cross-provider edges."""
        graph = orchestrator.analyze_dependencies()
        edges = {(d.source_id, d.target_id, d.relationship) for d in graph.dependencies}

        assert ("i-web-1", "vpc-main", "runs_in_vpc") in edges
        assert ("i-web-1", "sg-web", "uses_security_group") in edges
        assert ("i-web-1", "web", "assumes_role") in edges
        assert ("db-orders", "orders-subnets", "uses_subnet_group") in edges
        assert ("i-web-1", "db-orders", "cross_cloud_related") not in edges
        assert ("exports", "i-web-1", "cross_provider_reference") in edges
        assert all(p.status == PartitionStatus.COMPLETED for p in graph.partitions)

    def test_security(self, orchestrator):
        """Test findings across providers."""
        report = orchestrator.analyze_security()
        ids = {f.id for f in report.findings}

        assert ids == {
            "ec2-public-access-i-web-1",
            "rds-unencrypted-db-orders",
            "lambda-no-vpc-fn-export",
            "lambda-sensitive-env-fn-export",
            "gcp-storage-public-access-exports",
        }
        assert report.summary.critical_findings == 1
        assert 0.0 <= report.risk_score <= 100.0

    def test_cost(self, orchestrator):
        """Test estimates and optimizations across providers."""
        report = orchestrator.analyze_cost()
        by_id = {e.resource_id: e for e in report.estimates}

        assert by_id["i-web-1"].monthly_cost == 140.0
        assert by_id["db-orders"].monthly_cost == 120.0
        assert by_id["exports"].monthly_cost == 6.0
        assert by_id["vm-analytics"].monthly_cost == 25.0
        assert {o.id for o in report.optimizations} == {
            "rightsize-i-web-1",
            "reserved-instance-i-web-1",
        }

    def test_detailed_insights(self, orchestrator):
        """Test structured insights for the inventory."""
        insights = orchestrator.get_detailed_insights()

        assert "Security issues detected requiring attention" in insights.key_findings
        assert "Cost optimization recommendations available" in insights.key_findings
        assert "GCP Storage allows public access" in insights.security_posture.top_threats
