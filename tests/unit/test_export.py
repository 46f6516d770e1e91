"""
Tests for report export.

Tests cover:
- JSON, YAML and CSV output of composite and single reports
- Format lookup
- Writing to files
"""

from __future__ import annotations

import csv
import io
import json

import pytest
import yaml

from cloudrecon.analysis import AnalysisOrchestrator
from cloudrecon.export import (
    CSVExporter,
    ExportFormat,
    JSONExporter,
    YAMLExporter,
    export_report,
    get_exporter,
)


@pytest.fixture
def report(memory_store, sequential_config):
    return AnalysisOrchestrator(memory_store, sequential_config).analyze_all()


class TestExportFormat:
    """Tests for ExportFormat."""

    def test_from_string(self):
        assert ExportFormat.from_string("YAML") == ExportFormat.YAML

    def test_unknown(self):
        with pytest.raises(ValueError, match="Unknown export format"):
            ExportFormat.from_string("xml")

    def test_get_exporter(self):
        assert isinstance(get_exporter("json"), JSONExporter)
        assert isinstance(get_exporter(ExportFormat.CSV), CSVExporter)
        assert get_exporter("yaml").format == ExportFormat.YAML


class TestJSONExporter:
    """Tests for JSONExporter."""

    def test_composite_report(self, report):
        """Test the composite report is valid JSON."""
        data = json.loads(JSONExporter().export(report))

        assert data["summary"]["total_resources"] == 5
        assert len(data["dependency_graph"]["dependencies"]) == 3
        assert data["security_report"]["summary"]["by_severity"]["critical"] == 1

    def test_single_report(self, report):
        """Test a single analyzer report exports on its own."""
        data = json.loads(export_report(report.cost_report, "json"))
        assert data["total_monthly_cost"] == pytest.approx(76.0)


class TestYAMLExporter:
    """Tests for YAMLExporter."""

    def test_composite_report(self, report):
        """Test YAML output parses back to the same structure."""
        data = yaml.safe_load(YAMLExporter().export(report))

        assert data["summary"]["security_findings"] == 2
        assert isinstance(data["timestamp"], str)
        assert data["errors"] == {}


class TestCSVExporter:
    """Tests for CSVExporter."""

    def test_composite_report(self, report):
        """Test one row per finding, estimate and dependency."""
        rows = list(csv.DictReader(io.StringIO(CSVExporter().export(report))))

        counts: dict[str, int] = {}
        for row in rows:
            counts[row["record_type"]] = counts.get(row["record_type"], 0) + 1
        assert counts == {"dependency": 3, "finding": 2, "estimate": 5}

        finding = next(r for r in rows if r["id"] == "s3-public-access-assets-bucket")
        assert finding["severity"] == "critical"
        assert finding["target_id"] == ""

    def test_single_report(self, report):
        """Test a single security report."""
        rows = list(csv.DictReader(io.StringIO(CSVExporter().export(report.security_report))))

        assert {r["record_type"] for r in rows} == {"finding"}
        assert len(rows) == 2

    def test_dependency_rows(self, report):
        """Test dependency rows carry source, target and relationship."""
        output = export_report(report.dependency_graph, "csv")
        rows = list(csv.DictReader(io.StringIO(output)))

        vpc = next(r for r in rows if r["category"] == "runs_in_vpc")
        assert vpc["resource_id"] == "i-0abc123"
        assert vpc["target_id"] == "vpc-111"
        assert vpc["confidence"] == "0.95"


class TestExportReport:
    """Tests for export_report."""

    def test_writes_file(self, report, tmp_path):
        """Test output_path writes the serialized report."""
        path = tmp_path / "reports" / "analysis.yaml"

        text = export_report(report, "yaml", path)

        assert path.read_text(encoding="utf-8") == text
        assert yaml.safe_load(text)["summary"]["total_resources"] == 5

    def test_unknown_format(self, report):
        with pytest.raises(ValueError):
            export_report(report, "xml")
