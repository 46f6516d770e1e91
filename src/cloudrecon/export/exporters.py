"""
JSON, YAML and CSV exporters for CloudRecon reports.
"""

from __future__ import annotations

import csv
import io
import json
from typing import Any, Iterator

import yaml

from cloudrecon.export.base import BaseExporter, Exportable, ExportFormat

CSV_COLUMNS = [
    "record_type",
    "id",
    "resource_id",
    "target_id",
    "provider",
    "service",
    "category",
    "severity",
    "title",
    "monthly_cost",
    "potential_savings",
    "confidence",
]


class JSONExporter(BaseExporter):
    """Exports reports as indented JSON."""

    @property
    def format(self) -> ExportFormat:
        return ExportFormat.JSON

    def export(self, report: Exportable) -> str:
        return json.dumps(report.to_dict(), indent=2, default=str)


class YAMLExporter(BaseExporter):
    """Exports reports as YAML."""

    @property
    def format(self) -> ExportFormat:
        return ExportFormat.YAML

    def export(self, report: Exportable) -> str:
        # Round-trip through JSON so datetimes and enums become plain scalars
        data = json.loads(json.dumps(report.to_dict(), default=str))
        return yaml.safe_dump(data, sort_keys=False, default_flow_style=False)


class CSVExporter(BaseExporter):
    """
    Exports reports as one CSV table.

    Every finding, cost estimate, optimization and dependency becomes one
    row; the record_type column tells them apart. Columns that do not
    apply to a record type are left empty.
    """

    @property
    def format(self) -> ExportFormat:
        return ExportFormat.CSV

    def export(self, report: Exportable) -> str:
        output = io.StringIO()
        writer = csv.DictWriter(output, fieldnames=CSV_COLUMNS, lineterminator="\n")
        writer.writeheader()
        for row in _rows(report):
            writer.writerow({column: row.get(column, "") for column in CSV_COLUMNS})
        return output.getvalue()


def _sections(report: Any) -> Iterator[Any]:
    # A composite report carries one attribute per analyzer section
    found = False
    for attribute in ("dependency_graph", "security_report", "cost_report"):
        section = getattr(report, attribute, None)
        if section is not None:
            found = True
            yield section
    if not found:
        yield report


def _rows(report: Any) -> Iterator[dict[str, Any]]:
    for section in _sections(report):
        for finding in getattr(section, "findings", []):
            yield {
                "record_type": "finding",
                "id": finding.id,
                "resource_id": finding.resource_id,
                "provider": finding.provider,
                "service": finding.service,
                "category": finding.finding_type,
                "severity": finding.severity.value,
                "title": finding.title,
            }

        for estimate in getattr(section, "estimates", []):
            yield {
                "record_type": "estimate",
                "id": estimate.resource_id,
                "resource_id": estimate.resource_id,
                "provider": estimate.provider,
                "service": estimate.service,
                "category": estimate.pricing_model,
                "monthly_cost": f"{estimate.monthly_cost:.2f}",
                "confidence": estimate.confidence,
            }

        for optimization in getattr(section, "optimizations", []):
            yield {
                "record_type": "optimization",
                "id": optimization.id,
                "resource_id": optimization.resource_id,
                "provider": optimization.provider,
                "service": optimization.service,
                "category": optimization.category.value,
                "severity": optimization.priority.value,
                "title": optimization.title,
                "monthly_cost": f"{optimization.current_cost:.2f}",
                "potential_savings": f"{optimization.potential_savings:.2f}",
            }

        for dependency in getattr(section, "dependencies", []):
            yield {
                "record_type": "dependency",
                "id": f"{dependency.source_id}:{dependency.relationship}:{dependency.target_id}",
                "resource_id": dependency.source_id,
                "target_id": dependency.target_id,
                "category": dependency.relationship,
                "confidence": dependency.confidence,
            }
