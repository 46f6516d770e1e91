"""
Report export for CloudRecon.

Serializes analysis reports as JSON, YAML or CSV.
"""

from __future__ import annotations

from pathlib import Path

from cloudrecon.export.base import BaseExporter, Exportable, ExportFormat
from cloudrecon.export.exporters import CSVExporter, JSONExporter, YAMLExporter

__all__ = [
    "BaseExporter",
    "ExportFormat",
    "CSVExporter",
    "JSONExporter",
    "YAMLExporter",
    "get_exporter",
    "export_report",
]

_EXPORTERS: dict[ExportFormat, type[BaseExporter]] = {
    ExportFormat.JSON: JSONExporter,
    ExportFormat.YAML: YAMLExporter,
    ExportFormat.CSV: CSVExporter,
}


def get_exporter(fmt: str | ExportFormat) -> BaseExporter:
    """
    Get the exporter for a format.

    Raises:
        ValueError: If the format is not supported
    """
    if isinstance(fmt, str):
        fmt = ExportFormat.from_string(fmt)
    return _EXPORTERS[fmt]()


def export_report(
    report: Exportable,
    fmt: str | ExportFormat = "json",
    output_path: Path | str | None = None,
) -> str:
    """
    Serialize a report, optionally writing it to a file.

    Args:
        report: Composite report or any single analyzer report
        fmt: "json", "yaml" or "csv"
        output_path: File to write the serialized report to

    Returns:
        Serialized report

    Raises:
        ValueError: If the format is not supported

    Example:
        from cloudrecon.export import export_report

        text = export_report(orchestrator.analyze_all(), "yaml")
    """
    exporter = get_exporter(fmt)
    if output_path is not None:
        return exporter.write(report, output_path).read_text(encoding="utf-8")
    return exporter.export(report)
