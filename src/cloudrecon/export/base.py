"""
Base export functionality for CloudRecon.

Exporters turn analysis reports into text. Any report object with a
to_dict() method can be exported; the CSV exporter additionally reads the
findings, estimates, optimizations and dependencies it finds on it.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from typing import Any, Protocol


class ExportFormat(Enum):
    """Supported export formats."""

    JSON = "json"
    YAML = "yaml"
    CSV = "csv"

    @classmethod
    def from_string(cls, value: str) -> ExportFormat:
        """
        Create ExportFormat from string value.

        Raises:
            ValueError: If value is not a supported format
        """
        value_lower = value.lower()
        for export_format in cls:
            if export_format.value == value_lower:
                return export_format
        supported = ", ".join(f.value for f in cls)
        raise ValueError(f"Unknown export format: {value}. Supported formats: {supported}")


class Exportable(Protocol):
    def to_dict(self) -> dict[str, Any]: ...


class BaseExporter(ABC):
    """Abstract base class for report exporters."""

    @property
    @abstractmethod
    def format(self) -> ExportFormat:
        """Format produced by this exporter."""
        pass

    @abstractmethod
    def export(self, report: Exportable) -> str:
        """
        Serialize a report.

        Args:
            report: Report to serialize

        Returns:
            Serialized report text
        """
        pass

    def write(self, report: Exportable, output_path: Path | str) -> Path:
        """
        Serialize a report to a file.

        Parent directories are created as needed.

        Returns:
            Path written
        """
        path = Path(output_path).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.export(report), encoding="utf-8")
        return path
