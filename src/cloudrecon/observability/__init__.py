"""
Observability for CloudRecon.

Provides logging configuration and analysis lifecycle events.
"""

from cloudrecon.observability.logging import (
    AnalysisLogger,
    HumanReadableFormatter,
    StructuredFormatter,
    configure_logging,
    configure_logging_from_env,
    get_logger,
)

__all__ = [
    "AnalysisLogger",
    "HumanReadableFormatter",
    "StructuredFormatter",
    "configure_logging",
    "configure_logging_from_env",
    "get_logger",
]
