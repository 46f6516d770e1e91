"""
CloudRecon - Cloud inventory analysis

Analyzes a snapshot of discovered cloud resources (AWS, Azure, GCP) and
answers three questions about it:

- Dependencies: Which resources rely on which others?
- Security: Which resources are misconfigured, and how badly?
- Cost: What does it cost per month, and where can it be cut?

Quick Start:
    >>> from cloudrecon.analysis import AnalysisOrchestrator
    >>> from cloudrecon.storage import get_store
    >>>
    >>> orchestrator = AnalysisOrchestrator(get_store("local"))
    >>> report = orchestrator.analyze_all()
    >>> print(f"Found {report.summary.security_findings} security issues")
"""

from __future__ import annotations

__version__ = "0.1.0"
