"""
Exceptions raised by the CloudRecon analysis engine.

Only SnapshotFetchError ever reaches callers of the orchestrator. The
other errors are contained where they originate and show up as gaps in
the resulting reports.
"""

from __future__ import annotations


class AnalysisError(Exception):
    """Base analysis error."""
    pass


class SnapshotFetchError(AnalysisError):
    """The resource snapshot could not be read from the store."""
    pass


class PartitionAnalysisError(AnalysisError):
    """One provider partition failed inside an analyzer."""

    def __init__(self, analyzer: str, partition: str, message: str) -> None:
        super().__init__(f"{analyzer} analysis failed for {partition}: {message}")
        self.analyzer = analyzer
        self.partition = partition


class UnknownProviderCostError(AnalysisError):
    """No cost estimator exists for the resource's provider."""

    def __init__(self, provider: str, resource_id: str) -> None:
        super().__init__(
            f"No cost estimator for provider '{provider}' (resource {resource_id})"
        )
        self.provider = provider
        self.resource_id = resource_id
