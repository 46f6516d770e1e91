"""
Data models for CloudRecon.

This package provides the core data models consumed by the analysis engine:

- Resource: A discovered cloud infrastructure object
- ResourceCollection: An ordered snapshot of resources with partition helpers
- Severity: Severity levels used by security findings
"""

from cloudrecon.models.resource import (
    GROUP_TAG_KEYS,
    Resource,
    ResourceCollection,
)
from cloudrecon.models.severity import Severity

__all__ = [
    "GROUP_TAG_KEYS",
    "Resource",
    "ResourceCollection",
    "Severity",
]
