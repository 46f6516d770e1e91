"""
Resource data model for CloudRecon.

This module defines the Resource class representing one discovered cloud
infrastructure object and ResourceCollection for managing a snapshot of
resources.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterator

# Tags that place resources into the same logical group
GROUP_TAG_KEYS = ("Environment", "Project")


@dataclass(frozen=True)
class Resource:
    """
    Represents a discovered cloud resource.

    Resources are immutable snapshots produced by the discovery connectors
    and persisted by a resource store. The analysis engine only reads them.

    Attributes:
        id: Unique resource identifier
        address: ARN-like address of the resource
        provider: Cloud provider name (e.g., "aws", "azure", "gcp")
        account_id: Cloud account, subscription or project identifier
        region: Region where the resource lives
        service: Provider service (e.g., "ec2", "storage")
        type: Resource type within the service (e.g., "instance")
        name: Human-readable name
        tags: Resource tags as key-value pairs
        configuration: Raw provider-specific configuration payload
        public_access: Whether the resource is reachable from the internet
        encrypted: Whether data at rest is encrypted
        compliance: Compliance flags raised during discovery
        monthly_cost: Known monthly cost in USD, 0.0 when unknown
        created_at: When the resource was created
        updated_at: When the resource was last modified
        discovered_at: When the resource was discovered
        discovery_method: How the resource was discovered
    """

    id: str
    provider: str
    service: str
    type: str
    address: str = ""
    account_id: str = ""
    region: str = ""
    name: str = ""
    tags: dict[str, str] = field(default_factory=dict)
    configuration: str = ""
    public_access: bool = False
    encrypted: bool = False
    compliance: list[str] = field(default_factory=list)
    monthly_cost: float = 0.0
    created_at: datetime | None = None
    updated_at: datetime | None = None
    discovered_at: datetime | None = None
    discovery_method: str = ""

    def get_tag(self, key: str, default: str = "") -> str:
        """
        Get a tag value by key.

        Args:
            key: Tag key to look up
            default: Default value if tag not found

        Returns:
            Tag value or default
        """
        return self.tags.get(key, default)

    def group_key(self) -> str:
        """
        Build the grouping key shared by related resources.

        The key is provider and service, extended with a labelled segment
        for each of the Environment and Project tags that is present, so an
        Environment value never collides with an equal Project value.

        Returns:
            Key such as "aws:ec2:environment=prod:project=billing"
        """
        key = f"{self.provider}:{self.service}"
        for tag in GROUP_TAG_KEYS:
            if tag in self.tags:
                key += f":{tag.lower()}={self.tags[tag]}"
        return key

    def to_dict(self) -> dict[str, Any]:
        """
        Convert resource to dictionary representation.

        Returns:
            Dictionary with all resource fields, suitable for JSON serialization
        """
        return {
            "id": self.id,
            "address": self.address,
            "provider": self.provider,
            "account_id": self.account_id,
            "region": self.region,
            "service": self.service,
            "type": self.type,
            "name": self.name,
            "tags": self.tags,
            "configuration": self.configuration,
            "public_access": self.public_access,
            "encrypted": self.encrypted,
            "compliance": self.compliance,
            "monthly_cost": self.monthly_cost,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "discovered_at": self.discovered_at.isoformat()
            if self.discovered_at
            else None,
            "discovery_method": self.discovery_method,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Resource:
        """
        Create a Resource from a dictionary.

        The configuration may be given as raw text or as a mapping, which
        is serialized to JSON. "arn" is accepted in place of "address".

        Args:
            data: Dictionary with resource fields

        Returns:
            New Resource instance
        """
        configuration = data.get("configuration", "")
        if configuration is None:
            configuration = ""
        elif not isinstance(configuration, str):
            configuration = json.dumps(configuration)

        return cls(
            id=data["id"],
            address=data.get("address") or data.get("arn", ""),
            provider=data.get("provider", ""),
            account_id=data.get("account_id", ""),
            region=data.get("region", ""),
            service=data.get("service", ""),
            type=data.get("type", ""),
            name=data.get("name", ""),
            tags=dict(data.get("tags") or {}),
            configuration=configuration,
            public_access=bool(data.get("public_access", False)),
            encrypted=bool(data.get("encrypted", False)),
            compliance=list(data.get("compliance") or []),
            monthly_cost=float(data.get("monthly_cost") or 0.0),
            created_at=_parse_datetime(data.get("created_at")),
            updated_at=_parse_datetime(data.get("updated_at")),
            discovered_at=_parse_datetime(data.get("discovered_at")),
            discovery_method=data.get("discovery_method", ""),
        )


def _parse_datetime(value: Any) -> datetime | None:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


class ResourceCollection:
    """
    A snapshot of Resource objects with grouping helpers.

    The order of resources is the order in which the store returned
    them and is preserved by every helper.

    Attributes:
        resources: List of Resource objects in this collection
    """

    def __init__(self, resources: list[Resource] | None = None) -> None:
        """
        Initialize collection with optional list of resources.

        Args:
            resources: Initial list of resources (defaults to empty list)
        """
        self._resources: list[Resource] = (
            list(resources) if resources is not None else []
        )

    @property
    def resources(self) -> list[Resource]:
        """Get the list of resources."""
        return self._resources

    def __len__(self) -> int:
        return len(self._resources)

    def __iter__(self) -> Iterator[Resource]:
        return iter(self._resources)

    def __getitem__(self, index: int) -> Resource:
        return self._resources[index]

    def ids(self) -> list[str]:
        """Return resource ids in collection order."""
        return [r.id for r in self._resources]

    def group_by_key(self) -> dict[str, list[Resource]]:
        """
        Group resources by Resource.group_key().

        Returns:
            Ordered mapping of group key to member resources
        """
        groups: dict[str, list[Resource]] = {}
        for resource in self._resources:
            groups.setdefault(resource.group_key(), []).append(resource)
        return groups

    def to_list(self) -> list[dict[str, Any]]:
        """Convert collection to a list of dictionaries."""
        return [r.to_dict() for r in self._resources]

    @classmethod
    def from_list(cls, data: list[dict[str, Any]]) -> ResourceCollection:
        """Create a collection from a list of dictionaries."""
        return cls([Resource.from_dict(item) for item in data])
