"""
Structured access to resource configuration payloads.

Discovery connectors store each resource's provider configuration as an
opaque payload, normally JSON. ConfigView parses it once and offers typed
lookups; the schema classes below read the handful of fields the analyzers
care about for a given (provider, service).

Payloads that are not a JSON object are kept as raw text. Structured
lookups on them return defaults, and key presence checks fall back to a
literal search of the raw text.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Iterator

from cloudrecon.models import Resource

logger = logging.getLogger(__name__)

# Environment variable names that suggest embedded credentials
SENSITIVE_NAME_MARKERS = ("password", "passwd", "secret", "token", "key", "credential")


class ConfigView:
    """
    Read-only view over a raw configuration payload.

    Attributes:
        raw: The payload text as stored
        data: Parsed JSON object, or None when the payload is not one
    """

    def __init__(self, raw: str) -> None:
        self.raw = raw or ""
        self.data: dict[str, Any] | None = None
        if self.raw.strip():
            try:
                parsed = json.loads(self.raw)
            except ValueError:
                logger.debug("Configuration payload is not JSON, using raw text")
            else:
                if isinstance(parsed, dict):
                    self.data = parsed

    @classmethod
    def of(cls, resource: Resource) -> ConfigView:
        """Build a view over a resource's configuration."""
        return cls(resource.configuration)

    @property
    def parsed(self) -> bool:
        """True when the payload is a JSON object."""
        return self.data is not None

    def has_key(self, key: str) -> bool:
        """
        Check whether a top-level key is present.

        Args:
            key: Top-level key name

        Returns:
            True if present (or, for unparsed payloads, if the raw text
            mentions the key)
        """
        if self.data is not None:
            return key in self.data
        return key in self.raw

    def get(self, *path: str, default: Any = None) -> Any:
        """
        Look up a value by key path.

        Args:
            *path: Successive keys to descend through

        Returns:
            The value found, or default
        """
        current: Any = self.data
        if current is None:
            return default
        for key in path:
            if not isinstance(current, dict) or key not in current:
                return default
            current = current[key]
        return current

    def strings_at(self, *path: str) -> list[str]:
        """
        Collect every string leaf below a key path.

        Args:
            *path: Successive keys to descend through

        Returns:
            Non-empty strings found in the value, in document order
        """
        return [s for s in _flatten_strings(self.get(*path)) if s]

    def walk_dicts(self) -> Iterator[dict[str, Any]]:
        """Yield every JSON object in the payload, depth first."""
        if self.data is None:
            return
        stack: list[Any] = [self.data]
        while stack:
            current = stack.pop()
            if isinstance(current, dict):
                yield current
                stack.extend(reversed(list(current.values())))
            elif isinstance(current, list):
                stack.extend(reversed(current))


def _flatten_strings(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, dict):
        result: list[str] = []
        for item in value.values():
            result.extend(_flatten_strings(item))
        return result
    if isinstance(value, list):
        result = []
        for item in value:
            result.extend(_flatten_strings(item))
        return result
    return []


# Where each sized (provider, service) keeps its size identifier; other
# services are priced at a flat rate
_SIZING_PATHS: dict[tuple[str, str], list[tuple[str, ...]]] = {
    ("aws", "ec2"): [("InstanceType",)],
    ("aws", "rds"): [("DBInstanceClass",)],
}


@dataclass(frozen=True)
class InstanceSizing:
    """
    Instance type or class identifier of a compute or database resource.

    Attributes:
        identifier: Lower-cased identifier, empty when absent
    """

    identifier: str = ""

    @classmethod
    def from_resource(cls, resource: Resource) -> InstanceSizing:
        view = ConfigView.of(resource)
        for path in _SIZING_PATHS.get((resource.provider, resource.service), []):
            value = view.get(*path)
            if isinstance(value, str) and value.strip():
                return cls(identifier=value.strip().lower())
        return cls()


@dataclass(frozen=True)
class LambdaFunctionConfig:
    """
    Fields of a Lambda function configuration.

    Attributes:
        in_vpc: Whether the function is attached to a VPC
        environment: Environment variables of the function
    """

    in_vpc: bool = False
    environment: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_resource(cls, resource: Resource) -> LambdaFunctionConfig:
        view = ConfigView.of(resource)
        if not view.parsed:
            return cls(in_vpc=view.has_key("VpcConfig"))

        vpc_config = view.get("VpcConfig")
        if isinstance(vpc_config, dict):
            in_vpc = bool(
                vpc_config.get("VpcId")
                or vpc_config.get("SubnetIds")
                or vpc_config.get("SecurityGroupIds")
            )
        else:
            in_vpc = bool(vpc_config)

        variables = view.get("Environment", "Variables", default={})
        if not isinstance(variables, dict):
            variables = {}

        return cls(
            in_vpc=in_vpc,
            environment={str(k): str(v) for k, v in variables.items()},
        )

    def sensitive_variables(self) -> list[str]:
        """Names of environment variables that look like credentials."""
        return sorted(
            name
            for name in self.environment
            if any(marker in name.lower() for marker in SENSITIVE_NAME_MARKERS)
        )


@dataclass(frozen=True)
class IAMPolicyConfig:
    """
    Permission summary of an IAM policy, role or user configuration.

    Attributes:
        allows_all_resources: An Allow statement applies to Resource "*"
    """

    allows_all_resources: bool = False

    @classmethod
    def from_resource(cls, resource: Resource) -> IAMPolicyConfig:
        view = ConfigView.of(resource)
        if not view.parsed:
            compact = view.raw.replace(" ", "")
            return cls(
                allows_all_resources='"Effect":"Allow"' in compact
                and '"Resource":"*"' in compact
            )

        for statement in view.walk_dicts():
            if statement.get("Effect") != "Allow":
                continue
            resources = statement.get("Resource")
            if resources == "*" or (isinstance(resources, list) and "*" in resources):
                return cls(allows_all_resources=True)
        return cls()
