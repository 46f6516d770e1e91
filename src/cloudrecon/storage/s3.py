"""
S3-based resource store.

This module provides S3ResourceStore, which keeps a resource snapshot as
a JSON Lines object in Amazon S3 (one resource per line).
"""

from __future__ import annotations

import json
import logging
from typing import Any, Iterable

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from cloudrecon.models import Resource, ResourceCollection
from cloudrecon.storage.base import (
    ResourcePredicate,
    ResourceStore,
    StorageError,
    apply_predicate,
)

logger = logging.getLogger(__name__)


class S3ResourceStore(ResourceStore):
    """
    S3-backed resource store.

    Attributes:
        bucket: S3 bucket name
        key: Object key of the JSON Lines snapshot
        region: AWS region
    """

    def __init__(
        self,
        bucket: str,
        key: str = "cloudrecon/resources.jsonl",
        region: str = "us-east-1",
    ) -> None:
        """
        Initialize the S3 store.

        Args:
            bucket: S3 bucket name
            key: Object key of the snapshot (default: "cloudrecon/resources.jsonl")
            region: AWS region (default: "us-east-1")
        """
        if not bucket:
            raise ValueError("S3ResourceStore requires a bucket name")
        self.bucket = bucket
        self.key = key.lstrip("/")
        self.region = region
        self._client: Any = None

    def _get_s3_client(self) -> Any:
        """Get or create S3 client."""
        if self._client is None:
            self._client = boto3.client("s3", region_name=self.region)
        return self._client

    def _location(self) -> str:
        return f"s3://{self.bucket}/{self.key}"

    def _read_jsonl(self) -> list[dict[str, Any]]:
        """
        Read the snapshot object.

        Returns:
            Parsed resource dictionaries, empty if the object doesn't exist
        """
        client = self._get_s3_client()

        try:
            response = client.get_object(Bucket=self.bucket, Key=self.key)
            body = response["Body"].read().decode("utf-8")
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "Unknown")
            if error_code in ("NoSuchKey", "404"):
                logger.warning(f"No resource snapshot at {self._location()}")
                return []
            if error_code == "AccessDenied":
                raise StorageError(
                    f"Access denied when reading {self._location()}"
                ) from e
            raise StorageError(f"Failed to read {self._location()}: {error_code}") from e
        except BotoCoreError as e:
            raise StorageError(f"Failed to read {self._location()}: {e}") from e

        items = []
        for line in body.splitlines():
            if line.strip():
                items.append(json.loads(line))
        return items

    def get_resources(
        self, predicate: ResourcePredicate | None = None
    ) -> ResourceCollection:
        """Fetch all resources matching a predicate."""
        resources = [Resource.from_dict(item) for item in self._read_jsonl()]
        return apply_predicate(resources, predicate)

    def store_resources(self, resources: Iterable[Resource]) -> int:
        """
        Merge resources into the snapshot object.

        Existing resources with the same id are replaced.
        """
        merged = {item["id"]: item for item in self._read_jsonl()}
        written = 0
        for resource in resources:
            merged[resource.id] = resource.to_dict()
            written += 1

        body = "\n".join(json.dumps(item, default=str) for item in merged.values())
        client = self._get_s3_client()
        try:
            client.put_object(
                Bucket=self.bucket,
                Key=self.key,
                Body=body.encode("utf-8"),
                ContentType="application/x-ndjson",
            )
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "Unknown")
            raise StorageError(
                f"Failed to write {self._location()}: {error_code}"
            ) from e

        return written
