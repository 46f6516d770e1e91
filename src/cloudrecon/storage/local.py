"""
SQLite-based local resource store.

This module provides LocalResourceStore, a single-table SQLite store
suitable for development and single-user scenarios.
"""

from __future__ import annotations

import json
import logging
import os
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable

from cloudrecon.models import Resource, ResourceCollection
from cloudrecon.storage.base import (
    ResourcePredicate,
    ResourceStore,
    StorageError,
    apply_predicate,
)

logger = logging.getLogger(__name__)

_COLUMNS = (
    "id",
    "address",
    "provider",
    "account_id",
    "region",
    "service",
    "type",
    "name",
    "tags",
    "configuration",
    "public_access",
    "encrypted",
    "compliance",
    "monthly_cost",
    "created_at",
    "updated_at",
    "discovered_at",
    "discovery_method",
)


class LocalResourceStore(ResourceStore):
    """
    SQLite-based resource store.

    Resources live in one "resources" table keyed by id. Tags and
    compliance flags are stored as JSON text and the configuration payload
    is stored verbatim.

    Attributes:
        db_path: Path to the SQLite database file
    """

    def __init__(self, db_path: str = "~/.cloudrecon/cloudrecon.db") -> None:
        """
        Initialize the local store.

        Creates the database directory and file if they don't exist,
        and initializes the database schema.

        Args:
            db_path: Path to the SQLite database file.
                     Supports ~ for home directory.
        """
        self.db_path = os.path.expanduser(db_path)

        db_dir = os.path.dirname(self.db_path)
        if db_dir:
            Path(db_dir).mkdir(parents=True, exist_ok=True)

        self._init_db()

    def _get_connection(self) -> sqlite3.Connection:
        """Get a database connection."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        """Initialize database schema."""
        conn = self._get_connection()
        try:
            cursor = conn.cursor()
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS resources (
                    id TEXT PRIMARY KEY,
                    address TEXT,
                    provider TEXT NOT NULL,
                    account_id TEXT,
                    region TEXT,
                    service TEXT NOT NULL,
                    type TEXT NOT NULL,
                    name TEXT,
                    tags TEXT,
                    configuration TEXT,
                    public_access INTEGER DEFAULT 0,
                    encrypted INTEGER DEFAULT 0,
                    compliance TEXT,
                    monthly_cost REAL DEFAULT 0,
                    created_at TEXT,
                    updated_at TEXT,
                    discovered_at TEXT,
                    discovery_method TEXT
                )
            """)
            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_resources_provider
                ON resources(provider)
            """)
            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_resources_service
                ON resources(service)
            """)
            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_resources_region
                ON resources(region)
            """)
            conn.commit()
        finally:
            conn.close()

    def _serialize_resource(self, resource: Resource) -> tuple[Any, ...]:
        """Serialize a resource for database insertion."""
        return (
            resource.id,
            resource.address,
            resource.provider,
            resource.account_id,
            resource.region,
            resource.service,
            resource.type,
            resource.name,
            json.dumps(resource.tags),
            resource.configuration,
            int(resource.public_access),
            int(resource.encrypted),
            json.dumps(resource.compliance),
            resource.monthly_cost,
            resource.created_at.isoformat() if resource.created_at else None,
            resource.updated_at.isoformat() if resource.updated_at else None,
            resource.discovered_at.isoformat() if resource.discovered_at else None,
            resource.discovery_method,
        )

    def _deserialize_resource(self, row: sqlite3.Row) -> Resource:
        """Deserialize a resource from a database row."""
        return Resource(
            id=row["id"],
            address=row["address"] or "",
            provider=row["provider"],
            account_id=row["account_id"] or "",
            region=row["region"] or "",
            service=row["service"],
            type=row["type"],
            name=row["name"] or "",
            tags=json.loads(row["tags"]) if row["tags"] else {},
            configuration=row["configuration"] or "",
            public_access=bool(row["public_access"]),
            encrypted=bool(row["encrypted"]),
            compliance=json.loads(row["compliance"]) if row["compliance"] else [],
            monthly_cost=row["monthly_cost"] or 0.0,
            created_at=_parse_timestamp(row["created_at"]),
            updated_at=_parse_timestamp(row["updated_at"]),
            discovered_at=_parse_timestamp(row["discovered_at"]),
            discovery_method=row["discovery_method"] or "",
        )

    def store_resources(self, resources: Iterable[Resource]) -> int:
        """Insert or replace resources keyed by id."""
        rows = [self._serialize_resource(r) for r in resources]
        placeholders = ", ".join("?" for _ in _COLUMNS)

        try:
            conn = self._get_connection()
        except sqlite3.Error as e:
            raise StorageError(f"Cannot open {self.db_path}: {e}") from e

        try:
            conn.executemany(
                f"INSERT OR REPLACE INTO resources ({', '.join(_COLUMNS)}) "
                f"VALUES ({placeholders})",
                rows,
            )
            conn.commit()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to store resources: {e}") from e
        finally:
            conn.close()

        logger.debug(f"Stored {len(rows)} resources in {self.db_path}")
        return len(rows)

    def get_resources(
        self, predicate: ResourcePredicate | None = None
    ) -> ResourceCollection:
        """Fetch all resources matching a predicate, ordered by rowid."""
        try:
            conn = self._get_connection()
        except sqlite3.Error as e:
            raise StorageError(f"Cannot open {self.db_path}: {e}") from e

        try:
            cursor = conn.execute("SELECT * FROM resources ORDER BY rowid")
            resources = [self._deserialize_resource(row) for row in cursor.fetchall()]
        except sqlite3.Error as e:
            raise StorageError(f"Failed to read resources: {e}") from e
        finally:
            conn.close()

        return apply_predicate(resources, predicate)

    def delete_resource(self, resource_id: str) -> bool:
        """
        Delete a resource.

        Args:
            resource_id: Id of the resource to delete

        Returns:
            True if a resource was deleted
        """
        conn = self._get_connection()
        try:
            cursor = conn.execute("DELETE FROM resources WHERE id = ?", (resource_id,))
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    def count(self) -> int:
        """Return the number of stored resources."""
        conn = self._get_connection()
        try:
            return conn.execute("SELECT COUNT(*) FROM resources").fetchone()[0]
        finally:
            conn.close()


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value)
