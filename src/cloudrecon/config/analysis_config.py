"""
Analysis configuration for CloudRecon.

Provides configuration management for the analysis engine: worker pool
sizing, snapshot caching, the resource store to read from, and logging.
Configuration is always passed explicitly to the components that use it.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

CACHE_POLICIES = ("per_call", "none")
STORAGE_BACKENDS = ("local", "memory", "s3")
LOG_FORMATS = ("human", "json")


def _cpu_count() -> int:
    return os.cpu_count() or 1


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class PerformanceConfig:
    """
    Configuration for concurrent analysis.

    Attributes:
        max_workers: Upper bound on concurrently analyzed partitions
        batch_size: Results appended to shared accumulators per lock hold
        cache_timeout_seconds: Maximum age of a cached resource snapshot
        enable_parallel: Use a worker pool instead of sequential execution
        cache_policy: "per_call" shares one snapshot per orchestrator call,
            "none" lets every analyzer read the store itself
    """

    max_workers: int = field(default_factory=_cpu_count)
    batch_size: int = 100
    cache_timeout_seconds: float = 300.0
    enable_parallel: bool = True
    cache_policy: str = "per_call"

    def __post_init__(self) -> None:
        if self.max_workers < 1:
            raise ValueError(f"max_workers must be positive, got {self.max_workers}")
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {self.batch_size}")
        if self.cache_timeout_seconds < 0:
            raise ValueError("cache_timeout_seconds must not be negative")
        if self.cache_policy not in CACHE_POLICIES:
            raise ValueError(
                f"Unknown cache policy: {self.cache_policy}. "
                f"Supported policies: {', '.join(CACHE_POLICIES)}"
            )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "max_workers": self.max_workers,
            "batch_size": self.batch_size,
            "cache_timeout_seconds": self.cache_timeout_seconds,
            "enable_parallel": self.enable_parallel,
            "cache_policy": self.cache_policy,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PerformanceConfig:
        """Create from dictionary."""
        return cls(
            max_workers=int(data.get("max_workers") or _cpu_count()),
            batch_size=int(data.get("batch_size", 100)),
            cache_timeout_seconds=float(data.get("cache_timeout_seconds", 300.0)),
            enable_parallel=bool(data.get("enable_parallel", True)),
            cache_policy=data.get("cache_policy", "per_call"),
        )


@dataclass
class StorageConfig:
    """Configuration for the resource store."""

    backend: str = "local"
    db_path: str = "~/.cloudrecon/cloudrecon.db"
    s3_bucket: str = ""
    s3_key: str = "cloudrecon/resources.jsonl"
    s3_region: str = "us-east-1"

    def __post_init__(self) -> None:
        if self.backend not in STORAGE_BACKENDS:
            raise ValueError(
                f"Unknown storage backend: {self.backend}. "
                f"Supported backends: {', '.join(STORAGE_BACKENDS)}"
            )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "backend": self.backend,
            "db_path": self.db_path,
            "s3_bucket": self.s3_bucket,
            "s3_key": self.s3_key,
            "s3_region": self.s3_region,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StorageConfig:
        """Create from dictionary."""
        return cls(
            backend=data.get("backend", "local"),
            db_path=data.get("db_path", "~/.cloudrecon/cloudrecon.db"),
            s3_bucket=data.get("s3_bucket", ""),
            s3_key=data.get("s3_key", "cloudrecon/resources.jsonl"),
            s3_region=data.get("s3_region", "us-east-1"),
        )

    def store_kwargs(self) -> dict[str, Any]:
        """Keyword arguments for cloudrecon.storage.get_store()."""
        if self.backend == "local":
            return {"db_path": self.db_path}
        if self.backend == "s3":
            return {"bucket": self.s3_bucket, "key": self.s3_key, "region": self.s3_region}
        return {}


@dataclass
class LoggingConfig:
    """Configuration for log output."""

    level: str = "INFO"
    format: str = "human"

    def __post_init__(self) -> None:
        if self.format not in LOG_FORMATS:
            raise ValueError(f"Unknown log format: {self.format}")

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {"level": self.level, "format": self.format}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LoggingConfig:
        """Create from dictionary."""
        return cls(
            level=data.get("level", "INFO"),
            format=data.get("format", "human"),
        )


@dataclass
class AnalysisConfig:
    """
    Complete analysis engine configuration.

    Attributes:
        performance: Worker pool and cache settings
        storage: Resource store settings
        logging: Log output settings
    """

    performance: PerformanceConfig = field(default_factory=PerformanceConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "performance": self.performance.to_dict(),
            "storage": self.storage.to_dict(),
            "logging": self.logging.to_dict(),
        }

    def to_json(self, indent: int = 2) -> str:
        """Convert to JSON string."""
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AnalysisConfig:
        """Create from dictionary."""
        data = data or {}
        return cls(
            performance=PerformanceConfig.from_dict(data.get("performance", {})),
            storage=StorageConfig.from_dict(data.get("storage", {})),
            logging=LoggingConfig.from_dict(data.get("logging", {})),
        )

    @classmethod
    def from_json(cls, json_str: str) -> AnalysisConfig:
        """Create from JSON string."""
        return cls.from_dict(json.loads(json_str))

    @classmethod
    def from_file(cls, path: str) -> AnalysisConfig:
        """Load configuration from a JSON or YAML file."""
        path = os.path.expanduser(path)
        with open(path, "r", encoding="utf-8") as f:
            if path.endswith(".json"):
                return cls.from_dict(json.load(f))
            return cls.from_dict(yaml.safe_load(f) or {})

    def save(self, path: str) -> None:
        """Save configuration to a JSON or YAML file."""
        path = os.path.expanduser(path)
        Path(path).parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w", encoding="utf-8") as f:
            if path.endswith(".json"):
                json.dump(self.to_dict(), f, indent=2)
            else:
                yaml.safe_dump(self.to_dict(), f, default_flow_style=False)


def load_config_from_env() -> AnalysisConfig:
    """
    Load configuration from environment variables.

    Environment variables:
        CLOUDRECON_CONFIG_FILE: Path to configuration file
        CLOUDRECON_MAX_WORKERS: Worker pool size
        CLOUDRECON_BATCH_SIZE: Accumulator batch size
        CLOUDRECON_CACHE_TIMEOUT: Snapshot cache timeout in seconds
        CLOUDRECON_ENABLE_PARALLEL: "true" or "false"
        CLOUDRECON_STORAGE_BACKEND: Storage backend (local, memory, s3)
        CLOUDRECON_DB_PATH: SQLite database path
        CLOUDRECON_S3_BUCKET: S3 bucket name
        CLOUDRECON_S3_KEY: S3 object key of the resource snapshot

    Returns:
        AnalysisConfig instance
    """
    config_file = os.getenv("CLOUDRECON_CONFIG_FILE")
    if config_file and os.path.exists(config_file):
        return AnalysisConfig.from_file(config_file)

    config = AnalysisConfig()

    max_workers = os.getenv("CLOUDRECON_MAX_WORKERS")
    if max_workers:
        config.performance.max_workers = int(max_workers)

    batch_size = os.getenv("CLOUDRECON_BATCH_SIZE")
    if batch_size:
        config.performance.batch_size = int(batch_size)

    cache_timeout = os.getenv("CLOUDRECON_CACHE_TIMEOUT")
    if cache_timeout:
        config.performance.cache_timeout_seconds = float(cache_timeout)

    enable_parallel = os.getenv("CLOUDRECON_ENABLE_PARALLEL")
    if enable_parallel:
        config.performance.enable_parallel = _parse_bool(enable_parallel)

    backend = os.getenv("CLOUDRECON_STORAGE_BACKEND")
    if backend:
        config.storage = StorageConfig(
            backend=backend,
            db_path=config.storage.db_path,
        )

    db_path = os.getenv("CLOUDRECON_DB_PATH")
    if db_path:
        config.storage.db_path = db_path

    config.storage.s3_bucket = os.getenv("CLOUDRECON_S3_BUCKET", config.storage.s3_bucket)
    config.storage.s3_key = os.getenv("CLOUDRECON_S3_KEY", config.storage.s3_key)

    return config
