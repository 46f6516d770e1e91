"""
Configuration management for CloudRecon.

Provides configuration classes for the analysis engine's worker pools,
snapshot caching, resource store and logging.
"""

from cloudrecon.config.analysis_config import (
    CACHE_POLICIES,
    STORAGE_BACKENDS,
    AnalysisConfig,
    LoggingConfig,
    PerformanceConfig,
    StorageConfig,
    load_config_from_env,
)

__all__ = [
    "CACHE_POLICIES",
    "STORAGE_BACKENDS",
    "AnalysisConfig",
    "LoggingConfig",
    "PerformanceConfig",
    "StorageConfig",
    "load_config_from_env",
]
