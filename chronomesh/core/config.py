"""
Configuration Management for the Time-Indexed Record Mesh

Provides validated configuration with sensible defaults.
Supports environment variable overrides.

Design:
- Immutable after validation
- Fail-fast on invalid configuration
- Type-safe with dataclasses
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from chronomesh.core.types import Result, Ok, Err
from chronomesh.core import constants as C
from chronomesh.storage.config import StorageConfig
from chronomesh.storage.protocols import ConsistencyLevel
from chronomesh.timeindex.paths import PathIndexer


@dataclass(frozen=True)
class QueryConfig:
    """Time query engine configuration."""

    default_base: str = C.DEFAULT_BASE_COMPONENT
    # A range whose start equals its end is rejected unless enabled here.
    allow_equal_range: bool = False
    read_consistency: ConsistencyLevel = ConsistencyLevel.LATEST


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging and metrics configuration."""

    log_level: str = "INFO"
    log_json: bool = True
    metrics_enabled: bool = True


@dataclass(frozen=True)
class ChronoMeshConfig:
    """Root configuration for the record mesh."""

    storage: StorageConfig = field(default_factory=StorageConfig)
    query: QueryConfig = field(default_factory=QueryConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> Result[ChronoMeshConfig, str]:
        """
        Load configuration from environment variables.

        Environment variables are prefixed with CHRONOMESH_.
        Example: CHRONOMESH_QUERY_DEFAULT_BASE, CHRONOMESH_LOG_LEVEL
        """
        try:
            storage = StorageConfig.from_env()

            consistency_name = os.getenv("CHRONOMESH_QUERY_CONSISTENCY", "LATEST").upper()
            query = QueryConfig(
                default_base=os.getenv(
                    "CHRONOMESH_QUERY_DEFAULT_BASE", C.DEFAULT_BASE_COMPONENT
                ),
                allow_equal_range=_env_bool("CHRONOMESH_QUERY_ALLOW_EQUAL_RANGE", False),
                read_consistency=ConsistencyLevel[consistency_name],
            )

            observability = ObservabilityConfig(
                log_level=os.getenv("CHRONOMESH_LOG_LEVEL", "INFO").upper(),
                log_json=_env_bool("CHRONOMESH_LOG_JSON", True),
                metrics_enabled=_env_bool("CHRONOMESH_METRICS_ENABLED", True),
            )

            return Ok(cls(storage=storage, query=query, observability=observability))
        except KeyError as e:
            return Err(f"Configuration error: unknown consistency level {e}")
        except (ValueError, TypeError) as e:
            return Err(f"Configuration error: {e}")

    def validate(self) -> Result[None, str]:
        """Validate configuration invariants."""
        base = PathIndexer().check_base(self.query.default_base)
        if base.is_err():
            return Err(f"default_base: {base.error.message}")
        if self.observability.log_level not in {
            "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL",
        }:
            return Err(f"Unknown log level: {self.observability.log_level}")
        return Ok(None)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")
