"""
Core module: Type definitions and error hierarchy.

This module provides the foundational abstractions for the record mesh:
- Result/Either monads for zero-exception control flow
- Identity and timestamp value types
- Exhaustive error hierarchy with pattern matching support

Configuration lives in chronomesh.core.config and is imported from there
directly, since it depends on the storage layer.
"""

from chronomesh.core.types import (
    Result,
    Ok,
    Err,
    Timestamp,
    Identity,
    RecordIdentity,
    StableIdentity,
    ContentIdentity,
)
from chronomesh.core.errors import (
    ErrorCode,
    ChronoMeshError,
    StorageError,
    QueryError,
)

__all__ = [
    "Result",
    "Ok",
    "Err",
    "Timestamp",
    "Identity",
    "RecordIdentity",
    "StableIdentity",
    "ContentIdentity",
    "ErrorCode",
    "ChronoMeshError",
    "StorageError",
    "QueryError",
]
