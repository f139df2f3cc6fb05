"""
Errors returned (never raised) through Result values.

A ChronoMeshError carries an ErrorCode to branch on, a message, an id that
log lines can be joined on, and an optional underlying exception.

Usage:
    result = await facade.fetch_by_range(start, end, Note)
    match result:
        case Ok(records):
            render(records)
        case Err(QueryError(code=ErrorCode.QUERY_INVALID_RANGE)):
            reject_request()
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from chronomesh.core.types import Timestamp


# =============================================================================
# ERROR CODE ENUMERATION
# =============================================================================
class ErrorCode(Enum):
    """Stable numeric codes: 1xxx storage, 3xxx query."""

    # Storage errors (1xxx)
    STORAGE_UNAVAILABLE = 1001
    STORAGE_NOT_FOUND = 1002
    STORAGE_CORRUPTION = 1006

    # Query errors (3xxx)
    QUERY_INVALID_RANGE = 3001
    QUERY_MALFORMED_BUCKET_COMPONENT = 3002
    QUERY_INVALID_TIME = 3003
    QUERY_INVALID_REQUEST = 3004


# =============================================================================
# BASE ERROR CLASS
# =============================================================================
@dataclass
class ChronoMeshError(Exception):
    """Root of the hierarchy; subclasses only add named constructors."""

    code: ErrorCode
    message: str
    error_id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: Timestamp = field(default_factory=Timestamp.now)
    cause: Optional[Exception] = None
    context: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(self.message)

    def with_context(self, **kwargs: Any) -> ChronoMeshError:
        """Add context to error (returns new instance of the same class)."""
        return type(self)(
            code=self.code,
            message=self.message,
            error_id=self.error_id,
            timestamp=self.timestamp,
            cause=self.cause,
            context={**self.context, **kwargs},
        )

    def to_dict(self) -> dict[str, Any]:
        """Flat form attached to log lines."""
        data = {
            "error_id": self.error_id,
            "code": self.code.name,
            "code_number": self.code.value,
            "message": self.message,
            "timestamp_micros": self.timestamp.micros,
            "context": self.context,
        }
        if self.cause is not None:
            data["cause"] = repr(self.cause)
        return data

    def __str__(self) -> str:
        return f"[{self.code.name}] {self.message} (id={self.error_id[:8]})"

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.code.name}, {self.message!r}, error_id={self.error_id!r})"


# =============================================================================
# STORAGE ERRORS (BACKING STORE)
# =============================================================================
@dataclass
class StorageError(ChronoMeshError):
    """
    Errors from the backing store.

    Any failed read is BackingStoreUnavailable; callers at the day and
    range level drop the affected bucket instead of failing the query.
    """

    @classmethod
    def unavailable(
        cls,
        operation: str,
        cause: Optional[Exception] = None,
        **context: Any,
    ) -> StorageError:
        """Backing store call failed."""
        return cls(
            code=ErrorCode.STORAGE_UNAVAILABLE,
            message=f"Backing store unavailable during '{operation}'",
            cause=cause,
            context={"operation": operation, **context},
        )

    @classmethod
    def not_found(cls, identity: str) -> StorageError:
        """Referenced version does not exist."""
        return cls(
            code=ErrorCode.STORAGE_NOT_FOUND,
            message=f"No version found for {identity}",
            context={"identity": identity},
        )

    @classmethod
    def corruption(
        cls,
        description: str,
        affected_key: Optional[str] = None,
    ) -> StorageError:
        """Stored bytes do not match their content identity."""
        return cls(
            code=ErrorCode.STORAGE_CORRUPTION,
            message=f"Corrupt stored data: {description}",
            context={"affected_key": affected_key},
        )

    @property
    def is_unavailable(self) -> bool:
        return self.code == ErrorCode.STORAGE_UNAVAILABLE


# =============================================================================
# QUERY ERRORS (READ PATH)
# =============================================================================
@dataclass
class QueryError(ChronoMeshError):
    """
    Errors from the time query engine.

    Both variants are fatal for the call that raised them: no partial
    work is returned.
    """

    @classmethod
    def invalid_range(cls, start: Any, end: Any) -> QueryError:
        """Range start is not strictly before its end."""
        return cls(
            code=ErrorCode.QUERY_INVALID_RANGE,
            message=f"Invalid date range: {start} is not before {end}",
            context={"start": str(start), "end": str(end)},
        )

    @classmethod
    def malformed_bucket_component(cls, key: str, component: str) -> QueryError:
        """Child bucket's trailing component is not an hour number."""
        return cls(
            code=ErrorCode.QUERY_MALFORMED_BUCKET_COMPONENT,
            message=f"Invalid path: trailing component {component!r} of '{key}' is not an hour",
            context={"key": key, "component": component},
        )

    @classmethod
    def invalid_time(cls, reason: str, **fields: Any) -> QueryError:
        """Caller-supplied time fields do not form a calendar instant."""
        return cls(
            code=ErrorCode.QUERY_INVALID_TIME,
            message=f"Invalid time specification: {reason}",
            context={k: str(v) for k, v in fields.items()},
        )

    @classmethod
    def invalid_request(cls, reason: str) -> QueryError:
        """Query options are inconsistent with each other."""
        return cls(
            code=ErrorCode.QUERY_INVALID_REQUEST,
            message=f"Invalid query: {reason}",
        )
