"""
Core value types: Result, Timestamp and Identity.

Fallible operations across the mesh return `Result` rather than raising;
callers branch on `is_ok()` / `is_err()` and propagate the `Err` unchanged.
Identities are opaque digests; their text form only appears when records
cross the serialization boundary.
"""

from __future__ import annotations

import base64
import hashlib
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import (
    Any,
    Callable,
    ClassVar,
    Generic,
    Literal,
    TypeVar,
    Union,
)

from chronomesh.core import constants as C

T = TypeVar("T")
E = TypeVar("E")
U = TypeVar("U")


# =============================================================================
# RESULT
# =============================================================================
@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """A successful outcome carrying `value`."""

    value: T

    def is_ok(self) -> Literal[True]:
        return True

    def is_err(self) -> Literal[False]:
        return False

    def unwrap(self) -> T:
        return self.value

    def unwrap_or(self, default: T) -> T:
        return self.value

    def map(self, fn: Callable[[T], U]) -> Ok[U]:
        return Ok(fn(self.value))

    def flat_map(self, fn: Callable[[T], Result[U, E]]) -> Result[U, E]:
        return fn(self.value)

    def __repr__(self) -> str:
        return f"Ok({self.value!r})"


@dataclass(frozen=True, slots=True)
class Err(Generic[E]):
    """A failed outcome carrying `error`; `map` and `flat_map` pass it through."""

    error: E

    def is_ok(self) -> Literal[False]:
        return False

    def is_err(self) -> Literal[True]:
        return True

    def unwrap(self) -> Any:
        # Unwrapping without checking is_ok() first is a bug in the caller.
        raise RuntimeError(f"unwrap() on {self!r}")

    def unwrap_or(self, default: T) -> T:
        return default

    def map(self, fn: Callable[[Any], U]) -> Err[E]:
        return self

    def flat_map(self, fn: Callable[[Any], Result[U, E]]) -> Err[E]:
        return self

    def __repr__(self) -> str:
        return f"Err({self.error!r})"


Result = Union[Ok[T], Err[E]]


# =============================================================================
# TIMESTAMP
# =============================================================================
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass(frozen=True, slots=True, order=True)
class Timestamp:
    """
    Microseconds since the Unix epoch, UTC.

    Versions are ordered by this value; bucket placement reads the UTC
    calendar fields of `to_datetime()`.
    """

    micros: int

    MICROS_PER_SECOND: ClassVar[int] = 1_000_000
    MICROS_PER_MILLI: ClassVar[int] = 1_000

    @classmethod
    def now(cls) -> Timestamp:
        return cls(micros=time.time_ns() // 1_000)

    @classmethod
    def from_seconds(cls, seconds: float) -> Timestamp:
        return cls(micros=round(seconds * cls.MICROS_PER_SECOND))

    @classmethod
    def from_datetime(cls, dt: datetime) -> Timestamp:
        """Naive datetimes are read as UTC."""
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return cls(micros=(dt - _EPOCH) // timedelta(microseconds=1))

    def to_datetime(self) -> datetime:
        return _EPOCH + timedelta(microseconds=self.micros)

    @property
    def millis(self) -> int:
        """Whole milliseconds, as records report createdAt/updatedAt."""
        return self.micros // self.MICROS_PER_MILLI

    def __repr__(self) -> str:
        return f"Timestamp({self.to_datetime().isoformat()})"


# =============================================================================
# IDENTITY
# =============================================================================
@dataclass(frozen=True, slots=True)
class Identity:
    """
    SHA-256 digest naming a version, a lineage or a payload.

    One value type serves as RecordIdentity, StableIdentity and
    ContentIdentity; the role depends on where the value came from.
    Text form is "u" followed by the unpadded URL-safe base64 digest.
    """

    digest: bytes

    def __post_init__(self) -> None:
        if len(self.digest) != C.IDENTITY_DIGEST_BYTES:
            raise ValueError(
                f"Identity digest must be {C.IDENTITY_DIGEST_BYTES} bytes, "
                f"got {len(self.digest)}"
            )

    @classmethod
    def compute(cls, data: bytes) -> Identity:
        return cls(hashlib.sha256(data).digest())

    @classmethod
    def decode(cls, text: str) -> Result[Identity, str]:
        """Inverse of `encode()`."""
        prefix, body = text[:1], text[1:]
        if prefix != C.IDENTITY_TEXT_PREFIX:
            return Err(f"Invalid identity prefix: {text[:8]!r}")
        try:
            raw = base64.urlsafe_b64decode(body + "=" * (-len(body) % 4))
            return Ok(cls(raw))
        except (ValueError, UnicodeEncodeError) as e:
            return Err(f"Invalid identity encoding: {e}")

    def encode(self) -> str:
        return C.IDENTITY_TEXT_PREFIX + base64.urlsafe_b64encode(self.digest).decode("ascii").rstrip("=")

    def __str__(self) -> str:
        return self.encode()

    def __repr__(self) -> str:
        return f"Identity({self.encode()[:12]}...)"

    def __hash__(self) -> int:
        return hash(self.digest)


# A StableIdentity is the RecordIdentity of a lineage's first version.
RecordIdentity = Identity
StableIdentity = Identity
ContentIdentity = Identity
