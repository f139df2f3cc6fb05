"""
Wire records and payload encoding.

Payloads are stored as canonical JSON (sorted keys, compact separators) so
that equal payloads always hash to the same ContentIdentity. Decoding into
an expected record type is permissive: any shape mismatch yields None.
"""

from __future__ import annotations

import dataclasses
import json
import logging
import types
import typing
from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar

from chronomesh.core.types import ContentIdentity, Identity, StableIdentity, Timestamp

logger = logging.getLogger(__name__)

T = TypeVar("T")

_SCALAR_TYPES = (str, int, float, bool)


# =============================================================================
# WIRE RECORD
# =============================================================================
@dataclass(frozen=True, slots=True)
class WireRecord(Generic[T]):
    """
    A record resolved to its latest version.

    record_identity is always the StableIdentity of the lineage's first
    version; created_at comes from that first version and updated_at from
    the version whose payload is returned.
    """

    record_identity: StableIdentity
    content_identity: ContentIdentity
    payload: T
    created_at: Timestamp
    updated_at: Timestamp

    @property
    def was_updated(self) -> bool:
        return self.updated_at != self.created_at

    def to_dict(self) -> dict[str, Any]:
        """Boundary form: camelCase keys, textual identities, millisecond times."""
        return {
            "recordIdentity": self.record_identity.encode(),
            "contentIdentity": self.content_identity.encode(),
            "entry": PayloadCodec.to_plain(self.payload),
            "createdAt": self.created_at.millis,
            "updatedAt": self.updated_at.millis,
        }


# =============================================================================
# PAYLOAD CODEC
# =============================================================================
class PayloadCodec:
    """Canonical JSON codec for dataclass (or plain mapping) payloads."""

    __slots__ = ()

    @staticmethod
    def to_plain(payload: Any) -> Any:
        if dataclasses.is_dataclass(payload) and not isinstance(payload, type):
            return dataclasses.asdict(payload)
        return payload

    def encode(self, payload: Any) -> bytes:
        """Canonical bytes. Raises TypeError for non-JSON-serializable payloads."""
        return json.dumps(
            self.to_plain(payload),
            sort_keys=True,
            separators=(",", ":"),
            ensure_ascii=False,
        ).encode("utf-8")

    def content_identity(self, payload: Any) -> ContentIdentity:
        return Identity.compute(self.encode(payload))

    def decode(self, data: bytes, entry_type: type[T]) -> Optional[T]:
        """Decode into entry_type, or None if the bytes do not fit it."""
        try:
            obj = json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            return None

        if entry_type is dict or entry_type is Any:
            return obj if isinstance(obj, dict) else None  # type: ignore[return-value]

        if not dataclasses.is_dataclass(entry_type):
            return obj if isinstance(obj, entry_type) else None

        if not isinstance(obj, dict):
            return None
        return _build_dataclass(entry_type, obj)


def _build_dataclass(entry_type: type[T], obj: dict[str, Any]) -> Optional[T]:
    fields = {f.name: f for f in dataclasses.fields(entry_type) if f.init}
    if set(obj) - set(fields):
        return None

    for name, f in fields.items():
        required = (
            f.default is dataclasses.MISSING
            and f.default_factory is dataclasses.MISSING
        )
        if required and name not in obj:
            return None

    try:
        hints = typing.get_type_hints(entry_type)
    except (NameError, TypeError):
        hints = {}

    for name, value in obj.items():
        if not _matches(hints.get(name), value):
            return None

    try:
        return entry_type(**obj)
    except (TypeError, ValueError) as e:
        logger.debug("Payload rejected by %s: %s", entry_type.__name__, e)
        return None


def _matches(hint: Any, value: Any) -> bool:
    """Shallow type check for scalar and container annotations."""
    if hint is None or hint is Any:
        return True

    origin = typing.get_origin(hint)
    if origin is typing.Union or origin is types.UnionType:
        return any(_matches(arg, value) for arg in typing.get_args(hint))
    if hint is type(None):
        return value is None

    if hint in _SCALAR_TYPES:
        if hint is float:
            return isinstance(value, (int, float)) and not isinstance(value, bool)
        if hint is int:
            return isinstance(value, int) and not isinstance(value, bool)
        return isinstance(value, hint)

    container = origin or hint
    if container in (list, tuple):
        return isinstance(value, list)
    if container is dict:
        return isinstance(value, dict)
    return True
