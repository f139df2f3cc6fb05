"""
Time Bucket Keys: Hierarchical Index Paths

Builds the keys under which record identities are indexed by creation
time. Keys are dot-separated component paths:

    <base>.<YYYY-MM-DD>          day bucket
    <base>.<YYYY-MM-DD>.<HH>     hour bucket (child of the day bucket)

Construction is pure and deterministic: distinct (day, hour) tuples under a
fixed base always map to distinct keys. Materializing a key ("ensuring" it)
and pointing a record at it only happens on the write path.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from chronomesh.core import constants as C
from chronomesh.core.errors import QueryError, StorageError
from chronomesh.core.types import Result, Ok, Err, Identity

if TYPE_CHECKING:
    from chronomesh.storage.protocols import IndexStoreProtocol
    from chronomesh.timeindex.time import FetchEntriesTime

logger = logging.getLogger(__name__)


# =============================================================================
# BUCKET KEY
# =============================================================================
@dataclass(frozen=True, slots=True)
class TimeBucketKey:
    """Immutable component path of an index bucket."""

    components: tuple[str, ...]

    def __post_init__(self) -> None:
        if not self.components:
            raise ValueError("TimeBucketKey needs at least one component")
        for component in self.components:
            if not component or C.KEY_SEPARATOR in component:
                raise ValueError(f"Invalid key component: {component!r}")

    @classmethod
    def parse(cls, path: str) -> TimeBucketKey:
        return cls(tuple(path.split(C.KEY_SEPARATOR)))

    @property
    def path(self) -> str:
        return C.KEY_SEPARATOR.join(self.components)

    @property
    def last_component(self) -> str:
        return self.components[-1]

    @property
    def parent(self) -> Optional[TimeBucketKey]:
        if len(self.components) == 1:
            return None
        return TimeBucketKey(self.components[:-1])

    def ancestors(self) -> list[TimeBucketKey]:
        """Every proper prefix, root first."""
        return [
            TimeBucketKey(self.components[:i])
            for i in range(1, len(self.components))
        ]

    def child(self, component: str) -> TimeBucketKey:
        return TimeBucketKey(self.components + (component,))

    def __str__(self) -> str:
        return self.path


# =============================================================================
# PATH INDEXER
# =============================================================================
class PathIndexer:
    """
    Key construction for day and hour buckets, plus the write-side
    ensure-and-link step.
    """

    __slots__ = ()

    def base_key(self, base: str) -> TimeBucketKey:
        return TimeBucketKey.parse(base)

    def check_base(self, base: str) -> Result[TimeBucketKey, QueryError]:
        """Nested bases ("tenant.invoices") are fine; empty components are not."""
        try:
            return Ok(self.base_key(base))
        except ValueError as e:
            return Err(QueryError.invalid_request(f"unusable base {base!r}: {e}"))

    def day_key(self, base: str, year: int, month: int, day: int) -> TimeBucketKey:
        return self.base_key(base).child(
            C.DAY_COMPONENT_FORMAT.format(year=year, month=month, day=day)
        )

    def hour_key(
        self, base: str, year: int, month: int, day: int, hour: int,
    ) -> TimeBucketKey:
        return self.day_key(base, year, month, day).child(
            C.HOUR_COMPONENT_FORMAT.format(hour=hour)
        )

    def bucket_key(self, base: str, time: FetchEntriesTime) -> TimeBucketKey:
        """Day key when the hour is absent, hour key otherwise."""
        if time.hour is None:
            return self.day_key(base, time.year, time.month, time.day)
        return self.hour_key(base, time.year, time.month, time.day, time.hour)

    def hour_of(self, key: TimeBucketKey) -> Result[int, QueryError]:
        """
        Parse a child bucket's trailing component back into an hour.

        Only plain ASCII digits in [0, 23] are accepted.
        """
        component = key.last_component
        if not (component.isascii() and component.isdigit()):
            return Err(QueryError.malformed_bucket_component(key.path, component))
        hour = int(component)
        if not (C.FIRST_HOUR <= hour <= C.LAST_HOUR):
            return Err(QueryError.malformed_bucket_component(key.path, component))
        return Ok(hour)

    async def index(
        self,
        store: IndexStoreProtocol,
        key: TimeBucketKey,
        identity: Identity,
    ) -> Result[None, StorageError]:
        """Ensure the bucket exists, then link the identity under it."""
        ensured = await store.ensure_bucket(key)
        if ensured.is_err():
            return ensured
        linked = await store.link(key, identity)
        if linked.is_ok():
            logger.debug("Indexed %s under %s", identity, key)
        return linked
