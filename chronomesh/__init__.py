"""
Time-Indexed Record Mesh

Indexes versioned, content-addressed records by creation time and answers
point and range queries over those time buckets:
- Time Index: day/hour bucket keys under a base name
- Retrieval: latest-version resolution with stable record identities
- Query Engine: minimal day/hour decomposition of arbitrary ranges
- Write Path: create/update/delete actions that maintain the index
- Storage: in-memory and Redis backing stores behind one protocol
"""

__version__ = "1.0.0"

# =============================================================================
# PUBLIC API EXPORTS
# =============================================================================
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
from chronomesh.core.config import ChronoMeshConfig, QueryConfig

from chronomesh.timeindex import FetchEntriesTime, TimeBucketKey, PathIndexer
from chronomesh.retrieval import (
    WireRecord,
    PayloadCodec,
    LatestResolver,
    FetchAll,
    FetchSpecific,
    FetchLinks,
    FetchEntries,
)
from chronomesh.query import (
    HourFetcher,
    DayFetcher,
    Fetchers,
    RangeDecomposer,
    TimeQueryFacade,
)
from chronomesh.chain import CreateAction, UpdateAction, DeleteAction
from chronomesh.storage import (
    ReadOptions,
    ConsistencyLevel,
    InMemoryIndexStore,
    RedisIndexStore,
    create_store,
)

__all__ = [
    "__version__",
    # Core
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
    "ChronoMeshConfig",
    "QueryConfig",
    # Time index
    "FetchEntriesTime",
    "TimeBucketKey",
    "PathIndexer",
    # Retrieval
    "WireRecord",
    "PayloadCodec",
    "LatestResolver",
    "FetchAll",
    "FetchSpecific",
    "FetchLinks",
    "FetchEntries",
    # Query engine
    "HourFetcher",
    "DayFetcher",
    "Fetchers",
    "RangeDecomposer",
    "TimeQueryFacade",
    # Write path
    "CreateAction",
    "UpdateAction",
    "DeleteAction",
    # Storage
    "ReadOptions",
    "ConsistencyLevel",
    "InMemoryIndexStore",
    "RedisIndexStore",
    "create_store",
]
