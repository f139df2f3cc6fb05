"""
Retrieval: latest-version resolution, wire records and generic fetches.
"""

from chronomesh.retrieval.records import WireRecord, PayloadCodec
from chronomesh.retrieval.latest import LatestResolver
from chronomesh.retrieval.fetch_entries import (
    FetchAll,
    FetchSpecific,
    FetchOptions,
    FetchLinks,
    FetchEntries,
)

__all__ = [
    "WireRecord",
    "PayloadCodec",
    "LatestResolver",
    "FetchAll",
    "FetchSpecific",
    "FetchOptions",
    "FetchLinks",
    "FetchEntries",
]
