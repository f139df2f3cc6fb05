"""
Time index: bucket keys and caller time specifications.
"""

from chronomesh.timeindex.time import FetchEntriesTime, is_valid_range
from chronomesh.timeindex.paths import TimeBucketKey, PathIndexer

__all__ = [
    "FetchEntriesTime",
    "is_valid_range",
    "TimeBucketKey",
    "PathIndexer",
]
