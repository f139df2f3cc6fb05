"""
Time query engine: hour, day and range fetches behind one facade.
"""

from chronomesh.query.hour import HourFetcher, HourFetching
from chronomesh.query.day import DayFetcher, DayFetching
from chronomesh.query.range import Fetchers, RangeDecomposer, RangeShape, plan_buckets
from chronomesh.query.facade import TimeQueryFacade

__all__ = [
    "HourFetcher",
    "HourFetching",
    "DayFetcher",
    "DayFetching",
    "Fetchers",
    "RangeDecomposer",
    "RangeShape",
    "plan_buckets",
    "TimeQueryFacade",
]
