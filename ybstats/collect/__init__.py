"""Bounded concurrent collection over HTTP."""

from ybstats.collect.collector import Collector, CollectionResult, FetchResult, PassSummary
from ybstats.collect.http import FetchErrorCategory, HttpFetcher

__all__ = [
    "Collector",
    "CollectionResult",
    "FetchResult",
    "PassSummary",
    "FetchErrorCategory",
    "HttpFetcher",
]
