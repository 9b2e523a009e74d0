"""
ybstats - YugabyteDB cluster statistics capture, snapshot and diff.

Usage:
    ybstats snapshot --comment "before upgrade"
    ybstats diff -b 1 -e 2
    ybstats adhoc-diff --scope metrics
"""

__version__ = "0.4.0"

from ybstats.core.config import Config, get_config
from ybstats.core.kinds import EndpointKind, KindSpec, get_spec
from ybstats.collect.collector import Collector, CollectionResult, PassSummary
from ybstats.store.snapshot_store import SnapshotStore
from ybstats.diff.engine import DiffOptions, DiffResult, diff_records
from ybstats.jobs.runner import CommandRequest, StatsRunner

__all__ = [
    # Version
    "__version__",
    # Config
    "Config",
    "get_config",
    # Kinds
    "EndpointKind",
    "KindSpec",
    "get_spec",
    # Collection
    "Collector",
    "CollectionResult",
    "PassSummary",
    # Storage
    "SnapshotStore",
    # Diff
    "DiffOptions",
    "DiffResult",
    "diff_records",
    # Operations
    "CommandRequest",
    "StatsRunner",
]
