"""
Error types for ybstats.

Path: ybstats/errors.py

Per-host collection failures never raise past the collector; they are
recorded as FetchResult categories and replaced by synthetic records.
Everything below YbStatsError is fatal for the invocation and is turned
into a non-zero exit status by the CLI.
"""


class YbStatsError(Exception):
    """Base class for fatal ybstats errors."""


class ConfigError(YbStatsError):
    """Configuration file could not be read or holds invalid values."""


class InvalidRequestError(YbStatsError):
    """Request rejected before any I/O (bad ordering, bad regex, bad number)."""


class SnapshotNotFoundError(YbStatsError):
    """Snapshot number or kind file is absent."""


class SnapshotCorruptError(YbStatsError):
    """Snapshot content cannot be parsed to the kind's schema."""


class CatalogCorruptError(YbStatsError):
    """The snapshot catalog cannot be parsed."""


class SnapshotWriteError(YbStatsError):
    """Writing a snapshot directory, kind file or catalog entry failed."""


class PayloadParseError(ValueError):
    """An endpoint body could not be parsed into the kind's schema.

    Raised by the kind adapters and absorbed by the collector, which
    substitutes a synthetic record for the host.
    """
