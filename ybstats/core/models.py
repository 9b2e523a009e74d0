"""
Record and catalog models.

Path: ybstats/core/models.py
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from ybstats.core.kinds import EndpointKind, KindSpec


ENVELOPE_FIELDS = ("hostname_port", "timestamp", "synthetic")


@dataclass
class StoredRecord:
    """One row of one kind from one host, as captured and as persisted."""

    kind: EndpointKind
    hostname_port: str
    timestamp: datetime
    fields: Dict[str, Any] = field(default_factory=dict)
    synthetic: bool = False

    @classmethod
    def synthetic_for(cls, spec: KindSpec, hostname_port: str, timestamp: datetime) -> "StoredRecord":
        """Placeholder for a host that produced no data in a pass."""
        return cls(
            kind=spec.kind,
            hostname_port=hostname_port,
            timestamp=timestamp,
            fields=spec.empty_row(),
            synthetic=True,
        )

    def key(self, spec: KindSpec) -> Tuple:
        """Host plus the kind's key fields; unique within a snapshot."""
        return (self.hostname_port,) + tuple(self.fields.get(f) for f in spec.key_fields)

    def identity(self, spec: KindSpec, details: bool) -> Tuple:
        return tuple(self.fields.get(f) for f in spec.identity_fields(details))

    def to_row(self, spec: KindSpec) -> List[str]:
        """Serialize for CSV in ``ENVELOPE_FIELDS + spec.fields`` order."""
        row = [
            self.hostname_port,
            self.timestamp.isoformat(),
            "true" if self.synthetic else "false",
        ]
        for f in spec.fields:
            value = self.fields.get(f, "")
            row.append(repr(value) if isinstance(value, float) else str(value))
        return row

    @classmethod
    def from_row(cls, spec: KindSpec, row: Dict[str, str]) -> "StoredRecord":
        """
        Rebuild a record from a CSV row dict.

        Raises:
            ValueError: A value does not fit the schema.
        """
        synthetic = row["synthetic"]
        if synthetic not in ("true", "false"):
            raise ValueError(f"bad synthetic flag {synthetic!r}")
        timestamp = datetime.fromisoformat(row["timestamp"])
        if timestamp.tzinfo is None:
            raise ValueError(f"timestamp without offset: {row['timestamp']!r}")

        fields: Dict[str, Any] = {}
        for f in spec.fields:
            value = row[f]
            if value is None:
                raise ValueError(f"missing column {f!r}")
            fields[f] = float(value) if f in spec.value_fields else value
        return cls(
            kind=spec.kind,
            hostname_port=row["hostname_port"],
            timestamp=timestamp,
            fields=fields,
            synthetic=synthetic == "true",
        )


@dataclass
class CatalogEntry:
    """One line of the snapshot catalog."""

    number: int
    timestamp: datetime
    comment: Optional[str] = None

    def __repr__(self) -> str:
        return f"CatalogEntry(number={self.number}, timestamp={self.timestamp.isoformat()})"
