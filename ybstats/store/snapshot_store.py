"""
Snapshot store - numbered snapshot directories and their catalog.

Path: ybstats/store/snapshot_store.py

Layout under the root directory:

    snapshot.index      catalog CSV: number,timestamp,comment (append-only)
    1/metrics.csv       one CSV per kind, header = envelope + kind fields
    1/versions.csv
    2/...

Numbers are allocated as one past the highest number ever seen in the
catalog or on disk, so a deleted snapshot's number is never reused. A
single writer is assumed; there is no locking.
"""

import csv
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Union

from ybstats.core.kinds import EndpointKind, KindSpec, get_spec
from ybstats.core.models import ENVELOPE_FIELDS, CatalogEntry, StoredRecord
from ybstats.errors import (
    CatalogCorruptError,
    SnapshotCorruptError,
    SnapshotNotFoundError,
    SnapshotWriteError,
)


logger = logging.getLogger(__name__)

CATALOG_FILE = "snapshot.index"
CATALOG_HEADER = ["number", "timestamp", "comment"]


class SnapshotStore:
    """
    Filesystem snapshot store.

    Usage:
        store = SnapshotStore(Path("ybstats.snapshots"))
        number = store.begin_snapshot("before upgrade")
        store.write_kind(number, spec, records)
        records = store.load(number, spec)
    """

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)

    @property
    def catalog_path(self) -> Path:
        return self.root / CATALOG_FILE

    def snapshot_dir(self, number: int) -> Path:
        return self.root / str(number)

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    def begin_snapshot(self, comment: Optional[str] = None) -> int:
        """
        Allocate the next snapshot number, create its directory and
        append its catalog entry.

        Returns:
            The new snapshot number.

        Raises:
            CatalogCorruptError: Existing catalog cannot be read.
            SnapshotWriteError: Directory or catalog could not be written.
        """
        entries = self.list_snapshots()
        highest = max((e.number for e in entries), default=0)
        highest = max([highest] + self._numbered_dirs())
        number = highest + 1
        entry = CatalogEntry(number=number, timestamp=datetime.now().astimezone(),
                             comment=comment or None)

        try:
            self.root.mkdir(parents=True, exist_ok=True)
            self.snapshot_dir(number).mkdir()
            self._append_catalog(entry)
        except OSError as e:
            raise SnapshotWriteError(f"Cannot create snapshot {number} in {self.root}: {e}")

        logger.info(f"Snapshot {number} started in {self.snapshot_dir(number)}")
        return number

    def _append_catalog(self, entry: CatalogEntry):
        new_file = not self.catalog_path.exists()
        with open(self.catalog_path, "a", newline="", encoding="utf-8") as f:
            writer = csv.writer(f)
            if new_file:
                writer.writerow(CATALOG_HEADER)
            writer.writerow([entry.number, entry.timestamp.isoformat(), entry.comment or ""])
            f.flush()
            os.fsync(f.fileno())

    def _numbered_dirs(self) -> List[int]:
        if not self.root.is_dir():
            return []
        return [int(p.name) for p in self.root.iterdir() if p.is_dir() and p.name.isdigit()]

    def write_kind(self, number: int, spec: KindSpec, records: List[StoredRecord]):
        """
        Write all records of one kind for a snapshot.

        The file is written under a temporary name and renamed into place,
        so a kind file is either complete or absent.

        Raises:
            SnapshotNotFoundError: Snapshot directory does not exist.
            SnapshotWriteError: File could not be written.
        """
        directory = self.snapshot_dir(number)
        if not directory.is_dir():
            raise SnapshotNotFoundError(f"Snapshot {number} does not exist")

        target = directory / f"{spec.name}.csv"
        tmp = directory / f".{spec.name}.csv.tmp"
        try:
            with open(tmp, "w", newline="", encoding="utf-8") as f:
                writer = csv.writer(f)
                writer.writerow(list(ENVELOPE_FIELDS) + list(spec.fields))
                for record in records:
                    writer.writerow(record.to_row(spec))
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, target)
        except OSError as e:
            raise SnapshotWriteError(f"Cannot write {target}: {e}")

        logger.debug(f"Snapshot {number}: wrote {len(records)} {spec.name} records")

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def list_snapshots(self) -> List[CatalogEntry]:
        """
        All catalog entries ordered by number.

        Raises:
            CatalogCorruptError: A line cannot be parsed, or numbers do not
                strictly increase.
        """
        if not self.catalog_path.exists():
            return []

        entries: List[CatalogEntry] = []
        try:
            with open(self.catalog_path, newline="", encoding="utf-8") as f:
                reader = csv.reader(f)
                header = next(reader, None)
                if header is not None and header != CATALOG_HEADER:
                    raise CatalogCorruptError(f"{self.catalog_path}: unexpected header {header}")
                for line_no, row in enumerate(reader, start=2):
                    if not row:
                        continue
                    entries.append(self._parse_catalog_row(row, line_no))
        except (OSError, csv.Error, UnicodeDecodeError) as e:
            raise CatalogCorruptError(f"Cannot read catalog {self.catalog_path}: {e}")

        for previous, current in zip(entries, entries[1:]):
            if current.number <= previous.number:
                raise CatalogCorruptError(
                    f"{self.catalog_path}: snapshot {current.number} follows {previous.number}"
                )
        return entries

    def _parse_catalog_row(self, row: List[str], line_no: int) -> CatalogEntry:
        if len(row) != 3:
            raise CatalogCorruptError(f"{self.catalog_path}:{line_no}: expected 3 columns, got {len(row)}")
        try:
            number = int(row[0])
            timestamp = datetime.fromisoformat(row[1])
        except ValueError as e:
            raise CatalogCorruptError(f"{self.catalog_path}:{line_no}: {e}")
        return CatalogEntry(number=number, timestamp=timestamp, comment=row[2] or None)

    def get_entry(self, number: int) -> CatalogEntry:
        """
        Raises:
            SnapshotNotFoundError: Number is not in the catalog.
        """
        for entry in self.list_snapshots():
            if entry.number == number:
                return entry
        raise SnapshotNotFoundError(f"Snapshot {number} not found in {self.catalog_path}")

    def kinds_in(self, number: int) -> List[EndpointKind]:
        """Kinds with a data file in a snapshot, in enumeration order."""
        directory = self.snapshot_dir(number)
        if not directory.is_dir():
            raise SnapshotNotFoundError(f"Snapshot {number} does not exist")
        present = {p.stem for p in directory.glob("*.csv")}
        return [k for k in EndpointKind if k.value in present]

    def load(self, number: int, kind: Union[EndpointKind, KindSpec, str]) -> List[StoredRecord]:
        """
        Load all records of a kind from a snapshot.

        Raises:
            SnapshotNotFoundError: Snapshot or kind file absent.
            SnapshotCorruptError: File does not match the kind's schema.
        """
        spec = kind if isinstance(kind, KindSpec) else get_spec(kind)
        directory = self.snapshot_dir(number)
        if not directory.is_dir():
            raise SnapshotNotFoundError(f"Snapshot {number} does not exist")
        path = directory / f"{spec.name}.csv"
        if not path.exists():
            raise SnapshotNotFoundError(f"Snapshot {number} has no {spec.name} data")

        expected = list(ENVELOPE_FIELDS) + list(spec.fields)
        records: List[StoredRecord] = []
        try:
            with open(path, newline="", encoding="utf-8") as f:
                reader = csv.DictReader(f)
                if reader.fieldnames != expected:
                    raise SnapshotCorruptError(
                        f"{path}: header {reader.fieldnames} does not match {expected}"
                    )
                for row in reader:
                    records.append(self._record_from_row(spec, row, path, reader.line_num))
        except (csv.Error, UnicodeDecodeError) as e:
            raise SnapshotCorruptError(f"{path}: {e}")
        except OSError as e:
            raise SnapshotNotFoundError(f"Cannot read {path}: {e}")

        logger.debug(f"Snapshot {number}: loaded {len(records)} {spec.name} records")
        return records

    @staticmethod
    def _record_from_row(spec: KindSpec, row: Dict[str, str], path: Path, line_no: int) -> StoredRecord:
        if None in row:
            raise SnapshotCorruptError(f"{path}:{line_no}: too many columns")
        try:
            return StoredRecord.from_row(spec, row)
        except (ValueError, KeyError) as e:
            raise SnapshotCorruptError(f"{path}:{line_no}: {e}")
