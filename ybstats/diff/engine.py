"""
Diff engine.

Path: ybstats/diff/engine.py

Compares two record sets of one kind. Metric-shaped kinds produce a
delta and a per-second rate per (host, identity, value field); structured
kinds produce added/removed/changed rows keyed by host and the kind's key
fields. The same code serves stored snapshots and live captures.

Synthetic records (hosts that produced no data in a pass) never take
part: their hosts are reported as unavailable and their keys skipped, so
a missing host is not read as zero or as removal.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Iterable, List, Optional, Set, Tuple

from ybstats.core.kinds import EndpointKind, KindSpec, Shape
from ybstats.core.models import StoredRecord


logger = logging.getLogger(__name__)


class DiffStatus(Enum):
    """Change marker of a structured diff row."""
    ADDED = "+"
    REMOVED = "-"
    CHANGED = "*"


@dataclass
class DiffOptions:
    """Switches controlling which rows a diff produces."""
    include_gauges: bool = False
    include_unchanged: bool = False
    details: bool = False


@dataclass
class MetricDiffRecord:
    """Delta of one value field of one metric on one host."""
    kind: EndpointKind
    hostname_port: str
    identity: Dict[str, str]
    field: str
    begin_value: float
    end_value: float
    delta: float
    rate: Optional[float] = None
    elapsed_seconds: float = 0.0
    gauge: bool = False
    counter_reset: bool = False


@dataclass
class StructuredDiffRecord:
    """An added, removed or changed structured row."""
    kind: EndpointKind
    hostname_port: str
    status: DiffStatus
    key: Dict[str, str]
    begin: Optional[Dict[str, str]] = None
    end: Optional[Dict[str, str]] = None
    changed_fields: List[str] = field(default_factory=list)


@dataclass
class DiffResult:
    """All diff rows of one kind."""
    kind: EndpointKind
    shape: Shape
    metric_rows: List[MetricDiffRecord] = field(default_factory=list)
    structured_rows: List[StructuredDiffRecord] = field(default_factory=list)
    unavailable_hosts: List[str] = field(default_factory=list)

    @property
    def rows(self) -> list:
        return self.metric_rows if self.shape is Shape.METRIC else self.structured_rows

    def is_empty(self) -> bool:
        return not self.rows and not self.unavailable_hosts


@dataclass
class _Aggregate:
    identity: Tuple
    view_identity: Tuple
    values: Dict[str, float]
    timestamp: datetime
    gauge: bool


def _split_synthetic(records: Iterable[StoredRecord]) -> Tuple[List[StoredRecord], Set[str]]:
    """Return real records and the hosts that only have synthetic records."""
    real: List[StoredRecord] = []
    synthetic_hosts: Set[str] = set()
    real_hosts: Set[str] = set()
    for record in records:
        if record.synthetic:
            synthetic_hosts.add(record.hostname_port)
        else:
            real.append(record)
            real_hosts.add(record.hostname_port)
    return real, synthetic_hosts - real_hosts


def _aggregate(spec: KindSpec, records: List[StoredRecord], details: bool) -> Dict[Tuple, _Aggregate]:
    """
    Sum value fields of records sharing host and full detail identity.

    Each entry also carries the identity it is shown under, which drops
    the per-entity fields unless ``details`` is set.
    """
    result: Dict[Tuple, _Aggregate] = {}
    for record in records:
        identity = record.identity(spec, True)
        key = (record.hostname_port,) + identity
        agg = result.get(key)
        if agg is None:
            result[key] = _Aggregate(
                identity=identity,
                view_identity=record.identity(spec, details),
                values={f: float(record.fields.get(f, 0.0)) for f in spec.value_fields},
                timestamp=record.timestamp,
                gauge=spec.is_gauge(record.fields),
            )
            continue
        for f in spec.value_fields:
            agg.values[f] += float(record.fields.get(f, 0.0))
        agg.timestamp = max(agg.timestamp, record.timestamp)
        agg.gauge = agg.gauge or spec.is_gauge(record.fields)
    return result


def pass_time(records: Iterable[StoredRecord]) -> Optional[datetime]:
    """Earliest timestamp of a record set, None when it is empty."""
    return min((r.timestamp for r in records), default=None)


def diff_metric(
    spec: KindSpec,
    begin_records: Iterable[StoredRecord],
    end_records: Iterable[StoredRecord],
    options: DiffOptions,
    begin_time: Optional[datetime] = None,
) -> DiffResult:
    """
    Delta/rate diff of a metric-shaped kind.

    Deltas are taken per host and full detail identity: begin value
    defaults to 0 when absent, and a negative delta of a counter is a
    reset and reports the end value. Identities only present in the begin
    set contribute nothing. Without details, the per-entity deltas are
    then summed under the shown identity and the rate is taken from the
    summed delta, given only when elapsed time is positive.
    """
    begin_real, begin_missing = _split_synthetic(begin_records)
    end_real, end_missing = _split_synthetic(end_records)
    unavailable = begin_missing | end_missing

    if begin_time is None:
        begin_time = pass_time(begin_real)

    begin_map = _aggregate(spec, begin_real, options.details)
    end_map = _aggregate(spec, end_real, options.details)
    view_fields = spec.identity_fields(options.details)

    totals: Dict[Tuple, Dict[str, MetricDiffRecord]] = {}
    for key in sorted(end_map, key=_sort_key):
        hostname_port = key[0]
        if hostname_port in unavailable:
            continue
        end = end_map[key]
        begin = begin_map.get(key)

        if end.gauge and not options.include_gauges:
            continue

        start = begin.timestamp if begin is not None else begin_time
        elapsed = (end.timestamp - start).total_seconds() if start is not None else 0.0

        group = totals.setdefault((hostname_port,) + end.view_identity, {})
        for value_field in spec.value_fields:
            begin_value = begin.values[value_field] if begin is not None else 0.0
            end_value = end.values[value_field]
            delta = end_value - begin_value
            reset = False
            if delta < 0 and not end.gauge:
                delta = end_value
                reset = True

            row = group.get(value_field)
            if row is None:
                group[value_field] = MetricDiffRecord(
                    kind=spec.kind,
                    hostname_port=hostname_port,
                    identity=dict(zip(view_fields, end.view_identity)),
                    field=value_field,
                    begin_value=begin_value,
                    end_value=end_value,
                    delta=delta,
                    elapsed_seconds=elapsed,
                    gauge=end.gauge,
                    counter_reset=reset,
                )
                continue
            row.begin_value += begin_value
            row.end_value += end_value
            row.delta += delta
            row.elapsed_seconds = max(row.elapsed_seconds, elapsed)
            row.gauge = row.gauge or end.gauge
            row.counter_reset = row.counter_reset or reset

    result = DiffResult(kind=spec.kind, shape=spec.shape, unavailable_hosts=sorted(unavailable))
    for key in sorted(totals, key=_sort_key):
        for row in totals[key].values():
            if row.delta == 0 and not options.include_unchanged:
                continue
            if row.elapsed_seconds > 0:
                row.rate = row.delta / row.elapsed_seconds
            result.metric_rows.append(row)

    logger.debug(f"{spec.name}: {len(result.metric_rows)} metric diff rows, "
                 f"{len(unavailable)} unavailable hosts")
    return result


def diff_structured(
    spec: KindSpec,
    begin_records: Iterable[StoredRecord],
    end_records: Iterable[StoredRecord],
) -> DiffResult:
    """
    Added/removed/changed diff of a structured kind.

    Key fields identify rows; volatile fields and the envelope are not
    compared. Identical rows are suppressed.
    """
    begin_real, begin_missing = _split_synthetic(begin_records)
    end_real, end_missing = _split_synthetic(end_records)
    unavailable = begin_missing | end_missing

    begin_map = {r.key(spec): r for r in begin_real if r.hostname_port not in unavailable}
    end_map = {r.key(spec): r for r in end_real if r.hostname_port not in unavailable}
    compared = [f for f in spec.fields
                if f not in spec.key_fields and f not in spec.volatile_fields]

    result = DiffResult(kind=spec.kind, shape=spec.shape, unavailable_hosts=sorted(unavailable))
    for key in sorted(set(begin_map) | set(end_map), key=_sort_key):
        begin = begin_map.get(key)
        end = end_map.get(key)
        key_dict = dict(zip(spec.key_fields, key[1:]))

        if begin is None:
            status, changed = DiffStatus.ADDED, []
        elif end is None:
            status, changed = DiffStatus.REMOVED, []
        else:
            changed = [f for f in compared if begin.fields.get(f) != end.fields.get(f)]
            if not changed:
                continue
            status = DiffStatus.CHANGED

        result.structured_rows.append(StructuredDiffRecord(
            kind=spec.kind,
            hostname_port=key[0],
            status=status,
            key=key_dict,
            begin=dict(begin.fields) if begin is not None else None,
            end=dict(end.fields) if end is not None else None,
            changed_fields=changed,
        ))

    logger.debug(f"{spec.name}: {len(result.structured_rows)} structured diff rows, "
                 f"{len(unavailable)} unavailable hosts")
    return result


def diff_records(
    spec: KindSpec,
    begin_records: Iterable[StoredRecord],
    end_records: Iterable[StoredRecord],
    options: Optional[DiffOptions] = None,
    begin_time: Optional[datetime] = None,
) -> DiffResult:
    """
    Diff two record sets of one kind.

    Args:
        spec: Kind of both sets.
        begin_records: Earlier records.
        end_records: Later records.
        options: Gauge/unchanged/details switches.
        begin_time: Begin capture time, used for the rate of metrics that
            have no begin record. Defaults to the earliest begin record.

    Returns:
        DiffResult of the kind's shape.
    """
    options = options or DiffOptions()
    if spec.is_metric:
        return diff_metric(spec, begin_records, end_records, options, begin_time)
    return diff_structured(spec, begin_records, end_records)


def _sort_key(key: Tuple) -> Tuple:
    return tuple("" if v is None else str(v) for v in key)
