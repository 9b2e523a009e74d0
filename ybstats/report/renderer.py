"""
Report renderer - fixed-width tables for records and diffs.

Path: ybstats/report/renderer.py

One table per kind. Filters narrow what is shown, never what is
collected or compared. A kind with nothing to show prints nothing.
"""

import logging
import sys
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, TextIO

from ybstats.core.kinds import KindSpec
from ybstats.core.models import CatalogEntry, StoredRecord
from ybstats.core.resolver import compile_pattern
from ybstats.diff.engine import DiffResult, MetricDiffRecord, StructuredDiffRecord


logger = logging.getLogger(__name__)

DEFAULT_LOG_SEVERITY = "WEF"
DEFAULT_MAX_WIDTH = 80


@dataclass
class ReportFilter:
    """Display filters; regexes are searched, not fully matched."""
    stat_name_match: Optional[str] = None
    table_name_match: Optional[str] = None
    hostname_match: Optional[str] = None
    log_severity: str = DEFAULT_LOG_SEVERITY

    def __post_init__(self):
        self._stat = compile_pattern(self.stat_name_match, "stat name")
        self._table = compile_pattern(self.table_name_match, "table name")
        self._host = compile_pattern(self.hostname_match, "hostname")
        self.log_severity = (self.log_severity or DEFAULT_LOG_SEVERITY).upper()

    def accepts(self, spec: KindSpec, hostname_port: str, fields: Dict[str, Any]) -> bool:
        """True if a row of ``spec`` from ``hostname_port`` passes every filter."""
        if self._host and not self._host.search(hostname_port):
            return False
        if self._stat and spec.name_field and spec.name_field in fields:
            if not self._stat.search(str(fields[spec.name_field])):
                return False
        if self._table and spec.table_field and spec.table_field in fields:
            if not self._table.search(str(fields[spec.table_field])):
                return False
        if spec.severity_field and spec.severity_field in fields:
            if str(fields[spec.severity_field]) not in self.log_severity:
                return False
        return True


def format_number(value: Optional[float]) -> str:
    if value is None:
        return "-"
    if float(value).is_integer():
        return f"{value:.0f}"
    return f"{value:.3f}"


class ReportRenderer:
    """
    Writes tables to a stream.

    Usage:
        renderer = ReportRenderer(details=False, report_filter=ReportFilter(hostname_match="7000"))
        renderer.render_records(spec, records)
        renderer.render_diff(spec, diff_result)
    """

    def __init__(
        self,
        stream: Optional[TextIO] = None,
        details: bool = False,
        report_filter: Optional[ReportFilter] = None,
        max_width: int = DEFAULT_MAX_WIDTH,
    ):
        self.stream = stream if stream is not None else sys.stdout
        self.details = details
        self.filter = report_filter or ReportFilter()
        self.max_width = max_width

    def _write(self, line: str = ""):
        self.stream.write(line.rstrip() + "\n")

    def _table(
        self,
        headers: Sequence[str],
        rows: List[List[str]],
        numeric: Sequence[int] = (),
        free_last: bool = False,
    ):
        """Aligned columns; cells are cut at max_width except a free last column."""
        last = len(headers) - 1
        widths = [len(h) for h in headers]
        for row in rows:
            for i, cell in enumerate(row):
                widths[i] = max(widths[i], len(cell))
        for i in range(len(widths)):
            if not (free_last and i == last):
                widths[i] = min(widths[i], self.max_width)

        def line(cells: Sequence[str]) -> str:
            out = []
            for i, cell in enumerate(cells):
                cell = cell[:widths[i]]
                out.append(cell.rjust(widths[i]) if i in numeric else cell.ljust(widths[i]))
            return " ".join(out)

        self._write(line(headers))
        for row in rows:
            self._write(line(row))

    # ------------------------------------------------------------------
    # Point in time
    # ------------------------------------------------------------------

    def render_records(self, spec: KindSpec, records: List[StoredRecord]) -> int:
        """
        Print stored or live records of one kind.

        Returns:
            Number of rows printed.
        """
        fields = list(spec.fields)
        if not self.details and spec.display_fields:
            fields = list(spec.display_fields)

        shown: List[StoredRecord] = []
        unavailable: List[str] = []
        for record in records:
            if record.synthetic:
                if self.filter.accepts(spec, record.hostname_port, {}):
                    unavailable.append(record.hostname_port)
                continue
            if not self.details and spec.detail_only(record.fields):
                continue
            if self.filter.accepts(spec, record.hostname_port, record.fields):
                shown.append(record)

        if not shown and not unavailable:
            return 0

        shown.sort(key=lambda r: (r.hostname_port, tuple(str(r.fields.get(f, "")) for f in spec.key_fields)))
        numeric = [i + 1 for i, f in enumerate(fields) if f in spec.value_fields]
        rows = [
            [r.hostname_port] + [
                format_number(r.fields.get(f)) if f in spec.value_fields else str(r.fields.get(f, ""))
                for f in fields
            ]
            for r in shown
        ]

        self._write(f"-- {spec.name} --")
        if rows:
            self._table(["hostname_port"] + fields, rows, numeric)
        if unavailable:
            self._write(f"unavailable: {', '.join(sorted(set(unavailable)))}")
        self._write()
        return len(rows)

    # ------------------------------------------------------------------
    # Diffs
    # ------------------------------------------------------------------

    def render_diff(self, spec: KindSpec, result: DiffResult) -> int:
        """
        Print one kind's diff.

        Returns:
            Number of rows printed.
        """
        unavailable = [h for h in result.unavailable_hosts if self.filter.accepts(spec, h, {})]
        if spec.is_metric:
            rows = [r for r in result.metric_rows
                    if self.filter.accepts(spec, r.hostname_port, r.identity)]
        else:
            rows = [r for r in result.structured_rows
                    if self.filter.accepts(spec, r.hostname_port, r.end or r.begin or {})]
            if not self.details:
                rows = [r for r in rows if not spec.detail_only(r.end or r.begin or {})]

        if not rows and not unavailable:
            return 0

        self._write(f"-- {spec.name} diff --")
        if rows and spec.is_metric:
            self._metric_table(spec, rows)
        elif rows:
            self._structured_table(spec, rows)
        if unavailable:
            self._write(f"unavailable: {', '.join(unavailable)}")
        self._write()
        return len(rows)

    def _metric_table(self, spec: KindSpec, rows: List[MetricDiffRecord]):
        identity_fields = list(rows[0].identity)
        multi_value = len(spec.value_fields) > 1
        headers = ["hostname_port"] + identity_fields
        if multi_value:
            headers.append("field")
        first_number = len(headers)
        headers += ["begin", "end", "delta", "rate/s", ""]

        table = []
        for r in rows:
            cells = [r.hostname_port] + [str(r.identity.get(f, "")) for f in identity_fields]
            if multi_value:
                cells.append(r.field)
            note = "reset" if r.counter_reset else ("gauge" if r.gauge else "")
            cells += [format_number(r.begin_value), format_number(r.end_value),
                      format_number(r.delta), format_number(r.rate), note]
            table.append(cells)
        self._table(headers, table, numeric=range(first_number, first_number + 4))

    def _structured_table(self, spec: KindSpec, rows: List[StructuredDiffRecord]):
        key_fields = list(spec.key_fields)
        shown_fields = list(spec.display_fields) if (spec.display_fields and not self.details) else [
            f for f in spec.fields if f not in spec.key_fields
        ]
        headers = ["", "hostname_port"] + key_fields + ["change"]

        table = []
        for r in rows:
            if r.changed_fields:
                change = "; ".join(
                    f"{f}: {r.begin.get(f, '')} -> {r.end.get(f, '')}" for f in r.changed_fields
                )
            else:
                values = r.end if r.end is not None else r.begin
                change = " ".join(f"{f}={values.get(f, '')}" for f in shown_fields
                                  if f not in spec.key_fields and values.get(f, "") != "")
            table.append([r.status.value, r.hostname_port]
                         + [str(r.key.get(f, "")) for f in key_fields] + [change])

        self._table(headers, table, free_last=True)

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    def render_catalog(self, entries: List[CatalogEntry]) -> int:
        if not entries:
            return 0
        rows = [[str(e.number), e.timestamp.strftime("%Y-%m-%d %H:%M:%S %z"), e.comment or ""]
                for e in entries]
        self._table(["number", "timestamp", "comment"], rows, numeric=[0])
        return len(rows)
