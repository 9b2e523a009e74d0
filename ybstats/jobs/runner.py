"""
Stats Runner - the five ybstats operations.

Path: ybstats/jobs/runner.py

snapshot, print, diff, adhoc-diff and list. Each operation takes a
CommandRequest, drives resolver -> collector -> store -> diff engine ->
renderer, and returns an exit status. Fatal conditions are raised as
YbStatsError subclasses; the CLI turns them into exit status 1.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional, TextIO

from ybstats.collect.collector import Collector
from ybstats.collect.http import HttpFetcher
from ybstats.core.config import Config, get_config
from ybstats.core.kinds import (
    EndpointKind,
    KindSpec,
    get_spec,
    metric_specs,
    snapshot_specs,
    structured_specs,
)
from ybstats.core.models import StoredRecord
from ybstats.core.resolver import ResolvedTargets, resolve_targets
from ybstats.diff.engine import DiffOptions, diff_records, pass_time
from ybstats.errors import InvalidRequestError
from ybstats.report.renderer import (
    DEFAULT_LOG_SEVERITY,
    DEFAULT_MAX_WIDTH,
    ReportFilter,
    ReportRenderer,
)
from ybstats.store.snapshot_store import SnapshotStore


# Module logger
logger = logging.getLogger(__name__)

ADHOC_SCOPES = ("all", "metrics", "nonmetrics")


@dataclass
class CommandRequest:
    """Everything an operation needs from the command line."""
    hosts: Optional[str] = None
    ports: Optional[str] = None
    parallel: Optional[int] = None
    hostname_match: Optional[str] = None
    stat_name_match: Optional[str] = None
    table_name_match: Optional[str] = None
    kinds: List[str] = field(default_factory=list)
    uuid: Optional[str] = None
    snapshot: Optional[int] = None
    begin: Optional[int] = None
    end: Optional[int] = None
    comment: Optional[str] = None
    gauges: bool = False
    unchanged: bool = False
    details: bool = False
    log_severity: str = DEFAULT_LOG_SEVERITY
    max_width: int = DEFAULT_MAX_WIDTH
    scope: str = "all"
    disable_threads: bool = False

    def diff_options(self) -> DiffOptions:
        return DiffOptions(
            include_gauges=self.gauges,
            include_unchanged=self.unchanged,
            details=self.details,
        )

    def report_filter(self) -> ReportFilter:
        return ReportFilter(
            stat_name_match=self.stat_name_match,
            table_name_match=self.table_name_match,
            hostname_match=self.hostname_match,
            log_severity=self.log_severity,
        )


def _wait_for_enter(prompt: str):
    input(prompt)


class StatsRunner:
    """
    Runs ybstats operations.

    Usage:
        runner = StatsRunner(get_config())
        status = runner.snapshot(CommandRequest(comment="before upgrade"))
        status = runner.snapshot_diff(CommandRequest(begin=1, end=2))
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        collector: Optional[Collector] = None,
        store: Optional[SnapshotStore] = None,
        stream: Optional[TextIO] = None,
        wait: Optional[Callable[[str], None]] = None,
        debug: bool = False,
    ):
        """
        Initialize runner.

        Args:
            config: Configuration (defaults from get_config()).
            collector: Collector to fetch with (default: HTTP collector from config).
            store: Snapshot store (default: config.snapshot_dir).
            stream: Report output (default: stdout).
            wait: Called between the two passes of an adhoc diff.
            debug: Log tracebacks of unexpected collector errors.
        """
        self.config = config or get_config()
        self.collector = collector or Collector(
            HttpFetcher(
                timeout=self.config.execution.timeout,
                probe_timeout=self.config.execution.probe_timeout,
            ),
            debug=debug,
        )
        self.store = store or SnapshotStore(self.config.snapshot_dir)
        self.stream = stream
        self.wait = wait or _wait_for_enter

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _renderer(self, request: CommandRequest) -> ReportRenderer:
        if request.max_width < 1:
            raise InvalidRequestError(f"Invalid max width {request.max_width} (must be >= 1)")
        return ReportRenderer(
            stream=self.stream,
            details=request.details,
            report_filter=request.report_filter(),
            max_width=request.max_width,
        )

    def _say(self, renderer: ReportRenderer, message: str):
        renderer.stream.write(message + "\n")

    def _resolve(self, request: CommandRequest) -> ResolvedTargets:
        targets = resolve_targets(
            self.config,
            hosts=request.hosts,
            ports=request.ports,
            parallel=request.parallel,
            hostname_match=request.hostname_match,
        )
        if targets.overrides and self.config.execution.remember_overrides:
            if self.config.save_overrides(targets.overrides):
                logger.info(f"Saved overrides to {self.config.config_file}: "
                            f"{', '.join(sorted(targets.overrides))}")
        return targets

    def _requested_specs(self, request: CommandRequest) -> List[KindSpec]:
        specs = []
        for name in request.kinds:
            try:
                spec = get_spec(name)
            except ValueError as e:
                raise InvalidRequestError(str(e))
            if spec not in specs:
                specs.append(spec)
        return specs

    def _check_uuid(self, specs: List[KindSpec], request: CommandRequest):
        for spec in specs:
            if spec.needs_uuid and not request.uuid:
                raise InvalidRequestError(f"{spec.name} requires --uuid")

    def _collect(self, specs: List[KindSpec], targets: ResolvedTargets,
                 uuid: Optional[str] = None) -> Dict[EndpointKind, List[StoredRecord]]:
        collected = {}
        for spec in specs:
            result = self.collector.collect(spec, targets.work_list(spec), targets.parallel, uuid=uuid)
            collected[spec.kind] = result.records
        return collected

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def snapshot(self, request: CommandRequest) -> int:
        """
        Capture every snapshot kind into a new numbered snapshot.

        Returns:
            0 on success.
        """
        specs = self._requested_specs(request) or snapshot_specs()
        if request.disable_threads:
            specs = [s for s in specs if s.kind is not EndpointKind.THREADS]
        for spec in specs:
            if not spec.in_snapshot:
                raise InvalidRequestError(f"{spec.name} cannot be stored in a snapshot")
        renderer = self._renderer(request)
        targets = self._resolve(request)

        start = time.time()
        number = self.store.begin_snapshot(request.comment)
        for spec in specs:
            result = self.collector.collect(spec, targets.work_list(spec), targets.parallel)
            self.store.write_kind(number, spec, result.records)

        logger.info(f"Snapshot {number}: {len(specs)} kinds in {time.time() - start:.1f}s")
        self._say(renderer, f"snapshot number {number}")
        return 0

    def print_kinds(self, request: CommandRequest) -> int:
        """
        Print records of the requested kinds from a snapshot, or live.

        Returns:
            0 on success.
        """
        specs = self._requested_specs(request)
        renderer = self._renderer(request)

        if request.snapshot is not None:
            self.store.get_entry(request.snapshot)
            specs = specs or [get_spec(k) for k in self.store.kinds_in(request.snapshot)]
            # Load everything before printing anything
            loaded = [(spec, self.store.load(request.snapshot, spec)) for spec in specs]
        else:
            specs = specs or snapshot_specs()
            self._check_uuid(specs, request)
            targets = self._resolve(request)
            collected = self._collect(specs, targets, request.uuid)
            loaded = [(spec, collected[spec.kind]) for spec in specs]

        for spec, records in loaded:
            renderer.render_records(spec, records)
        return 0

    def snapshot_diff(self, request: CommandRequest) -> int:
        """
        Diff two stored snapshots.

        Both numbers must be in the catalog and every requested kind must
        be present in both before anything is printed.

        Returns:
            0 on success.
        """
        if request.begin is None or request.end is None:
            raise InvalidRequestError("Both begin and end snapshot numbers are required")
        if request.begin >= request.end:
            raise InvalidRequestError(
                f"Begin snapshot ({request.begin}) must be lower than end snapshot ({request.end})"
            )
        specs = self._requested_specs(request)
        renderer = self._renderer(request)

        begin_entry = self.store.get_entry(request.begin)
        end_entry = self.store.get_entry(request.end)

        if not specs:
            end_kinds = set(self.store.kinds_in(request.end))
            specs = [get_spec(k) for k in self.store.kinds_in(request.begin) if k in end_kinds]

        pairs = []
        for spec in specs:
            begin_records = self.store.load(request.begin, spec)
            end_records = self.store.load(request.end, spec)
            pairs.append((spec, begin_records, end_records))

        options = request.diff_options()
        for spec, begin_records, end_records in pairs:
            begin_time = pass_time(begin_records) or begin_entry.timestamp
            result = diff_records(spec, begin_records, end_records, options, begin_time=begin_time)
            renderer.render_diff(spec, result)

        logger.info(f"Diff {request.begin} ({begin_entry.timestamp.isoformat()}) -> "
                    f"{request.end} ({end_entry.timestamp.isoformat()}): {len(pairs)} kinds")
        return 0

    def adhoc_diff(self, request: CommandRequest) -> int:
        """
        Capture live, wait, capture again and print the difference.

        Nothing is stored.

        Returns:
            0 on success.
        """
        if request.scope not in ADHOC_SCOPES:
            raise InvalidRequestError(
                f"Invalid scope {request.scope!r} (valid: {', '.join(ADHOC_SCOPES)})"
            )
        specs = self._requested_specs(request)
        if not specs:
            specs = {
                "all": snapshot_specs,
                "metrics": metric_specs,
                "nonmetrics": structured_specs,
            }[request.scope]()
        self._check_uuid(specs, request)
        renderer = self._renderer(request)
        targets = self._resolve(request)

        begin = self._collect(specs, targets, request.uuid)
        begin_time = datetime.now().astimezone()
        self.wait("Begin capture done. Press enter to capture the end state and compare.")
        end = self._collect(specs, targets, request.uuid)

        options = request.diff_options()
        for spec in specs:
            result = diff_records(spec, begin[spec.kind], end[spec.kind], options,
                                  begin_time=pass_time(begin[spec.kind]) or begin_time)
            renderer.render_diff(spec, result)
        return 0

    def list_snapshots(self, request: Optional[CommandRequest] = None) -> int:
        """
        Print the snapshot catalog.

        Returns:
            0 on success.
        """
        renderer = self._renderer(request or CommandRequest())
        entries = self.store.list_snapshots()
        if not entries:
            logger.info(f"No snapshots in {self.store.root}")
        renderer.render_catalog(entries)
        return 0
