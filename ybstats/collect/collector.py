"""
Collector - bounded concurrent fetch of one endpoint kind.

Path: ybstats/collect/collector.py

Fetches one kind from every endpoint in a work list using a
ThreadPoolExecutor with at most ``parallel`` workers, and waits for the
whole pass before returning. A host that cannot be reached or that
returns something unparseable does not fail the pass: it contributes a
synthetic record and a warning.
"""

import logging
import threading
import time
import traceback
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Union

from ybstats.collect.http import (
    FetchErrorCategory,
    HttpFetcher,
    UNREACHABLE_CATEGORIES,
    categorize_fetch_error,
    describe_endpoints,
)
from ybstats.core.kinds import EndpointKind, KindSpec
from ybstats.core.models import StoredRecord
from ybstats.core.resolver import Endpoint
from ybstats.errors import PayloadParseError


# Module logger - configure at application level
logger = logging.getLogger(__name__)


@dataclass
class FetchResult:
    """Outcome of fetching one kind from one endpoint."""
    endpoint: Endpoint
    success: bool
    rows: List[Dict] = field(default_factory=list)
    status: Optional[int] = None
    error: Optional[str] = None
    duration_ms: float = 0
    error_category: FetchErrorCategory = FetchErrorCategory.SUCCESS

    @property
    def unreachable(self) -> bool:
        return self.error_category in UNREACHABLE_CATEGORIES

    def __repr__(self) -> str:
        host = self.endpoint.hostname_port
        if self.success:
            return f"FetchResult(host={host}, success=True, rows={len(self.rows)}, duration={self.duration_ms:.0f}ms)"
        return f"FetchResult(host={host}, success=False, category={self.error_category.value}, error={self.error!r})"


@dataclass
class PassSummary:
    """Summary statistics for one collection pass."""
    kind: str = ""
    total: int = 0
    ok: int = 0
    unreachable: int = 0
    parse_failed: int = 0
    duration_ms: float = 0
    errors_by_category: Dict[FetchErrorCategory, int] = field(default_factory=dict)

    def add_result(self, result: FetchResult):
        """Add a result to the summary."""
        self.total += 1
        if result.success:
            self.ok += 1
            return
        if result.unreachable:
            self.unreachable += 1
        else:
            self.parse_failed += 1
        cat = result.error_category
        self.errors_by_category[cat] = self.errors_by_category.get(cat, 0) + 1

    def __repr__(self) -> str:
        parts = [f"PassSummary[{self.kind}]: {self.ok}/{self.total} ok"]
        if self.errors_by_category:
            error_parts = [f"{cat.value}={count}" for cat, count in self.errors_by_category.items()]
            parts.append(f"errors=[{', '.join(error_parts)}]")
        parts.append(f"duration={self.duration_ms:.0f}ms")
        return " | ".join(parts)


@dataclass
class CollectionResult:
    """Records of one kind from one pass, sharing one capture timestamp."""
    kind: EndpointKind
    timestamp: datetime
    records: List[StoredRecord] = field(default_factory=list)
    summary: PassSummary = field(default_factory=PassSummary)
    results: List[FetchResult] = field(default_factory=list)


class Collector:
    """
    Concurrent endpoint collector.

    Usage:
        collector = Collector(HttpFetcher(timeout=10))
        result = collector.collect(spec, targets.work_list(spec), parallel=4)
        print(result.summary)
        for record in result.records:
            ...
    """

    def __init__(self, fetcher: Optional[HttpFetcher] = None, debug: bool = False):
        """
        Initialize collector.

        Args:
            fetcher: Object providing new_session/probe/get.
            debug: Capture tracebacks of unexpected worker errors.
        """
        self.fetcher = fetcher or HttpFetcher()
        self.debug = debug
        self._in_flight = 0
        self._max_in_flight = 0
        self._lock = threading.Lock()

    @property
    def max_in_flight(self) -> int:
        """Highest number of concurrent fetches seen in the last pass."""
        return self._max_in_flight

    def collect(
        self,
        spec: KindSpec,
        work_list: List[Endpoint],
        parallel: int = 1,
        uuid: Optional[str] = None,
    ) -> CollectionResult:
        """
        Fetch one kind from every endpoint with at most ``parallel`` in flight.

        Args:
            spec: Kind to collect.
            work_list: Endpoints serving the kind.
            parallel: Concurrency bound (>= 1).
            uuid: Table/tablet uuid for kinds that need one.

        Returns:
            CollectionResult with one record set per endpoint: parsed rows
            de-duplicated by key, or one synthetic record.
        """
        pass_start = time.time()
        timestamp = datetime.now().astimezone()
        path = spec.url_path(uuid)
        summary = PassSummary(kind=spec.name)
        result = CollectionResult(kind=spec.kind, timestamp=timestamp, summary=summary)
        self._max_in_flight = 0

        if not work_list:
            logger.debug(f"{spec.name}: no endpoints to collect from")
            return result

        total = len(work_list)
        logger.info(f"Collecting {spec.name}: {total} endpoints, {parallel} workers "
                    f"({describe_endpoints(work_list)})")
        result_map: Dict[int, FetchResult] = {}

        with ThreadPoolExecutor(max_workers=max(1, parallel)) as executor:
            futures = {
                executor.submit(self._fetch_one, spec, endpoint, path): (i, endpoint)
                for i, endpoint in enumerate(work_list)
            }

            completed = 0
            for future in as_completed(futures):
                idx, endpoint = futures[future]
                completed += 1
                try:
                    fetch = future.result()
                except Exception as e:
                    # _fetch_one catches fetch and parse errors; anything else is a bug
                    logger.error(f"Unexpected collector error for {endpoint.hostname_port}: {e}",
                                 exc_info=self.debug)
                    fetch = FetchResult(
                        endpoint=endpoint,
                        success=False,
                        error=f"Collector error: {e}",
                        error_category=categorize_fetch_error(e),
                    )

                result_map[idx] = fetch
                summary.add_result(fetch)

                if fetch.success:
                    logger.debug(f"[{completed}/{total}] {endpoint.hostname_port} {spec.name}: "
                                 f"OK {len(fetch.rows)} rows ({fetch.duration_ms:.0f}ms)")
                else:
                    logger.warning(f"[{completed}/{total}] {endpoint.hostname_port} {spec.name}: "
                                   f"{fetch.error_category.value}: {fetch.error}")

        summary.duration_ms = (time.time() - pass_start) * 1000
        logger.info(str(summary))

        result.results = [result_map[i] for i in range(total)]
        for fetch in result.results:
            result.records.extend(self._to_records(spec, fetch, timestamp))
        return result

    def _fetch_one(self, spec: KindSpec, endpoint: Endpoint, path: str) -> FetchResult:
        start = time.time()
        with self._lock:
            self._in_flight += 1
            self._max_in_flight = max(self._max_in_flight, self._in_flight)
        try:
            # Sessions are not shared between worker threads
            with self.fetcher.new_session() as session:
                return self._fetch(session, spec, endpoint, path)
        finally:
            with self._lock:
                self._in_flight -= 1
            elapsed = (time.time() - start) * 1000
            logger.debug(f"{endpoint.hostname_port}{path} finished in {elapsed:.0f}ms")

    def _fetch(self, session, spec: KindSpec, endpoint: Endpoint, path: str) -> FetchResult:
        start = time.time()
        fetch = FetchResult(endpoint=endpoint, success=False)

        try:
            self.fetcher.probe(endpoint)
        except OSError as e:
            fetch.error = f"unreachable: {e}"
            fetch.error_category = categorize_fetch_error(e)
            if fetch.error_category not in UNREACHABLE_CATEGORIES:
                fetch.error_category = FetchErrorCategory.CONNECTION_REFUSED
            fetch.duration_ms = (time.time() - start) * 1000
            return fetch

        try:
            status, body = self.fetcher.get(session, endpoint.url(path))
            fetch.status = status
            if not 200 <= status < 300:
                fetch.error = f"HTTP {status}"
                fetch.error_category = FetchErrorCategory.HTTP_STATUS
            else:
                fetch.rows = spec.parse(body)
                fetch.success = True
                fetch.error_category = FetchErrorCategory.SUCCESS
        except PayloadParseError as e:
            fetch.error = f"parse failed: {e}"
            fetch.error_category = FetchErrorCategory.PARSE_ERROR
        except Exception as e:
            fetch.error = str(e)
            fetch.error_category = categorize_fetch_error(e)
            if self.debug:
                logger.debug(f"Traceback for {endpoint.hostname_port}:\n{traceback.format_exc()}")

        fetch.duration_ms = (time.time() - start) * 1000
        return fetch

    def _to_records(self, spec: KindSpec, fetch: FetchResult, timestamp: datetime) -> List[StoredRecord]:
        hostname_port = fetch.endpoint.hostname_port
        if not fetch.success:
            return [StoredRecord.synthetic_for(spec, hostname_port, timestamp)]

        # One record per key; a later duplicate replaces an earlier one
        by_key: Dict[tuple, StoredRecord] = {}
        for row in fetch.rows:
            record = StoredRecord(spec.kind, hostname_port, timestamp, row)
            by_key[record.key(spec)] = record
        if len(by_key) < len(fetch.rows):
            logger.debug(f"{hostname_port} {spec.name}: {len(fetch.rows) - len(by_key)} duplicate rows dropped")
        return list(by_key.values())


def configure_logging(
    level: Union[int, str] = logging.WARNING,
    log_file: Optional[Path] = None,
    format_string: Optional[str] = None,
    handler: Optional[logging.Handler] = None,
):
    """
    Configure logging for ybstats.

    Call this at application startup to enable logging.

    Args:
        level: Logging level (default: WARNING).
        log_file: Optional file to log to in addition to stderr.
        format_string: Optional custom format string.
        handler: Optional custom handler (default: StreamHandler).

    Example:
        from ybstats.collect.collector import configure_logging
        configure_logging(level=logging.DEBUG)
    """
    if format_string is None:
        format_string = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

    root = logging.getLogger("ybstats")
    for existing in list(root.handlers):
        root.removeHandler(existing)
        existing.close()

    if handler is None:
        handler = logging.StreamHandler()

    formatter = logging.Formatter(format_string)
    handler.setFormatter(formatter)
    root.addHandler(handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    root.setLevel(level)
