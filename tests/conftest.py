import json
import threading
import time
from datetime import datetime, timedelta, timezone
from urllib.parse import urlsplit

import pytest
import requests

from ybstats.core.config import Config, ExecutionConfig
from ybstats.core.kinds import EndpointKind, get_spec
from ybstats.core.models import StoredRecord


VERSION_BODY = json.dumps({
    "git_hash": "abc123",
    "build_hostname": "builder",
    "build_timestamp": "10 Jan 2024 10:00:00 UTC",
    "build_username": "yugabyte",
    "build_clean_repo": True,
    "build_id": "1",
    "build_type": "RELEASE",
    "version_number": "2.18.0.0",
    "build_number": "31",
})


class FakeFetcher:
    """Stands in for HttpFetcher: canned bodies keyed by (host:port, path)."""

    def __init__(self, responses=None, unreachable=(), delay=0.0, errors=None):
        self.responses = dict(responses or {})
        self.unreachable = set(unreachable)
        self.errors = dict(errors or {})
        self.delay = delay
        self.probed = []
        self.requested = []
        self.sessions = []
        self._lock = threading.Lock()

    def new_session(self):
        session = requests.Session()
        with self._lock:
            self.sessions.append(session)
        return session

    def probe(self, endpoint):
        with self._lock:
            self.probed.append(endpoint.hostname_port)
        if endpoint.hostname_port in self.unreachable:
            raise ConnectionRefusedError(111, "Connection refused")

    def get(self, session, url):
        parts = urlsplit(url)
        path = parts.path + (f"?{parts.query}" if parts.query else "")
        with self._lock:
            self.requested.append(url)
        if self.delay:
            time.sleep(self.delay)
        error = self.errors.get((parts.netloc, path))
        if error is not None:
            raise error
        response = self.responses.get((parts.netloc, path))
        if response is None:
            return 404, "not found"
        if isinstance(response, str):
            return 200, response
        return response


@pytest.fixture
def fake_fetcher():
    return FakeFetcher()


@pytest.fixture
def config(tmp_path):
    return Config(
        config_file=tmp_path / "config.yaml",
        hosts="10.0.0.1,10.0.0.2",
        ports="7000",
        snapshot_dir=tmp_path / "snapshots",
        execution=ExecutionConfig(parallel=2, timeout=1.0, probe_timeout=0.1),
    )


T0 = datetime(2024, 1, 10, 12, 0, 0, tzinfo=timezone.utc)


def metric_record(host, name, value, when=T0, stat_type="counter", table="t1",
                  metric_id="m1", synthetic=False):
    return StoredRecord(
        kind=EndpointKind.METRICS,
        hostname_port=host,
        timestamp=when,
        fields={
            "metric_type": "table",
            "metric_id": metric_id,
            "namespace": "yugabyte",
            "table_name": table,
            "name": name,
            "value": float(value),
            "statistic_type": stat_type,
        },
        synthetic=synthetic,
    )


def structured_record(kind, host, when=T0, **fields):
    spec = get_spec(kind)
    row = spec.empty_row()
    row.update(fields)
    return StoredRecord(kind=spec.kind, hostname_port=host, timestamp=when, fields=row)


def later(seconds):
    return T0 + timedelta(seconds=seconds)
