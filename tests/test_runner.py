import io
import json

import pytest
import yaml

from ybstats.collect.collector import Collector
from ybstats.core.kinds import EndpointKind, snapshot_specs
from ybstats.errors import InvalidRequestError, SnapshotNotFoundError, SnapshotWriteError
from ybstats.jobs.runner import CommandRequest, StatsRunner
from ybstats.store.snapshot_store import SnapshotStore

from conftest import VERSION_BODY, FakeFetcher


def _metrics_body(value):
    return json.dumps([{
        "type": "server",
        "id": "yb.tabletserver",
        "attributes": {},
        "metrics": [{"name": "rpc_inbound_calls_created", "value": value}],
    }])


def _runner(config, fetcher, **kwargs):
    out = io.StringIO()
    runner = StatsRunner(config, collector=Collector(fetcher), stream=out, **kwargs)
    return runner, out


def test_snapshot_writes_every_kind(config):
    fetcher = FakeFetcher(
        responses={("10.0.0.1:7000", "/api/v1/version"): VERSION_BODY},
        unreachable={"10.0.0.2:7000"},
    )
    runner, out = _runner(config, fetcher)
    assert runner.snapshot(CommandRequest(comment="first")) == 0
    assert "snapshot number 1" in out.getvalue()

    store = SnapshotStore(config.snapshot_dir)
    assert store.get_entry(1).comment == "first"
    assert store.kinds_in(1) == [s.kind for s in snapshot_specs()]
    versions = {r.hostname_port: r for r in store.load(1, "versions")}
    assert versions["10.0.0.1:7000"].fields["version_number"] == "2.18.0.0"
    assert versions["10.0.0.2:7000"].synthetic


def test_snapshot_write_failure_is_fatal_and_leaves_partial_snapshot(config, fake_fetcher, monkeypatch):
    runner, out = _runner(config, fake_fetcher)

    def refuse(src, dst):
        raise OSError(28, "No space left on device")

    monkeypatch.setattr("ybstats.store.snapshot_store.os.replace", refuse)
    with pytest.raises(SnapshotWriteError):
        runner.snapshot(CommandRequest(kinds=["versions"]))
    monkeypatch.undo()

    assert "snapshot number" not in out.getvalue()
    store = SnapshotStore(config.snapshot_dir)
    assert [e.number for e in store.list_snapshots()] == [1]
    assert store.kinds_in(1) == []


def test_snapshot_rejects_uuid_kinds(config, fake_fetcher):
    runner, _ = _runner(config, fake_fetcher)
    with pytest.raises(InvalidRequestError):
        runner.snapshot(CommandRequest(kinds=["table-detail"]))
    assert not config.snapshot_dir.exists()


def test_snapshot_diff_end_to_end(config):
    fetcher = FakeFetcher(responses={
        ("10.0.0.1:7000", "/metrics"): _metrics_body(100),
        ("10.0.0.2:7000", "/metrics"): _metrics_body(50),
    })
    runner, out = _runner(config, fetcher)
    runner.snapshot(CommandRequest(kinds=["metrics"]))
    fetcher.responses[("10.0.0.1:7000", "/metrics")] = _metrics_body(160)
    runner.snapshot(CommandRequest(kinds=["metrics"]))

    out.truncate(0)
    out.seek(0)
    assert runner.snapshot_diff(CommandRequest(begin=1, end=2)) == 0
    text = out.getvalue()
    assert "-- metrics diff --" in text
    assert "10.0.0.1:7000" in text
    assert "10.0.0.2:7000" not in text


def test_diff_order_checked_before_io(config, fake_fetcher):
    runner, out = _runner(config, fake_fetcher)
    with pytest.raises(InvalidRequestError):
        runner.snapshot_diff(CommandRequest(begin=2, end=2))
    assert not config.snapshot_dir.exists()


def test_diff_missing_snapshot_prints_nothing(config, fake_fetcher):
    runner, out = _runner(config, fake_fetcher)
    runner.snapshot(CommandRequest(kinds=["versions"]))
    out.truncate(0)
    out.seek(0)
    with pytest.raises(SnapshotNotFoundError):
        runner.snapshot_diff(CommandRequest(begin=1, end=5))
    assert out.getvalue() == ""


def test_diff_requested_kind_missing_is_fatal(config, fake_fetcher):
    runner, out = _runner(config, fake_fetcher)
    runner.snapshot(CommandRequest(kinds=["versions"]))
    runner.snapshot(CommandRequest(kinds=["versions"]))
    with pytest.raises(SnapshotNotFoundError):
        runner.snapshot_diff(CommandRequest(begin=1, end=2, kinds=["masters"]))


def test_adhoc_diff_between_two_live_passes(config):
    fetcher = FakeFetcher(responses={("10.0.0.1:7000", "/metrics"): _metrics_body(10)})

    def advance(prompt):
        fetcher.responses[("10.0.0.1:7000", "/metrics")] = _metrics_body(25)

    runner, out = _runner(config, fetcher, wait=advance)
    assert runner.adhoc_diff(CommandRequest(kinds=["metrics"], hosts="10.0.0.1")) == 0
    line = [l for l in out.getvalue().splitlines() if "rpc_inbound_calls_created" in l][0]
    assert "15" in line.split()
    assert not config.snapshot_dir.exists()


def test_adhoc_scope_validation(config, fake_fetcher):
    runner, _ = _runner(config, fake_fetcher)
    with pytest.raises(InvalidRequestError):
        runner.adhoc_diff(CommandRequest(scope="everything"))


def test_print_live_with_hostname_filter_matching_nothing(config):
    fetcher = FakeFetcher(responses={("10.0.0.1:7000", "/api/v1/version"): VERSION_BODY})
    runner, out = _runner(config, fetcher)
    runner.print_kinds(CommandRequest(kinds=["versions"], hostname_match="^no-such-host"))
    assert out.getvalue() == ""
    assert fetcher.probed == []


def test_print_from_snapshot(config):
    fetcher = FakeFetcher(responses={("10.0.0.1:7000", "/api/v1/version"): VERSION_BODY})
    runner, out = _runner(config, fetcher)
    runner.snapshot(CommandRequest(kinds=["versions"], hosts="10.0.0.1"))
    out.truncate(0)
    out.seek(0)
    runner.print_kinds(CommandRequest(snapshot=1))
    assert "2.18.0.0" in out.getvalue()


def test_print_detail_kind_requires_uuid(config, fake_fetcher):
    runner, _ = _runner(config, fake_fetcher)
    with pytest.raises(InvalidRequestError):
        runner.print_kinds(CommandRequest(kinds=["tablet-detail"]))


def test_overrides_saved_only_when_enabled(config, fake_fetcher):
    runner, _ = _runner(config, fake_fetcher)
    runner.print_kinds(CommandRequest(kinds=["versions"], hosts="10.9.9.9"))
    assert not config.config_file.exists()

    config.execution.remember_overrides = True
    runner.print_kinds(CommandRequest(kinds=["versions"], hosts="10.9.9.9", parallel=3))
    saved = yaml.safe_load(config.config_file.read_text())
    assert saved["hosts"] == "10.9.9.9"
    assert saved["execution"]["parallel"] == 3


def test_list_snapshots(config, fake_fetcher):
    runner, out = _runner(config, fake_fetcher)
    runner.snapshot(CommandRequest(kinds=["versions"], comment="one"))
    out.truncate(0)
    out.seek(0)
    assert runner.list_snapshots() == 0
    assert "one" in out.getvalue()
    assert EndpointKind.VERSIONS in SnapshotStore(config.snapshot_dir).kinds_in(1)


def test_snapshot_without_threads(config, fake_fetcher):
    runner, _ = _runner(config, fake_fetcher)
    runner.snapshot(CommandRequest(disable_threads=True))
    kinds = SnapshotStore(config.snapshot_dir).kinds_in(1)
    assert EndpointKind.THREADS not in kinds
    assert EndpointKind.VERSIONS in kinds


def test_max_width_must_be_positive(config, fake_fetcher):
    runner, _ = _runner(config, fake_fetcher)
    with pytest.raises(InvalidRequestError):
        runner.print_kinds(CommandRequest(kinds=["versions"], max_width=0))
    assert fake_fetcher.probed == []
