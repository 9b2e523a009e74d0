import json

import pytest

from ybstats.adapters import html_kinds, json_kinds, text_kinds
from ybstats.adapters.common import flatten
from ybstats.core.kinds import get_spec
from ybstats.errors import PayloadParseError


NODE_EXPORTER_BODY = """\
# HELP node_cpu_seconds_total Seconds the CPUs spent in each mode.
# TYPE node_cpu_seconds_total counter
node_cpu_seconds_total{cpu="0",mode="idle"} 12345.67
node_cpu_seconds_total{cpu="0",mode="user"} 234.5
# HELP node_load1 1m load average.
# TYPE node_load1 gauge
node_load1 0.42
# TYPE node_disk_io_time_seconds histogram
node_disk_io_time_seconds_bucket{le="0.1"} 7
node_disk_io_time_seconds_sum 3.5
node_filesystem_avail_bytes{mountpoint="/"} NaN
"""


def test_parse_metrics_values_and_histograms():
    body = json.dumps([{
        "type": "table",
        "id": "000033e1",
        "attributes": {"namespace_name": "yugabyte", "table_name": "orders"},
        "metrics": [
            {"name": "rows_inserted", "value": 42},
            {"name": "threads_running", "value": 7},
            {"name": "handler_latency", "total_count": 3, "total_sum": 120},
            {"name": "build_tag", "value": "release"},
        ],
    }])
    rows = json_kinds.parse_metrics(body)
    by_name = {r["name"]: r for r in rows}
    assert set(by_name) == {"rows_inserted", "threads_running",
                            "handler_latency.count", "handler_latency.sum"}
    assert by_name["rows_inserted"]["statistic_type"] == "counter"
    assert by_name["threads_running"]["statistic_type"] == "gauge"
    assert by_name["handler_latency.sum"]["value"] == 120.0
    assert by_name["rows_inserted"]["table_name"] == "orders"


def test_parse_metrics_rejects_non_list():
    with pytest.raises(PayloadParseError):
        json_kinds.parse_metrics('{"metrics": []}')


def test_parse_masters():
    body = json.dumps({"masters": [{
        "instance_id": {"permanent_uuid": "u1", "instance_seqno": 5, "start_time_us": 9},
        "registration": {
            "private_rpc_addresses": [{"host": "10.0.0.1", "port": 7100}],
            "http_addresses": [{"host": "10.0.0.1", "port": 7000}],
            "cloud_info": {"placement_cloud": "aws", "placement_region": "eu", "placement_zone": "a"},
        },
        "role": "LEADER",
    }]})
    [row] = get_spec("masters").parse(body)
    assert row["permanent_uuid"] == "u1"
    assert row["private_rpc_addresses"] == "10.0.0.1:7100"
    assert row["instance_seqno"] == "5"
    assert row["role"] == "LEADER"


def test_parse_tablet_servers():
    body = json.dumps({"": {"10.0.0.4:9000": {
        "status": "ALIVE", "uptime_seconds": 100, "path_metrics": [{"path": "/mnt"}],
    }}})
    [row] = get_spec("tablet-servers").parse(body)
    assert row["server"] == "10.0.0.4:9000"
    assert row["status"] == "ALIVE"
    assert row["uptime_seconds"] == "100"


def test_parse_entities_and_flatten():
    body = json.dumps({
        "keyspaces": [{"keyspace_id": "k1", "keyspace_name": "yugabyte", "keyspace_type": "ysql"}],
        "tables": [{"table_id": "t1", "table_name": "orders", "keyspace_id": "k1", "state": "RUNNING"}],
        "tablets": [{"tablet_id": "tt1", "table_id": "t1", "state": "RUNNING", "leader": "s1",
                     "replicas": [{"type": "VOTER", "server_uuid": "s1", "addr": "10.0.0.4:9100"}]}],
    })
    rows = json_kinds.parse_entities(body)
    assert [r["entity_type"] for r in rows] == ["keyspace", "table", "tablet"]
    assert "VOTER:s1@10.0.0.4:9100" in rows[2]["detail"]

    assert flatten({"a": {"b": [1, 2]}, "c": [{"d": True}]}) == [
        {"name": "a.b", "value": "1,2"},
        {"name": "c[0].d", "value": "true"},
    ]


def test_node_exporter_template():
    rows = text_kinds.parse_node_exporter(NODE_EXPORTER_BODY)
    by_key = {(r["name"], r["labels"]): r for r in rows}
    idle = by_key[("node_cpu_seconds_total", '{cpu="0",mode="idle"}')]
    assert idle["value"] == 12345.67
    assert idle["statistic_type"] == "counter"
    assert by_key[("node_load1", "")]["statistic_type"] == "gauge"
    assert by_key[("node_disk_io_time_seconds_bucket", '{le="0.1"}')]["statistic_type"] == "counter"
    assert by_key[("node_disk_io_time_seconds_sum", "")]["value"] == 3.5
    assert ("node_filesystem_avail_bytes", '{mountpoint="/"}') not in by_key


def test_node_exporter_rejects_html():
    with pytest.raises(PayloadParseError):
        text_kinds.parse_node_exporter("<html><body>hello</body></html>")


def test_gflags_template():
    rows = text_kinds.parse_gflags("--fs_data_dirs=/mnt/d0\n--placement_zone=a\n--empty=\n")
    assert rows == [
        {"name": "fs_data_dirs", "value": "/mnt/d0"},
        {"name": "placement_zone", "value": "a"},
        {"name": "empty", "value": ""},
    ]


def test_logs_template():
    body = (
        "<pre>Log file created at: 2024/01/10 10:00:00\n"
        "W0110 10:00:01.123456 12345 catalog_manager.cc:100] Slow &amp; steady\n"
        "continuation line\n"
        "I0110 10:00:02.000001 12346 tablet.cc:7] started</pre>"
    )
    rows = text_kinds.parse_logs(body)
    assert [r["severity"] for r in rows] == ["W", "I"]
    assert rows[0]["message"] == "Slow & steady"
    assert rows[0]["source"] == "catalog_manager.cc:100"
    assert text_kinds.parse_logs("") == []


def test_html_threads_table():
    body = """
    <h2>Threads</h2>
    <table class='table'>
      <tr><th>Thread name</th><th>Cumulative User CPU(s)</th>
          <th>Cumulative Kernel CPU(s)</th><th>Cumulative IO-wait(s)</th></tr>
      <tr><td>acceptor-1</td><td>0.010s</td><td>0.020s</td><td>0.000s</td></tr>
      <tr><td><b>maintenance_scheduler</b></td><td>1.5s</td><td>0.2s</td><td>0.0s</td></tr>
    </table>
    """
    rows = html_kinds.parse_threads(body)
    assert rows[1] == {"thread_name": "maintenance_scheduler", "cpu_user": "1.5s",
                       "cpu_kernel": "0.2s", "io_wait": "0.0s"}


def test_html_missing_table():
    with pytest.raises(PayloadParseError):
        html_kinds.parse_drives("<html>nothing here</html>")
    assert html_kinds.parse_master_tasks("<html>no tasks</html>") == []


def test_kind_parse_wraps_schema_errors():
    with pytest.raises(PayloadParseError):
        get_spec("vars").parse('{"flags": [1, 2]}')
