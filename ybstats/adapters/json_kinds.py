"""
Adapters for the JSON endpoints.

Path: ybstats/adapters/json_kinds.py

Each parser takes the HTTP body of one host and returns row dicts keyed
by the kind's field names. Missing fields are filled in by KindSpec;
anything that prevents building rows raises PayloadParseError.
"""

from typing import Any, Dict, List

from ybstats.adapters.common import flatten, load_json, number_value, text_value
from ybstats.errors import PayloadParseError


# Values in /metrics that may legitimately go down.
GAUGE_METRICS = {
    "threads_running",
    "hybrid_clock_hybrid_time",
    "hybrid_clock_error",
    "hybrid_clock_skew",
    "log_wal_size",
    "follower_lag_ms",
    "is_raft_leader",
    "raft_term",
    "rpc_connections_alive",
    "rpc_inbound_calls_alive",
    "rpc_outbound_calls_alive",
    "rpcs_in_queue",
    "rpcs_queue_overflow",
    "active_write_query_objects",
    "async_replication_committed_lag_micros",
    "async_replication_sent_lag_micros",
}
GAUGE_PREFIXES = ("mem_tracker", "tcmalloc_", "generic_", "rocksdb_current_version_")
GAUGE_SUFFIXES = ("_alive", "_running", "_size", "_bytes_in_memory")


def metric_statistic_type(name: str) -> str:
    """Classify a /metrics value as counter or gauge by its name."""
    if name in GAUGE_METRICS:
        return "gauge"
    if name.startswith(GAUGE_PREFIXES) or name.endswith(GAUGE_SUFFIXES):
        return "gauge"
    return "counter"


def parse_versions(body: str) -> List[Dict[str, Any]]:
    """/api/v1/version"""
    data = load_json(body)
    return [dict(data)]


def parse_masters(body: str) -> List[Dict[str, Any]]:
    """/api/v1/masters: one row per master known to the responding master."""
    data = load_json(body)
    masters = data.get("masters")
    if not isinstance(masters, list):
        raise PayloadParseError("no 'masters' list")

    rows = []
    for master in masters:
        instance = master.get("instance_id") or {}
        registration = master.get("registration") or {}
        cloud_info = registration.get("cloud_info") or {}
        error = master.get("error") or {}
        rows.append({
            "permanent_uuid": instance.get("permanent_uuid", ""),
            "instance_seqno": instance.get("instance_seqno", ""),
            "start_time_us": instance.get("start_time_us", ""),
            "private_rpc_addresses": _addresses(registration.get("private_rpc_addresses")),
            "http_addresses": _addresses(registration.get("http_addresses")),
            "cloud": cloud_info.get("placement_cloud", ""),
            "region": cloud_info.get("placement_region", ""),
            "zone": cloud_info.get("placement_zone", ""),
            "role": master.get("role", ""),
            "error": error.get("code", "") if isinstance(error, dict) else text_value(error),
        })
    return rows


def _addresses(entries: Any) -> str:
    if not entries:
        return ""
    return ",".join(f"{e.get('host', '')}:{e.get('port', '')}" for e in entries)


def parse_tablet_servers(body: str) -> List[Dict[str, Any]]:
    """/api/v1/tablet-servers: keyed by placement uuid, then server address."""
    data = load_json(body)
    rows = []
    for placement_uuid, servers in data.items():
        if not isinstance(servers, dict):
            raise PayloadParseError(f"placement {placement_uuid!r} is not a mapping")
        for server, status in servers.items():
            row = {"server": server, "placement_uuid": placement_uuid}
            for key, value in status.items():
                if not isinstance(value, (dict, list)):
                    row[key] = value
            rows.append(row)
    return rows


def parse_vars(body: str) -> List[Dict[str, Any]]:
    """/api/v1/varz"""
    data = load_json(body)
    flags = data.get("flags")
    if not isinstance(flags, list):
        raise PayloadParseError("no 'flags' list")
    return [
        {"name": f.get("name", ""), "value": f.get("value", ""), "type": f.get("type", "")}
        for f in flags
    ]


def parse_cluster_config(body: str) -> List[Dict[str, Any]]:
    """/api/v1/cluster-config, flattened to dotted names."""
    return flatten(load_json(body))


# Ages and uptimes change on every call and are not a configuration change.
_HEALTH_CHECK_VOLATILE = {"most_recent_uptime"}


def parse_health_check(body: str) -> List[Dict[str, Any]]:
    """/api/v1/health-check, flattened to dotted names."""
    data = load_json(body)
    return [row for row in flatten(data) if row["name"] not in _HEALTH_CHECK_VOLATILE]


def parse_entities(body: str) -> List[Dict[str, Any]]:
    """/dump-entities: keyspaces, tables and tablets as one row each."""
    data = load_json(body)
    if not any(k in data for k in ("keyspaces", "tables", "tablets")):
        raise PayloadParseError("no keyspaces, tables or tablets")

    rows: List[Dict[str, Any]] = []
    for keyspace in data.get("keyspaces") or []:
        rows.append({
            "entity_type": "keyspace",
            "entity_id": keyspace.get("keyspace_id", ""),
            "name": keyspace.get("keyspace_name", ""),
            "parent_id": "",
            "state": "",
            "detail": keyspace.get("keyspace_type", ""),
        })
    for table in data.get("tables") or []:
        rows.append({
            "entity_type": "table",
            "entity_id": table.get("table_id", ""),
            "name": table.get("table_name", ""),
            "parent_id": table.get("keyspace_id", ""),
            "state": table.get("state", ""),
            "detail": "",
        })
    for tablet in data.get("tablets") or []:
        replicas = ";".join(
            f"{r.get('type', '')}:{r.get('server_uuid', '')}@{r.get('addr', '')}"
            for r in tablet.get("replicas") or []
        )
        rows.append({
            "entity_type": "tablet",
            "entity_id": tablet.get("tablet_id", ""),
            "name": "",
            "parent_id": tablet.get("table_id", ""),
            "state": tablet.get("state", ""),
            "detail": f"leader={tablet.get('leader', '')} replicas={replicas}",
        })
    return rows


def parse_rpcs(body: str) -> List[Dict[str, Any]]:
    """
    /rpcz

    Master and tablet server ports return inbound/outbound connection
    lists; the YSQL port returns backend connections instead.
    """
    data = load_json(body)
    rows: List[Dict[str, Any]] = []
    for direction in ("inbound", "outbound"):
        for conn in data.get(f"{direction}_connections") or []:
            calls = conn.get("calls_in_flight") or []
            rows.append({
                "direction": direction,
                "remote_ip": conn.get("remote_ip", ""),
                "state": conn.get("state", ""),
                "processed_call_count": conn.get("processed_call_count", ""),
                "calls_in_flight": len(calls),
                "detail": ",".join(
                    text_value((c.get("header") or {}).get("remote_method", {}).get("method_name", ""))
                    for c in calls
                ),
            })
    for conn in data.get("connections") or []:
        host = conn.get("host", "")
        remote = f"{host}:{conn.get('port', '')}" if host else conn.get("backend_type", "")
        rows.append({
            "direction": "ysql",
            "remote_ip": f"{remote}/{conn.get('process_start_time', '')}",
            "state": conn.get("backend_status", ""),
            "processed_call_count": "",
            "calls_in_flight": 1 if conn.get("query") else 0,
            "detail": conn.get("query") or conn.get("application_name", ""),
        })
    if not rows and not any(
        k in data for k in ("inbound_connections", "outbound_connections", "connections")
    ):
        raise PayloadParseError("no connection lists")
    return rows


def parse_statements(body: str) -> List[Dict[str, Any]]:
    """YSQL /statements (pg_stat_statements)."""
    data = load_json(body)
    statements = data.get("statements")
    if not isinstance(statements, list):
        raise PayloadParseError("no 'statements' list")

    rows = []
    for stmt in statements:
        row = dict(stmt)
        for field in ("calls", "total_time", "rows"):
            row[field] = number_value(stmt.get(field, 0))
        rows.append(row)
    return rows


def parse_metrics(body: str) -> List[Dict[str, Any]]:
    """
    /metrics (JSON)

    Plain values become one row each. Histogram metrics become two
    counter rows, ``<name>.count`` and ``<name>.sum``. String-valued
    metrics are skipped.
    """
    data = load_json(body, expect=list)
    rows: List[Dict[str, Any]] = []
    for entity in data:
        if not isinstance(entity, dict):
            raise PayloadParseError("metric entity is not an object")
        attributes = entity.get("attributes") or {}
        base = {
            "metric_type": entity.get("type", ""),
            "metric_id": entity.get("id", ""),
            "namespace": attributes.get("namespace_name", ""),
            "table_name": attributes.get("table_name", ""),
        }
        for metric in entity.get("metrics") or []:
            name = metric.get("name", "")
            if "value" in metric:
                try:
                    value = number_value(metric["value"])
                except PayloadParseError:
                    continue
                rows.append(dict(base, name=name, value=value,
                                 statistic_type=metric_statistic_type(name)))
            elif "total_count" in metric:
                rows.append(dict(base, name=f"{name}.count",
                                 value=number_value(metric["total_count"]),
                                 statistic_type="counter"))
                rows.append(dict(base, name=f"{name}.sum",
                                 value=number_value(metric.get("total_sum", 0)),
                                 statistic_type="counter"))
    return rows
