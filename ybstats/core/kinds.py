"""
Endpoint kinds and their schemas.

Path: ybstats/core/kinds.py

Every kind of data ybstats collects is described by one KindSpec: where
it is served, by which server roles, what its rows look like, which
fields identify a row, and which parser turns a response body into rows.
The collector, store, diff engine and renderer are written once against
KindSpec and never branch on the kind itself.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from ybstats.adapters import html_kinds, json_kinds, text_kinds
from ybstats.adapters.common import number_value, text_value
from ybstats.errors import PayloadParseError


class EndpointKind(Enum):
    """Closed set of data kinds."""
    METRICS = "metrics"
    ENTITIES = "entities"
    MASTERS = "masters"
    TABLET_SERVERS = "tablet-servers"
    VERSIONS = "versions"
    VARS = "vars"
    NODE_EXPORTER = "node-exporter"
    STATEMENTS = "statements"
    THREADS = "threads"
    GFLAGS = "gflags"
    CLUSTER_CONFIG = "cluster-config"
    HEALTH_CHECK = "health-check"
    DRIVES = "drives"
    TABLET_SERVER_OPERATIONS = "tablet-server-operations"
    MASTER_TASKS = "master-tasks"
    TABLE_DETAIL = "table-detail"
    TABLET_DETAIL = "tablet-detail"
    LOGS = "logs"
    RPCS = "rpcs"
    CLOCKS = "clocks"

    @classmethod
    def from_name(cls, name: str) -> "EndpointKind":
        """Look a kind up by its command-line name (``tablet-servers``)."""
        try:
            return cls(name.strip().lower().replace("_", "-"))
        except ValueError:
            valid = ", ".join(k.value for k in cls)
            raise ValueError(f"unknown kind {name!r} (valid: {valid})")


class PortRole(Enum):
    """Server role behind a port."""
    MASTER = "master"
    TSERVER = "tserver"
    YCQL = "ycql"
    YSQL = "ysql"
    NODE_EXPORTER = "node_exporter"


class Shape(Enum):
    """How records of a kind are compared."""
    METRIC = "metric"
    STRUCTURED = "structured"


Parser = Callable[[str], List[Dict[str, Any]]]

ALL_SERVER_ROLES = (PortRole.MASTER, PortRole.TSERVER, PortRole.YCQL, PortRole.YSQL)
DB_ROLES = (PortRole.MASTER, PortRole.TSERVER)


@dataclass(frozen=True)
class KindSpec:
    """
    Schema and endpoint of one EndpointKind.

    Attributes:
        kind: The kind described.
        path: URL path; ``{uuid}`` is substituted for kinds that need one.
        roles: Port roles serving the path.
        fields: Row field names, in storage order.
        key_fields: Fields identifying a row within one host.
        parser: Body -> raw row dicts.
        shape: Metric (delta/rate) or structured (added/removed/changed).
        value_fields: Numeric fields diffed as values (metric shape).
        type_field: Field holding "counter"/"gauge"; absent means counter.
        detail_fields: Key fields aggregated away unless details are requested.
        volatile_fields: Fields ignored when comparing structured rows.
        display_fields: Fields shown by a non-detailed print.
        name_field: Field matched by the stat-name filter.
        table_field: Field matched by the table-name filter.
        severity_field: Field matched by the log severity filter.
        needs_uuid: Path requires a table or tablet uuid.
        in_snapshot: Collected by a full snapshot pass.
        detail_only_rows: (field, value) pairs whose rows are printed only
            with details.
    """

    kind: EndpointKind
    path: str
    roles: Tuple[PortRole, ...]
    fields: Tuple[str, ...]
    key_fields: Tuple[str, ...]
    parser: Parser
    shape: Shape = Shape.STRUCTURED
    value_fields: Tuple[str, ...] = ()
    type_field: Optional[str] = None
    detail_fields: Tuple[str, ...] = ()
    volatile_fields: Tuple[str, ...] = ()
    display_fields: Tuple[str, ...] = ()
    name_field: Optional[str] = None
    table_field: Optional[str] = None
    severity_field: Optional[str] = None
    needs_uuid: bool = False
    in_snapshot: bool = True
    detail_only_rows: Tuple[Tuple[str, str], ...] = ()

    @property
    def name(self) -> str:
        return self.kind.value

    @property
    def is_metric(self) -> bool:
        return self.shape is Shape.METRIC

    def url_path(self, uuid: Optional[str] = None) -> str:
        """Path for a request, with the uuid substituted where needed."""
        if self.needs_uuid:
            if not uuid:
                raise ValueError(f"{self.name} requires a uuid")
            return self.path.format(uuid=uuid)
        return self.path

    def empty_row(self) -> Dict[str, Any]:
        """Default-valued row used for synthetic records."""
        return {f: (0.0 if f in self.value_fields else "") for f in self.fields}

    def normalize(self, raw: Dict[str, Any]) -> Dict[str, Any]:
        """Project a parsed row onto the schema; value fields become floats."""
        row: Dict[str, Any] = {}
        for f in self.fields:
            if f in self.value_fields:
                row[f] = number_value(raw.get(f, 0))
            else:
                row[f] = text_value(raw.get(f, ""))
        return row

    def parse(self, body: str) -> List[Dict[str, Any]]:
        """
        Parse one response body into schema rows.

        Raises:
            PayloadParseError: Body does not match the kind's format.
        """
        try:
            raw_rows = self.parser(body)
            return [self.normalize(r) for r in raw_rows]
        except PayloadParseError:
            raise
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise PayloadParseError(f"{self.name}: {type(e).__name__}: {e}")

    def is_gauge(self, row: Dict[str, Any]) -> bool:
        if self.type_field is None:
            return False
        return row.get(self.type_field) == "gauge"

    def identity_fields(self, details: bool) -> Tuple[str, ...]:
        """
        Fields forming the diff identity of a row.

        With details, per-entity fields are part of the identity; without,
        they are dropped and rows sharing the remaining key are summed.
        """
        if details:
            extra = tuple(f for f in self.detail_fields if f not in self.key_fields)
            return self.key_fields + extra
        return tuple(f for f in self.key_fields if f not in self.detail_fields)

    def detail_only(self, row: Dict[str, Any]) -> bool:
        return any(row.get(f) == v for f, v in self.detail_only_rows)


_TABLET_SERVER_FIELDS = (
    "server", "placement_uuid", "status", "time_since_hb", "time_since_hb_sec",
    "uptime_seconds", "ram_used", "ram_used_bytes", "num_sst_files",
    "total_sst_file_size", "total_sst_file_size_bytes",
    "uncompressed_sst_file_size", "uncompressed_sst_file_size_bytes",
    "read_ops_per_sec", "write_ops_per_sec", "user_tablets_total",
    "user_tablets_leaders", "system_tablets_total", "system_tablets_leaders",
    "active_tablets",
)

KIND_SPECS: Dict[EndpointKind, KindSpec] = {spec.kind: spec for spec in (
    KindSpec(
        kind=EndpointKind.METRICS,
        path="/metrics",
        roles=ALL_SERVER_ROLES,
        fields=("metric_type", "metric_id", "namespace", "table_name", "name",
                "value", "statistic_type"),
        key_fields=("metric_type", "metric_id", "name"),
        parser=json_kinds.parse_metrics,
        shape=Shape.METRIC,
        value_fields=("value",),
        type_field="statistic_type",
        detail_fields=("metric_id", "namespace", "table_name"),
        name_field="name",
        table_field="table_name",
    ),
    KindSpec(
        kind=EndpointKind.NODE_EXPORTER,
        path="/metrics",
        roles=(PortRole.NODE_EXPORTER,),
        fields=("name", "labels", "value", "statistic_type"),
        key_fields=("name", "labels"),
        parser=text_kinds.parse_node_exporter,
        shape=Shape.METRIC,
        value_fields=("value",),
        type_field="statistic_type",
        detail_fields=("labels",),
        name_field="name",
    ),
    KindSpec(
        kind=EndpointKind.STATEMENTS,
        path="/statements",
        roles=(PortRole.YSQL,),
        fields=("query", "calls", "total_time", "rows"),
        key_fields=("query",),
        parser=json_kinds.parse_statements,
        shape=Shape.METRIC,
        value_fields=("calls", "total_time", "rows"),
        name_field="query",
    ),
    KindSpec(
        kind=EndpointKind.ENTITIES,
        path="/dump-entities",
        roles=(PortRole.MASTER,),
        fields=("entity_type", "entity_id", "name", "parent_id", "state", "detail"),
        key_fields=("entity_type", "entity_id"),
        parser=json_kinds.parse_entities,
        display_fields=("entity_type", "entity_id", "name", "state"),
        table_field="name",
        detail_only_rows=(("entity_type", "tablet"),),
    ),
    KindSpec(
        kind=EndpointKind.MASTERS,
        path="/api/v1/masters",
        roles=(PortRole.MASTER,),
        fields=("permanent_uuid", "instance_seqno", "start_time_us",
                "private_rpc_addresses", "http_addresses", "cloud", "region",
                "zone", "role", "error"),
        key_fields=("permanent_uuid",),
        parser=json_kinds.parse_masters,
        display_fields=("permanent_uuid", "role", "private_rpc_addresses", "error"),
    ),
    KindSpec(
        kind=EndpointKind.TABLET_SERVERS,
        path="/api/v1/tablet-servers",
        roles=(PortRole.MASTER,),
        fields=_TABLET_SERVER_FIELDS,
        key_fields=("server",),
        parser=json_kinds.parse_tablet_servers,
        volatile_fields=(
            "time_since_hb", "time_since_hb_sec", "uptime_seconds", "ram_used",
            "ram_used_bytes", "num_sst_files", "total_sst_file_size",
            "total_sst_file_size_bytes", "uncompressed_sst_file_size",
            "uncompressed_sst_file_size_bytes", "read_ops_per_sec",
            "write_ops_per_sec",
        ),
        display_fields=("server", "status", "time_since_hb", "uptime_seconds",
                        "ram_used", "user_tablets_total", "user_tablets_leaders"),
    ),
    KindSpec(
        kind=EndpointKind.VERSIONS,
        path="/api/v1/version",
        roles=DB_ROLES,
        fields=("git_hash", "build_hostname", "build_timestamp", "build_username",
                "build_clean_repo", "build_id", "build_type", "version_number",
                "build_number"),
        key_fields=(),
        parser=json_kinds.parse_versions,
        display_fields=("version_number", "build_number", "build_type", "git_hash"),
    ),
    KindSpec(
        kind=EndpointKind.VARS,
        path="/api/v1/varz",
        roles=DB_ROLES,
        fields=("name", "value", "type"),
        key_fields=("name",),
        parser=json_kinds.parse_vars,
        name_field="name",
    ),
    KindSpec(
        kind=EndpointKind.GFLAGS,
        path="/varz?raw",
        roles=DB_ROLES,
        fields=("name", "value"),
        key_fields=("name",),
        parser=text_kinds.parse_gflags,
        name_field="name",
    ),
    KindSpec(
        kind=EndpointKind.THREADS,
        path="/threadz?group=all",
        roles=DB_ROLES,
        fields=("thread_name", "cpu_user", "cpu_kernel", "io_wait"),
        key_fields=("thread_name",),
        parser=html_kinds.parse_threads,
        volatile_fields=("cpu_user", "cpu_kernel", "io_wait"),
        name_field="thread_name",
    ),
    KindSpec(
        kind=EndpointKind.CLUSTER_CONFIG,
        path="/api/v1/cluster-config",
        roles=(PortRole.MASTER,),
        fields=("name", "value"),
        key_fields=("name",),
        parser=json_kinds.parse_cluster_config,
        name_field="name",
    ),
    KindSpec(
        kind=EndpointKind.HEALTH_CHECK,
        path="/api/v1/health-check",
        roles=(PortRole.MASTER,),
        fields=("name", "value"),
        key_fields=("name",),
        parser=json_kinds.parse_health_check,
        name_field="name",
    ),
    KindSpec(
        kind=EndpointKind.DRIVES,
        path="/drives",
        roles=DB_ROLES,
        fields=("path", "used_space", "total_space"),
        key_fields=("path",),
        parser=html_kinds.parse_drives,
        volatile_fields=("used_space",),
    ),
    KindSpec(
        kind=EndpointKind.TABLET_SERVER_OPERATIONS,
        path="/operations",
        roles=(PortRole.TSERVER,),
        fields=("tablet_id", "op_id", "transaction_type", "time_in_flight",
                "description"),
        key_fields=("tablet_id", "op_id"),
        parser=html_kinds.parse_tablet_server_operations,
        volatile_fields=("time_in_flight",),
    ),
    KindSpec(
        kind=EndpointKind.MASTER_TASKS,
        path="/tasks",
        roles=(PortRole.MASTER,),
        fields=("task_name", "state", "start_time", "duration", "description"),
        key_fields=("task_name", "start_time"),
        parser=html_kinds.parse_master_tasks,
        volatile_fields=("duration",),
        name_field="task_name",
    ),
    KindSpec(
        kind=EndpointKind.TABLE_DETAIL,
        path="/table?id={uuid}",
        roles=(PortRole.MASTER,),
        fields=("tablet_id", "partition", "split_depth", "state", "hidden",
                "message", "raft_config"),
        key_fields=("tablet_id",),
        parser=html_kinds.parse_table_detail,
        display_fields=("tablet_id", "partition", "state", "raft_config"),
        needs_uuid=True,
        in_snapshot=False,
    ),
    KindSpec(
        kind=EndpointKind.TABLET_DETAIL,
        path="/tablet?id={uuid}",
        roles=(PortRole.TSERVER,),
        fields=("column", "column_id", "column_type"),
        key_fields=("column",),
        parser=html_kinds.parse_tablet_detail,
        needs_uuid=True,
        in_snapshot=False,
    ),
    KindSpec(
        kind=EndpointKind.LOGS,
        path="/logs?raw",
        roles=DB_ROLES,
        fields=("severity", "log_time", "thread_id", "source", "message"),
        key_fields=("log_time", "thread_id", "source"),
        parser=text_kinds.parse_logs,
        severity_field="severity",
    ),
    KindSpec(
        kind=EndpointKind.RPCS,
        path="/rpcz",
        roles=ALL_SERVER_ROLES,
        fields=("direction", "remote_ip", "state", "processed_call_count",
                "calls_in_flight", "detail"),
        key_fields=("direction", "remote_ip"),
        parser=json_kinds.parse_rpcs,
        volatile_fields=("processed_call_count", "calls_in_flight", "detail"),
    ),
    KindSpec(
        kind=EndpointKind.CLOCKS,
        path="/tablet-server-clocks",
        roles=(PortRole.MASTER,),
        fields=("server", "time_since_heartbeat", "physical_time", "hybrid_time",
                "heartbeat_rtt", "cloud", "region", "zone"),
        key_fields=("server",),
        parser=html_kinds.parse_clocks,
        volatile_fields=("time_since_heartbeat", "physical_time", "hybrid_time",
                         "heartbeat_rtt"),
    ),
)}


def get_spec(kind) -> KindSpec:
    """Return the KindSpec for an EndpointKind or its name."""
    if not isinstance(kind, EndpointKind):
        kind = EndpointKind.from_name(str(kind))
    return KIND_SPECS[kind]


def snapshot_specs() -> List[KindSpec]:
    """Kinds collected by a full snapshot, in enumeration order."""
    return [KIND_SPECS[k] for k in EndpointKind if KIND_SPECS[k].in_snapshot]


def metric_specs() -> List[KindSpec]:
    return [s for s in snapshot_specs() if s.is_metric]


def structured_specs() -> List[KindSpec]:
    return [s for s in snapshot_specs() if not s.is_metric]
