"""
Adapters for endpoints that only serve HTML tables.

Path: ybstats/adapters/html_kinds.py

The web UI pages render plain ``<table>`` markup with a header row. A
table is located by one of its header labels and its columns are mapped
to kind fields by header text.
"""

import html
import re
from typing import Callable, Dict, List, Optional, Tuple

from ybstats.errors import PayloadParseError


_TABLE_RE = re.compile(r"<table\b.*?</table>", re.IGNORECASE | re.DOTALL)
_ROW_RE = re.compile(r"<tr\b.*?>(.*?)</tr>", re.IGNORECASE | re.DOTALL)
_CELL_RE = re.compile(r"<t([hd])\b.*?>(.*?)</t[hd]>", re.IGNORECASE | re.DOTALL)
_TAG_RE = re.compile(r"<[^>]+>")
_SPACE_RE = re.compile(r"\s+")


def _cell_text(raw: str) -> str:
    text = _TAG_RE.sub(" ", raw)
    return _SPACE_RE.sub(" ", html.unescape(text)).strip()


def extract_tables(body: str) -> List[Tuple[List[str], List[List[str]]]]:
    """
    Pull every table out of an HTML page.

    Returns:
        List of (header, rows). The header is the first row made of
        ``<th>`` cells; rows are the remaining rows, as text.
    """
    tables = []
    for table in _TABLE_RE.findall(body or ""):
        header: List[str] = []
        rows: List[List[str]] = []
        for row in _ROW_RE.findall(table):
            cells = _CELL_RE.findall(row)
            if not cells:
                continue
            if not header and all(kind.lower() == "h" for kind, _ in cells):
                header = [_cell_text(text) for _, text in cells]
                continue
            rows.append([_cell_text(text) for _, text in cells])
        tables.append((header, rows))
    return tables


def html_table_parser(
    anchor: str,
    columns: Dict[str, str],
    required: bool = True,
) -> Callable[[str], List[Dict[str, str]]]:
    """
    Build a parser for the table whose header contains ``anchor``.

    Args:
        anchor: Header label identifying the table.
        columns: Header label -> field name. Missing columns are left empty.
        required: When False a page without the table yields no rows
                  instead of a parse error.
    """

    def parse(body: str) -> List[Dict[str, str]]:
        rows: List[Dict[str, str]] = []
        found = False
        for header, table_rows in extract_tables(body):
            if anchor not in header:
                continue
            found = True
            index: Dict[str, Optional[int]] = {
                field: (header.index(label) if label in header else None)
                for label, field in columns.items()
            }
            for cells in table_rows:
                rows.append({
                    field: (cells[i] if i is not None and i < len(cells) else "")
                    for field, i in index.items()
                })
        if not found and required:
            raise PayloadParseError(f"no table with a {anchor!r} column")
        return rows

    return parse


parse_threads = html_table_parser("Thread name", {
    "Thread name": "thread_name",
    "Cumulative User CPU(s)": "cpu_user",
    "Cumulative Kernel CPU(s)": "cpu_kernel",
    "Cumulative IO-wait(s)": "io_wait",
})

parse_drives = html_table_parser("Path", {
    "Path": "path",
    "Used Space": "used_space",
    "Total Space": "total_space",
})

# An idle server has no operations and renders no table.
parse_tablet_server_operations = html_table_parser("Tablet id", {
    "Tablet id": "tablet_id",
    "Op Id": "op_id",
    "Transaction Type": "transaction_type",
    "Total time in-flight": "time_in_flight",
    "Description": "description",
}, required=False)

parse_master_tasks = html_table_parser("Task Name", {
    "Task Name": "task_name",
    "State": "state",
    "Start Time": "start_time",
    "Time": "duration",
    "Description": "description",
}, required=False)

parse_table_detail = html_table_parser("Tablet ID", {
    "Tablet ID": "tablet_id",
    "Partition": "partition",
    "SplitDepth": "split_depth",
    "State": "state",
    "Hidden": "hidden",
    "Message": "message",
    "RaftConfig": "raft_config",
})

parse_tablet_detail = html_table_parser("Column", {
    "Column": "column",
    "ID": "column_id",
    "Type": "column_type",
})

parse_clocks = html_table_parser("Server", {
    "Server": "server",
    "Time since heartbeat": "time_since_heartbeat",
    "Physical Time (UTC)": "physical_time",
    "Hybrid Time (UTC)": "hybrid_time",
    "Heartbeat RTT": "heartbeat_rtt",
    "Cloud": "cloud",
    "Region": "region",
    "Zone": "zone",
})
