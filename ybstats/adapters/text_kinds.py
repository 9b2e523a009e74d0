"""
Adapters for the plain-text endpoints.

Path: ybstats/adapters/text_kinds.py

node-exporter (Prometheus exposition), gflags (``/varz?raw``) and server
logs (``/logs?raw``) are parsed with the TextFSM templates shipped in
``ybstats/adapters/templates``.
"""

import html
import io
import logging
import re
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List

import textfsm

from ybstats.adapters.common import number_value
from ybstats.errors import PayloadParseError


logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).parent / "templates"

# Histogram and summary samples that only ever grow.
_CUMULATIVE_SUFFIXES = ("_bucket", "_sum", "_count")

_TAG_RE = re.compile(r"<[^>]+>")


@lru_cache(maxsize=None)
def load_template(name: str) -> str:
    """Return the text of a packaged TextFSM template."""
    return (TEMPLATE_DIR / f"{name}.textfsm").read_text()


def parse_with_template(name: str, text: str) -> List[Dict[str, str]]:
    """
    Run a TextFSM template over text.

    Args:
        name: Template name without extension.
        text: Body to parse.

    Returns:
        One dict per record, keyed by the template's lower-cased Value names.

    Raises:
        PayloadParseError: The template rejected the input.
    """
    fsm = textfsm.TextFSM(io.StringIO(load_template(name)))
    try:
        parsed = fsm.ParseText(text)
    except textfsm.TextFSMError as e:
        raise PayloadParseError(f"{name} template failed: {e}")
    header = [h.lower() for h in fsm.header]
    return [dict(zip(header, row)) for row in parsed]


def _sample_type(stat_type: str, type_name: str, name: str) -> str:
    if not type_name or not name.startswith(type_name):
        return "gauge"
    if stat_type == "counter":
        return "counter"
    if stat_type in ("histogram", "summary") and name.endswith(_CUMULATIVE_SUFFIXES):
        return "counter"
    return "gauge"


def parse_node_exporter(body: str) -> List[Dict[str, Any]]:
    """
    node_exporter /metrics

    Each sample becomes one row keyed by metric name and label set. The
    ``# TYPE`` comment preceding a family decides counter or gauge.
    Samples with NaN or infinite values are dropped.
    """
    records = [r for r in parse_with_template("node_exporter", body or "") if r["name"]]
    if not records:
        raise PayloadParseError("no Prometheus samples")

    rows = []
    for record in records:
        try:
            value = number_value(record["value"])
        except PayloadParseError:
            continue
        rows.append({
            "name": record["name"],
            "labels": record["labels"],
            "value": value,
            "statistic_type": _sample_type(
                record["stat_type"], record["type_name"], record["name"]
            ),
        })
    logger.debug(f"node-exporter: {len(rows)} of {len(records)} samples kept")
    return rows


def parse_gflags(body: str) -> List[Dict[str, Any]]:
    """/varz?raw: one ``--name=value`` line per flag."""
    records = parse_with_template("gflags", body or "")
    if not records:
        raise PayloadParseError("no --flag=value lines")
    return [{"name": r["name"], "value": r["value"]} for r in records]


def parse_logs(body: str) -> List[Dict[str, Any]]:
    """
    /logs?raw

    The server may wrap the log in a ``<pre>`` block; tags are stripped and
    entities unescaped before matching glog line headers. Lines that are
    not a glog header (continuations, banners) are ignored, so an empty log
    is a valid result.
    """
    text = html.unescape(_TAG_RE.sub("", body or ""))
    return parse_with_template("logs", text)
