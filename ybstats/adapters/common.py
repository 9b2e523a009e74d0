"""
Helpers shared by the kind adapters.

Path: ybstats/adapters/common.py
"""

import json
import math
from typing import Any, Dict, List

from ybstats.errors import PayloadParseError


def text_value(value: Any) -> str:
    """Render a JSON scalar the way it is stored in a snapshot row."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def number_value(value: Any) -> float:
    """
    Convert a JSON or text number to float.

    Raises:
        PayloadParseError: Value is not numeric, or is NaN/infinite.
    """
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    try:
        result = float(value)
    except (TypeError, ValueError):
        raise PayloadParseError(f"not a number: {value!r}")
    if math.isnan(result) or math.isinf(result):
        raise PayloadParseError(f"not a finite number: {value!r}")
    return result


def load_json(body: str, expect: type = dict) -> Any:
    """
    Decode a JSON body and check its top-level type.

    Raises:
        PayloadParseError: Body is not JSON or has the wrong top-level type.
    """
    if not body or not body.strip():
        raise PayloadParseError("empty body")
    try:
        data = json.loads(body)
    except ValueError as e:
        raise PayloadParseError(f"invalid JSON: {e}")
    if not isinstance(data, expect):
        raise PayloadParseError(
            f"expected JSON {expect.__name__}, got {type(data).__name__}"
        )
    return data


def flatten(data: Any, prefix: str = "") -> List[Dict[str, str]]:
    """
    Flatten nested JSON into name/value rows.

    Dicts become dotted names, lists of scalars are joined with commas,
    lists of objects are indexed: ``replication_info.live_replicas.placement_blocks[0].min_num_replicas``.
    """
    rows: List[Dict[str, str]] = []
    if isinstance(data, dict):
        for key in sorted(data):
            name = f"{prefix}.{key}" if prefix else str(key)
            rows.extend(flatten(data[key], name))
    elif isinstance(data, list):
        if all(not isinstance(item, (dict, list)) for item in data):
            rows.append({"name": prefix, "value": ",".join(text_value(v) for v in data)})
        else:
            for index, item in enumerate(data):
                rows.extend(flatten(item, f"{prefix}[{index}]"))
    else:
        rows.append({"name": prefix, "value": text_value(data)})
    return rows
