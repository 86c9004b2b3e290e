from __future__ import annotations

import json
from typing import Any, Mapping


def get_path(record: Mapping[str, Any], path: str) -> Any:
    """Traverse dicts using dot paths like 'Parent.Name'. Returns None if missing."""
    cur: Any = record
    for part in path.split("."):
        if not isinstance(cur, Mapping):
            return None
        cur = cur.get(part)
        if cur is None:
            return None
    return cur


def to_text(value: Any) -> str:
    """Render a JSON-decoded field value as CSV text."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False, sort_keys=True)
    return str(value)
