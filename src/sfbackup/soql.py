from __future__ import annotations

from datetime import datetime
from typing import Optional, Sequence


def format_boundary(dt: datetime) -> str:
    """Format a datetime as a SOQL literal with milliseconds and a numeric offset.

    >>> from datetime import timezone, timedelta
    >>> format_boundary(datetime(2024, 1, 2, 3, 4, 5, 678000, tzinfo=timezone(timedelta(hours=-7))))
    '2024-01-02T03:04:05.678-0700'
    """
    if dt.tzinfo is None:
        dt = dt.astimezone()
    return f"{dt:%Y-%m-%dT%H:%M:%S}.{dt.microsecond // 1000:03d}{dt:%z}"


def compile_query(
    object_name: str,
    columns: Sequence[str],
    blob_fields: Sequence[str] = (),
    since: Optional[datetime] = None,
    timestamp_field: Optional[str] = None,
) -> Optional[str]:
    """Build the SELECT for one object.

    Returns None when ``since`` is set but the object has no timestamp field to
    filter on; such objects are not exported at all.
    """
    soql = f"SELECT {','.join([*columns, *blob_fields])} FROM {object_name}"
    if since is None:
        return soql
    if not timestamp_field:
        return None
    return f"{soql} WHERE {timestamp_field} >= {format_boundary(since)}"
