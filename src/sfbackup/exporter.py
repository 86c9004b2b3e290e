from __future__ import annotations

import base64
import binascii
import logging
import os
from typing import Any, Mapping

from .exceptions import BlobDecodeError, ExportError
from .planner import ColumnPlan
from .utils import ensure_dir
from .writer import CsvWriter

_logger = logging.getLogger(__name__)

# Blob fields come back from the REST query API as a link to the binary
# resource rather than inline base64.
_REST_BLOB_PREFIX = "/services/data/"


def csv_path_for(out_dir: str, object_name: str) -> str:
    return os.path.join(out_dir, f"{object_name}.csv")


def blob_dir_for(out_dir: str, object_name: str, field: str) -> str:
    return os.path.join(out_dir, f"{object_name}.{field}")


def _strip_line_breaks(value: Any) -> Any:
    if isinstance(value, str):
        return value.replace("\r", "").replace("\n", "")
    if isinstance(value, bytes):
        return value.replace(b"\r", b"").replace(b"\n", b"")
    return value


def _write_blob(api, plan: ColumnPlan, field: str, value: Any, target: str) -> None:
    if isinstance(value, str) and value.startswith(_REST_BLOB_PREFIX):
        api.download_path_to_file(value, target)
        return

    try:
        # Line breaks are allowed in wrapped (MIME style) payloads.
        data = base64.b64decode(_strip_line_breaks(value), validate=True)
    except (binascii.Error, TypeError, ValueError) as e:
        raise BlobDecodeError(
            f"error decoding base64 field {plan.object_name}.{field} error: {e}"
        ) from e
    try:
        with open(target, "wb") as f:
            f.write(data)
    except OSError as e:
        raise ExportError(
            f"failed to write base64 field: {plan.object_name}.{field} error: {e}"
        ) from e


def _export_blobs(api, plan: ColumnPlan, record: Mapping[str, Any], out_dir: str) -> None:
    record_id = record.get("Id")
    if not record_id:
        return
    for field in plan.blob_fields:
        value = record.get(field)
        if value is None:
            continue
        target = os.path.join(blob_dir_for(out_dir, plan.object_name, field), str(record_id))
        _write_blob(api, plan, field, value, target)


def export_object(api, soql: str, plan: ColumnPlan, out_dir: str) -> int:
    """Stream the result of ``soql`` into ``<Object>.csv`` plus blob files.

    Returns the number of records written. Output already written when a
    failure occurs is left in place.
    """
    for field in plan.blob_fields:
        try:
            ensure_dir(blob_dir_for(out_dir, plan.object_name, field))
        except OSError as e:
            raise ExportError(
                f"failed to create directory for {plan.object_name}.{field}: {e}"
            ) from e

    csv_path = csv_path_for(out_dir, plan.object_name)
    _logger.info("export_object SOQL: %s", soql)

    with CsvWriter(csv_path, plan.columns) as writer:
        for record in api.query_all_iter(soql):
            writer.write(record)
            if plan.blob_fields:
                _export_blobs(api, plan, record, out_dir)

    _logger.info("export_object: %s -> %d rows (%s)", plan.object_name, writer.rows, csv_path)
    return writer.rows
