from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from .schema import ObjectDescriptor, SchemaCatalog

_logger = logging.getLogger(__name__)

SKIPPED_TYPES = frozenset({"address", "location"})
BLOB_TYPE = "base64"

# Candidates for the incremental filter, highest priority first.
TIMESTAMP_FIELDS: Tuple[str, ...] = ("SystemModstamp", "LastModifiedDate", "CreatedDate")


@dataclass(frozen=True)
class ColumnPlan:
    """Which columns to select for one object, and how to filter it incrementally.

    ``columns`` is also the CSV header, in the same order.
    """

    object_name: str
    columns: Tuple[str, ...]
    blob_fields: Tuple[str, ...] = ()
    timestamp_field: Optional[str] = None


def _expands_relationship(field) -> bool:
    return (
        len(field.reference_to) == 1
        and field.reference_to[0] != "User"
        and bool(field.relationship_name)
    )


def plan_columns(descriptor: ObjectDescriptor, catalog: SchemaCatalog) -> ColumnPlan:
    """Compute the column plan for ``descriptor``.

    Fields are visited in declaration order:

    - ``address`` / ``location`` compound fields are dropped;
    - ``base64`` fields become blob fields, exported out-of-band;
    - everything else is a column. A single-target, non-User lookup with a
      relationship name is followed by ``<Relationship>.<Field>`` columns for
      each id-lookup or name field of the target object.
    """
    columns: List[str] = []
    blobs: List[str] = []
    present: set[str] = set()

    for field in descriptor.fields:
        if field.type in SKIPPED_TYPES:
            continue
        if field.type == BLOB_TYPE:
            blobs.append(field.name)
            continue

        columns.append(field.name)

        if _expands_relationship(field):
            target_name = field.reference_to[0]
            target = catalog.lookup(target_name)
            if target is None:
                _logger.warning(
                    "referenced object not described: %s (from %s.%s)",
                    target_name,
                    descriptor.name,
                    field.name,
                )
                continue
            for sub in target.fields:
                if sub.id_lookup or sub.name_field:
                    columns.append(f"{field.relationship_name}.{sub.name}")
        elif field.name in TIMESTAMP_FIELDS:
            present.add(field.name)

    timestamp_field = next((t for t in TIMESTAMP_FIELDS if t in present), None)

    _logger.debug(
        "Planned %s: %d columns, %d blob fields, timestamp=%s",
        descriptor.name,
        len(columns),
        len(blobs),
        timestamp_field,
    )
    return ColumnPlan(
        object_name=descriptor.name,
        columns=tuple(columns),
        blob_fields=tuple(blobs),
        timestamp_field=timestamp_field,
    )
