"""Describe metadata for the object types of one org.

The catalog is built once, before any object is exported, and is read-only
afterwards. Lookups are case-insensitive.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from .exceptions import CatalogError

_logger = logging.getLogger(__name__)

DESCRIBE_BATCH_SIZE = 100


@dataclass(frozen=True)
class FieldDescriptor:
    name: str
    type: str = "string"
    reference_to: Tuple[str, ...] = ()
    relationship_name: str = ""
    id_lookup: bool = False
    name_field: bool = False

    @classmethod
    def from_describe(cls, f: dict) -> FieldDescriptor:
        return cls(
            name=f["name"],
            type=f.get("type") or "string",
            reference_to=tuple(f.get("referenceTo") or ()),
            relationship_name=f.get("relationshipName") or "",
            id_lookup=bool(f.get("idLookup")),
            name_field=bool(f.get("nameField")),
        )


@dataclass(frozen=True)
class ObjectSummary:
    """One entry of the global describe."""

    name: str
    queryable: bool = False
    createable: bool = False

    @classmethod
    def from_describe(cls, s: dict) -> ObjectSummary:
        return cls(
            name=s["name"],
            queryable=bool(s.get("queryable")),
            createable=bool(s.get("createable")),
        )


@dataclass(frozen=True)
class ObjectDescriptor:
    name: str
    fields: Tuple[FieldDescriptor, ...] = ()
    queryable: bool = False
    createable: bool = False

    @classmethod
    def from_describe(cls, d: dict) -> ObjectDescriptor:
        return cls(
            name=d["name"],
            fields=tuple(FieldDescriptor.from_describe(f) for f in d.get("fields", [])),
            queryable=bool(d.get("queryable")),
            createable=bool(d.get("createable")),
        )


def parse_global_describe(payload: dict) -> List[ObjectSummary]:
    """Turn a /sobjects response into summaries, keeping the server's order."""
    return [ObjectSummary.from_describe(s) for s in payload.get("sobjects", [])]


def _batches(names: List[str], size: int) -> Iterator[List[str]]:
    for i in range(0, len(names), size):
        yield names[i : i + size]


class SchemaCatalog:
    """Describe results indexed by lowercase object name."""

    def __init__(self, descriptors: Iterable[ObjectDescriptor] = ()) -> None:
        self._by_name: Dict[str, ObjectDescriptor] = {}
        for d in descriptors:
            self.add(d)

    def add(self, descriptor: ObjectDescriptor) -> None:
        self._by_name[descriptor.name.lower()] = descriptor

    def lookup(self, name: str) -> Optional[ObjectDescriptor]:
        return self._by_name.get(name.lower())

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._by_name

    def __len__(self) -> int:
        return len(self._by_name)

    @classmethod
    def build(
        cls,
        api,
        summaries: Iterable[ObjectSummary],
        *,
        batch_size: int = DESCRIBE_BATCH_SIZE,
    ) -> SchemaCatalog:
        """Describe every summarised object in batches of ``batch_size``.

        Any describe failure is fatal for the run and raised as CatalogError.
        """
        catalog = cls()
        names = [s.name for s in summaries]
        for batch in _batches(names, batch_size):
            try:
                results = api.describe_objects(batch)
            except Exception as e:
                raise CatalogError(f"failed to describe sobjects: {e}") from e
            for d in results:
                catalog.add(ObjectDescriptor.from_describe(d))
        _logger.info("Described %d of %d sObjects", len(catalog), len(names))
        return catalog
