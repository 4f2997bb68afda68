"""Map upstream records into persisted row shape."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .coercion import coerce_field_value
from .schema import ChildRelation, EntitySchema

PersistedRow = Dict[str, Any]


def transform_record(
    schema: EntitySchema,
    record: Mapping[str, Any],
    overrides: Optional[Mapping[str, Any]] = None,
) -> PersistedRow:
    """Build a full row keyed by column name; absent or invalid values become None."""
    data = record if isinstance(record, Mapping) else {}
    overrides = overrides or {}
    row: PersistedRow = {}
    for spec in schema.fields.values():
        if spec.name in overrides:
            value = overrides[spec.name]
        else:
            value = data.get(spec.source)
        row[spec.column_name] = coerce_field_value(spec.semantic_type, value)
    return row


def transform_records(
    schema: EntitySchema, records: Sequence[Mapping[str, Any]]
) -> List[PersistedRow]:
    return [transform_record(schema, record) for record in records]


def iter_child_records(
    relation: ChildRelation,
    parent_id: Any,
    record: Mapping[str, Any],
) -> Iterator[Tuple[Mapping[str, Any], Dict[str, Any]]]:
    """Yield ``(child_record, overrides)`` pairs for one nested relation."""
    children = record.get(relation.name) if isinstance(record, Mapping) else None
    if not isinstance(children, Sequence) or isinstance(children, (str, bytes)):
        return
    for child in children:
        if isinstance(child, Mapping):
            yield child, {relation.parent_key: parent_id}


def row_to_fields(schema: EntitySchema, row: Mapping[str, Any]) -> Dict[str, Any]:
    """Re-key a stored row from column names back to field names."""
    return {
        spec.name: row.get(spec.column_name) for spec in schema.fields.values()
    }
