"""Field-type registry shared by the query translator and the ingestion writer."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Dict, Iterable, Mapping, Optional, Tuple, Union

MAX_IDENTIFIER_LENGTH = 63


class SemanticType(str, Enum):
    """Declared value kind of an entity field."""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    JSON = "json"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


def to_snake_case(value: str) -> str:
    result = []
    prev_lower = False
    for char in value:
        if char.isupper() and prev_lower:
            result.append("_")
        result.append(char.lower() if char.isalnum() else "_")
        prev_lower = char.islower() or char.isdigit()
    snake = "".join(result)
    while "__" in snake:
        snake = snake.replace("__", "_")
    return snake.strip("_")


@dataclass(frozen=True)
class FieldSpec:
    """One registered field: API name, storage column and upstream key."""

    name: str
    semantic_type: SemanticType
    column_name: str
    source: str


@dataclass(frozen=True)
class ChildRelation:
    """Nested upstream records persisted as a separate entity kind.

    ``name`` is the upstream key holding the nested list, ``kind`` the child
    entity, and ``parent_key`` the child field that receives the parent id.
    """

    name: str
    kind: str
    parent_key: str


@dataclass(frozen=True)
class EmbeddedRelation:
    """Related rows attached to read-path results under ``name``."""

    name: str
    kind: str
    local_field: str
    remote_field: str
    many: bool


@dataclass(frozen=True, eq=False)
class EntitySchema:
    kind: str
    table_name: str
    fields: Mapping[str, FieldSpec]
    primary_key: str = "id"
    default_sort: Tuple[str, SortDirection] = ("createdAt", SortDirection.DESC)
    children: Tuple[ChildRelation, ...] = ()
    embeds: Tuple[EmbeddedRelation, ...] = ()

    def type_of(self, field_name: str) -> Optional[SemanticType]:
        spec = self.fields.get(field_name)
        return spec.semantic_type if spec is not None else None

    def field(self, field_name: str) -> FieldSpec:
        return self.fields[field_name]

    @property
    def column_names(self) -> Tuple[str, ...]:
        return tuple(spec.column_name for spec in self.fields.values())


def build_entity(
    kind: str,
    field_types: Mapping[str, Union[str, SemanticType]],
    *,
    table_name: Optional[str] = None,
    sources: Optional[Mapping[str, str]] = None,
    primary_key: str = "id",
    default_sort: Tuple[str, SortDirection] = ("createdAt", SortDirection.DESC),
    children: Iterable[ChildRelation] = (),
    embeds: Iterable[EmbeddedRelation] = (),
) -> EntitySchema:
    """Build an :class:`EntitySchema` from a ``field -> type`` table."""
    sources = sources or {}
    fields: Dict[str, FieldSpec] = {}
    seen_columns: Dict[str, str] = {}
    for name, raw_type in field_types.items():
        column_name = to_snake_case(name)
        if len(column_name) > MAX_IDENTIFIER_LENGTH:
            raise ValueError(f"Column name too long for field {kind}.{name}")
        if column_name in seen_columns:
            raise ValueError(
                f"Fields {seen_columns[column_name]!r} and {name!r} of {kind} "
                f"both map to column {column_name!r}"
            )
        seen_columns[column_name] = name
        fields[name] = FieldSpec(
            name=name,
            semantic_type=SemanticType(raw_type),
            column_name=column_name,
            source=sources.get(name, name),
        )

    if primary_key not in fields:
        raise ValueError(f"Primary key {primary_key!r} is not a field of {kind}")

    return EntitySchema(
        kind=kind,
        table_name=table_name or kind,
        fields=MappingProxyType(fields),
        primary_key=primary_key,
        default_sort=default_sort,
        children=tuple(children),
        embeds=tuple(embeds),
    )


@dataclass(frozen=True, eq=False)
class SchemaRegistry:
    """Immutable per-entity mapping of field name to :class:`SemanticType`."""

    entities: Mapping[str, EntitySchema] = field(default_factory=dict)

    def __post_init__(self) -> None:
        entities = dict(self.entities)
        for schema in entities.values():
            for child in schema.children:
                target = entities.get(child.kind)
                if target is None:
                    raise ValueError(
                        f"{schema.kind}.{child.name} refers to unknown kind {child.kind!r}"
                    )
                if child.parent_key not in target.fields:
                    raise ValueError(
                        f"{child.kind} has no parent key field {child.parent_key!r}"
                    )
            for embed in schema.embeds:
                target = entities.get(embed.kind)
                if target is None or embed.remote_field not in target.fields:
                    raise ValueError(f"Invalid embedded relation {schema.kind}.{embed.name}")
                if embed.local_field not in schema.fields:
                    raise ValueError(f"Invalid embedded relation {schema.kind}.{embed.name}")
        object.__setattr__(self, "entities", MappingProxyType(entities))

    @classmethod
    def of(cls, *entities: EntitySchema) -> "SchemaRegistry":
        return cls({schema.kind: schema for schema in entities})

    def type_of(self, entity_kind: str, field_name: str) -> Optional[SemanticType]:
        """Return the field's type, or None when it is not filterable/sortable."""
        schema = self.entities.get(entity_kind)
        if schema is None:
            return None
        return schema.type_of(field_name)

    def entity(self, entity_kind: str) -> EntitySchema:
        return self.entities[entity_kind]

    @property
    def kinds(self) -> Tuple[str, ...]:
        return tuple(self.entities)

    def __contains__(self, entity_kind: object) -> bool:
        return entity_kind in self.entities
