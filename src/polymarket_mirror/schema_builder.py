from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Tuple

from sqlalchemy import (JSON, Boolean, Column, DateTime, Float, ForeignKey,
                        Index, MetaData, Table, Text)
from sqlalchemy.dialects.postgresql import JSONB

from .schema import EntitySchema, SchemaRegistry, SemanticType


class BindMode(str, Enum):
    """How a column's value is bound in a write statement."""

    SCALAR = "scalar"
    DOCUMENT = "document"
    TIMESTAMP = "timestamp"


@dataclass(frozen=True)
class ColumnBinding:
    field_name: str
    column_name: str
    mode: BindMode


@dataclass
class TableNode:
    schema: EntitySchema
    table: Table
    bindings: Tuple[ColumnBinding, ...]
    key_column: str
    columns_by_field: Dict[str, Column] = field(default_factory=dict)

    @property
    def name(self) -> str:
        return self.table.name


@dataclass
class SchemaBuildResult:
    metadata: MetaData
    nodes: Dict[str, TableNode]

    def node(self, entity_kind: str) -> TableNode:
        return self.nodes[entity_kind]


def map_type(semantic_type: SemanticType):
    if semantic_type is SemanticType.NUMBER:
        return Float
    if semantic_type is SemanticType.BOOLEAN:
        return Boolean
    if semantic_type is SemanticType.DATE:
        return DateTime(timezone=True)
    if semantic_type is SemanticType.JSON:
        return JSON(none_as_null=True).with_variant(
            JSONB(none_as_null=True), "postgresql"
        )
    return Text


def bind_mode(semantic_type: SemanticType) -> BindMode:
    if semantic_type is SemanticType.JSON:
        return BindMode.DOCUMENT
    if semantic_type is SemanticType.DATE:
        return BindMode.TIMESTAMP
    return BindMode.SCALAR


class SchemaBuilder:
    def __init__(self, registry: SchemaRegistry, metadata: Optional[MetaData] = None) -> None:
        self.registry = registry
        self.metadata = metadata or MetaData()
        self.nodes: Dict[str, TableNode] = {}

    def build(self) -> SchemaBuildResult:
        for kind in self.registry.kinds:
            self.process_entity(self.registry.entity(kind))
        return SchemaBuildResult(metadata=self.metadata, nodes=self.nodes)

    def _foreign_keys(self, schema: EntitySchema) -> Dict[str, str]:
        """Child parent-key fields pointing at the parent's primary key column."""
        references: Dict[str, str] = {}
        for kind in self.registry.kinds:
            parent = self.registry.entity(kind)
            for child in parent.children:
                if child.kind != schema.kind:
                    continue
                parent_pk = parent.field(parent.primary_key).column_name
                references[child.parent_key] = f"{parent.table_name}.{parent_pk}"
        return references

    def process_entity(self, schema: EntitySchema) -> TableNode:
        if schema.kind in self.nodes:
            return self.nodes[schema.kind]

        references = self._foreign_keys(schema)
        columns = []
        columns_by_field: Dict[str, Column] = {}
        bindings = []
        for spec in schema.fields.values():
            is_key = spec.name == schema.primary_key
            args = []
            if spec.name in references:
                args.append(ForeignKey(references[spec.name], ondelete="CASCADE"))
            column = Column(
                spec.column_name,
                map_type(spec.semantic_type),
                *args,
                primary_key=is_key,
                nullable=not is_key,
            )
            columns.append(column)
            columns_by_field[spec.name] = column
            bindings.append(
                ColumnBinding(
                    field_name=spec.name,
                    column_name=spec.column_name,
                    mode=bind_mode(spec.semantic_type),
                )
            )

        table = Table(schema.table_name, self.metadata, *columns)
        for field_name in references:
            column_name = schema.field(field_name).column_name
            Index(f"ix_{schema.table_name}_{column_name}", table.c[column_name])
        sort_field, _ = schema.default_sort
        if sort_field in schema.fields:
            column_name = schema.field(sort_field).column_name
            Index(f"ix_{schema.table_name}_{column_name}", table.c[column_name])

        node = TableNode(
            schema=schema,
            table=table,
            bindings=tuple(bindings),
            key_column=schema.field(schema.primary_key).column_name,
            columns_by_field=columns_by_field,
        )
        self.nodes[schema.kind] = node
        return node


def build_schema(registry: SchemaRegistry) -> SchemaBuildResult:
    return SchemaBuilder(registry).build()
