"""Deduplicated, parameter-budgeted bulk upserts."""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Dict, List, Tuple

from sqlalchemy import Table
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.sql.dml import Insert

from .coercion import parse_timestamp
from .schema_builder import BindMode, ColumnBinding, TableNode

LOGGER = logging.getLogger("polymarket_mirror.batcher")

_DIALECT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


@dataclass
class UpsertResult:
    success_count: int = 0
    error_count: int = 0

    def __add__(self, other: "UpsertResult") -> "UpsertResult":
        return UpsertResult(
            success_count=self.success_count + other.success_count,
            error_count=self.error_count + other.error_count,
        )


@dataclass(frozen=True)
class UpsertBatch:
    start: int
    rows: Tuple[Mapping[str, Any], ...]

    def __len__(self) -> int:
        return len(self.rows)


def deduplicate_rows(
    rows: Sequence[Mapping[str, Any]], key_column: str
) -> List[Mapping[str, Any]]:
    """Keep one row per key; later rows overwrite earlier ones in place."""
    by_key: Dict[Any, Mapping[str, Any]] = {}
    for row in rows:
        by_key[row[key_column]] = row
    return list(by_key.values())


def max_rows_per_statement(column_count: int, parameter_budget: int) -> int:
    if column_count <= 0:
        raise ValueError("column_count must be positive")
    size = parameter_budget // column_count
    if size < 1:
        raise ValueError(
            f"Parameter budget {parameter_budget} cannot fit a single row of "
            f"{column_count} columns"
        )
    return size


def plan_batches(
    rows: Sequence[Mapping[str, Any]],
    key_column: str,
    column_count: int,
    parameter_budget: int,
) -> List[UpsertBatch]:
    size = max_rows_per_statement(column_count, parameter_budget)
    unique_rows = deduplicate_rows(rows, key_column)
    return [
        UpsertBatch(start=start, rows=tuple(unique_rows[start : start + size]))
        for start in range(0, len(unique_rows), size)
    ]


class UpsertStatementBuilder:
    """Build ``INSERT ... ON CONFLICT DO UPDATE`` statements for one table."""

    def __init__(
        self, table: Table, bindings: Sequence[ColumnBinding], key_column: str
    ) -> None:
        self.table = table
        self.bindings = tuple(bindings)
        self.key_column = key_column
        self.update_columns = [
            binding.column_name
            for binding in self.bindings
            if binding.column_name != key_column
        ]

    def prepare_row(self, row: Mapping[str, Any]) -> Dict[str, Any]:
        prepared: Dict[str, Any] = {}
        for binding in self.bindings:
            value = row.get(binding.column_name)
            if binding.mode is BindMode.TIMESTAMP:
                value = parse_timestamp(value)
            prepared[binding.column_name] = value
        return prepared

    def build(self, dialect_name: str, rows: Sequence[Mapping[str, Any]]) -> Insert:
        try:
            insert = _DIALECT_INSERTS[dialect_name]
        except KeyError as exc:
            raise NotImplementedError(
                f"Upserts are not supported for dialect {dialect_name!r}"
            ) from exc

        stmt = insert(self.table).values([self.prepare_row(row) for row in rows])
        return stmt.on_conflict_do_update(
            index_elements=[self.table.c[self.key_column]],
            set_={column: stmt.excluded[column] for column in self.update_columns},
        )


class BulkUpsertBatcher:
    """Persist rows for one table in independent, budget-sized chunks."""

    def __init__(self, node: TableNode, parameter_budget: int) -> None:
        self.node = node
        self.parameter_budget = parameter_budget
        self.builder = UpsertStatementBuilder(
            node.table, node.bindings, node.key_column
        )
        self.batch_size = max_rows_per_statement(len(node.bindings), parameter_budget)

    def plan(self, rows: Sequence[Mapping[str, Any]]) -> List[UpsertBatch]:
        return plan_batches(
            rows, self.node.key_column, len(self.node.bindings), self.parameter_budget
        )

    async def upsert(
        self, engine: AsyncEngine, rows: Sequence[Mapping[str, Any]]
    ) -> UpsertResult:
        result = UpsertResult()
        for batch in self.plan(rows):
            started = time.perf_counter()
            try:
                async with engine.begin() as conn:
                    await conn.execute(self.builder.build(conn.dialect.name, batch.rows))
            except SQLAlchemyError as exc:
                LOGGER.error(
                    "Bulk upsert into %s failed for batch at index %s (%s rows): %s",
                    self.node.name,
                    batch.start,
                    len(batch),
                    exc,
                )
                result.error_count += len(batch)
                continue

            result.success_count += len(batch)
            LOGGER.debug(
                "Upserted %s rows into %s in %.0fms",
                len(batch),
                self.node.name,
                (time.perf_counter() - started) * 1000,
            )
        return result
