from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

from sqlalchemy import func, select, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

from .batcher import BulkUpsertBatcher, UpsertResult
from .config import DEFAULT_PARAMETER_BUDGET
from .query import Equals, FilterSpec, Gte, In, Lte, PageRequest, SortSpec
from .schema import EmbeddedRelation, SchemaRegistry, SortDirection
from .schema_builder import SchemaBuildResult, TableNode, build_schema
from .transform import row_to_fields

LOGGER = logging.getLogger("polymarket_mirror.db")


@dataclass
class QueryResult:
    rows: List[Dict[str, Any]] = field(default_factory=list)
    total: int = 0


class PersistenceGateway(Protocol):
    async def query(
        self,
        entity_kind: str,
        filters: FilterSpec,
        sort: Optional[SortSpec],
        page: PageRequest,
    ) -> QueryResult: ...

    async def bulk_upsert(
        self, entity_kind: str, rows: Sequence[Mapping[str, Any]]
    ) -> UpsertResult: ...


def _predicate_clause(node: TableNode, predicate):
    column = node.columns_by_field[predicate.field]
    if isinstance(predicate, Equals):
        if predicate.value is None:
            return column.is_(None)
        return column == predicate.value
    if isinstance(predicate, In):
        return column.in_(list(predicate.values))
    if isinstance(predicate, Gte):
        return column >= predicate.value
    if isinstance(predicate, Lte):
        return column <= predicate.value
    raise TypeError(f"Unsupported predicate {predicate!r}")


class SqlGateway:
    """SQLAlchemy-backed store for mirrored entities.

    Manages the async engine, the registry-derived table metadata and one
    :class:`BulkUpsertBatcher` per entity kind.
    """

    def __init__(
        self,
        registry: SchemaRegistry,
        *,
        database_url: Optional[str] = None,
        engine: Optional[AsyncEngine] = None,
        parameter_budget: int = DEFAULT_PARAMETER_BUDGET,
        connect_timeout: float = 60.0,
    ) -> None:
        if engine is None and database_url is None:
            raise ValueError("Either database_url or engine is required")
        self._registry = registry
        self._database_url = database_url
        self._engine = engine
        self._connect_timeout = connect_timeout
        self._schema: SchemaBuildResult = build_schema(registry)
        self._batchers = {
            kind: BulkUpsertBatcher(node, parameter_budget)
            for kind, node in self._schema.nodes.items()
        }

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError("Engine not initialised; call open()")
        return self._engine

    @property
    def schema(self) -> SchemaBuildResult:
        return self._schema

    async def open(self) -> AsyncEngine:
        deadline = time.time() + self._connect_timeout
        attempts = 0
        while True:
            attempts += 1
            engine = self._engine or create_async_engine(self._database_url)
            try:
                LOGGER.info("Connecting to database (attempt %s)", attempts)
                async with engine.connect() as connection:
                    await connection.execute(text("SELECT 1"))
                self._engine = engine
                LOGGER.info("Connected to database")
                return engine
            except (OperationalError, OSError) as exc:
                if engine is not self._engine:
                    await engine.dispose()
                if time.time() >= deadline:
                    raise RuntimeError("Database connection timed out") from exc
                LOGGER.warning("Database not ready yet (%s), retrying...", exc)
                await asyncio.sleep(min(2 * attempts, 10))

    async def ensure_schema(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(self._schema.metadata.create_all)

    async def dispose(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
        self._engine = None

    async def bulk_upsert(
        self, entity_kind: str, rows: Sequence[Mapping[str, Any]]
    ) -> UpsertResult:
        if not rows:
            return UpsertResult()
        return await self._batchers[entity_kind].upsert(self.engine, rows)

    async def query(
        self,
        entity_kind: str,
        filters: FilterSpec,
        sort: Optional[SortSpec],
        page: PageRequest,
    ) -> QueryResult:
        node = self._schema.node(entity_kind)
        schema = node.schema
        table = node.table
        clauses = [_predicate_clause(node, predicate) for predicate in filters]

        order_by = []
        if sort:
            for key in sort:
                column = node.columns_by_field[key.field]
                order_by.append(
                    column.desc() if key.direction is SortDirection.DESC else column.asc()
                )
        else:
            field_name, direction = schema.default_sort
            column = node.columns_by_field[field_name]
            order_by.append(
                column.desc() if direction is SortDirection.DESC else column.asc()
            )
        order_by.append(table.c[node.key_column].asc())

        count_stmt = select(func.count()).select_from(table).where(*clauses)
        fetch_stmt = (
            select(table)
            .where(*clauses)
            .order_by(*order_by)
            .limit(page.limit)
            .offset(page.offset)
        )

        async with self.engine.connect() as conn:
            total = (await conn.execute(count_stmt)).scalar_one()
            result = await conn.execute(fetch_stmt)
            rows = [row_to_fields(schema, row) for row in result.mappings().all()]
            for embed in schema.embeds:
                await self._attach_embedded(conn, embed, rows)

        return QueryResult(rows=rows, total=total)

    async def _attach_embedded(
        self,
        conn: AsyncConnection,
        embed: EmbeddedRelation,
        rows: List[Dict[str, Any]],
    ) -> None:
        keys = {row[embed.local_field] for row in rows if row.get(embed.local_field) is not None}
        related: Dict[Any, List[Dict[str, Any]]] = {}
        if keys:
            target = self._schema.node(embed.kind)
            remote_column = target.columns_by_field[embed.remote_field]
            sort_field, direction = target.schema.default_sort
            sort_column = target.columns_by_field[sort_field]
            stmt = (
                select(target.table)
                .where(remote_column.in_(sorted(keys)))
                .order_by(
                    sort_column.desc() if direction is SortDirection.DESC else sort_column.asc(),
                    target.table.c[target.key_column].asc(),
                )
            )
            result = await conn.execute(stmt)
            for record in result.mappings().all():
                item = row_to_fields(target.schema, record)
                related.setdefault(item[embed.remote_field], []).append(item)

        for row in rows:
            matches = related.get(row.get(embed.local_field), [])
            if embed.many:
                row[embed.name] = matches
            else:
                row[embed.name] = matches[0] if matches else None
