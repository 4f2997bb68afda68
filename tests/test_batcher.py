import pytest
from sqlalchemy import select
from sqlalchemy.dialects import postgresql
from sqlalchemy.dialects.postgresql import asyncpg

from polymarket_mirror.batcher import (BulkUpsertBatcher, UpsertResult,
                                       deduplicate_rows,
                                       max_rows_per_statement, plan_batches)
from polymarket_mirror.config import DEFAULT_PARAMETER_BUDGET
from polymarket_mirror.fields import REGISTRY
from polymarket_mirror.schema_builder import build_schema
from polymarket_mirror.transform import transform_record


def _widget(widget_id, **extra):
    return {"id": widget_id, "name": f"widget {widget_id}", **extra}


def test_deduplicate_keeps_last_value_first_position():
    rows = [
        {"id": "a", "v": 1},
        {"id": "b", "v": 2},
        {"id": "a", "v": 3},
    ]
    assert deduplicate_rows(rows, "id") == [{"id": "a", "v": 3}, {"id": "b", "v": 2}]


def test_max_rows_per_statement():
    assert max_rows_per_statement(84, 32767) == 390
    assert max_rows_per_statement(136, 32767) == 240
    with pytest.raises(ValueError):
        max_rows_per_statement(10, 9)
    with pytest.raises(ValueError):
        max_rows_per_statement(0, 100)


def test_plan_respects_budget():
    rows = [{"id": str(i)} for i in range(23)] + [{"id": "0"}]
    batches = plan_batches(rows, "id", column_count=5, parameter_budget=23)
    assert [len(batch) for batch in batches] == [4, 4, 4, 4, 4, 3]
    assert all(len(batch) * 5 <= 23 for batch in batches)
    assert [batch.start for batch in batches] == [0, 4, 8, 12, 16, 20]
    ids = [row["id"] for batch in batches for row in batch.rows]
    assert len(ids) == len(set(ids)) == 23


def test_upsert_result_addition():
    total = UpsertResult(2, 1) + UpsertResult(3, 0)
    assert total == UpsertResult(success_count=5, error_count=1)


def test_postgres_statement_shape(widget_registry):
    node = build_schema(widget_registry).node("widgets")
    batcher = BulkUpsertBatcher(node, 1000)
    schema = widget_registry.entity("widgets")
    rows = [transform_record(schema, _widget("a", meta={"k": 1}))]
    sql = str(batcher.builder.build("postgresql", rows).compile(dialect=postgresql.dialect()))
    assert "ON CONFLICT (id) DO UPDATE SET" in sql
    assert "price = excluded.price" in sql
    assert "id = excluded.id" not in sql


@pytest.mark.parametrize("kind", ["events", "markets"])
def test_full_chunk_fits_asyncpg_argument_limit(kind):
    node = build_schema(REGISTRY).node(kind)
    batcher = BulkUpsertBatcher(node, DEFAULT_PARAMETER_BUDGET)
    schema = REGISTRY.entity(kind)
    rows = [transform_record(schema, {"id": str(i)}) for i in range(batcher.batch_size)]
    (batch,) = batcher.plan(rows)
    assert len(batch) == batcher.batch_size

    compiled = batcher.builder.build("postgresql", batch.rows).compile(
        dialect=asyncpg.dialect()
    )
    assert len(compiled.params) == batcher.batch_size * len(node.bindings)
    assert len(compiled.params) <= 32767


def test_unknown_dialect_is_rejected(widget_registry):
    node = build_schema(widget_registry).node("widgets")
    batcher = BulkUpsertBatcher(node, 1000)
    with pytest.raises(NotImplementedError):
        batcher.builder.build("oracle", [{"id": "a"}])


async def _create(engine, result):
    async with engine.begin() as conn:
        await conn.run_sync(result.metadata.create_all)


async def _stored(engine, node):
    async with engine.connect() as conn:
        result = await conn.execute(select(node.table).order_by(node.table.c.id))
        return [dict(row) for row in result.mappings().all()]


@pytest.mark.asyncio
async def test_upsert_is_idempotent(sqlite_engine, widget_registry):
    result = build_schema(widget_registry)
    await _create(sqlite_engine, result)
    node = result.node("widgets")
    schema = widget_registry.entity("widgets")
    batcher = BulkUpsertBatcher(node, parameter_budget=10)

    rows = [
        transform_record(
            schema,
            _widget(str(i), price=i, createdAt="2024-01-0%dT00:00:00Z" % (i + 1), meta={"i": i}),
        )
        for i in range(5)
    ]

    first = await batcher.upsert(sqlite_engine, rows)
    after_first = await _stored(sqlite_engine, node)
    second = await batcher.upsert(sqlite_engine, rows)
    after_second = await _stored(sqlite_engine, node)

    assert first == second == UpsertResult(success_count=5, error_count=0)
    assert after_first == after_second
    assert len(after_first) == 5
    assert after_first[2]["meta"] == {"i": 2}
    assert after_first[2]["price"] == 2.0


@pytest.mark.asyncio
async def test_upsert_updates_existing_rows(sqlite_engine, widget_registry):
    result = build_schema(widget_registry)
    await _create(sqlite_engine, result)
    node = result.node("widgets")
    schema = widget_registry.entity("widgets")
    batcher = BulkUpsertBatcher(node, parameter_budget=100)

    await batcher.upsert(sqlite_engine, [transform_record(schema, _widget("a", price=1))])
    await batcher.upsert(
        sqlite_engine,
        [
            transform_record(schema, _widget("a", price=2)),
            transform_record(schema, _widget("a", price=3)),
        ],
    )

    stored = await _stored(sqlite_engine, node)
    assert len(stored) == 1
    assert stored[0]["price"] == 3.0


@pytest.mark.asyncio
async def test_failed_chunk_is_isolated(sqlite_engine, widget_registry):
    result = build_schema(widget_registry)
    await _create(sqlite_engine, result)
    node = result.node("widgets")
    schema = widget_registry.entity("widgets")
    # Two rows per statement with five columns.
    batcher = BulkUpsertBatcher(node, parameter_budget=10)

    good = [transform_record(schema, _widget(widget_id)) for widget_id in "abc"]
    broken = transform_record(schema, {"name": "no id"})
    rows = [good[0], good[1], broken, good[2]]

    outcome = await batcher.upsert(sqlite_engine, rows)

    assert outcome == UpsertResult(success_count=2, error_count=2)
    stored_ids = [row["id"] for row in await _stored(sqlite_engine, node)]
    assert stored_ids == ["a", "b"]
