from datetime import datetime

import pytest

from polymarket_mirror.coercion import parse_timestamp
from polymarket_mirror.query import (Equals, FilterSpec, Gte, In, Lte,
                                     PageRequest, SortKey)
from polymarket_mirror.schema import SortDirection
from polymarket_mirror.transform import transform_record


async def _seed(gateway, events_schema, markets_schema):
    events = [
        {"id": "e1", "title": "Alpha", "volume": 10, "active": True, "createdAt": "2024-01-01T00:00:00Z"},
        {"id": "e2", "title": "Beta", "volume": 20, "active": False, "createdAt": "2024-01-02T00:00:00Z"},
        {"id": "e3", "title": "Gamma", "volume": 30, "active": True, "createdAt": "2024-01-03T00:00:00Z"},
    ]
    markets = [
        {"id": "m1", "question": "Q1", "createdAt": "2024-01-01T01:00:00Z"},
        {"id": "m2", "question": "Q2", "createdAt": "2024-01-01T02:00:00Z"},
    ]
    await gateway.bulk_upsert("events", [transform_record(events_schema, e) for e in events])
    await gateway.bulk_upsert(
        "markets",
        [transform_record(markets_schema, m, {"eventId": "e1"}) for m in markets],
    )


@pytest.mark.asyncio
async def test_default_sort_is_newest_first(gateway, events_schema, markets_schema):
    await _seed(gateway, events_schema, markets_schema)
    result = await gateway.query("events", FilterSpec(), None, PageRequest())
    assert result.total == 3
    assert [row["id"] for row in result.rows] == ["e3", "e2", "e1"]


@pytest.mark.asyncio
async def test_filters_and_total_ignore_paging(gateway, events_schema, markets_schema):
    await _seed(gateway, events_schema, markets_schema)
    filters = FilterSpec([Gte("volume", 15.0), Lte("volume", 30.0)])
    sort = (SortKey("volume", SortDirection.ASC),)
    result = await gateway.query("events", filters, sort, PageRequest(limit=1, offset=0))
    assert result.total == 2
    assert [row["id"] for row in result.rows] == ["e2"]

    result = await gateway.query("events", filters, sort, PageRequest(limit=1, offset=1))
    assert [row["id"] for row in result.rows] == ["e3"]


@pytest.mark.asyncio
async def test_equals_and_in(gateway, events_schema, markets_schema):
    await _seed(gateway, events_schema, markets_schema)
    result = await gateway.query(
        "events", FilterSpec([Equals("active", True)]), None, PageRequest()
    )
    assert {row["id"] for row in result.rows} == {"e1", "e3"}

    result = await gateway.query(
        "events", FilterSpec([In("title", ("Alpha", "Beta"))]), None, PageRequest()
    )
    assert {row["id"] for row in result.rows} == {"e1", "e2"}


@pytest.mark.asyncio
async def test_date_range(gateway, events_schema, markets_schema):
    await _seed(gateway, events_schema, markets_schema)
    filters = FilterSpec([Gte("createdAt", parse_timestamp("2024-01-02"))])
    result = await gateway.query("events", filters, None, PageRequest())
    assert [row["id"] for row in result.rows] == ["e3", "e2"]
    assert isinstance(result.rows[0]["createdAt"], datetime)


@pytest.mark.asyncio
async def test_embedded_relations(gateway, events_schema, markets_schema):
    await _seed(gateway, events_schema, markets_schema)
    events = await gateway.query(
        "events", FilterSpec([Equals("id", "e1")]), None, PageRequest()
    )
    assert [m["id"] for m in events.rows[0]["markets"]] == ["m2", "m1"]

    others = await gateway.query(
        "events", FilterSpec([Equals("id", "e2")]), None, PageRequest()
    )
    assert others.rows[0]["markets"] == []

    markets = await gateway.query("markets", FilterSpec(), None, PageRequest())
    assert markets.total == 2
    assert all(row["event"]["id"] == "e1" for row in markets.rows)
    assert all(row["eventId"] == "e1" for row in markets.rows)


@pytest.mark.asyncio
async def test_limit_zero_returns_only_total(gateway, events_schema, markets_schema):
    await _seed(gateway, events_schema, markets_schema)
    result = await gateway.query("events", FilterSpec(), None, PageRequest(limit=0))
    assert result.rows == []
    assert result.total == 3


@pytest.mark.asyncio
async def test_empty_upsert_is_a_no_op(gateway):
    outcome = await gateway.bulk_upsert("events", [])
    assert outcome.success_count == 0
    assert outcome.error_count == 0
