"""Shared fixtures for the polymarket mirror test suite."""

from __future__ import annotations

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine

from polymarket_mirror.config import Settings
from polymarket_mirror.fields import REGISTRY
from polymarket_mirror.gateway import SqlGateway
from polymarket_mirror.schema import SchemaRegistry, build_entity

# SQLite caps bound variables per statement well below PostgreSQL's limit.
SQLITE_PARAMETER_BUDGET = 10000


def make_settings(**overrides) -> Settings:
    values = dict(
        database_url="sqlite+aiosqlite://",
        database_connect_timeout=1.0,
        apply_schema=True,
        upstream_url="https://gamma.test",
        http_timeout=5.0,
        http_max_retries=0,
        http_backoff_factor=0.0,
        http_backoff_max=0.0,
        page_size=200,
        fetch_window=10,
        parameter_budget=SQLITE_PARAMETER_BUDGET,
        scrape_interval_ms=60000,
        scraper_enabled=False,
        host="127.0.0.1",
        port=3000,
        log_level="INFO",
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def settings_factory():
    return make_settings


@pytest.fixture
def events_schema():
    return REGISTRY.entity("events")


@pytest.fixture
def markets_schema():
    return REGISTRY.entity("markets")


@pytest.fixture
def widget_registry() -> SchemaRegistry:
    widgets = build_entity(
        "widgets",
        {
            "id": "string",
            "name": "string",
            "price": "number",
            "createdAt": "date",
            "meta": "json",
        },
    )
    return SchemaRegistry.of(widgets)


@pytest_asyncio.fixture
async def sqlite_engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'mirror.db'}")
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def gateway(sqlite_engine):
    gw = SqlGateway(
        REGISTRY, engine=sqlite_engine, parameter_budget=SQLITE_PARAMETER_BUDGET
    )
    await gw.open()
    await gw.ensure_schema()
    yield gw
