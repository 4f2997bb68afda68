"""FastAPI read API over the mirrored entities."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api_client import GammaApiClient
from .config import Settings
from .fields import REGISTRY
from .gateway import PersistenceGateway, SqlGateway
from .ingest import IngestionCycle
from .query import translate_query
from .scheduler import IngestionScheduler
from .schema import SchemaRegistry

LOGGER = logging.getLogger("polymarket_mirror.api")


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _list_handler(
    kind: str, gateway: PersistenceGateway, registry: SchemaRegistry
) -> Callable[[Request], Any]:
    schema = registry.entity(kind)

    async def list_entities(request: Request) -> JSONResponse:
        query = translate_query(request.query_params, schema)
        try:
            result = await gateway.query(kind, query.filters, query.sort, query.page)
        except Exception as exc:
            LOGGER.exception("Error fetching %s", kind)
            return JSONResponse(
                status_code=500,
                content={"error": "Internal server error", "message": str(exc)},
            )

        return JSONResponse(
            content=jsonable_encoder(
                {
                    "data": result.rows,
                    "pagination": {
                        "total": result.total,
                        "limit": query.page.limit,
                        "offset": query.page.offset,
                        "hasMore": query.page.has_more(result.total),
                    },
                }
            )
        )

    list_entities.__name__ = f"list_{kind}"
    return list_entities


def create_app(
    gateway: PersistenceGateway,
    registry: SchemaRegistry = REGISTRY,
    lifespan: Optional[Callable[[FastAPI], Any]] = None,
) -> FastAPI:
    app = FastAPI(title="polymarket-mirror", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["*"],
    )

    for kind in registry.kinds:
        app.add_api_route(
            f"/{kind}",
            _list_handler(kind, gateway, registry),
            methods=["GET"],
            tags=[kind],
        )

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok", "timestamp": _utc_now()}

    return app


def build_app(settings: Settings, registry: SchemaRegistry = REGISTRY) -> FastAPI:
    """Wire the SQL gateway, upstream client and scheduler into one app."""
    gateway = SqlGateway(
        registry,
        database_url=settings.database_url,
        parameter_budget=settings.parameter_budget,
        connect_timeout=settings.database_connect_timeout,
    )

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        await gateway.open()
        if settings.apply_schema:
            LOGGER.info("Applying database schema as requested by configuration")
            await gateway.ensure_schema()

        scheduler: Optional[IngestionScheduler] = None
        async with GammaApiClient(settings) as client:
            if settings.scraper_enabled:
                cycle = IngestionCycle(
                    client,
                    gateway,
                    registry,
                    page_size=settings.page_size,
                    window=settings.fetch_window,
                )
                scheduler = IngestionScheduler(cycle, settings.scrape_interval)
                scheduler.start()
            else:
                LOGGER.info("Scraper disabled; serving reads only")
            try:
                yield
            finally:
                if scheduler is not None:
                    await scheduler.stop()
                await gateway.dispose()

    return create_app(gateway, registry, lifespan=lifespan)
