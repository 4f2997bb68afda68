from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from dataclasses import replace
from typing import Optional, Sequence

import uvicorn
from dotenv import load_dotenv

from .api import build_app
from .api_client import ApiError, GammaApiClient
from .config import Settings
from .fields import REGISTRY
from .gateway import SqlGateway
from .ingest import CycleReport, IngestionCycle
from .logging_utils import ROOT_LOGGER_NAME, setup_logging

LOGGER = logging.getLogger(ROOT_LOGGER_NAME)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="polymarket-mirror",
        description="Mirror the Polymarket Gamma API into SQL and serve it back.",
    )
    subparsers = parser.add_subparsers(dest="command")
    serve = subparsers.add_parser("serve", help="Run the read API and the scheduler")
    serve.add_argument("--host", help="Override HOST")
    serve.add_argument("--port", type=int, help="Override PORT")
    serve.add_argument(
        "--no-scraper", action="store_true", help="Serve reads without scraping"
    )
    subparsers.add_parser("scrape", help="Run a single ingestion pass and exit")
    return parser


async def run_scrape(settings: Settings) -> CycleReport:
    gateway = SqlGateway(
        REGISTRY,
        database_url=settings.database_url,
        parameter_budget=settings.parameter_budget,
        connect_timeout=settings.database_connect_timeout,
    )
    await gateway.open()
    try:
        if settings.apply_schema:
            LOGGER.info("Applying database schema as requested by configuration")
            await gateway.ensure_schema()
        async with GammaApiClient(settings) as client:
            cycle = IngestionCycle(
                client,
                gateway,
                REGISTRY,
                page_size=settings.page_size,
                window=settings.fetch_window,
            )
            report = await cycle.run()
    finally:
        await gateway.dispose()
    return report


def main(argv: Optional[Sequence[str]] = None) -> None:
    load_dotenv()
    args = build_parser().parse_args(argv)
    try:
        settings = Settings.from_env()
    except Exception as exc:  # pragma: no cover - guard for CLI usage
        setup_logging()
        LOGGER.error("Configuration error: %s", exc)
        print(f"Configuration error: {exc}", file=sys.stderr)
        sys.exit(1)

    setup_logging(settings.log_level)
    command = args.command or "serve"

    if command == "scrape":
        try:
            report = asyncio.run(run_scrape(settings))
        except RuntimeError as exc:
            LOGGER.error("Startup failed: %s", exc)
            print(f"Startup failed: {exc}", file=sys.stderr)
            sys.exit(1)
        if report.exception is not None:
            code = 2 if isinstance(report.exception, ApiError) else 3
            print(f"Ingestion failed: {report.error}", file=sys.stderr)
            sys.exit(code)
        return

    overrides = {}
    if getattr(args, "host", None):
        overrides["host"] = args.host
    if getattr(args, "port", None):
        overrides["port"] = args.port
    if getattr(args, "no_scraper", False):
        overrides["scraper_enabled"] = False
    if overrides:
        settings = replace(settings, **overrides)

    app = build_app(settings)
    LOGGER.info("Serving on http://%s:%s", settings.host, settings.port)
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    main()
