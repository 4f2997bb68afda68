"""Configuration loading for the polymarket mirror."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

DEFAULT_UPSTREAM_URL = "https://gamma-api.polymarket.com"
DEFAULT_PAGE_SIZE = 200
DEFAULT_FETCH_WINDOW = 10
# asyncpg caps bound arguments per statement at 32767.
DEFAULT_PARAMETER_BUDGET = 32767
DEFAULT_SCRAPE_INTERVAL_MS = 60000


def _int(value: Optional[str], default: int) -> int:
    try:
        return int(value) if value is not None else default
    except ValueError:
        return default


def _float(value: Optional[str], default: float) -> float:
    try:
        return float(value) if value is not None else default
    except ValueError:
        return default


def _bool(value: Optional[str], default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    database_url: str
    database_connect_timeout: float
    apply_schema: bool
    upstream_url: str
    http_timeout: float
    http_max_retries: int
    http_backoff_factor: float
    http_backoff_max: float
    page_size: int
    fetch_window: int
    parameter_budget: int
    scrape_interval_ms: int
    scraper_enabled: bool
    host: str
    port: int
    log_level: str

    @property
    def scrape_interval(self) -> float:
        return self.scrape_interval_ms / 1000.0

    @classmethod
    def from_env(cls) -> "Settings":
        database_url = os.getenv("DATABASE_URL")
        if not database_url:
            # Compose from the individual POSTGRES_* vars when no full URL is given.
            db = os.getenv("POSTGRES_DB", "polymarket")
            user = os.getenv("POSTGRES_USER", "postgres")
            password = os.getenv("POSTGRES_PASSWORD", "postgres")
            host = os.getenv("POSTGRES_HOST", "localhost")
            port = os.getenv("POSTGRES_PORT", "5432")
            database_url = f"postgresql+asyncpg://{user}:{password}@{host}:{port}/{db}"
        elif database_url.startswith("postgresql://"):
            database_url = "postgresql+asyncpg://" + database_url[len("postgresql://"):]

        return cls(
            database_url=database_url,
            database_connect_timeout=_float(os.getenv("DATABASE_CONNECT_TIMEOUT"), 60.0),
            apply_schema=_bool(os.getenv("DATABASE_APPLY_SCHEMA"), True),
            upstream_url=os.getenv("UPSTREAM_API_URL", DEFAULT_UPSTREAM_URL).rstrip("/"),
            http_timeout=_float(os.getenv("HTTP_TIMEOUT"), 30.0),
            # Retries default to off: a failed page aborts the pass and the next
            # scheduled cycle is the recovery path.
            http_max_retries=max(0, _int(os.getenv("HTTP_MAX_RETRIES"), 0)),
            http_backoff_factor=_float(os.getenv("HTTP_BACKOFF_FACTOR"), 0.5),
            http_backoff_max=_float(os.getenv("HTTP_BACKOFF_MAX"), 8.0),
            page_size=max(1, _int(os.getenv("PAGE_SIZE"), DEFAULT_PAGE_SIZE)),
            fetch_window=max(1, _int(os.getenv("FETCH_WINDOW"), DEFAULT_FETCH_WINDOW)),
            parameter_budget=min(
                DEFAULT_PARAMETER_BUDGET,
                max(1, _int(os.getenv("PARAMETER_BUDGET"), DEFAULT_PARAMETER_BUDGET)),
            ),
            scrape_interval_ms=max(
                1, _int(os.getenv("SCRAPE_INTERVAL_MS"), DEFAULT_SCRAPE_INTERVAL_MS)
            ),
            scraper_enabled=_bool(os.getenv("SCRAPER_ENABLED"), True),
            host=os.getenv("HOST", "0.0.0.0"),
            port=_int(os.getenv("PORT"), 3000),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )
