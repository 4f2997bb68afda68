from __future__ import annotations

import asyncio
import logging
from typing import Any, Mapping, Optional

import httpx

from .config import Settings

LOGGER = logging.getLogger("polymarket_mirror.api_client")


class ApiError(Exception):
    """Base exception for upstream Gamma API errors."""


class ResourceNotFoundError(ApiError):
    """Raised when a requested resource does not exist."""


def encode_param(value: Any) -> Any:
    if isinstance(value, bool):
        return "true" if value else "false"
    return value


class GammaApiClient:
    """Async HTTP client for the Gamma API with optional retry and backoff."""

    def __init__(
        self,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._settings = settings
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._headers = {
            "Accept": "application/json",
            "User-Agent": "polymarket-mirror/1.0",
        }

    async def __aenter__(self) -> "GammaApiClient":
        self._client = httpx.AsyncClient(
            timeout=self._settings.http_timeout, transport=self._transport
        )
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def fetch_page(
        self,
        kind: str,
        limit: int,
        offset: int,
        extra_filters: Optional[Mapping[str, Any]] = None,
    ) -> list[Mapping[str, Any]]:
        params: dict[str, Any] = {"limit": limit, "offset": offset}
        for key, value in (extra_filters or {}).items():
            params[key] = encode_param(value)
        payload = await self._request_json(kind, params=params)
        return self._extract_records(kind, payload)

    async def _request_json(
        self, path: str, params: Optional[Mapping[str, Any]] = None
    ) -> Any:
        if self._client is None:
            raise RuntimeError("HTTP client is not ready")

        url = f"{self._settings.upstream_url.rstrip('/')}/{path.lstrip('/')}"
        params_dict = dict(params or {})
        max_attempts = max(1, self._settings.http_max_retries + 1)
        base_backoff = max(self._settings.http_backoff_factor, 0.0) or 1.0
        backoff_ceiling = (
            self._settings.http_backoff_max
            if self._settings.http_backoff_max and self._settings.http_backoff_max > 0
            else float("inf")
        )
        sleep_time = base_backoff

        attempt = 0
        while attempt < max_attempts:
            attempt += 1
            try:
                LOGGER.debug(
                    "Requesting %s %s (attempt %s/%s)",
                    url,
                    params_dict,
                    attempt,
                    max_attempts,
                )
                response = await self._client.get(
                    url, headers=self._headers, params=params_dict
                )
                response.raise_for_status()
                return response.json()
            except httpx.HTTPStatusError as exc:
                status_code = exc.response.status_code
                if status_code == 404:
                    LOGGER.warning(
                        "Resource not found at %s (preview: %s)",
                        url,
                        exc.response.text[:500],
                    )
                    raise ResourceNotFoundError(str(exc)) from exc

                retryable_status = status_code >= 500 or status_code in {408, 429}
                if not self._should_retry(attempt, max_attempts, retryable_status):
                    LOGGER.error(
                        "HTTP %s for %s; response preview: %s",
                        status_code,
                        url,
                        exc.response.text[:500],
                    )
                    raise ApiError(f"HTTP {status_code} for {url}") from exc
                wait_time = min(sleep_time, backoff_ceiling)
                LOGGER.warning(
                    "HTTP %s for %s (attempt %s/%s). Retrying in %.1fs",
                    status_code,
                    url,
                    attempt,
                    max_attempts,
                    wait_time,
                )
                await asyncio.sleep(wait_time)
                sleep_time = self._next_backoff(sleep_time, base_backoff, backoff_ceiling)
            except httpx.RequestError as exc:
                if not self._should_retry(attempt, max_attempts, True):
                    raise ApiError(f"Request to {url} failed: {exc}") from exc
                wait_time = min(sleep_time, backoff_ceiling)
                LOGGER.warning(
                    "Network error for %s (attempt %s/%s): %s. Retrying in %.1fs",
                    url,
                    attempt,
                    max_attempts,
                    exc,
                    wait_time,
                )
                await asyncio.sleep(wait_time)
                sleep_time = self._next_backoff(sleep_time, base_backoff, backoff_ceiling)
            except ValueError as exc:
                raise ApiError(f"Invalid JSON from {url}: {exc}") from exc

        raise ApiError(f"Failed to fetch {url} after {max_attempts} attempts")

    @staticmethod
    def _should_retry(attempt: int, max_attempts: int, retryable: bool) -> bool:
        return retryable and attempt < max_attempts

    @staticmethod
    def _next_backoff(current: float, base: float, ceiling: float) -> float:
        next_value = max(current, base) * 2
        if ceiling > 0:
            next_value = min(next_value, ceiling)
        return max(next_value, base)

    @staticmethod
    def _extract_records(kind: str, payload: Any) -> list[Mapping[str, Any]]:
        if isinstance(payload, list):
            return [record for record in payload if isinstance(record, Mapping)]
        if isinstance(payload, Mapping):
            records = payload.get("data")
            if records is None:
                records = payload.get(kind)
            if isinstance(records, list):
                return [record for record in records if isinstance(record, Mapping)]

        preview = str(payload)
        if len(preview) > 500:
            preview = preview[:500] + "..."
        raise ApiError(f"{kind} endpoint returned unexpected payload: {preview}")
