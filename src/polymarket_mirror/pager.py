"""Windowed, bounded-concurrency paging over an offset/limit source."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, List, Tuple

from .config import DEFAULT_FETCH_WINDOW, DEFAULT_PAGE_SIZE

LOGGER = logging.getLogger("polymarket_mirror.pager")

PageFetcher = Callable[[int, int], Awaitable[Sequence[Mapping[str, Any]]]]


@dataclass
class RoundResult:
    index: int
    offsets: Tuple[int, ...]
    records: List[Mapping[str, Any]] = field(default_factory=list)
    pages_used: int = 0
    end_reached: bool = False
    elapsed: float = 0.0


class SourcePager:
    """Drain a paginated source ``window`` pages at a time.

    Every round requests ``window`` consecutive pages concurrently and waits
    for all of them. Pages are then applied in offset order; the first empty
    or short page marks the end of the stream and every page after it in the
    same round is discarded. Any failed request fails the whole round, but
    only after all of its requests have settled.
    """

    def __init__(
        self,
        fetch_page: PageFetcher,
        page_size: int = DEFAULT_PAGE_SIZE,
        window: int = DEFAULT_FETCH_WINDOW,
    ) -> None:
        if page_size < 1:
            raise ValueError("page_size must be at least 1")
        if window < 1:
            raise ValueError("window must be at least 1")
        self._fetch_page = fetch_page
        self.page_size = page_size
        self.window = window

    def offsets_for(self, base: int) -> Tuple[int, ...]:
        return tuple(base + i * self.page_size for i in range(self.window))

    async def fetch_round(self, index: int, base: int) -> RoundResult:
        offsets = self.offsets_for(base)
        started = time.perf_counter()
        outcomes = await asyncio.gather(
            *(self._timed_fetch(offset) for offset in offsets),
            return_exceptions=True,
        )
        elapsed = time.perf_counter() - started

        for offset, outcome in zip(offsets, outcomes):
            if isinstance(outcome, BaseException):
                LOGGER.error(
                    "Round %s failed: page at offset %s raised %s",
                    index,
                    offset,
                    outcome,
                )
                raise outcome

        result = RoundResult(index=index, offsets=offsets, elapsed=elapsed)
        request_time = 0.0
        for offset, (page, duration) in zip(offsets, outcomes):
            request_time += duration
            result.pages_used += 1
            if not page:
                result.end_reached = True
                break
            result.records.extend(page)
            if len(page) < self.page_size:
                result.end_reached = True
                break

        efficiency = request_time / elapsed if elapsed > 0 else 0.0
        LOGGER.info(
            "Round %s: %s/%s pages, %s records in %.0fms (parallel efficiency %.1fx)",
            index,
            result.pages_used,
            len(offsets),
            len(result.records),
            elapsed * 1000,
            efficiency,
        )
        return result

    async def _timed_fetch(
        self, offset: int
    ) -> Tuple[Sequence[Mapping[str, Any]], float]:
        started = time.perf_counter()
        page = await self._fetch_page(self.page_size, offset)
        return list(page or []), time.perf_counter() - started

    async def rounds(self) -> AsyncIterator[RoundResult]:
        base = 0
        index = 0
        while True:
            result = await self.fetch_round(index, base)
            yield result
            if result.end_reached:
                return
            base += self.window * self.page_size
            index += 1

    async def drain(self) -> List[Mapping[str, Any]]:
        records: List[Mapping[str, Any]] = []
        async for result in self.rounds():
            records.extend(result.records)
        return records
