from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from functools import partial
from typing import Any, Dict, List, Optional, Protocol, Tuple

from pydantic import ValidationError

from .batcher import UpsertResult
from .config import DEFAULT_FETCH_WINDOW, DEFAULT_PAGE_SIZE
from .gateway import PersistenceGateway
from .models import IngestRecord
from .pager import SourcePager
from .schema import SchemaRegistry
from .transform import iter_child_records, transform_record, transform_records

LOGGER = logging.getLogger("polymarket_mirror.ingest")

RecordFilter = Callable[[Mapping[str, Any]], bool]


class UpstreamSource(Protocol):
    async def fetch_page(
        self,
        kind: str,
        limit: int,
        offset: int,
        extra_filters: Optional[Mapping[str, Any]] = None,
    ) -> Sequence[Mapping[str, Any]]: ...


class CycleState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


@dataclass
class CycleReport:
    fetched: int = 0
    filtered_out: int = 0
    invalid: int = 0
    succeeded: int = 0
    failed: int = 0
    child_succeeded: int = 0
    child_failed: int = 0
    rounds: int = 0
    elapsed: float = 0.0
    error: Optional[str] = None
    exception: Optional[Exception] = field(default=None, repr=False, compare=False)

    @property
    def ok(self) -> bool:
        return self.error is None


def is_ended(record: Mapping[str, Any]) -> bool:
    return record.get("ended") is True


def validate_records(
    records: Sequence[Any],
) -> Tuple[List[Dict[str, Any]], int]:
    valid: List[Dict[str, Any]] = []
    invalid = 0
    for raw in records:
        try:
            valid.append(IngestRecord.model_validate(raw).model_dump())
        except ValidationError as exc:
            invalid += 1
            LOGGER.debug("Skipping record due to validation error: %s", exc)
    return valid, invalid


class IngestionCycle:
    """One full pass: drain the source, transform, and upsert round by round."""

    def __init__(
        self,
        source: UpstreamSource,
        gateway: PersistenceGateway,
        registry: SchemaRegistry,
        *,
        kind: str = "events",
        page_size: int = DEFAULT_PAGE_SIZE,
        window: int = DEFAULT_FETCH_WINDOW,
        upstream_filters: Optional[Mapping[str, Any]] = None,
        exclude: RecordFilter = is_ended,
    ) -> None:
        self._source = source
        self._gateway = gateway
        self._registry = registry
        self._schema = registry.entity(kind)
        self.kind = kind
        self.page_size = page_size
        self.window = window
        self.upstream_filters = (
            {"closed": False} if upstream_filters is None else dict(upstream_filters)
        )
        self._exclude = exclude
        self._state = CycleState.IDLE

    @property
    def state(self) -> CycleState:
        return self._state

    async def run(self) -> Optional[CycleReport]:
        if self._state is CycleState.RUNNING:
            LOGGER.warning("Ingestion of %s already running; skipping", self.kind)
            return None

        self._state = CycleState.RUNNING
        report = CycleReport()
        started = time.perf_counter()
        LOGGER.info("Starting ingestion pass for %s", self.kind)
        try:
            pager = SourcePager(
                partial(
                    self._source.fetch_page,
                    self.kind,
                    extra_filters=self.upstream_filters,
                ),
                page_size=self.page_size,
                window=self.window,
            )
            async for result in pager.rounds():
                report.rounds += 1
                await self._persist_round(result.records, report)
        except Exception as exc:
            report.error = str(exc) or exc.__class__.__name__
            report.exception = exc
            LOGGER.exception("Ingestion pass for %s aborted", self.kind)
        finally:
            report.elapsed = time.perf_counter() - started
            self._state = CycleState.IDLE

        LOGGER.info(
            "Ingestion pass for %s %s in %.1fs: fetched=%s filtered=%s invalid=%s "
            "succeeded=%s failed=%s child_succeeded=%s child_failed=%s",
            self.kind,
            "finished" if report.ok else "failed",
            report.elapsed,
            report.fetched,
            report.filtered_out,
            report.invalid,
            report.succeeded,
            report.failed,
            report.child_succeeded,
            report.child_failed,
        )
        return report

    async def _persist_round(
        self, records: Sequence[Any], report: CycleReport
    ) -> None:
        report.fetched += len(records)
        valid, invalid = validate_records(records)
        report.invalid += invalid

        survivors = []
        for record in valid:
            if self._exclude(record):
                report.filtered_out += 1
                continue
            survivors.append(record)
        if not survivors:
            return

        rows = transform_records(self._schema, survivors)
        parent_result = await self._gateway.bulk_upsert(self.kind, rows)
        report.succeeded += parent_result.success_count
        report.failed += parent_result.error_count

        for relation in self._schema.children:
            child_schema = self._registry.entity(relation.kind)
            child_rows = []
            for record in survivors:
                for child, overrides in iter_child_records(relation, record["id"], record):
                    validated, child_invalid = validate_records([child])
                    report.invalid += child_invalid
                    for item in validated:
                        child_rows.append(transform_record(child_schema, item, overrides))
            if not child_rows:
                continue
            child_result: UpsertResult = await self._gateway.bulk_upsert(
                relation.kind, child_rows
            )
            report.child_succeeded += child_result.success_count
            report.child_failed += child_result.error_count
