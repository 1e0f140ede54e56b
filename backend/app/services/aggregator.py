"""Aggregation of one employee record from independently fetched sources.

The primary document and every sub-collection are fetched concurrently, each
under its own deadline, with an overall deadline across the batch. The primary
fetch is critical; a failed sub-collection only marks its slot unavailable.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from app.core.config import Settings
from app.core.errors import (
    NOT_FOUND,
    TIMEOUT,
    CallTimeoutError,
    LoadError,
    PartialAggregationError,
    TransportError,
    classify,
    user_message,
)
from app.models.employee import EmployeeRecord, EmployeeSummary, SubcollectionSlot
from app.services.bounded_call import with_timeout
from app.services.record_source import RecordSource

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AggregationConfig:
    collection: str = "employees"
    subcollections: tuple[str, ...] = ("advances", "transactions")
    primary_timeout_ms: float = 8000
    subcollection_timeout_ms: float = 5000
    batch_timeout_ms: float = 12000

    @classmethod
    def from_settings(cls, settings: Settings) -> AggregationConfig:
        return cls(
            collection=settings.COSMOS_DB_EMPLOYEES_CONTAINER,
            subcollections=tuple(settings.SUBCOLLECTIONS),
            primary_timeout_ms=settings.PRIMARY_FETCH_TIMEOUT_MS,
            subcollection_timeout_ms=settings.SUBCOLLECTION_FETCH_TIMEOUT_MS,
            batch_timeout_ms=settings.BATCH_TIMEOUT_MS,
        )


@dataclass
class AggregationResult:
    record: EmployeeRecord
    elapsed_ms: float
    partial: PartialAggregationError | None = None

    @property
    def degraded(self) -> bool:
        return self.partial is not None


def _sort_key_date(item: dict[str, Any]) -> str:
    return str(item.get("date") or "")


def _order_items(name: str, items: list[dict[str, Any]]) -> list[dict[str, Any]]:
    if name == "transactions":
        # Newest first; stable, so equal dates keep store order
        return sorted(items, key=_sort_key_date, reverse=True)
    return list(items)


class RecordAggregator:
    def __init__(self, source: RecordSource, config: AggregationConfig | None = None) -> None:
        self.source = source
        self.config = config or AggregationConfig()

    async def _fetch_primary(self, record_id: str) -> dict[str, Any]:
        document = await with_timeout(
            self.source.get_record(self.config.collection, record_id),
            self.config.primary_timeout_ms,
            label=f"{self.config.collection}/{record_id}",
        )
        if document is None:
            raise TransportError(NOT_FOUND, f"No employee document with id '{record_id}'")
        return document

    async def _fetch_subcollection(self, record_id: str, name: str) -> SubcollectionSlot:
        try:
            items = await with_timeout(
                self.source.list_sub_records(self.config.collection, record_id, name),
                self.config.subcollection_timeout_ms,
                label=f"{self.config.collection}/{record_id}/{name}",
            )
        except Exception as err:
            logger.warning("Fetching %s for %s failed (non-critical): %s", name, record_id, err)
            return SubcollectionSlot.unavailable(str(err))
        return SubcollectionSlot.loaded(_order_items(name, items))

    async def load_record(self, record_id: str, seed: EmployeeSummary | None = None) -> AggregationResult:
        """Fetch and merge one record.

        Raises ``LoadError`` when the primary document cannot be fetched; its
        ``partial_data`` is the caller's seed so the view still has something
        to show.
        """
        loop = asyncio.get_running_loop()
        started = loop.time()

        primary = asyncio.ensure_future(self._fetch_primary(record_id))
        subs = {
            name: asyncio.ensure_future(self._fetch_subcollection(record_id, name))
            for name in self.config.subcollections
        }

        # Sub-collection tasks never raise, so FIRST_EXCEPTION returns early
        # only when the primary fails.
        try:
            done, pending = await asyncio.wait(
                {primary, *subs.values()},
                timeout=self.config.batch_timeout_ms / 1000,
                return_when=asyncio.FIRST_EXCEPTION,
            )
        except asyncio.CancelledError:
            for task in (primary, *subs.values()):
                task.add_done_callback(_ignore_abandoned)
            raise
        elapsed_ms = (loop.time() - started) * 1000

        for task in pending:
            task.add_done_callback(_ignore_abandoned)
        if pending:
            logger.info("Abandoning %d pending fetch(es) for %s", len(pending), record_id)

        if primary not in done:
            error: Exception = CallTimeoutError(elapsed_ms, f"batch {record_id}")
        else:
            error = primary.exception()
        if error is not None:
            kind = classify(error)
            logger.error("Primary fetch for %s failed (%s): %s", record_id, kind, error)
            raise LoadError(kind, user_message(kind), partial_data=seed, elapsed_ms=elapsed_ms) from error

        record = EmployeeRecord.from_document(primary.result())
        failures: dict[str, str] = {}
        for name, task in subs.items():
            if task in done:
                slot = task.result()
            else:
                slot = SubcollectionSlot.unavailable(
                    str(CallTimeoutError(elapsed_ms, f"batch deadline for {name}"))
                )
            record.subcollections[name] = slot
            if not slot.is_available:
                failures[name] = slot.error or TIMEOUT

        partial = PartialAggregationError(failures) if failures else None
        logger.info(
            "Loaded %s in %.0fms (unavailable: %s)",
            record_id,
            elapsed_ms,
            ", ".join(sorted(failures)) or "none",
        )
        return AggregationResult(record=record, elapsed_ms=elapsed_ms, partial=partial)


def _ignore_abandoned(task: asyncio.Future) -> None:
    if not task.cancelled():
        task.exception()
