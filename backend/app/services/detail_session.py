"""Load state machine for one employee detail view.

A session tracks which record is currently of interest and owns the only
mutable view state. Every load attempt is tagged with a generation number;
a result whose generation is no longer current is dropped, which is how a
superseded or closed load is cancelled.

Usage:
    >>> session = DetailSession(aggregator, reconciler)
    >>> unsubscribe = session.subscribe(render)
    >>> snapshot = await session.open_detail("emp001", seed=summary)
    >>> if snapshot.state is LoadState.DEGRADED:
    ...     snapshot = await session.retry_detail()
    >>> record = await session.save_edits({"salary": 9000})
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import Callable
from typing import Any

from app.core.config import Settings
from app.core.errors import UNKNOWN, InvalidTransitionError, LoadError, user_message
from app.models.employee import EmployeeRecord, EmployeeSummary, SubcollectionSlot
from app.models.session import DetailSnapshot, LoadFailure, LoadState
from app.services.aggregator import AggregationResult, RecordAggregator
from app.services.edit_reconciler import EditReconciler

logger = logging.getLogger(__name__)

Listener = Callable[[DetailSnapshot], None]


def _keep_known_good(record: EmployeeRecord, previous: EmployeeRecord | None) -> None:
    """Replace newly unavailable slots with the last loaded items, marked stale."""
    if previous is None:
        return
    for name, slot in record.subcollections.items():
        if slot.is_available:
            continue
        old = previous.subcollections.get(name)
        if old is not None and old.is_available:
            record.subcollections[name] = SubcollectionSlot(
                status="loaded", items=old.items, stale=True, error=slot.error
            )


def _baseline_state(record: EmployeeRecord) -> LoadState:
    if record.unavailable_sections or record.stale_sections:
        return LoadState.DEGRADED
    return LoadState.READY


class DetailSession:
    def __init__(self, aggregator: RecordAggregator, reconciler: EditReconciler) -> None:
        self.aggregator = aggregator
        self.reconciler = reconciler
        self._state = LoadState.IDLE
        self._record_id: str | None = None
        self._seed: EmployeeSummary | None = None
        self._record: EmployeeRecord | None = None
        self._error: LoadFailure | None = None
        self._retry_count = 0
        self._elapsed_ms: float | None = None
        self._saving = False
        self._generation = 0
        self._task: asyncio.Task[DetailSnapshot] | None = None
        self._save_lock = asyncio.Lock()
        self._listeners: list[Listener] = []

    @property
    def state(self) -> LoadState:
        return self._state

    @property
    def record_id(self) -> str | None:
        return self._record_id

    @property
    def retry_count(self) -> int:
        return self._retry_count

    def snapshot(self) -> DetailSnapshot:
        record = self._record.model_copy(deep=True) if self._record is not None else None
        return DetailSnapshot(
            state=self._state,
            record_id=self._record_id,
            record=record,
            seed=self._seed,
            error=self._error,
            retry_count=self._retry_count,
            saving=self._saving,
            unavailable_sections=record.unavailable_sections if record else [],
            stale_sections=record.stale_sections if record else [],
            elapsed_ms=self._elapsed_ms,
            generation=self._generation,
        )

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self) -> None:
        if not self._listeners:
            return
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Detail session listener failed")

    def _loading(self) -> bool:
        return self._state.is_loading and self._task is not None and not self._task.done()

    def open_detail(self, record_id: str, seed: EmployeeSummary | None = None) -> asyncio.Future[DetailSnapshot]:
        """Start loading ``record_id`` and return a handle on the pending load.

        A second call for the id already loading joins the running load. A call
        for another id supersedes it. Cancelling a returned handle only stops
        that caller from waiting; the load itself carries on.
        """
        if self._loading() and record_id == self._record_id:
            logger.debug("Already loading %s, reusing pending load", record_id)
            return asyncio.shield(self._task)

        if record_id != self._record_id:
            self._record = None
        self._record_id = record_id
        self._seed = seed
        self._error = None
        self._retry_count = 0
        self._elapsed_ms = None
        return self._start(LoadState.LOADING)

    def retry_detail(self) -> asyncio.Future[DetailSnapshot]:
        if self._state not in (LoadState.DEGRADED, LoadState.FAILED):
            raise InvalidTransitionError(f"Cannot retry from state '{self._state.value}'")

        self._retry_count += 1
        logger.info("Retrying employee details for %s (attempt %d)", self._record_id, self._retry_count)
        return self._start(LoadState.RETRYING)

    def close(self) -> None:
        if self._state.is_loading:
            logger.info("Closing detail view for %s while loading; result will be discarded", self._record_id)
        self._generation += 1
        self._state = LoadState.IDLE
        self._record_id = None
        self._seed = None
        self._record = None
        self._error = None
        self._retry_count = 0
        self._elapsed_ms = None
        self._saving = False
        self._task = None
        self._notify()

    def _start(self, state: LoadState) -> asyncio.Future[DetailSnapshot]:
        self._generation += 1
        self._state = state
        self._task = asyncio.ensure_future(self._run(self._generation, self._record_id, self._seed))
        self._notify()
        return asyncio.shield(self._task)

    async def _run(self, generation: int, record_id: str, seed: EmployeeSummary | None) -> DetailSnapshot:
        try:
            result = await self.aggregator.load_record(record_id, seed)
        except asyncio.CancelledError:
            if generation == self._generation:
                logger.warning("Load of %s was cancelled", record_id)
                self._apply_failure(LoadError(UNKNOWN, "Load cancelled", partial_data=seed))
            raise
        except LoadError as err:
            outcome: AggregationResult | LoadError = err
        except Exception as err:
            logger.exception("Unexpected error loading %s", record_id)
            outcome = LoadError(UNKNOWN, user_message(UNKNOWN), partial_data=seed)
            outcome.__cause__ = err
        else:
            outcome = result

        if generation != self._generation:
            logger.info("Discarding stale result for %s (generation %d)", record_id, generation)
            return self.snapshot()

        if isinstance(outcome, LoadError):
            self._apply_failure(outcome)
        else:
            self._apply_result(outcome)
        return self.snapshot()

    def _apply_result(self, result: AggregationResult) -> None:
        record = result.record
        _keep_known_good(record, self._record)
        self._record = record
        self._error = None
        self._elapsed_ms = result.elapsed_ms
        self._state = _baseline_state(record)
        self._notify()

    def _apply_failure(self, error: LoadError) -> None:
        # The last known-good record for this id, if any, stays on display
        self._error = LoadFailure(
            kind=error.kind,
            reason=str(error.__cause__ or error.reason),
            message=error.message,
            elapsed_ms=error.elapsed_ms,
        )
        self._elapsed_ms = error.elapsed_ms
        self._state = LoadState.FAILED
        self._notify()

    async def save_edits(self, edited_fields: dict[str, Any]) -> EmployeeRecord:
        """Write the edited fields back and make the merged record the baseline.

        ``SaveError`` propagates with the edited fields intact; the displayed
        record is left as it was.
        """
        self._check_can_save()
        generation = self._generation
        record_id = self._record_id

        # One save at a time, each merged onto the baseline left by the previous one
        async with self._save_lock:
            if generation != self._generation:
                raise InvalidTransitionError(f"Detail view moved on from {record_id} before the save started")
            self._check_can_save()

            self._saving = True
            self._notify()
            try:
                merged = await self.reconciler.save(record_id, edited_fields, self._record)
            except Exception:
                self._saving = False
                if generation == self._generation:
                    self._notify()
                raise
            self._saving = False

            if generation != self._generation:
                logger.info("Saved %s after the view moved on; not applying to session", record_id)
                return merged

            self._record = merged
            self._state = _baseline_state(merged)
            self._notify()
            return merged

    def _check_can_save(self) -> None:
        if self._state not in (LoadState.READY, LoadState.DEGRADED) or self._record is None:
            raise InvalidTransitionError(f"Cannot save from state '{self._state.value}'")


class DetailSessionRegistry:
    """Detail sessions keyed by UI session id.

    Sessions not touched for ``idle_ttl_s`` seconds are closed and dropped, and
    at most ``max_sessions`` are kept; creating one more evicts the least
    recently used.
    """

    def __init__(
        self,
        aggregator: RecordAggregator,
        reconciler: EditReconciler,
        idle_ttl_s: float = 1800,
        max_sessions: int = 500,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.aggregator = aggregator
        self.reconciler = reconciler
        self.idle_ttl_s = idle_ttl_s
        self.max_sessions = max_sessions
        self._clock = clock
        # Insertion order is least recently used first
        self._sessions: dict[str, DetailSession] = {}
        self._last_used: dict[str, float] = {}

    @classmethod
    def from_settings(
        cls, aggregator: RecordAggregator, reconciler: EditReconciler, settings: Settings
    ) -> DetailSessionRegistry:
        return cls(
            aggregator,
            reconciler,
            idle_ttl_s=settings.SESSION_IDLE_TTL_S,
            max_sessions=settings.MAX_DETAIL_SESSIONS,
        )

    def _touch(self, session_id: str) -> None:
        self._sessions[session_id] = self._sessions.pop(session_id)
        self._last_used[session_id] = self._clock()

    def prune(self) -> int:
        """Close sessions idle for longer than the TTL. Returns how many were dropped."""
        cutoff = self._clock() - self.idle_ttl_s
        expired = [sid for sid, used in self._last_used.items() if used <= cutoff]
        for session_id in expired:
            logger.info("Detail session %s expired after %.0fs idle", session_id, self.idle_ttl_s)
            self.remove(session_id)
        return len(expired)

    def create(self) -> str:
        self.prune()
        while self._sessions and len(self._sessions) >= self.max_sessions:
            oldest = next(iter(self._sessions))
            logger.warning("Detail session limit (%d) reached, evicting %s", self.max_sessions, oldest)
            self.remove(oldest)

        session_id = f"sess_{uuid.uuid4().hex[:12]}"
        self._sessions[session_id] = DetailSession(self.aggregator, self.reconciler)
        self._last_used[session_id] = self._clock()
        logger.info("Detail session %s created", session_id)
        return session_id

    def get(self, session_id: str) -> DetailSession | None:
        if session_id not in self._sessions:
            return None
        if self._last_used[session_id] <= self._clock() - self.idle_ttl_s:
            logger.info("Detail session %s expired after %.0fs idle", session_id, self.idle_ttl_s)
            self.remove(session_id)
            return None
        self._touch(session_id)
        return self._sessions[session_id]

    def remove(self, session_id: str) -> bool:
        session = self._sessions.pop(session_id, None)
        self._last_used.pop(session_id, None)
        if session is None:
            return False
        session.close()
        logger.info("Detail session %s removed", session_id)
        return True

    def close_all(self) -> None:
        for session_id in list(self._sessions):
            self.remove(session_id)

    def __len__(self) -> int:
        return len(self._sessions)
