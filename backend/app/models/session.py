"""Detail-session state as seen by the UI."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from app.models.employee import EmployeeRecord, EmployeeSummary


class LoadState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    # Loading entered through retry from degraded or failed
    RETRYING = "retrying"
    READY = "ready"
    DEGRADED = "degraded"
    FAILED = "failed"

    @property
    def is_loading(self) -> bool:
        return self in (LoadState.LOADING, LoadState.RETRYING)


class LoadFailure(BaseModel):
    kind: str
    reason: str
    message: str
    elapsed_ms: float = 0.0


class DetailSnapshot(BaseModel):
    """Everything the detail view needs to render one state.

    ``record`` is the last successfully aggregated record for ``record_id``;
    when it is missing the view falls back to ``seed``.
    """

    state: LoadState = LoadState.IDLE
    record_id: str | None = None
    record: EmployeeRecord | None = None
    seed: EmployeeSummary | None = None
    error: LoadFailure | None = None
    retry_count: int = 0
    saving: bool = False
    unavailable_sections: list[str] = Field(default_factory=list)
    stale_sections: list[str] = Field(default_factory=list)
    elapsed_ms: float | None = None
    generation: int = 0

    @property
    def display(self) -> EmployeeRecord | EmployeeSummary | None:
        return self.record if self.record is not None else self.seed

    @property
    def retry_message(self) -> str | None:
        if self.retry_count <= 0:
            return None
        suffix = "s" if self.retry_count > 1 else ""
        return f"Failed after {self.retry_count} attempt{suffix}"


class OpenDetailRequest(BaseModel):
    employee_id: str = Field(..., min_length=1)
    seed: EmployeeSummary | None = None


class SaveEditsRequest(BaseModel):
    fields: dict[str, Any] = Field(..., min_length=1)


class SessionCreated(BaseModel):
    session_id: str
