from __future__ import annotations

import asyncio

import pytest

from app.core.errors import CallTimeoutError
from app.services.bounded_call import with_timeout


async def _resolve_after(seconds: float, value, sink: list | None = None):
    await asyncio.sleep(seconds)
    if sink is not None:
        sink.append(value)
    return value


@pytest.mark.anyio
async def test_returns_value_when_operation_finishes_first():
    result = await with_timeout(_resolve_after(0.001, "ok"), 50)
    assert result == "ok"


@pytest.mark.anyio
async def test_passes_through_operation_error():
    async def failing():
        raise PermissionError("permission-denied")

    with pytest.raises(PermissionError, match="permission-denied"):
        await with_timeout(failing(), 50)


@pytest.mark.anyio
async def test_times_out_and_reports_elapsed():
    with pytest.raises(CallTimeoutError) as exc_info:
        await with_timeout(_resolve_after(1, "late"), 20, label="employees/emp001")

    assert exc_info.value.elapsed_ms >= 19
    assert exc_info.value.label == "employees/emp001"
    assert "timeout" in str(exc_info.value).lower()


@pytest.mark.anyio
async def test_one_ms_late_result_is_timeout_and_discarded():
    sink: list[str] = []

    with pytest.raises(CallTimeoutError):
        await with_timeout(_resolve_after(0.021, "late", sink), 20)

    # The operation was not cancelled: it still completes, but nothing
    # observes its value.
    await asyncio.sleep(0.03)
    assert sink == ["late"]


@pytest.mark.anyio
async def test_rejects_non_positive_timeout():
    operation = _resolve_after(0, "x")
    with pytest.raises(ValueError):
        await with_timeout(operation, 0)
    operation.close()


@pytest.mark.anyio
async def test_accepts_existing_task():
    task = asyncio.ensure_future(_resolve_after(0.001, 42))
    assert await with_timeout(task, 50) == 42
