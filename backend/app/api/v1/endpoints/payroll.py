from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from app.core.dependencies import get_employee_service
from app.core.errors import NOT_FOUND, TransportError
from app.models.employee import Advance, Transaction
from app.services.employee_service import EmployeeService
from app.services.payroll_service import PaymentType

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/employees/{employee_id}", tags=["payroll"])


class PaymentRequest(BaseModel):
    type: PaymentType = "salary"
    amount: float = Field(..., gt=0)
    description: str | None = Field(default=None, max_length=500)


def _transport_exception(err: TransportError) -> HTTPException:
    if err.kind == NOT_FOUND:
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(err))
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(err))


@router.post("/payments", response_model=Transaction | Advance, status_code=status.HTTP_201_CREATED)
async def record_payment(
    employee_id: str,
    request: PaymentRequest,
    service: EmployeeService = Depends(get_employee_service),  # noqa: B008
):
    try:
        return await service.payroll.record_payment(
            employee_id, request.type, request.amount, description=request.description
        )
    except TransportError as err:
        logger.exception("Failed to record %s for %s", request.type, employee_id)
        raise _transport_exception(err) from err


@router.post("/advances/{advance_id}/repay", status_code=status.HTTP_204_NO_CONTENT)
async def mark_advance_repaid(
    employee_id: str,
    advance_id: str,
    service: EmployeeService = Depends(get_employee_service),  # noqa: B008
):
    try:
        await service.payroll.mark_advance_repaid(employee_id, advance_id)
    except TransportError as err:
        logger.exception("Failed to mark advance %s of %s repaid", advance_id, employee_id)
        raise _transport_exception(err) from err
