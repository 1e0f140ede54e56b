from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from app.core.dependencies import get_employee_service
from app.core.errors import RecordSourceError
from app.models.employee import EmployeeSummary
from app.services.employee_service import EmployeeService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/employees", tags=["employees"])


@router.get("", response_model=list[EmployeeSummary])
async def list_employees(
    skip: int = 0,
    limit: int = 50,
    q: str | None = None,
    service: EmployeeService = Depends(get_employee_service),  # noqa: B008
):
    try:
        return await service.get_employees(skip=skip, limit=limit, search=q)
    except RecordSourceError as err:
        logger.exception("Failed to list employees")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to retrieve employees",
        ) from err
