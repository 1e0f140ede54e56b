from __future__ import annotations

from fastapi import Depends, HTTPException, status

from app.services.detail_session import DetailSession
from app.services.employee_service import EmployeeService, employee_service


def get_employee_service() -> EmployeeService:
    if not employee_service.initialized:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Employee records are not available",
        )
    return employee_service


def get_detail_session(
    session_id: str,
    service: EmployeeService = Depends(get_employee_service),  # noqa: B008
) -> DetailSession:
    session = service.sessions.get(session_id)
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Detail session '{session_id}' not found",
        )
    return session
