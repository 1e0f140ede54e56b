from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Response, status

from app.core.dependencies import get_detail_session, get_employee_service
from app.core.errors import (
    TIMEOUT,
    InvalidEditError,
    InvalidTransitionError,
    SaveConflictError,
    SaveError,
)
from app.models.session import DetailSnapshot, OpenDetailRequest, SaveEditsRequest, SessionCreated
from app.services.detail_session import DetailSession
from app.services.employee_service import EmployeeService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sessions", tags=["sessions"])


@router.post("", response_model=SessionCreated, status_code=status.HTTP_201_CREATED)
async def create_session(service: EmployeeService = Depends(get_employee_service)):  # noqa: B008
    return SessionCreated(session_id=service.sessions.create())


@router.get("/{session_id}", response_model=DetailSnapshot)
async def get_snapshot(session: DetailSession = Depends(get_detail_session)):  # noqa: B008
    return session.snapshot()


@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def close_session(
    session_id: str,
    service: EmployeeService = Depends(get_employee_service),  # noqa: B008
):
    if not service.sessions.remove(session_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Detail session '{session_id}' not found",
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{session_id}/open", response_model=DetailSnapshot)
async def open_detail(
    request: OpenDetailRequest,
    session: DetailSession = Depends(get_detail_session),  # noqa: B008
):
    logger.info("Opening employee details for %s", request.employee_id)
    return await session.open_detail(request.employee_id, seed=request.seed)


@router.post("/{session_id}/close", response_model=DetailSnapshot)
async def close_detail(session: DetailSession = Depends(get_detail_session)):  # noqa: B008
    session.close()
    return session.snapshot()


@router.post("/{session_id}/retry", response_model=DetailSnapshot)
async def retry_detail(session: DetailSession = Depends(get_detail_session)):  # noqa: B008
    try:
        pending = session.retry_detail()
    except InvalidTransitionError as err:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(err)) from err
    return await pending


@router.patch("/{session_id}/record", response_model=DetailSnapshot)
async def save_edits(
    request: SaveEditsRequest,
    session: DetailSession = Depends(get_detail_session),  # noqa: B008
):
    try:
        await session.save_edits(request.fields)
    except InvalidTransitionError as err:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(err)) from err
    except InvalidEditError as err:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(err)) from err
    except SaveConflictError as err:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"message": err.message, "edited_fields": err.edited_fields},
        ) from err
    except SaveError as err:
        code = status.HTTP_504_GATEWAY_TIMEOUT if err.kind == TIMEOUT else status.HTTP_502_BAD_GATEWAY
        raise HTTPException(
            status_code=code,
            detail={"message": err.message, "kind": err.kind, "edited_fields": err.edited_fields},
        ) from err
    return session.snapshot()
