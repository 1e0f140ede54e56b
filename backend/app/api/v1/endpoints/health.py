from __future__ import annotations

from fastapi import APIRouter

from app.core.config import settings
from app.services.employee_service import employee_service

router = APIRouter(prefix="/health", tags=["health"])


@router.get("")
async def health_check():
    services: dict[str, str] = {}

    if employee_service.initialized:
        ok = await employee_service.check_connection()
        services["record_store"] = "ok" if ok else "error"
    else:
        services["record_store"] = "not_configured"
    services["mode"] = employee_service.mode

    healthy = services["record_store"] in ("ok", "not_configured")

    return {
        "status": "healthy" if healthy else "degraded",
        "version": settings.APP_VERSION,
        "services": services,
    }


@router.get("/ready")
async def readiness_probe():
    return {"ready": employee_service.initialized}
