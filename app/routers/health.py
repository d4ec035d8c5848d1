"""
Health Check Router

Provides health check endpoints for monitoring application status.
"""

from fastapi import APIRouter, HTTPException
from app.config import get_settings
from app.models.package import HealthCheckResponse
from app.services.description_tasks import description_task_manager
from app.services.session_store import session_store
from app.utils.feature_flags import feature_flags
import time
import os
from datetime import datetime

# Initialize router
router = APIRouter()

# Application start time for uptime calculation
_start_time = time.time()


@router.get("/health", response_model=HealthCheckResponse, summary="Basic Health Check")
async def health_check():
    """
    Basic health check endpoint

    Returns application status, version, and environment information.
    This endpoint is used by load balancers and monitoring systems.
    """
    settings = get_settings()
    uptime = time.time() - _start_time

    return HealthCheckResponse(
        status="healthy",
        version=settings.app_version,
        environment=settings.environment,
        timestamp=datetime.utcnow(),
        uptime=uptime
    )


@router.get("/health/detailed", summary="Detailed Health Check")
async def detailed_health_check():
    """
    Detailed health check with component status

    Reports storage directories, the description backend and the
    number of live sessions and description tasks.
    """
    settings = get_settings()
    uptime = time.time() - _start_time

    storage_status = {
        "upload_dir": settings.upload_dir.is_dir(),
        "temp_dir": settings.temp_dir.is_dir(),
    }
    is_healthy = all(storage_status.values())

    return {
        "status": "healthy" if is_healthy else "degraded",
        "version": settings.app_version,
        "environment": settings.environment,
        "timestamp": datetime.utcnow().isoformat(),
        "uptime": uptime,
        "components": {
            "storage": storage_status,
            "descriptions": {
                "openai_enabled": settings.openai_enabled,
                "active_tasks": len(description_task_manager.get_all_active_tasks()),
            },
            "sessions": len(session_store),
            "feature_flags": feature_flags.get_environment_info(),
        },
    }


@router.get("/health/ready", summary="Readiness Check")
async def readiness_check():
    """
    Kubernetes-style readiness probe

    Returns 200 once the storage directories exist, 503 otherwise.
    """
    settings = get_settings()
    if not (settings.upload_dir.is_dir() and settings.temp_dir.is_dir()):
        raise HTTPException(
            status_code=503,
            detail="Application not ready: storage directories missing"
        )
    return {"status": "ready", "timestamp": datetime.utcnow().isoformat()}


@router.get("/health/live", summary="Liveness Check")
async def liveness_check():
    """
    Kubernetes-style liveness probe

    Returns 200 if the application is alive and responding.
    """
    return {
        "status": "alive",
        "timestamp": datetime.utcnow().isoformat(),
        "pid": os.getpid()
    }
