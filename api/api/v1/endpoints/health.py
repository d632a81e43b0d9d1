from fastapi import APIRouter, HTTPException
import time

from config.settings import get_settings
from utils.logging import get_logger
from models.schemas.responses.health import (
    BasicHealthResponse,
    ReadinessResponse,
    LivenessResponse,
    HealthStatus,
)
from config.database import test_connection

router = APIRouter()
logger = get_logger(__name__)
settings = get_settings()


@router.get("/", response_model=BasicHealthResponse)
async def health_check():
    """Basic health check endpoint"""
    return BasicHealthResponse(
        status=HealthStatus.HEALTHY,
        service=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENV,
        framework="FastAPI",
        timestamp=time.time(),
    )


@router.get("/ready", response_model=ReadinessResponse)
async def readiness_check():
    db_connected = await test_connection()
    if not db_connected:
        logger.error("Readiness check failed: database unreachable")
        raise HTTPException(status_code=503, detail="Database not ready")
    return ReadinessResponse(
        status=HealthStatus.READY,
        timestamp=time.time(),
        database=True,
        backend_url=settings.backend_url,
    )


@router.get("/live", response_model=LivenessResponse)
async def liveness_check():
    """Liveness check"""
    return LivenessResponse(status=HealthStatus.ALIVE, timestamp=time.time())
