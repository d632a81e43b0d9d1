from pydantic import BaseModel
from typing import Optional
from enum import Enum


class HealthStatus(str, Enum):
    """Health states reported by the health checks"""
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    READY = "ready"
    ALIVE = "alive"


class BasicHealthResponse(BaseModel):
    """Basic health check response"""
    status: HealthStatus
    service: str
    version: str
    environment: str
    framework: str
    timestamp: float

    class Config:
        json_schema_extra = {
            "example": {
                "status": "healthy",
                "service": "Field Survey Console",
                "version": "1.0.0",
                "environment": "development",
                "framework": "FastAPI",
                "timestamp": 1699123456.789
            }
        }


class ReadinessResponse(BaseModel):
    """Readiness check: database reachable and backend configured"""
    status: HealthStatus
    timestamp: float
    database: bool = True
    backend_url: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "status": "ready",
                "timestamp": 1699123456.789,
                "database": True,
                "backend_url": "http://localhost:8000/api/v1"
            }
        }


class LivenessResponse(BaseModel):
    """Liveness check response"""
    status: HealthStatus
    timestamp: float
