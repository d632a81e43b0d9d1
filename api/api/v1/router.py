from fastapi import APIRouter
from api.v1.endpoints import (
    session,
    proxy,
    activation,
    admin_activation,
    admin_whitelist,
    health,
)

api_router = APIRouter()

api_router.include_router(session.router, prefix="/api/auth", tags=["Session"])
api_router.include_router(proxy.router, prefix="/api/backend", tags=["Backend Proxy"])
api_router.include_router(admin_activation.router, prefix="/admin/activation-codes", tags=["Activation Codes"])
api_router.include_router(admin_activation.audit_router, prefix="/admin/activation-audit", tags=["Activation Audit"])
api_router.include_router(admin_whitelist.router, prefix="/admin/whitelist", tags=["Whitelist"])
api_router.include_router(activation.router, prefix="/activation", tags=["Activation"])
api_router.include_router(health.router, prefix="/health", tags=["Health"])
