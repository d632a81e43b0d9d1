"""
Backend relay: forwards console calls to the platform backend with the
access cookie attached as a Bearer credential. Status codes pass through
unchanged so the client interceptor sees the backend's 401/403.
"""
from fastapi import APIRouter, Depends, Request, Response

from services.session.custodian import SessionCustodian, get_session_custodian
from utils.cookie_utils import get_access_token
from utils.logging import get_logger

logger = get_logger(__name__)
router = APIRouter()

# Hop-by-hop and length headers are recomputed by the ASGI server
_DROPPED_RESPONSE_HEADERS = {"content-length", "content-encoding", "transfer-encoding", "connection", "set-cookie"}


@router.api_route(
    "/{path:path}",
    methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    operation_id="backend_proxy",
    summary="Relay a call to the platform backend",
)
async def proxy(
    path: str,
    request: Request,
    custodian: SessionCustodian = Depends(get_session_custodian),
):
    body = await request.body()
    upstream = await custodian.backend.forward(
        request.method,
        path,
        params=request.query_params,
        content=body,
        content_type=request.headers.get("content-type"),
        access_token=get_access_token(request),
    )

    logger.debug(f"Proxied {request.method} /{path} -> {upstream.status_code}")
    headers = {
        key: value for key, value in upstream.headers.items()
        if key.lower() not in _DROPPED_RESPONSE_HEADERS
    }
    return Response(
        content=upstream.content,
        status_code=upstream.status_code,
        headers=headers,
    )
