"""
Console session endpoints.
Tokens are only ever set as HTTP-only cookies; response bodies carry the
profile or a status flag.
"""
from fastapi import APIRouter, Depends, Request, Response

from core.exceptions import SessionExpired, base_api_exception_handler
from models.schemas.request.session import LoginRequest
from models.schemas.responses.session import (
    LoginResponse,
    LogoutResponse,
    RefreshResponse,
    SessionStatusResponse,
)
from services.session.custodian import SessionCustodian, get_session_custodian
from utils.cookie_utils import (
    clear_session_cookies,
    get_access_token,
    get_refresh_token,
    set_access_cookie,
    set_refresh_cookie,
    set_session_cookies,
)
from utils.jwt_utils import JWTManager
from utils.logging import get_logger

logger = get_logger(__name__)
router = APIRouter()


@router.post(
    "/login",
    response_model=LoginResponse,
    operation_id="session_login",
    summary="Exchange credentials for session cookies",
)
async def login(
    payload: LoginRequest,
    response: Response,
    custodian: SessionCustodian = Depends(get_session_custodian),
):
    profile, artifact = await custodian.login(payload.email, payload.password)
    set_session_cookies(
        response,
        artifact.access.value,
        artifact.refresh.value if artifact.refresh else None,
    )
    return LoginResponse(user=profile)


@router.post(
    "/refresh",
    response_model=RefreshResponse,
    operation_id="session_refresh",
    summary="Rotate session cookies",
)
async def refresh(
    request: Request,
    response: Response,
    custodian: SessionCustodian = Depends(get_session_custodian),
):
    refresh_token = get_refresh_token(request)
    try:
        artifact = await custodian.refresh(refresh_token)
    except SessionExpired as e:
        failure = await base_api_exception_handler(request, e)
        clear_session_cookies(failure)
        return failure

    set_access_cookie(response, artifact.access.value)
    if artifact.refresh is not None and artifact.refresh.value != refresh_token:
        set_refresh_cookie(response, artifact.refresh.value)
    return RefreshResponse(success=True)


@router.post(
    "/logout",
    response_model=LogoutResponse,
    operation_id="session_logout",
    summary="Close the session",
)
async def logout(
    request: Request,
    response: Response,
    custodian: SessionCustodian = Depends(get_session_custodian),
):
    """Cookies are cleared whatever the backend answers"""
    await custodian.logout(get_access_token(request))
    clear_session_cookies(response)
    return LogoutResponse()


@router.get(
    "/session",
    response_model=SessionStatusResponse,
    operation_id="session_status",
    summary="Whether a live access cookie is present",
)
async def session_status(request: Request):
    token = get_access_token(request)
    if JWTManager.is_expired(token):
        return SessionStatusResponse(authenticated=False)
    return SessionStatusResponse(authenticated=True, expires_at=JWTManager.get_expiry(token))
