"""
Server-side page gate for console views.

Protected prefixes need an unexpired access cookie; the login view is
skipped when one is present. The JWT `exp` claim is read without
verification, the backend remains the authority on validity.
"""
from urllib.parse import urlencode

from fastapi import Request
from fastapi.responses import RedirectResponse

from config.settings import get_settings
from utils.cookie_utils import clear_access_cookie, get_access_token
from utils.jwt_utils import JWTManager
from utils.logging import get_logger
from utils.request_utils import is_safe_redirect

logger = get_logger(__name__)
settings = get_settings()


def is_protected_path(path: str) -> bool:
    for prefix in settings.PROTECTED_PATH_PREFIXES:
        prefix = prefix.rstrip("/")
        if path == prefix or path.startswith(prefix + "/"):
            return True
    return False


def login_redirect_url(path: str) -> str:
    return f"{settings.LOGIN_PATH}?{urlencode({'redirect': path})}"


async def page_guard(request: Request, call_next):
    path = request.url.path
    token = get_access_token(request)
    has_session = not JWTManager.is_expired(token)

    if is_protected_path(path) and not has_session:
        logger.debug(f"Unauthenticated access to {path}, redirecting to login")
        response = RedirectResponse(login_redirect_url(path), status_code=307)
        if token:
            clear_access_cookie(response)
        return response

    if path == settings.LOGIN_PATH and has_session:
        target = request.query_params.get("redirect")
        if not is_safe_redirect(target) or target.split("?")[0] == settings.LOGIN_PATH:
            target = settings.LANDING_PATH
        return RedirectResponse(target, status_code=307)

    return await call_next(request)
