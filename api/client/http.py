"""
Console API client with the refresh coordinator.

Every call carries the session artifact from the SessionHolder as a Cookie
header; httpx's own cookie jar refuses to store anything so the holder is
the single owner of the credentials. A 401 triggers at most one
refresh-and-replay per logical request, and concurrent 401s share a single
in-flight refresh.
"""
from http.cookiejar import CookieJar, DefaultCookiePolicy
from typing import Any, Dict, Mapping, Optional, Type

import httpx

from config.settings import get_settings
from core.exceptions import (
    AttemptLimitExceeded,
    AuthenticationError,
    BaseAPIException,
    CodeAlreadyUsed,
    CodeExpired,
    CodeInactiveError,
    CodeRevoked,
    ConflictError,
    ConflictingActiveCode,
    InvalidCredentials,
    NotFoundError,
    PermissionDenied,
    SessionExpired,
    SupervisorRequired,
    UpstreamTimeout,
    UpstreamUnavailable,
    ValidationError,
)
from models.schemas.responses.session import UserProfile
from services.session.artifact import SessionArtifact, SessionHolder, TokenCredential
from services.session.single_flight import SingleFlight
from utils.datetime_utils import DateTimeManager
from utils.logging import get_logger

from client.credential_store import CredentialStore
from client.route_guard import Navigator, navigate

logger = get_logger(__name__)
settings = get_settings()

REFRESH_KEY = "session"

_ERROR_TYPES: Dict[str, Type[BaseAPIException]] = {
    "INVALID_CREDENTIALS": InvalidCredentials,
    "SESSION_EXPIRED": SessionExpired,
    "PERMISSION_DENIED": PermissionDenied,
    "VALIDATION_ERROR": ValidationError,
    "NOT_FOUND_ERROR": NotFoundError,
    "CONFLICTING_ACTIVE_CODE": ConflictingActiveCode,
    "SUPERVISOR_REQUIRED": SupervisorRequired,
    "CODE_ALREADY_USED": CodeAlreadyUsed,
    "CODE_REVOKED": CodeRevoked,
    "CODE_EXPIRED": CodeExpired,
    "ATTEMPT_LIMIT_EXCEEDED": AttemptLimitExceeded,
    "UPSTREAM_UNAVAILABLE": UpstreamUnavailable,
    "UPSTREAM_TIMEOUT": UpstreamTimeout,
}


class _RejectAllCookies(DefaultCookiePolicy):
    """Keeps httpx from storing or replaying cookies on its own"""

    def set_ok(self, cookie, request):
        return False

    def return_ok(self, cookie, request):
        return False


def error_from_response(response: httpx.Response) -> BaseAPIException:
    """Rebuild the service's error taxonomy from an error payload"""
    try:
        payload = response.json()
    except ValueError:
        payload = {}
    error = payload.get("error") if isinstance(payload, dict) else None
    error = error if isinstance(error, dict) else {}

    message = error.get("message") or response.reason_phrase or "Request failed"
    code = error.get("code")
    details = error.get("details") or {}
    status = response.status_code

    error_type = _ERROR_TYPES.get(code)
    if error_type is not None:
        exc = error_type(message)
    elif status == 400:
        exc = ValidationError(message)
    elif status == 401:
        exc = AuthenticationError(message, error_code=code or "AUTHENTICATION_ERROR")
    elif status == 403:
        exc = PermissionDenied(message)
    elif status == 404:
        exc = NotFoundError(message)
    elif status == 409:
        exc = ConflictError(message, error_code=code or "CONFLICT_ERROR")
    elif status == 410:
        exc = CodeInactiveError(message, error_code=code or "CODE_INACTIVE")
    else:
        exc = BaseAPIException(message, status_code=status, error_code=code)

    exc.status_code = status
    exc.details = details
    return exc


class ConsoleApiClient:
    """
    Client for the console service
    - Login/logout through the cookie custodian endpoints
    - Backend calls through the relay, with refresh-and-replay on 401
    - Forced logout clears the credential store and navigates to login
    """

    def __init__(
        self,
        base_url: str,
        store: Optional[CredentialStore] = None,
        navigator: Optional[Navigator] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.store = store or CredentialStore()
        self.navigator = navigator
        self.timeout = timeout if timeout is not None else settings.REQUEST_TIMEOUT_SECONDS
        self.holder = SessionHolder()
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._refresh_flight = SingleFlight(reuse_window=0)
        self._session_dead = False
        self.refresh_count = 0

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
                cookies=CookieJar(policy=_RejectAllCookies()),
            )
        return self._client

    @property
    def session_dead(self) -> bool:
        return self._session_dead

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def __aenter__(self) -> "ConsoleApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    @staticmethod
    def _cookie_header(artifact: Optional[SessionArtifact]) -> Optional[str]:
        if artifact is None:
            return None
        parts = [f"{settings.cookies.access_cookie_name}={artifact.access.value}"]
        if artifact.refresh is not None:
            parts.append(f"{settings.cookies.refresh_cookie_name}={artifact.refresh.value}")
        return "; ".join(parts)

    async def _send(
        self,
        method: str,
        path: str,
        artifact: Optional[SessionArtifact] = None,
        **kwargs,
    ) -> httpx.Response:
        headers = dict(kwargs.pop("headers", None) or {})
        cookie = self._cookie_header(artifact)
        if cookie:
            headers["Cookie"] = cookie
        try:
            return await self.client.request(method, path, headers=headers, **kwargs)
        except httpx.TimeoutException as e:
            logger.warning(f"{method} {path} timed out after {self.timeout}s")
            raise UpstreamTimeout() from e
        except httpx.TransportError as e:
            logger.error(f"{method} {path} failed: {type(e).__name__}")
            raise UpstreamUnavailable() from e

    async def _absorb_cookies(self, response: httpx.Response) -> None:
        """Move session cookies from a custodian response into the holder"""
        access = refresh = None
        for cookie in response.cookies.jar:
            expires_at = DateTimeManager.from_timestamp(cookie.expires) if cookie.expires else None
            if cookie.name == settings.cookies.access_cookie_name:
                access = TokenCredential(value=cookie.value, expires_at=expires_at)
            elif cookie.name == settings.cookies.refresh_cookie_name:
                refresh = TokenCredential(value=cookie.value, expires_at=expires_at)

        if access is None:
            return
        current = await self.holder.get()
        if current is None:
            await self.holder.set(SessionArtifact(access=access, refresh=refresh))
        else:
            await self.holder.set(current.rotated(access, refresh))

    async def login(self, email: str, password: str) -> UserProfile:
        """
        Authenticate and populate the credential store.
        No session artifact is kept unless the custodian accepted the login.
        """
        response = await self._send("POST", "/api/auth/login", json={"email": email, "password": password})
        if not response.is_success:
            raise error_from_response(response)

        await self.holder.clear()
        await self._absorb_cookies(response)
        profile = UserProfile.from_backend(response.json().get("user") or {})
        self._session_dead = False
        await self.store.login(profile)
        return profile

    async def logout(self) -> None:
        """Best-effort server logout; local state is always cleared"""
        artifact = await self.holder.get()
        try:
            await self._send("POST", "/api/auth/logout", artifact)
        except BaseAPIException as e:
            logger.warning(f"Logout request failed: {e.error_code}")
        finally:
            await self.holder.clear()
            await self.store.logout()
            await navigate(self.navigator, settings.LOGIN_PATH)

    async def session_status(self) -> bool:
        artifact = await self.holder.get()
        if artifact is None:
            return False
        response = await self._send("GET", "/api/auth/session", artifact)
        return response.is_success and bool(response.json().get("authenticated"))

    async def _do_refresh(self) -> SessionArtifact:
        artifact = await self.holder.get()
        if artifact is None or artifact.refresh is None:
            raise SessionExpired("No refresh token")

        self.refresh_count += 1
        response = await self._send("POST", "/api/auth/refresh", artifact)
        if response.status_code == 401:
            raise SessionExpired(error_from_response(response).message)
        if not response.is_success:
            # Upstream failures leave the session in place
            raise error_from_response(response)

        await self._absorb_cookies(response)
        refreshed = await self.holder.get()
        if refreshed is None:
            raise SessionExpired()
        return refreshed

    async def _force_logout(self) -> None:
        if self._session_dead:
            return
        self._session_dead = True
        logger.info("Session lost, forcing logout")
        await self.holder.clear()
        await self.store.logout()
        await navigate(self.navigator, settings.LOGIN_PATH)

    async def refresh(self) -> SessionArtifact:
        """Join or start the shared refresh; a refused refresh ends the session"""
        try:
            return await self._refresh_flight.run(REFRESH_KEY, self._do_refresh)
        except SessionExpired:
            await self._force_logout()
            raise

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        json: Any = None,
    ) -> httpx.Response:
        """
        Send a request with the current artifact. Error statuses are raised
        as the service's exception types.
        """
        if self._session_dead:
            raise SessionExpired()

        retried = False
        while True:
            artifact = await self.holder.get()
            response = await self._send(method, path, artifact, params=params, json=json)

            if response.status_code != 401:
                break
            if retried:
                # Still rejected with a fresh credential, do not loop
                break
            retried = True

            current = await self.holder.get()
            sent_with = artifact.access.value if artifact else None
            if current is not None and current.access.value != sent_with:
                # Another request already refreshed while this one was in flight
                continue
            await self.refresh()

        if response.status_code == 403:
            raise PermissionDenied(error_from_response(response).message)
        if not response.is_success:
            raise error_from_response(response)
        return response

    async def request_json(self, method: str, path: str, **kwargs) -> Any:
        response = await self.request(method, path, **kwargs)
        if not response.content:
            return None
        return response.json()

    async def backend(self, method: str, path: str, **kwargs) -> Any:
        """Call the platform backend through the console relay"""
        return await self.request_json(method, f"/api/backend/{path.lstrip('/')}", **kwargs)
