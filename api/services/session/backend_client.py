"""
Outbound calls to the platform backend.
Network failures are mapped to upstream errors; tokens are never logged.
"""
from typing import Any, Dict, Mapping, Optional

import httpx

from config.settings import get_settings
from core.exceptions import (
    AuthenticationError,
    InvalidCredentials,
    PermissionDenied,
    SessionExpired,
    UpstreamTimeout,
    UpstreamUnavailable,
)
from utils.logging import get_logger

logger = get_logger(__name__)
settings = get_settings()


class PlatformBackendClient:
    """Thin httpx wrapper around the backend auth endpoints and the generic proxy"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.backend_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.REQUEST_TIMEOUT_SECONDS
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            return await self.client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            logger.warning(f"Backend {method} {url} timed out after {self.timeout}s")
            raise UpstreamTimeout() from e
        except httpx.TransportError as e:
            logger.error(f"Backend {method} {url} unreachable: {type(e).__name__}")
            raise UpstreamUnavailable() from e

    @staticmethod
    def _json(response: httpx.Response) -> Dict[str, Any]:
        try:
            data = response.json()
        except ValueError as e:
            raise UpstreamUnavailable("Backend returned an invalid response") from e
        if not isinstance(data, dict):
            raise UpstreamUnavailable("Backend returned an invalid response")
        return data

    async def login(self, email: str, password: str) -> Dict[str, Any]:
        """
        POST /auth/login as OAuth2 password form.
        Returns {access_token, refresh_token?, token_type, user}.
        """
        response = await self._send(
            "POST",
            "/auth/login",
            data={"username": email, "password": password},
        )

        if response.status_code >= 500:
            logger.error(f"Backend login failed with status {response.status_code}")
            raise UpstreamUnavailable()
        if response.status_code >= 400:
            logger.info(f"Backend rejected login with status {response.status_code}")
            raise InvalidCredentials()

        data = self._json(response)
        if not data.get("access_token"):
            raise UpstreamUnavailable("Backend login response carried no access token")
        return data

    async def refresh(self, refresh_token: str) -> Dict[str, Any]:
        """
        POST /auth/refresh. A 4xx answer means the session cannot continue;
        5xx is an outage and leaves the session alone.
        """
        response = await self._send("POST", "/auth/refresh", json={"refresh_token": refresh_token})

        if response.status_code >= 500:
            logger.error(f"Backend refresh failed with status {response.status_code}")
            raise UpstreamUnavailable()
        if not response.is_success:
            logger.info(f"Backend refused refresh with status {response.status_code}")
            raise SessionExpired()

        data = self._json(response)
        if not data.get("access_token"):
            raise SessionExpired()
        return data

    async def logout(self, access_token: str) -> None:
        response = await self._send(
            "POST",
            "/auth/logout",
            headers={"Authorization": f"Bearer {access_token}"},
        )
        if not response.is_success:
            logger.info(f"Backend logout answered {response.status_code}")

    async def get_user(self, user_id: str, access_token: str) -> Optional[Dict[str, Any]]:
        """GET /users/{id} with the caller's bearer. None when the backend does not know the user."""
        response = await self._send(
            "GET",
            f"/users/{user_id}",
            headers={"Authorization": f"Bearer {access_token}"},
        )

        if response.status_code == 404:
            return None
        if response.status_code == 401:
            raise AuthenticationError("Backend rejected the access token")
        if response.status_code == 403:
            raise PermissionDenied("Backend denied access to the user directory")
        if not response.is_success:
            logger.error(f"Backend user lookup failed with status {response.status_code}")
            raise UpstreamUnavailable()

        data = self._json(response)
        # Some deployments wrap single resources in {"data": {...}}
        if isinstance(data.get("data"), dict):
            data = data["data"]
        return data

    async def forward(
        self,
        method: str,
        path: str,
        params: Optional[Mapping[str, Any]] = None,
        content: Optional[bytes] = None,
        content_type: Optional[str] = None,
        access_token: Optional[str] = None,
    ) -> httpx.Response:
        """Relay an arbitrary call, attaching the bearer credential"""
        headers = {}
        if content_type:
            headers["Content-Type"] = content_type
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"

        return await self._send(
            method,
            "/" + path.lstrip("/"),
            params=params,
            content=content or None,
            headers=headers,
        )
