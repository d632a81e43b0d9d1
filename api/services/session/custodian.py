"""
Session credential custodian.

Exchanges credentials with the platform backend and hands the resulting
artifact to the HTTP layer, which stores it only in HTTP-only cookies.
Refreshes presenting the same refresh token are coalesced onto one backend
call and the outcome is reused for a short window.
"""
from typing import Optional, Tuple

from config.settings import get_settings
from core.exceptions import BaseAPIException, SessionExpired
from models.schemas.responses.session import UserProfile
from services.session.artifact import SessionArtifact, TokenCredential
from services.session.backend_client import PlatformBackendClient
from services.session.single_flight import SingleFlight, digest_key
from utils.logging import get_logger
from utils.masking import mask_identifier

logger = get_logger(__name__)
settings = get_settings()


class SessionCustodian:

    def __init__(
        self,
        backend: Optional[PlatformBackendClient] = None,
        reuse_window: Optional[float] = None,
    ):
        self.backend = backend or PlatformBackendClient()
        window = settings.REFRESH_REUSE_WINDOW_SECONDS if reuse_window is None else reuse_window
        self._refresh_flight = SingleFlight(reuse_window=window)

    def _artifact_from(self, data: dict, previous: Optional[SessionArtifact] = None) -> SessionArtifact:
        access = TokenCredential.issue(data["access_token"], settings.cookies.access_max_age)
        refresh_value = data.get("refresh_token")
        refresh = TokenCredential.issue(refresh_value, settings.cookies.refresh_max_age) if refresh_value else None
        if previous is not None:
            return previous.rotated(access, refresh)
        return SessionArtifact(access=access, refresh=refresh)

    async def login(self, email: str, password: str) -> Tuple[UserProfile, SessionArtifact]:
        """
        Authenticate against the backend.
        Raises InvalidCredentials or UpstreamUnavailable/UpstreamTimeout.
        """
        data = await self.backend.login(email, password)
        profile = UserProfile.from_backend(data.get("user") or {})
        artifact = self._artifact_from(data)
        logger.info(f"Login succeeded for {mask_identifier(email)} as {profile.role.value}")
        return profile, artifact

    async def refresh(self, refresh_token: Optional[str]) -> SessionArtifact:
        """
        Rotate the artifact. Raises SessionExpired when the backend refuses,
        in which case the caller must clear both cookies.
        """
        if not refresh_token:
            raise SessionExpired("No refresh token")

        current = SessionArtifact(
            access=TokenCredential(value="", expires_at=None),
            refresh=TokenCredential.issue(refresh_token, settings.cookies.refresh_max_age),
        )

        async def _do_refresh() -> SessionArtifact:
            data = await self.backend.refresh(refresh_token)
            logger.info("Session refreshed")
            return self._artifact_from(data, previous=current)

        return await self._refresh_flight.run(digest_key(refresh_token), _do_refresh)

    async def logout(self, access_token: Optional[str]) -> None:
        """Best-effort backend logout; never raises"""
        if not access_token:
            return
        try:
            await self.backend.logout(access_token)
        except BaseAPIException as e:
            logger.warning(f"Backend logout failed: {e.error_code}")

    async def close(self) -> None:
        await self.backend.close()


_custodian: Optional[SessionCustodian] = None


def get_session_custodian() -> SessionCustodian:
    """FastAPI dependency returning the process-wide custodian"""
    global _custodian
    if _custodian is None:
        _custodian = SessionCustodian()
    return _custodian


async def close_session_custodian() -> None:
    global _custodian
    if _custodian is not None:
        await _custodian.close()
        _custodian = None
