"""
Route guard for console views.

checking -> authorized | unauthorized. Protected bodies only run once the
guard has reached `authorized`; a store that never hydrates fails closed
after the hydration timeout.
"""
import inspect
from typing import Any, Awaitable, Callable, Optional, TypeVar

from common.types import GuardState
from config.settings import get_settings
from utils.logging import get_logger

from client.credential_store import CredentialStore

logger = get_logger(__name__)
settings = get_settings()

T = TypeVar("T")
Navigator = Callable[[str], Any]
SessionCheck = Callable[[], Awaitable[bool]]


async def navigate(navigator: Optional[Navigator], path: str) -> None:
    if navigator is None:
        return
    result = navigator(path)
    if inspect.isawaitable(result):
        await result


class RouteGuard:

    def __init__(
        self,
        store: CredentialStore,
        navigator: Optional[Navigator] = None,
        session_check: Optional[SessionCheck] = None,
        hydration_timeout: Optional[float] = None,
        login_path: Optional[str] = None,
        landing_path: Optional[str] = None,
    ):
        self.store = store
        self.navigator = navigator
        self.session_check = session_check
        self.hydration_timeout = (
            settings.HYDRATION_TIMEOUT_SECONDS if hydration_timeout is None else hydration_timeout
        )
        self.login_path = login_path or settings.LOGIN_PATH
        self.landing_path = landing_path or settings.LANDING_PATH
        self._state = GuardState.CHECKING

    @property
    def state(self) -> GuardState:
        return self._state

    async def _has_session(self) -> bool:
        if not self.store.is_authenticated:
            return False
        if self.session_check is None:
            return True
        return await self.session_check()

    async def _deny(self) -> GuardState:
        self._state = GuardState.UNAUTHORIZED
        await navigate(self.navigator, self.login_path)
        return self._state

    async def check(self) -> GuardState:
        """Gate for a protected view"""
        self._state = GuardState.CHECKING

        if not await self.store.wait_hydrated(self.hydration_timeout):
            logger.warning(f"Credential store did not hydrate within {self.hydration_timeout}s")
            await self.store.wipe()
            return await self._deny()

        if not await self._has_session():
            return await self._deny()

        self._state = GuardState.AUTHORIZED
        return self._state

    async def guard(self, body: Callable[[], Awaitable[T]]) -> Optional[T]:
        """Run a protected view body only once authorized"""
        if await self.check() is not GuardState.AUTHORIZED:
            return None
        return await body()

    async def enter_login(self) -> bool:
        """
        Gate for the login view, evaluated before any page data is fetched.
        Returns True when an authenticated user was sent to the landing view.
        """
        if not await self.store.wait_hydrated(self.hydration_timeout):
            return False
        if await self._has_session():
            self._state = GuardState.AUTHORIZED
            await navigate(self.navigator, self.landing_path)
            return True
        self._state = GuardState.UNAUTHORIZED
        return False
