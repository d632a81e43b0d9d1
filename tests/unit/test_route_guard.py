import asyncio
import json
import os
import stat

import pytest

from client.credential_store import CredentialStore
from client.route_guard import RouteGuard
from common.types import GuardState, UserRole
from config.settings import get_settings
from models.schemas.responses.session import UserProfile

settings = get_settings()


def _profile():
    return UserProfile.from_backend({"id": 12, "email": "ana@example.com", "nombre": "Ana", "rol": "encargado"})


class Recorder:
    def __init__(self):
        self.paths = []

    def __call__(self, path):
        self.paths.append(path)


@pytest.mark.asyncio
async def test_profile_persists_without_tokens(tmp_path):
    path = tmp_path / "session.json"
    store = CredentialStore(path)

    await store.login(_profile())

    payload = json.loads(path.read_text())
    assert payload["version"] == 1
    assert payload["user"]["role"] == UserRole.SUPERVISOR.value
    assert "token" not in path.read_text().lower()
    assert stat.S_IMODE(os.stat(path).st_mode) == 0o600

    restored = CredentialStore(path)
    assert await restored.hydrate() == store.profile
    assert restored.has_hydrated and restored.is_authenticated


@pytest.mark.asyncio
async def test_unreadable_store_is_discarded(tmp_path):
    path = tmp_path / "session.json"
    path.write_text("{not json")

    store = CredentialStore(path)

    assert await store.hydrate() is None
    assert store.has_hydrated
    assert not path.exists()


@pytest.mark.asyncio
async def test_logout_removes_persisted_profile(tmp_path):
    path = tmp_path / "session.json"
    store = CredentialStore(path)
    await store.login(_profile())

    await store.logout()

    assert store.profile is None
    assert not path.exists()


@pytest.mark.asyncio
async def test_hydration_timeout_fails_closed(tmp_path):
    path = tmp_path / "session.json"
    await CredentialStore(path).login(_profile())
    store = CredentialStore(path)
    navigator = Recorder()
    guard = RouteGuard(store, navigator=navigator, hydration_timeout=0.01)
    ran = []

    async def body():
        ran.append(True)

    assert await guard.guard(body) is None

    assert guard.state is GuardState.UNAUTHORIZED
    assert ran == []
    assert navigator.paths == [settings.LOGIN_PATH]
    assert not path.exists()


@pytest.mark.asyncio
async def test_guard_runs_body_once_authorized():
    store = CredentialStore()
    navigator = Recorder()
    guard = RouteGuard(store, navigator=navigator, hydration_timeout=1)

    async def body():
        return "page data"

    checking = asyncio.create_task(guard.guard(body))
    await asyncio.sleep(0)
    assert guard.state is GuardState.CHECKING

    await store.login(_profile())
    assert await checking == "page data"
    assert guard.state is GuardState.AUTHORIZED
    assert navigator.paths == []


@pytest.mark.asyncio
async def test_session_check_can_deny():
    store = CredentialStore()
    await store.login(_profile())

    async def session_alive():
        return False

    guard = RouteGuard(store, session_check=session_alive, hydration_timeout=0.1)

    assert await guard.check() is GuardState.UNAUTHORIZED


@pytest.mark.asyncio
async def test_login_view_redirects_authenticated_user():
    store = CredentialStore()
    await store.hydrate()
    navigator = Recorder()
    guard = RouteGuard(store, navigator=navigator, hydration_timeout=0.1)

    assert await guard.enter_login() is False
    assert guard.state is GuardState.UNAUTHORIZED

    await store.login(_profile())
    assert await guard.enter_login() is True
    assert navigator.paths == [settings.LANDING_PATH]
