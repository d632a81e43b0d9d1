import json
import uuid
from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs

import pytest
import pytest_asyncio
import httpx

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker

from common.types import IdentifierType, UserRole
from models.database.base import Base
from models.database.user import User
from services.activation.notification_service import DeliveryResult
from services.activation.whitelist_service import WhitelistService
from services.session.backend_client import PlatformBackendClient
from utils.jwt_utils import JWTManager


class FrozenClock:
    def __init__(self, now=None):
        self.now = now or datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


class RecordingMailer:
    """Stands in for SMTP delivery and keeps what would have been sent"""

    def __init__(self, sent=True):
        self.sent = sent
        self.codes = []
        self.reminders = []

    async def send_code(self, entry, code, expires_at, custom_message=None):
        self.codes.append({"to": entry.identifier, "code": code, "custom_message": custom_message})
        return DeliveryResult(sent=self.sent, status="sent" if self.sent else "smtp_down")

    async def send_reminder(self, entry, expires_at, custom_message=None):
        self.reminders.append({"to": entry.identifier, "custom_message": custom_message})
        return DeliveryResult(sent=self.sent, status="sent" if self.sent else "smtp_down")


@pytest_asyncio.fixture
async def db_engine():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(db_engine):
    return sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def mailer():
    return RecordingMailer()


async def make_user(session, role="supervisor", email=None, is_active=True):
    user = User(
        email=email or f"{uuid.uuid4().hex[:8]}@example.com",
        first_name="Ana",
        last_name="Pérez",
        role=role,
        is_active=is_active,
    )
    session.add(user)
    await session.commit()
    return user


async def make_entry(session, identifier="maria@example.com", role=UserRole.SUPERVISOR, supervisor=None):
    return await WhitelistService(session).create(
        identifier=identifier,
        identifier_type=IdentifierType.EMAIL,
        full_name="María Gómez",
        assigned_role=role,
        assigned_supervisor_id=supervisor.id if supervisor is not None else None,
    )


class FakePlatform:
    """
    Platform backend auth endpoints served through httpx.MockTransport.
    Every refresh rotates both tokens; `refresh_gate` holds refreshes open.
    """

    def __init__(self, password="s3cret", role="admin"):
        self.password = password
        self.user = {
            "id": str(uuid.uuid4()),
            "email": "admin@example.com",
            "nombre": "Ana",
            "apellido": "Pérez",
            "rol": role,
        }
        self.generation = 0
        self.refresh_token = None
        self.refresh_calls = 0
        self.logout_calls = 0
        self.refuse_refresh = False
        self.refresh_gate = None
        self.forwarded = []
        self.users = {}
        self.user_lookups = 0
        self.users_down = False

    def issue(self):
        self.generation += 1
        claims = {"sub": self.user["id"], "role": self.user["rol"], "gen": self.generation}
        access = JWTManager.encode_token(claims, timedelta(minutes=30))
        self.refresh_token = JWTManager.encode_token(claims, timedelta(days=7), token_type="refresh")
        return {"access_token": access, "refresh_token": self.refresh_token, "token_type": "bearer"}

    async def __call__(self, request):
        path = request.url.path
        if path == "/auth/login":
            form = parse_qs(request.content.decode())
            if form.get("password") != [self.password]:
                return httpx.Response(401, json={"detail": "Incorrect email or password"})
            return httpx.Response(200, json={**self.issue(), "user": self.user})

        if path == "/auth/refresh":
            self.refresh_calls += 1
            if self.refresh_gate is not None:
                await self.refresh_gate.wait()
            presented = json.loads(request.content).get("refresh_token")
            if self.refuse_refresh or presented != self.refresh_token:
                return httpx.Response(401, json={"detail": "Invalid refresh token"})
            return httpx.Response(200, json=self.issue())

        if path == "/auth/logout":
            self.logout_calls += 1
            return httpx.Response(204)

        if path.startswith("/users/"):
            self.user_lookups += 1
            if self.users_down:
                return httpx.Response(503, json={"detail": "Service unavailable"})
            if not request.headers.get("authorization", "").startswith("Bearer "):
                return httpx.Response(401, json={"detail": "Not authenticated"})
            user = self.users.get(path.rsplit("/", 1)[-1])
            if user is None:
                return httpx.Response(404, json={"detail": "User not found"})
            return httpx.Response(200, json=user)

        self.forwarded.append(request)
        return httpx.Response(200, json={"path": path, "authorization": request.headers.get("authorization")})

    def add_user(self, rol="encargado", activo=True):
        user_id = str(uuid.uuid4())
        self.users[user_id] = {
            "id": user_id,
            "email": f"{user_id[:8]}@example.com",
            "nombre": "Luis",
            "apellido": "Torres",
            "rol": rol,
            "activo": activo,
        }
        return user_id

    def backend(self):
        return PlatformBackendClient(base_url="http://platform.test", transport=httpx.MockTransport(self))
