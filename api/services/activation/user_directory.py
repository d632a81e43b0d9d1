"""
Platform user lookups for supervisor resolution.

The platform backend owns users. When a request carries an access token the
backend is asked first and the answer is written through to the local
`users` mirror; the mirror answers on its own when no token is available or
the backend cannot be reached.
"""
import uuid
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import ExternalServiceError
from models.database.user import User
from models.schemas.responses.session import UserProfile
from services.session.backend_client import PlatformBackendClient
from utils.logging import get_logger

logger = get_logger(__name__)


class UserDirectory:

    def __init__(
        self,
        db: AsyncSession,
        backend: Optional[PlatformBackendClient] = None,
        access_token: Optional[str] = None,
    ):
        self.db = db
        self.backend = backend
        self.access_token = access_token

    async def get(self, user_id: uuid.UUID) -> Optional[User]:
        cached = await self.db.get(User, user_id)
        if self.backend is None or not self.access_token:
            return cached

        try:
            data = await self.backend.get_user(str(user_id), self.access_token)
        except ExternalServiceError as e:
            if cached is None:
                raise
            logger.warning(f"User directory unavailable ({e.error_code}), using mirrored user {user_id}")
            return cached

        if data is None:
            return None
        return await self.remember(UserProfile.from_backend(data), user_id=user_id)

    async def remember(self, profile: UserProfile, user_id: Optional[uuid.UUID] = None) -> Optional[User]:
        """Upsert a backend profile into the mirror; changes are committed by the caller"""
        if user_id is None:
            try:
                user_id = uuid.UUID(profile.id)
            except ValueError:
                logger.debug("Profile id is not a UUID, not mirrored")
                return None

        user = await self.db.get(User, user_id)
        if user is None:
            user = User(id=user_id)
            self.db.add(user)

        user.email = profile.email
        user.first_name = profile.first_name
        user.last_name = profile.last_name
        user.role = profile.role.value
        user.phone = profile.phone
        user.avatar_url = profile.avatar_url
        user.is_active = profile.is_active
        return user
