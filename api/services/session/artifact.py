"""
Session artifact: the opaque access/refresh credential pair.

Credential values never appear in repr output, logs or serialized
profiles. The holder is the only place a live artifact is read or
written from, and every access goes through its lock.
"""
import asyncio
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Optional

from utils.datetime_utils import DateTimeManager
from utils.jwt_utils import JWTManager


@dataclass(frozen=True)
class TokenCredential:
    value: str = field(repr=False)
    expires_at: Optional[datetime] = None

    def __repr__(self) -> str:
        return f"TokenCredential(value=<redacted>, expires_at={self.expires_at!r})"

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        reference = DateTimeManager.ensure_utc(now) if now else DateTimeManager.utc_now()
        return DateTimeManager.ensure_utc(self.expires_at) <= reference

    @classmethod
    def issue(cls, value: str, max_age_seconds: int, now: Optional[datetime] = None) -> "TokenCredential":
        """
        Expiry comes from the JWT `exp` claim when readable, otherwise from
        the cookie max-age.
        """
        expires_at = JWTManager.get_expiry(value)
        if expires_at is None:
            reference = now or DateTimeManager.utc_now()
            expires_at = reference + timedelta(seconds=max_age_seconds)
        return cls(value=value, expires_at=expires_at)


@dataclass(frozen=True)
class SessionArtifact:
    access: TokenCredential
    refresh: Optional[TokenCredential] = None

    def rotated(self, access: TokenCredential, refresh: Optional[TokenCredential] = None) -> "SessionArtifact":
        """New pair after refresh; keeps the current refresh credential when none was issued"""
        return replace(self, access=access, refresh=refresh or self.refresh)


class SessionHolder:
    """Single owner of the live session artifact"""

    def __init__(self, artifact: Optional[SessionArtifact] = None):
        self._artifact = artifact
        self._lock = asyncio.Lock()

    async def get(self) -> Optional[SessionArtifact]:
        async with self._lock:
            return self._artifact

    async def set(self, artifact: SessionArtifact) -> None:
        async with self._lock:
            self._artifact = artifact

    async def clear(self) -> None:
        async with self._lock:
            self._artifact = None

    def __repr__(self) -> str:
        return f"SessionHolder(has_session={self._artifact is not None})"
