"""
Client-side credential store.

Holds the authenticated user's profile and nothing else: tokens live only
in the transport's session holder and are never written here. The profile
is persisted as JSON so a restarted console can hydrate without a login;
`hydrated` is set once loading has finished, successfully or not.
"""
import asyncio
import json
import os
from pathlib import Path
from typing import Optional, Union

from pydantic import ValidationError as PydanticValidationError

from models.schemas.responses.session import UserProfile
from utils.logging import get_logger

logger = get_logger(__name__)

STORAGE_VERSION = 1


class CredentialStore:

    def __init__(self, path: Union[str, Path, None] = None):
        self.path = Path(path) if path is not None else None
        self._profile: Optional[UserProfile] = None
        self._hydrated = asyncio.Event()

    @property
    def profile(self) -> Optional[UserProfile]:
        return self._profile

    @property
    def is_authenticated(self) -> bool:
        return self._profile is not None

    @property
    def has_hydrated(self) -> bool:
        return self._hydrated.is_set()

    async def hydrate(self) -> Optional[UserProfile]:
        """Load the persisted profile; unreadable storage is wiped, not trusted"""
        try:
            if self.path is not None:
                self._profile = await asyncio.to_thread(self._read)
        finally:
            self._hydrated.set()
        return self._profile

    async def wait_hydrated(self, timeout: float) -> bool:
        try:
            await asyncio.wait_for(self._hydrated.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def login(self, profile: UserProfile) -> None:
        self._profile = profile
        self._hydrated.set()
        await self._persist()

    async def set_profile(self, profile: Optional[UserProfile]) -> None:
        """Profile update from the backend; None behaves like logout"""
        if profile is None:
            await self.logout()
            return
        self._profile = profile
        await self._persist()

    async def logout(self) -> None:
        self._profile = None
        await self.wipe()

    async def wipe(self) -> None:
        """Remove persisted state, used when hydration cannot be trusted"""
        self._profile = None
        if self.path is not None:
            await asyncio.to_thread(self._remove)

    async def _persist(self) -> None:
        if self.path is None:
            return
        if self._profile is None:
            await asyncio.to_thread(self._remove)
            return
        payload = {
            "version": STORAGE_VERSION,
            "user": self._profile.model_dump(mode="json"),
        }
        await asyncio.to_thread(self._write, payload)

    def _read(self) -> Optional[UserProfile]:
        if not self.path.exists():
            return None
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
            if payload.get("version") != STORAGE_VERSION or not payload.get("user"):
                raise ValueError("unsupported storage payload")
            return UserProfile.model_validate(payload["user"])
        except (OSError, ValueError, AttributeError, PydanticValidationError) as e:
            logger.warning(f"Discarding unreadable credential store {self.path}: {type(e).__name__}")
            self._remove()
            return None

    def _write(self, payload: dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(payload, fh)
        os.replace(tmp, self.path)

    def _remove(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
