"""
Session response schemas.
UserProfile holds no secret material and is safe to persist client side.
"""
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from common.types import UserRole

# Platform field spellings mapped onto profile fields
_PROFILE_ALIASES = {
    "nombre": "first_name",
    "apellido": "last_name",
    "rol": "role",
    "telefono": "phone",
    "activo": "is_active",
}


class UserProfile(BaseModel):
    """Authenticated user as reported by the platform backend"""

    model_config = ConfigDict(extra="ignore")

    id: str
    email: str
    first_name: str = ""
    last_name: str = ""
    role: UserRole
    phone: Optional[str] = None
    avatar_url: Optional[str] = None
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v):
        return str(v)

    @field_validator("role", mode="before")
    @classmethod
    def normalize_role(cls, v):
        return UserRole.parse(v)

    @classmethod
    def from_backend(cls, data: Dict[str, Any]) -> "UserProfile":
        normalized = dict(data)
        for source, target in _PROFILE_ALIASES.items():
            if source in normalized and target not in normalized:
                normalized[target] = normalized.pop(source)
        return cls.model_validate(normalized)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class LoginResponse(BaseModel):
    """Tokens stay in cookies; only the profile is returned"""
    user: UserProfile


class RefreshResponse(BaseModel):
    success: bool = True


class LogoutResponse(BaseModel):
    message: str = "Logged out"


class SessionStatusResponse(BaseModel):
    authenticated: bool
    expires_at: Optional[datetime] = Field(None, description="Access credential expiry, when known")
