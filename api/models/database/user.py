"""
Platform user directory mirrored locally.
Used to resolve the supervisor assigned to field agent whitelist entries.
"""
from sqlalchemy import Column, String, Boolean

from common.types import SUPERVISOR_ROLES, UserRole
from models.database.base import BaseModel, UTCDateTime


class User(BaseModel):

    __tablename__ = "users"

    email = Column(
        String(255),
        nullable=False,
        unique=True,
        index=True,
        comment="Email address"
    )

    first_name = Column(
        String(100),
        nullable=False,
        comment="First name"
    )

    last_name = Column(
        String(100),
        nullable=False,
        default="",
        comment="Last name"
    )

    role = Column(
        String(50),
        nullable=False,
        default=UserRole.FIELD_AGENT.value,
        index=True,
        comment="User role: admin, supervisor, field_agent"
    )

    phone = Column(
        String(50),
        nullable=True,
        comment="Phone number"
    )

    avatar_url = Column(
        String(500),
        nullable=True,
        comment="Avatar reference"
    )

    is_active = Column(
        Boolean,
        nullable=False,
        default=True,
        index=True,
        comment="Whether user account is active"
    )

    last_login = Column(
        UTCDateTime(),
        nullable=True,
        comment="Last login timestamp"
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def role_enum(self) -> UserRole:
        return UserRole.parse(self.role)

    def can_supervise(self) -> bool:
        return bool(self.is_active) and self.role_enum in SUPERVISOR_ROLES
