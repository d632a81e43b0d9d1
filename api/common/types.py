"""
Common types and enums for the entire system
Single source of truth to avoid duplicates and ensure consistency
"""
from enum import Enum
from typing import Dict, FrozenSet, Optional


class UserRole(Enum):
    """Enum define user roles"""
    ADMIN = "admin"
    SUPERVISOR = "supervisor"
    FIELD_AGENT = "field_agent"

    @classmethod
    def parse(cls, value: Optional[str]) -> "UserRole":
        """Accept canonical names and the platform's legacy spellings"""
        if isinstance(value, UserRole):
            return value
        key = (value or "").strip().lower()
        if key in ROLE_ALIASES:
            return cls(ROLE_ALIASES[key])
        return cls(key)


# Legacy role spellings sent by the platform backend
ROLE_ALIASES: Dict[str, str] = {
    "admin": "admin",
    "administrador": "admin",
    "supervisor": "supervisor",
    "encargado": "supervisor",
    "field_agent": "field_agent",
    "brigadista": "field_agent",
}

# Roles allowed to supervise field agents
SUPERVISOR_ROLES: FrozenSet[UserRole] = frozenset({UserRole.ADMIN, UserRole.SUPERVISOR})


class IdentifierType(Enum):
    """Enum define whitelist identifier types"""
    EMAIL = "email"
    PHONE = "phone"
    NATIONAL_ID = "national_id"


class ActivationCodeStatus(Enum):
    """Enum define activation code statuses"""
    ACTIVE = "active"
    USED = "used"
    EXPIRED = "expired"
    REVOKED = "revoked"
    LOCKED = "locked"


class AuditEventType(Enum):
    """Enum define activation audit event types"""
    GENERATED = "generated"
    REGENERATED = "regenerated"
    ATTEMPTED_USE = "attempted_use"
    SUCCESSFUL_USE = "successful_use"
    FAILED_USE = "failed_use"
    REVOKED = "revoked"
    EXTENDED = "extended"
    EMAIL_SENT = "email_sent"
    EMAIL_RESENT = "email_resent"
    EXPIRED = "expired"
    LOCKED = "locked"


class WhitelistStatus(Enum):
    """Filter values for whitelist listing"""
    ALL = "all"
    ACTIVATED = "activated"
    PENDING = "pending"


class GuardState(Enum):
    """Route guard states"""
    CHECKING = "checking"
    AUTHORIZED = "authorized"
    UNAUTHORIZED = "unauthorized"
