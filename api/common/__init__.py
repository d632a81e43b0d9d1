"""Common package for the whole console"""

from .types import (
    UserRole,
    IdentifierType,
    ActivationCodeStatus,
    AuditEventType,
    WhitelistStatus,
    GuardState,
)

__all__ = [
    "UserRole",
    "IdentifierType",
    "ActivationCodeStatus",
    "AuditEventType",
    "WhitelistStatus",
    "GuardState",
]
