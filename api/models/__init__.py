from .database.user import User
from .database.activation import WhitelistEntry, ActivationCode, ActivationAuditLog

__all__ = [
    # Database models
    "User",
    "WhitelistEntry",
    "ActivationCode",
    "ActivationAuditLog",
]
