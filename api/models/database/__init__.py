from .base import Base, BaseModel
from .user import User
from .activation import WhitelistEntry, ActivationCode, ActivationAuditLog

__all__ = [
    "Base",
    "BaseModel",
    "User",
    "WhitelistEntry",
    "ActivationCode",
    "ActivationAuditLog",
]
