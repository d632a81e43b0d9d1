from .whitelist_service import WhitelistService
from .lifecycle_service import ActivationCodeManager, GeneratedCode
from .audit_service import ActivationAuditService, AuditFilter
from .notification_service import ActivationMailer

__all__ = [
    "WhitelistService",
    "ActivationCodeManager",
    "GeneratedCode",
    "ActivationAuditService",
    "AuditFilter",
    "ActivationMailer",
]
