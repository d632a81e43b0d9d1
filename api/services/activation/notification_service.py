"""
Activation email delivery.
Delivery failures are reported, never raised: generation must not fail
because a mailbox is unreachable.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from common.types import IdentifierType
from config.settings import get_settings
from core.exceptions import ExternalServiceError
from models.database.activation import WhitelistEntry
from utils.datetime_utils import DateTimeManager
from utils.email_utils import send_mail_async
from utils.logging import get_logger

logger = get_logger(__name__)
settings = get_settings()


@dataclass(frozen=True)
class DeliveryResult:
    sent: bool
    status: str


class ActivationMailer:

    CODE_TEMPLATE = "activation_code.html.j2"
    REMINDER_TEMPLATE = "activation_reminder.html.j2"

    @staticmethod
    def _recipient(entry: WhitelistEntry) -> Optional[str]:
        if entry.identifier_type == IdentifierType.EMAIL.value:
            return entry.identifier
        return None

    @staticmethod
    def _format_expiry(expires_at: Optional[datetime]) -> Optional[str]:
        if expires_at is None:
            return None
        return DateTimeManager.to_local(expires_at).strftime("%Y-%m-%d %H:%M %Z")

    async def _send(self, entry: WhitelistEntry, template: str, subject: str, context: dict) -> DeliveryResult:
        recipient = self._recipient(entry)
        if recipient is None:
            return DeliveryResult(sent=False, status="no_email_address")

        base = {
            "full_name": entry.full_name,
            "role": entry.assigned_role,
            "activation_url": settings.ACTIVATION_URL,
        }
        base.update(context)
        try:
            await send_mail_async(
                template_name=template,
                recipient_email=recipient,
                subject=subject,
                context=base,
            )
        except ExternalServiceError as e:
            return DeliveryResult(sent=False, status=e.message)
        return DeliveryResult(sent=True, status="sent")

    async def send_code(
        self,
        entry: WhitelistEntry,
        code: str,
        expires_at: Optional[datetime],
        custom_message: Optional[str] = None,
    ) -> DeliveryResult:
        """One-time delivery carrying the plaintext code"""
        return await self._send(
            entry,
            self.CODE_TEMPLATE,
            f"Your {settings.APP_NAME} activation code",
            {
                "code": code,
                "expires_at": self._format_expiry(expires_at),
                "custom_message": custom_message,
            },
        )

    async def send_reminder(
        self,
        entry: WhitelistEntry,
        expires_at: Optional[datetime],
        custom_message: Optional[str] = None,
    ) -> DeliveryResult:
        """Reminder that never includes the code"""
        return await self._send(
            entry,
            self.REMINDER_TEMPLATE,
            f"Reminder: activate your {settings.APP_NAME} account",
            {
                "expires_at": self._format_expiry(expires_at),
                "custom_message": custom_message,
            },
        )
